"""
Shared fixtures: temporary SQLite stores and an in-memory remote replica.
"""
import pytest

from vendorcalc.billing import build_draft
from vendorcalc.config import VendorCalcConfig
from vendorcalc.errors import RemoteConnectionError
from vendorcalc.ledger import Ledger
from vendorcalc.models import Session
from vendorcalc.store import LocalStore


class InMemoryReplica:
    """Drop-in for RemoteReplica backed by a dict of users/{uid}/{collection}/{id}."""

    def __init__(self, configured: bool = True):
        self.configured = configured
        self.token = None
        self.docs = {}
        self.calls = []
        self.fail_writes = False
        self.fail_listing = set()

    def is_available(self):
        return self.configured and self.token is not None

    def authenticate(self, session):
        if not self.configured:
            return False
        self.token = session.id_token
        return True

    def clear_credentials(self):
        self.token = None

    def collection(self, uid, name):
        return self.docs.setdefault((uid, name), {})

    def seed(self, uid, name, doc):
        self.collection(uid, name)[str(doc["id"])] = doc

    def _write(self, uid, name, doc_id, data=None):
        self.calls.append(("delete" if data is None else "put", name, doc_id))
        if not self.is_available() or self.fail_writes:
            return False
        if data is None:
            self.collection(uid, name).pop(str(doc_id), None)
        else:
            self.collection(uid, name)[str(doc_id)] = data
        return True

    def put_product(self, uid, product):
        return self._write(uid, "products", product.id, product.model_dump(mode="json"))

    def delete_product(self, uid, product_id):
        return self._write(uid, "products", product_id)

    def put_invoice(self, uid, invoice):
        return self._write(uid, "history", invoice.id, invoice.model_dump(mode="json"))

    def delete_invoice(self, uid, invoice_id):
        return self._write(uid, "history", invoice_id)

    def _list(self, uid, name):
        if not self.is_available():
            return []
        if name in self.fail_listing:
            raise RemoteConnectionError(f"listing {name} failed")
        return list(self.collection(uid, name).values())

    def list_products(self, uid):
        return self._list(uid, "products")

    def list_invoices(self, uid):
        return self._list(uid, "history")

    def test_connection(self, uid):
        return {"status": "connected" if self.is_available() else "signed_out"}

    def close(self):
        pass


@pytest.fixture
def config(tmp_path):
    """Config pointing at a throwaway database, remote unconfigured."""
    return VendorCalcConfig(
        db_path=str(tmp_path / "ledger.db"),
        remote_url="",
        retry_attempts=1,
        retry_delay=0,
    )


@pytest.fixture
def store(config):
    s = LocalStore(config)
    yield s
    s.close()


@pytest.fixture
def replica():
    return InMemoryReplica()


@pytest.fixture
def ledger(config, replica):
    lg = Ledger(config, replica=replica)
    yield lg
    lg.close()


@pytest.fixture
def session():
    return Session(uid="user-1", id_token="token-1", display_name="Asha")


@pytest.fixture
def tea_bill():
    """Draft for 3 x Tea @ 20 with a 10% discount."""
    return build_draft(
        "Chai Point",
        [({"name": "Tea", "price": 20}, 3)],
        customer_name="Ravi",
        discount=10,
    )
