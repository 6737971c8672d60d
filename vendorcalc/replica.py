"""
Best-effort mirror of a user's products and invoices to the remote store.

The replica is a durability backstop, not the system of record: every
write method reports success as a bool and logs failures instead of
raising. When no remote is configured, or no credentials are set, all
methods are no-ops.
"""
from __future__ import annotations
from typing import Optional
from loguru import logger

from .client import ReplicaClient
from .config import VendorCalcConfig
from .errors import RemoteUnavailableError
from .models import Invoice, Product, Session

PRODUCTS_PATH = "products"
HISTORY_PATH = "history"


class RemoteReplica:
    """Remote replica adapter addressed as users/{uid}/{products|history}/{id}."""

    def __init__(
        self,
        config: Optional[VendorCalcConfig] = None,
        client: Optional[ReplicaClient] = None,
    ):
        self.config = config or VendorCalcConfig.from_env()
        if client is None and self.config.remote_configured:
            client = ReplicaClient(self.config)
        self.client = client

    @property
    def configured(self) -> bool:
        return self.client is not None

    def is_available(self) -> bool:
        return self.client is not None and self.client.has_credentials

    def authenticate(self, session: Session) -> bool:
        """Attach session credentials. Returns False when unconfigured."""
        if self.client is None:
            return False
        self.client.set_token(session.id_token)
        return True

    def clear_credentials(self):
        if self.client is not None:
            self.client.clear_token()

    def _mirror(self, uid: str, collection: str, doc_id, data: Optional[dict] = None) -> bool:
        if not self.is_available():
            return False
        action = "delete" if data is None else "put"
        log = logger.bind(uid=uid, collection=collection, record_id=doc_id, action=action)
        try:
            if data is None:
                self.client.delete_document(uid, collection, doc_id)
            else:
                self.client.put_document(uid, collection, doc_id, data)
        except RemoteUnavailableError as e:
            log.warning(f"Remote {action} of {collection}/{doc_id} failed: {e}")
            return False
        except Exception:
            log.exception(f"Unexpected error mirroring {collection}/{doc_id}")
            return False
        log.debug(f"Mirrored {action} of {collection}/{doc_id}")
        return True

    def put_product(self, uid: str, product: Product) -> bool:
        return self._mirror(uid, PRODUCTS_PATH, product.id, product.model_dump(mode="json"))

    def delete_product(self, uid: str, product_id: int) -> bool:
        return self._mirror(uid, PRODUCTS_PATH, product_id)

    def put_invoice(self, uid: str, invoice: Invoice) -> bool:
        return self._mirror(uid, HISTORY_PATH, invoice.id, invoice.model_dump(mode="json"))

    def delete_invoice(self, uid: str, invoice_id: int) -> bool:
        return self._mirror(uid, HISTORY_PATH, invoice_id)

    def list_products(self, uid: str) -> list[dict]:
        """
        Raw product documents, for reconciliation.

        Raises:
            RemoteUnavailableError: If the listing fails
        """
        if not self.is_available():
            return []
        return self.client.list_documents(uid, PRODUCTS_PATH)

    def list_invoices(self, uid: str) -> list[dict]:
        """
        Raw invoice documents, for reconciliation.

        Raises:
            RemoteUnavailableError: If the listing fails
        """
        if not self.is_available():
            return []
        return self.client.list_documents(uid, HISTORY_PATH)

    def test_connection(self, uid: str) -> dict:
        if self.client is None:
            return {"status": "unconfigured"}
        if not self.client.has_credentials:
            return {"status": "signed_out", "url": self.client.base_url}
        return self.client.test_connection(uid)

    def close(self):
        if self.client is not None:
            self.client.close()
