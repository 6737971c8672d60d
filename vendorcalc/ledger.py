"""
The ledger: application state and the single entry point for mutations.

Every mutation is committed to the local store first. If a session is
active, a mirror job is then queued on a background worker; the caller
never waits for it and never sees its outcome.
"""
from __future__ import annotations
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Mapping, Optional, Union
from loguru import logger
from pydantic import ValidationError as ModelValidationError

from .billing import check_draft
from .config import VendorCalcConfig
from .errors import ImportFormatError, StorageError, ValidationError
from .models import Invoice, InvoiceDraft, Product, Session, Snapshot
from .replica import RemoteReplica
from .sequence import SequenceAllocator
from .store import HISTORY, PRODUCTS, ChangeEvent, LocalStore, utc_now_iso
from .sync import Reconciler

VENDOR_NAME_KEY = "vendorName"
SESSION_UID_KEY = "sessionUid"
SESSION_TOKEN_KEY = "sessionToken"
SESSION_NAME_KEY = "sessionDisplayName"


class Ledger:
    """
    Local-first billing ledger.

    Construct one per process and hand it to whatever needs it.

    Usage:
        with Ledger(config) as ledger:
            tea = ledger.add_product("Tea", 20, "General")
            draft = build_draft(ledger.vendor_name, [(tea, 3)], discount=10)
            invoice = ledger.save_bill(draft)

            ledger.sign_in(Session(uid="u1", id_token="..."))
    """

    def __init__(
        self,
        config: Optional[VendorCalcConfig] = None,
        store: Optional[LocalStore] = None,
        replica: Optional[RemoteReplica] = None,
    ):
        self.config = config or VendorCalcConfig.from_env()
        self.store = store or LocalStore(self.config)
        self.replica = replica or RemoteReplica(self.config)
        self.allocator = SequenceAllocator(self.store)
        self.reconciler = Reconciler(self.store, self.replica)

        self._session: Optional[Session] = None
        self._syncing = threading.Event()
        # One worker keeps remote writes in submission order
        self._mirror_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="vendorcalc-mirror")
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._closed = False

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_syncing(self) -> bool:
        return self._syncing.is_set()

    @property
    def vendor_name(self) -> str:
        return self.store.settings_get(VENDOR_NAME_KEY, "") or ""

    def products(self) -> list[Product]:
        return [Product.model_validate(r) for r in self.store.list(PRODUCTS)]

    def history(self) -> list[Invoice]:
        """Saved invoices, newest first."""
        rows = self.store.list(HISTORY, order_by="created_at", descending=True)
        return [Invoice.model_validate(r) for r in rows]

    def get_product(self, product_id: int) -> Optional[Product]:
        row = self.store.get(PRODUCTS, product_id)
        return Product.model_validate(row) if row else None

    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        row = self.store.get(HISTORY, invoice_id)
        return Invoice.model_validate(row) if row else None

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        """Subscribe to committed local changes."""
        return self.store.subscribe(listener)

    # ------------------------------------------------------------------
    # Mirroring
    # ------------------------------------------------------------------

    def _ensure_open(self):
        if self._closed:
            raise StorageError("Ledger is closed")

    def _mirror(self, method_name: str, *args: Any):
        session = self._session
        if session is None or not self.replica.is_available():
            return
        job = getattr(self.replica, method_name)
        try:
            future = self._mirror_pool.submit(job, session.uid, *args)
        except RuntimeError:
            # Pool shut down by close() on another thread; the local write stands
            logger.warning(f"Ledger closing, {method_name} not mirrored")
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._mirror_done)

    def _mirror_done(self, future: Future):
        with self._pending_lock:
            self._pending.discard(future)
        exc = future.exception()
        if exc is not None:
            logger.opt(exception=exc).error("Mirror job crashed")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued mirror jobs. Returns False on timeout."""
        with self._pending_lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def _product_fields(self, name: str, price: Any, category: Optional[str]) -> dict:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Product name is required")
        try:
            price = float(price)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Product price must be a number, got {price!r}") from e
        if math.isnan(price) or math.isinf(price) or price < 0:
            raise ValidationError("Product price must be zero or more")
        category = (category or "").strip() or self.config.default_category
        return {"name": name, "price": price, "category": category}

    def add_product(self, name: str, price: float, category: Optional[str] = None) -> Product:
        self._ensure_open()
        fields = self._product_fields(name, price, category)
        new_id = self.store.insert(PRODUCTS, fields)
        product = Product(id=new_id, **fields)
        logger.info(f"Product added: {product.name} (id={new_id})")
        self._mirror("put_product", product)
        return product

    def update_product(
        self,
        product_id: int,
        name: str,
        price: float,
        category: Optional[str] = None,
    ) -> Product:
        self._ensure_open()
        fields = self._product_fields(name, price, category)
        self.store.update(PRODUCTS, product_id, fields)
        product = Product(id=product_id, **fields)
        logger.info(f"Product updated: {product.name} (id={product_id})")
        self._mirror("put_product", product)
        return product

    def delete_product(self, product_id: int):
        self._ensure_open()
        if self.store.delete(PRODUCTS, product_id):
            logger.info(f"Product deleted (id={product_id})")
        self._mirror("delete_product", product_id)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def save_bill(self, draft: Union[InvoiceDraft, Mapping]) -> Invoice:
        """
        Persist a draft as a numbered invoice.

        The draft's totals must already satisfy the discount invariants;
        they are checked, never recomputed.

        Raises:
            ValidationError: If the draft is incomplete or inconsistent
        """
        self._ensure_open()
        if not isinstance(draft, InvoiceDraft):
            try:
                draft = InvoiceDraft.model_validate(draft)
            except ModelValidationError as e:
                raise ValidationError(f"Invalid bill: {e}") from e

        problems = check_draft(draft)
        if problems:
            raise ValidationError("Invalid bill: " + "; ".join(problems))

        record = draft.model_dump()
        record["invoice_no"] = self.allocator.next_invoice_no()
        record["created_at"] = utc_now_iso()

        new_id = self.store.insert(HISTORY, record)
        invoice = Invoice(id=new_id, **record)
        logger.info(f"Invoice {invoice.invoice_no} saved (id={new_id}, total={invoice.final_total})")
        self._mirror("put_invoice", invoice)
        return invoice

    def delete_history_item(self, invoice_id: int):
        self._ensure_open()
        if self.store.delete(HISTORY, invoice_id):
            logger.info(f"Invoice deleted (id={invoice_id})")
        self._mirror("delete_invoice", invoice_id)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def save_vendor_name(self, name: str):
        self._ensure_open()
        self.store.settings_put(VENDOR_NAME_KEY, name or "")
        logger.info("Vendor name saved")

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def sign_in(self, session: Union[Session, Mapping]) -> Optional[dict]:
        """
        Activate a session and reconcile local and remote data.

        Returns:
            Reconciliation results, or None when no remote is configured
        """
        self._ensure_open()
        if not isinstance(session, Session):
            session = Session.model_validate(session)

        if not self.replica.authenticate(session):
            logger.warning("Remote replica is not configured; staying local-only")
            return None

        try:
            with self.store.transaction():
                self.store.settings_put(SESSION_UID_KEY, session.uid)
                self.store.settings_put(SESSION_TOKEN_KEY, session.id_token)
                if session.display_name:
                    self.store.settings_put(SESSION_NAME_KEY, session.display_name)
                else:
                    self.store.settings_delete(SESSION_NAME_KEY)
        except StorageError:
            self.replica.clear_credentials()
            raise
        self._session = session
        logger.info(f"Signed in as {session.display_name or session.uid}")

        self._syncing.set()
        try:
            return self.reconciler.reconcile(session.uid)
        finally:
            self._syncing.clear()

    def restore_session(self) -> Optional[dict]:
        """Re-activate the persisted session, if any, and reconcile."""
        uid = self.store.settings_get(SESSION_UID_KEY)
        token = self.store.settings_get(SESSION_TOKEN_KEY)
        if not uid or not token:
            return None
        display_name = self.store.settings_get(SESSION_NAME_KEY)
        logger.info(f"Restoring session for {display_name or uid}")
        return self.sign_in(Session(uid=uid, id_token=token, display_name=display_name))

    def sign_out(self):
        self._ensure_open()
        self._session = None
        self.replica.clear_credentials()
        with self.store.transaction():
            for key in (SESSION_UID_KEY, SESSION_TOKEN_KEY, SESSION_NAME_KEY):
                self.store.settings_delete(key)
        logger.info("Signed out")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def export_snapshot(self) -> Snapshot:
        """Read both collections in one consistent pass."""
        with self.store.transaction():
            products = self.store.list(PRODUCTS)
            history = self.store.list(HISTORY, order_by="created_at", descending=True)
        return Snapshot(
            products=[Product.model_validate(r) for r in products],
            history=[Invoice.model_validate(r) for r in history],
        )

    def import_snapshot(self, data: Union[Snapshot, Mapping]) -> tuple[int, int]:
        """
        Replace all local products and invoices with a snapshot.

        The whole snapshot is validated before anything is touched. Records
        get fresh ids; invoice numbers and timestamps are kept.

        Returns:
            Tuple of (products_imported, invoices_imported)

        Raises:
            ImportFormatError: If the snapshot is malformed
        """
        self._ensure_open()
        if isinstance(data, Snapshot):
            snapshot = data
        else:
            if not isinstance(data, Mapping):
                raise ImportFormatError("Snapshot must be an object with products and history")
            for key in ("products", "history"):
                if not isinstance(data.get(key), list):
                    raise ImportFormatError(f"Snapshot field '{key}' must be a list")
            try:
                snapshot = Snapshot.model_validate(data)
            except ModelValidationError as e:
                raise ImportFormatError(f"Invalid backup file format: {e}") from e

        products = [p.model_dump(exclude={"id"}) for p in snapshot.products]
        history = [h.model_dump(exclude={"id"}) for h in snapshot.history]
        with self.store.transaction():
            result = self.store.replace_all(products, history)
            # Imported numbers must never be handed out again
            self.allocator.advance_past(h["invoice_no"] for h in history)
        logger.info(f"Restored {result[0]} products & {result[1]} invoices")
        return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self):
        """Drain queued mirror jobs, then release the store and the remote."""
        self._closed = True
        self._mirror_pool.shutdown(wait=True)
        self.replica.close()
        self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
