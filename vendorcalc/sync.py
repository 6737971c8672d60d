"""
Bidirectional reconciliation between the local store and the remote replica.

Runs once when a session becomes authenticated:
- Push: every local record overwrites its remote copy
- Pull: remote records whose id is absent locally are inserted verbatim

The merge is id-presence based. When a record exists on both sides the
local copy wins and no field-level comparison happens, so two devices
editing the same id concurrently are not reconciled.
Pulled invoices advance the local invoice counter past their numbers, so
later local bills never repeat an INV-### that arrived from the remote.
"""
from __future__ import annotations
from typing import Optional
from loguru import logger
from pydantic import ValidationError as ModelValidationError

from .config import VendorCalcConfig
from .errors import LedgerError, RemoteUnavailableError
from .models import Invoice, Product, Session
from .replica import RemoteReplica
from .sequence import SequenceAllocator
from .store import HISTORY, PRODUCTS, LocalStore


def _empty_counts() -> dict:
    return {"pushed": 0, "pulled": 0, "skipped": 0, "failed": 0}


def _add_counts(total: dict, counts: dict):
    for key, value in counts.items():
        total[key] += value


class Reconciler:
    """
    Merge orchestrator.

    Usage:
        reconciler = Reconciler(store, replica)

        # Full merge for a signed-in user
        reconciler.reconcile(uid)

        # Single phase for one collection
        reconciler.push_entity("products", uid)
        reconciler.pull_entity("history", uid)
    """

    ENTITIES = {
        "products": {
            "collection": PRODUCTS,
            "model": Product,
            "push_method": "put_product",
            "list_method": "list_products",
        },
        "history": {
            "collection": HISTORY,
            "model": Invoice,
            "push_method": "put_invoice",
            "list_method": "list_invoices",
        },
    }

    def __init__(self, store: LocalStore, replica: RemoteReplica):
        self.store = store
        self.replica = replica
        self.allocator = SequenceAllocator(store)

    def _entity(self, entity_name: str) -> dict:
        if entity_name not in self.ENTITIES:
            raise ValueError(f"Unknown entity: {entity_name}. Valid: {list(self.ENTITIES.keys())}")
        return self.ENTITIES[entity_name]

    def push_entity(self, entity_name: str, uid: str) -> dict:
        """
        Write every local record of an entity to the remote.

        Returns:
            Dict with pushed/failed counts
        """
        entity = self._entity(entity_name)
        model = entity["model"]
        push = getattr(self.replica, entity["push_method"])
        counts = {"pushed": 0, "failed": 0}

        for record in self.store.list(entity["collection"]):
            try:
                item = model.model_validate(record)
            except ModelValidationError as e:
                logger.error(f"  Local {entity_name}/{record.get('id')} is malformed, not pushed: {e}")
                counts["failed"] += 1
                continue
            if push(uid, item):
                counts["pushed"] += 1
            else:
                counts["failed"] += 1

        logger.info(f"  Pushed {counts['pushed']} {entity_name} ({counts['failed']} failed)")
        return counts

    def pull_entity(self, entity_name: str, uid: str) -> dict:
        """
        Insert remote records that are missing locally.

        Returns:
            Dict with pulled/skipped/failed counts
        """
        entity = self._entity(entity_name)
        model = entity["model"]
        collection = entity["collection"]
        counts = {"pulled": 0, "skipped": 0, "failed": 0}

        try:
            documents = getattr(self.replica, entity["list_method"])(uid)
        except RemoteUnavailableError as e:
            logger.error(f"  Could not list remote {entity_name}: {e}")
            counts["failed"] += 1
            return counts

        for doc in documents:
            try:
                item = model.model_validate(doc)
            except ModelValidationError as e:
                logger.error(f"  Remote {entity_name} document is malformed, skipped: {e}")
                counts["failed"] += 1
                continue

            if item.id is None:
                logger.warning(f"  Remote {entity_name} document without id skipped")
                counts["skipped"] += 1
                continue

            try:
                if self.store.exists(collection, item.id):
                    # Present on both sides: local wins
                    counts["skipped"] += 1
                    continue
                with self.store.transaction():
                    self.store.put(collection, item.model_dump())
                    if collection == HISTORY:
                        self.allocator.advance_past([item.invoice_no])
                counts["pulled"] += 1
            except LedgerError as e:
                logger.error(f"  Failed to store remote {entity_name}/{item.id}: {e}")
                counts["failed"] += 1

        logger.info(
            f"  Pulled {counts['pulled']} {entity_name} "
            f"({counts['skipped']} already local, {counts['failed']} failed)"
        )
        return counts

    def reconcile(self, uid: str) -> Optional[dict]:
        """
        Run the full push-then-pull merge.

        Args:
            uid: Stable identity of the signed-in user

        Returns:
            Dict of entity -> counts, or None when the remote is unavailable
        """
        if not self.replica.is_available():
            logger.warning("Remote replica unavailable, skipping reconciliation")
            return None

        log_id = self.store.log_sync(uid, status="running")

        try:
            results = {name: _empty_counts() for name in self.ENTITIES}

            logger.info("=== Pushing Local Records ===")
            for name in self.ENTITIES:
                _add_counts(results[name], self.push_entity(name, uid))

            logger.info("=== Pulling Remote Records ===")
            for name in self.ENTITIES:
                _add_counts(results[name], self.pull_entity(name, uid))

            self.store.update_sync_log(
                log_id,
                rows_pushed=sum(r["pushed"] for r in results.values()),
                rows_pulled=sum(r["pulled"] for r in results.values()),
                rows_failed=sum(r["failed"] for r in results.values()),
                status="completed",
            )

            logger.info("=== Reconciliation Complete ===")
            return results

        except Exception as e:
            self.store.update_sync_log(
                log_id,
                status="failed",
                error_message=str(e),
            )
            raise


def run_reconcile(session: Session, config: Optional[VendorCalcConfig] = None) -> Optional[dict]:
    """
    Convenience function to reconcile one user's data outside a Ledger.

    Args:
        session: Authenticated session
        config: Optional config override

    Returns:
        Dict with reconciliation results, or None when the remote is unavailable
    """
    config = config or VendorCalcConfig.from_env()
    replica = RemoteReplica(config)
    with LocalStore(config) as store:
        try:
            if not replica.authenticate(session):
                logger.warning("Remote replica is not configured")
                return None
            return Reconciler(store, replica).reconcile(session.uid)
        finally:
            replica.close()
