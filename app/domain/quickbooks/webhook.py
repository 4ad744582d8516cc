"""
QuickBooks change notification processing

Payload shape:
    {"eventNotifications": [{"realmId": "...", "dataChangeEvent": {"entities": [
        {"name": "Estimate", "id": "123", "operation": "Update", "lastUpdated": "..."}
    ]}}]}
"""

import logging
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from ...models import Estimate
from .client import QuickBooksClient
from .importers import apply_estimate_record
from .mappers import parse_qb_datetime
from .repository import QuickBooksRepository, utcnow
from .tokens import TokenManager

logger = logging.getLogger(__name__)

DELETE_OPERATIONS = ("Delete", "Void")
UPSERT_OPERATIONS = ("Create", "Update", "Merge")

ClientFactory = Callable[[], Awaitable[QuickBooksClient]]


class EstimateChangeHandler:
    """Re-syncs a mapped estimate from QuickBooks, remote wins unless local is fresher"""

    def __init__(self, db: Session, get_client: ClientFactory):
        self.db = db
        self.get_client = get_client
        self.repo = QuickBooksRepository()

    async def handle(self, change: dict) -> dict:
        remote_id = str(change.get("id"))
        operation = change.get("operation")

        mapping = self.repo.get_mapping_by_remote_id(self.db, "estimate", remote_id)
        if not mapping:
            logger.info(f"[Webhook] No local mapping for QuickBooks estimate {remote_id}")
            return {"success": True, "skipped": True, "reason": "No local mapping"}

        if operation in DELETE_OPERATIONS:
            return self.void(mapping, remote_id, operation)

        if operation not in UPSERT_OPERATIONS:
            logger.info(f"[Webhook] Ignoring estimate operation {operation}")
            return {"success": True, "skipped": True, "reason": f"Unhandled operation {operation}"}

        client = await self.get_client()
        record = await client.get_entity("Estimate", remote_id)
        fetched_at = utcnow()

        remote_updated = parse_qb_datetime((record.get("MetaData") or {}).get("LastUpdatedTime"))
        if mapping.last_synced_at and remote_updated and remote_updated <= mapping.last_synced_at:
            logger.info(f"[Webhook] Estimate {remote_id} not newer than local, skipping")
            return {"success": True, "skipped": True, "reason": "Local is up to date"}

        estimate = self.db.get(Estimate, mapping.entity_id)
        if estimate is None:
            raise ValueError(f"mapped local estimate {mapping.entity_id} no longer exists")

        product_index = self.repo.load_mapping_index(self.db, "product")
        apply_estimate_record(estimate, record, product_index)

        mapping.sync_status = "synced"
        mapping.error_message = None
        mapping.last_synced_at = fetched_at
        mapping.quickbooks_doc_number = record.get("DocNumber") or mapping.quickbooks_doc_number

        self.repo.log_sync(
            self.db,
            entity_type="estimate",
            entity_id=estimate.id,
            quickbooks_id=remote_id,
            action="webhook_update",
            status="success",
            details={
                "operation": operation,
                "doc_number": record.get("DocNumber"),
                "remote_last_updated": remote_updated.isoformat() if remote_updated else None,
            },
        )
        self.db.commit()

        logger.info(f"✅ [Webhook] Estimate {estimate.number} updated from QuickBooks")
        return {"success": True, "action": "updated", "estimateId": estimate.id}

    def void(self, mapping, remote_id: str, operation: str) -> dict:
        """Soft delete only; the local row and mapping are kept"""
        now = utcnow()
        mapping.sync_status = "voided"
        mapping.last_synced_at = now

        estimate = self.db.get(Estimate, mapping.entity_id)
        if estimate and estimate.deleted_at is None:
            estimate.deleted_at = now
            estimate.status = "closed"

        self.repo.log_sync(
            self.db,
            entity_type="estimate",
            entity_id=mapping.entity_id,
            quickbooks_id=remote_id,
            action="webhook_delete",
            status="success",
            details={"operation": operation},
        )
        self.db.commit()

        logger.info(f"🗑️ [Webhook] Estimate {mapping.entity_id} voided from QuickBooks")
        return {"success": True, "action": "deleted"}


class WebhookProcessor:
    """Dispatches each changed entity to the handler registered for its name"""

    def __init__(self, db: Session, token_manager: TokenManager):
        self.db = db
        self.token_manager = token_manager
        self.repo = QuickBooksRepository()
        self._client: Optional[QuickBooksClient] = None
        self.handlers = {
            "Estimate": EstimateChangeHandler(db, self.get_client),
        }

    async def get_client(self) -> QuickBooksClient:
        if self._client is None:
            self._client = await self.token_manager.get_client()
        return self._client

    async def process(self, payload: dict) -> dict:
        config = self.repo.get_connected_config(self.db)
        if not config:
            logger.warning("[Webhook] Notification received but QuickBooks is not connected")
            return {"success": False, "error": "QuickBooks not connected"}

        results = []
        for notification in payload.get("eventNotifications") or []:
            realm_id = str(notification.get("realmId"))
            if realm_id != config.realm_id:
                logger.warning(f"[Webhook] Skipping notification for unknown realm {realm_id}")
                results.append({"realmId": realm_id, "skipped": True, "reason": "Realm mismatch"})
                continue

            entities = (notification.get("dataChangeEvent") or {}).get("entities") or []
            for change in entities:
                results.append(await self.dispatch(change))

        return {"success": all(r.get("success", True) for r in results), "results": results}

    async def dispatch(self, change: dict) -> dict:
        name = change.get("name")
        summary = {"entity": name, "id": change.get("id"), "operation": change.get("operation")}

        handler = self.handlers.get(name)
        if handler is None:
            logger.info(f"[Webhook] No handler for {name} {change.get('id')}, ignoring")
            return {**summary, "success": True, "skipped": True, "reason": "Entity not handled"}

        try:
            return {**summary, **(await handler.handle(change))}
        except Exception as e:
            # Reported in the body; the caller still answers 200
            self.db.rollback()
            logger.error(f"❌ [Webhook] Failed to process {name} {change.get('id')}: {e}")
            return {**summary, "success": False, "error": str(e)}
