"""QuickBooks repository - Database operations for the connection, mappings and sync log"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from ...models_quickbooks import (
    QuickBooksBillMapping,
    QuickBooksConfig,
    QuickBooksCustomerMapping,
    QuickBooksEstimateMapping,
    QuickBooksInvoiceMapping,
    QuickBooksProductMapping,
    QuickBooksPurchaseOrderMapping,
    QuickBooksSyncLog,
    QuickBooksVendorMapping,
)

MAPPING_MODELS = {
    "customer": QuickBooksCustomerMapping,
    "vendor": QuickBooksVendorMapping,
    "product": QuickBooksProductMapping,
    "invoice": QuickBooksInvoiceMapping,
    "estimate": QuickBooksEstimateMapping,
    "bill": QuickBooksBillMapping,
    "purchase_order": QuickBooksPurchaseOrderMapping,
}


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class QuickBooksRepository:
    """Repository for QuickBooks sync bookkeeping"""

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @staticmethod
    def get_config(db: Session) -> Optional[QuickBooksConfig]:
        """Get the singleton connection row, connected or not"""
        return db.query(QuickBooksConfig).order_by(QuickBooksConfig.id).first()

    @staticmethod
    def get_connected_config(db: Session) -> Optional[QuickBooksConfig]:
        return (
            db.query(QuickBooksConfig)
            .filter(QuickBooksConfig.is_connected.is_(True))
            .order_by(QuickBooksConfig.id)
            .first()
        )

    @staticmethod
    def touch_last_sync(db: Session) -> None:
        config = QuickBooksRepository.get_connected_config(db)
        if config:
            config.last_sync_at = utcnow()

    # ------------------------------------------------------------------
    # Mappings
    # ------------------------------------------------------------------

    @staticmethod
    def mapping_model(entity_type: str):
        try:
            return MAPPING_MODELS[entity_type]
        except KeyError:
            raise ValueError(f"Unknown mapping type: {entity_type}") from None

    @staticmethod
    def get_mapping_by_local_id(db: Session, entity_type: str, entity_id: int):
        model = QuickBooksRepository.mapping_model(entity_type)
        return db.query(model).filter(model.entity_id == entity_id).first()

    @staticmethod
    def get_mapping_by_remote_id(db: Session, entity_type: str, quickbooks_id: str):
        model = QuickBooksRepository.mapping_model(entity_type)
        return db.query(model).filter(model.quickbooks_id == str(quickbooks_id)).first()

    @staticmethod
    def load_mapping_index(db: Session, entity_type: str) -> dict[str, int]:
        """QuickBooks id -> local id for every mapping of a type"""
        model = QuickBooksRepository.mapping_model(entity_type)
        return {m.quickbooks_id: m.entity_id for m in db.query(model).all()}

    @staticmethod
    def add_mapping(
        db: Session,
        entity_type: str,
        entity_id: int,
        quickbooks_id: str,
        sync_direction: str,
        doc_number: Optional[str] = None,
    ):
        """Stage a new mapping row; the caller owns the commit"""
        model = QuickBooksRepository.mapping_model(entity_type)
        mapping = model(
            entity_id=entity_id,
            quickbooks_id=str(quickbooks_id),
            quickbooks_doc_number=doc_number,
            sync_status="synced",
            sync_direction=sync_direction,
            last_synced_at=utcnow(),
        )
        db.add(mapping)
        return mapping

    @staticmethod
    def mark_mapping(db: Session, mapping, status: str, error_message: Optional[str] = None) -> None:
        mapping.sync_status = status
        mapping.error_message = error_message
        if status == "synced":
            mapping.last_synced_at = utcnow()

    # ------------------------------------------------------------------
    # Sync log
    # ------------------------------------------------------------------

    @staticmethod
    def log_sync(
        db: Session,
        entity_type: str,
        action: str,
        status: str,
        entity_id: Optional[int] = None,
        quickbooks_id: Optional[str] = None,
        error_message: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> QuickBooksSyncLog:
        """Stage an append-only sync log row; the caller owns the commit"""
        entry = QuickBooksSyncLog(
            entity_type=entity_type,
            entity_id=entity_id,
            quickbooks_id=str(quickbooks_id) if quickbooks_id is not None else None,
            action=action,
            status=status,
            error_message=error_message,
            details=details,
        )
        db.add(entry)
        return entry

    @staticmethod
    def get_sync_log(
        db: Session, entity_type: Optional[str] = None, limit: int = 50
    ) -> list[QuickBooksSyncLog]:
        query = db.query(QuickBooksSyncLog)
        if entity_type:
            query = query.filter(QuickBooksSyncLog.entity_type == entity_type)
        return query.order_by(QuickBooksSyncLog.id.desc()).limit(limit).all()
