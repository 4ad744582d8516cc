"""
QuickBooks -> local import of customers and products (items)

These mappings are what the invoice and estimate importers resolve
CustomerRef and ItemRef against, so they run first on a fresh connection.
A remote record is matched in order: existing mapping, then an unmapped local
row with the same name (linked, local fields kept), then a new local row.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Customer, Product
from .client import QuickBooksClient
from .mappers import customer_fields, product_fields
from .repository import QuickBooksRepository

logger = logging.getLogger(__name__)

IMPORT_LIMIT = 1000


@dataclass
class ReferenceSyncResult:
    imported: int = 0
    linked: int = 0
    updated: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "partial" if self.errors else "success"

    def to_dict(self) -> dict:
        return {
            "success": True,
            "status": self.status,
            "imported": self.imported,
            "linked": self.linked,
            "updated": self.updated,
            "total": self.total,
            "errors": self.errors,
        }


class ReferenceImporter:
    remote_entity: str = ""
    mapping_type: str = ""
    model = None
    query = ""

    def __init__(self, db: Session, client: QuickBooksClient):
        self.db = db
        self.client = client
        self.repo = QuickBooksRepository()

    def fields(self, record: dict) -> dict:
        raise NotImplementedError

    def find_unmapped_by_name(self, name: str, mapped_ids: set[int]):
        candidates = (
            self.db.query(self.model)
            .filter(func.lower(func.trim(self.model.name)) == name.strip().lower())
            .order_by(self.model.id)
            .all()
        )
        return next((row for row in candidates if row.id not in mapped_ids), None)

    async def import_all(self) -> ReferenceSyncResult:
        records = await self.client.query_entities(self.remote_entity, self.query)
        logger.info(f"📥 Importing {len(records)} QuickBooks {self.remote_entity} record(s)")

        mapped_ids = set(self.repo.load_mapping_index(self.db, self.mapping_type).values())
        result = ReferenceSyncResult(total=len(records))

        for record in records:
            remote_id = str(record.get("Id"))
            try:
                local_id = self.import_record(record, mapped_ids, result)
                self.db.commit()
                mapped_ids.add(local_id)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Error importing {self.remote_entity} {remote_id}: {e}")
                result.errors.append(f"{remote_id}: {e}")

        self.repo.log_sync(
            self.db,
            entity_type=self.mapping_type,
            action="import",
            status=result.status,
            details={
                "imported": result.imported,
                "linked": result.linked,
                "updated": result.updated,
                "total": result.total,
                "errors": result.errors[:10],
            },
        )
        self.repo.touch_last_sync(self.db)
        self.db.commit()

        logger.info(
            f"✅ {self.remote_entity} import finished: imported={result.imported} "
            f"linked={result.linked} updated={result.updated} errors={len(result.errors)}"
        )
        return result

    def import_record(self, record: dict, mapped_ids: set[int], result: ReferenceSyncResult) -> int:
        if not record.get("Id"):
            raise ValueError("record has no Id")
        remote_id = str(record["Id"])
        values = self.fields(record)

        mapping = self.repo.get_mapping_by_remote_id(self.db, self.mapping_type, remote_id)
        if mapping:
            row = self.db.get(self.model, mapping.entity_id)
            if row is None:
                raise ValueError(f"mapped local {self.mapping_type} {mapping.entity_id} no longer exists")
            for key, value in values.items():
                setattr(row, key, value)
            self.repo.mark_mapping(self.db, mapping, "synced")
            result.updated += 1
            return row.id

        row = self.find_unmapped_by_name(values["name"], mapped_ids)
        if row is not None:
            logger.info(f"🔗 Linking {self.mapping_type} {row.id} to QuickBooks {self.remote_entity} {remote_id}")
            result.linked += 1
        else:
            row = self.model(**values)
            self.db.add(row)
            self.db.flush()
            result.imported += 1

        self.repo.add_mapping(self.db, self.mapping_type, row.id, remote_id, sync_direction="import")
        return row.id


class CustomerImporter(ReferenceImporter):
    remote_entity = "Customer"
    mapping_type = "customer"
    model = Customer
    query = f"SELECT * FROM Customer WHERE Active = true MAXRESULTS {IMPORT_LIMIT}"

    def fields(self, record: dict) -> dict:
        return customer_fields(record)


class ProductImporter(ReferenceImporter):
    remote_entity = "Item"
    mapping_type = "product"
    model = Product
    query = (
        "SELECT * FROM Item WHERE Type IN ('Inventory', 'NonInventory', 'Service') "
        f"MAXRESULTS {IMPORT_LIMIT}"
    )

    def fields(self, record: dict) -> dict:
        return product_fields(record)
