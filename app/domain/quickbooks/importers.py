"""
QuickBooks -> local import of invoices and estimates

Each remote record is committed on its own; a failure rolls back that record
only and is reported in the run's errors.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Customer, Estimate, EstimateLineItem
from ...models_invoice import Invoice, InvoiceLineItem
from .client import QuickBooksClient
from .exceptions import PartialBatchFailure, UnmappedReference
from .mappers import estimate_fields, estimate_line_values, invoice_fields, invoice_line_values
from .numbering import DocumentNumberService
from .repository import QuickBooksRepository

logger = logging.getLogger(__name__)

IMPORT_LIMIT = 1000
DEFAULT_VALIDITY_DAYS = 30


@dataclass
class ImportResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    total: int = 0
    errors: list[str] = field(default_factory=list)
    unmapped_customers: list[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "partial" if self.errors else "success"

    def add_unmapped_customer(self, name: str) -> None:
        if name not in self.unmapped_customers:
            self.unmapped_customers.append(name)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "status": self.status,
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "total": self.total,
            "errors": self.errors,
            "unmappedCustomers": self.unmapped_customers,
        }


def replace_estimate_line_items(estimate: Estimate, line_values: list[dict]) -> None:
    """Swap the whole line item set; old rows are deleted as orphans in the same flush"""
    estimate.line_items = [EstimateLineItem(**values) for values in line_values]


class BaseImporter:
    """Shared import loop; subclasses map one QuickBooks entity type"""

    remote_entity: str = ""
    mapping_type: str = ""
    model = None

    def __init__(self, db: Session, client: QuickBooksClient):
        self.db = db
        self.client = client
        self.repo = QuickBooksRepository()
        self.numbers = DocumentNumberService(db)

    async def fetch_records(self) -> list[dict]:
        return await self.client.query_entities(
            self.remote_entity, f"SELECT * FROM {self.remote_entity} MAXRESULTS {IMPORT_LIMIT}"
        )

    async def import_all(self, strict: bool = False) -> ImportResult:
        records = await self.fetch_records()
        logger.info(f"📥 Importing {len(records)} QuickBooks {self.remote_entity} record(s)")

        customer_index = self.repo.load_mapping_index(self.db, "customer")
        product_index = self.repo.load_mapping_index(self.db, "product")
        result = ImportResult(total=len(records))

        for record in records:
            label = record.get("DocNumber") or record.get("Id")
            try:
                self.import_record(record, customer_index, product_index, result)
                self.db.commit()
            except UnmappedReference as e:
                self.db.rollback()
                logger.info(f"⏭️ Skipping {self.remote_entity} {label}: {e.message}")
                result.skipped += 1
                result.add_unmapped_customer(e.name)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Error importing {self.remote_entity} {label}: {e}")
                result.errors.append(f"{label}: {e}")

        self.repo.log_sync(
            self.db,
            entity_type=self.mapping_type,
            action="import",
            status=result.status,
            details={
                "imported": result.imported,
                "updated": result.updated,
                "skipped": result.skipped,
                "total": result.total,
                "errors": result.errors[:10],
                "unmapped_customers": result.unmapped_customers,
            },
        )
        self.repo.touch_last_sync(self.db)
        self.db.commit()

        logger.info(
            f"✅ {self.remote_entity} import finished: imported={result.imported} "
            f"updated={result.updated} skipped={result.skipped} errors={len(result.errors)}"
        )

        if strict and result.errors:
            raise PartialBatchFailure(result.errors, result)
        return result

    def resolve_customer(self, record: dict, customer_index: dict[str, int]) -> int:
        customer_ref = record.get("CustomerRef") or {}
        remote_id = customer_ref.get("value")
        customer_id = customer_index.get(str(remote_id)) if remote_id else None
        if customer_id is None:
            raise UnmappedReference("customer", remote_id, customer_ref.get("name"))
        return customer_id

    def customer_name(self, customer_id: int, record: dict) -> Optional[str]:
        customer = self.db.get(Customer, customer_id)
        if customer:
            return customer.name
        return (record.get("CustomerRef") or {}).get("name")

    def import_record(
        self,
        record: dict,
        customer_index: dict[str, int],
        product_index: dict[str, int],
        result: ImportResult,
    ) -> None:
        # Customer first: an unmapped customer means no insert and no update
        customer_id = self.resolve_customer(record, customer_index)

        mapping = self.repo.get_mapping_by_remote_id(self.db, self.mapping_type, record["Id"])
        if mapping:
            entity = self.db.get(self.model, mapping.entity_id)
            if entity is None:
                raise ValueError(f"mapped local {self.mapping_type} {mapping.entity_id} no longer exists")
            self.update_entity(entity, record, product_index)
            mapping.quickbooks_doc_number = record.get("DocNumber")
            self.repo.mark_mapping(self.db, mapping, "synced")
            result.updated += 1
            return

        entity = self.create_entity(record, customer_id, product_index)
        self.db.add(entity)
        self.db.flush()
        self.repo.add_mapping(
            self.db,
            self.mapping_type,
            entity.id,
            record["Id"],
            sync_direction="import",
            doc_number=record.get("DocNumber"),
        )
        result.imported += 1

    def document_number(self, record: dict) -> str:
        return record.get("DocNumber") or self.numbers.next_local_number(self.mapping_type)

    def update_entity(self, entity, record: dict, product_index: dict[str, int]) -> None:
        raise NotImplementedError

    def create_entity(self, record: dict, customer_id: int, product_index: dict[str, int]):
        raise NotImplementedError


class InvoiceImporter(BaseImporter):
    """Invoices: financial fields only on update, line items on insert"""

    remote_entity = "Invoice"
    mapping_type = "invoice"
    model = Invoice

    def update_entity(self, entity: Invoice, record: dict, product_index: dict[str, int]) -> None:
        for key, value in invoice_fields(record).items():
            setattr(entity, key, value)

    def create_entity(self, record: dict, customer_id: int, product_index: dict[str, int]) -> Invoice:
        return Invoice(
            number=self.document_number(record),
            customer_id=customer_id,
            customer_name=self.customer_name(customer_id, record),
            line_items=[InvoiceLineItem(**v) for v in invoice_line_values(record, product_index)],
            **invoice_fields(record),
        )


class EstimateImporter(BaseImporter):
    """Estimates: line items are replaced wholesale on every sync"""

    remote_entity = "Estimate"
    mapping_type = "estimate"
    model = Estimate

    def update_entity(self, entity: Estimate, record: dict, product_index: dict[str, int]) -> None:
        apply_estimate_record(entity, record, product_index)

    def create_entity(self, record: dict, customer_id: int, product_index: dict[str, int]) -> Estimate:
        fields = estimate_fields(record)
        if fields["valid_until"] is None:
            fields["valid_until"] = date.today() + timedelta(days=DEFAULT_VALIDITY_DAYS)
        return Estimate(
            number=self.document_number(record),
            customer_id=customer_id,
            customer_name=self.customer_name(customer_id, record),
            line_items=[EstimateLineItem(**v) for v in estimate_line_values(record, product_index)],
            **fields,
        )


def apply_estimate_record(estimate: Estimate, record: dict, product_index: dict[str, int]) -> None:
    """Overwrite financial fields and line items from a QuickBooks Estimate"""
    fields = estimate_fields(record)
    # Keep the local expiry and jobsite when QuickBooks has none
    for key in ("valid_until", "jobsite_address"):
        if fields[key] is None:
            fields.pop(key)
    for key, value in fields.items():
        setattr(estimate, key, value)
    replace_estimate_line_items(estimate, estimate_line_values(record, product_index))
