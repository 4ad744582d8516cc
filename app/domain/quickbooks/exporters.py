"""Local -> QuickBooks export of vendors and purchase orders"""

import logging
import re
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import PurchaseOrder, Vendor
from .client import QuickBooksClient, escape_query_value
from .exceptions import MappingConflict, QuickBooksError, RemoteApiError
from .repository import QuickBooksRepository

logger = logging.getLogger(__name__)

DUPLICATE_ID_PATTERN = re.compile(r"Id=(\d+)")
EXPENSE_ACCOUNT_TYPES = ("Cost of Goods Sold", "Expense")


def vendor_address(vendor: Vendor) -> Optional[dict]:
    if not (vendor.address or vendor.city or vendor.state or vendor.zip):
        return None
    address = {
        "Line1": vendor.address,
        "City": vendor.city,
        "CountrySubDivisionCode": vendor.state,
        "PostalCode": vendor.zip,
    }
    return {k: v for k, v in address.items() if v}


def build_vendor_payload(vendor: Vendor) -> dict:
    """Vendor body shared by create and sparse update"""
    name = vendor.name.strip()
    payload = {
        "DisplayName": name,
        "CompanyName": (vendor.company or "").strip() or name,
    }
    if vendor.email:
        payload["PrimaryEmailAddr"] = {"Address": vendor.email}
    if vendor.phone:
        payload["PrimaryPhone"] = {"FreeFormNumber": vendor.phone}
    if vendor.specialty:
        payload["Notes"] = vendor.specialty
    if vendor.account_number:
        payload["AcctNum"] = vendor.account_number
    if vendor.tax_id:
        payload["TaxIdentifier"] = vendor.tax_id
    if vendor.track_1099 is not None:
        payload["Vendor1099"] = bool(vendor.track_1099)
    if vendor.billing_rate:
        payload["BillRate"] = vendor.billing_rate
    if vendor.website:
        payload["WebAddr"] = {"URI": vendor.website}

    address = vendor_address(vendor)
    if address:
        payload["BillAddr"] = address
    return payload


class VendorExporter:
    """Push vendors to QuickBooks and keep the vendor mapping current"""

    def __init__(self, db: Session, client: QuickBooksClient):
        self.db = db
        self.client = client
        self.repo = QuickBooksRepository()

    def get_vendor(self, vendor_id: int) -> Vendor:
        vendor = self.db.get(Vendor, vendor_id)
        if not vendor:
            raise HTTPException(status_code=404, detail="Vendor not found")
        return vendor

    async def find_by_display_name(self, name: str) -> Optional[dict]:
        vendors = await self.client.query_entities(
            "Vendor", f"SELECT * FROM Vendor WHERE DisplayName = '{escape_query_value(name)}'"
        )
        return vendors[0] if vendors else None

    async def create(self, vendor_id: int) -> dict:
        """Link or create the QuickBooks vendor. Skips vendors that already have a mapping."""
        existing = self.repo.get_mapping_by_local_id(self.db, "vendor", vendor_id)
        if existing:
            return {"success": True, "quickbooksVendorId": existing.quickbooks_id, "alreadySynced": True}

        vendor = self.get_vendor(vendor_id)
        name = vendor.name.strip()

        remote = await self.find_by_display_name(name)
        if remote:
            logger.info(f"🔗 Linking vendor {vendor_id} to existing QuickBooks vendor {remote['Id']}")
            quickbooks_id, action = remote["Id"], "link"
        else:
            try:
                created = await self.client.create_entity("Vendor", build_vendor_payload(vendor))
                quickbooks_id, action = created["Id"], "create"
            except RemoteApiError as e:
                # "The name supplied already exists. : Id=1209"
                match = DUPLICATE_ID_PATTERN.search(e.body or "")
                if not match:
                    raise
                logger.info(f"🔗 Duplicate vendor name in QuickBooks, linking to Id={match.group(1)}")
                quickbooks_id, action = match.group(1), "link"

        owner = self.repo.get_mapping_by_remote_id(self.db, "vendor", quickbooks_id)
        if owner:
            conflict = MappingConflict("vendor", quickbooks_id, owner.entity_id)
            logger.warning(f"⚠️ Cannot link vendor {vendor.id}: {conflict.message}")
            self.repo.log_sync(
                self.db,
                entity_type="vendor",
                entity_id=vendor.id,
                quickbooks_id=quickbooks_id,
                action=action,
                status="error",
                error_message=conflict.message,
                details={"name": name, "linkedVendorId": owner.entity_id},
            )
            self.db.commit()
            raise conflict

        self.repo.add_mapping(self.db, "vendor", vendor.id, quickbooks_id, sync_direction="export")
        self.repo.log_sync(
            self.db,
            entity_type="vendor",
            entity_id=vendor.id,
            quickbooks_id=quickbooks_id,
            action=action,
            status="success",
            details={"name": name},
        )
        self.db.commit()

        logger.info(f"✅ Vendor synced to QuickBooks: {name} ({quickbooks_id})")
        return {"success": True, "quickbooksVendorId": quickbooks_id, "alreadySynced": False}

    async def update(self, vendor_id: int) -> dict:
        """Sparse-update the mapped QuickBooks vendor"""
        mapping = self.repo.get_mapping_by_local_id(self.db, "vendor", vendor_id)
        if not mapping:
            return {"success": True, "updated": False, "message": "Vendor not synced to QuickBooks"}

        vendor = self.get_vendor(vendor_id)

        try:
            remote = await self.client.get_entity("Vendor", mapping.quickbooks_id)
            self.repo.mark_mapping(self.db, mapping, "pending")
            self.db.commit()

            payload = {
                "Id": mapping.quickbooks_id,
                "SyncToken": remote.get("SyncToken", "0"),
                **build_vendor_payload(vendor),
            }
            await self.client.update_entity("Vendor", payload)
        except QuickBooksError as e:
            self.repo.mark_mapping(self.db, mapping, "error", e.message)
            self.repo.log_sync(
                self.db,
                entity_type="vendor",
                entity_id=vendor.id,
                quickbooks_id=mapping.quickbooks_id,
                action="update",
                status="error",
                error_message=e.message,
            )
            self.db.commit()
            raise

        self.repo.mark_mapping(self.db, mapping, "synced")
        self.repo.log_sync(
            self.db,
            entity_type="vendor",
            entity_id=vendor.id,
            quickbooks_id=mapping.quickbooks_id,
            action="update",
            status="success",
            details={"name": vendor.name},
        )
        self.db.commit()

        logger.info(f"✅ Vendor updated in QuickBooks: {vendor.name}")
        return {"success": True, "updated": True, "quickbooksVendorId": mapping.quickbooks_id}


class PurchaseOrderExporter:
    """Create purchase orders in QuickBooks using account-based expense lines"""

    def __init__(self, db: Session, client: QuickBooksClient):
        self.db = db
        self.client = client
        self.repo = QuickBooksRepository()
        self.vendors = VendorExporter(db, client)

    async def get_expense_account(self) -> dict:
        for account_type in EXPENSE_ACCOUNT_TYPES:
            accounts = await self.client.query_entities(
                "Account",
                f"SELECT * FROM Account WHERE AccountType = '{account_type}' MAXRESULTS 1",
            )
            if accounts:
                return {"value": accounts[0]["Id"], "name": accounts[0].get("Name")}
        raise QuickBooksError("No expense account found in QuickBooks")

    def build_lines(self, po: PurchaseOrder, account_ref: dict) -> list[dict]:
        return [
            {
                "LineNum": index,
                "Amount": item.total,
                "DetailType": "AccountBasedExpenseLineDetail",
                "AccountBasedExpenseLineDetail": {
                    "AccountRef": account_ref,
                    "Qty": item.quantity,
                    "UnitPrice": round(item.unit_price * (1 + (item.markup or 0) / 100), 2),
                },
                "Description": item.description,
            }
            for index, item in enumerate(po.line_items, start=1)
        ]

    async def create(self, purchase_order_id: int) -> dict:
        existing = self.repo.get_mapping_by_local_id(self.db, "purchase_order", purchase_order_id)
        if existing:
            return {
                "success": True,
                "quickbooksPOId": existing.quickbooks_id,
                "message": "Purchase order already synced",
            }

        po = self.db.get(PurchaseOrder, purchase_order_id)
        if not po:
            raise HTTPException(status_code=404, detail="Purchase order not found")

        vendor_result = await self.vendors.create(po.vendor_id)
        account_ref = await self.get_expense_account()

        payload = {
            "VendorRef": {"value": vendor_result["quickbooksVendorId"]},
            "DocNumber": po.number,
            "Line": self.build_lines(po, account_ref),
            "Memo": po.notes or "",
        }
        if po.created_at:
            payload["TxnDate"] = po.created_at.date().isoformat()
        if po.due_date:
            payload["DueDate"] = po.due_date.isoformat()

        created = await self.client.create_entity("PurchaseOrder", payload)
        quickbooks_id = created["Id"]
        doc_number = created.get("DocNumber") or po.number

        self.repo.add_mapping(
            self.db,
            "purchase_order",
            po.id,
            quickbooks_id,
            sync_direction="export",
            doc_number=doc_number,
        )
        self.repo.log_sync(
            self.db,
            entity_type="purchase_order",
            entity_id=po.id,
            quickbooks_id=quickbooks_id,
            action="create",
            status="success",
            details={"number": po.number, "total": po.total},
        )
        self.db.commit()

        logger.info(f"✅ Purchase order synced to QuickBooks: {po.number} ({quickbooks_id})")
        return {"success": True, "quickbooksPOId": quickbooks_id, "quickbooksDocNumber": doc_number}
