"""Pull QuickBooks bill attachments into the document file store"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ...models import VendorBillAttachment
from ...utils.file_storage import AttachmentStorage, generate_attachment_key, guess_content_type
from .client import QuickBooksClient, escape_query_value
from .repository import QuickBooksRepository

logger = logging.getLogger(__name__)

STORAGE_FOLDER = "vendor_bill"


@dataclass
class AttachmentPullResult:
    success: bool = True
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    details: list[dict] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "imported": self.imported,
            "skipped": self.skipped,
            "failed": self.failed,
            "details": self.details,
        }
        if self.error:
            data["error"] = self.error
        return data


class AttachmentPuller:
    def __init__(self, db: Session, client: QuickBooksClient, storage: AttachmentStorage):
        self.db = db
        self.client = client
        self.storage = storage
        self.repo = QuickBooksRepository()

    def already_attached(self, bill_id: int, file_name: str) -> bool:
        return (
            self.db.query(VendorBillAttachment.id)
            .filter(VendorBillAttachment.bill_id == bill_id, VendorBillAttachment.file_name == file_name)
            .first()
            is not None
        )

    async def list_attachables(self, quickbooks_bill_id: str) -> list[dict]:
        bill_ref = escape_query_value(str(quickbooks_bill_id))
        return await self.client.query_entities(
            "Attachable",
            "SELECT * FROM Attachable WHERE AttachableRef.EntityRef.Type = 'Bill' "
            f"AND AttachableRef.EntityRef.value = '{bill_ref}'",
        )

    async def pull(self, bill_id: int) -> AttachmentPullResult:
        mapping = self.repo.get_mapping_by_local_id(self.db, "bill", bill_id)
        if not mapping:
            return AttachmentPullResult(success=False, error="Bill not synced to QuickBooks yet")

        attachables = await self.list_attachables(mapping.quickbooks_id)
        logger.info(f"📎 Found {len(attachables)} QuickBooks attachment(s) for bill {bill_id}")

        result = AttachmentPullResult()
        for attachable in attachables:
            outcome = await self.import_attachment(bill_id, attachable)
            result.details.append(outcome)
            if outcome["status"] == "imported":
                result.imported += 1
            elif outcome["status"] == "skipped":
                result.skipped += 1
            else:
                result.failed += 1

        self.repo.log_sync(
            self.db,
            entity_type="bill_attachment",
            entity_id=bill_id,
            quickbooks_id=mapping.quickbooks_id,
            action="pull",
            status="partial" if result.failed else "success",
            details={
                "imported": result.imported,
                "skipped": result.skipped,
                "failed": result.failed,
            },
        )
        self.db.commit()

        logger.info(
            f"✅ Attachment pull for bill {bill_id}: imported={result.imported} "
            f"skipped={result.skipped} failed={result.failed}"
        )
        return result

    def discard_upload(self, key: str) -> None:
        """Remove an object whose attachment row was never saved"""
        if not self.storage.delete(key):
            logger.error(f"❌ Orphaned attachment left in storage, remove manually: {key}")

    async def import_attachment(self, bill_id: int, attachable: dict) -> dict:
        """Import one attachment; failures are reported, never raised"""
        remote_id = attachable.get("Id")
        file_name = attachable.get("FileName") or f"quickbooks-attachment-{remote_id}"

        # Duplicate guard is by file name, not content
        if self.already_attached(bill_id, file_name):
            logger.info(f"Attachment '{file_name}' already exists, skipping")
            return {"fileName": file_name, "status": "skipped", "reason": "Already exists"}

        download_url = attachable.get("TempDownloadUri")
        if not download_url:
            return {"fileName": file_name, "status": "failed", "error": "No download URI available"}

        content_type = attachable.get("ContentType") or guess_content_type(file_name)
        uploaded_key = None
        try:
            response = await self.client.download(download_url)
            content = response.content
            key = generate_attachment_key(STORAGE_FOLDER, bill_id, remote_id, file_name)
            uploaded_key = self.storage.upload(key, content, content_type)

            self.db.add(
                VendorBillAttachment(
                    bill_id=bill_id,
                    file_name=file_name,
                    file_path=key,
                    file_type=content_type,
                    file_size=int(attachable.get("Size") or len(content)),
                    uploaded_by=None,
                )
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to import attachment '{file_name}': {e}")
            if uploaded_key:
                self.discard_upload(uploaded_key)
            return {"fileName": file_name, "status": "failed", "error": str(e)}

        logger.info(f"✅ Imported '{file_name}' from QuickBooks to {key}")
        return {"fileName": file_name, "status": "imported", "path": key}
