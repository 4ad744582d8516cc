import re

import pytest

from app.domain.quickbooks.attachments import AttachmentPuller
from app.domain.quickbooks.repository import QuickBooksRepository
from app.models import VendorBill, VendorBillAttachment
from app.models_quickbooks import QuickBooksSyncLog
from app.utils.file_storage import generate_attachment_key


def attachable(att_id, file_name, content_type="application/pdf", download=True):
    record = {"Id": att_id, "FileName": file_name, "ContentType": content_type, "Size": 11}
    if download:
        record["TempDownloadUri"] = f"https://files.example.com/{att_id}"
    return record


@pytest.fixture
def bill(db_session, vendor):
    bill = VendorBill(number="BILL-0005", vendor_id=vendor.id, vendor_name=vendor.name, total=500.0)
    db_session.add(bill)
    db_session.commit()
    return bill


@pytest.fixture
def synced_bill(db_session, bill):
    QuickBooksRepository.add_mapping(db_session, "bill", bill.id, "B-77", "export")
    db_session.commit()
    return bill


@pytest.fixture
def remote_files(fake_qb):
    fake_qb.query_results["Attachable"] = [
        attachable("A1", "invoice-scan.pdf"),
        attachable("A2", "delivery-photo.jpg", "image/jpeg"),
    ]
    fake_qb.downloads["https://files.example.com/A1"] = b"%PDF-1.4 ok"
    fake_qb.downloads["https://files.example.com/A2"] = b"\xff\xd8jpegdata"
    return fake_qb


class TestAttachmentPuller:
    async def test_unsynced_bill_fails_gracefully(self, db_session, qb_client, storage, bill, fake_qb):
        result = await AttachmentPuller(db_session, qb_client, storage).pull(bill.id)

        assert result.success is False
        assert result.error == "Bill not synced to QuickBooks yet"
        assert fake_qb.requests == []

    async def test_pull_downloads_and_stores_attachments(self, db_session, qb_client, storage, synced_bill, remote_files):
        result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert (result.imported, result.skipped, result.failed) == (2, 0, 0)
        rows = db_session.query(VendorBillAttachment).order_by(VendorBillAttachment.id).all()
        assert [r.file_name for r in rows] == ["invoice-scan.pdf", "delivery-photo.jpg"]
        assert rows[0].file_type == "application/pdf"
        assert rows[0].uploaded_by is None
        assert storage.uploads[rows[1].file_path] == (b"\xff\xd8jpegdata", "image/jpeg")
        assert re.fullmatch(rf"vendor_bill/{synced_bill.id}/\d+-qb-A1\.pdf", rows[0].file_path)

        query = remote_files.queries()[0]
        assert "AttachableRef.EntityRef.Type = 'Bill'" in query
        assert "AttachableRef.EntityRef.value = 'B-77'" in query

        log = db_session.query(QuickBooksSyncLog).one()
        assert (log.entity_type, log.action, log.status) == ("bill_attachment", "pull", "success")

    async def test_second_pull_skips_existing_file_names(self, db_session, qb_client, storage, synced_bill, remote_files):
        puller = AttachmentPuller(db_session, qb_client, storage)
        await puller.pull(synced_bill.id)
        second = await puller.pull(synced_bill.id)

        assert (second.imported, second.skipped, second.failed) == (0, 2, 0)
        assert db_session.query(VendorBillAttachment).count() == 2
        assert len(storage.uploads) == 2

    async def test_missing_download_uri_is_a_failure(self, db_session, qb_client, storage, synced_bill, fake_qb):
        fake_qb.query_results["Attachable"] = [attachable("A9", "no-link.pdf", download=False)]

        result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert result.failed == 1
        assert result.details[0]["error"] == "No download URI available"
        assert db_session.query(QuickBooksSyncLog).one().status == "partial"

    async def test_failures_are_isolated_per_attachment(self, db_session, qb_client, storage, synced_bill, remote_files):
        storage.fail_for.add("qb-A1")

        result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert (result.imported, result.failed) == (1, 1)
        assert "bucket unavailable" in result.details[0]["error"]
        assert db_session.query(VendorBillAttachment).one().file_name == "delivery-photo.jpg"

    async def test_failed_download_is_reported(self, db_session, qb_client, storage, synced_bill, fake_qb):
        fake_qb.query_results["Attachable"] = [attachable("GONE", "expired.pdf")]

        result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert result.failed == 1
        assert storage.uploads == {}


class TestAttachmentCleanup:
    @pytest.fixture
    def unsaveable(self, fake_qb):
        # Size cannot be stored, so the row fails after the upload succeeded
        record = attachable("A3", "receipt.pdf")
        record["Size"] = "unknown"
        fake_qb.query_results["Attachable"] = [record]
        fake_qb.downloads["https://files.example.com/A3"] = b"%PDF-1.4 receipt"
        return fake_qb

    async def test_upload_is_removed_when_row_cannot_be_saved(self, db_session, qb_client, storage, synced_bill, unsaveable):
        result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert result.failed == 1
        assert len(storage.deleted) == 1
        assert "-qb-A3.pdf" in storage.deleted[0]
        assert storage.uploads == {}
        assert db_session.query(VendorBillAttachment).count() == 0

    async def test_orphan_key_is_logged_when_delete_fails(self, db_session, qb_client, storage, synced_bill, unsaveable, caplog):
        storage.delete_succeeds = False

        with caplog.at_level("ERROR"):
            result = await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        assert result.failed == 1
        orphan_key = next(iter(storage.uploads))
        assert any(orphan_key in message for message in caplog.messages)

    async def test_missing_content_type_is_guessed_from_file_name(self, db_session, qb_client, storage, synced_bill, fake_qb):
        record = attachable("A4", "site-photo.png")
        del record["ContentType"]
        fake_qb.query_results["Attachable"] = [record]
        fake_qb.downloads["https://files.example.com/A4"] = b"\x89PNG"

        await AttachmentPuller(db_session, qb_client, storage).pull(synced_bill.id)

        row = db_session.query(VendorBillAttachment).one()
        assert row.file_type == "image/png"
        assert storage.uploads[row.file_path][1] == "image/png"


def test_attachment_key_without_extension_uses_bin():
    key = generate_attachment_key("vendor_bill", 3, "A5", "README")

    assert re.fullmatch(r"vendor_bill/3/\d+-qb-A5\.bin", key)
