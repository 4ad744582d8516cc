from app import auth
from app.models_invoice import Invoice
from app.models_quickbooks import QuickBooksSyncLog
from app.models import Vendor, VendorBill


class TestConnectionRoutes:
    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "healthy"}

    def test_status_when_not_connected(self, api_client):
        assert api_client.get("/quickbooks/status").json()["connected"] is False

    def test_status_when_connected(self, api_client, qb_config):
        body = api_client.get("/quickbooks/status").json()

        assert body["connected"] is True
        assert body["realmId"] == "realm-1"
        assert body["companyName"] == "Acme Field Services"

    def test_oauth_callback_connects(self, api_client, db_session):
        response = api_client.post("/quickbooks/oauth/callback", json={"code": "c0de", "realmId": "realm-5"})

        assert response.json()["success"] is True
        assert api_client.get("/quickbooks/status").json()["realmId"] == "realm-5"

    def test_disconnect(self, api_client, qb_config):
        assert api_client.post("/quickbooks/disconnect").json() == {"success": True}
        assert api_client.get("/quickbooks/status").json()["connected"] is False


class TestSyncErrorsAreReturnedAs200:
    def test_import_without_connection(self, api_client):
        response = api_client.post("/quickbooks/import/invoices")

        assert response.status_code == 200
        assert response.json() == {
            "success": False,
            "error": "QuickBooks not connected",
            "errorType": "not_connected",
        }

    def test_refresh_failure(self, api_client, db_session, qb_config, fake_qb):
        qb_config.token_expires_at = qb_config.connected_at
        db_session.commit()
        fake_qb.token_status = 401

        response = api_client.post("/quickbooks/import/estimates")

        assert response.status_code == 200
        assert response.json()["errorType"] == "token_refresh_failed"

    def test_remote_api_error(self, api_client, db_session, qb_config, fake_qb, vendor):
        fake_qb.post_errors["Vendor"] = (500, "Internal Server Error")

        response = api_client.post("/quickbooks/vendors/sync", json={"vendorId": vendor.id})

        assert response.status_code == 200
        assert response.json()["errorType"] == "remote_api_error"

    def test_two_local_vendors_with_one_remote_name(self, api_client, db_session, qb_config, fake_qb, vendor):
        twin = Vendor(name="Ridge Equipment Rental")
        db_session.add(twin)
        db_session.commit()

        first = api_client.post("/quickbooks/vendors/sync", json={"vendorId": vendor.id}).json()
        fake_qb.query_results["Vendor"] = [{"Id": first["quickbooksVendorId"]}]
        response = api_client.post("/quickbooks/vendors/sync", json={"vendorId": twin.id})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["errorType"] == "mapping_conflict"

    def test_unknown_vendor_is_404(self, api_client, qb_config):
        assert api_client.post("/quickbooks/vendors/sync", json={"vendorId": 999}).status_code == 404


class TestSyncRoutes:
    def test_next_number_uses_local_rows_when_disconnected(self, api_client, db_session, customer):
        db_session.add(Invoice(number="INV-0041", customer_id=customer.id))
        db_session.commit()

        body = api_client.post("/quickbooks/next-number", json={"type": "invoice"}).json()

        assert body["nextNumber"] == "INV-0042"
        assert body["source"] == "local"

    def test_next_number_accepts_dashed_type(self, api_client, qb_config, fake_qb):
        fake_qb.query_results["PurchaseOrder"] = [{"DocNumber": "PO-0099"}, {"DocNumber": "PO-0050"}]

        body = api_client.post("/quickbooks/next-number", json={"type": "purchase-order"}).json()

        assert body["nextNumber"] == "PO-0100"

    def test_next_number_unknown_type_is_400(self, api_client):
        assert api_client.post("/quickbooks/next-number", json={"type": "timesheet"}).status_code == 400

    def test_import_route_returns_counts(self, api_client, qb_config, fake_qb, customer):
        fake_qb.query_results["Invoice"] = [
            {"Id": "1", "DocNumber": "1001", "CustomerRef": {"value": "C-404", "name": "Nobody"}, "TotalAmt": 5}
        ]

        body = api_client.post("/quickbooks/import/invoices").json()

        assert body["success"] is True
        assert body["skipped"] == 1
        assert body["unmappedCustomers"] == ["Nobody"]

    def test_pull_attachments_for_unsynced_bill(self, api_client, db_session, qb_config, vendor):
        bill = VendorBill(number="BILL-0001", vendor_id=vendor.id)
        db_session.add(bill)
        db_session.commit()

        response = api_client.post("/quickbooks/bills/pull-attachments", json={"billId": bill.id})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "Bill not synced to QuickBooks yet"

    def test_sync_log_newest_first(self, api_client, db_session):
        for action in ("import", "create", "pull"):
            db_session.add(QuickBooksSyncLog(entity_type="invoice", action=action, status="success"))
        db_session.add(QuickBooksSyncLog(entity_type="vendor", action="update", status="error"))
        db_session.commit()

        body = api_client.get("/quickbooks/sync-log", params={"entity_type": "invoice", "limit": 2}).json()

        assert [row["action"] for row in body] == ["pull", "create"]


class TestSyncApiKey:
    def test_key_required_when_configured(self, api_client, monkeypatch):
        monkeypatch.setattr(auth, "SYNC_API_KEY", "s3cret")

        assert api_client.get("/quickbooks/status").status_code == 401
        assert api_client.get("/quickbooks/status", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert api_client.get("/quickbooks/status", headers={"Authorization": "Bearer s3cret"}).status_code == 200

    def test_webhook_does_not_use_api_key(self, api_client, monkeypatch):
        monkeypatch.setattr(auth, "SYNC_API_KEY", "s3cret")

        assert api_client.get("/webhooks/quickbooks", params={"challenge": "x"}).status_code == 200
