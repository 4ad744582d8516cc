"""
Pytest fixtures for the QuickBooks sync tests.

Provides an in-memory database per test, a fake QuickBooks API served through
httpx.MockTransport, a fake file store and a FastAPI test client.
"""

import os

# Must be set before the app modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["QUICKBOOKS_ENCRYPTION_KEY"] = ""
os.environ["QUICKBOOKS_CLIENT_ID"] = "test-client-id"
os.environ["QUICKBOOKS_CLIENT_SECRET"] = "test-client-secret"
os.environ["QUICKBOOKS_WEBHOOK_VERIFIER_TOKEN"] = "verifier-token"
os.environ["SYNC_API_KEY"] = ""

import json
import re
from datetime import timedelta
from itertools import count

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app import models, models_invoice, models_quickbooks  # noqa: F401
from app.database import Base, build_engine, get_db
from app.domain.quickbooks.client import QuickBooksClient, QuickBooksCredentials
from app.domain.quickbooks.repository import QuickBooksRepository, utcnow
from app.domain.quickbooks.router import get_attachment_storage, get_http_client
from app.domain.quickbooks.webhook_router import get_webhook_verifier_token
from app.main import app as fastapi_app
from app.models import Customer, Product, Vendor
from app.models_quickbooks import QuickBooksConfig

REALM_ID = "realm-1"
ACCESS_TOKEN = "access-token"
REFRESH_TOKEN = "refresh-token"
VERIFIER_TOKEN = "verifier-token"

ENTITY_PATHS = {
    "vendor": "Vendor",
    "purchaseorder": "PurchaseOrder",
    "estimate": "Estimate",
    "invoice": "Invoice",
    "companyinfo": "CompanyInfo",
}


class FakeQuickBooks:
    """In-memory stand-in for the Intuit OAuth and accounting endpoints"""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.query_results: dict = {}
        self.entities: dict = {}
        self.created: list[tuple[str, dict]] = []
        self.updated: list[tuple[str, dict]] = []
        self.post_errors: dict = {}
        self.get_errors: dict = {}
        self.downloads: dict = {}
        self.token_status = 200
        self.token_body = {
            "access_token": "new-access-token",
            "refresh_token": "new-refresh-token",
            "expires_in": 3600,
        }
        self.company_name = "Acme Field Services"
        self._ids = count(1000)

    def queries(self) -> list[str]:
        return [r.url.params["query"] for r in self.requests if r.url.path.endswith("/query")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        path = request.url.path

        if host == "oauth.platform.intuit.com":
            return httpx.Response(self.token_status, json=self.token_body)
        if "revoke" in path:
            return httpx.Response(200, json={})
        if host == "files.example.com":
            url = str(request.url)
            if url not in self.downloads:
                return httpx.Response(404, text="Not found")
            return httpx.Response(200, content=self.downloads[url])

        resource = path.split("/company/", 1)[1].split("/")[1:]

        if resource[0] == "query":
            statement = request.url.params["query"]
            entity = re.search(r"FROM (\w+)", statement).group(1)
            records = self.query_results.get(entity, [])
            if callable(records):
                records = records(statement)
            return httpx.Response(200, json={"QueryResponse": {entity: records}})

        entity = ENTITY_PATHS[resource[0]]

        if request.method == "GET":
            if entity == "CompanyInfo":
                return httpx.Response(200, json={"CompanyInfo": {"CompanyName": self.company_name}})
            entity_id = resource[1]
            if (entity, entity_id) in self.get_errors:
                status, text = self.get_errors[(entity, entity_id)]
                return httpx.Response(status, text=text)
            record = self.entities.get((entity, entity_id))
            if record is None:
                return httpx.Response(404, text="Object Not Found")
            return httpx.Response(200, json={entity: record})

        payload = json.loads(request.content)
        if entity in self.post_errors:
            status, text = self.post_errors[entity]
            return httpx.Response(status, text=text)

        if payload.get("sparse"):
            self.updated.append((entity, payload))
            record = {**payload, "SyncToken": str(int(payload.get("SyncToken", "0")) + 1)}
        else:
            self.created.append((entity, payload))
            record = {**payload, "Id": str(next(self._ids)), "SyncToken": "0"}
        self.entities[(entity, record["Id"])] = record
        return httpx.Response(200, json={entity: record})


class FakeStorage:
    def __init__(self):
        self.uploads: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.fail_for: set[str] = set()
        self.delete_succeeds = True

    def upload(self, key, content, content_type=None):
        if any(name in key for name in self.fail_for):
            raise RuntimeError("Storage upload failed: bucket unavailable")
        self.uploads[key] = (content, content_type)
        return key

    def delete(self, key):
        if not self.delete_succeeds:
            return False
        self.deleted.append(key)
        self.uploads.pop(key, None)
        return True


@pytest.fixture(scope="function")
def engine():
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    """Fresh database for each test"""
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def fake_qb():
    return FakeQuickBooks()


@pytest.fixture
def http_client(fake_qb):
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_qb.handler))


@pytest.fixture
def qb_client(http_client):
    return QuickBooksClient(QuickBooksCredentials(ACCESS_TOKEN, REALM_ID), http_client=http_client)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def qb_config(db_session):
    """Connected QuickBooks company with an access token valid for an hour"""
    config = QuickBooksConfig(
        access_token=ACCESS_TOKEN,
        refresh_token=REFRESH_TOKEN,
        token_expires_at=utcnow() + timedelta(hours=1),
        realm_id=REALM_ID,
        company_name="Acme Field Services",
        is_connected=True,
        connected_at=utcnow(),
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture
def customer(db_session):
    customer = Customer(name="Harbor Logistics", email="ap@harbor.example")
    db_session.add(customer)
    db_session.commit()
    QuickBooksRepository.add_mapping(db_session, "customer", customer.id, "C-1", "import")
    db_session.commit()
    return customer


@pytest.fixture
def product(db_session):
    product = Product(name="Forklift Operator", unit_price=45.0)
    db_session.add(product)
    db_session.commit()
    QuickBooksRepository.add_mapping(db_session, "product", product.id, "ITEM-1", "import")
    db_session.commit()
    return product


@pytest.fixture
def vendor(db_session):
    vendor = Vendor(
        name="  Ridge Equipment Rental ",
        company="Ridge Equipment LLC",
        email="billing@ridge.example",
        phone="555-0100",
        address="12 Quarry Rd",
        city="Bend",
        state="OR",
        zip="97701",
        specialty="Heavy equipment",
        track_1099=True,
    )
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture
def api_client(db_session, http_client, storage):
    """Test client with the database, HTTP transport and file store replaced"""
    fastapi_app.dependency_overrides[get_db] = lambda: db_session
    fastapi_app.dependency_overrides[get_http_client] = lambda: http_client
    fastapi_app.dependency_overrides[get_attachment_storage] = lambda: storage
    fastapi_app.dependency_overrides[get_webhook_verifier_token] = lambda: VERIFIER_TOKEN

    yield TestClient(fastapi_app)

    fastapi_app.dependency_overrides.clear()
