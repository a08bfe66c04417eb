import json

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

import assistant
import checkout
import database
import inventory_sync
import mailer
import main
import square_api
import store_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ADMIN_API_KEY", "RESEND_API_KEY", "SQUARE_LOCATION_ID", "SQUARE_ACCESS_TOKEN"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def mongo(monkeypatch):
    fake = mongomock.MongoClient()["store_test"]
    for module in (database, main, checkout, inventory_sync, store_settings, assistant, mailer):
        monkeypatch.setattr(module, "db", fake)
    return fake


@pytest.fixture
def client(mongo):
    return TestClient(main.app)


@pytest.fixture
def add_product(mongo):
    def _add(**fields):
        doc = {
            "id": "p1",
            "title": "Copacabana Bikini Set",
            "price": 160.0,
            "inventory": 10,
            "size_inventory": {"S": 4, "M": 6},
            "sizes": ["S", "M"],
            "category": "Bikinis",
            "collection": "Rio",
            "description": "Gold hardware, second-skin fabric",
            "status": "Active",
            "is_deleted": False,
            "created_at": "2025-05-01T00:00:00+00:00",
        }
        doc.update(fields)
        mongo["product"].insert_one(dict(doc))
        return doc
    return _add


class SquareStub:
    """Routes Square requests by (method, path); a list of responses is consumed in order"""

    def __init__(self):
        self.routes = {}
        self.requests = []

    def on(self, method, path, status=200, json=None, exc=None, sequence=None):
        self.routes[(method, path)] = list(sequence) if sequence else [(status, json, exc)]

    def __call__(self, request):
        self.requests.append(request)
        entries = self.routes[(request.method, request.url.path)]
        status, body, exc = entries.pop(0) if len(entries) > 1 else entries[0]
        if exc is not None:
            raise exc
        return httpx.Response(status, json=body if body is not None else {})


@pytest.fixture
def square_stub(monkeypatch):
    stub = SquareStub()
    real_client = square_api.SquareClient
    monkeypatch.setattr(
        square_api,
        "get_client",
        lambda settings=None: real_client("test-token", "sandbox", transport=httpx.MockTransport(stub)),
    )
    return stub


class Outbox:
    """Records Resend payloads; set `status` to make the provider reject sends"""

    def __init__(self):
        self.sent = []
        self.status = 200

    def __call__(self, request):
        self.sent.append(json.loads(request.content))
        return httpx.Response(self.status, json={"id": f"email-{len(self.sent)}"})


@pytest.fixture
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setenv("RESEND_API_KEY", "re-test")
    monkeypatch.setattr(mailer, "http_client", lambda: httpx.Client(transport=httpx.MockTransport(box)))
    return box
