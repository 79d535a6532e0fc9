import pytest
from fastapi.testclient import TestClient

from site_discovery.adapters.store import DiscoveryStore
from site_discovery.errors import UpstreamAPIError
from site_discovery.main import app, get_pipeline, get_store
from site_discovery.models.discovery import DiscoveryRecord


class FakePipeline:
    def __init__(self, store, error=None):
        self.store = store
        self.error = error
        self.requests = []

    async def run(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        record = DiscoveryRecord(
            brand=request.brand,
            product_name_input=request.product_name,
            keyword=f"{request.brand} {request.product_name}",
        )
        return self.store.insert(record), record


@pytest.fixture
def store(db_path):
    return DiscoveryStore(db_path=db_path)


@pytest.fixture
def client(store):
    pipeline = FakePipeline(store)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as test_client:
        test_client.pipeline = pipeline
        yield test_client
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_collect_requires_brand_and_product(client):
    response = client.post("/api/collect", json={"brand": "  ", "product_name": "Fan"})

    assert response.status_code == 400
    assert response.json() == {"error": "brand and product_name are required"}
    assert client.pipeline.requests == []


def test_collect_returns_id(client):
    response = client.post(
        "/api/collect",
        json={"brand": "Brand", "product_name": "Fan Prime 3, white", "product_name_english": "Fan Prime 3"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert isinstance(body["id"], int)
    request = client.pipeline.requests[0]
    assert request.product_name_en == "Fan Prime 3"


def test_collect_upstream_failure_is_500(client, store):
    app.dependency_overrides[get_pipeline] = lambda: FakePipeline(
        store, UpstreamAPIError("Search API request failed: 401", status_code=401)
    )

    response = client.post("/api/collect", json={"brand": "Brand", "product_name": "Fan"})

    assert response.status_code == 500
    assert response.json() == {"error": "Search API request failed: 401"}


def test_products_lookup(client):
    record_id = client.post("/api/collect", json={"brand": "Brand", "product_name": "Fan"}).json()["id"]

    response = client.get("/api/products", params={"id": record_id})

    assert response.status_code == 200
    assert response.json()["data"]["brand"] == "Brand"


def test_products_lookup_errors(client):
    assert client.get("/api/products").status_code == 400
    assert client.get("/api/products", params={"id": "abc"}).status_code == 400
    assert client.get("/api/products", params={"id": 999}).status_code == 404
