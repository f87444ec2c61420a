import os

os.environ.setdefault("PRICE_EDITOR_CACHE_ENABLED", "false")
os.environ.setdefault("PRICE_EDITOR_DATABASE_URL", "sqlite:///:memory:")

import json
import re
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_shopify_client
from app.clients.shopify import ShopifyAdminClient
from app.core.cache import cache_client
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import Shop, Subscription

TEST_DB_URL = "sqlite:///:memory:"
SHOP_DOMAIN = "demo-shop.myshopify.com"
ADMIN_HEADERS = {"X-Admin-Token": "dev-admin-token", "X-Shopify-Shop-Domain": SHOP_DOMAIN}

OPERATION_RE = re.compile(r"^\s*(?:query|mutation)\s+(\w+)")


def product_node(product_id: str, variants: list[tuple[str, Any]]) -> dict[str, Any]:
    return {
        "id": product_id,
        "variants": {"nodes": [{"id": variant_id, "price": price} for variant_id, price in variants]},
    }


class FakeShopify:
    """Scripted Admin API keyed by GraphQL operation name."""

    def __init__(self) -> None:
        self.product_pages: list[list[dict[str, Any]]] = []
        self.collection_pages: list[list[dict[str, Any]]] = []
        self.failing_pages: set[int] = set()
        self.bulk_update_errors: dict[str, list[dict[str, Any]]] = {}
        self.bulk_update_failures: set[str] = set()
        self.create_response: dict[str, Any] | None = None
        self.cancel_errors: list[dict[str, Any]] = []
        self.remote_subscriptions: dict[str, dict[str, Any]] = {}
        self.collections: list[dict[str, Any]] = []
        self.tag_nodes: list[dict[str, Any]] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def operations(self, name: str) -> list[dict[str, Any]]:
        return [variables for operation, variables in self.calls if operation == name]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        match = OPERATION_RE.match(body["query"])
        operation = match.group(1) if match else "anonymous"
        variables = body.get("variables") or {}
        self.calls.append((operation, variables))
        handler = getattr(self, f"_op_{operation}")
        return handler(variables)

    def _page_response(self, pages: list[list[dict[str, Any]]], variables: dict[str, Any]) -> dict[str, Any] | None:
        cursor = variables.get("cursor")
        index = 0 if cursor is None else int(str(cursor).split("-")[1])
        if index in self.failing_pages:
            return None
        if index >= len(pages):
            return {"pageInfo": {"hasNextPage": False, "endCursor": None}, "nodes": []}
        has_next = index + 1 < len(pages)
        return {
            "pageInfo": {"hasNextPage": has_next, "endCursor": f"cursor-{index + 1}" if has_next else None},
            "nodes": pages[index],
        }

    def _op_ListProducts(self, variables: dict[str, Any]) -> httpx.Response:
        connection = self._page_response(self.product_pages, variables)
        if connection is None:
            return httpx.Response(500, json={"errors": [{"message": "Internal error"}]})
        return httpx.Response(200, json={"data": {"products": connection}})

    def _op_ListCollectionProducts(self, variables: dict[str, Any]) -> httpx.Response:
        connection = self._page_response(self.collection_pages, variables)
        if connection is None:
            return httpx.Response(500, json={"errors": [{"message": "Internal error"}]})
        return httpx.Response(200, json={"data": {"collection": {"products": connection}}})

    def _op_UpdateProductVariants(self, variables: dict[str, Any]) -> httpx.Response:
        product_id = variables["productId"]
        if product_id in self.bulk_update_failures:
            return httpx.Response(400, json={"errors": [{"message": "Bad request"}]})
        user_errors = self.bulk_update_errors.get(product_id, [])
        updated = [] if user_errors else [{"id": item["id"], "price": item["price"]} for item in variables["variants"]]
        return httpx.Response(
            200,
            json={"data": {"productVariantsBulkUpdate": {"productVariants": updated, "userErrors": user_errors}}},
        )

    def _op_CreateSubscription(self, variables: dict[str, Any]) -> httpx.Response:
        payload = self.create_response or {
            "appSubscription": {
                "id": "gid://shopify/AppSubscription/1",
                "name": variables["name"],
                "status": "PENDING",
                "currentPeriodEnd": None,
            },
            "confirmationUrl": f"https://{SHOP_DOMAIN}/admin/charges/1/confirm",
            "userErrors": [],
        }
        return httpx.Response(200, json={"data": {"appSubscriptionCreate": payload}})

    def _op_CancelSubscription(self, variables: dict[str, Any]) -> httpx.Response:
        subscription = None if self.cancel_errors else {"id": variables["id"], "name": "Basic Plan", "status": "CANCELLED"}
        return httpx.Response(
            200,
            json={"data": {"appSubscriptionCancel": {"appSubscription": subscription, "userErrors": self.cancel_errors}}},
        )

    def _op_GetSubscription(self, variables: dict[str, Any]) -> httpx.Response:
        return httpx.Response(200, json={"data": {"node": self.remote_subscriptions.get(variables["id"])}})

    def _op_ListCollections(self, variables: dict[str, Any]) -> httpx.Response:
        return httpx.Response(200, json={"data": {"collections": {"nodes": self.collections}}})

    def _op_ListProductTags(self, variables: dict[str, Any]) -> httpx.Response:
        return httpx.Response(200, json={"data": {"products": {"nodes": self.tag_nodes}}})


@pytest.fixture(autouse=True)
def clear_cache() -> None:
    cache_client._fallback.clear()
    yield
    cache_client._fallback.clear()


@pytest.fixture()
def session() -> Session:
    engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    db.add(Shop(domain=SHOP_DOMAIN, access_token="shpat_test", scope="read_products,write_products"))
    db.commit()

    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture()
def shopify_client(fake_shopify: FakeShopify) -> ShopifyAdminClient:
    client = ShopifyAdminClient(
        shop_domain=SHOP_DOMAIN,
        access_token="shpat_test",
        retry_backoff_seconds=0,
        transport=httpx.MockTransport(fake_shopify.handler),
    )
    try:
        yield client
    finally:
        client.close()


@pytest.fixture()
def active_subscription(session: Session) -> Subscription:
    record = Subscription(
        shop=SHOP_DOMAIN,
        subscription_id="gid://shopify/AppSubscription/1",
        status="ACTIVE",
        plan_name="Basic",
        price="9.99",
        currency="USD",
    )
    session.add(record)
    session.commit()
    return record


@pytest.fixture()
def client(session: Session, shopify_client: ShopifyAdminClient) -> TestClient:
    def _get_db() -> Session:
        return session

    def _get_shopify_client() -> ShopifyAdminClient:
        return shopify_client

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_shopify_client] = _get_shopify_client
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
