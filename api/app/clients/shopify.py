from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.errors import RemoteQueryError


RETRYABLE_HTTP_STATUSES = {408, 425, 429, 500, 502, 503, 504}
PRODUCTS_PAGE_SIZE = 250
VARIANTS_PAGE_SIZE = 100
COLLECTIONS_PAGE_SIZE = 250
TAG_SAMPLE_SIZE = 250

logger = logging.getLogger(__name__)


PRODUCTS_QUERY = """
query ListProducts($first: Int!, $variantsFirst: Int!, $cursor: String, $query: String) {
  products(first: $first, after: $cursor, query: $query) {
    pageInfo {
      hasNextPage
      endCursor
    }
    nodes {
      id
      variants(first: $variantsFirst) {
        nodes {
          id
          price
        }
      }
    }
  }
}
"""

COLLECTION_PRODUCTS_QUERY = """
query ListCollectionProducts($collectionId: ID!, $first: Int!, $variantsFirst: Int!, $cursor: String) {
  collection(id: $collectionId) {
    products(first: $first, after: $cursor) {
      pageInfo {
        hasNextPage
        endCursor
      }
      nodes {
        id
        variants(first: $variantsFirst) {
          nodes {
            id
            price
          }
        }
      }
    }
  }
}
"""

BULK_UPDATE_VARIANTS_MUTATION = """
mutation UpdateProductVariants($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants {
      id
      price
    }
    userErrors {
      field
      message
    }
  }
}
"""

CREATE_SUBSCRIPTION_MUTATION = """
mutation CreateSubscription(
  $name: String!
  $returnUrl: URL!
  $lineItems: [AppSubscriptionLineItemInput!]!
  $trialDays: Int
  $test: Boolean
) {
  appSubscriptionCreate(name: $name, returnUrl: $returnUrl, lineItems: $lineItems, trialDays: $trialDays, test: $test) {
    appSubscription {
      id
      name
      status
      currentPeriodEnd
    }
    confirmationUrl
    userErrors {
      field
      message
    }
  }
}
"""

CANCEL_SUBSCRIPTION_MUTATION = """
mutation CancelSubscription($id: ID!) {
  appSubscriptionCancel(id: $id) {
    appSubscription {
      id
      name
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

GET_SUBSCRIPTION_QUERY = """
query GetSubscription($id: ID!) {
  node(id: $id) {
    ... on AppSubscription {
      id
      name
      status
      currentPeriodEnd
      lineItems {
        plan {
          pricingDetails {
            ... on AppRecurringPricing {
              price {
                amount
                currencyCode
              }
              interval
            }
          }
        }
      }
    }
  }
}
"""

COLLECTIONS_QUERY = """
query ListCollections($first: Int!) {
  collections(first: $first) {
    nodes {
      id
      title
    }
  }
}
"""

PRODUCT_TAGS_QUERY = """
query ListProductTags($first: Int!) {
  products(first: $first) {
    nodes {
      tags
    }
  }
}
"""


@dataclass
class VariantNode:
    id: str
    price: str | None


@dataclass
class ProductNode:
    id: str
    variants: list[VariantNode] = field(default_factory=list)


@dataclass
class ProductPage:
    products: list[ProductNode]
    has_next_page: bool = False
    end_cursor: str | None = None

    @classmethod
    def empty(cls) -> ProductPage:
        return cls(products=[])


@dataclass
class UserError:
    message: str
    field: list[str] | None = None


@dataclass
class BulkUpdateResult:
    updated: list[VariantNode]
    user_errors: list[UserError]


@dataclass
class RemoteSubscription:
    id: str
    status: str
    name: str | None = None
    current_period_end: str | None = None
    price: str | None = None
    currency: str | None = None


@dataclass
class SubscriptionCreateResult:
    subscription: RemoteSubscription | None
    confirmation_url: str | None
    user_errors: list[UserError]


@dataclass
class SubscriptionCancelResult:
    subscription: RemoteSubscription | None
    user_errors: list[UserError]


@dataclass
class CollectionSummary:
    id: str
    title: str


def _dig(data: Any, *path: str | int) -> Any:
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
        if current is None:
            return None
    return current


def _graphql_errors(body: dict[str, Any]) -> list[UserError]:
    errors = body.get("errors")
    if not isinstance(errors, list):
        return []
    return [UserError(message=str(error.get("message") or error)) for error in errors if isinstance(error, dict)]


def _user_errors(payload: Any) -> list[UserError]:
    raw = _dig(payload, "userErrors")
    if not isinstance(raw, list):
        return []
    errors: list[UserError] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        field_path = item.get("field")
        errors.append(
            UserError(
                message=str(item.get("message") or "Unknown error"),
                field=[str(part) for part in field_path] if isinstance(field_path, list) else None,
            )
        )
    return errors


def _is_throttled(body: dict[str, Any]) -> bool:
    errors = body.get("errors")
    if not isinstance(errors, list):
        return False
    return any(_dig(error, "extensions", "code") == "THROTTLED" for error in errors)


def _parse_variant(node: Any) -> VariantNode | None:
    if not isinstance(node, dict) or not node.get("id"):
        return None
    price = node.get("price")
    return VariantNode(id=str(node["id"]), price=str(price) if price is not None else None)


def _parse_product_page(connection: Any) -> ProductPage:
    if not isinstance(connection, dict):
        return ProductPage.empty()
    nodes = connection.get("nodes")
    if not isinstance(nodes, list):
        return ProductPage.empty()

    products: list[ProductNode] = []
    for node in nodes:
        if not isinstance(node, dict) or not node.get("id"):
            continue
        variant_nodes = _dig(node, "variants", "nodes")
        variants = [parsed for parsed in (_parse_variant(item) for item in variant_nodes or []) if parsed]
        products.append(ProductNode(id=str(node["id"]), variants=variants))

    page_info = connection.get("pageInfo") if isinstance(connection.get("pageInfo"), dict) else {}
    end_cursor = page_info.get("endCursor")
    # A page that claims more results without a cursor cannot be continued.
    has_next_page = bool(page_info.get("hasNextPage")) and bool(end_cursor)
    return ProductPage(products=products, has_next_page=has_next_page, end_cursor=end_cursor)


def _parse_subscription(node: Any) -> RemoteSubscription | None:
    if not isinstance(node, dict) or not node.get("id"):
        return None
    amount = _dig(node, "lineItems", 0, "plan", "pricingDetails", "price", "amount")
    currency = _dig(node, "lineItems", 0, "plan", "pricingDetails", "price", "currencyCode")
    return RemoteSubscription(
        id=str(node["id"]),
        status=str(node.get("status") or "PENDING").upper(),
        name=node.get("name"),
        current_period_end=node.get("currentPeriodEnd"),
        price=str(amount) if amount is not None else None,
        currency=currency,
    )


class ShopifyAdminClient:
    """Thin GraphQL client for one shop's Admin API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str = "2025-10",
        timeout_seconds: float = 20.0,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.shop_domain = shop_domain.removeprefix("https://").removeprefix("http://").rstrip("/")
        self.api_version = api_version
        self.max_retries = max(0, max_retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.endpoint = f"https://{self.shop_domain}/admin/api/{api_version}/graphql.json"
        self.client = httpx.Client(
            timeout=timeout_seconds,
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            transport=transport,
        )

    def __enter__(self) -> ShopifyAdminClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.client.close()

    def execute(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = {"query": query, "variables": variables or {}}
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self.client.post(self.endpoint, json=payload)
                if response.status_code in RETRYABLE_HTTP_STATUSES:
                    raise httpx.HTTPStatusError(
                        f"Retryable status {response.status_code} from {self.shop_domain}",
                        request=response.request,
                        response=response,
                    )
                response.raise_for_status()
                body = response.json()
            except (httpx.TimeoutException, httpx.NetworkError, httpx.HTTPStatusError) as exc:
                if isinstance(exc, httpx.HTTPStatusError):
                    status = exc.response.status_code
                    if status not in RETRYABLE_HTTP_STATUSES:
                        raise RemoteQueryError(
                            f"Admin API returned HTTP {status}",
                            details={"shop": self.shop_domain, "status": status},
                        ) from exc

                if attempt >= attempts - 1:
                    raise RemoteQueryError(
                        f"Admin API request failed after {attempts} attempts: {exc}",
                        details={"shop": self.shop_domain},
                    ) from exc
                self._backoff(attempt, str(exc))
                continue
            except ValueError as exc:
                raise RemoteQueryError("Admin API returned a non-JSON body", details={"shop": self.shop_domain}) from exc

            if not isinstance(body, dict):
                raise RemoteQueryError("Admin API returned an unexpected payload", details={"shop": self.shop_domain})
            if _is_throttled(body) and attempt < attempts - 1:
                self._backoff(attempt, "throttled")
                continue
            return body

        raise RemoteQueryError("Admin API request was not attempted", details={"shop": self.shop_domain})

    def _backoff(self, attempt: int, reason: str) -> None:
        backoff = self.retry_backoff_seconds * (2**attempt)
        logger.debug(
            "Retrying Admin API call for %s (attempt %s/%s, reason=%s, sleep=%.2fs)",
            self.shop_domain,
            attempt + 1,
            self.max_retries + 1,
            reason,
            backoff,
        )
        if backoff > 0:
            time.sleep(backoff)

    def list_products_page(
        self,
        cursor: str | None = None,
        collection_id: str | None = None,
        search_query: str | None = None,
    ) -> ProductPage:
        variables: dict[str, Any] = {
            "first": PRODUCTS_PAGE_SIZE,
            "variantsFirst": VARIANTS_PAGE_SIZE,
            "cursor": cursor,
        }
        if collection_id:
            variables["collectionId"] = collection_id
            body = self.execute(COLLECTION_PRODUCTS_QUERY, variables)
            connection = _dig(body, "data", "collection", "products")
        else:
            variables["query"] = search_query
            body = self.execute(PRODUCTS_QUERY, variables)
            connection = _dig(body, "data", "products")

        if connection is None:
            logger.warning(
                "Product listing for %s returned no connection (errors=%s)",
                self.shop_domain,
                [error.message for error in _graphql_errors(body)],
            )
        return _parse_product_page(connection)

    def bulk_update_variant_prices(self, product_id: str, variants: list[dict[str, str]]) -> BulkUpdateResult:
        body = self.execute(BULK_UPDATE_VARIANTS_MUTATION, {"productId": product_id, "variants": variants})
        payload = _dig(body, "data", "productVariantsBulkUpdate")
        if payload is None:
            errors = _graphql_errors(body) or [UserError(message="productVariantsBulkUpdate returned no data")]
            return BulkUpdateResult(updated=[], user_errors=errors)

        updated_nodes = payload.get("productVariants") if isinstance(payload.get("productVariants"), list) else []
        updated = [parsed for parsed in (_parse_variant(node) for node in updated_nodes) if parsed]
        return BulkUpdateResult(updated=updated, user_errors=_user_errors(payload))

    def create_recurring_charge(
        self,
        name: str,
        price: str,
        currency: str,
        return_url: str,
        trial_days: int | None = None,
        test: bool = False,
    ) -> SubscriptionCreateResult:
        variables: dict[str, Any] = {
            "name": name,
            "returnUrl": return_url,
            "lineItems": [
                {
                    "plan": {
                        "appRecurringPricingDetails": {
                            "price": {"amount": price, "currencyCode": currency.upper()},
                            "interval": "EVERY_30_DAYS",
                        }
                    }
                }
            ],
            "trialDays": trial_days or None,
            "test": test or None,
        }
        body = self.execute(CREATE_SUBSCRIPTION_MUTATION, variables)
        payload = _dig(body, "data", "appSubscriptionCreate")
        if payload is None:
            errors = _graphql_errors(body) or [UserError(message="appSubscriptionCreate returned no data")]
            return SubscriptionCreateResult(subscription=None, confirmation_url=None, user_errors=errors)

        return SubscriptionCreateResult(
            subscription=_parse_subscription(payload.get("appSubscription")),
            confirmation_url=payload.get("confirmationUrl"),
            user_errors=_user_errors(payload),
        )

    def cancel_recurring_charge(self, subscription_id: str) -> SubscriptionCancelResult:
        body = self.execute(CANCEL_SUBSCRIPTION_MUTATION, {"id": subscription_id})
        payload = _dig(body, "data", "appSubscriptionCancel")
        if payload is None:
            errors = _graphql_errors(body) or [UserError(message="appSubscriptionCancel returned no data")]
            return SubscriptionCancelResult(subscription=None, user_errors=errors)

        return SubscriptionCancelResult(
            subscription=_parse_subscription(payload.get("appSubscription")),
            user_errors=_user_errors(payload),
        )

    def get_recurring_charge(self, subscription_id: str) -> RemoteSubscription | None:
        body = self.execute(GET_SUBSCRIPTION_QUERY, {"id": subscription_id})
        return _parse_subscription(_dig(body, "data", "node"))

    def list_collections(self) -> list[CollectionSummary]:
        body = self.execute(COLLECTIONS_QUERY, {"first": COLLECTIONS_PAGE_SIZE})
        nodes = _dig(body, "data", "collections", "nodes") or []
        return [
            CollectionSummary(id=str(node["id"]), title=str(node.get("title") or ""))
            for node in nodes
            if isinstance(node, dict) and node.get("id")
        ]

    def list_product_tags(self) -> list[str]:
        body = self.execute(PRODUCT_TAGS_QUERY, {"first": TAG_SAMPLE_SIZE})
        nodes = _dig(body, "data", "products", "nodes") or []
        tags: set[str] = set()
        for node in nodes:
            for tag in _dig(node, "tags") or []:
                if isinstance(tag, str) and tag.strip():
                    tags.add(tag)
        return sorted(tags)
