from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

from app.clients.shopify import ProductPage, ShopifyAdminClient
from app.core.errors import InvalidScopeError, RemoteQueryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllProducts:
    kind = "all"

    @property
    def value(self) -> str | None:
        return None


@dataclass(frozen=True)
class CollectionScope:
    collection_id: str
    kind = "collection"

    @property
    def value(self) -> str | None:
        return self.collection_id


@dataclass(frozen=True)
class TagScope:
    tag: str
    kind = "tag"

    @property
    def value(self) -> str | None:
        return self.tag


Scope = Union[AllProducts, CollectionScope, TagScope]


@dataclass(frozen=True)
class Item:
    item_id: str
    parent_id: str
    current_price: str | None


def scope_from_request(kind: str, collection_id: str | None = None, tag: str | None = None) -> Scope:
    if kind == "all":
        return AllProducts()
    if kind == "collection":
        return CollectionScope(collection_id=(collection_id or "").strip())
    if kind == "tag":
        return TagScope(tag=(tag or "").strip())
    raise InvalidScopeError("Invalid scope or missing parameters", details={"scope": kind})


def validate_scope(scope: Scope) -> None:
    if isinstance(scope, AllProducts):
        return
    if isinstance(scope, CollectionScope):
        if not scope.collection_id.strip():
            raise InvalidScopeError("A collection must be selected", details={"scope": "collection"})
        return
    if isinstance(scope, TagScope):
        if not scope.tag.strip():
            raise InvalidScopeError("A tag must be selected", details={"scope": "tag"})
        return
    raise InvalidScopeError("Invalid scope or missing parameters")


def tag_search_query(tag: str) -> str:
    escaped = tag.strip().replace("\\", "\\\\").replace('"', '\\"')
    return f'tag:"{escaped}"'


class CatalogFetcher:
    def __init__(self, client: ShopifyAdminClient) -> None:
        self.client = client
        self.pages_fetched = 0

    def fetch_items(self, scope: Scope) -> list[Item]:
        validate_scope(scope)
        items: list[Item] = []
        for page_items in self.iter_pages(scope):
            items.extend(page_items)
        logger.info(
            "Fetched %s items across %s pages for scope=%s value=%s",
            len(items),
            self.pages_fetched,
            scope.kind,
            scope.value,
        )
        return items

    def iter_pages(self, scope: Scope) -> Iterator[list[Item]]:
        validate_scope(scope)
        self.pages_fetched = 0
        pages = 0
        cursor: str | None = None
        has_next_page = True
        while has_next_page:
            try:
                page = self._fetch_page(scope, cursor)
            except RemoteQueryError as exc:
                if pages == 0:
                    raise
                logger.warning(
                    "Stopping pagination after %s pages for scope=%s: %s",
                    pages,
                    scope.kind,
                    exc,
                )
                return
            finally:
                pages += 1
                self.pages_fetched = pages

            yield [
                Item(item_id=variant.id, parent_id=product.id, current_price=variant.price)
                for product in page.products
                for variant in product.variants
            ]
            has_next_page = page.has_next_page
            cursor = page.end_cursor

    def _fetch_page(self, scope: Scope, cursor: str | None) -> ProductPage:
        if isinstance(scope, CollectionScope):
            return self.client.list_products_page(cursor=cursor, collection_id=scope.collection_id)
        if isinstance(scope, TagScope):
            return self.client.list_products_page(cursor=cursor, search_query=tag_search_query(scope.tag))
        return self.client.list_products_page(cursor=cursor)
