import httpx
import pytest

from app.core.errors import InvalidScopeError, RemoteQueryError
from app.services.catalog import (
    AllProducts,
    CatalogFetcher,
    CollectionScope,
    Item,
    TagScope,
    scope_from_request,
    tag_search_query,
)
from tests.conftest import product_node


def test_fetch_items_drains_every_page(shopify_client, fake_shopify):
    fake_shopify.product_pages = [
        [product_node("p1", [("v1", "10.00"), ("v2", "12.00")])],
        [product_node("p2", [("v3", "5.00")])],
        [product_node("p3", [("v4", "7.50")]), product_node("p4", [])],
    ]

    fetcher = CatalogFetcher(shopify_client)
    items = fetcher.fetch_items(AllProducts())

    assert items == [
        Item(item_id="v1", parent_id="p1", current_price="10.00"),
        Item(item_id="v2", parent_id="p1", current_price="12.00"),
        Item(item_id="v3", parent_id="p2", current_price="5.00"),
        Item(item_id="v4", parent_id="p3", current_price="7.50"),
    ]
    listing_calls = fake_shopify.operations("ListProducts")
    assert len(listing_calls) == 3
    assert fetcher.pages_fetched == 3
    assert [call["cursor"] for call in listing_calls] == [None, "cursor-1", "cursor-2"]
    assert listing_calls[0]["first"] == 250
    assert listing_calls[0]["variantsFirst"] == 100


def test_collection_scope_uses_collection_listing(shopify_client, fake_shopify):
    fake_shopify.collection_pages = [[product_node("p9", [("v9", "3.00")])]]

    items = CatalogFetcher(shopify_client).fetch_items(CollectionScope(collection_id="gid://shopify/Collection/7"))

    assert [item.item_id for item in items] == ["v9"]
    calls = fake_shopify.operations("ListCollectionProducts")
    assert len(calls) == 1
    assert calls[0]["collectionId"] == "gid://shopify/Collection/7"


def test_tag_scope_searches_by_tag(shopify_client, fake_shopify):
    fake_shopify.product_pages = [[product_node("p1", [("v1", "1.00")])]]

    CatalogFetcher(shopify_client).fetch_items(TagScope(tag="summer sale"))

    assert fake_shopify.operations("ListProducts")[0]["query"] == 'tag:"summer sale"'


def test_tag_search_query_escapes_quotes():
    assert tag_search_query('say "hi"') == 'tag:"say \\"hi\\""'


@pytest.mark.parametrize("scope", [CollectionScope(collection_id=""), TagScope(tag="   ")])
def test_empty_scope_value_fails_before_remote_call(shopify_client, fake_shopify, scope):
    with pytest.raises(InvalidScopeError):
        CatalogFetcher(shopify_client).fetch_items(scope)
    assert fake_shopify.calls == []


def test_scope_from_request_rejects_unknown_kind():
    with pytest.raises(InvalidScopeError):
        scope_from_request("vendor")
    assert scope_from_request("tag", tag=" sale ") == TagScope(tag="sale")
    assert scope_from_request("collection", collection_id="gid://shopify/Collection/1").value == "gid://shopify/Collection/1"


def test_first_page_failure_propagates(shopify_client, fake_shopify):
    fake_shopify.product_pages = [[product_node("p1", [("v1", "1.00")])]]
    fake_shopify.failing_pages = {0}

    with pytest.raises(RemoteQueryError):
        CatalogFetcher(shopify_client).fetch_items(AllProducts())


def test_later_page_failure_keeps_partial_results(shopify_client, fake_shopify):
    fake_shopify.product_pages = [
        [product_node("p1", [("v1", "1.00")])],
        [product_node("p2", [("v2", "2.00")])],
    ]
    fake_shopify.failing_pages = {1}

    fetcher = CatalogFetcher(shopify_client)
    items = fetcher.fetch_items(AllProducts())

    assert [item.item_id for item in items] == ["v1"]
    assert fetcher.pages_fetched == 2


def test_missing_collection_is_treated_as_end_of_stream(shopify_client, fake_shopify, monkeypatch):
    def absent_collection(variables):
        return httpx.Response(200, json={"data": {"collection": None}})

    monkeypatch.setattr(fake_shopify, "_op_ListCollectionProducts", absent_collection)

    items = CatalogFetcher(shopify_client).fetch_items(CollectionScope(collection_id="gid://shopify/Collection/404"))

    assert items == []
    assert len(fake_shopify.operations("ListCollectionProducts")) == 1


def test_reused_fetcher_still_raises_on_first_page_failure(shopify_client, fake_shopify):
    fake_shopify.product_pages = [
        [product_node("p1", [("v1", "1.00")])],
        [product_node("p2", [("v2", "2.00")])],
    ]
    fetcher = CatalogFetcher(shopify_client)
    assert len(fetcher.fetch_items(AllProducts())) == 2
    assert fetcher.pages_fetched == 2

    fake_shopify.failing_pages = {0}
    with pytest.raises(RemoteQueryError):
        fetcher.fetch_items(AllProducts())
    assert fetcher.pages_fetched == 1
