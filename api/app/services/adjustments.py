from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.clients.shopify import ShopifyAdminClient
from app.core.cache import cache_client
from app.core.config import get_settings
from app.core.errors import AdjustmentInProgressError, PriceEditorError, SubscriptionRequiredError
from app.models import PriceAdjustmentRun
from app.schemas.prices import (
    CollectionOut,
    MutationErrorOut,
    PriceAdjustRequest,
    PriceAdjustResponse,
    PriceOptionsOut,
)
from app.services.billing import SubscriptionReconciler
from app.services.catalog import CatalogFetcher, scope_from_request, validate_scope
from app.services.pricing import Direction, PriceMutationPipeline, validate_percentage
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)


def _lock_key(shop: str) -> str:
    return f"adjustment-lock:{shop}"


def _options_cache_key(shop: str) -> str:
    settings = get_settings()
    return f"price-options:{shop}:v:{settings.cache_schema_version}"


def _summarize_errors(messages: list[str], limit: int = 5) -> str | None:
    if not messages:
        return None
    summary = "; ".join(messages[:limit])
    if len(messages) > limit:
        summary = f"{summary}; and {len(messages) - limit} more"
    return summary


def adjust_prices(
    db: Session,
    client: ShopifyAdminClient,
    shop: str,
    payload: PriceAdjustRequest,
) -> PriceAdjustResponse:
    settings = get_settings()
    direction = Direction(payload.direction)
    scope = scope_from_request(payload.scope, collection_id=payload.collection_id, tag=payload.tag)
    validate_scope(scope)
    percentage = validate_percentage(payload.percentage, direction)

    if not SubscriptionReconciler(SubscriptionStore(db)).is_active(shop):
        raise SubscriptionRequiredError("An active subscription is required", details={"shop": shop})

    lock_key = _lock_key(shop)
    token = cache_client.acquire_lock(lock_key, settings.adjustment_lock_ttl_seconds)
    if token is None:
        raise AdjustmentInProgressError("A price adjustment is already running for this shop", details={"shop": shop})

    run = PriceAdjustmentRun(
        shop=shop,
        scope=scope.kind,
        scope_value=scope.value,
        percentage=percentage,
        direction=direction.value,
        status="running",
    )
    try:
        db.add(run)
        db.commit()
        try:
            fetcher = CatalogFetcher(client)
            items = fetcher.fetch_items(scope)
            result = PriceMutationPipeline(client).apply(items, percentage, direction)
        except Exception as exc:
            run.status = "failed"
            run.error_summary = exc.message if isinstance(exc, PriceEditorError) else str(exc)
            raise
        else:
            run.status = result.status
            run.items_total = result.total_seen
            run.products_total = result.products_seen
            run.variants_updated = result.updated_count
            run.errors_count = len(result.errors)
            run.error_summary = _summarize_errors([error.message for error in result.errors])
        finally:
            run.finished_at = datetime.now(timezone.utc)
            db.commit()
    finally:
        cache_client.release_lock(lock_key, token)

    logger.info(
        "Run %s for %s finished with status=%s updated=%s seen=%s errors=%s",
        run.id,
        shop,
        run.status,
        result.updated_count,
        result.total_seen,
        len(result.errors),
    )
    return PriceAdjustResponse(
        run_id=run.id,
        status=result.status,
        updated_count=result.updated_count,
        total_seen=result.total_seen,
        products_seen=result.products_seen,
        errors=[
            MutationErrorOut(message=error.message, field=error.field, product_id=error.product_id)
            for error in result.errors
        ]
        or None,
    )


def get_price_options(db: Session, client: ShopifyAdminClient, shop: str) -> PriceOptionsOut:
    if not SubscriptionReconciler(SubscriptionStore(db)).is_active(shop):
        return PriceOptionsOut(requires_subscription=True)

    settings = get_settings()
    cache_key = _options_cache_key(shop)
    cached = cache_client.get_json(cache_key)
    if cached.hit and cached.value is not None:
        return PriceOptionsOut(**cached.value)

    options = PriceOptionsOut(
        collections=[CollectionOut(id=item.id, title=item.title) for item in client.list_collections()],
        tags=client.list_product_tags(),
    )
    cache_client.set_json(cache_key, options.model_dump(), ttl_seconds=settings.options_cache_ttl_seconds)
    return options
