from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_shop, get_shopify_client, require_admin_token
from app.clients.shopify import ShopifyAdminClient
from app.core.config import get_settings
from app.core.errors import ApiError, AppHTTPException
from app.db.session import get_db
from app.models import Shop
from app.schemas.billing import (
    MessageResponse,
    SubscribeRequest,
    SubscribeResponse,
    SubscriptionOut,
    SubscriptionStatusOut,
)
from app.services.billing import STATUS_ACTIVE, SubscriptionReconciler
from app.services.subscription_store import SubscriptionStore

router = APIRouter(prefix="/v1/billing", tags=["billing"], dependencies=[Depends(require_admin_token)])
# Reached from the remote approval redirect; only the charge id it carries is trusted.
confirm_router = APIRouter(prefix="/v1/billing", tags=["billing"])


def _reconciler(db: Session, client: ShopifyAdminClient | None = None) -> SubscriptionReconciler:
    return SubscriptionReconciler(SubscriptionStore(db), client=client)


def _status_out(reconciler: SubscriptionReconciler, shop: str) -> SubscriptionStatusOut:
    record = reconciler.get(shop)
    if record is None:
        return SubscriptionStatusOut(subscription=None, is_active=False)
    return SubscriptionStatusOut(
        subscription=SubscriptionOut.model_validate(record),
        is_active=record.status == STATUS_ACTIVE,
    )


@router.get("/subscription", response_model=SubscriptionStatusOut)
def subscription_status(
    sync: bool = Query(default=True),
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> SubscriptionStatusOut:
    reconciler = _reconciler(db, client)
    if sync:
        reconciler.sync(shop.domain)
    return _status_out(reconciler, shop.domain)


@router.post("/subscribe", response_model=SubscribeResponse, response_model_exclude_none=True)
def subscribe(
    payload: SubscribeRequest,
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> SubscribeResponse:
    settings = get_settings()
    result = _reconciler(db, client).request_subscription(
        shop=shop.domain,
        plan_name=payload.plan_name or settings.default_plan_name,
        price=payload.price or settings.default_plan_price,
        currency=(payload.currency or settings.default_currency).upper(),
        return_url=f"{settings.app_url.rstrip('/')}/v1/billing/confirm?shop={shop.domain}",
        trial_days=payload.trial_days,
        test=settings.billing_test_charges,
    )
    subscription = SubscriptionOut.model_validate(result.subscription)
    if result.confirmation_url:
        return SubscribeResponse(confirmation_url=result.confirmation_url, subscription=subscription)
    return SubscribeResponse(message="Subscription is already active", subscription=subscription)


@router.post("/cancel", response_model=MessageResponse)
def cancel(
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> MessageResponse:
    record = _reconciler(db, client).cancel(shop.domain)
    return MessageResponse(
        message="Subscription cancelled successfully",
        subscription=SubscriptionOut.model_validate(record),
    )


@router.post("/sync", response_model=SubscriptionStatusOut)
def sync_subscription(
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> SubscriptionStatusOut:
    reconciler = _reconciler(db, client)
    reconciler.sync(shop.domain)
    return _status_out(reconciler, shop.domain)


def _charge_matches(subscription_id: str | None, charge_id: str | None) -> bool:
    if not subscription_id or not charge_id:
        return False
    charge_id = charge_id.strip()
    return subscription_id == charge_id or subscription_id.rsplit("/", 1)[-1] == charge_id


@confirm_router.get("/confirm", response_model=MessageResponse, response_model_exclude_none=True)
def confirm(
    charge_id: str | None = Query(default=None),
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> MessageResponse:
    reconciler = _reconciler(db, client)
    existing = reconciler.get(shop.domain)
    if existing is None or not _charge_matches(existing.subscription_id, charge_id):
        raise AppHTTPException(status_code=403, error=ApiError(code="invalid_charge", message="Unknown charge for this shop"))

    record = reconciler.sync(shop.domain)
    if record is not None and record.status == STATUS_ACTIVE:
        return MessageResponse(message="Subscription confirmed successfully")
    return MessageResponse(message="Subscription is not active yet")
