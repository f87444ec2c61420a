import base64
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Depends, Header, Request, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.config import get_settings
from app.core.errors import ApiError, AppHTTPException
from app.db.session import get_db
from app.services.admin import normalize_shop_domain
from app.services.billing import (
    TOPIC_SUBSCRIPTIONS_CREATE,
    TOPIC_SUBSCRIPTIONS_UPDATE,
    SubscriptionReconciler,
    SubscriptionWebhookEvent,
)
from app.services.subscription_store import SubscriptionStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_webhook_signature(body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    secret = get_settings().shopify_api_secret
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)


def _handle_subscription_webhook(
    topic: str,
    body: bytes,
    signature: str | None,
    shop_domain: str | None,
    db: Session,
) -> Response:
    if not verify_webhook_signature(body, signature):
        logger.warning("Rejected %s webhook with invalid signature", topic)
        raise AppHTTPException(status_code=401, error=ApiError(code="invalid_signature", message="Invalid webhook signature"))

    logger.info("Received %s webhook for %s", topic, shop_domain)
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        logger.warning("Ignoring %s webhook for %s: body is not JSON", topic, shop_domain)
        return Response(status_code=200)

    if not shop_domain or not isinstance(payload, dict) or not payload:
        logger.warning("Ignoring %s webhook: missing shop or payload", topic)
        return Response(status_code=200)

    event = SubscriptionWebhookEvent.from_payload(topic, normalize_shop_domain(shop_domain), payload)
    try:
        record = SubscriptionReconciler(SubscriptionStore(db)).on_webhook(event)
    except Exception:
        db.rollback()
        logger.exception("Failed to apply %s webhook for %s", topic, shop_domain)
        return Response(status_code=200)

    logger.info("Subscription for %s is now %s", record.shop, record.status)
    return Response(status_code=200)


@router.post("/app-subscriptions/create")
async def subscription_created(
    request: Request,
    x_shopify_hmac_sha256: str | None = Header(default=None),
    x_shopify_shop_domain: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Response:
    body = await request.body()
    return await run_in_threadpool(
        _handle_subscription_webhook,
        TOPIC_SUBSCRIPTIONS_CREATE,
        body,
        x_shopify_hmac_sha256,
        x_shopify_shop_domain,
        db,
    )


@router.post("/app-subscriptions/update")
async def subscription_updated(
    request: Request,
    x_shopify_hmac_sha256: str | None = Header(default=None),
    x_shopify_shop_domain: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Response:
    body = await request.body()
    return await run_in_threadpool(
        _handle_subscription_webhook,
        TOPIC_SUBSCRIPTIONS_UPDATE,
        body,
        x_shopify_hmac_sha256,
        x_shopify_shop_domain,
        db,
    )
