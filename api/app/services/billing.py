from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from app.clients.shopify import ShopifyAdminClient, UserError
from app.core.errors import NotSubscribedError, RemoteBillingError
from app.models import Subscription
from app.models.entities import utc_now
from app.services.subscription_store import SubscriptionStore

STATUS_PENDING = "PENDING"
STATUS_ACTIVE = "ACTIVE"
STATUS_CANCELLED = "CANCELLED"

TOPIC_SUBSCRIPTIONS_CREATE = "app_subscriptions/create"
TOPIC_SUBSCRIPTIONS_UPDATE = "app_subscriptions/update"

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionRequest:
    subscription: Subscription
    confirmation_url: str | None


@dataclass
class SubscriptionWebhookEvent:
    topic: str
    shop: str
    remote_id: str | None
    status: str | None
    plan_name: str | None = None
    price: str | None = None
    currency: str | None = None

    @classmethod
    def from_payload(cls, topic: str, shop: str, payload: dict[str, Any]) -> SubscriptionWebhookEvent:
        body = payload.get("app_subscription") if isinstance(payload.get("app_subscription"), dict) else payload

        remote_id = body.get("admin_graphql_api_id") or body.get("id")
        status = body.get("status")

        price_details = _first_line_item_price(body)
        price = price_details.get("amount") if price_details else body.get("price")
        currency = price_details.get("currencyCode") if price_details else body.get("currency")

        return cls(
            topic=topic,
            shop=shop,
            remote_id=str(remote_id) if remote_id else None,
            status=str(status).upper() if status else None,
            plan_name=body.get("name") or None,
            price=str(price) if price is not None else None,
            currency=str(currency).upper() if currency else None,
        )


def _first_line_item_price(body: dict[str, Any]) -> dict[str, Any] | None:
    line_items = body.get("lineItems") or body.get("line_items")
    if not isinstance(line_items, list) or not line_items or not isinstance(line_items[0], dict):
        return None
    plan = line_items[0].get("plan")
    if not isinstance(plan, dict):
        return None
    details = plan.get("appRecurringPricingDetails") or plan.get("pricingDetails")
    if not isinstance(details, dict) or not isinstance(details.get("price"), dict):
        return None
    return details["price"]


def _join_errors(errors: list[UserError]) -> str:
    return ", ".join(error.message for error in errors)


class SubscriptionReconciler:
    """Keeps the local subscription record in step with remote billing state."""

    def __init__(self, store: SubscriptionStore, client: ShopifyAdminClient | None = None) -> None:
        self.store = store
        self.client = client

    def _require_client(self) -> ShopifyAdminClient:
        if self.client is None:
            raise RuntimeError("This operation needs an Admin API client")
        return self.client

    def is_active(self, shop: str) -> bool:
        record = self.store.find_by_shop(shop)
        return record is not None and record.status == STATUS_ACTIVE

    def get(self, shop: str) -> Subscription | None:
        return self.store.find_by_shop(shop)

    def request_subscription(
        self,
        shop: str,
        plan_name: str,
        price: str,
        currency: str,
        return_url: str,
        trial_days: int | None = None,
        test: bool = False,
    ) -> SubscriptionRequest:
        existing = self.store.find_by_shop(shop)
        if existing is not None and existing.status == STATUS_ACTIVE:
            return SubscriptionRequest(subscription=existing, confirmation_url=None)

        result = self._require_client().create_recurring_charge(
            name=f"{plan_name} Plan",
            price=price,
            currency=currency,
            return_url=return_url,
            trial_days=trial_days,
            test=test,
        )
        if result.user_errors:
            raise RemoteBillingError(_join_errors(result.user_errors), details={"shop": shop})
        if result.subscription is None:
            raise RemoteBillingError("Subscription could not be created", details={"shop": shop})

        fields: dict[str, Any] = {
            "subscription_id": result.subscription.id,
            "status": result.subscription.status,
            "plan_name": plan_name,
            "price": price,
            "currency": currency.upper(),
            "cancelled_at": None,
        }
        if trial_days:
            fields["trial_ends_at"] = utc_now() + timedelta(days=trial_days)
        record = self.store.upsert(shop, **fields)
        logger.info("Requested %s subscription for %s (status=%s)", plan_name, shop, record.status)
        return SubscriptionRequest(subscription=record, confirmation_url=result.confirmation_url)

    def sync(self, shop: str) -> Subscription | None:
        record = self.store.find_by_shop(shop)
        if record is None:
            return None
        if not record.subscription_id:
            return record

        remote = self._require_client().get_recurring_charge(record.subscription_id)
        if remote is None:
            logger.warning("Subscription %s for %s not found remotely; keeping local state", record.subscription_id, shop)
            return record

        fields: dict[str, Any] = {"status": remote.status}
        if remote.status == STATUS_CANCELLED and record.cancelled_at is None:
            fields["cancelled_at"] = utc_now()
        return self.store.update_record(record, **fields)

    def cancel(self, shop: str) -> Subscription:
        record = self.store.find_by_shop(shop)
        if record is None:
            raise NotSubscribedError("No subscription found", details={"shop": shop})

        if record.subscription_id:
            result = self._require_client().cancel_recurring_charge(record.subscription_id)
            if result.user_errors:
                raise RemoteBillingError(_join_errors(result.user_errors), details={"shop": shop})

        now = utc_now()
        cancelled = self.store.update(shop, status=STATUS_CANCELLED, cancelled_at=now, updated_at=now)
        logger.info("Cancelled subscription for %s", shop)
        return cancelled

    def on_webhook(self, event: SubscriptionWebhookEvent) -> Subscription:
        record = self.store.find_by_remote_id_or_shop(event.remote_id, event.shop)
        now = utc_now()

        if record is not None:
            if event.status:
                status = event.status
            elif event.topic == TOPIC_SUBSCRIPTIONS_CREATE:
                status = STATUS_PENDING
            else:
                status = record.status
            fields: dict[str, Any] = {"status": status, "updated_at": now}
            if status == STATUS_CANCELLED:
                fields["cancelled_at"] = now
            if event.remote_id and not record.subscription_id:
                fields["subscription_id"] = event.remote_id
            return self.store.update_record(record, **fields)

        return self.store.create(
            shop=event.shop,
            subscription_id=event.remote_id,
            status=event.status or STATUS_PENDING,
            plan_name=event.plan_name or "Basic",
            price=event.price or "0",
            currency=event.currency or "USD",
            cancelled_at=now if event.status == STATUS_CANCELLED else None,
        )
