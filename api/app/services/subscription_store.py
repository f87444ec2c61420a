from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Subscription
from app.models.entities import utc_now


class SubscriptionStore:
    """Record store for subscriptions keyed by shop domain."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_by_shop(self, shop: str) -> Subscription | None:
        return self.db.execute(select(Subscription).where(Subscription.shop == shop)).scalar_one_or_none()

    def find_by_remote_id_or_shop(self, remote_id: str | None, shop: str | None) -> Subscription | None:
        if remote_id:
            found = self.db.execute(
                select(Subscription).where(Subscription.subscription_id == remote_id).limit(1)
            ).scalar_one_or_none()
            if found:
                return found
        if shop:
            return self.find_by_shop(shop)
        return None

    def upsert(self, shop: str, **fields: Any) -> Subscription:
        existing = self.find_by_shop(shop)
        if existing is None:
            return self.create(shop=shop, **fields)
        return self._apply(existing, fields)

    def update(self, shop: str, **fields: Any) -> Subscription | None:
        existing = self.find_by_shop(shop)
        if existing is None:
            return None
        return self._apply(existing, fields)

    def update_record(self, record: Subscription, **fields: Any) -> Subscription:
        return self._apply(record, fields)

    def create(self, **fields: Any) -> Subscription:
        record = Subscription(**fields)
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def _apply(self, record: Subscription, fields: dict[str, Any]) -> Subscription:
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = fields.get("updated_at") or utc_now()
        self.db.commit()
        self.db.refresh(record)
        return record
