from __future__ import annotations

from datetime import timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ShopNotInstalledError
from app.models import PriceAdjustmentRun, Shop
from app.schemas.admin import AdjustmentRunOut, ShopInstallRequest, ShopOut


def normalize_shop_domain(domain: str) -> str:
    return domain.strip().lower().removeprefix("https://").removeprefix("http://").rstrip("/")


def register_shop(db: Session, payload: ShopInstallRequest) -> ShopOut:
    domain = normalize_shop_domain(payload.domain)
    shop = db.execute(select(Shop).where(Shop.domain == domain)).scalar_one_or_none()
    if shop:
        shop.access_token = payload.access_token
        shop.scope = payload.scope
    else:
        shop = Shop(domain=domain, access_token=payload.access_token, scope=payload.scope)
        db.add(shop)

    db.commit()
    db.refresh(shop)
    return ShopOut(id=shop.id, domain=shop.domain, scope=shop.scope, installed_at=shop.installed_at)


def get_installed_shop(db: Session, domain: str | None) -> Shop:
    if not domain:
        raise ShopNotInstalledError("Missing shop domain")
    normalized = normalize_shop_domain(domain)
    shop = db.execute(select(Shop).where(Shop.domain == normalized)).scalar_one_or_none()
    if not shop:
        raise ShopNotInstalledError("Shop is not installed", details={"shop": normalized})
    return shop


def list_adjustment_runs(db: Session, shop: str | None = None, limit: int = 50) -> list[AdjustmentRunOut]:
    query = select(PriceAdjustmentRun).order_by(PriceAdjustmentRun.started_at.desc()).limit(limit)
    if shop:
        query = query.where(PriceAdjustmentRun.shop == shop)
    rows = db.execute(query).scalars().all()

    outputs: list[AdjustmentRunOut] = []
    for run in rows:
        started = run.started_at.astimezone(timezone.utc).isoformat() if run.started_at else ""
        finished = run.finished_at.astimezone(timezone.utc).isoformat() if run.finished_at else None
        outputs.append(
            AdjustmentRunOut(
                id=run.id,
                shop=run.shop,
                scope=run.scope,
                scope_value=run.scope_value,
                percentage=float(run.percentage),
                direction=run.direction,
                status=run.status,
                items_total=run.items_total,
                products_total=run.products_total,
                variants_updated=run.variants_updated,
                errors_count=run.errors_count,
                error_summary=run.error_summary,
                started_at=started,
                finished_at=finished,
            )
        )
    return outputs
