from collections.abc import Iterator

from fastapi import Depends, Header, Query
from sqlalchemy.orm import Session

from app.clients.shopify import ShopifyAdminClient
from app.core.config import get_settings
from app.core.errors import ApiError, AppHTTPException
from app.db.session import get_db
from app.models import Shop
from app.services.admin import get_installed_shop


def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    settings = get_settings()
    if x_admin_token != settings.admin_token:
        raise AppHTTPException(status_code=401, error=ApiError(code="unauthorized", message="Invalid admin token"))


def get_shop(
    x_shopify_shop_domain: str | None = Header(default=None),
    shop: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> Shop:
    return get_installed_shop(db, x_shopify_shop_domain or shop)


def get_shopify_client(shop: Shop = Depends(get_shop)) -> Iterator[ShopifyAdminClient]:
    settings = get_settings()
    client = ShopifyAdminClient(
        shop_domain=shop.domain,
        access_token=shop.access_token,
        api_version=settings.shopify_api_version,
        timeout_seconds=settings.shopify_timeout_seconds,
        max_retries=settings.shopify_max_retries,
        retry_backoff_seconds=settings.shopify_retry_backoff_seconds,
    )
    try:
        yield client
    finally:
        client.close()
