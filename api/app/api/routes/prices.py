from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_shop, get_shopify_client, require_admin_token
from app.clients.shopify import ShopifyAdminClient
from app.db.session import get_db
from app.models import Shop
from app.schemas.admin import AdjustmentRunOut
from app.schemas.prices import PriceAdjustRequest, PriceAdjustResponse, PriceOptionsOut
from app.services.adjustments import adjust_prices, get_price_options
from app.services.admin import list_adjustment_runs

router = APIRouter(prefix="/v1/prices", tags=["prices"], dependencies=[Depends(require_admin_token)])


@router.get("/options", response_model=PriceOptionsOut)
def price_options(
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> PriceOptionsOut:
    return get_price_options(db, client, shop.domain)


@router.post("/adjust", response_model=PriceAdjustResponse, response_model_exclude_none=True)
def adjust(
    payload: PriceAdjustRequest,
    shop: Shop = Depends(get_shop),
    client: ShopifyAdminClient = Depends(get_shopify_client),
    db: Session = Depends(get_db),
) -> PriceAdjustResponse:
    return adjust_prices(db, client, shop.domain, payload)


@router.get("/runs", response_model=list[AdjustmentRunOut])
def runs(
    limit: int = Query(default=20, ge=1, le=200),
    shop: Shop = Depends(get_shop),
    db: Session = Depends(get_db),
) -> list[AdjustmentRunOut]:
    return list_adjustment_runs(db, shop=shop.domain, limit=limit)
