from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import require_admin_token
from app.db.session import get_db
from app.schemas.admin import AdjustmentRunOut, ShopInstallRequest, ShopOut
from app.services.admin import list_adjustment_runs, register_shop

router = APIRouter(prefix="/v1/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


@router.post("/shops", response_model=ShopOut)
def install_shop(payload: ShopInstallRequest, db: Session = Depends(get_db)) -> ShopOut:
    return register_shop(db, payload)


@router.get("/adjustment-runs", response_model=list[AdjustmentRunOut])
def adjustment_runs(
    limit: int = Query(default=50, ge=1, le=500),
    shop: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> list[AdjustmentRunOut]:
    return list_adjustment_runs(db, shop=shop, limit=limit)
