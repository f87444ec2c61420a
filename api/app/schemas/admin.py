from datetime import datetime

from pydantic import BaseModel, Field


class ShopInstallRequest(BaseModel):
    domain: str = Field(min_length=3, max_length=255)
    access_token: str = Field(min_length=1)
    scope: str | None = None


class ShopOut(BaseModel):
    id: int
    domain: str
    scope: str | None = None
    installed_at: datetime


class AdjustmentRunOut(BaseModel):
    id: str
    shop: str
    scope: str
    scope_value: str | None
    percentage: float
    direction: str
    status: str
    items_total: int
    products_total: int
    variants_updated: int
    errors_count: int
    error_summary: str | None
    started_at: str
    finished_at: str | None
