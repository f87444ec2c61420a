from typing import Literal

from pydantic import BaseModel, Field

ScopeKind = Literal["all", "collection", "tag"]
DirectionName = Literal["increase", "decrease"]


class PriceAdjustRequest(BaseModel):
    scope: ScopeKind = "all"
    percentage: float
    direction: DirectionName
    collection_id: str | None = None
    tag: str | None = None


class MutationErrorOut(BaseModel):
    message: str
    field: list[str] | None = None
    product_id: str | None = None


class PriceAdjustResponse(BaseModel):
    run_id: str
    status: str
    updated_count: int
    total_seen: int
    products_seen: int
    errors: list[MutationErrorOut] | None = None


class CollectionOut(BaseModel):
    id: str
    title: str


class PriceOptionsOut(BaseModel):
    requires_subscription: bool = False
    collections: list[CollectionOut] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
