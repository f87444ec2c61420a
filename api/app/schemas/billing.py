from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    shop: str
    subscription_id: str | None = None
    status: str
    plan_name: str
    price: str
    currency: str
    created_at: datetime
    updated_at: datetime
    cancelled_at: datetime | None = None
    trial_ends_at: datetime | None = None


class SubscriptionStatusOut(BaseModel):
    subscription: SubscriptionOut | None = None
    is_active: bool = False


class SubscribeRequest(BaseModel):
    plan_name: str | None = None
    price: str | None = Field(default=None, pattern=r"^\d+(\.\d{1,2})?$")
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    trial_days: int | None = Field(default=None, ge=1, le=365)


class SubscribeResponse(BaseModel):
    confirmation_url: str | None = None
    message: str | None = None
    subscription: SubscriptionOut


class MessageResponse(BaseModel):
    message: str
    subscription: SubscriptionOut | None = None
