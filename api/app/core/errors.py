from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException


@dataclass
class ApiError:
    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class AppHTTPException(HTTPException):
    def __init__(self, status_code: int, error: ApiError):
        super().__init__(status_code=status_code, detail=error.to_dict())


class PriceEditorError(Exception):
    """Base for domain failures; the HTTP layer renders them as ApiError bodies."""

    code = "error"
    status_code = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_api_error(self) -> ApiError:
        return ApiError(code=self.code, message=self.message, details=self.details)


class InvalidScopeError(PriceEditorError):
    code = "invalid_scope"
    status_code = 422


class InvalidAdjustmentError(InvalidScopeError):
    code = "invalid_adjustment"


class NoItemsFoundError(PriceEditorError):
    code = "no_items_found"
    status_code = 404


class RemoteQueryError(PriceEditorError):
    code = "remote_query_failed"
    status_code = 502


class RemoteBillingError(PriceEditorError):
    code = "billing_error"
    status_code = 502


class NotSubscribedError(PriceEditorError):
    code = "not_subscribed"
    status_code = 404


class SubscriptionRequiredError(PriceEditorError):
    code = "subscription_required"
    status_code = 402


class AdjustmentInProgressError(PriceEditorError):
    code = "adjustment_in_progress"
    status_code = 409


class ShopNotInstalledError(PriceEditorError):
    code = "shop_not_installed"
    status_code = 401
