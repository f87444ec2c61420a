from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

from app.clients.shopify import ShopifyAdminClient
from app.core.errors import InvalidAdjustmentError, NoItemsFoundError
from app.services.catalog import Item

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DEFAULT_BATCH_SIZE = 10

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"


@dataclass
class VariantPriceUpdate:
    variant_id: str
    price: str


@dataclass
class BatchOperation:
    product_id: str
    variants: list[VariantPriceUpdate] = field(default_factory=list)

    def to_variables(self) -> list[dict[str, str]]:
        return [{"id": update.variant_id, "price": update.price} for update in self.variants]


@dataclass
class MutationError:
    message: str
    field: list[str] | None = None
    product_id: str | None = None


@dataclass
class AdjustmentResult:
    updated_count: int
    total_seen: int
    products_seen: int
    operations_submitted: int
    errors: list[MutationError] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "partial" if self.errors else "completed"


def validate_percentage(value: float | int | str | Decimal | None, direction: Direction | None = None) -> Decimal:
    try:
        number = float(value) if value is not None else math.nan
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number) or number <= 0:
        raise InvalidAdjustmentError("Please enter a valid percentage", details={"percentage": str(value)})

    percentage = Decimal(str(value))
    if direction is Direction.DECREASE and percentage >= HUNDRED:
        raise InvalidAdjustmentError(
            "A decrease must be smaller than 100%",
            details={"percentage": str(value), "direction": direction.value},
        )
    return percentage


def parse_price(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        price = Decimal(str(raw).strip())
    except InvalidOperation:
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def adjusted_price(current_price: str | None, percentage: Decimal, direction: Direction) -> str | None:
    """Return the new price as a two-decimal string, or None when the item must be skipped."""
    price = parse_price(current_price)
    if price is None:
        return None

    factor = HUNDRED + percentage if direction is Direction.INCREASE else HUNDRED - percentage
    new_price = (price * factor / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
    if new_price <= 0:
        return None
    return f"{new_price:.2f}"


def build_operations(items: Sequence[Item], percentage: Decimal, direction: Direction) -> list[BatchOperation]:
    operations: dict[str, BatchOperation] = {}
    for item in items:
        new_price = adjusted_price(item.current_price, percentage, direction)
        if new_price is None:
            continue
        operation = operations.setdefault(item.parent_id, BatchOperation(product_id=item.parent_id))
        operation.variants.append(VariantPriceUpdate(variant_id=item.item_id, price=new_price))
    return [operation for operation in operations.values() if operation.variants]


def chunked(operations: Sequence[BatchOperation], size: int) -> Iterator[Sequence[BatchOperation]]:
    for start in range(0, len(operations), size):
        yield operations[start : start + size]


class PriceMutationPipeline:
    def __init__(self, client: ShopifyAdminClient, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.client = client
        self.batch_size = max(1, batch_size)

    def apply(self, items: Sequence[Item], percentage: Decimal, direction: Direction) -> AdjustmentResult:
        if not items:
            raise NoItemsFoundError("No products found for the selected scope")

        operations = build_operations(items, percentage, direction)
        result = AdjustmentResult(
            updated_count=sum(len(operation.variants) for operation in operations),
            total_seen=len(items),
            products_seen=len({item.parent_id for item in items}),
            operations_submitted=0,
        )

        for batch in chunked(operations, self.batch_size):
            for operation in batch:
                result.operations_submitted += 1
                try:
                    outcome = self.client.bulk_update_variant_prices(operation.product_id, operation.to_variables())
                except Exception as exc:
                    logger.warning("Price update for product %s failed: %s", operation.product_id, exc)
                    result.errors.append(MutationError(message=str(exc) or exc.__class__.__name__, product_id=operation.product_id))
                    continue

                for user_error in outcome.user_errors:
                    logger.warning("Price update for product %s rejected: %s", operation.product_id, user_error.message)
                    result.errors.append(
                        MutationError(message=user_error.message, field=user_error.field, product_id=operation.product_id)
                    )

        logger.info(
            "Price adjustment applied: updated=%s seen=%s operations=%s errors=%s",
            result.updated_count,
            result.total_seen,
            result.operations_submitted,
            len(result.errors),
        )
        return result
