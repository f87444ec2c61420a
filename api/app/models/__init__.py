from app.models.entities import PriceAdjustmentRun, Shop, Subscription

__all__ = ["PriceAdjustmentRun", "Shop", "Subscription"]
