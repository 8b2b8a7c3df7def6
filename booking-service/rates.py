from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from config import Settings
from models import AccommodationType, MealPlan, SeasonalTier


SEASONAL_MULTIPLIERS = MappingProxyType({
    SeasonalTier.LOW: Decimal("0.85"),      # 15% discount
    SeasonalTier.REGULAR: Decimal("1.0"),   # Base rate
    SeasonalTier.HIGH: Decimal("1.15"),     # 15% increase
    SeasonalTier.PEAK: Decimal("1.30"),     # 30% increase
})

MEAL_PLAN_COSTS = MappingProxyType({
    MealPlan.NONE: Decimal("0"),
    MealPlan.BREAKFAST: Decimal("15"),
    MealPlan.HALF_BOARD: Decimal("35"),
    MealPlan.FULL_BOARD: Decimal("55"),
})


@dataclass(frozen=True)
class Surcharges:
    """Flat per-night surcharges for one accommodation type."""
    weekend: Decimal
    holiday: Decimal


@dataclass(frozen=True)
class RateTable:
    """Seasonal multipliers, meal-plan costs, surcharges and long-stay policy."""
    seasonal_multipliers: Mapping[SeasonalTier, Decimal] = field(default_factory=lambda: SEASONAL_MULTIPLIERS)
    meal_plan_costs: Mapping[MealPlan, Decimal] = field(default_factory=lambda: MEAL_PLAN_COSTS)
    surcharges: Mapping[AccommodationType, Surcharges] = field(default_factory=lambda: MappingProxyType({
        AccommodationType.HOTEL: Surcharges(weekend=Decimal("20"), holiday=Decimal("30")),
        AccommodationType.DORMITORY: Surcharges(weekend=Decimal("5"), holiday=Decimal("10")),
    }))
    long_stay_discount_pct: Decimal = Decimal("10")
    long_stay_threshold_nights: int = 7
    currency: str = "USD"

    def multiplier(self, tier: SeasonalTier) -> Decimal:
        return self.seasonal_multipliers[tier]

    def meal_cost(self, plan: MealPlan) -> Decimal:
        return self.meal_plan_costs[plan]

    def surcharges_for(self, accommodation_type: AccommodationType) -> Surcharges:
        return self.surcharges[accommodation_type]

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateTable":
        """Build a rate table from configured values."""
        meal_costs = {plan: Decimal(str(settings.meal_plan_costs.get(plan.value, MEAL_PLAN_COSTS[plan])))
                      for plan in MealPlan}
        return cls(
            meal_plan_costs=MappingProxyType(meal_costs),
            surcharges=MappingProxyType({
                AccommodationType.HOTEL: Surcharges(
                    weekend=settings.hotel_weekend_surcharge,
                    holiday=settings.hotel_holiday_surcharge,
                ),
                AccommodationType.DORMITORY: Surcharges(
                    weekend=settings.dormitory_weekend_surcharge,
                    holiday=settings.dormitory_holiday_surcharge,
                ),
            }),
            long_stay_discount_pct=settings.long_stay_discount_pct,
            long_stay_threshold_nights=settings.long_stay_threshold_nights,
            currency=settings.currency,
        )
