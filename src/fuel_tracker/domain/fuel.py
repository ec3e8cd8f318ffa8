"""Domain models for fuel products and fuel plans."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class FuelProduct:
    """Represents a nutrition product from the user's catalog."""

    id: int
    name: str
    carbs_per_serving: float
    product_type: str | None = None


@dataclass(frozen=True)
class FuelPlanItem:
    """A single product allocation inside a fuel plan.

    Name and carbs per serving are snapshots taken at planning time, so later
    catalog edits do not change a saved plan.
    """

    fuel_product_id: int
    product_name: str
    quantity: int
    carbs_per_serving: float
    timing_minutes: tuple[int, ...]
    carbs_total: float


@dataclass(frozen=True)
class FuelPlan:
    """Ordered allocation of products against a carbohydrate target."""

    items: tuple[FuelPlanItem, ...]
    total_carbs: float
    target_carbs: float
    percentage: int
    warning: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class PlannedSession:
    """A fuel plan saved ahead of an activity."""

    id: int
    user_id: int
    planned_date: str
    fuel_plan: FuelPlan
    notes: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class IntakeReminder:
    """Reminder content handed to the reminder scheduler."""

    offset_minutes: int
    product_name: str
    carbs_per_serving: float


@dataclass(frozen=True)
class NextIntake:
    """The next planned intake that has not been logged yet."""

    timing_minute: int
    fuel_product_id: int
    product_name: str
    carbs_per_serving: float
    minutes_until: int = 0
