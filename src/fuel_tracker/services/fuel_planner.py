"""Greedy fuel plan allocation.

Products are visited once each, largest carbs per serving first. Each visit
takes ``ceil(remaining / carbs_per_serving)`` servings capped at
``MAX_QUANTITY``, so a plan prefers overshooting the target to leaving a gap.
The allocator never loops back to add a second batch of a product already
visited; any shortfall left after the single pass is reported as a warning.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import replace

from fuel_tracker.domain.fuel import FuelPlan, FuelPlanItem, FuelProduct, NextIntake

MAX_QUANTITY = 5
TARGET_BAND = (90, 110)
OVERDUE_GRACE_MINUTES = 2

TARGET_ERROR = "Target carbs must be greater than 0"
NO_PRODUCTS_ERROR = "No fuel products available. Add products to skafferi."


def allocate(
    target_carbs: float, duration_minutes: float, products: Sequence[FuelProduct]
) -> FuelPlan:
    """Allocate products against a carbohydrate target for an activity."""
    if target_carbs <= 0:
        return FuelPlan(
            items=(),
            total_carbs=0,
            target_carbs=target_carbs,
            percentage=0,
            error=TARGET_ERROR,
        )
    if not products:
        return FuelPlan(
            items=(),
            total_carbs=0,
            target_carbs=target_carbs,
            percentage=0,
            warning=_insufficient_warning(0, target_carbs),
            error=NO_PRODUCTS_ERROR,
        )

    items: list[FuelPlanItem] = []
    remaining = target_carbs
    capped = False
    # sorted() is stable, so ties keep their input order.
    for product in sorted(products, key=lambda p: p.carbs_per_serving, reverse=True):
        if remaining <= 0:
            break
        needed = math.ceil(remaining / product.carbs_per_serving)
        quantity = min(needed, MAX_QUANTITY)
        if needed > MAX_QUANTITY:
            capped = True
        item = _build_item(product, quantity, duration_minutes)
        items.append(item)
        remaining -= item.carbs_total

    plan = recalculate(items, target_carbs)
    if remaining > 0:
        warning = (
            _max_quantity_warning(plan.total_carbs, target_carbs)
            if capped
            else _insufficient_warning(plan.total_carbs, target_carbs)
        )
        plan = replace(plan, warning=warning)
    return plan


def generate_timing(duration_minutes: float, quantity: int) -> list[int]:
    """Spread intakes evenly over the activity, leaving a buffer before the end.

    Example: 75 minutes and 3 servings gives ``[19, 38, 56]``.
    """
    if quantity <= 0:
        return []
    interval = duration_minutes / (quantity + 1)
    return [_round_half_up(i * interval) for i in range(1, quantity + 1)]


def recalculate(items: Iterable[FuelPlanItem], target_carbs: float) -> FuelPlan:
    """Re-derive totals after manual edits without re-running the allocation."""
    kept = tuple(item for item in items if item.quantity > 0)
    total = sum(item.carbs_total for item in kept)
    return FuelPlan(
        items=kept,
        total_carbs=total,
        target_carbs=target_carbs,
        percentage=match_percentage(total, target_carbs),
    )


def match_percentage(total_carbs: float, target_carbs: float) -> int:
    """Return allocated carbs as a rounded percentage of the target."""
    if target_carbs <= 0:
        return 0
    return _round_half_up(total_carbs / target_carbs * 100)


def target_carbs_for(duration_minutes: float, carb_rate_g_per_hour: float) -> int:
    """Carbohydrate target for an activity at a given hourly rate."""
    return _round_half_up(duration_minutes / 60 * carb_rate_g_per_hour)


def is_within_target(plan: FuelPlan) -> bool:
    """Whether the plan's match percentage falls in the acceptable band."""
    low, high = TARGET_BAND
    return plan.error is None and low <= plan.percentage <= high


def adjust_quantity(
    plan: FuelPlan, fuel_product_id: int, delta: int, duration_minutes: float
) -> FuelPlan:
    """Change one item's quantity by ``delta``, clamped to 0..MAX_QUANTITY."""
    items = []
    for item in plan.items:
        if item.fuel_product_id == fuel_product_id:
            quantity = max(0, min(MAX_QUANTITY, item.quantity + delta))
            item = replace(
                item,
                quantity=quantity,
                carbs_total=quantity * item.carbs_per_serving,
                timing_minutes=tuple(generate_timing(duration_minutes, quantity)),
            )
        items.append(item)
    return recalculate(items, plan.target_carbs)


def add_product(
    plan: FuelPlan, product: FuelProduct, duration_minutes: float
) -> FuelPlan:
    """Add a single serving of a product that is not yet in the plan."""
    if any(item.fuel_product_id == product.id for item in plan.items):
        return plan
    item = _build_item(product, 1, duration_minutes)
    return recalculate([*plan.items, item], plan.target_carbs)


def next_intake(
    plan: FuelPlan, logged_timings: Iterable[int], elapsed_minutes: int
) -> NextIntake | None:
    """Return the earliest planned intake that is still due.

    Timings already logged are skipped, as are timings more than
    ``OVERDUE_GRACE_MINUTES`` in the past.
    """
    logged = set(logged_timings)
    schedule = sorted(
        ((timing, item) for item in plan.items for timing in item.timing_minutes),
        key=lambda entry: entry[0],
    )
    for timing, item in schedule:
        if timing in logged or timing < elapsed_minutes - OVERDUE_GRACE_MINUTES:
            continue
        return NextIntake(
            timing_minute=timing,
            fuel_product_id=item.fuel_product_id,
            product_name=item.product_name,
            carbs_per_serving=item.carbs_per_serving,
            minutes_until=timing - elapsed_minutes,
        )
    return None


def _build_item(
    product: FuelProduct, quantity: int, duration_minutes: float
) -> FuelPlanItem:
    return FuelPlanItem(
        fuel_product_id=product.id,
        product_name=product.name,
        quantity=quantity,
        carbs_per_serving=product.carbs_per_serving,
        timing_minutes=tuple(generate_timing(duration_minutes, quantity)),
        carbs_total=product.carbs_per_serving * quantity,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _format_grams(value: float) -> str:
    return f"{value:g}"


def _insufficient_warning(total: float, target: float) -> str:
    return (
        f"Insufficient products ({_format_grams(total)}/{_format_grams(target)}g). "
        "Add more products to skafferi."
    )


def _max_quantity_warning(total: float, target: float) -> str:
    return (
        f"Max quantity reached ({_format_grams(total)}/{_format_grams(target)}g). "
        f"Each product is limited to {MAX_QUANTITY} servings; "
        "add more products to skafferi."
    )
