"""Planning service that turns the product catalog into saved fuel plans."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from fuel_tracker.domain.fuel import FuelPlan, FuelProduct, PlannedSession
from fuel_tracker.services import fuel_planner

logger = logging.getLogger(__name__)


class ProductCatalog(Protocol):
    """Read-only source of fuel products."""

    def list_products(self, user_id: int) -> list[FuelProduct]:
        """Return the user's available products."""


class PlannedSessionRepository(Protocol):
    """Persistence interface for planned sessions."""

    def create_planned_session(
        self, user_id: int, planned_date: str, plan: FuelPlan, notes: str | None
    ) -> PlannedSession:
        """Persist a plan and return the saved record."""

    def get_planned_session(self, planned_session_id: int) -> PlannedSession | None:
        """Return a planned session by id, if present."""


@dataclass
class PlanningService:
    """Application service for building and saving fuel plans."""

    catalog: ProductCatalog
    repository: PlannedSessionRepository

    def build_plan(
        self, user_id: int, target_carbs: float, duration_minutes: float
    ) -> FuelPlan:
        """Allocate the user's current products against a target."""
        products = self.catalog.list_products(user_id)
        plan = fuel_planner.allocate(target_carbs, duration_minutes, products)
        if plan.error:
            logger.info("Fuel plan for user %s not built: %s", user_id, plan.error)
        return plan

    def build_plan_for_rate(
        self, user_id: int, duration_minutes: float, carb_rate_g_per_hour: float
    ) -> FuelPlan:
        """Allocate against a target derived from an hourly carb rate."""
        target = fuel_planner.target_carbs_for(duration_minutes, carb_rate_g_per_hour)
        return self.build_plan(user_id, target, duration_minutes)

    def save_plan(
        self,
        user_id: int,
        plan: FuelPlan,
        planned_date: str | None = None,
        notes: str | None = None,
    ) -> PlannedSession:
        """Persist a plan so a session can be started from it."""
        if plan.error:
            raise ValueError(plan.error)
        date = planned_date or datetime.now(tz=UTC).date().isoformat()
        return self.repository.create_planned_session(user_id, date, plan, notes)

    def get_plan(self, planned_session_id: int) -> FuelPlan | None:
        """Return the fuel plan of a planned session."""
        planned = self.repository.get_planned_session(planned_session_id)
        return planned.fuel_plan if planned else None
