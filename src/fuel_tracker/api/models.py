"""Pydantic request models for the HTTP boundary."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field


class AllocateRequest(BaseModel):
    """Plan request by explicit target or by hourly carb rate."""

    duration_minutes: float = Field(gt=0)
    target_carbs: float | None = None
    carb_rate_g_per_hour: float | None = Field(default=None, gt=0)
    user_id: int | None = None


class SavePlanRequest(AllocateRequest):
    """Allocate and persist a plan."""

    planned_date: str | None = None
    notes: str | None = None


class StartSessionRequest(BaseModel):
    user_id: int | None = None
    planned_session_id: int | None = None


class IntakeEventRequest(BaseModel):
    type: Literal["intake"]
    fuel_product_id: int
    product_name: str
    carbs_per_serving: float = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    was_planned: bool = False
    timing_minute: int | None = None


class DiscomfortEventRequest(BaseModel):
    type: Literal["discomfort"]
    severity: int = Field(ge=1, le=5)
    symptoms: list[str] = Field(default_factory=list)
    notes: str | None = None


class NoteEventRequest(BaseModel):
    type: Literal["note"]
    text: str = Field(min_length=1)


EventRequest = Annotated[
    IntakeEventRequest | DiscomfortEventRequest | NoteEventRequest,
    Field(discriminator="type"),
]


class EndSessionRequest(BaseModel):
    notes: str | None = None


class AbandonSessionRequest(BaseModel):
    reason: str | None = None


class UpdateNotesRequest(BaseModel):
    notes: str | None
