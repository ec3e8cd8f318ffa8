"""Encoding of plans and event payloads at the storage boundary."""

from datetime import datetime

from fuel_tracker.domain.fuel import FuelPlan, FuelPlanItem
from fuel_tracker.domain.sessions import (
    DiscomfortPayload,
    EventPayload,
    IntakePayload,
    NotePayload,
    event_type_of,
)


def plan_to_dict(plan: FuelPlan) -> dict[str, object]:
    """Serialize a fuel plan to a JSON-compatible dict."""
    return {
        "items": [
            {
                "fuel_product_id": item.fuel_product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "carbs_per_serving": item.carbs_per_serving,
                "timing_minutes": list(item.timing_minutes),
                "carbs_total": item.carbs_total,
            }
            for item in plan.items
        ],
        "total_carbs": plan.total_carbs,
        "target_carbs": plan.target_carbs,
        "percentage": plan.percentage,
        "warning": plan.warning,
    }


def plan_from_dict(data: dict[str, object]) -> FuelPlan:
    """Parse a stored fuel plan."""
    raw_items = data.get("items", [])
    items = [
        _item_from_dict(raw)
        for raw in (raw_items if isinstance(raw_items, list) else [])
        if isinstance(raw, dict)
    ]
    warning = data.get("warning")
    return FuelPlan(
        items=tuple(items),
        total_carbs=float(data.get("total_carbs", 0)),
        target_carbs=float(data.get("target_carbs", 0)),
        percentage=int(data.get("percentage", 0)),
        warning=str(warning) if warning else None,
    )


def _item_from_dict(raw: dict[str, object]) -> FuelPlanItem:
    timings = raw.get("timing_minutes") or []
    return FuelPlanItem(
        fuel_product_id=int(raw["fuel_product_id"]),
        product_name=str(raw.get("product_name", "")),
        quantity=int(raw["quantity"]),
        carbs_per_serving=float(raw["carbs_per_serving"]),
        timing_minutes=tuple(int(t) for t in timings),
        carbs_total=float(raw["carbs_total"]),
    )


def payload_to_dict(payload: EventPayload) -> tuple[str, dict[str, object]]:
    """Return the type tag and data blob for an event payload."""
    event_type = event_type_of(payload)
    if isinstance(payload, IntakePayload):
        data: dict[str, object] = {
            "fuel_product_id": payload.fuel_product_id,
            "product_name": payload.product_name,
            "quantity": payload.quantity,
            "carbs_consumed": payload.carbs_consumed,
            "was_planned": payload.was_planned,
        }
        if payload.timing_minute is not None:
            data["timing_minute"] = payload.timing_minute
    elif isinstance(payload, DiscomfortPayload):
        data = {"severity": payload.severity, "symptoms": list(payload.symptoms)}
        if payload.notes is not None:
            data["notes"] = payload.notes
    else:
        data = {"note_text": payload.text}
    return event_type, data


def payload_from_dict(event_type: str, data: dict[str, object]) -> EventPayload:
    """Decode a stored payload by its type tag."""
    if event_type == "intake":
        timing = data.get("timing_minute")
        return IntakePayload(
            fuel_product_id=int(data["fuel_product_id"]),
            product_name=str(data.get("product_name", "")),
            quantity=int(data.get("quantity", 1)),
            carbs_consumed=float(data.get("carbs_consumed", 0)),
            was_planned=bool(data.get("was_planned", False)),
            timing_minute=int(timing) if timing is not None else None,
        )
    if event_type == "discomfort":
        symptoms = data.get("symptoms") or []
        notes = data.get("notes")
        return DiscomfortPayload(
            severity=int(data["severity"]),
            symptoms=tuple(str(s) for s in symptoms),
            notes=str(notes) if notes is not None else None,
        )
    if event_type == "note":
        return NotePayload(text=str(data.get("note_text", "")))
    raise ValueError(f"Unknown session event type: {event_type}")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored ISO timestamp."""
    if not value:
        return None
    return datetime.fromisoformat(value)
