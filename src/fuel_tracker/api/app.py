"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from fuel_tracker.api.models import (
    AbandonSessionRequest,
    AllocateRequest,
    EndSessionRequest,
    EventRequest,
    IntakeEventRequest,
    NoteEventRequest,
    SavePlanRequest,
    StartSessionRequest,
    UpdateNotesRequest,
)
from fuel_tracker.app_logging import configure_logging
from fuel_tracker.containers import AppContainer
from fuel_tracker.domain.fuel import FuelPlan, FuelProduct
from fuel_tracker.domain.recovery import RecoverableSession
from fuel_tracker.domain.sessions import SessionEvent, SessionLog
from fuel_tracker.errors import InvalidSessionStateError, SessionNotFoundError
from fuel_tracker.services.fuel_planner import is_within_target
from fuel_tracker.services.lifecycle import LifecycleState
from fuel_tracker.services.recovery import recovery_prompt


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            candidate = await state_container.recovery_manager.smart_recover()
            if candidate is not None:
                logger.info(
                    "Session %s can be recovered: %s",
                    candidate.session_id,
                    recovery_prompt(candidate),
                )
        except Exception:
            logger.exception("Failed to inspect sessions for recovery")
        yield
        state_container.lifecycle.detach()
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(SessionNotFoundError)
    async def session_not_found(
        _request: Request, exc: SessionNotFoundError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)}
        )

    @app.exception_handler(InvalidSessionStateError)
    async def invalid_session_state(
        _request: Request, exc: InvalidSessionStateError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)}
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/plans/allocate")
    async def allocate_plan(
        body: AllocateRequest, request: Request
    ) -> dict[str, object]:
        """Build a fuel plan from the current catalog without saving it."""
        state_container: AppContainer = request.app.state.container
        plan = _build_plan(state_container, body)
        return _plan_dict(plan)

    @app.post("/plans", status_code=status.HTTP_201_CREATED)
    async def save_plan(body: SavePlanRequest, request: Request) -> dict[str, object]:
        """Build a fuel plan and persist it as a planned session."""
        state_container: AppContainer = request.app.state.container
        plan = _build_plan(state_container, body)
        if plan.error:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=plan.error
            )
        planned = state_container.planning_service.save_plan(
            _user_id(state_container, body.user_id),
            plan,
            planned_date=body.planned_date,
            notes=body.notes,
        )
        return {
            "id": planned.id,
            "planned_date": planned.planned_date,
            "notes": planned.notes,
            "fuel_plan": _plan_dict(planned.fuel_plan),
        }

    @app.get("/sessions/recoverable")
    async def list_recoverable(request: Request) -> dict[str, object]:
        """List every active session left behind by a previous process."""
        state_container: AppContainer = request.app.state.container
        inspection = await state_container.recovery_manager.inspect()
        return {
            "state": inspection.state,
            "integrity_anomaly": inspection.has_integrity_anomaly,
            "sessions": [_recoverable_dict(s) for s in inspection.sessions],
        }

    @app.get("/sessions/recovery")
    async def smart_recovery(request: Request) -> dict[str, object]:
        """Return the session to offer for recovery, if any."""
        state_container: AppContainer = request.app.state.container
        candidate = await state_container.recovery_manager.smart_recover()
        if candidate is None:
            return {"session": None}
        return {
            "session": _recoverable_dict(candidate),
            "prompt": recovery_prompt(candidate),
        }

    @app.post("/sessions", status_code=status.HTTP_201_CREATED)
    async def start_session(
        body: StartSessionRequest, request: Request
    ) -> dict[str, object]:
        """Start a new active session, optionally from a planned session."""
        state_container: AppContainer = request.app.state.container
        session = await state_container.lifecycle.start(
            user_id=body.user_id, planned_session_id=body.planned_session_id
        )
        return _session_dict(session)

    @app.get("/sessions/active")
    async def active_session(request: Request) -> dict[str, object]:
        """Return the in-process lifecycle state and the next planned intake."""
        lifecycle = request.app.state.container.lifecycle
        payload: dict[str, object] = {
            "state": lifecycle.state,
            "elapsed_seconds": lifecycle.elapsed_seconds,
            "session": _session_dict(lifecycle.session) if lifecycle.session else None,
        }
        if lifecycle.session is not None and lifecycle.state is LifecycleState.ACTIVE:
            upcoming = await lifecycle.next_intake()
            payload["next_intake"] = asdict(upcoming) if upcoming else None
        return payload

    @app.post("/sessions/active/events", status_code=status.HTTP_201_CREATED)
    async def log_event(body: EventRequest, request: Request) -> dict[str, object]:
        """Log an intake, discomfort report or note on the active session."""
        lifecycle = request.app.state.container.lifecycle
        if isinstance(body, IntakeEventRequest):
            event = await lifecycle.log_intake(
                FuelProduct(
                    id=body.fuel_product_id,
                    name=body.product_name,
                    carbs_per_serving=body.carbs_per_serving,
                ),
                quantity=body.quantity,
                was_planned=body.was_planned,
                timing_minute=body.timing_minute,
            )
        elif isinstance(body, NoteEventRequest):
            event = await lifecycle.log_note(body.text)
        else:
            event = await lifecycle.log_discomfort(
                body.severity, tuple(body.symptoms), body.notes
            )
        return _event_dict(event)

    @app.post("/sessions/active/intakes/next", status_code=status.HTTP_201_CREATED)
    async def log_next_intake(request: Request) -> dict[str, object]:
        """Mark the next planned intake as taken."""
        lifecycle = request.app.state.container.lifecycle
        upcoming = await lifecycle.next_intake()
        if upcoming is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No planned intake due"
            )
        return _event_dict(await lifecycle.log_planned_intake(upcoming))

    @app.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_event(event_id: int, request: Request) -> None:
        """Delete a logged event."""
        lifecycle = request.app.state.container.lifecycle
        if not await lifecycle.delete_event(event_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)

    @app.post("/sessions/active/end")
    async def end_session(
        body: EndSessionRequest, request: Request
    ) -> dict[str, object]:
        """Complete the active session and return its summary."""
        lifecycle = request.app.state.container.lifecycle
        session = await lifecycle.end(body.notes)
        summary = await lifecycle.summary(session.id)
        return {"session": _session_dict(session), "summary": asdict(summary)}

    @app.post("/sessions/active/abandon")
    async def abandon_active(
        body: AbandonSessionRequest, request: Request
    ) -> dict[str, object]:
        """Abandon the active session."""
        lifecycle = request.app.state.container.lifecycle
        session = await lifecycle.abandon(body.reason)
        return _session_dict(session)

    @app.post("/sessions/{session_id}/recover")
    async def recover_session(session_id: int, request: Request) -> dict[str, object]:
        """Resume an interrupted session as the active one."""
        state_container: AppContainer = request.app.state.container
        data = await state_container.recovery_manager.recover(session_id)
        session = await state_container.lifecycle.resume(data)
        return {
            "session": _session_dict(session),
            "elapsed_seconds": data.elapsed_seconds,
            "events": [_event_dict(event) for event in data.events],
            "fuel_plan": _plan_dict(data.fuel_plan) if data.fuel_plan else None,
        }

    @app.post("/sessions/{session_id}/abandon")
    async def abandon_session(
        session_id: int, body: AbandonSessionRequest, request: Request
    ) -> dict[str, str]:
        """Abandon a session, whether in-process or left by a previous process."""
        state_container: AppContainer = request.app.state.container
        lifecycle = state_container.lifecycle
        if lifecycle.state is LifecycleState.ACTIVE and lifecycle.session is not None:
            if lifecycle.session.id == session_id:
                await lifecycle.abandon(body.reason)
                return {"status": "abandoned"}
        await state_container.recovery_manager.abandon(session_id, body.reason)
        return {"status": "abandoned"}

    @app.patch("/sessions/{session_id}/notes")
    async def update_notes(
        session_id: int, body: UpdateNotesRequest, request: Request
    ) -> dict[str, str]:
        """Replace a session's closing notes."""
        lifecycle = request.app.state.container.lifecycle
        await lifecycle.update_notes(session_id, body.notes)
        return {"status": "ok"}

    @app.get("/sessions/{session_id}/summary")
    async def session_summary(session_id: int, request: Request) -> dict[str, object]:
        """Return intake and discomfort counts and consumed carbs."""
        lifecycle = request.app.state.container.lifecycle
        summary = await lifecycle.summary(session_id)
        return asdict(summary)

    return app


def _user_id(container: AppContainer, user_id: int | None) -> int:
    return user_id if user_id is not None else container.settings.default_user_id


def _build_plan(container: AppContainer, body: AllocateRequest) -> FuelPlan:
    user_id = _user_id(container, body.user_id)
    planning = container.planning_service
    if body.target_carbs is None and body.carb_rate_g_per_hour is not None:
        return planning.build_plan_for_rate(
            user_id, body.duration_minutes, body.carb_rate_g_per_hour
        )
    return planning.build_plan(user_id, body.target_carbs or 0, body.duration_minutes)


def _plan_dict(plan: FuelPlan) -> dict[str, object]:
    return {**asdict(plan), "within_target": is_within_target(plan)}


def _session_dict(session: SessionLog) -> dict[str, object]:
    return asdict(session)


def _event_dict(event: SessionEvent) -> dict[str, object]:
    return {
        "id": event.id,
        "session_log_id": event.session_log_id,
        "event_type": event.event_type,
        "offset_seconds": event.offset_seconds,
        "actual_timestamp": event.actual_timestamp,
        "data": asdict(event.payload),
    }


def _recoverable_dict(session: RecoverableSession) -> dict[str, object]:
    return asdict(session)
