"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta
from functools import partial

from supabase import create_client

from fuel_tracker.adapters.asyncio_reminder_scheduler import AsyncioReminderScheduler
from fuel_tracker.adapters.sqlite_database import SqliteDatabase
from fuel_tracker.adapters.sqlite_event_repository import SqliteEventRepository
from fuel_tracker.adapters.sqlite_planned_session_repository import (
    SqlitePlannedSessionRepository,
)
from fuel_tracker.adapters.sqlite_product_catalog import SqliteProductCatalog
from fuel_tracker.adapters.sqlite_session_repository import SqliteSessionRepository
from fuel_tracker.adapters.supabase_product_catalog import SupabaseProductCatalog
from fuel_tracker.adapters.telegram_client import (
    HttpxTelegramClient,
    LoggingReminderNotifier,
    TelegramClient,
    TelegramReminderNotifier,
)
from fuel_tracker.config import Settings, supabase_enabled, telegram_enabled
from fuel_tracker.services.checkpoints import SessionCheckpointStore
from fuel_tracker.services.clock import SessionClock
from fuel_tracker.services.lifecycle import SessionLifecycle
from fuel_tracker.services.planning import PlanningService, ProductCatalog
from fuel_tracker.services.recovery import SessionRecoveryManager
from fuel_tracker.services.reminders import ReminderNotifier, ReminderScheduler


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    product_catalog: ProductCatalog
    planning_service: PlanningService
    lifecycle: SessionLifecycle
    recovery_manager: SessionRecoveryManager
    reminder_scheduler: ReminderScheduler
    telegram_client: TelegramClient | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    database = SqliteDatabase.create(resolved_settings.database_path)
    session_repository = SqliteSessionRepository(database)
    event_repository = SqliteEventRepository(database)
    plan_repository = SqlitePlannedSessionRepository(database)

    product_catalog: ProductCatalog
    if supabase_enabled(resolved_settings):
        supabase_client = create_client(
            resolved_settings.supabase_url or "",
            resolved_settings.supabase_service_key or "",
        )
        product_catalog = SupabaseProductCatalog(supabase_client)
    else:
        product_catalog = SqliteProductCatalog(database)

    telegram_client: HttpxTelegramClient | None = None
    notifier: ReminderNotifier
    if telegram_enabled(resolved_settings):
        telegram_client = HttpxTelegramClient.create(
            resolved_settings.telegram_bot_token or ""
        )
        notifier = TelegramReminderNotifier(
            client=telegram_client, chat_id=resolved_settings.telegram_chat_id or 0
        )
    else:
        notifier = LoggingReminderNotifier()
    reminder_scheduler = AsyncioReminderScheduler(notifier)

    checkpoint_store = SessionCheckpointStore(session_repository)
    recovery_window = timedelta(hours=resolved_settings.recovery_window_hours)
    lifecycle = SessionLifecycle(
        session_repository=session_repository,
        event_repository=event_repository,
        plan_repository=plan_repository,
        checkpoint_store=checkpoint_store,
        reminder_scheduler=reminder_scheduler,
        clock_factory=partial(
            SessionClock,
            ui_interval_seconds=resolved_settings.ui_tick_seconds,
            checkpoint_interval_seconds=resolved_settings.checkpoint_interval_seconds,
        ),
        default_user_id=resolved_settings.default_user_id,
        recovery_window=recovery_window,
    )
    recovery_manager = SessionRecoveryManager(
        session_repository=session_repository,
        event_repository=event_repository,
        plan_repository=plan_repository,
        checkpoint_store=checkpoint_store,
        recovery_window=recovery_window,
        auto_suggest_window=timedelta(
            hours=resolved_settings.auto_suggest_window_hours
        ),
    )
    planning_service = PlanningService(product_catalog, plan_repository)

    async def close_resources() -> None:
        reminder_scheduler.cancel_all()
        if telegram_client is not None:
            await telegram_client.close()

    return AppContainer(
        settings=resolved_settings,
        product_catalog=product_catalog,
        planning_service=planning_service,
        lifecycle=lifecycle,
        recovery_manager=recovery_manager,
        reminder_scheduler=reminder_scheduler,
        telegram_client=telegram_client,
        close_resources=close_resources,
    )
