"""
Application entry point for calsync.

Builds the stores and source adapters from Settings, then keeps the unified
event store in sync until interrupted.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import make_url

from calsync.config import Settings, get_settings
from calsync.database import create_db_engine, create_session_factory, init_db
from calsync.integrations.base import SourceAdapter
from calsync.integrations.google_calendar import GoogleAuthManager, GoogleCalendarSource
from calsync.integrations.local_calendar import LocalCalendarSource
from calsync.integrations.outlook import OutlookCalendarSource, OutlookGraphClient
from calsync.services import SyncCoordinator, SyncRunState, SyncStateStore, UnifiedEventStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if not settings.is_development:
        # googleapiclient logs every discovery request at INFO
        logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_adapters(settings: Settings) -> list[SourceAdapter]:
    """Create an adapter for every configured calendar source."""
    adapters: list[SourceAdapter] = []

    if settings.uses_local_calendar:
        adapters.append(LocalCalendarSource(settings.local_calendar_path))

    if settings.uses_google_calendar:
        adapters.append(
            GoogleCalendarSource(
                GoogleAuthManager.from_settings(settings),
                calendar_id=settings.google_calendar_id,
            )
        )

    if settings.uses_outlook:
        token = settings.outlook_access_token
        adapters.append(
            OutlookCalendarSource(
                OutlookGraphClient(
                    lambda: token,
                    base_url=settings.outlook_graph_base_url,
                    timeout=settings.http_timeout_seconds,
                )
            )
        )

    logger.info(f"Configured sources: {', '.join(a.source.value for a in adapters) or 'none'}")
    return adapters


def _ensure_sqlite_directory(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


def build_coordinator(
    settings: Settings,
    adapters: Optional[list[SourceAdapter]] = None,
) -> SyncCoordinator:
    """
    Wire the database, stores and adapters into a SyncCoordinator.

    Args:
        settings: Application settings
        adapters: Source adapters (built from settings if None)

    Returns:
        Coordinator ready to sync; the schema exists when this returns
    """
    _ensure_sqlite_directory(settings.database_url)
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)

    if adapters is None:
        adapters = build_adapters(settings)

    return SyncCoordinator(
        adapters,
        event_store=UnifiedEventStore(session_factory),
        sync_state=SyncStateStore(session_factory),
        window_past_days=settings.sync_window_past_days,
        window_future_days=settings.sync_window_future_days,
        retention_days=settings.event_retention_days or None,
    )


def _log_pass_result(state: SyncRunState) -> None:
    if state.is_syncing:
        return
    if state.has_errors:
        failed = sorted({error.source.value for error in state.errors})
        logger.warning(f"Sync pass finished with errors from: {', '.join(failed)}")
        for error in state.errors:
            logger.warning(f"{error.description} [{error.kind.value}]")
    for source, stats in state.merge_stats.items():
        logger.info(f"{source.value}: {stats.summary()}")


async def run(settings: Settings) -> None:
    """Sync periodically until cancelled."""
    coordinator = build_coordinator(settings)
    unsubscribe = coordinator.subscribe(_log_pass_result)

    coordinator.start_real_time_sync(settings.sync_interval_seconds)
    try:
        await asyncio.Event().wait()
    finally:
        unsubscribe()
        await coordinator.aclose()
        logger.info("calsync stopped")


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    configure_logging(settings)
    settings.validate_sync_config()

    logger.info("Starting calsync")
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
