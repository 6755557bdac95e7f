"""Operational entry points run outside the HTTP process (cron, deploy hooks)."""

import asyncio
import logging
from datetime import datetime

from .config import get_settings
from .domain.repositories import ReservationRepository, TransactionFactory
from .infrastructure.repositories import SqlAlchemyReservationRepository
from .models import Reservation, ReservationStatus
from .usecases import reservations as reservation_usecase
from .utils.audit_log import emit_audit_log
from .utils.request_context import configure_logging
from .utils.time import utc_now_naive

logger = logging.getLogger(__name__)


async def complete_elapsed(
    res_repo: ReservationRepository,
    transaction: TransactionFactory,
    *,
    now: datetime,
) -> list[Reservation]:
    completed = await reservation_usecase.complete_elapsed_reservations(res_repo, transaction, now=now)
    for reservation in completed:
        emit_audit_log(
            action="reservation.completed",
            initiator="system",
            reservation_id=reservation.id,
            room_id=reservation.room_id,
            user_id=reservation.user_id,
            party_size=reservation.party_size,
            status_from=ReservationStatus.CONFIRMED,
            status_to=reservation.status,
            version=reservation.version,
            starts_at=reservation.starts_at,
            ends_at=reservation.ends_at,
        )
    logger.info("completed %d elapsed reservations", len(completed))
    return completed


async def _run_complete_elapsed() -> int:
    from .database import async_session, engine

    try:
        async with async_session() as session:
            completed = await complete_elapsed(
                SqlAlchemyReservationRepository(session),
                session.begin,
                now=utc_now_naive(),
            )
    finally:
        await engine.dispose()
    return len(completed)


async def _run_init_db() -> None:
    from .database import create_schema, engine

    try:
        await create_schema()
    finally:
        await engine.dispose()


def main() -> None:
    configure_logging(get_settings().log_level)
    asyncio.run(_run_complete_elapsed())


def init_db() -> None:
    configure_logging(get_settings().log_level)
    asyncio.run(_run_init_db())
    logger.info("schema created")
