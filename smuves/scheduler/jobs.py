"""SMUVES — Scheduler Jobs.

APScheduler hourly tick that runs the auto-backup tracker for every user
whose configured backup time falls in the current hour.
"""

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session, select

from smuves.config import settings
from smuves.database import engine
from smuves.connectors.hubspot.client import HubSpotClient
from smuves.connectors.sheets.client import GoogleSheetsClient
from smuves.core.locks import user_lock
from smuves.core.logging import get_logger
from smuves.models.snapshot_models import UserSettings
from smuves.sync.tracker import run_auto_backup

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def _parse_time(value: str) -> tuple[int, int]:
    hours, minutes = value.split(":")
    return int(hours), int(minutes)


def _add_month(moment: datetime) -> datetime:
    year, month = (moment.year + 1, 1) if moment.month == 12 else (moment.year, moment.month + 1)
    day = moment.day
    while True:
        try:
            return moment.replace(year=year, month=month, day=day)
        except ValueError:
            day -= 1


def calculate_next_run(frequency: str, time_of_day: str, now: Optional[datetime] = None) -> datetime:
    """Next run at ``time_of_day`` (UTC); if already past today, one period later."""
    now = now or datetime.now(timezone.utc)
    hours, minutes = _parse_time(time_of_day)
    next_run = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if next_run <= now:
        if frequency == "weekly":
            next_run += timedelta(days=7)
        elif frequency == "monthly":
            next_run = _add_month(next_run)
        else:
            next_run += timedelta(days=1)
    return next_run


def is_due(user_settings: UserSettings, now: datetime) -> bool:
    """Whether this hour's tick should back the user up."""
    hours, _ = _parse_time(user_settings.backup_time)
    if hours != now.hour:
        return False
    anchor = user_settings.updated_at
    if user_settings.backup_frequency == "weekly":
        return now.weekday() == anchor.weekday()
    if user_settings.backup_frequency == "monthly":
        return now.day == anchor.day
    return True


def due_users(session: Session, now: datetime) -> List[UserSettings]:
    candidates = session.exec(
        select(UserSettings).where(UserSettings.auto_backup_enabled == True)  # noqa: E712
    ).all()
    return [
        s
        for s in candidates
        if s.hubspot_token and s.google_access_token and s.backup_sheet_id and is_due(s, now)
    ]


async def backup_user(session: Session, user_settings: UserSettings, day: date) -> None:
    async with user_lock(user_settings.user_id, "scheduled backup"):
        async with HubSpotClient(user_settings.hubspot_token) as hubspot:
            result = await run_auto_backup(
                session,
                hubspot,
                GoogleSheetsClient(user_settings.google_access_token),
                user_settings.user_id,
                user_settings.backup_sheet_id,
                day=day,
            )
    logger.info(result.message, extra={"user_id": user_settings.user_id})


async def scheduled_backup_job(now: Optional[datetime] = None):
    """Back up every user due this hour. One user's failure never stops the rest."""
    now = now or datetime.now(timezone.utc)
    with Session(engine) as session:
        users = due_users(session, now)
        logger.info(f"Scheduled backup tick: {len(users)} users due")
        for user_settings in users:
            try:
                await backup_user(session, user_settings, now.date())
            except Exception as e:
                logger.error(
                    f"Scheduled backup failed: {e}",
                    extra={"user_id": user_settings.user_id},
                )


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        scheduled_backup_job,
        "cron",
        minute=0,
        timezone="UTC",
        id="scheduled_backups",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info("Scheduler started. Backup tick every hour on the hour (UTC)")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
