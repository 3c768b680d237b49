"""FastAPI application entry point with the scrape scheduler."""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI

from cineingest.api.routes import admin, health
from cineingest.config import settings
from cineingest.logging_config import configure_logging
from cineingest.tasks.cleanup import run_cleanup
from cineingest.tasks.scrape_job import run_scrape_all

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="Europe/London")
    scheduler.add_job(
        run_scrape_all,
        trigger=CronTrigger.from_crontab(settings.scrape_cron, timezone="Europe/London"),
        kwargs={"triggered_by": "scheduler"},
        id="daily_scrape",
        name="Scrape all venues",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        run_cleanup,
        trigger=CronTrigger.from_crontab(settings.cleanup_cron, timezone="Europe/London"),
        id="daily_cleanup",
        name="Delete past screenings and orphaned films",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_format)

    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        f"Scheduler started: scrape at '{settings.scrape_cron}', "
        f"cleanup at '{settings.cleanup_cron}'"
    )

    yield

    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")


app = FastAPI(
    title="cineingest",
    description="Screening ingestion pipeline for London cinemas",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(admin.router, prefix="/api", tags=["admin"])
