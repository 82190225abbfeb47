from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.config import settings

if TYPE_CHECKING:
    from .pipeline import SearchPipeline

logger = logging.getLogger(__name__)

JOB_ID = "dealscan_pipeline"

@dataclass
class SchedulerConfig:
    """Where and how often the background pipeline runs."""
    lat: float = settings.DEFAULT_LAT
    lng: float = settings.DEFAULT_LNG
    radius_miles: float = settings.DEFAULT_RADIUS_MILES
    interval_minutes: float = settings.PIPELINE_INTERVAL_MINUTES

class PipelineScheduler:
    """
    Runs the search pipeline on start, then every `interval_minutes`, as an
    APScheduler interval job on the running event loop. A failed run is
    logged and the next one still fires.
    """
    def __init__(self, pipeline: SearchPipeline, config: Optional[SchedulerConfig] = None):
        self._pipeline = pipeline
        self._config = config or SchedulerConfig()
        self._scheduler: Optional[AsyncIOScheduler] = None
        self.last_summary: Optional[Dict[str, Any]] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and bool(self._scheduler.running)

    async def run_once(self) -> Optional[Dict[str, Any]]:
        cfg = self._config
        logger.info("Scheduled pipeline run near [%s, %s]", cfg.lat, cfg.lng)
        try:
            self.last_summary = await self._pipeline.run_pipeline(cfg.lat, cfg.lng, cfg.radius_miles)
        except Exception as e:
            logger.error("Scheduled pipeline run failed: %s", e)
            return None
        logger.info("Scheduled pipeline run complete: %s", self.last_summary)
        return self.last_summary

    def start(self) -> AsyncIOScheduler:
        """Must be called from inside the running loop (the app lifespan)."""
        if self._scheduler is not None:
            return self._scheduler
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self.run_once,
            IntervalTrigger(minutes=self._config.interval_minutes, timezone="UTC"),
            id=JOB_ID,
            name="Background deal pipeline",
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Pipeline scheduled every %s minutes", self._config.interval_minutes)
        return scheduler

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
