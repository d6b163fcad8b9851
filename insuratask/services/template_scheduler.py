"""Background scheduler firing recurring templates.

Jobs live in a private `schedule.Scheduler`, tagged per template, and a daemon
thread calls `run_pending()` every SCHEDULER_POLL_SECONDS.
"""

import logging
import threading
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional
import calendar

import pytz
import schedule

from insuratask.core import database
from insuratask.core.config import settings
from insuratask.services import template_service

logger = logging.getLogger(__name__)

# recurrence days_of_week: 0 = Sunday
WEEKDAY_NAMES = ["sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"]


def _tag(template_id: int) -> str:
    return f"template-{template_id}"


def _normalize_time(value: Optional[str]) -> str:
    hour, minute = (value or "09:00").split(":")
    return f"{int(hour):02d}:{int(minute):02d}"


def build_cron_expression(config: Dict[str, Any]) -> str:
    """Cron equivalent of a recurrence config, shown in the status endpoint"""
    hour, minute = (config.get("time") or "09:00").split(":")
    hour, minute = int(hour), int(minute)
    kind = config.get("type")

    if kind == "daily":
        interval = config.get("interval") or 1
        day_field = "*" if interval == 1 else f"*/{interval}"
        return f"{minute} {hour} {day_field} * *"
    if kind == "weekly":
        days = config.get("days_of_week") or [1]
        return f"{minute} {hour} * * {','.join(str(d) for d in sorted(set(days)))}"
    if kind == "monthly":
        return f"{minute} {hour} {config.get('day_of_month') or 1} * *"
    raise ValueError(f"Unsupported recurrence type: {kind}")


class TemplateScheduler:
    def __init__(self, session_factory: Optional[Callable] = None, timezone: Optional[str] = None):
        self._session_factory = session_factory
        self.timezone = timezone or settings.SCHEDULER_TIMEZONE
        self.scheduler = schedule.Scheduler()
        self.configs: Dict[int, Dict[str, Any]] = {}
        self.lock = Lock()
        self.thread = None
        self._stop = threading.Event()

    def _new_session(self):
        factory = self._session_factory or database.SessionLocal
        return factory()

    def _today(self):
        return datetime.now(pytz.timezone(self.timezone)).date()

    def schedule_template(self, template_id: int, config: Dict[str, Any]) -> None:
        """Register (or replace) the jobs of a template"""
        with self.lock:
            self.scheduler.clear(_tag(template_id))
            self.configs.pop(template_id, None)

            at = _normalize_time(config.get("time"))
            kind = config.get("type")

            if kind == "daily":
                interval = config.get("interval") or 1
                self.scheduler.every(interval).days.at(at, self.timezone).do(
                    self._run_template, template_id
                ).tag(_tag(template_id))
            elif kind == "weekly":
                for day in sorted(set(config.get("days_of_week") or [1])):
                    job = self.scheduler.every(1)
                    getattr(job, WEEKDAY_NAMES[day]).at(at, self.timezone).do(
                        self._run_template, template_id
                    ).tag(_tag(template_id))
            elif kind == "monthly":
                # schedule has no monthly unit: run daily and check the day of month
                self.scheduler.every().day.at(at, self.timezone).do(
                    self._run_monthly, template_id, config.get("day_of_month") or 1
                ).tag(_tag(template_id))
            else:
                raise ValueError(f"Unsupported recurrence type: {kind}")

            self.configs[template_id] = dict(config)

        logger.info(f"Template {template_id} scheduled ({build_cron_expression(config)}, {self.timezone})")

    def unschedule_template(self, template_id: int) -> bool:
        with self.lock:
            self.scheduler.clear(_tag(template_id))
            removed = self.configs.pop(template_id, None) is not None
        if removed:
            logger.info(f"Template {template_id} unscheduled")
        return removed

    def sync_template(self, template) -> None:
        """Bring the jobs of a template in line with its active flag and recurrence"""
        if template.is_active and template.recurrence_config:
            self.schedule_template(template.id, template.recurrence_config)
        else:
            self.unschedule_template(template.id)

    def get_active_jobs(self) -> List[Dict[str, Any]]:
        with self.lock:
            jobs = []
            for template_id, config in sorted(self.configs.items()):
                runs = [
                    job.next_run for job in self.scheduler.get_jobs(_tag(template_id))
                    if job.next_run is not None
                ]
                jobs.append({
                    "template_id": template_id,
                    "config": config,
                    "cron_expression": build_cron_expression(config),
                    "next_run": min(runs) if runs else None,
                })
            return jobs

    def _expired(self, template_id: int) -> bool:
        end_date = self.configs.get(template_id, {}).get("end_date")
        return bool(end_date) and self._today().isoformat() > end_date

    def _run_monthly(self, template_id: int, day_of_month: int):
        today = self._today()
        last_day = calendar.monthrange(today.year, today.month)[1]
        if today.day != min(day_of_month, last_day):
            if self._expired(template_id):
                return self._cancel(template_id)
            return None
        return self._run_template(template_id)

    def _cancel(self, template_id: int):
        logger.info(f"Template {template_id} past its end date, job cancelled")
        with self.lock:
            self.configs.pop(template_id, None)
            self.scheduler.clear(_tag(template_id))
        return schedule.CancelJob

    def _run_template(self, template_id: int):
        if self._expired(template_id):
            return self._cancel(template_id)

        db = self._new_session()
        try:
            task, instance = template_service.execute_template(db, template_id, timezone=self.timezone)
            logger.info(f"Scheduled run of template {template_id}: task {task.id} created")
        except Exception as e:
            # A failing run must not stop the loop
            db.rollback()
            logger.error(f"Scheduled run of template {template_id} failed: {e}")
        finally:
            db.close()
        return None

    def run_pending(self) -> None:
        self.scheduler.run_pending()

    def initialize(self) -> int:
        """Schedule every active template with a recurrence, then start the loop"""
        db = self._new_session()
        try:
            count = 0
            for template in template_service.get_active_templates(db):
                if not template.recurrence_config:
                    continue
                try:
                    self.schedule_template(template.id, template.recurrence_config)
                    count += 1
                except ValueError as e:
                    logger.warning(f"Template {template.id} not scheduled: {e}")
        finally:
            db.close()

        logger.info(f"Template scheduler initialized with {count} job(s)")
        self.start()
        return count

    def start(self) -> None:
        with self.lock:
            if self.thread is not None and self.thread.is_alive() and not self._stop.is_set():
                logger.info("Template scheduler already running")
                return
            # one stop event per loop
            self._stop = threading.Event()
            self.thread = threading.Thread(
                target=self._loop, args=(self._stop,), name="template-scheduler", daemon=True
            )
            self.thread.start()

    def _loop(self, stop: threading.Event) -> None:
        while not stop.is_set():
            try:
                self.run_pending()
            except Exception as e:
                logger.error(f"Template scheduler tick failed: {e}")
            stop.wait(settings.SCHEDULER_POLL_SECONDS)
        logger.info("Template scheduler stopped")

    def is_running(self) -> bool:
        with self.lock:
            return bool(self.thread and self.thread.is_alive() and not self._stop.is_set())

    def shutdown(self, timeout: float = 5.0) -> None:
        with self.lock:
            self._stop.set()
            thread, self.thread = self.thread, None
            self.scheduler.clear()
            self.configs.clear()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("Template scheduler shut down")


template_scheduler = TemplateScheduler()
