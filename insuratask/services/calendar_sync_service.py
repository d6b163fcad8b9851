"""
Bidirectional sync between tasks and Google Calendar events.

A sync pass is linear: import events, export tasks, then report conflicts.
Each task/event pair is linked by a TaskCalendarMapping whose
`last_synced_at` tells which side changed since the previous pass. Per-item
failures are collected in the result, never raised.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Tuple

import pytz
from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from insuratask.core.config import settings
from insuratask.core.errors import GoogleCalendarError
from insuratask.models.calendar_sync import TaskCalendarMapping
from insuratask.models.task import Task
from insuratask.schemas.calendar_sync import ConflictItem, SyncOptions, SyncResult
from insuratask.services import calendar_store, task_service

logger = logging.getLogger(__name__)

EVENT_MARKER = "[InsuraTask"
TITLE_MARKER = "InsuraTask -"

# Google Calendar colorId per category
CATEGORY_COLORS = {
    "calls": "9",         # blueberry
    "quotes": "10",       # basil
    "claims": "11",       # tomato
    "documents": "5",     # banana
    "appointments": "3",  # grape
}
COLOR_CATEGORIES = dict((color, category) for category, color in CATEGORY_COLORS.items())
DEFAULT_CATEGORY = "appointments"


def is_insuratask_event(event: Dict[str, Any]) -> bool:
    description = event.get("description") or ""
    summary = event.get("summary") or ""
    return EVENT_MARKER in description or summary.startswith(TITLE_MARKER)


def strip_marker(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    cleaned = description.split("\n\n" + EVENT_MARKER)[0]
    cleaned = cleaned.split(EVENT_MARKER)[0].rstrip()
    return cleaned or None


def category_for_color(color_id: Optional[str]) -> str:
    return COLOR_CATEGORIES.get(color_id or "", DEFAULT_CATEGORY)


def color_for_category(category: str) -> str:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[DEFAULT_CATEGORY])


def event_updated_at(event: Dict[str, Any]) -> Optional[datetime]:
    """Last modification of an event, as naive UTC like the rest of the database"""
    updated = event.get("updated")
    if not updated:
        return None
    parsed = date_parser.isoparse(updated)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(pytz.utc).replace(tzinfo=None)
    return parsed


def event_due(event: Dict[str, Any], timezone: str) -> Tuple[Optional[str], Optional[str]]:
    start = event.get("start") or {}
    if start.get("dateTime"):
        moment = date_parser.isoparse(start["dateTime"])
        if moment.tzinfo is not None:
            moment = moment.astimezone(pytz.timezone(timezone))
        return moment.date().isoformat(), moment.strftime("%H:%M")
    if start.get("date"):
        return start["date"], None
    return None, None


def event_to_task_data(event: Dict[str, Any], timezone: str) -> Dict[str, Any]:
    due_date, due_time = event_due(event, timezone)
    return {
        "title": event.get("summary"),
        "description": strip_marker(event.get("description")),
        "category": category_for_color(event.get("colorId")),
        "client": None,
        "priority": "medium",
        "status": "pending",
        "due_date": due_date,
        "due_time": due_time,
        "completed": False,
    }


def event_to_task_update(event: Dict[str, Any], timezone: str) -> Dict[str, Any]:
    due_date, due_time = event_due(event, timezone)
    updates = {
        "title": event.get("summary"),
        "description": strip_marker(event.get("description")),
        "due_date": due_date,
        "due_time": due_time,
    }
    if not updates["title"]:
        updates.pop("title")
    return updates


def task_to_event(task: Task, timezone: str) -> Dict[str, Any]:
    if not task.due_date:
        raise ValueError(f"Task {task.id} has no due date")
    start = datetime.strptime(f"{task.due_date} {task.due_time or '09:00'}", "%Y-%m-%d %H:%M")
    end = start + timedelta(hours=1)
    description = f"{task.description or ''}\n\n{EVENT_MARKER} - ID: {task.id}]"
    return {
        "summary": task.title,
        "description": description.lstrip("\n") if not task.description else description,
        "start": {"dateTime": start.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": timezone},
        "end": {"dateTime": end.strftime("%Y-%m-%dT%H:%M:%S"), "timeZone": timezone},
        "colorId": color_for_category(task.category),
        "extendedProperties": {"private": {"insuratask_task_id": str(task.id)}},
    }


class CalendarSyncService:
    def __init__(self, db: Session, client=None, timezone: Optional[str] = None):
        self.db = db
        self.client = client
        self.timezone = timezone or settings.CALENDAR_TIMEZONE

    # ---- helpers ----

    def _window(self, options: SyncOptions) -> Tuple[str, str]:
        if options.date_range:
            return options.date_range.start, options.date_range.end
        today = date.today()
        start = today - timedelta(days=settings.SYNC_LOOKBACK_DAYS)
        end = today + timedelta(days=settings.SYNC_LOOKAHEAD_DAYS)
        return start.isoformat(), end.isoformat()

    def _mark_synced(self, mapping: TaskCalendarMapping, event: Optional[Dict[str, Any]] = None) -> None:
        synced_at = datetime.utcnow()
        if event:
            # never behind Google's own timestamp, or the next pass sees a change
            updated = event_updated_at(event)
            if updated and updated > synced_at:
                synced_at = updated
        calendar_store.mark_mapping(self.db, mapping, "synced", synced_at)

    def _pull(self, task: Task, mapping: TaskCalendarMapping, event: Dict[str, Any], result: SyncResult, dry_run: bool):
        if not dry_run:
            task_service.update_task(self.db, task.id, event_to_task_update(event, self.timezone))
            self._mark_synced(mapping, event)
        result.tasks_updated += 1

    def _push(self, task: Task, mapping: TaskCalendarMapping, result: SyncResult, dry_run: bool):
        if not dry_run:
            event = self.client.update_event(mapping.calendar_id, mapping.google_event_id, task_to_event(task, self.timezone))
            self._mark_synced(mapping, event)
        result.events_updated += 1

    def _sync_pair(
        self,
        task: Task,
        mapping: TaskCalendarMapping,
        event: Optional[Dict[str, Any]],
        options: SyncOptions,
        result: SyncResult
    ) -> None:
        """Reconcile one mapped task/event pair"""
        if event is None:
            # Event deleted in Google: forget the link, keep the task
            if not options.dry_run:
                calendar_store.delete_mapping(self.db, mapping)
            return
        if mapping.sync_status == "conflict":
            return

        updated = event_updated_at(event)
        event_changed = updated is not None and updated > mapping.last_synced_at
        task_changed = task.updated_at > mapping.last_synced_at
        can_pull = options.direction != "export"
        # an event needs a due date
        can_push = options.direction != "import" and bool(task.due_date)

        if event_changed and task_changed:
            strategy = options.conflict_resolution
            if strategy == "keep_newest":
                strategy = "keep_task" if task.updated_at >= updated else "keep_event"

            if strategy == "keep_task":
                if can_push:
                    self._push(task, mapping, result, options.dry_run)
            elif strategy == "keep_event":
                if can_pull:
                    self._pull(task, mapping, event, result, options.dry_run)
            elif options.dry_run:
                result.conflicts.append(self._mismatch(task.id, mapping.google_event_id))
            else:
                calendar_store.mark_mapping(self.db, mapping, "conflict")
        elif event_changed and can_pull:
            self._pull(task, mapping, event, result, options.dry_run)
        elif task_changed and can_push:
            self._push(task, mapping, result, options.dry_run)

    def _collect(self, result: SyncResult, label: str, error: Exception) -> None:
        """Record a failed item and keep the pass going"""
        if not isinstance(error, GoogleCalendarError):
            self.db.rollback()
            logger.exception(f"{label} failed during calendar sync")
        result.errors.append(f"{label}: {error}")

    @staticmethod
    def _mismatch(task_id: int, event_id: str) -> ConflictItem:
        return ConflictItem(
            type="task_event_mismatch",
            task_id=task_id,
            event_id=event_id,
            description=f"Task {task_id} and event {event_id} were both modified",
            suggested_action="keep_task"
        )

    # ---- sync pass ----

    def perform_sync(self, options: Optional[SyncOptions] = None) -> SyncResult:
        options = options or SyncOptions()
        result = SyncResult()

        config = calendar_store.get_config(self.db)
        if not config or not config.sync_enabled or self.client is None:
            result.errors.append("Google Calendar not configured or sync disabled")
            return result

        calendar_id = config.calendar_id or "primary"
        start, end = self._window(options)
        logger.info(f"Calendar sync started: {options.direction}, {start} -> {end}, dry_run={options.dry_run}")

        handled: Set[int] = set()
        events_by_id: Dict[str, Dict[str, Any]] = {}
        try:
            events = self.client.list_events(calendar_id, f"{start}T00:00:00Z", f"{end}T23:59:59Z")
            events_by_id = dict((e["id"], e) for e in events if e.get("id"))
        except GoogleCalendarError as e:
            events = None
            result.errors.append(f"Event fetch failed: {e}")

        if events is not None and options.direction in ("import", "bidirectional"):
            for event in events:
                try:
                    self._import_event(event, calendar_id, options, result, handled)
                except Exception as e:
                    self._collect(result, f"Event {event.get('id')}", e)

        if options.direction in ("export", "bidirectional"):
            for task in task_service.get_tasks_in_range(self.db, start, end):
                task_id = task.id
                if task_id in handled:
                    continue
                try:
                    self._export_task(task, calendar_id, events_by_id, options, result)
                except Exception as e:
                    self._collect(result, f"Task {task_id}", e)

        self._report_conflicts(options, result)

        if not options.dry_run:
            calendar_store.touch_last_sync(self.db, config)

        result.success = not result.errors
        calendar_store.log_audit(
            self.db,
            operation="sync",
            entity_type="calendar",
            entity_id=calendar_id,
            details={"options": options.model_dump(), "result": result.model_dump()},
            success=result.success,
            error_message="; ".join(result.errors) or None
        )
        logger.info(
            f"Calendar sync finished: {result.tasks_created} tasks created, {result.tasks_updated} updated, "
            f"{result.events_created} events created, {result.events_updated} updated, "
            f"{len(result.conflicts)} conflicts, {len(result.errors)} errors"
        )
        return result

    def _import_event(self, event, calendar_id: str, options: SyncOptions, result: SyncResult, handled: Set[int]) -> None:
        if not event.get("summary") or is_insuratask_event(event):
            return

        mapping = calendar_store.get_mapping_by_event(self.db, event["id"])
        if mapping is None:
            data = event_to_task_data(event, self.timezone)
            if not options.dry_run:
                task = task_service.create_task(self.db, data)
                mapping = calendar_store.create_mapping(self.db, task.id, event["id"], calendar_id)
                self._mark_synced(mapping, event)
                handled.add(task.id)
            result.tasks_created += 1
            return

        task = task_service.get_task(self.db, mapping.task_id)
        if task is None:
            if not options.dry_run:
                calendar_store.delete_mapping(self.db, mapping)
            return

        handled.add(task.id)
        self._sync_pair(task, mapping, event, options, result)

    def _export_task(self, task: Task, calendar_id: str, events_by_id, options: SyncOptions, result: SyncResult) -> None:
        mapping = calendar_store.get_mapping_by_task(self.db, task.id)
        if mapping is None:
            if not task.due_date:
                return
            if not options.dry_run:
                event = self.client.insert_event(calendar_id, task_to_event(task, self.timezone))
                mapping = calendar_store.create_mapping(self.db, task.id, event["id"], calendar_id)
                self._mark_synced(mapping, event)
            result.events_created += 1
            return

        event = events_by_id.get(mapping.google_event_id)
        if event is None:
            event = self.client.get_event(mapping.calendar_id, mapping.google_event_id)
        self._sync_pair(task, mapping, event, options, result)

    def _report_conflicts(self, options: SyncOptions, result: SyncResult) -> None:
        for mapping in calendar_store.get_mappings(self.db, "conflict"):
            mapping_id = mapping.id
            try:
                task = task_service.get_task(self.db, mapping.task_id)
                event = self.client.get_event(mapping.calendar_id, mapping.google_event_id)

                if task is None and event is None:
                    if not options.dry_run:
                        calendar_store.delete_mapping(self.db, mapping)
                elif task is None:
                    result.conflicts.append(ConflictItem(
                        type="deleted_entity",
                        event_id=mapping.google_event_id,
                        description=f"Task {mapping.task_id} was deleted but event {mapping.google_event_id} still exists",
                        suggested_action="delete_mapping"
                    ))
                    if options.conflict_resolution != "manual" and not options.dry_run:
                        calendar_store.delete_mapping(self.db, mapping)
                elif event is None:
                    if not options.dry_run:
                        calendar_store.delete_mapping(self.db, mapping)
                else:
                    result.conflicts.append(self._mismatch(task.id, mapping.google_event_id))
            except Exception as e:
                self._collect(result, f"Conflict check of mapping {mapping_id}", e)

    # ---- single task operations ----

    def _calendar_id(self) -> Optional[str]:
        config = calendar_store.get_config(self.db)
        if not config or not config.sync_enabled or self.client is None:
            return None
        return config.calendar_id or "primary"

    def sync_single_task(self, task_id: int) -> Dict[str, Any]:
        task = task_service.get_task(self.db, task_id)
        if task is None:
            return {"success": False, "error": "Task not found"}

        calendar_id = self._calendar_id()
        if calendar_id is None:
            return {"success": False, "error": "Google Calendar not configured"}

        if not task.due_date:
            return {"success": False, "error": "Task needs a due date to be synced"}

        mapping = calendar_store.get_mapping_by_task(self.db, task_id)
        try:
            if mapping is not None:
                event = self.client.get_event(mapping.calendar_id, mapping.google_event_id)
                if event is not None:
                    event = self.client.update_event(
                        mapping.calendar_id, mapping.google_event_id, task_to_event(task, self.timezone)
                    )
                    self._mark_synced(mapping, event)
                    calendar_store.log_audit(self.db, "update", "event", event["id"], {"task_id": task_id}, True)
                    return {"success": True, "event_id": event["id"]}
                # Event gone: relink to a fresh one
                calendar_store.delete_mapping(self.db, mapping)

            event = self.client.insert_event(calendar_id, task_to_event(task, self.timezone))
            mapping = calendar_store.create_mapping(self.db, task_id, event["id"], calendar_id)
            self._mark_synced(mapping, event)
            calendar_store.log_audit(self.db, "create", "event", event["id"], {"task_id": task_id}, True)
            return {"success": True, "event_id": event["id"]}
        except GoogleCalendarError as e:
            calendar_store.log_audit(self.db, "update", "task", task_id, {}, False, str(e))
            return {"success": False, "error": str(e)}

    def unsync_task(self, task_id: int) -> Dict[str, Any]:
        mapping = calendar_store.get_mapping_by_task(self.db, task_id)
        if mapping is None:
            return {"success": True}

        if self.client is not None:
            try:
                self.client.delete_event(mapping.calendar_id, mapping.google_event_id)
            except GoogleCalendarError as e:
                # the mapping goes anyway
                logger.warning(f"Event {mapping.google_event_id} could not be deleted: {e}")

        event_id = mapping.google_event_id
        calendar_store.delete_mapping(self.db, mapping)
        calendar_store.log_audit(self.db, "delete", "event", event_id, {"task_id": task_id}, True)
        return {"success": True}

    def resolve_conflicts(self, resolutions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Apply keep_task / keep_event / skip to conflicted mappings, one per task"""
        outcome = {"resolved": 0, "skipped": 0, "errors": []}

        for item in resolutions:
            task_id = item["task_id"]
            resolution = item["resolution"]

            if resolution == "skip":
                outcome["skipped"] += 1
                continue

            mapping = calendar_store.get_mapping_by_task(self.db, task_id)
            task = task_service.get_task(self.db, task_id)
            if mapping is None or task is None:
                outcome["errors"].append(f"Task {task_id}: no calendar mapping")
                continue
            if self.client is None:
                outcome["errors"].append(f"Task {task_id}: Google Calendar not configured")
                continue
            if resolution == "keep_task" and not task.due_date:
                outcome["errors"].append(f"Task {task_id}: a due date is needed to update the event")
                continue

            try:
                event = self.client.get_event(mapping.calendar_id, mapping.google_event_id)
                if resolution == "keep_task":
                    body = task_to_event(task, self.timezone)
                    if event is None:
                        calendar_id = mapping.calendar_id
                        event = self.client.insert_event(calendar_id, body)
                        calendar_store.delete_mapping(self.db, mapping)
                        mapping = calendar_store.create_mapping(self.db, task_id, event["id"], calendar_id)
                    else:
                        event = self.client.update_event(mapping.calendar_id, mapping.google_event_id, body)
                    self._mark_synced(mapping, event)
                else:
                    if event is None:
                        outcome["errors"].append(f"Task {task_id}: event no longer exists")
                        continue
                    task_service.update_task(self.db, task_id, event_to_task_update(event, self.timezone))
                    self._mark_synced(mapping, event)
                outcome["resolved"] += 1
            except GoogleCalendarError as e:
                outcome["errors"].append(f"Task {task_id}: {e}")

        return outcome

    def get_sync_status(self) -> Dict[str, Any]:
        config = calendar_store.get_config(self.db)
        return {
            "is_configured": config is not None,
            "is_enabled": bool(config and config.sync_enabled),
            "last_sync_time": config.last_sync_at if config else None,
            "stats": calendar_store.get_sync_stats(self.db),
        }
