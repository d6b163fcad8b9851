from datetime import date

from insuratask.models.calendar_sync import CalendarSyncAudit, TaskCalendarMapping
from insuratask.models.task import Task
from insuratask.schemas.calendar_sync import DateRange, SyncOptions, SyncResult
from insuratask.services import calendar_store, task_service
from insuratask.services import calendar_sync_service
from insuratask.services.calendar_sync_service import (
    CalendarSyncService, category_for_color, event_due, is_insuratask_event,
    strip_marker, task_to_event
)

TODAY = date.today().isoformat()


def _service(db, fake_calendar):
    return CalendarSyncService(db, fake_calendar, timezone="Europe/Rome")


def _task(db, **fields):
    data = {"title": "Chiamare Rossi", "category": "calls", "due_date": TODAY, "due_time": "11:00"}
    data.update(fields)
    return task_service.create_task(db, data)


# ========== MAPPING HELPERS ==========
def test_marker_detection():
    assert is_insuratask_event({"description": "Note\n\n[InsuraTask - ID: 4]"})
    assert is_insuratask_event({"summary": "InsuraTask - Chiamata"})
    assert not is_insuratask_event({"summary": "Dentista", "description": None})


def test_strip_marker():
    assert strip_marker("Portare documenti\n\n[InsuraTask - ID: 4]") == "Portare documenti"
    assert strip_marker("[InsuraTask - ID: 4]") is None
    assert strip_marker(None) is None


def test_category_for_color():
    assert category_for_color("11") == "claims"
    assert category_for_color("9") == "calls"
    assert category_for_color("7") == "appointments"
    assert category_for_color(None) == "appointments"


def test_event_due_converts_to_local_time():
    assert event_due({"start": {"dateTime": "2026-03-10T09:00:00Z"}}, "Europe/Rome") == ("2026-03-10", "10:00")
    assert event_due({"start": {"date": "2026-03-10"}}, "Europe/Rome") == ("2026-03-10", None)
    assert event_due({}, "Europe/Rome") == (None, None)


def test_task_to_event(db):
    task = _task(db, description="Rinnovo RC auto", category="claims", due_time=None)
    body = task_to_event(task, "Europe/Rome")
    assert body["summary"] == "Chiamare Rossi"
    assert body["description"] == f"Rinnovo RC auto\n\n[InsuraTask - ID: {task.id}]"
    assert body["start"] == {"dateTime": f"{TODAY}T09:00:00", "timeZone": "Europe/Rome"}
    assert body["end"] == {"dateTime": f"{TODAY}T10:00:00", "timeZone": "Europe/Rome"}
    assert body["colorId"] == "11"


# ========== SYNC PASS ==========
def test_sync_without_config_fails(db, fake_calendar):
    result = _service(db, fake_calendar).perform_sync()
    assert result.success is False
    assert result.errors == ["Google Calendar not configured or sync disabled"]


def test_sync_disabled_fails(db, fake_calendar, calendar_config):
    calendar_store.update_config(db, calendar_config, {"sync_enabled": False})
    result = _service(db, fake_calendar).perform_sync()
    assert result.success is False


def test_import_creates_tasks_from_events(db, fake_calendar, calendar_config):
    fake_calendar.add_event("Perizia sinistro", start="2026-03-10T14:30:00+01:00",
                            description="Via Roma 1", color_id="11")
    fake_calendar.add_event("Ferie", start="2026-03-12", all_day=True)
    fake_calendar.add_event("Già nostra", description="[InsuraTask - ID: 99]")
    fake_calendar.add_event(None)

    result = _service(db, fake_calendar).perform_sync(SyncOptions(direction="import"))

    assert result.success is True
    assert result.tasks_created == 2
    tasks = dict((t.title, t) for t in db.query(Task).all())
    assert set(tasks) == {"Perizia sinistro", "Ferie"}
    assert tasks["Perizia sinistro"].category == "claims"
    assert tasks["Perizia sinistro"].due_date == "2026-03-10"
    assert tasks["Perizia sinistro"].due_time == "14:30"
    assert tasks["Perizia sinistro"].description == "Via Roma 1"
    assert tasks["Ferie"].due_time is None
    assert db.query(TaskCalendarMapping).count() == 2


def test_export_creates_events_for_tasks(db, fake_calendar, calendar_config):
    task = _task(db)
    _task(db, title="Senza scadenza", due_date=None, due_time=None)

    result = _service(db, fake_calendar).perform_sync(SyncOptions(direction="export"))

    assert result.events_created == 1
    mapping = calendar_store.get_mapping_by_task(db, task.id)
    assert mapping.calendar_id == "agenda@example.com"
    event = fake_calendar.events[mapping.google_event_id]
    assert event["summary"] == "Chiamare Rossi"
    assert f"[InsuraTask - ID: {task.id}]" in event["description"]


def test_second_pass_is_idle(db, fake_calendar, calendar_config):
    fake_calendar.add_event("Appuntamento cliente")
    _task(db)
    service = _service(db, fake_calendar)
    service.perform_sync()

    result = service.perform_sync()
    assert result.success is True
    assert (result.tasks_created, result.tasks_updated, result.events_created, result.events_updated) == (0, 0, 0, 0)


def test_event_change_is_pulled(db, fake_calendar, calendar_config):
    event = fake_calendar.add_event("Appuntamento cliente")
    service = _service(db, fake_calendar)
    service.perform_sync()

    fake_calendar.touch(event["id"], summary="Appuntamento spostato", start={"dateTime": "2026-03-11T15:00:00+01:00"})
    result = service.perform_sync()

    assert result.tasks_updated == 1
    task = task_service.get_task(db, calendar_store.get_mapping_by_event(db, event["id"]).task_id)
    assert task.title == "Appuntamento spostato"
    assert task.due_date == "2026-03-11"
    assert task.due_time == "15:00"


def test_task_change_is_pushed(db, fake_calendar, calendar_config):
    task = _task(db)
    service = _service(db, fake_calendar)
    service.perform_sync()

    task_service.update_task(db, task.id, {"title": "Richiamare Rossi"})
    result = service.perform_sync()

    assert result.events_updated == 1
    mapping = calendar_store.get_mapping_by_task(db, task.id)
    assert fake_calendar.events[mapping.google_event_id]["summary"] == "Richiamare Rossi"


def test_direction_import_does_not_push(db, fake_calendar, calendar_config):
    task = _task(db)
    service = _service(db, fake_calendar)
    service.perform_sync()

    task_service.update_task(db, task.id, {"title": "Richiamare Rossi"})
    result = service.perform_sync(SyncOptions(direction="import"))
    assert result.events_updated == 0


def _both_changed(db, fake_calendar):
    event = fake_calendar.add_event("Sopralluogo")
    service = _service(db, fake_calendar)
    service.perform_sync()
    mapping = calendar_store.get_mapping_by_event(db, event["id"])

    task_service.update_task(db, mapping.task_id, {"title": "Sopralluogo (task)"})
    fake_calendar.touch(event["id"], summary="Sopralluogo (evento)")
    return service, mapping.task_id, event["id"]


def test_conflict_keep_newest_takes_the_event(db, fake_calendar, calendar_config):
    service, task_id, _ = _both_changed(db, fake_calendar)
    result = service.perform_sync()
    assert result.tasks_updated == 1
    assert task_service.get_task(db, task_id).title == "Sopralluogo (evento)"


def test_conflict_keep_task(db, fake_calendar, calendar_config):
    service, task_id, event_id = _both_changed(db, fake_calendar)
    result = service.perform_sync(SyncOptions(conflict_resolution="keep_task"))
    assert result.events_updated == 1
    assert fake_calendar.events[event_id]["summary"] == "Sopralluogo (task)"


def test_conflict_keep_event(db, fake_calendar, calendar_config):
    service, task_id, event_id = _both_changed(db, fake_calendar)
    result = service.perform_sync(SyncOptions(conflict_resolution="keep_event"))
    assert result.tasks_updated == 1
    assert result.events_updated == 0
    assert task_service.get_task(db, task_id).title == "Sopralluogo (evento)"


def test_conflict_strategy_respects_direction(db, fake_calendar, calendar_config):
    """An import pass never writes to Google, an export pass never writes to tasks"""
    service, task_id, event_id = _both_changed(db, fake_calendar)

    result = service.perform_sync(SyncOptions(direction="import", conflict_resolution="keep_task"))
    assert result.events_updated == 0
    assert fake_calendar.events[event_id]["summary"] == "Sopralluogo (evento)"

    march = DateRange(start="2026-03-01", end="2026-03-31")
    result = service.perform_sync(SyncOptions(direction="export", conflict_resolution="keep_event", date_range=march))
    assert result.tasks_updated == 0
    assert task_service.get_task(db, task_id).title == "Sopralluogo (task)"


def test_conflict_manual_dry_run_reports_only(db, fake_calendar, calendar_config):
    service, task_id, event_id = _both_changed(db, fake_calendar)
    result = service.perform_sync(SyncOptions(conflict_resolution="manual", dry_run=True))

    assert [c.type for c in result.conflicts] == ["task_event_mismatch"]
    assert result.conflicts[0].task_id == task_id
    assert calendar_store.get_mapping_by_task(db, task_id).sync_status == "synced"


def test_conflict_manual_marks_mapping(db, fake_calendar, calendar_config):
    service, task_id, event_id = _both_changed(db, fake_calendar)
    result = service.perform_sync(SyncOptions(conflict_resolution="manual"))

    mapping = calendar_store.get_mapping_by_task(db, task_id)
    assert mapping.sync_status == "conflict"
    assert len(result.conflicts) == 1
    assert result.conflicts[0].type == "task_event_mismatch"
    assert result.conflicts[0].event_id == event_id
    assert task_service.get_task(db, task_id).title == "Sopralluogo (task)"
    assert fake_calendar.events[event_id]["summary"] == "Sopralluogo (evento)"


def test_dry_run_changes_nothing(db, fake_calendar, calendar_config):
    fake_calendar.add_event("Appuntamento cliente")
    _task(db)

    result = _service(db, fake_calendar).perform_sync(SyncOptions(dry_run=True))

    assert result.tasks_created == 1
    assert result.events_created == 1
    assert db.query(Task).count() == 1
    assert db.query(TaskCalendarMapping).count() == 0
    assert len(fake_calendar.events) == 1
    db.refresh(calendar_config)
    assert calendar_config.last_sync_at is None


def test_deleted_event_drops_mapping_keeps_task(db, fake_calendar, calendar_config):
    task = _task(db)
    service = _service(db, fake_calendar)
    service.perform_sync()
    mapping = calendar_store.get_mapping_by_task(db, task.id)
    del fake_calendar.events[mapping.google_event_id]

    service.perform_sync(SyncOptions(direction="import"))
    assert calendar_store.get_mapping_by_task(db, task.id) is not None

    service.perform_sync(SyncOptions(direction="export"))
    assert calendar_store.get_mapping_by_task(db, task.id) is None
    assert task_service.get_task(db, task.id) is not None


def test_insert_failure_is_collected(db, fake_calendar, calendar_config):
    task = _task(db)
    fake_calendar.fail_inserts = True

    result = _service(db, fake_calendar).perform_sync()

    assert result.success is False
    assert result.errors == [f"Task {task.id}: event insert failed (HTTP 500)"]


def test_sync_writes_audit_and_last_sync(db, fake_calendar, calendar_config):
    _service(db, fake_calendar).perform_sync()

    audit = db.query(CalendarSyncAudit).all()
    assert len(audit) == 1
    assert audit[0].operation == "sync"
    assert audit[0].entity_id == "agenda@example.com"
    assert audit[0].success is True
    db.refresh(calendar_config)
    assert calendar_config.last_sync_at is not None


def test_task_delete_removes_mapping(db, fake_calendar, calendar_config):
    task = _task(db)
    _service(db, fake_calendar).perform_sync()

    task_service.delete_task(db, task.id)
    db.expire_all()
    assert db.query(TaskCalendarMapping).count() == 0


# ========== SINGLE TASK ==========
def test_sync_single_task_creates_then_updates(db, fake_calendar, calendar_config):
    task = _task(db)
    service = _service(db, fake_calendar)

    first = service.sync_single_task(task.id)
    assert first["success"] is True
    assert first["event_id"] in fake_calendar.events

    task_service.update_task(db, task.id, {"title": "Richiamare"})
    second = service.sync_single_task(task.id)
    assert second == {"success": True, "event_id": first["event_id"]}
    assert fake_calendar.events[first["event_id"]]["summary"] == "Richiamare"


def test_sync_single_task_needs_due_date(db, fake_calendar, calendar_config):
    task = _task(db, due_date=None, due_time=None)
    result = _service(db, fake_calendar).sync_single_task(task.id)
    assert result == {"success": False, "error": "Task needs a due date to be synced"}


def test_sync_single_task_without_config(db, fake_calendar):
    task = _task(db)
    result = _service(db, fake_calendar).sync_single_task(task.id)
    assert result["success"] is False


def test_unsync_task_deletes_event(db, fake_calendar, calendar_config):
    task = _task(db)
    service = _service(db, fake_calendar)
    event_id = service.sync_single_task(task.id)["event_id"]

    assert service.unsync_task(task.id) == {"success": True}
    assert event_id not in fake_calendar.events
    assert calendar_store.get_mapping_by_task(db, task.id) is None


# ========== CONFLICT RESOLUTION ==========
def _conflicted(db, fake_calendar):
    task = _task(db, title="Versione task")
    event = fake_calendar.add_event("Versione evento", start=f"{TODAY}T16:00:00+01:00")
    calendar_store.create_mapping(db, task.id, event["id"], "agenda@example.com", sync_status="conflict")
    return task, event


def test_resolve_keep_task(db, fake_calendar, calendar_config):
    task, event = _conflicted(db, fake_calendar)
    outcome = _service(db, fake_calendar).resolve_conflicts([{"task_id": task.id, "resolution": "keep_task"}])

    assert outcome == {"resolved": 1, "skipped": 0, "errors": []}
    assert fake_calendar.events[event["id"]]["summary"] == "Versione task"
    assert calendar_store.get_mapping_by_task(db, task.id).sync_status == "synced"


def test_resolve_keep_event(db, fake_calendar, calendar_config):
    task, event = _conflicted(db, fake_calendar)
    outcome = _service(db, fake_calendar).resolve_conflicts([{"task_id": task.id, "resolution": "keep_event"}])

    assert outcome["resolved"] == 1
    assert task_service.get_task(db, task.id).title == "Versione evento"


def test_resolve_skip_and_unknown(db, fake_calendar, calendar_config):
    task, _ = _conflicted(db, fake_calendar)
    outcome = _service(db, fake_calendar).resolve_conflicts([
        {"task_id": task.id, "resolution": "skip"},
        {"task_id": 999, "resolution": "keep_task"},
    ])
    assert outcome["resolved"] == 0
    assert outcome["skipped"] == 1
    assert outcome["errors"] == ["Task 999: no calendar mapping"]
    assert calendar_store.get_mapping_by_task(db, task.id).sync_status == "conflict"


def test_sync_status(db, fake_calendar, calendar_config):
    _conflicted(db, fake_calendar)
    status = _service(db, fake_calendar).get_sync_status()
    assert status["is_configured"] is True
    assert status["is_enabled"] is True
    assert status["stats"]["total_mappings"] == 1
    assert status["stats"]["conflicted_mappings"] == 1


# ========== FAILURES AND CONFLICT REPORT ==========
def test_task_without_due_date_is_not_pushed(db, fake_calendar, calendar_config):
    event = fake_calendar.add_event("Appuntamento cliente")
    service = _service(db, fake_calendar)
    service.perform_sync()
    mapping = calendar_store.get_mapping_by_event(db, event["id"])

    task_service.update_task(db, mapping.task_id, {"due_date": None, "due_time": None})
    result = service.perform_sync()

    assert result.success is True
    assert result.events_updated == 0
    assert fake_calendar.events[event["id"]]["summary"] == "Appuntamento cliente"


def test_unexpected_item_error_is_collected(db, fake_calendar, calendar_config, monkeypatch):
    fake_calendar.add_event("Evento rotto")
    fake_calendar.add_event("Evento buono")

    original = calendar_sync_service.event_to_task_data

    def broken(event, timezone):
        if event["summary"] == "Evento rotto":
            raise ValueError("unreadable start")
        return original(event, timezone)

    monkeypatch.setattr(calendar_sync_service, "event_to_task_data", broken)
    result = _service(db, fake_calendar).perform_sync(SyncOptions(direction="import"))

    assert result.success is False
    assert result.errors == ["Event evt-1: unreadable start"]
    assert result.tasks_created == 1
    assert db.query(CalendarSyncAudit).filter(CalendarSyncAudit.success == False).count() == 1


def test_conflict_with_deleted_event_drops_mapping(db, fake_calendar, calendar_config):
    task, event = _conflicted(db, fake_calendar)
    del fake_calendar.events[event["id"]]

    result = _service(db, fake_calendar).perform_sync(SyncOptions(direction="import"))

    assert result.conflicts == []
    assert calendar_store.get_mapping_by_task(db, task.id) is None
    assert task_service.get_task(db, task.id) is not None


def test_conflict_report_with_both_sides_gone(db, fake_calendar, calendar_config, monkeypatch):
    task, event = _conflicted(db, fake_calendar)
    del fake_calendar.events[event["id"]]
    monkeypatch.setattr(task_service, "get_task", lambda db, task_id: None)

    result = SyncResult()
    _service(db, fake_calendar)._report_conflicts(SyncOptions(), result)

    assert result.conflicts == []
    assert db.query(TaskCalendarMapping).count() == 0


def test_conflict_report_with_task_gone(db, fake_calendar, calendar_config, monkeypatch):
    """deleted_entity is reported; manual keeps the mapping, other strategies drop it"""
    _conflicted(db, fake_calendar)
    monkeypatch.setattr(task_service, "get_task", lambda db, task_id: None)
    service = _service(db, fake_calendar)

    result = SyncResult()
    service._report_conflicts(SyncOptions(conflict_resolution="manual"), result)
    assert [c.type for c in result.conflicts] == ["deleted_entity"]
    assert result.conflicts[0].suggested_action == "delete_mapping"
    assert db.query(TaskCalendarMapping).count() == 1

    result = SyncResult()
    service._report_conflicts(SyncOptions(), result)
    assert [c.type for c in result.conflicts] == ["deleted_entity"]
    assert db.query(TaskCalendarMapping).count() == 0


def test_resolve_keep_task_needs_due_date(db, fake_calendar, calendar_config):
    task, event = _conflicted(db, fake_calendar)
    task_service.update_task(db, task.id, {"due_date": None})

    outcome = _service(db, fake_calendar).resolve_conflicts([{"task_id": task.id, "resolution": "keep_task"}])
    assert outcome["resolved"] == 0
    assert outcome["errors"] == [f"Task {task.id}: a due date is needed to update the event"]
    assert fake_calendar.events[event["id"]]["summary"] == "Versione evento"
