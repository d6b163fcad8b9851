"""Storage for the Google Calendar integration: account config, task/event mappings and the sync audit log"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from insuratask.models.calendar_sync import GoogleCalendarConfig, TaskCalendarMapping, CalendarSyncAudit

DEFAULT_USER = "default"


# ---- config ----

def get_config(db: Session, user_id: str = DEFAULT_USER) -> Optional[GoogleCalendarConfig]:
    return db.query(GoogleCalendarConfig).filter(GoogleCalendarConfig.user_id == user_id).first()


def save_config(
    db: Session,
    access_token: str,
    refresh_token: Optional[str],
    expires_at: datetime,
    calendar_id: Optional[str] = None,
    user_id: str = DEFAULT_USER
) -> GoogleCalendarConfig:
    """Insert or replace the tokens of an account. A missing refresh token keeps the stored one."""
    config = get_config(db, user_id)
    if config is None:
        config = GoogleCalendarConfig(user_id=user_id, sync_enabled=True, sync_direction="bidirectional")
        db.add(config)

    config.access_token = access_token
    if refresh_token:
        config.refresh_token = refresh_token
    config.token_expires_at = expires_at
    if calendar_id:
        config.calendar_id = calendar_id
    config.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(config)
    return config


def update_config(db: Session, config: GoogleCalendarConfig, updates: Dict[str, Any]) -> GoogleCalendarConfig:
    for field, value in updates.items():
        setattr(config, field, value)
    config.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(config)
    return config


def update_tokens(
    db: Session,
    config: GoogleCalendarConfig,
    access_token: str,
    refresh_token: Optional[str],
    expires_at: datetime
) -> GoogleCalendarConfig:
    updates = {"access_token": access_token, "token_expires_at": expires_at}
    if refresh_token:
        updates["refresh_token"] = refresh_token
    return update_config(db, config, updates)


def touch_last_sync(db: Session, config: GoogleCalendarConfig) -> None:
    config.last_sync_at = datetime.utcnow()
    db.commit()


def delete_config(db: Session, user_id: str = DEFAULT_USER) -> bool:
    config = get_config(db, user_id)
    if not config:
        return False
    db.delete(config)
    db.commit()
    return True


# ---- mappings ----

def get_mapping_by_task(db: Session, task_id: int) -> Optional[TaskCalendarMapping]:
    return db.query(TaskCalendarMapping).filter(TaskCalendarMapping.task_id == task_id).first()


def get_mapping_by_event(db: Session, event_id: str) -> Optional[TaskCalendarMapping]:
    return db.query(TaskCalendarMapping).filter(TaskCalendarMapping.google_event_id == event_id).first()


def get_mappings(db: Session, sync_status: Optional[str] = None) -> List[TaskCalendarMapping]:
    query = db.query(TaskCalendarMapping)
    if sync_status:
        query = query.filter(TaskCalendarMapping.sync_status == sync_status)
    return query.order_by(TaskCalendarMapping.id).all()


def create_mapping(
    db: Session,
    task_id: int,
    event_id: str,
    calendar_id: str,
    synced_at: Optional[datetime] = None,
    sync_status: str = "synced"
) -> TaskCalendarMapping:
    now = datetime.utcnow()
    mapping = TaskCalendarMapping(
        task_id=task_id,
        google_event_id=event_id,
        calendar_id=calendar_id,
        last_synced_at=synced_at or now,
        sync_status=sync_status,
        created_at=now,
        updated_at=now
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


def mark_mapping(
    db: Session,
    mapping: TaskCalendarMapping,
    sync_status: str,
    synced_at: Optional[datetime] = None
) -> TaskCalendarMapping:
    mapping.sync_status = sync_status
    if synced_at is not None:
        mapping.last_synced_at = synced_at
    mapping.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(mapping)
    return mapping


def delete_mapping(db: Session, mapping: TaskCalendarMapping) -> None:
    db.delete(mapping)
    db.commit()


def get_sync_stats(db: Session) -> Dict[str, Any]:
    def count(status: str) -> int:
        return db.query(TaskCalendarMapping).filter(TaskCalendarMapping.sync_status == status).count()

    config = get_config(db)
    return {
        "total_mappings": db.query(TaskCalendarMapping).count(),
        "synced_mappings": count("synced"),
        "conflicted_mappings": count("conflict"),
        "pending_mappings": count("pending"),
        "last_sync_time": config.last_sync_at if config else None,
    }


# ---- audit ----

def log_audit(
    db: Session,
    operation: str,
    entity_type: str,
    entity_id: str,
    details: Dict[str, Any],
    success: bool,
    error_message: Optional[str] = None
) -> CalendarSyncAudit:
    entry = CalendarSyncAudit(
        operation=operation,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=json.dumps(details, default=str),
        success=success,
        error_message=error_message,
        timestamp=datetime.utcnow()
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def get_audit(db: Session, limit: int = 50) -> List[Dict[str, Any]]:
    rows = db.query(CalendarSyncAudit).order_by(
        CalendarSyncAudit.timestamp.desc(), CalendarSyncAudit.id.desc()
    ).limit(limit).all()
    return [
        {
            "id": row.id,
            "operation": row.operation,
            "entity_type": row.entity_type,
            "entity_id": row.entity_id,
            "details": json.loads(row.details) if row.details else {},
            "success": row.success,
            "error_message": row.error_message,
            "timestamp": row.timestamp,
        }
        for row in rows
    ]
