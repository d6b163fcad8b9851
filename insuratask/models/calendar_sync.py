"""Google Calendar integration tables: account config, task/event mapping, sync audit"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey, UniqueConstraint
from datetime import datetime
from insuratask.core.database import Base


class GoogleCalendarConfig(Base):
    __tablename__ = "google_calendar_config"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True, default="default")
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)  # Google only sends it on first consent
    token_expires_at = Column(DateTime, nullable=False)
    calendar_id = Column(String, nullable=True)
    sync_enabled = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime, nullable=True)
    sync_direction = Column(String(20), nullable=False, default="bidirectional")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class TaskCalendarMapping(Base):
    __tablename__ = "task_calendar_mapping"
    __table_args__ = (UniqueConstraint("task_id", "google_event_id"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    google_event_id = Column(String, nullable=False, index=True)
    calendar_id = Column(String, nullable=False)
    last_synced_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    sync_status = Column(String(20), nullable=False, default="synced")  # synced, conflict, pending
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class CalendarSyncAudit(Base):
    __tablename__ = "calendar_sync_audit"

    id = Column(Integer, primary_key=True, index=True)
    operation = Column(String(20), nullable=False)  # "sync", "create", "update", "delete"
    entity_type = Column(String(20), nullable=False)  # "task", "event", "calendar"
    entity_id = Column(String, nullable=False)
    details = Column(Text, nullable=False)  # JSON
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
