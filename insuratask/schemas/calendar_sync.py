"""Schemas for the Google Calendar integration endpoints"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Literal, Dict, Any

from insuratask.schemas.task import DATE_PATTERN

SyncDirection = Literal["import", "export", "bidirectional"]
ConflictResolution = Literal["manual", "keep_newest", "keep_task", "keep_event"]


class DateRange(BaseModel):
    start: str = Field(pattern=DATE_PATTERN)
    end: str = Field(pattern=DATE_PATTERN)


class SyncOptions(BaseModel):
    direction: SyncDirection = "bidirectional"
    conflict_resolution: ConflictResolution = "keep_newest"
    dry_run: bool = False
    date_range: Optional[DateRange] = None


class ConflictItem(BaseModel):
    type: Literal["task_event_mismatch", "duplicate_mapping", "deleted_entity"]
    task_id: Optional[int] = None
    event_id: Optional[str] = None
    description: str
    suggested_action: Literal["keep_task", "keep_event", "merge", "delete_mapping"]


class SyncResult(BaseModel):
    success: bool = False
    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_deleted: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_deleted: int = 0
    conflicts: List[ConflictItem] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class AuthCallbackRequest(BaseModel):
    code: str = Field(min_length=1)
    state: str = Field(min_length=1)


class AuthUrlResponse(BaseModel):
    auth_url: str
    state: str


class AuthCallbackResponse(BaseModel):
    user_email: Optional[str]
    user_name: Optional[str]
    calendar_name: str
    calendars_available: int


class CalendarConfigUpdate(BaseModel):
    calendar_id: Optional[str] = None
    sync_enabled: bool = True
    sync_direction: SyncDirection = "bidirectional"


class CalendarConfigResponse(BaseModel):
    """Public view of the stored config: tokens are never exposed"""
    is_configured: bool
    sync_enabled: bool = False
    sync_direction: Optional[str] = None
    calendar_id: Optional[str] = None
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CalendarInfo(BaseModel):
    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    primary: bool = False
    access_role: Optional[str] = None
    time_zone: Optional[str] = None


class SyncStats(BaseModel):
    total_mappings: int
    synced_mappings: int
    conflicted_mappings: int
    pending_mappings: int
    last_sync_time: Optional[datetime] = None


class SyncStatusResponse(BaseModel):
    is_configured: bool
    is_enabled: bool
    last_sync_time: Optional[datetime]
    stats: SyncStats


class TaskCalendarMappingResponse(BaseModel):
    id: int
    task_id: int
    google_event_id: str
    calendar_id: str
    last_synced_at: datetime
    sync_status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConflictsResponse(BaseModel):
    conflicts: List[TaskCalendarMappingResponse]
    pending: List[TaskCalendarMappingResponse]
    total: int


class ConflictResolutionItem(BaseModel):
    task_id: int
    resolution: Literal["keep_task", "keep_event", "skip"]


class ResolveConflictsRequest(BaseModel):
    resolutions: List[ConflictResolutionItem]


class ResolveConflictsResponse(BaseModel):
    resolved: int
    skipped: int
    errors: List[str]


class SyncAuditResponse(BaseModel):
    id: int
    operation: str
    entity_type: str
    entity_id: str
    details: Dict[str, Any]
    success: bool
    error_message: Optional[str]
    timestamp: datetime


class CalendarEventOut(BaseModel):
    id: Optional[str]
    title: str
    start: str
    end: str
    description: str = ""
    location: str = ""
    is_all_day: bool = False
    source: str = "google"


class ConnectionTestResponse(BaseModel):
    user_email: Optional[str]
    calendars_count: int
    last_sync_at: Optional[datetime]
