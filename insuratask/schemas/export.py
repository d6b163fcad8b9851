from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Literal

from insuratask.schemas.task import Category, Priority, Status, TaskResponse, DATE_PATTERN


class ExportFilters(BaseModel):
    start_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    end_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    category: Optional[Category] = None
    status: Optional[Status] = None
    priority: Optional[Priority] = None
    client_name: Optional[str] = None


class ExportRequest(BaseModel):
    format: Literal["pdf", "excel"]
    filters: ExportFilters = Field(default_factory=ExportFilters)
    include_stats: bool = True
    title: Optional[str] = None


class ExportPreviewRequest(BaseModel):
    filters: ExportFilters = Field(default_factory=ExportFilters)


class ExportStats(BaseModel):
    total_tasks: int
    completed_tasks: int
    overdue_tasks: int
    tasks_by_category: Dict[str, int]
    tasks_by_priority: Dict[str, int]
    completion_rate: float


class ExportPreviewResponse(BaseModel):
    tasks_count: int
    stats: ExportStats
    sample_tasks: List[TaskResponse]
