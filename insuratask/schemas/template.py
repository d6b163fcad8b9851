from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Annotated, Optional, List, Literal, Dict, Any

from insuratask.schemas.task import Category, Priority, TaskResponse, TIME_PATTERN, DATE_PATTERN


class RecurrenceConfig(BaseModel):
    """When a template fires: daily / weekly / monthly at HH:MM"""
    type: Literal["daily", "weekly", "monthly"]
    interval: int = Field(default=1, ge=1, le=365)
    days_of_week: Optional[List[Annotated[int, Field(ge=0, le=6)]]] = None  # 0 = Sunday ... 6 = Saturday
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    time: str = Field(default="09:00", pattern=TIME_PATTERN)
    end_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    category: Category
    title_template: str = Field(min_length=1, max_length=200)
    description_template: Optional[str] = None
    priority: Priority = "medium"
    recurrence_config: Optional[RecurrenceConfig] = None
    is_active: bool = True


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    category: Optional[Category] = None
    title_template: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description_template: Optional[str] = None
    priority: Optional[Priority] = None
    recurrence_config: Optional[RecurrenceConfig] = None
    is_active: Optional[bool] = None


class TemplateToggle(BaseModel):
    is_active: bool


class TemplateExecuteRequest(BaseModel):
    context: Dict[str, Any] = Field(default_factory=dict)


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    category: str
    title_template: str
    description_template: Optional[str]
    priority: str
    recurrence_config: Optional[RecurrenceConfig]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateListItem(TemplateResponse):
    instance_count: int = 0
    last_executed: Optional[datetime] = None


class TemplateInstanceResponse(BaseModel):
    id: int
    template_id: int
    task_id: Optional[int]
    scheduled_date: str
    executed_at: Optional[datetime]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateExecutionResponse(BaseModel):
    task: TaskResponse
    instance: TemplateInstanceResponse


class CronJobInfo(BaseModel):
    template_id: int
    config: RecurrenceConfig
    cron_expression: str
    next_run: Optional[datetime] = None


class CronStatusResponse(BaseModel):
    running: bool
    total_jobs: int
    jobs: List[CronJobInfo]
