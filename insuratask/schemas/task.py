"""Pydantic schemas for task request/response validation."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, Literal

Category = Literal["calls", "quotes", "claims", "documents", "appointments"]
Priority = Literal["low", "medium", "high"]
Status = Literal["pending", "completed", "overdue"]

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Category
    client: Optional[str] = None
    priority: Priority = "medium"
    status: Status = "pending"
    due_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    due_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    completed: bool = False


class TaskUpdate(BaseModel):
    """Partial update: only the fields sent by the client are applied."""

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[Category] = None
    client: Optional[str] = None
    priority: Optional[Priority] = None
    status: Optional[Status] = None
    due_date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    due_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    completed: Optional[bool] = None


class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: str
    client: Optional[str]
    priority: str
    status: str
    due_date: Optional[str]
    due_time: Optional[str]
    completed: bool
    completed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaskStats(BaseModel):
    total: int
    pending: int
    completed: int
    overdue: int
    due_today: int


class MessageResponse(BaseModel):
    message: str
