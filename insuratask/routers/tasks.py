from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from insuratask.core.database import get_db
from insuratask.schemas.task import (
    TaskCreate, TaskUpdate, TaskResponse, TaskStats, MessageResponse, Category, Status, DATE_PATTERN
)
from insuratask.services import task_service

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=List[TaskResponse])
def list_tasks(
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None),
    category: Optional[Category] = Query(None),
    status_filter: Optional[Status] = Query(None, alias="status")
):
    # One filter at a time: search, then category, then status
    if search:
        return task_service.search_tasks(db, search)
    if category:
        return task_service.get_tasks_by_category(db, category)
    if status_filter:
        return task_service.get_tasks_by_status(db, status_filter)
    return task_service.get_tasks(db)


@router.get("/stats", response_model=TaskStats)
def stats(db: Session = Depends(get_db)):
    return task_service.get_task_stats(db)


@router.get("/today", response_model=List[TaskResponse])
def today(db: Session = Depends(get_db)):
    return task_service.get_today_tasks(db)


@router.get("/overdue", response_model=List[TaskResponse])
def overdue(db: Session = Depends(get_db)):
    return task_service.get_overdue_tasks(db)


@router.get("/this-week", response_model=List[TaskResponse])
def this_week(db: Session = Depends(get_db)):
    return task_service.get_this_week_tasks(db)


@router.get("/calendar", response_model=List[TaskResponse])
def calendar_range(
    start: str = Query(..., pattern=DATE_PATTERN),
    end: str = Query(..., pattern=DATE_PATTERN),
    db: Session = Depends(get_db)
):
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
    return task_service.get_tasks_in_range(db, start, end)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: int, db: Session = Depends(get_db)):
    task = task_service.get_task(db, task_id)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(task_data: TaskCreate, db: Session = Depends(get_db)):
    return task_service.create_task(db, task_data.model_dump())


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(task_id: int, task_data: TaskUpdate, db: Session = Depends(get_db)):
    task = task_service.update_task(db, task_id, task_data.model_dump(exclude_unset=True))
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


@router.delete("/{task_id}", response_model=MessageResponse)
def delete_task(task_id: int, db: Session = Depends(get_db)):
    if not task_service.delete_task(db, task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return {"message": "Task deleted successfully"}
