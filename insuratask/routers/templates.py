from fastapi import APIRouter, Depends, HTTPException, status, Body
from sqlalchemy.orm import Session
from typing import List, Optional

from insuratask.core.database import get_db
from insuratask.core.errors import TemplateNotFoundError
from insuratask.schemas.template import (
    TemplateCreate, TemplateUpdate, TemplateToggle, TemplateExecuteRequest,
    TemplateResponse, TemplateListItem, TemplateInstanceResponse,
    TemplateExecutionResponse, CronStatusResponse
)
from insuratask.services import template_service
from insuratask.services.template_scheduler import template_scheduler

router = APIRouter(prefix="/api/templates", tags=["templates"])


def _not_found(e: TemplateNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("", response_model=List[TemplateListItem])
def list_templates(db: Session = Depends(get_db)):
    return template_service.list_templates_with_stats(db)


@router.get("/active", response_model=List[TemplateResponse])
def list_active(db: Session = Depends(get_db)):
    return template_service.get_active_templates(db)


@router.get("/cron/status", response_model=CronStatusResponse)
def cron_status():
    jobs = template_scheduler.get_active_jobs()
    return {"running": template_scheduler.is_running(), "total_jobs": len(jobs), "jobs": jobs}


@router.get("/{template_id}", response_model=TemplateResponse)
def get_template(template_id: int, db: Session = Depends(get_db)):
    try:
        return template_service.get_template(db, template_id)
    except TemplateNotFoundError as e:
        raise _not_found(e)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(template_data: TemplateCreate, db: Session = Depends(get_db)):
    template = template_service.create_template(db, template_data.model_dump())
    template_scheduler.sync_template(template)
    return template


@router.put("/{template_id}", response_model=TemplateResponse)
def update_template(template_id: int, template_data: TemplateUpdate, db: Session = Depends(get_db)):
    try:
        template = template_service.update_template(db, template_id, template_data.model_dump(exclude_unset=True))
    except TemplateNotFoundError as e:
        raise _not_found(e)
    template_scheduler.sync_template(template)
    return template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: int, db: Session = Depends(get_db)):
    try:
        template_service.delete_template(db, template_id)
    except TemplateNotFoundError as e:
        raise _not_found(e)
    template_scheduler.unschedule_template(template_id)


@router.patch("/{template_id}/toggle", response_model=TemplateResponse)
def toggle_template(template_id: int, toggle: TemplateToggle, db: Session = Depends(get_db)):
    try:
        template = template_service.toggle_template(db, template_id, toggle.is_active)
    except TemplateNotFoundError as e:
        raise _not_found(e)
    template_scheduler.sync_template(template)
    return template


@router.post("/{template_id}/execute", response_model=TemplateExecutionResponse)
def execute_template(
    template_id: int,
    request: Optional[TemplateExecuteRequest] = Body(None),
    db: Session = Depends(get_db)
):
    context = request.context if request else {}
    try:
        task, instance = template_service.execute_template(db, template_id, context)
    except TemplateNotFoundError as e:
        raise _not_found(e)
    return {"task": task, "instance": instance}


@router.get("/{template_id}/instances", response_model=List[TemplateInstanceResponse])
def list_instances(template_id: int, db: Session = Depends(get_db)):
    try:
        return template_service.get_template_instances(db, template_id)
    except TemplateNotFoundError as e:
        raise _not_found(e)
