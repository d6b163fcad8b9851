"""Template service: CRUD on task templates and rendering them into tasks.

Templates use Jinja2 placeholders (`{{ client_name }}`, `{{ month }}`...).
Missing variables render as empty strings.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pytz
from dateutil import parser as date_parser
from jinja2 import ChainableUndefined, Environment, TemplateSyntaxError
from sqlalchemy import func
from sqlalchemy.orm import Session

from insuratask.core.errors import InvalidTemplateError, TemplateNotFoundError
from insuratask.models.template import Template, TemplateInstance
from insuratask.models.task import Task
from insuratask.services import task_service

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "category", "title_template", "priority", "is_active")

MONTHS_IT = [
    "gennaio", "febbraio", "marzo", "aprile", "maggio", "giugno",
    "luglio", "agosto", "settembre", "ottobre", "novembre", "dicembre"
]

# date.weekday(): 0 = Monday
DAYS_IT = ["lunedì", "martedì", "mercoledì", "giovedì", "venerdì", "sabato", "domenica"]


def _to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        # rendered dates are dd/mm/yyyy
        return date_parser.parse(text, dayfirst=True).date()


def format_date(value, fmt: str = "%d/%m/%Y") -> str:
    if not value:
        return ""
    try:
        return _to_date(value).strftime(fmt)
    except (ValueError, OverflowError):
        return str(value)


def month_name(value) -> str:
    if not value:
        return ""
    try:
        return MONTHS_IT[_to_date(value).month - 1]
    except (ValueError, OverflowError):
        return str(value)


# Missing values, and attributes of missing values, render empty
_env = Environment(autoescape=False, undefined=ChainableUndefined)
_env.filters["format_date"] = format_date
_env.filters["month_name"] = month_name


def build_context(context: Optional[Dict[str, Any]] = None, today: Optional[datetime] = None) -> Dict[str, Any]:
    """Predefined variables for the current day, overridden by the caller's context"""
    now = today or datetime.now()
    day = now.date()
    week_start = day - timedelta(days=day.weekday())
    week_end = week_start + timedelta(days=6)

    full = {
        "date": day.strftime("%d/%m/%Y"),
        "time": now.strftime("%H:%M"),
        "day": day.strftime("%d"),
        "week": str(day.isocalendar()[1]),
        "month": MONTHS_IT[day.month - 1],
        "year": day.strftime("%Y"),
        "day_name": DAYS_IT[day.weekday()],
        "week_start": week_start.strftime("%d/%m/%Y"),
        "week_end": week_end.strftime("%d/%m/%Y"),
    }
    full.update(context or {})
    return full


def render(source: str, context: Dict[str, Any]) -> str:
    return _env.from_string(source).render(**context)


def check_syntax(data: Dict[str, Any]) -> None:
    for field in ("title_template", "description_template"):
        source = data.get(field)
        if not source:
            continue
        try:
            _env.from_string(source)
        except TemplateSyntaxError as e:
            raise InvalidTemplateError(f"{field}: {e.message} (line {e.lineno})")


def get_templates(db: Session) -> List[Template]:
    return db.query(Template).order_by(Template.created_at.desc(), Template.id.desc()).all()


def get_active_templates(db: Session) -> List[Template]:
    return db.query(Template).filter(Template.is_active == True).order_by(Template.id).all()


def get_template(db: Session, template_id: int) -> Template:
    template = db.query(Template).filter(Template.id == template_id).first()
    if not template:
        raise TemplateNotFoundError(template_id)
    return template


def list_templates_with_stats(db: Session) -> List[Dict[str, Any]]:
    """Templates plus how many times each ran and when it last ran"""
    stats = dict(
        (row[0], (row[1], row[2]))
        for row in db.query(
            TemplateInstance.template_id,
            func.count(TemplateInstance.id),
            func.max(TemplateInstance.executed_at)
        ).group_by(TemplateInstance.template_id).all()
    )

    items = []
    for template in get_templates(db):
        count, last = stats.get(template.id, (0, None))
        items.append({
            "id": template.id,
            "name": template.name,
            "description": template.description,
            "category": template.category,
            "title_template": template.title_template,
            "description_template": template.description_template,
            "priority": template.priority,
            "recurrence_config": template.recurrence_config,
            "is_active": template.is_active,
            "created_at": template.created_at,
            "updated_at": template.updated_at,
            "instance_count": count,
            "last_executed": last,
        })
    return items


def create_template(db: Session, data: Dict[str, Any]) -> Template:
    check_syntax(data)
    now = datetime.utcnow()
    template = Template(
        name=data["name"],
        description=data.get("description"),
        category=data["category"],
        title_template=data["title_template"],
        description_template=data.get("description_template"),
        priority=data.get("priority") or "medium",
        recurrence_config=data.get("recurrence_config"),
        is_active=data.get("is_active", True),
        created_at=now,
        updated_at=now
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def update_template(db: Session, template_id: int, updates: Dict[str, Any]) -> Template:
    template = get_template(db, template_id)
    check_syntax(updates)
    for field, value in updates.items():
        if field in ("id", "created_at", "updated_at"):
            continue
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(template, field, value)
    template.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(template)
    return template


def delete_template(db: Session, template_id: int) -> None:
    template = get_template(db, template_id)
    db.delete(template)
    db.commit()


def toggle_template(db: Session, template_id: int, is_active: bool) -> Template:
    return update_template(db, template_id, {"is_active": is_active})


def execute_template(
    db: Session,
    template_id: int,
    context: Optional[Dict[str, Any]] = None,
    timezone: Optional[str] = None
) -> Tuple[Task, TemplateInstance]:
    """
    Render a template and create the resulting task.

    The task is due today (in `timezone` when given), at the recurrence time
    when the template has one.
    An instance row records the execution.
    """
    template = get_template(db, template_id)

    now = datetime.now(pytz.timezone(timezone)).replace(tzinfo=None) if timezone else datetime.now()
    full_context = build_context(context, now)

    title = render(template.title_template, full_context).strip() or template.name
    description = None
    if template.description_template:
        description = render(template.description_template, full_context)

    recurrence = template.recurrence_config or {}
    task = task_service.create_task(db, {
        "title": title,
        "description": description,
        "category": template.category,
        "priority": template.priority,
        "status": "pending",
        "client": full_context.get("client_name") or full_context.get("client"),
        "due_date": now.date().isoformat(),
        "due_time": recurrence.get("time") if recurrence else None,
    })

    instance = TemplateInstance(
        template_id=template.id,
        task_id=task.id,
        scheduled_date=now.date().isoformat(),
        executed_at=datetime.utcnow(),
        created_at=datetime.utcnow()
    )
    db.add(instance)
    db.commit()
    db.refresh(instance)

    logger.info(f"Template {template.id} executed: task {task.id} created")
    return task, instance


def get_template_instances(db: Session, template_id: int) -> List[TemplateInstance]:
    get_template(db, template_id)
    return db.query(TemplateInstance).filter(
        TemplateInstance.template_id == template_id
    ).order_by(TemplateInstance.created_at.desc(), TemplateInstance.id.desc()).all()
