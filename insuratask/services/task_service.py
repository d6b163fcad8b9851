"""Task service: storage operations on the tasks table"""

from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta
from typing import List, Optional, Dict, Any
from insuratask.models.task import Task

REQUIRED_FIELDS = ("title", "category", "priority", "status", "completed")


def _today() -> str:
    return date.today().isoformat()


def get_tasks(db: Session) -> List[Task]:
    return db.query(Task).order_by(Task.created_at.desc(), Task.id.desc()).all()


def get_task(db: Session, task_id: int) -> Optional[Task]:
    return db.query(Task).filter(Task.id == task_id).first()


def create_task(db: Session, data: Dict[str, Any]) -> Task:
    completed = bool(data.get("completed", False))
    now = datetime.utcnow()
    task = Task(
        title=data["title"],
        description=data.get("description"),
        category=data["category"],
        client=data.get("client"),
        priority=data.get("priority") or "medium",
        status=data.get("status") or "pending",
        due_date=data.get("due_date"),
        due_time=data.get("due_time"),
        completed=completed,
        completed_at=now if completed else None,
        created_at=now,
        updated_at=now
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def update_task(db: Session, task_id: int, updates: Dict[str, Any]) -> Optional[Task]:
    """
    Apply a partial update.

    completed=True stamps completed_at, completed=False clears it, and a
    payload without `completed` leaves both untouched.
    """
    task = get_task(db, task_id)
    if not task:
        return None

    for field, value in updates.items():
        if field in ("id", "created_at", "updated_at", "completed_at"):
            continue
        if value is None and field in REQUIRED_FIELDS:
            continue
        setattr(task, field, value)

    if updates.get("completed") is not None:
        if updates["completed"]:
            task.completed_at = datetime.utcnow()
        else:
            task.completed_at = None

    task.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, task_id: int) -> bool:
    task = get_task(db, task_id)
    if not task:
        return False
    db.delete(task)
    db.commit()
    return True


def get_tasks_by_category(db: Session, category: str) -> List[Task]:
    return db.query(Task).filter(
        Task.category == category
    ).order_by(Task.created_at.desc(), Task.id.desc()).all()


def get_tasks_by_status(db: Session, status: str) -> List[Task]:
    return db.query(Task).filter(
        Task.status == status
    ).order_by(Task.created_at.desc(), Task.id.desc()).all()


def search_tasks(db: Session, query: str) -> List[Task]:
    term = f"%{query.lower()}%"
    return db.query(Task).filter(
        or_(
            func.lower(Task.title).like(term),
            func.lower(Task.description).like(term),
            func.lower(Task.client).like(term)
        )
    ).order_by(Task.created_at.desc(), Task.id.desc()).all()


def get_task_stats(db: Session) -> Dict[str, int]:
    def count_status(status: str) -> int:
        return db.query(Task).filter(Task.status == status).count()

    return {
        "total": db.query(Task).count(),
        "pending": count_status("pending"),
        "completed": count_status("completed"),
        "overdue": count_status("overdue"),
        "due_today": db.query(Task).filter(
            Task.due_date == _today(),
            Task.completed == False
        ).count()
    }


def get_today_tasks(db: Session) -> List[Task]:
    return db.query(Task).filter(
        Task.due_date == _today()
    ).order_by(Task.due_time).all()


def get_overdue_tasks(db: Session) -> List[Task]:
    # Computed at query time: the stored status is not kept in step with due_date
    return db.query(Task).filter(
        Task.due_date.isnot(None),
        Task.due_date < _today(),
        Task.completed == False
    ).order_by(Task.due_date).all()


def get_this_week_tasks(db: Session) -> List[Task]:
    today = date.today()
    days_until_end = (6 - today.weekday()) % 7
    if days_until_end == 0:
        days_until_end = 7
    week_end = today + timedelta(days=days_until_end)

    return get_tasks_in_range(db, today.isoformat(), week_end.isoformat())


def get_tasks_in_range(db: Session, start: str, end: str) -> List[Task]:
    """Tasks due between start and end (inclusive, YYYY-MM-DD), for the calendar view"""
    return db.query(Task).filter(
        Task.due_date.isnot(None),
        Task.due_date >= start,
        Task.due_date <= end
    ).order_by(Task.due_date, Task.due_time).all()


def seed_demo_tasks(db: Session) -> int:
    """Insert the demo tasks when the table is empty. Returns how many were added."""
    if db.query(Task).count() > 0:
        return 0

    today = date.today()
    yesterday = (today - timedelta(days=1)).isoformat()
    tomorrow = (today + timedelta(days=1)).isoformat()
    in_two_days = (today + timedelta(days=2)).isoformat()

    demo = [
        {
            "title": "Chiamare Maria Bianchi per rinnovo polizza auto",
            "description": "Discutere opzioni di rinnovo e nuove coperture disponibili. Cliente interessata a polizza kasko.",
            "category": "calls", "client": "Maria Bianchi", "priority": "high", "status": "pending",
            "due_date": today.isoformat(), "due_time": "14:30", "completed": False
        },
        {
            "title": "Preparare quotazione RC professionale per Studio Legale Verdi",
            "description": "Calcolare preventivo per polizza RC professionale avvocati. Massimale richiesto €5.000.000.",
            "category": "quotes", "client": "Studio Legale Verdi", "priority": "medium", "status": "pending",
            "due_date": tomorrow, "due_time": "16:00", "completed": False
        },
        {
            "title": "Controllare stato sinistro auto - Pratica #2024/456",
            "description": "Verificare aggiornamenti peritale e comunicare stato al cliente Rossi.",
            "category": "claims", "client": "Marco Rossi", "priority": "low", "status": "completed",
            "due_date": today.isoformat(), "due_time": "11:30", "completed": True
        },
        {
            "title": "Archiviare documenti polizza vita cliente Conti",
            "description": "Scansionare e archiviare digitalmente tutti i documenti relativi alla nuova polizza vita sottoscritta.",
            "category": "documents", "client": "Giuseppe Conti", "priority": "low", "status": "pending",
            "due_date": in_two_days, "due_time": "17:00", "completed": False
        },
        {
            "title": "Appuntamento con famiglia Neri per polizza casa",
            "description": "Incontro per discutere copertura assicurativa nuova abitazione acquistata. Era previsto per ieri.",
            "category": "appointments", "client": "Famiglia Neri", "priority": "high", "status": "overdue",
            "due_date": yesterday, "due_time": "15:00", "completed": False
        }
    ]

    for data in demo:
        create_task(db, data)
    return len(demo)
