"""Export service: filter tasks for a report and compute its statistics"""

from typing import Any, Dict, List, Optional

from insuratask.models.task import Task


def filter_tasks(tasks: List[Task], filters: Optional[Dict[str, Any]] = None) -> List[Task]:
    """
    Keep the tasks matching every filter that is set.

    Date bounds only apply to tasks that have a due date. The client filter
    is a case-insensitive substring match and drops tasks without a client.
    """
    filters = filters or {}
    start_date = filters.get("start_date")
    end_date = filters.get("end_date")
    client_name = (filters.get("client_name") or "").strip().lower()

    selected = []
    for task in tasks:
        if start_date and task.due_date and task.due_date < start_date:
            continue
        if end_date and task.due_date and task.due_date > end_date:
            continue
        if filters.get("category") and task.category != filters["category"]:
            continue
        if filters.get("status") and task.status != filters["status"]:
            continue
        if filters.get("priority") and task.priority != filters["priority"]:
            continue
        if client_name and client_name not in (task.client or "").lower():
            continue
        selected.append(task)
    return selected


def generate_stats(tasks: List[Task]) -> Dict[str, Any]:
    total = len(tasks)
    completed = sum(1 for t in tasks if t.status == "completed")
    overdue = sum(1 for t in tasks if t.status == "overdue")

    by_category: Dict[str, int] = {}
    by_priority: Dict[str, int] = {}
    for task in tasks:
        by_category[task.category] = by_category.get(task.category, 0) + 1
        by_priority[task.priority] = by_priority.get(task.priority, 0) + 1

    return {
        "total_tasks": total,
        "completed_tasks": completed,
        "overdue_tasks": overdue,
        "tasks_by_category": by_category,
        "tasks_by_priority": by_priority,
        "completion_rate": (completed / total * 100) if total else 0.0,
    }
