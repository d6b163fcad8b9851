from insuratask.services import task_service


def test_search_is_case_insensitive_over_title_description_client(db):
    task_service.create_task(db, {"title": "Polizza CASA", "category": "quotes"})
    task_service.create_task(db, {"title": "Altro", "description": "verifica polizza vita", "category": "documents"})
    task_service.create_task(db, {"title": "Chiamata", "category": "calls", "client": "Polizzi Srl"})
    task_service.create_task(db, {"title": "Niente", "category": "calls"})

    found = task_service.search_tasks(db, "POLIZ")
    assert sorted(t.title for t in found) == ["Altro", "Chiamata", "Polizza CASA"]


def test_update_ignores_null_required_fields(db):
    task = task_service.create_task(db, {"title": "Titolo", "category": "calls"})
    updated = task_service.update_task(db, task.id, {"title": None, "client": None})
    assert updated.title == "Titolo"
    assert updated.client is None


def test_update_refreshes_updated_at(db):
    task = task_service.create_task(db, {"title": "Titolo", "category": "calls"})
    before = task.updated_at
    updated = task_service.update_task(db, task.id, {"priority": "high"})
    assert updated.updated_at >= before


def test_update_missing_task_returns_none(db):
    assert task_service.update_task(db, 42, {"title": "X"}) is None
    assert task_service.delete_task(db, 42) is False


def test_seed_demo_tasks_only_on_empty_table(db):
    assert task_service.seed_demo_tasks(db) == 5
    assert task_service.seed_demo_tasks(db) == 0

    tasks = task_service.get_tasks(db)
    assert len(tasks) == 5
    assert {t.category for t in tasks} == {"calls", "quotes", "claims", "documents", "appointments"}
    for task in tasks:
        assert task.completed == (task.completed_at is not None)
