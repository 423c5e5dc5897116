from datetime import datetime

import pytest

from clido import tree
from clido.core.errors import (
    CycleError,
    NotFoundError,
    PersistenceError,
    StateError,
    ValidationError,
)
from clido.core.models import Level, Priority, Project, Task
from clido.lib import clock
from clido.store import SqliteStore
from clido.workspace import Workspace, open_workspace


class FlakyStore:
    """Delegates to a real store, failing on demand and counting calls."""

    def __init__(self, inner: SqliteStore):
        self.inner = inner
        self.fail = False
        self.calls: list[str] = []

    def _call(self, op: str) -> None:
        self.calls.append(op)
        if self.fail:
            raise PersistenceError(f"{op} failed: disk I/O error")

    def save(self, entity):
        self._call("save")
        return self.inner.save(entity)

    def save_many(self, entities):
        self._call("save_many")
        return self.inner.save_many(entities)

    def delete(self, kind, entity_id):
        self._call("delete")
        return self.inner.delete(kind, entity_id)

    def load_all(self, kind):
        return self.inner.load_all(kind)

    def mark_completed(self, task_id, when=None):
        self._call("mark_completed")
        return self.inner.mark_completed(task_id, when)


@pytest.fixture
def flaky(store):
    return FlakyStore(store)


@pytest.fixture
def ws(flaky):
    workspace = Workspace(flaky)
    workspace.load()
    return workspace


def _reloaded(store) -> Workspace:
    fresh = Workspace(store)
    fresh.load()
    return fresh


def _shape(workspace: Workspace) -> list[tuple]:
    return [
        (p.id, p.parent_id, p.name, [(t.id, t.parent_id, t.name, t.completed) for t in tree.walk_tasks(p)])
        for p in workspace.all_projects()
    ]


# ── round trips ──────────────────────────────────────────────────────────────


def test_create_project_round_trip(ws, store):
    project = ws.create_project("Home", "chores")
    assert project.id > 0

    [loaded] = _reloaded(store).all_projects()
    assert (loaded.id, loaded.name, loaded.description) == (project.id, "Home", "chores")


def test_hierarchy_survives_reload(ws, store):
    home = ws.create_project("Home")
    kitchen = ws.create_project("Kitchen", parent_id=home.id)
    cook = ws.create_task("Cook", kitchen.id)
    ws.create_task("Chop", kitchen.id, parent_id=cook.id)

    fresh = _reloaded(store)
    assert _shape(fresh) == _shape(ws)
    loaded_kitchen = fresh.project(kitchen.id)
    assert loaded_kitchen.level is Level.SUB
    assert loaded_kitchen.owner is fresh.project(home.id)
    assert fresh.task(cook.id).children[0].level is Level.SUB
    assert fresh.project(home.id).task_count == 2


def test_each_mutation_makes_one_store_call(ws, flaky):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    ws.update_task(task.id, name="Mop")
    ws.complete_task(task.id)
    ws.reopen_task(task.id)
    ws.delete_task(task.id)
    assert flaky.calls == ["save", "save", "save", "mark_completed", "save", "delete"]


# ── scenarios ────────────────────────────────────────────────────────────────


def test_home_scenario(ws, store):
    home = ws.create_project("Home")
    milk = ws.create_task("Buy milk", home.id)
    assert milk.completed is False
    assert not tree.check_project_completion(home)

    ws.complete_task(milk.id)
    assert tree.check_project_completion(home)
    assert _reloaded(store).task(milk.id).completed


def test_work_scenario(ws, store):
    work = ws.create_project("Work")
    client = ws.create_project("Work/ClientA", parent_id=work.id)
    t1 = ws.create_task("Invoice", work.id)
    t2 = ws.create_task("Kickoff", client.id)

    ws.delete_project(work.id)

    for fresh in (ws, _reloaded(store)):
        assert fresh.find_project(work.id) is None
        assert fresh.find_project(client.id) is None
        assert fresh.find_task(t1.id) is None
        assert fresh.find_task(t2.id) is None


def test_complete_reopen_round_trip(ws, store):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    ws.complete_task(task.id)
    ws.reopen_task(task.id)
    assert task.completed is False
    assert task.completion_date is None

    loaded = _reloaded(store).task(task.id)
    assert loaded.completed is False
    assert loaded.completion_date is None


def test_toggle(ws):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    assert ws.toggle_task(task.id).completed
    assert not ws.toggle_task(task.id).completed


def test_complete_twice_is_state_error(ws):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    ws.complete_task(task.id)
    with pytest.raises(StateError):
        ws.complete_task(task.id)


# ── validation ───────────────────────────────────────────────────────────────


def test_create_task_for_missing_project(ws, flaky):
    with pytest.raises(ValidationError) as exc:
        ws.create_task("Orphan", 42)
    assert exc.value.field == "project_id"
    assert flaky.calls == []


def test_create_subtask_in_other_project_rejected(ws):
    a = ws.create_project("a")
    b = ws.create_project("b")
    parent = ws.create_task("p", a.id)
    with pytest.raises(ValidationError):
        ws.create_task("c", b.id, parent_id=parent.id)


def test_blank_name_rejected_before_store(ws, flaky):
    with pytest.raises(ValidationError):
        ws.create_project("  ")
    assert ws.projects == []
    assert flaky.calls == []


def test_lookup_of_missing_ids(ws):
    assert ws.find_project(1) is None
    assert ws.find_task(1) is None
    with pytest.raises(NotFoundError):
        ws.project(1)
    with pytest.raises(NotFoundError):
        ws.task(1)


def test_move_project_under_descendant_is_cycle(ws, flaky):
    home = ws.create_project("Home")
    kitchen = ws.create_project("Kitchen", parent_id=home.id)
    calls = len(flaky.calls)
    with pytest.raises(CycleError):
        ws.move_project(home.id, kitchen.id)
    assert ws.projects == [home]
    assert home.children == [kitchen]
    assert len(flaky.calls) == calls


# ── moves ────────────────────────────────────────────────────────────────────


def test_move_project(ws, store):
    home = ws.create_project("Home")
    work = ws.create_project("Work")
    ws.create_task("Report", work.id)

    ws.move_project(work.id, home.id)
    assert ws.projects == [home]
    assert home.task_count == 1
    stored = store.conn.execute("SELECT task_count FROM projects WHERE id = ?", (home.id,))
    assert stored.fetchone() == (1,)

    ws.move_project(work.id, None)
    assert [p.id for p in ws.projects] == [home.id, work.id]
    assert _reloaded(store).project(work.id).parent_id is None


def test_move_task_between_projects(ws, store):
    a = ws.create_project("a")
    b = ws.create_project("b")
    root = ws.create_task("root", a.id)
    child = ws.create_task("child", a.id, parent_id=root.id)

    ws.move_task(root.id, project_id=b.id)
    assert root.project_id == child.project_id == b.id
    assert b.task_count == 2 and a.task_count == 0

    fresh = _reloaded(store)
    assert fresh.task(child.id).project_id == b.id
    assert fresh.task(child.id).owner is fresh.task(root.id)


def test_move_task_to_top_level(ws, store):
    home = ws.create_project("Home")
    root = ws.create_task("root", home.id)
    child = ws.create_task("child", home.id, parent_id=root.id)

    ws.move_task(child.id)
    assert child.parent_id is None
    assert child.level is Level.TOP
    assert home.tasks == [root, child]
    assert _reloaded(store).task(child.id).parent_id is None


# ── rollback ─────────────────────────────────────────────────────────────────


def test_create_project_rolls_back(ws, flaky):
    flaky.fail = True
    with pytest.raises(PersistenceError, match="disk I/O error"):
        ws.create_project("Home")
    assert ws.projects == []


def test_create_task_rolls_back(ws, flaky):
    home = ws.create_project("Home")
    parent = ws.create_task("parent", home.id)
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.create_task("child", home.id, parent_id=parent.id)
    assert parent.children == []
    assert home.task_count == 1


def test_update_rolls_back(ws, flaky):
    home = ws.create_project("Home", "chores")
    task = ws.create_task("Sweep", home.id)
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.update_project(home.id, name="House", description=None)
    with pytest.raises(PersistenceError):
        ws.update_task(task.id, name="Mop", priority=Priority.HIGH, due_date=None)
    assert (home.name, home.description) == ("Home", "chores")
    assert (task.name, task.priority) == ("Sweep", Priority.NONE)


def test_complete_rolls_back(ws, flaky):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.complete_task(task.id)
    assert task.completed is False
    assert task.completion_date is None


def test_reopen_rolls_back(ws, flaky):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    ws.complete_task(task.id)
    done_at = task.completion_date
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.reopen_task(task.id)
    assert task.completed is True
    assert task.completion_date == done_at


def test_delete_project_rolls_back(ws, flaky, store):
    home = ws.create_project("Home")
    kitchen = ws.create_project("Kitchen", parent_id=home.id)
    garden = ws.create_project("Garden", parent_id=home.id)
    ws.create_task("Cook", kitchen.id)
    before = _shape(ws)

    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.delete_project(kitchen.id)
    assert _shape(ws) == before
    assert home.children == [kitchen, garden]
    assert kitchen.owner is home
    assert _shape(_reloaded(store)) == before


def test_delete_task_rolls_back(ws, flaky):
    home = ws.create_project("Home")
    first = ws.create_task("first", home.id)
    second = ws.create_task("second", home.id)
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.delete_task(first.id)
    assert home.tasks == [first, second]
    assert first.owner is home


def test_move_rolls_back(ws, flaky):
    a = ws.create_project("a")
    b = ws.create_project("b")
    root = ws.create_task("root", a.id)
    child = ws.create_task("child", a.id, parent_id=root.id)
    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.move_task(root.id, project_id=b.id)
    with pytest.raises(PersistenceError):
        ws.move_project(b.id, a.id)
    assert root.project_id == child.project_id == a.id
    assert a.tasks == [root] and b.tasks == []
    assert ws.projects == [a, b]
    assert b.owner is None and b.level is Level.TOP


# ── session ──────────────────────────────────────────────────────────────────


def test_open_workspace_closes_connection(tmp_clido_dir):
    with open_workspace() as first:
        first.create_project("Home")
        conn = first.store.conn
    with pytest.raises(Exception, match="closed"):
        conn.execute("SELECT 1")

    with open_workspace() as second:
        assert [p.name for p in second.all_projects()] == ["Home"]


def test_open_workspace_closes_on_error(tmp_clido_dir):
    with pytest.raises(NotFoundError):
        with open_workspace() as ws:
            conn = ws.store.conn
            ws.project(99)
    with pytest.raises(Exception, match="closed"):
        conn.execute("SELECT 1")


def test_all_tasks_scoped_to_subtree(ws):
    home = ws.create_project("Home")
    kitchen = ws.create_project("Kitchen", parent_id=home.id)
    work = ws.create_project("Work")
    ws.create_task("a", home.id)
    ws.create_task("b", kitchen.id)
    ws.create_task("c", work.id)
    assert [t.name for t in ws.all_tasks(home.id)] == ["a", "b"]
    assert [t.name for t in ws.all_tasks()] == ["a", "b", "c"]
    assert all(isinstance(t, Task) for t in ws.all_tasks())
    assert all(isinstance(p, Project) for p in ws.all_projects())


# ── recursive toggle ─────────────────────────────────────────────────────────


@pytest.fixture
def chain(ws):
    home = ws.create_project("Home")
    root = ws.create_task("Clean", home.id)
    child = ws.create_task("Kitchen", home.id, parent_id=root.id)
    grandchild = ws.create_task("Oven", home.id, parent_id=child.id)
    return root, child, grandchild


def test_recursive_toggle_completes_subtree(ws, store, flaky, chain):
    root, child, grandchild = chain
    calls = len(flaky.calls)

    ws.toggle_task(root.id, recursive=True)
    assert flaky.calls[calls:] == ["save_many"]
    assert all(t.completed for t in chain)
    assert len({t.completion_date for t in chain}) == 1

    fresh = _reloaded(store)
    assert all(fresh.task(t.id).completed for t in chain)


def test_recursive_toggle_reopens_subtree(ws, store, chain):
    root, child, grandchild = chain
    ws.complete_task(child.id)
    ws.toggle_task(root.id, recursive=True)
    ws.toggle_task(root.id, recursive=True)

    assert not any(t.completed for t in chain)
    fresh = _reloaded(store)
    assert not any(fresh.task(t.id).completed for t in chain)
    assert all(fresh.task(t.id).completion_date is None for t in chain)


def test_recursive_toggle_keeps_already_matching_tasks(ws, chain):
    root, child, grandchild = chain
    ws.complete_task(grandchild.id)
    done_at = grandchild.completion_date

    ws.toggle_task(root.id, recursive=True)
    assert grandchild.completion_date == done_at
    assert root.completed and child.completed


def test_plain_toggle_leaves_subtasks(ws, chain):
    root, child, grandchild = chain
    ws.toggle_task(root.id)
    assert root.completed
    assert not child.completed and not grandchild.completed


def test_recursive_toggle_rolls_back(ws, store, flaky, chain):
    root, child, grandchild = chain
    ws.complete_task(child.id)
    before = [(t.completed, t.completion_date, t.last_modified) for t in chain]

    flaky.fail = True
    with pytest.raises(PersistenceError):
        ws.toggle_task(root.id, recursive=True)

    assert [(t.completed, t.completion_date, t.last_modified) for t in chain] == before
    fresh = _reloaded(store)
    assert [fresh.task(t.id).completed for t in chain] == [False, True, False]


# ── last modified ────────────────────────────────────────────────────────────

LATER = datetime(2099, 1, 1, 12, 0)


@pytest.fixture
def later(monkeypatch):
    monkeypatch.setattr(clock, "now", lambda: LATER)
    return LATER


def test_new_entities_start_unmodified(ws):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)
    assert home.last_modified == home.creation_date
    assert task.last_modified == task.creation_date


def test_update_moves_last_modified(ws, store, later):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)

    ws.update_project(home.id, name="House")
    ws.update_task(task.id, priority=Priority.LOW)

    assert home.last_modified == later
    assert task.last_modified == later
    fresh = _reloaded(store)
    assert fresh.project(home.id).last_modified == later
    assert fresh.task(task.id).last_modified == later


def test_complete_and_reopen_move_last_modified(ws, store, later):
    home = ws.create_project("Home")
    task = ws.create_task("Sweep", home.id)

    ws.complete_task(task.id)
    assert task.last_modified == task.completion_date == later
    assert _reloaded(store).task(task.id).last_modified == later

    ws.reopen_task(task.id)
    assert task.last_modified == later


def test_move_moves_last_modified(ws, later):
    a = ws.create_project("a")
    b = ws.create_project("b")
    task = ws.create_task("t", a.id)

    ws.move_task(task.id, project_id=b.id)
    ws.move_project(b.id, a.id)
    assert task.last_modified == later
    assert b.last_modified == later


def test_rolled_back_write_keeps_last_modified(ws, store, flaky, monkeypatch):
    home = ws.create_project("Home")
    other = ws.create_project("Other")
    task = ws.create_task("Sweep", home.id)
    stamps = (home.last_modified, task.last_modified)

    monkeypatch.setattr(clock, "now", lambda: LATER)
    flaky.fail = True
    for write in (
        lambda: ws.update_project(home.id, name="House"),
        lambda: ws.update_task(task.id, name="Mop"),
        lambda: ws.complete_task(task.id),
        lambda: ws.move_task(task.id, project_id=other.id),
        lambda: ws.move_project(home.id, other.id),
    ):
        with pytest.raises(PersistenceError):
            write()

    assert (home.last_modified, task.last_modified) == stamps
    fresh = _reloaded(store)
    assert (fresh.project(home.id).last_modified, fresh.task(task.id).last_modified) == stamps
