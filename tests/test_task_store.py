from sqlmodel import Session

import task_store
from models import Task, TaskStatus


def add_tasks(engine, *tasks):
    with Session(engine) as db:
        for task in tasks:
            db.add(task)
        db.commit()


def titles(engine, user_id, email):
    with Session(engine) as db:
        return sorted(t.title for t in task_store.visible_tasks(db, user_id, email))


def test_visible_tasks_are_own_and_shared(engine):
    add_tasks(
        engine,
        Task(user_id="alice", title="mine", owners=["alice@gmail.com"]),
        Task(user_id="bob", title="shared", owners=["bob@gmail.com", "alice@gmail.com"]),
        Task(user_id="bob", title="private", owners=["bob@gmail.com"]),
        Task(user_id="alice", title="gone", owners=["alice@gmail.com"], status=TaskStatus.DELETED),
    )
    assert titles(engine, "alice", "alice@gmail.com") == ["mine", "shared"]
    assert titles(engine, "alice", None) == ["mine"]
    assert titles(engine, "carol", "carol@gmail.com") == []


def test_shared_match_is_exact(engine):
    add_tasks(
        engine,
        Task(user_id="bob", title="for jo", owners=["bob@gmail.com", "jo@gmail.com"]),
        Task(user_id="bob", title="for j_o", owners=["bob@gmail.com", "jzo@gmail.com"]),
    )
    # "o@gmail.com" is a suffix of a stored email; "_" is not a wildcard.
    assert titles(engine, "x", "o@gmail.com") == []
    assert titles(engine, "x", "j_o@gmail.com") == []
    assert titles(engine, "x", "JO@gmail.com") == ["for jo"]
