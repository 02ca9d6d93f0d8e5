import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

import session_machine
from conftest import ALICE, BOB
from errors import Conflict
from models import FocusSession
from session_service import SessionService


def put(client, session_id, action, body=None, headers=ALICE):
    return client.put(f"/api/sessions/{session_id}/{action}", json=body, headers=headers)


def test_requires_user_header(client):
    resp = client.get("/api/sessions/active")
    assert resp.status_code == 400


def test_no_active_session(client):
    resp = client.get("/api/sessions/active", headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["activeSession"] is None


def test_start_and_fetch_active(client, start_session):
    session, task = start_session(plannedMinutes=50)
    assert session["status"] == "active"
    assert session["taskId"] == task["id"]
    assert session["plannedSeconds"] == 3000

    body = client.get("/api/sessions/active", headers=ALICE).json()
    assert body["activeSession"]["id"] == session["id"]
    assert body["pomodoroInfo"] is None


def test_session_fields_are_camel_case_with_utc_timestamps(client, start_session):
    session, _ = start_session()
    assert session["startedAt"] == "2025-03-12T10:00:00+00:00"
    assert session["endedAt"] is None
    assert session["elapsedSeconds"] == 0
    assert session["formattedDuration"] == "0s"
    assert not [key for key in session if "_" in key]


@pytest.mark.parametrize(
    "action, body",
    [
        ("update", {"elapsedSeconds": "abc"}),
        ("update", {}),
        ("timer", {}),
        ("chronodoro", {"cycleMinutes": [25]}),
    ],
)
def test_malformed_bodies_are_invalid_arguments(client, start_session, action, body):
    session, _ = start_session()
    put(client, session["id"], "focus")
    resp = put(client, session["id"], action, body)
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidArgument"
    assert resp.json()["detail"]


def test_start_with_malformed_body_is_invalid_argument(client, make_task):
    task = make_task()
    resp = client.post(
        "/api/sessions/start",
        json={"taskIds": task["id"], "plannedMinutes": 10.5},
        headers=ALICE,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidArgument"
    assert "plannedMinutes" in resp.json()["detail"]


def test_start_with_two_tasks_is_invalid(client, make_task):
    first, second = make_task(), make_task(title="Lab report")
    resp = client.post(
        "/api/sessions/start",
        json={"taskIds": [first["id"], second["id"]]},
        headers=ALICE,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "InvalidArgument"


def test_start_without_task_ids_is_invalid(client):
    resp = client.post("/api/sessions/start", json={}, headers=ALICE)
    assert resp.status_code == 400


def test_second_active_session_conflicts(client, start_session, make_task):
    start_session()
    other = make_task(title="Essay")
    resp = client.post("/api/sessions/start", json={"taskIds": [other["id"]]}, headers=ALICE)
    assert resp.status_code == 409
    assert resp.json()["error"] == "Conflict"


def test_active_sessions_are_per_user(client, start_session):
    start_session(ALICE)
    start_session(BOB)


def test_start_unknown_task(client):
    resp = client.post("/api/sessions/start", json={"taskIds": ["nope"]}, headers=ALICE)
    assert resp.status_code == 404
    assert resp.json()["error"] == "NotFound"


def test_start_on_someone_elses_task(client, make_task):
    task = make_task(ALICE)
    resp = client.post("/api/sessions/start", json={"taskIds": [task["id"]]}, headers=BOB)
    assert resp.status_code == 404


def test_start_on_shared_task(client, make_task, start_session):
    task = make_task(ALICE)
    resp = client.put(f"/api/tasks/{task['id']}/share", json={"email": "bob@gmail.com"}, headers=ALICE)
    assert resp.status_code == 200
    session, _ = start_session(BOB, task=task)
    assert session["userId"] == "bob"


@pytest.mark.parametrize("minutes", [4, 481])
def test_start_planned_minutes_out_of_range(client, make_task, minutes):
    task = make_task()
    resp = client.post(
        "/api/sessions/start",
        json={"taskIds": [task["id"]], "plannedMinutes": minutes},
        headers=ALICE,
    )
    assert resp.status_code == 400


def test_timer_needs_focus_mode(client, start_session):
    session, _ = start_session()
    resp = put(client, session["id"], "timer", {"action": "pause"})
    assert resp.status_code == 412
    assert resp.json()["error"] == "Precondition"


def test_focus_pause_resume(client, start_session):
    session, _ = start_session()
    sid = session["id"]

    body = put(client, sid, "focus", {"plannedMinutes": 30}).json()
    assert body["session"]["focusEnabled"] is True
    assert body["session"]["plannedSeconds"] == 1800

    body = put(client, sid, "timer", {"action": "pause"}).json()
    assert body["timerState"] == {"running": False, "paused": True, "totalPauses": 1}

    resp = put(client, sid, "timer", {"action": "pause"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "InvalidState"

    resp = put(client, sid, "update", {"elapsedSeconds": 60})
    assert resp.status_code == 412

    body = put(client, sid, "timer", {"action": "resume"}).json()
    assert body["timerState"]["running"] is True
    assert body["timerState"]["paused"] is False


def test_focus_without_body(client, start_session):
    session, _ = start_session()
    resp = put(client, session["id"], "focus")
    assert resp.status_code == 200
    assert resp.json()["focusType"] == "open"


def test_focus_after_pomodoro_conflicts(client, start_session):
    session, _ = start_session()
    assert put(client, session["id"], "chronodoro", {}).status_code == 200
    resp = put(client, session["id"], "focus", {})
    assert resp.status_code == 409


def test_chronodoro_defaults(client, start_session):
    session, _ = start_session()
    body = put(client, session["id"], "chronodoro").json()
    assert body["session"]["cycleDurationSeconds"] == 1500
    assert body["session"]["totalCyclesPlanned"] == 4
    assert body["session"]["notificationsSuppressed"] is True
    assert body["pomodoroInfo"]["cycleType"] == "work"


def test_chronodoro_ranges(client, start_session):
    session, _ = start_session()
    resp = put(client, session["id"], "chronodoro", {"cycleMinutes": 90})
    assert resp.status_code == 400
    resp = put(client, session["id"], "chronodoro", {"totalCycles": 13})
    assert resp.status_code == 400


def test_pomodoro_scenario_auto_completes(client, start_session):
    session, task = start_session(plannedMinutes=50)
    sid = session["id"]
    put(client, sid, "chronodoro", {"cycleMinutes": 25, "totalCycles": 2})

    body = put(client, sid, "update", {"elapsedSeconds": 1500}).json()
    assert body["cycleCompleted"] is True
    assert body["sessionCompleted"] is False
    assert body["session"]["cyclesElapsed"] == 1
    assert body["session"]["currentCycleKind"] == "break"
    assert body["nextCycle"] == {"type": "break", "duration": 300, "cycleNumber": 2, "isLong": False}

    body = put(client, sid, "update", {"elapsedSeconds": 3000}).json()
    assert body["session"]["cyclesElapsed"] == 2
    assert body["session"]["currentCycleKind"] == "work"
    assert body["session"]["status"] == "active"

    body = put(client, sid, "update", {"elapsedSeconds": 6000}).json()
    assert body["sessionCompleted"] is True
    assert body["session"] is None
    assert body["stats"]["completedCycles"] == 2

    assert client.get("/api/sessions/active", headers=ALICE).json()["activeSession"] is None
    task_after = client.get(f"/api/tasks/{task['id']}", headers=ALICE).json()
    assert task_after["timeSpent"] == 6000
    assert task_after["pomodoroCount"] == 2
    assert task_after["status"] == "in-progress"

    resp = put(client, sid, "update", {"elapsedSeconds": 6100})
    assert resp.status_code == 409


def test_update_rejects_negative(client, start_session):
    session, _ = start_session()
    put(client, session["id"], "focus")
    resp = put(client, session["id"], "update", {"elapsedSeconds": -5})
    assert resp.status_code == 400


def test_efficiency_is_cached_on_update(client, start_session):
    session, _ = start_session(plannedMinutes=10)
    put(client, session["id"], "focus")
    body = put(client, session["id"], "update", {"elapsedSeconds": 300}).json()
    assert body["session"]["efficiencyPercent"] == 50
    assert 0 <= body["session"]["efficiencyPercent"] <= 100


def test_short_session_is_not_reported_to_task(client, start_session):
    session, task = start_session()
    put(client, session["id"], "focus")
    put(client, session["id"], "update", {"elapsedSeconds": 200})
    body = put(client, session["id"], "stop", {"action": "complete"}).json()
    assert body["stats"]["totalDuration"] == 200

    task_after = client.get(f"/api/tasks/{task['id']}", headers=ALICE).json()
    assert task_after["timeSpent"] == 0
    assert task_after["status"] == "todo"


def test_completion_reports_time_and_promotes_task(client, start_session):
    session, task = start_session()
    put(client, session["id"], "focus")
    put(client, session["id"], "update", {"elapsedSeconds": 1000})
    body = put(client, session["id"], "stop", {"action": "complete", "notes": "done"}).json()
    assert body["session"]["status"] == "completed"
    assert body["session"]["notes"] == "done"

    task_after = client.get(f"/api/tasks/{task['id']}", headers=ALICE).json()
    assert task_after["timeSpent"] == 1000
    assert task_after["status"] == "in-progress"


def test_completion_does_not_demote_a_done_task(client, start_session):
    session, task = start_session()
    client.put(f"/api/tasks/{task['id']}", json={"status": "done"}, headers=ALICE)
    put(client, session["id"], "focus")
    put(client, session["id"], "update", {"elapsedSeconds": 1000})
    put(client, session["id"], "stop", {"action": "complete"})

    task_after = client.get(f"/api/tasks/{task['id']}", headers=ALICE).json()
    assert task_after["status"] == "done"
    assert task_after["timeSpent"] == 1000


def test_cancel_twice(client, start_session, clock):
    session, _ = start_session()
    first = put(client, session["id"], "stop", {"action": "cancel"})
    assert first.status_code == 200
    ended_at = first.json()["session"]["endedAt"]
    assert first.json()["session"]["efficiencyPercent"] == 0

    clock.advance(60)
    second = put(client, session["id"], "stop", {"action": "cancel"})
    assert second.status_code == 409
    assert second.json()["error"] == "InvalidState"

    history = client.get("/api/sessions/history", headers=ALICE).json()
    assert history["sessions"][0]["endedAt"] == ended_at


def test_stop_unknown_session(client):
    resp = put(client, "missing", "stop", {"action": "complete"})
    assert resp.status_code == 404


def test_stop_invalid_action(client, start_session):
    session, _ = start_session()
    resp = put(client, session["id"], "stop", {"action": "pause"})
    assert resp.status_code == 400


def test_other_user_cannot_touch_session(client, start_session):
    session, _ = start_session(ALICE)
    resp = put(client, session["id"], "focus", headers=BOB)
    assert resp.status_code == 404


def test_new_session_after_stop(client, start_session):
    session, task = start_session()
    put(client, session["id"], "stop", {"action": "cancel"})
    start_session(task=task)


def test_history_and_stats(client, start_session, clock):
    first, task = start_session()
    put(client, first["id"], "focus")
    put(client, first["id"], "update", {"elapsedSeconds": 1800})
    put(client, first["id"], "stop", {"action": "complete"})

    clock.advance(3600)
    second, _ = start_session(task=task)
    put(client, second["id"], "stop", {"action": "cancel"})

    history = client.get("/api/sessions/history", headers=ALICE).json()
    assert [s["id"] for s in history["sessions"]] == [second["id"], first["id"]]
    assert history["pagination"]["count"] == 2

    cancelled = client.get("/api/sessions/history?status=cancelled", headers=ALICE).json()
    assert [s["id"] for s in cancelled["sessions"]] == [second["id"]]

    resp = client.get("/api/sessions/history?status=active", headers=ALICE)
    assert resp.status_code == 400

    stats = client.get("/api/sessions/stats?period=week", headers=ALICE).json()
    assert stats["sessions"]["total"] == 2
    assert stats["sessions"]["completed"] == 1
    assert stats["sessions"]["completionRate"] == 50
    assert stats["time"]["total"] == 1800
    assert stats["time"]["focus"] == 1800
    assert stats["performance"]["averageEfficiency"] == 80


def test_calendar_link(client, start_session):
    session, _ = start_session(plannedMinutes=45)
    body = client.get(f"/api/sessions/{session['id']}/calendar-link", headers=ALICE).json()
    assert body["title"] == "Read chapter 3"
    assert body["url"].startswith("https://calendar.google.com/calendar/render?action=TEMPLATE")


def test_completion_writes_notification(client, start_session):
    session, _ = start_session()
    put(client, session["id"], "focus")
    put(client, session["id"], "update", {"elapsedSeconds": 600})
    put(client, session["id"], "stop", {"action": "complete"})

    body = client.get("/api/notifications", headers=ALICE).json()
    assert body["unreadCount"] == 1
    assert body["notifications"][0]["kind"] == "success"


def test_stale_write_is_a_conflict(engine, clock, start_session):
    session, _ = start_session()
    with Session(engine) as db1, Session(engine) as db2:
        first, second = SessionService(db1, clock), SessionService(db2, clock)
        mine = first._load_for_update("alice", session["id"])
        theirs = second._load_for_update("alice", session["id"])

        session_machine.enable_focus(mine)
        first._save(mine)
        db1.commit()

        session_machine.enable_pomodoro(theirs)
        with pytest.raises(Conflict):
            second._save(theirs)

    with Session(engine) as db:
        stored = db.get(FocusSession, session["id"])
        assert stored.focus_enabled and not stored.pomodoro_enabled
        assert stored.version == 2


def test_database_allows_one_active_session_per_user(engine, start_session):
    session, task = start_session()
    with Session(engine) as db:
        db.add(FocusSession(user_id="alice", task_id=task["id"]))
        with pytest.raises(IntegrityError):
            db.commit()
