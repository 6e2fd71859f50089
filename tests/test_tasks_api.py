"""API tests for task endpoints."""
from datetime import datetime, timedelta, timezone

from taskflow.utils import clock

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def create_task(client, headers, **payload):
    payload.setdefault("title", "Design logo")
    response = client.post("/api/tasks", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def test_create_and_time_a_task(
    client, admin_headers, member_headers, admin_user, member_user, sent_notifications, monkeypatch
):
    """Create, start, reject a second start, stop after 125 minutes."""
    response = client.post(
        "/api/tasks",
        json={"title": "Design logo", "priority": "high", "assignees": [str(member_user.id)]},
        headers=admin_headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    task = body["data"]
    assert task["status"] == "todo"
    assert task["timeSpent"] == 0
    assert task["assignee"] == str(member_user.id)
    assert task["createdBy"] == str(admin_user.id)
    assert [(n["recipient"], n["kind"]) for n in sent_notifications] == [(member_user.id, "assigned")]

    monkeypatch.setattr(clock, "utcnow", lambda: T0)
    response = client.post(f"/api/tasks/{task['id']}/timer/start", headers=member_headers)
    assert response.status_code == 200
    started = response.json()["data"]
    assert started["isTimerRunning"] is True
    assert started["timerStartedBy"] == str(member_user.id)

    response = client.post(f"/api/tasks/{task['id']}/timer/start", headers=admin_headers)
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Timer is already running"}

    monkeypatch.setattr(clock, "utcnow", lambda: T0 + timedelta(minutes=125))
    response = client.post(f"/api/tasks/{task['id']}/timer/stop", headers=member_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["sessionDuration"] == 125
    assert body["message"] == "Timer stopped successfully"
    assert body["data"]["timeSpent"] == 125
    assert body["data"]["isTimerRunning"] is False
    assert body["data"]["timerStartedBy"] is None
    assert [s["duration"] for s in body["data"]["workSessions"]] == [125]

    response = client.post(f"/api/tasks/{task['id']}/timer/stop", headers=member_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Timer is not running"


def test_completing_task_stops_running_timer(client, admin_headers, member_headers, member_user, monkeypatch):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])
    monkeypatch.setattr(clock, "utcnow", lambda: T0)
    client.post(f"/api/tasks/{task['id']}/timer/start", headers=member_headers)

    monkeypatch.setattr(clock, "utcnow", lambda: T0 + timedelta(minutes=7))
    response = client.put(f"/api/tasks/{task['id']}", json={"status": "completed"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "completed"
    assert data["isTimerRunning"] is False
    assert data["timeSpent"] == 7
    assert data["workSessions"][0]["endTime"].startswith("2026-03-02T09:07:00")


def test_non_assignee_cannot_view(client, admin_headers, other_headers, member_user):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])

    response = client.get(f"/api/tasks/{task['id']}", headers=other_headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "message": "Access denied"}


def test_missing_task_is_404(client, admin_headers):
    response = client.get("/api/tasks/00000000-0000-0000-0000-000000000000", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["message"] == "Task not found"


def test_comment_author_and_others(client, admin_headers, member_headers, other_headers, member_user):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])

    response = client.post(
        f"/api/tasks/{task['id']}/comments", json={"content": "On it"}, headers=member_headers
    )
    assert response.status_code == 201
    comment = response.json()["data"]
    assert comment["authorName"] == "Mia Member"
    assert comment["isAdminRemark"] is False

    response = client.delete(f"/api/tasks/{task['id']}/comments/{comment['id']}", headers=other_headers)
    assert response.status_code == 403

    response = client.delete(f"/api/tasks/{task['id']}/comments/{comment['id']}", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Comment deleted successfully"

    task_view = client.get(f"/api/tasks/{task['id']}", headers=admin_headers).json()["data"]
    assert task_view["comments"] == []


def test_blank_comment_is_rejected(client, admin_headers):
    task = create_task(client, admin_headers)
    response = client.post(f"/api/tasks/{task['id']}/comments", json={"content": "  "}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Comment content is required"


def test_team_member_cannot_change_priority(client, admin_headers, member_headers, member_user):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])

    response = client.put(f"/api/tasks/{task['id']}", json={"priority": "low"}, headers=member_headers)
    assert response.status_code == 403

    response = client.put(f"/api/tasks/{task['id']}", json={"status": "in-progress"}, headers=member_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "in-progress"


def test_update_rejects_server_managed_fields(client, admin_headers, member_headers, member_user):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])

    response = client.put(
        f"/api/tasks/{task['id']}",
        json={"status": "in-progress", "isArchived": True, "timeSpent": 999},
        headers=member_headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert {e["field"] for e in body["errors"]} == {"isArchived", "timeSpent"}

    response = client.put(f"/api/tasks/{task['id']}", json={"timeSpent": 999}, headers=admin_headers)
    assert response.status_code == 400

    current = client.get(f"/api/tasks/{task['id']}", headers=admin_headers).json()["data"]
    assert current["status"] == "todo"
    assert current["isArchived"] is False
    assert current["timeSpent"] == 0


def test_validation_errors_are_400(client, admin_headers):
    response = client.post("/api/tasks", json={"title": "   "}, headers=admin_headers)
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "title"

    response = client.post("/api/tasks", json={"title": "x", "dueDate": "someday"}, headers=admin_headers)
    assert response.status_code == 400
    assert "Due date must be a valid date" in response.json()["errors"][0]["message"]

    response = client.post("/api/tasks", json={"title": "x", "priority": "urgent"}, headers=admin_headers)
    assert response.status_code == 400


def test_unknown_assignee_is_rejected(client, admin_headers):
    response = client.post(
        "/api/tasks",
        json={"title": "x", "assignees": ["00000000-0000-0000-0000-000000000001"]},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Assigned user not found"
    assert client.get("/api/tasks", headers=admin_headers).json()["pagination"]["total"] == 0


def test_list_envelope_and_filters(client, admin_headers, member_headers, member_user):
    create_task(client, admin_headers, title="Design logo", assignees=[str(member_user.id)], tags=["design"])
    create_task(client, admin_headers, title="Write docs", status="completed", assignees=[str(member_user.id)])
    create_task(client, admin_headers, title="Admin only")

    response = client.get("/api/tasks", params={"limit": 2}, headers=member_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 2, "pages": 1}

    response = client.get("/api/tasks", params={"excludeStatus": "completed"}, headers=admin_headers)
    assert sorted(t["title"] for t in response.json()["data"]) == ["Admin only", "Design logo"]

    response = client.get("/api/tasks", params={"tags": "design,ops"}, headers=admin_headers)
    assert [t["title"] for t in response.json()["data"]] == ["Design logo"]

    response = client.get("/api/tasks", params={"search": "DOCS"}, headers=member_headers)
    assert [t["title"] for t in response.json()["data"]] == ["Write docs"]


def test_list_accepts_comma_separated_assignees(client, admin_headers, member_user, other_member):
    member_id, other_id = str(member_user.id), str(other_member.id)
    create_task(client, admin_headers, title="Design logo", assignees=[member_id])
    create_task(client, admin_headers, title="Write docs", assignees=[other_id])
    create_task(client, admin_headers, title="Admin only")

    response = client.get("/api/tasks", params={"assignees": f"{member_id},{other_id}"}, headers=admin_headers)
    assert response.status_code == 200
    assert sorted(t["title"] for t in response.json()["data"]) == ["Design logo", "Write docs"]

    response = client.get("/api/tasks", params=[("assignees", member_id)], headers=admin_headers)
    assert [t["title"] for t in response.json()["data"]] == ["Design logo"]

    response = client.get("/api/tasks", params={"assignees": f"{member_id},nope"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["errors"] == [{"field": "assignees", "message": "Invalid user id: nope"}]


def test_archive_toggle_and_delete(client, admin_headers, member_headers, member_user):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])

    response = client.put(f"/api/tasks/{task['id']}/archive", headers=member_headers)
    assert response.status_code == 403

    response = client.put(f"/api/tasks/{task['id']}/archive", headers=admin_headers)
    assert response.json()["message"] == "Task archived successfully"
    assert response.json()["data"]["isArchived"] is True
    assert client.get("/api/tasks", headers=admin_headers).json()["pagination"]["total"] == 0

    response = client.put(f"/api/tasks/{task['id']}/archive", headers=admin_headers)
    assert response.json()["message"] == "Task unarchived successfully"

    response = client.delete(f"/api/tasks/{task['id']}", headers=member_headers)
    assert response.status_code == 403
    response = client.delete(f"/api/tasks/{task['id']}", headers=admin_headers)
    assert response.status_code == 200
    assert client.get(f"/api/tasks/{task['id']}", headers=admin_headers).status_code == 404


def test_admin_overviews(client, admin_headers, member_headers, member_user, monkeypatch):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])
    monkeypatch.setattr(clock, "utcnow", lambda: T0)
    client.post(f"/api/tasks/{task['id']}/timer/start", headers=member_headers)

    assert client.get("/api/tasks/active-timers", headers=member_headers).status_code == 403
    assert client.get("/api/tasks/analytics", headers=member_headers).status_code == 403

    monkeypatch.setattr(clock, "utcnow", lambda: T0 + timedelta(minutes=3))
    timers = client.get("/api/tasks/active-timers", headers=admin_headers).json()["data"]
    assert len(timers) == 1
    assert timers[0]["currentSessionDuration"] == 3
    assert timers[0]["timerStartedByUser"]["name"] == "Mia Member"

    stats = client.get("/api/tasks/analytics", headers=admin_headers).json()["data"]
    assert stats["totalTasks"] == 1
    assert stats["activeTimers"] == 1
    assert stats["tasksByAssignee"][0]["count"] == 1


def test_stop_that_loses_a_race_reports_not_running(
    client, admin_headers, member_headers, member_user, lose_next_save
):
    task = create_task(client, admin_headers, assignees=[str(member_user.id)])
    response = client.post(f"/api/tasks/{task['id']}/timer/start", headers=member_headers)
    assert response.status_code == 200

    # Another stop commits between our read and our write
    lose_next_save(is_timer_running=False, timer_started_at=None, timer_started_by=None)
    response = client.post(f"/api/tasks/{task['id']}/timer/stop", headers=admin_headers)

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Timer is not running"}

    current = client.get(f"/api/tasks/{task['id']}", headers=admin_headers).json()["data"]
    assert current["isTimerRunning"] is False
    assert current["workSessions"] == []
    assert current["timeSpent"] == 0


def test_requires_authentication(client):
    response = client.get("/api/tasks")
    assert response.status_code == 401
    assert response.json()["success"] is False


def test_health_and_metrics(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "ok"

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "timers_started_total" in response.text
    assert "http_requests_total" in response.text
