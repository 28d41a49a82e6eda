from conftest import ACADEMIC_YEAR

SLOTS = [
    {"id": "P1", "label": "Period 1", "start": "09:00", "end": "09:45"},
    {"id": "P2", "label": "Period 2", "start": "09:45", "end": "10:30"},
    {"id": "LUNCH", "label": "Lunch", "start": "10:30", "end": "11:00", "is_break": True, "break_kind": "lunch"},
]


def create_schedule(client, **overrides):
    payload = {
        "name": "Grade 10 weekly",
        "academic_year": ACADEMIC_YEAR,
        "time_slots": SLOTS,
        "section_ids": ["10-A", "10-B"],
    }
    payload.update(overrides)
    response = client.post("/api/schedules", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def put_assignment(client, schedule_id, slot_id, section_id, subject_id, teacher_id, kind="regular", on=None):
    body = {
        "time_slot_id": slot_id,
        "section_id": section_id,
        "subject_id": subject_id,
        "teacher_id": teacher_id,
        "kind": kind,
    }
    if on is not None:
        body["effective_date"] = on
    return client.put(f"/api/schedules/{schedule_id}/assignments", json=body)


def test_weekly_timetable_flow(client):
    schedule = create_schedule(client)
    schedule_id = schedule["id"]
    assert schedule["status"] == "draft"
    assert schedule["version"] == 0

    assert put_assignment(client, schedule_id, "P1", "10-A", "math", "T1").status_code == 200

    conflict = put_assignment(client, schedule_id, "P1", "10-B", "eng", "T1")
    assert conflict.status_code == 409
    body = conflict.json()
    assert body["code"] == "teacher_conflict"
    assert body["details"]["conflicting_section_id"] == "10-A"

    assert put_assignment(client, schedule_id, "P1", "10-B", "eng", "T2").status_code == 200
    assert put_assignment(client, schedule_id, "P2", "10-A", "eng", "T3").status_code == 200

    incomplete = client.post(f"/api/schedules/{schedule_id}/finalize", json={"require_full_coverage": True})
    assert incomplete.status_code == 422
    assert incomplete.json()["code"] == "incomplete_schedule"
    assert incomplete.json()["details"]["missing"] == [{"time_slot_id": "P2", "section_id": "10-B"}]

    assert put_assignment(client, schedule_id, "P2", "10-B", "math", "T1").status_code == 200
    finalized = client.post(f"/api/schedules/{schedule_id}/finalize", json={"require_full_coverage": True})
    assert finalized.status_code == 200
    assert finalized.json()["status"] == "finalized"

    frozen = put_assignment(client, schedule_id, "P1", "10-A", "math", "T3")
    assert frozen.status_code == 409
    assert frozen.json()["code"] == "immutable_schedule"

    substitute = put_assignment(client, schedule_id, "P1", "10-A", "math", "T3", kind="substitute", on="2025-01-10")
    assert substitute.status_code == 200
    assert substitute.json()["assignment"]["effective_date"] == "2025-01-10"

    effective = client.get(f"/api/schedules/{schedule_id}/effective", params={"on": "2025-01-10"})
    assert effective.status_code == 200
    cells = {(cell["time_slot_id"], cell["section_id"]): cell for cell in effective.json()}
    assert cells[("P1", "10-A")]["teacher_id"] == "T3"
    assert cells[("P1", "10-A")]["kind"] == "substitute"
    assert ("LUNCH", "10-A") not in cells

    next_day = client.get(f"/api/schedules/{schedule_id}/effective", params={"on": "2025-01-11"})
    assert {cell["teacher_id"] for cell in next_day.json() if cell["time_slot_id"] == "P1"} == {"T1", "T2"}

    removed = client.delete(
        f"/api/schedules/{schedule_id}/assignments",
        params={"time_slot_id": "P1", "section_id": "10-A", "kind": "substitute", "effective_date": "2025-01-10"},
    )
    assert removed.status_code == 204

    archived = client.post(f"/api/schedules/{schedule_id}/archive")
    assert archived.status_code == 200
    assert archived.json()["status"] == "archived"

    late = put_assignment(client, schedule_id, "P1", "10-A", "math", "T3", kind="substitute", on="2025-01-10")
    assert late.status_code == 409


def test_validation_errors_are_structured(client):
    schedule_id = create_schedule(client)["id"]

    on_break = put_assignment(client, schedule_id, "LUNCH", "10-A", "math", "T1")
    assert on_break.status_code == 400
    assert on_break.json()["code"] == "validation_error"

    missing_date = put_assignment(client, schedule_id, "P1", "10-A", "math", "T1", kind="exam")
    assert missing_date.status_code == 400

    unknown_teacher = put_assignment(client, schedule_id, "P1", "10-A", "math", "T99")
    assert unknown_teacher.status_code == 404
    assert unknown_teacher.json() == {
        "code": "not_found",
        "message": "teacher with id T99 not found",
        "details": {"kind": "teacher", "id": "T99"},
    }

    missing = client.get("/api/schedules/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["details"]["kind"] == "schedule"

    malformed = client.post("/api/schedules", json={"name": "", "academic_year": ACADEMIC_YEAR})
    assert malformed.status_code == 422


def test_grid_editing_endpoints(client):
    schedule_id = create_schedule(client, section_ids=["10-A"])["id"]

    added = client.post(
        f"/api/schedules/{schedule_id}/time-slots",
        json={"id": "P3", "label": "Period 3", "start": "11:00", "end": "11:45"},
    )
    assert added.status_code == 200
    assert [slot["id"] for slot in added.json()["time_slots"]] == ["P1", "P2", "LUNCH", "P3"]

    overlapping = client.post(
        f"/api/schedules/{schedule_id}/time-slots",
        json={"id": "P4", "label": "Period 4", "start": "11:30", "end": "12:15"},
    )
    assert overlapping.status_code == 400

    attached = client.post(f"/api/schedules/{schedule_id}/sections/10-B")
    assert attached.json()["section_ids"] == ["10-A", "10-B"]

    removed = client.delete(f"/api/schedules/{schedule_id}/time-slots/P3")
    assert [slot["id"] for slot in removed.json()["time_slots"]] == ["P1", "P2", "LUNCH"]

    detached = client.delete(f"/api/schedules/{schedule_id}/sections/10-B")
    assert detached.json()["section_ids"] == ["10-A"]


def test_insight_endpoints(client):
    schedule_id = create_schedule(client)["id"]
    put_assignment(client, schedule_id, "P1", "10-A", "sci", "T4")
    put_assignment(client, schedule_id, "P2", "10-A", "sci", "T4")
    put_assignment(client, schedule_id, "P1", "10-B", "eng", "T2")

    load = client.get(f"/api/schedules/{schedule_id}/teachers/T4/load")
    assert load.status_code == 200
    assert load.json() == {"teacher_id": "T4", "count": 2, "weekly_capacity": 2, "ratio": 1.0, "tier": "high"}

    loads = client.get(f"/api/schedules/{schedule_id}/loads")
    assert [item["teacher_id"] for item in loads.json()] == ["T2", "T4"]

    day = client.get(f"/api/schedules/{schedule_id}/teachers/T4/day", params={"on": "2025-01-10"})
    assert [cell["time_slot_id"] for cell in day.json()] == ["P1", "P2"]

    available = client.get(
        f"/api/schedules/{schedule_id}/available-teachers",
        params=[
            ("time_slot_id", "P1"),
            ("on", "2025-01-10"),
            ("candidate_id", "T1"),
            ("candidate_id", "T2"),
            ("candidate_id", "T3"),
            ("subject_id", "math"),
        ],
    )
    assert [item["teacher_id"] for item in available.json()] == ["T1", "T3"]

    summary = client.get(f"/api/schedules/{schedule_id}/summary").json()
    assert summary["assigned_cells"] == 3
    assert summary["total_cells"] == 4
    assert summary["completion_percentage"] == 75.0
    assert summary["teaching_slots"] == 2

    conflicts = client.get(f"/api/schedules/{schedule_id}/conflicts", params={"on": "2025-01-10"})
    assert conflicts.status_code == 200
    assert conflicts.json()["conflicts"] == []
    assert conflicts.json()["checked_dates"] == ["2025-01-10"]


def test_list_duplicate_and_delete(client):
    first = create_schedule(client)
    put_assignment(client, first["id"], "P1", "10-A", "math", "T1")
    client.post(f"/api/schedules/{first['id']}/finalize")

    duplicate = client.post(f"/api/schedules/{first['id']}/duplicate", json={"name": "Term 2"})
    assert duplicate.status_code == 201
    copy = duplicate.json()
    assert copy["name"] == "Term 2"
    assert copy["status"] == "draft"
    assert len(copy["assignments"]) == 1

    drafts = client.get("/api/schedules", params={"status": "draft"})
    assert [item["id"] for item in drafts.json()] == [copy["id"]]

    assert client.delete(f"/api/schedules/{first['id']}").status_code == 409
    assert client.delete(f"/api/schedules/{copy['id']}").status_code == 204
    assert len(client.get("/api/schedules").json()) == 1
