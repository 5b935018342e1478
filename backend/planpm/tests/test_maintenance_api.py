import uuid
from datetime import datetime, timedelta, timezone

from conftest import TestingSessionLocal, create_instrument
from planpm import models


def _configuration(client, instrument_id, **overrides):
    payload = {
        "instrument_id": instrument_id,
        "maintenance_type": "Calibration",
        "frequency": "Monthly",
        "schedule_date": "2024-01-15T09:00:00Z",
    }
    payload.update(overrides)
    return client.post("/api/maintenance/configurations", json=payload)


def _schedules(client, **params):
    resp = client.get("/api/maintenance/schedules", params=params)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_create_configuration_generates_window(client):
    instrument = create_instrument(client)

    resp = _configuration(client, instrument["id"])

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["generation"]["created"] == 12
    schedules = _schedules(client, configuration_id=body["configuration"]["id"])
    assert [s["due_day"] for s in schedules] == [f"2024-{m:02d}-15" for m in range(1, 13)]
    assert [s["is_last_of_window"] for s in schedules].count(True) == 1
    assert schedules[-1]["is_last_of_window"] is True

    rerun = client.post(f"/api/maintenance/configurations/{body['configuration']['id']}/generate")
    assert rerun.status_code == 200
    days = [s["due_day"] for s in _schedules(client, configuration_id=body["configuration"]["id"])]
    assert len(days) == len(set(days))


def test_offset_anchor_schedules_on_entered_calendar_days(client):
    instrument = create_instrument(client)

    resp = _configuration(client, instrument["id"], schedule_date="2024-01-31T00:30:00+05:00")

    assert resp.status_code == 201, resp.text
    config = resp.json()["configuration"]
    assert config["utc_offset_minutes"] == 300
    schedules = _schedules(client, configuration_id=config["id"])
    assert [s["due_day"] for s in schedules[:3]] == ["2024-01-31", "2024-02-29", "2024-03-29"]

    rerun = client.post(f"/api/maintenance/configurations/{config['id']}/generate")
    assert rerun.status_code == 200
    schedules = _schedules(client, configuration_id=config["id"])
    days = [s["due_day"] for s in schedules]
    assert len(days) == len(set(days))
    assert [s["due_day"] for s in schedules if s["is_last_of_window"]] == ["2025-01-29"]


def test_vendor_configuration_requires_vendor_name(client):
    instrument = create_instrument(client)

    missing = _configuration(client, instrument["id"], maintenance_by="vendor")
    assert missing.status_code == 422

    ok = _configuration(client, instrument["id"], maintenance_by="vendor", vendor_name="Acme", frequency="1 Year")
    assert ok.status_code == 201
    (schedule,) = _schedules(client, configuration_id=ok.json()["configuration"]["id"])
    assert schedule["maintenance_by"] == "vendor"
    assert schedule["vendor_name"] == "Acme"


def test_unknown_instrument_is_rejected(client):
    resp = _configuration(client, "00000000-0000-0000-0000-000000000000")
    assert resp.status_code == 404


def test_frequency_edit_regenerates_weekly(client):
    instrument = create_instrument(client)
    config = _configuration(client, instrument["id"]).json()["configuration"]

    resp = client.put(f"/api/maintenance/configurations/{config['id']}", json={"frequency": "Weekly"})

    assert resp.status_code == 200, resp.text
    regeneration = resp.json()["regeneration"]
    assert regeneration == {"regenerated": True, "deleted": 12, "created": 52, "reason": None}
    schedules = _schedules(client, configuration_id=config["id"])
    assert len(schedules) == 52
    assert schedules[0]["due_day"] == "2024-01-15"
    assert schedules[-1]["due_day"] == "2025-01-06"

    unchanged = client.put(f"/api/maintenance/configurations/{config['id']}", json={"frequency": "Weekly"})
    assert unchanged.json()["regeneration"] is None


def test_section_saves_complete_and_extend(client):
    instrument = create_instrument(client)
    template = client.post(
        "/api/templates/",
        json={
            "name": "Pipette",
            "structure": [
                {"id": "vol", "title": "Volume", "type": "tolerance", "tolerance": 0.1,
                 "rows": [{"id": "r1", "label": "100 uL", "reference": 100}]},
                {"id": "chk", "title": "Visual", "type": "checklist",
                 "rows": [{"id": "r2", "label": "Tip seal"}]},
            ],
        },
    ).json()
    config = _configuration(
        client, instrument["id"], frequency="1 Year", template_id=template["id"]
    ).json()["configuration"]
    (schedule,) = _schedules(client, configuration_id=config["id"])

    first = client.post(
        f"/api/maintenance/schedules/{schedule['id']}/sections",
        json={
            "section": {"id": "vol", "type": "tolerance", "tolerance": 0.1,
                        "rows": [{"id": "r1", "reference": 100, "measured": 100.3}]},
            "completed_date": "2024-01-16T10:00:00Z",
        },
    )
    assert first.status_code == 200, first.text
    body = first.json()
    assert body["maintenance_status"] == "Partially Completed"
    assert (body["completed_sections"], body["total_sections"]) == (1, 2)
    assert body["schedule"]["status"] == "In Progress"
    assert body["result"]["summary"] == {"status": "fail", "passed": 0, "total": 1}

    second = client.post(
        f"/api/maintenance/schedules/{schedule['id']}/sections",
        json={
            "section": {"id": "chk", "type": "checklist", "rows": [{"id": "r2", "passed": True}]},
            "completed_date": "2024-01-17T10:00:00Z",
            "notes": "Recalibrated",
        },
    )
    assert second.status_code == 200, second.text
    body = second.json()
    assert body["maintenance_status"] == "Completed"
    assert body["schedule"]["status"] == "Completed"
    assert body["schedule"]["completion_notes"] == "Recalibrated"
    assert body["regeneration"]["regenerated"] is True
    assert body["regeneration"]["created"] == 1

    days = [s["due_day"] for s in _schedules(client, configuration_id=config["id"])]
    assert days == ["2024-01-15", "2025-01-17"]

    result = client.get(f"/api/maintenance/schedules/{schedule['id']}/result")
    assert result.status_code == 200
    assert [s["id"] for s in result.json()["test_data"]] == ["vol", "chk"]

    db = TestingSessionLocal()
    try:
        events = (
            db.query(models.ScheduleEvent)
            .filter(models.ScheduleEvent.configuration_id == uuid.UUID(config["id"]))
            .all()
        )
        assert {e.event_type for e in events} >= {
            "schedule.generated",
            "schedule.completed",
            "schedule.extended",
        }
    finally:
        db.close()


def test_complete_rejects_incomplete_test_data(client):
    instrument = create_instrument(client)
    config = _configuration(client, instrument["id"], frequency="1 Year").json()["configuration"]
    (schedule,) = _schedules(client, configuration_id=config["id"])

    resp = client.post(
        f"/api/maintenance/schedules/{schedule['id']}/complete",
        json={
            "completed_date": "2024-01-20T00:00:00Z",
            "test_data": [{"type": "simple", "rows": [{"label": "Drift"}]}],
        },
    )

    assert resp.status_code == 400
    assert _schedules(client, configuration_id=config["id"])[0]["status"] == "Scheduled"


def test_missing_occurrence_returns_404(client):
    missing = "00000000-0000-0000-0000-000000000001"
    assert client.get(f"/api/maintenance/schedules/{missing}").status_code == 404
    resp = client.post(
        f"/api/maintenance/schedules/{missing}/sections",
        json={"section": {"type": "simple", "rows": []}, "completed_date": "2024-01-01T00:00:00Z"},
    )
    assert resp.status_code == 404


def test_upcoming_includes_virtual_and_materializes(client):
    instrument = create_instrument(client)
    now = datetime.now(timezone.utc).replace(hour=9, minute=0, second=0, microsecond=0)
    config = _configuration(
        client,
        instrument["id"],
        maintenance_type="AMC",
        frequency="Weekly",
        schedule_date=(now + timedelta(days=2)).isoformat(),
        is_active=True,
    ).json()["configuration"]
    # drop the persisted window so only virtual occurrences remain
    db = TestingSessionLocal()
    try:
        db.query(models.MaintenanceSchedule).filter(
            models.MaintenanceSchedule.configuration_id == uuid.UUID(config["id"])
        ).delete()
        db.commit()
    finally:
        db.close()

    upcoming = client.get(
        "/api/maintenance/schedules/upcoming",
        params={"days": 14, "include_virtual": True, "instrument_id": instrument["id"]},
    )
    assert upcoming.status_code == 200, upcoming.text
    views = upcoming.json()
    assert len(views) == 2
    assert all(v["is_virtual"] and v["id"] is None for v in views)

    created = client.post(
        "/api/maintenance/schedules/materialize",
        json={"configuration_id": config["id"], "due_date": views[0]["due_date"]},
    )
    assert created.status_code == 201, created.text
    again = client.post(
        "/api/maintenance/schedules/materialize",
        json={"configuration_id": config["id"], "due_date": views[0]["due_date"]},
    )
    assert again.status_code == 200
    assert again.json()["id"] == created.json()["id"]

    views = client.get(
        "/api/maintenance/schedules/upcoming",
        params={"days": 14, "include_virtual": True, "instrument_id": instrument["id"]},
    ).json()
    # the configuration is now covered, so no virtual occurrences remain
    assert [v["is_virtual"] for v in views] == [False]


def test_delete_configuration_keeps_completed_history(client):
    instrument = create_instrument(client)
    config = _configuration(client, instrument["id"], frequency="6 Months").json()["configuration"]
    first, _ = _schedules(client, configuration_id=config["id"])
    done = client.post(
        f"/api/maintenance/schedules/{first['id']}/complete",
        json={"completed_date": "2024-01-15T12:00:00Z", "result_type": "service"},
    )
    assert done.status_code == 200, done.text

    resp = client.delete(f"/api/maintenance/configurations/{config['id']}")

    assert resp.status_code == 204
    remaining = _schedules(client, instrument_id=instrument["id"])
    assert [s["id"] for s in remaining] == [first["id"]]
    assert remaining[0]["configuration_id"] is None


def test_analytics_and_metrics_endpoints(client):
    trend = client.get("/api/maintenance/analytics/trend", params={"months": 3})
    assert trend.status_code == 200
    assert len(trend.json()) == 3
    counts = client.get("/api/maintenance/analytics/counts")
    assert counts.status_code == 200
    assert set(counts.json()) == {"pm", "amc", "calibration", "total"}
    assert client.get("/metrics").status_code == 200
