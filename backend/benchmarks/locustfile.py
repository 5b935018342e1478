import random
from datetime import datetime, timezone

from locust import HttpUser, task, between

class MaintenanceUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        r = self.client.post(
            "/api/instruments/",
            json={"eqp_id": f"LOAD-{random.randint(1000, 9999)}", "instrument_type": "Balance"},
        )
        instrument_id = r.json()["id"]
        r = self.client.post(
            "/api/maintenance/configurations",
            json={
                "instrument_id": instrument_id,
                "maintenance_type": "Calibration",
                "frequency": "Weekly",
                "schedule_date": datetime.now(timezone.utc).isoformat(),
            },
        )
        config_id = r.json()["configuration"]["id"]
        r = self.client.get("/api/maintenance/schedules", params={"configuration_id": config_id})
        self.schedule_ids = [s["id"] for s in r.json()]

    @task(3)
    def list_upcoming(self):
        self.client.get("/api/maintenance/schedules/upcoming", params={"days": 30, "include_virtual": True})

    @task(1)
    def save_section(self):
        schedule_id = random.choice(self.schedule_ids)
        data = {
            "section": {"id": "drift", "type": "simple", "rows": [{"id": "r1", "measured": random.random()}]},
            "completed_date": datetime.now(timezone.utc).isoformat(),
        }
        self.client.post(
            f"/api/maintenance/schedules/{schedule_id}/sections",
            json=data,
            name="/api/maintenance/schedules/[id]/sections",
        )
