"""
Basic Locust load test for the Hooplog API.

Prereq: pip install locust

Run:
  locust -f scripts/load_test_locust.py --host=http://localhost:8000
  HL_MODERATOR_TOKEN=... locust -f scripts/load_test_locust.py --host=http://localhost:8000 --users 50 --spawn-rate 5 --run-time 1m

Each simulated user submits from its own X-Forwarded-For origin, so most
submissions succeed until that origin's window fills; 429s after that are expected.
"""
import os
import random
import string

from locust import HttpUser, between, task

MODERATOR_TOKEN = os.environ.get("HL_MODERATOR_TOKEN", "")


def _video_id() -> str:
    return "".join(random.choices(string.ascii_letters + string.digits, k=11))


class HooplogUser(HttpUser):
    wait_time = between(0.5, 1.5)

    def on_start(self):
        r = self.client.get("/health")
        if r.status_code != 200:
            raise Exception("Health check failed")
        self.origin = f"10.{random.randint(0, 255)}.{random.randint(0, 255)}.{random.randint(1, 254)}"

    @task(3)
    def health(self):
        self.client.get("/health")

    @task(2)
    def ready(self):
        self.client.get("/ready")

    @task(2)
    def submit(self):
        body = {
            "url": f"https://www.youtube.com/watch?v={_video_id()}",
            "title": "Load test 1v1",
            "source_name": "Locust",
            "claimed_category": "one_v_one",
            "matchup": {"player1_name": "A", "player2_name": "B", "player1_score": 21, "player2_score": 19},
        }
        with self.client.post(
            "/v1/submissions",
            json=body,
            headers={"X-Forwarded-For": self.origin},
            name="/v1/submissions",
            catch_response=True,
        ) as r:
            if r.status_code in (201, 429):
                r.success()

    @task(5)
    def review_queue(self):
        if not MODERATOR_TOKEN:
            return
        self.client.get(
            "/v1/moderation/entries?status=pending",
            headers={"X-Moderator-Token": MODERATOR_TOKEN},
            name="/v1/moderation/entries",
        )
