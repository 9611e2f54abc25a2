"""Tests for the web interface."""

import json
import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from dateutil import tz

from bonesday import web
from bonesday.ingest import IngesterState
from bonesday.rules import Vibe
from bonesday.service import VibeService
from bonesday.store import VibeStore

NEW_YORK = tz.gettz("America/New_York")


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class TestWeb(unittest.TestCase):
    """Routes over a real store and a fixed clock."""

    def setUp(self):
        """Set up test environment."""
        self.store = VibeStore()
        self.clock = FakeClock(datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc))  # 09:00 EDT
        self.service = VibeService(self.store, NEW_YORK, clock=self.clock)
        self.app = web.create_app("Test Bones", self.service)
        self.app.config['TESTING'] = True
        self.client = self.app.test_client()

    def test_index_superposition_at_startup(self):
        """Before any reading the page shows the stale sentinel."""
        response = self.client.get('/')
        self.assertEqual(response.status_code, 200)
        self.assertIn(b'Test Bones', response.data)
        self.assertIn(b'Superposition', response.data)
        self.assertIn(b'disabled', response.data)

    def test_set_then_view(self):
        """Manual override is visible immediately."""
        response = self.client.post('/set/no_bones')
        self.assertEqual(response.status_code, 302)

        data = self.client.get('/api/vibe').get_json()
        self.assertEqual(data["vibe"], "no_bones")
        self.assertEqual(data["label"], "No Bones Day")
        self.assertFalse(data["stale"])
        self.assertIn("EDT", data["observed_at_local"])

        self.assertIn(b'No Bones Day', self.client.get('/').data)

    def test_set_ended(self):
        self.client.post('/set/ended')
        data = self.client.get('/api/vibe').get_json()
        self.assertEqual(data["label"], "Retired")
        self.assertTrue(data["detail"])

    def test_set_unknown_vibe(self):
        self.assertEqual(self.client.post('/set/maybe').status_code, 404)
        self.assertEqual(self.store.read().vibe, Vibe.INDETERMINATE)

    def test_set_requires_post(self):
        self.assertEqual(self.client.get('/set/bones').status_code, 405)

    def test_classify_form_and_json(self):
        """ClassifyAndSet returns the short label and stores the result."""
        response = self.client.post('/classify', data={"text": "Noodles has bones today"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["label"], "Bones Day")
        self.assertEqual(self.store.read().vibe, Vibe.BONES)
        self.assertEqual(self.store.read().observed_at, self.clock.now)

        response = self.client.post('/classify', json={"text": "it is a no bones day"})
        self.assertEqual(response.get_json()["label"], "No Bones Day")
        self.assertEqual(response.get_json()["view"]["vibe"], "no_bones")

    def test_classify_requires_text(self):
        self.assertEqual(self.client.post('/classify', data={"text": "  "}).status_code, 400)
        self.assertEqual(self.client.post('/classify', json={}).status_code, 400)
        self.assertEqual(self.client.post('/classify', json={"text": 5}).status_code, 400)
        self.assertEqual(self.client.post('/classify', json={"text": ["bones day"]}).status_code, 400)
        self.assertEqual(self.store.read().vibe, Vibe.INDETERMINATE)

    def test_reading_expires_at_local_midnight(self):
        self.client.post('/set/bones')
        self.clock.now = datetime(2026, 10, 20, 4, 1, tzinfo=timezone.utc)  # 00:01 EDT next day
        data = self.client.get('/api/vibe').get_json()
        self.assertTrue(data["stale"])
        self.assertEqual(data["label"], "Superposition")

    def test_healthz_without_stream(self):
        response = self.client.get('/healthz')
        self.assertEqual(response.status_code, 200)

    def test_healthz_reports_ingester_state(self):
        """503 unless the ingester is streaming; reads keep working either way."""
        ingester = MagicMock()
        ingester.get_status.return_value = {
            "state": IngesterState.FAILED.value,
            "last_error": "HTTP 401: Unauthorized",
            "last_activity_utc": None,
        }
        client = web.create_app("Test Bones", self.service, ingester).test_client()

        response = client.get('/healthz')
        self.assertEqual(response.status_code, 503)
        self.assertIn(b'401', response.data)
        self.assertEqual(client.get('/').status_code, 200)
        self.assertEqual(client.get('/api/vibe').status_code, 200)

        ingester.get_status.return_value = {"state": IngesterState.STREAMING.value, "last_error": None,
                                             "last_activity_utc": "2026-10-19T13:00:00+00:00"}
        self.assertEqual(client.get('/healthz').status_code, 200)

    def test_debug_rules(self):
        data = json.loads(self.client.get('/debug/rules').data)
        self.assertEqual(data["priority"], ["skipped", "no_bones", "bones"])
        self.assertIn("no bones", data["rules"]["no_bones"])

        data = json.loads(self.client.get('/debug/rules?text=No+bones+day').data)
        self.assertEqual(data["vibe"], "no_bones")

    def test_concurrent_requests_and_writes(self):
        """Reads served while overrides land never error and always see a whole record."""
        errors = []

        def reader():
            client = self.app.test_client()
            for _ in range(50):
                data = client.get('/api/vibe').get_json()
                if data["vibe"] not in (None, "bones", "no_bones"):
                    errors.append(data)

        def writer():
            for i in range(50):
                self.service.set_vibe(Vibe.BONES if i % 2 else Vibe.NO_BONES)

        threads = [threading.Thread(target=reader) for _ in range(4)] + [threading.Thread(target=writer)]
        for th in threads:
            th.start()
        for th in threads:
            th.join(10)
        self.assertEqual(errors, [])


class TestVibeService(unittest.TestCase):

    def test_operations(self):
        now = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
        store = VibeStore()
        service = VibeService(store, NEW_YORK, clock=lambda: now)

        self.assertTrue(service.get_current_view().stale)
        self.assertEqual(service.classify_and_set("good morning everyone"), "Unknown")
        self.assertEqual(store.read().vibe, Vibe.INDETERMINATE)
        self.assertFalse(service.get_current_view().stale)

        service.set_vibe(Vibe.SKIPPED)
        self.assertEqual(service.get_current_view().label, "No Reading Today")
        self.assertEqual(store.read().observed_at, now)

        with self.assertRaises(ValueError):
            service.set_vibe("bones")
        self.assertEqual(store.read().vibe, Vibe.SKIPPED)

    def test_yesterdays_reading_is_stale(self):
        now = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
        store = VibeStore()
        store.write(Vibe.BONES, now - timedelta(days=1))
        service = VibeService(store, NEW_YORK, clock=lambda: now)
        self.assertTrue(service.get_current_view().stale)


if __name__ == "__main__":
    unittest.main()
