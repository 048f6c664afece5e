import time
import unittest

from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from ordertrack.core.app_session import AppSession
from ordertrack.core.limiter import limiter
from ordertrack.main import app
from ordertrack.modules.auth.storage import MemorySessionStorage
from ordertrack.modules.gate.service import AuthGate
from ordertrack.modules.profiles.service import ProfileResolver
from tests.fakes import FakeSupabase


async def no_sleep(delay):
    return None


def wait_for_session_load(client: TestClient, attempts: int = 100) -> None:
    for _ in range(attempts):
        if client.get("/ready").json().get("session") != "loading":
            return
        time.sleep(0.01)
    raise AssertionError("session never finished loading")


class RoutesTests(unittest.TestCase):
    def setUp(self) -> None:
        limiter.enabled = False
        self.supabase = FakeSupabase()
        self.supabase.seed("companies", {"id": "company-1", "name": "Acme"})
        self.supabase.seed(
            "profiles",
            {"id": "m1", "role": "manager", "company_id": "company-1", "full_name": "Mia"},
            {"id": "w1", "role": "worker", "company_id": "company-1", "full_name": "Wes"},
            {"id": "d1", "role": "worker", "company_id": None, "full_name": "Dan"},
        )
        self.supabase.seed(
            "orders",
            {"id": "o1", "title": "Oak door", "company_id": "company-1", "assignment_type": "specific",
             "status": "new", "priority": "high"},
            {"id": "o2", "title": "Pine shelf", "company_id": "company-1", "assignment_type": "general",
             "status": "completed", "priority": "low"},
        )
        self.supabase.auth.add_user("mia@example.com", "pw", user_id="m1")
        self.supabase.auth.add_user("wes@example.com", "pw", user_id="w1")
        self.supabase.auth.add_user("dan@example.com", "pw", user_id="d1")

        app.state.app_session = AppSession(
            self.supabase,
            session_storage=MemorySessionStorage(),
            setup_storage=MemorySessionStorage(),
            resolver=ProfileResolver(self.supabase, attempts=1, sleep=no_sleep, timeout=1.0),
            gate=AuthGate(loading_timeout=10.0),
            timeout=1.0,
        )
        self.client = TestClient(app)
        self.client.__enter__()
        wait_for_session_load(self.client)

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        app.state.app_session = None
        limiter.enabled = True

    def login(self, email: str) -> dict:
        response = self.client.post("/api/v1/auth/login", json={"email": email, "password": "pw"})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health_and_security_headers(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "healthy"})
        self.assertEqual(response.headers["X-Content-Type-Options"], "nosniff")
        self.assertEqual(response.headers["X-Frame-Options"], "DENY")

    def test_ready_reports_gate_state(self) -> None:
        response = self.client.get("/ready")
        self.assertEqual(response.json(), {"status": "ready", "session": "unauthenticated"})

    def test_protected_route_requires_sign_in(self) -> None:
        response = self.client.get("/api/v1/orders")
        self.assertEqual(response.status_code, 401)
        body = response.json()
        self.assertEqual(body["error"], "NotAuthenticatedError")
        self.assertEqual(body["redirect_to"], "/login")
        self.assertFalse(body["retry"])

    def test_bad_credentials(self) -> None:
        response = self.client.post("/api/v1/auth/login", json={"email": "mia@example.com", "password": "no"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "AuthError")

    def test_degraded_profile_is_told_to_repair(self) -> None:
        state = self.login("dan@example.com")
        self.assertEqual(state["state"], "authenticated_degraded")
        self.assertEqual(state["redirect_to"], "/profile/repair")

        response = self.client.get("/api/v1/orders")
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["reason"], "missing_company")
        self.assertEqual(body["repair_path"], "/profile/repair")

    def test_manager_lists_and_filters_orders(self) -> None:
        state = self.login("mia@example.com")
        self.assertEqual(state["state"], "authenticated_ready")
        self.assertTrue(state["capabilities"]["is_manager"])

        body = self.client.get("/api/v1/orders").json()
        self.assertEqual(body["total"], 2)
        self.assertEqual({o["id"] for o in body["items"]}, {"o1", "o2"})

        body = self.client.get("/api/v1/orders", params={"search": "oak"}).json()
        self.assertEqual([o["id"] for o in body["items"]], ["o1"])
        self.assertEqual(body["shown"], 1)

    def test_manager_creates_order(self) -> None:
        self.login("mia@example.com")
        response = self.client.post("/api/v1/orders", json={"title": "  Walnut table ", "assigned_workers": ["w1"]})
        self.assertEqual(response.status_code, 201)
        order = response.json()
        self.assertEqual(order["title"], "Walnut table")
        self.assertEqual(order["company_id"], "company-1")
        self.assertEqual(order["created_by"], "m1")
        assignments = [a for a in self.supabase.rows("order_assignments") if a["order_id"] == order["id"]]
        self.assertEqual([a["worker_id"] for a in assignments], ["w1"])

    def test_worker_cannot_create_orders_and_sees_only_visible_ones(self) -> None:
        self.login("wes@example.com")
        response = self.client.post("/api/v1/orders", json={"title": "Sneaky"})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "NotAuthorizedError")

        body = self.client.get("/api/v1/orders").json()
        self.assertEqual([o["id"] for o in body["items"]], ["o2"])

    def test_logout_returns_to_unauthenticated(self) -> None:
        self.login("mia@example.com")
        response = self.client.post("/api/v1/auth/logout")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["warning"])
        state = self.client.get("/api/v1/auth/state").json()
        self.assertEqual(state["state"], "unauthenticated")
        self.assertEqual(self.client.get("/api/v1/orders").status_code, 401)

    def test_live_stream_rejects_unknown_stream(self) -> None:
        with self.client.websocket_connect("/ws/invoices") as websocket:
            with self.assertRaises(WebSocketDisconnect) as ctx:
                websocket.receive_json()
        self.assertEqual(ctx.exception.code, 4404)

    def test_live_stream_requires_ready_session(self) -> None:
        with self.client.websocket_connect("/ws/orders") as websocket:
            body = websocket.receive_json()
            self.assertEqual(body["error"], "NotAuthenticatedError")
            with self.assertRaises(WebSocketDisconnect) as ctx:
                websocket.receive_json()
        self.assertEqual(ctx.exception.code, 4401)

    def test_unknown_order_is_not_found(self) -> None:
        self.login("mia@example.com")
        response = self.client.get("/api/v1/orders/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "NotFoundError")


class SessionLoadTimeoutTests(unittest.TestCase):
    def setUp(self) -> None:
        limiter.enabled = False
        self.supabase = FakeSupabase()
        # the stored-session read never answers within the test
        self.supabase.auth.get_session_delay = 30.0
        app.state.app_session = AppSession(
            self.supabase,
            session_storage=MemorySessionStorage(),
            setup_storage=MemorySessionStorage(),
            gate=AuthGate(loading_timeout=0.2),
            timeout=5.0,
        )
        self.started = time.monotonic()
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self) -> None:
        self.client.__exit__(None, None, None)
        app.state.app_session = None
        limiter.enabled = True

    def test_requests_are_served_while_loading_then_time_out(self) -> None:
        state = self.client.get("/api/v1/auth/state").json()
        self.assertLess(time.monotonic() - self.started, 1.0)
        self.assertEqual(state["state"], "loading")

        response = self.client.get("/api/v1/orders")
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "SessionLoadingError")

        time.sleep(0.3)
        state = self.client.get("/api/v1/auth/state").json()
        self.assertEqual(state["state"], "unauthenticated")
        self.assertTrue(state["timed_out"])
        self.assertEqual(state["redirect_to"], "/login")

        body = self.client.get("/api/v1/orders").json()
        self.assertEqual(body["error"], "NotAuthenticatedError")
        self.assertTrue(body["retry"])
        self.assertLess(time.monotonic() - self.started, 2.0)


if __name__ == "__main__":
    unittest.main()
