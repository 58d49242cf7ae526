"""End-to-end tests through the FastAPI app"""

import json
from datetime import datetime, timedelta

from fastapi.testclient import TestClient
from pydantic import TypeAdapter

from booking_engine.auth import ROLE_ADMIN, ROLE_CLIENT, ROLE_PROVIDER
from booking_engine.database import get_db
from booking_engine.domain.billing.router import get_webhook_secret
from booking_engine.main import app
from booking_engine.security_utils import create_jwt_token
from booking_engine.shared.clock import get_clock
from booking_engine.webhook_security import SIGNATURE_HEADER, compute_hmac_sha256

from .support import NINE_TO_FIVE, DatabaseTestCase, utc

WEBHOOK_SECRET = "whsec_test"
MONDAY = "2030-06-03"


def bearer(subject, role):
    return {"Authorization": f"Bearer {create_jwt_token({'sub': str(subject), 'role': role})}"}


class ApiTestCase(DatabaseTestCase):
    def setUp(self):
        super().setUp()

        def override_get_db():
            db = self.SessionFactory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_clock] = lambda: self.clock
        app.dependency_overrides[get_webhook_secret] = lambda: WEBHOOK_SECRET
        self.client = TestClient(app)

        provider = self.make_provider(hours={0: NINE_TO_FIVE[0]})
        service = self.make_service(provider, duration=60, price=5000)
        self.provider_id = provider.id
        self.service_id = service.id
        self.db.close()

        self.provider_auth = bearer(self.provider_id, ROLE_PROVIDER)
        self.client_auth = bearer("client-1", ROLE_CLIENT)

    def tearDown(self):
        app.dependency_overrides.clear()
        super().tearDown()

    def post(self, path, body, headers=None, expected=200):
        response = self.client.post(path, json=body, headers=headers or {})
        self.assertEqual(response.status_code, expected, response.text)
        return response.json()

    def walk_to_review(self, start="2030-06-03T14:00:00+00:00", headers=None):
        token = self.post("/booking/wizard", {"provider_id": self.provider_id}, expected=201)["token"]
        token = self.post("/booking/wizard/service", {"token": token, "service_id": self.service_id})["token"]
        token = self.post("/booking/wizard/advance", {"token": token})["token"]
        token = self.post("/booking/wizard/time", {"token": token, "date": MONDAY, "start": start})["token"]
        token = self.post("/booking/wizard/advance", {"token": token})["token"]
        token = self.post("/booking/wizard/identity", {"token": token}, headers or self.client_auth)["token"]
        return self.post("/booking/wizard/advance", {"token": token})["token"]

    def send_webhook(self, payload, secret=WEBHOOK_SECRET):
        body = json.dumps(payload).encode()
        headers = {
            SIGNATURE_HEADER: compute_hmac_sha256(secret, body),
            "Content-Type": "application/json",
        }
        return self.client.post("/billing/payment-webhook", content=body, headers=headers)


class TestCatalogAndScheduling(ApiTestCase):
    def test_provider_setup(self):
        created = self.post("/catalog/providers", {"display_name": "  New   Place ", "timezone": "Europe/Paris"}, expected=201)
        self.assertEqual(created["display_name"], "New Place")
        auth = bearer(created["id"], ROLE_PROVIDER)

        response = self.client.put(
            "/scheduling/availability/weekly",
            json={"days": [{"day_of_week": 0, "start_time": "10:00", "end_time": "12:00"}]},
            headers=auth,
        )
        self.assertEqual(response.status_code, 200, response.text)
        service = self.post(
            "/catalog/services", {"name": "Trim", "duration_minutes": 30, "price_cents": 2500}, auth, expected=201
        )

        slots = self.client.get(
            f"/scheduling/providers/{created['id']}/slots", params={"service_id": service["id"], "date": MONDAY}
        ).json()
        self.assertEqual(slots["timezone"], "Europe/Paris")
        self.assertEqual(len(slots["slots"]), 4)

    def test_unknown_timezone_rejected(self):
        response = self.client.post("/catalog/providers", json={"display_name": "X", "timezone": "Nowhere/City"})
        self.assertEqual(response.status_code, 422)

    def test_management_needs_a_provider_token(self):
        response = self.client.post("/catalog/services", json={"name": "Trim", "duration_minutes": 30, "price_cents": 0})
        self.assertEqual(response.status_code, 401)
        response = self.client.post(
            "/catalog/services",
            json={"name": "Trim", "duration_minutes": 30, "price_cents": 0},
            headers=self.client_auth,
        )
        self.assertEqual(response.status_code, 403)

    def test_operator_flag_is_admin_only(self):
        created = self.post("/catalog/providers", {"display_name": "Front Desk", "is_operator": True}, expected=201)
        self.assertFalse(created["is_operator"])

        path = f"/catalog/providers/{created['id']}/operator"
        self.assertEqual(self.client.put(path, json={"is_operator": True}).status_code, 401)
        own_token = bearer(created["id"], ROLE_PROVIDER)
        self.assertEqual(self.client.put(path, json={"is_operator": True}, headers=own_token).status_code, 403)

        response = self.client.put(path, json={"is_operator": True}, headers=bearer("staff-1", ROLE_ADMIN))
        self.assertEqual(response.status_code, 200, response.text)
        self.assertTrue(response.json()["is_operator"])

    def test_slots_listing(self):
        response = self.client.get(
            f"/scheduling/providers/{self.provider_id}/slots", params={"service_id": self.service_id, "date": MONDAY}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["slots"]), 15)

    def test_availability(self):
        body = self.client.get(f"/scheduling/providers/{self.provider_id}/availability").json()
        self.assertEqual([w["day_of_week"] for w in body["weekly"]], [0])


class TestBookingFlow(ApiTestCase):
    def test_book_pay_and_view(self):
        token = self.walk_to_review()

        review = self.client.get("/booking/wizard/review", params={"token": token}).json()
        self.assertEqual(review["charge"]["total"], 5338)
        self.assertFalse(review["is_operator_bypass"])

        committed = self.post(
            "/booking/wizard/commit", {"token": token, "notes": "Side entrance, please"}, expected=201
        )
        appointment = committed["appointment"]
        self.assertEqual(appointment["status"], "payment_pending")
        self.assertEqual(appointment["notes"], "Side entrance, please")
        self.assertEqual(appointment["client_id"], "client-1")
        self.assertEqual(committed["payment"]["total"], 5338)

        response = self.send_webhook({"appointment_id": appointment["id"], "outcome": "succeeded", "reference": "pay_1"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["appointment_status"], "confirmed")

        events = self.client.get("/calendar/clients/me", headers=self.client_auth).json()
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0]["title"], "Haircut - Fade Studio")
        self.assertEqual(events[0]["temporal_status"], "upcoming")

        events = self.client.get(f"/calendar/providers/{self.provider_id}", headers=self.provider_auth).json()
        self.assertEqual(events[0]["appointment_status"], "confirmed")
        self.assertEqual(events[0]["total"], events[0]["platform_fee"] + events[0]["provider_payout"])

    def test_anonymous_identity_is_rejected(self):
        token = self.post("/booking/wizard", {"provider_id": self.provider_id}, expected=201)["token"]
        token = self.post("/booking/wizard/service", {"token": token, "service_id": self.service_id})["token"]
        token = self.post("/booking/wizard/advance", {"token": token})["token"]
        token = self.post("/booking/wizard/time", {"token": token, "date": MONDAY, "start": "2030-06-03T10:00:00Z"})["token"]
        token = self.post("/booking/wizard/advance", {"token": token})["token"]

        response = self.client.post("/booking/wizard/identity", json={"token": token})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["reason"], "sign_in_required")
        self.assertEqual(response.json()["step"], "identity")

    def test_error_shape(self):
        token = self.post("/booking/wizard", {"provider_id": self.provider_id}, expected=201)["token"]
        response = self.client.post("/booking/wizard/advance", json={"token": token})
        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body["step"], "service")
        self.assertEqual(body["reason"], "service_required")
        self.assertIn("detail", body)

    def test_conflict_response(self):
        first = self.walk_to_review()
        second = self.walk_to_review(headers=bearer("client-2", ROLE_CLIENT))
        winner = self.post("/booking/wizard/commit", {"token": first}, expected=201)["appointment"]

        response = self.client.post("/booking/wizard/commit", json={"token": second})

        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body["reason"], "already_booked")
        self.assertEqual([o["id"] for o in body["overlapping"]], [winner["id"]])

        times = self.client.get("/booking/wizard/times", params={"token": body["wizard_token"], "date": MONDAY}).json()
        # 09:00 to 16:00 every half hour, minus the starts the 14:00-15:00 winner overlaps
        offered = [utc(2030, 6, 3, 9) + timedelta(minutes=30 * i) for i in range(15)]
        blocked = {utc(2030, 6, 3, 13, 30), utc(2030, 6, 3, 14), utc(2030, 6, 3, 14, 30)}
        self.assertEqual(
            TypeAdapter(list[datetime]).validate_python(times["slots"]),
            [start for start in offered if start not in blocked],
        )

    def test_manual_entry(self):
        body = {
            "service_id": self.service_id,
            "start": "2030-06-03T18:00:00+00:00",
            "contact": {"name": "Walk-in", "phone": "(555) 010-0199"},
        }
        self.assertEqual(self.client.post("/booking/manual", json=body).status_code, 401)

        created = self.post("/booking/manual", body, self.provider_auth, expected=201)
        self.assertEqual(created["status"], "confirmed")
        self.assertTrue(created["is_operator_bypass"])

        response = self.send_webhook({"appointment_id": created["id"], "outcome": "refunded"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["reason"], "operator_bypass")

    def test_provider_transitions(self):
        created = self.post(
            "/booking/manual",
            {"service_id": self.service_id, "start": "2030-06-03T10:00:00Z", "contact": {"name": "Walk-in"}},
            self.provider_auth,
            expected=201,
        )
        path = f"/scheduling/appointments/{created['id']}"
        response = self.client.post(f"{path}/missed", headers=self.provider_auth)
        self.assertEqual(response.json()["reason"], "not_started")

        self.clock.advance(hours=3)
        self.assertEqual(self.post(f"{path}/missed", {}, self.provider_auth)["status"], "missed")

    def test_other_providers_calendar_is_forbidden(self):
        response = self.client.get(f"/calendar/providers/{self.provider_id + 1}", headers=self.provider_auth)
        self.assertEqual(response.status_code, 403)


class TestPaymentWebhook(ApiTestCase):
    def test_bad_signature(self):
        response = self.send_webhook({"appointment_id": 1, "outcome": "succeeded"}, secret="wrong")
        self.assertEqual(response.status_code, 401)

    def test_missing_signature(self):
        response = self.client.post("/billing/payment-webhook", json={"appointment_id": 1, "outcome": "succeeded"})
        self.assertEqual(response.status_code, 401)

    def test_invalid_payload(self):
        response = self.send_webhook({"appointment_id": "abc", "outcome": "succeeded"})
        self.assertEqual(response.status_code, 400)

    def test_unknown_appointment(self):
        response = self.send_webhook({"appointment_id": 999, "outcome": "succeeded"})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["reason"], "appointment_not_found")
