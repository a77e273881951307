import inspect

from fastapi.routing import APIRoute

from doctrack.main import app
from doctrack.services.notifications import PAYMENT_REJECTED, TRANSLATION_SUBMISSION

OPERATOR = {"X-Operator-Id": "operator-1"}


class TestPaymentVerificationApi:
    def _order(self, seed, code="ZL-12345", status="pending_verification", filename="certidao.pdf", name="Ana Souza"):
        user = seed.profile(name=name, email=f"{name.split()[0].lower()}@example.com")
        doc = seed.document(user, filename=filename, total_cost=40.0)
        return seed.payment(user, doc, amount=40.0, status=status, zelle_confirmation_code=code)

    def test_operator_header_required(self, client, seed, operator):
        pay = self._order(seed)
        r = client.post(f"/api/v1/payments/{pay}/approve", json={})
        assert r.status_code == 401

    def test_customer_cannot_approve(self, client, seed, operator):
        customer = seed.profile(id="customer-1", role="user")
        pay = self._order(seed)
        r = client.post(f"/api/v1/payments/{pay}/approve", json={}, headers={"X-Operator-Id": customer})
        assert r.status_code == 403

    def test_approve(self, client, seed, operator, dispatcher):
        pay = self._order(seed)

        r = client.post(f"/api/v1/payments/{pay}/approve", json={}, headers=OPERATOR)
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "completed"
        assert data["transitioned"] is True
        assert data["previous_status"] == "pending_verification"
        assert len(data["delivery"]["delivered"]) == 3
        assert len(dispatcher.calls_for(TRANSLATION_SUBMISSION)) == 1

        logs = client.get("/api/v1/action-logs", params={"entity_id": pay}).json()
        assert len(logs) == 2
        assert all(log["performed_by"] == "operator-1" for log in logs)
        assert all(log["metadata"]["new_status"] == "completed" for log in logs)

    def test_approve_twice_sends_one_translation(self, client, seed, operator, dispatcher):
        pay = self._order(seed)

        client.post(f"/api/v1/payments/{pay}/approve", json={}, headers=OPERATOR)
        r = client.post(f"/api/v1/payments/{pay}/approve", json={}, headers=OPERATOR)

        assert r.status_code == 200
        assert r.json()["transitioned"] is False
        assert len(dispatcher.calls_for(TRANSLATION_SUBMISSION)) == 1

    def test_approve_without_code(self, client, seed, operator, dispatcher):
        pay = self._order(seed, code=None)

        r = client.post(f"/api/v1/payments/{pay}/approve", json={}, headers=OPERATOR)
        assert r.status_code == 422
        assert r.json()["detail"]["state"] == "awaiting_code"
        assert dispatcher.calls == []

        r = client.post(
            f"/api/v1/payments/{pay}/approve", json={"confirmation_code": "ZL-777"}, headers=OPERATOR
        )
        assert r.status_code == 200
        assert r.json()["status"] == "completed"

    def test_approve_unknown_payment(self, client, operator):
        r = client.post("/api/v1/payments/nope/approve", json={}, headers=OPERATOR)
        assert r.status_code == 404

    def test_verify_is_idempotent(self, client, seed, operator, dispatcher):
        pay = self._order(seed)

        for _ in range(2):
            r = client.post(f"/api/v1/payments/{pay}/verify", headers=OPERATOR)
            assert r.status_code == 200
            assert r.json() == {"payment_id": pay, "verified": True}
        assert len(dispatcher.calls_for(TRANSLATION_SUBMISSION)) == 1

    def test_verify_without_code(self, client, seed, operator, dispatcher):
        pay = self._order(seed, code=None)

        r = client.post(f"/api/v1/payments/{pay}/verify", headers=OPERATOR)
        assert r.status_code == 422
        assert r.json()["detail"]["state"] == "awaiting_code"
        assert dispatcher.calls == []

        queue = client.get("/api/v1/payments/manual").json()
        assert [p["id"] for p in queue["payments"]] == [pay]

    def test_webhook_endpoints_run_in_threadpool(self):
        blocking = {"bulk_approve", "bulk_reject", "approve_payment", "reject_payment", "verify_payment", "drain_outbox"}
        endpoints = {
            route.endpoint.__name__: route.endpoint
            for route in app.routes
            if isinstance(route, APIRoute) and route.endpoint.__name__ in blocking
        }
        assert set(endpoints) == blocking
        assert not any(inspect.iscoroutinefunction(e) for e in endpoints.values())

    def test_reject(self, client, seed, operator, dispatcher):
        pay = self._order(seed)

        r = client.post(
            f"/api/v1/payments/{pay}/reject",
            json={"reason": "incorrect amount"},
            headers=OPERATOR,
        )
        assert r.status_code == 200
        assert r.json()["status"] == "failed"
        assert len(dispatcher.calls_for(PAYMENT_REJECTED)) == 1

    def test_reject_custom_without_text(self, client, seed, operator):
        pay = self._order(seed)

        r = client.post(
            f"/api/v1/payments/{pay}/reject",
            json={"reason": "custom", "custom_reason": ""},
            headers=OPERATOR,
        )
        assert r.status_code == 422

        listing = client.get("/api/v1/payments/manual").json()
        assert [p["id"] for p in listing["payments"]] == [pay]

    def test_bulk_approve_and_reject(self, client, seed, operator, dispatcher):
        a = self._order(seed, filename="a.pdf", name="Ana Souza")
        b = self._order(seed, code=None, filename="b.pdf", name="Bruno Lima")
        c = self._order(seed, code=None, filename="c.pdf", name="Carla Dias")

        r = client.post("/api/v1/payments/bulk-approve", json={"payment_ids": [a, b]}, headers=OPERATOR)
        assert r.status_code == 200
        data = r.json()
        assert data["processed"] == 2
        assert data["changed"] == 1
        assert [item["result"] for item in data["results"]] == ["approved", "skipped_no_code"]

        r = client.post("/api/v1/payments/bulk-reject", json={"payment_ids": [b, c, a]}, headers=OPERATOR)
        assert [item["result"] for item in r.json()["results"]] == ["rejected", "rejected", "unchanged"]
        assert dispatcher.calls_for(PAYMENT_REJECTED) == []

    def test_bulk_requires_ids(self, client, operator):
        r = client.post("/api/v1/payments/bulk-approve", json={"payment_ids": []}, headers=OPERATOR)
        assert r.status_code == 422


class TestManualPaymentQueueApi:
    def test_queue_filters_and_stats(self, client, seed):
        ana = seed.profile(name="Ana Souza", email="ana@example.com")
        bruno = seed.profile(name="Bruno Lima", email="bruno@example.com")
        seed.payment(ana, seed.document(ana, filename="diploma.pdf"), amount=40.0,
                     created_at="2024-03-01T10:00:00Z", zelle_confirmation_code="ZL-AAA")
        seed.payment(bruno, seed.document(bruno, filename="rg.pdf"), amount=20.0,
                     created_at="2024-03-05T10:00:00Z")
        seed.payment(bruno, seed.document(bruno, filename="cpf.pdf"), amount=60.0, status="completed",
                     created_at="2024-03-07T10:00:00Z")
        seed.payment(ana, seed.document(ana, filename="card.pdf"), amount=99.0, payment_method="card")

        r = client.get("/api/v1/payments/manual")
        assert r.status_code == 200
        data = r.json()
        assert data["total"] == 2
        assert [p["document_filename"] for p in data["payments"]] == ["rg.pdf", "diploma.pdf"]
        assert data["stats"] == {
            "total": 3,
            "pending": 2,
            "manual_review": 0,
            "completed": 1,
            "failed": 0,
            "total_amount": 120.0,
            "avg_amount": 40.0,
        }

        r = client.get("/api/v1/payments/manual", params={"q": "zl-aaa"})
        assert [p["user_name"] for p in r.json()["payments"]] == ["Ana Souza"]

        r = client.get("/api/v1/payments/manual", params={"status": "completed"})
        assert [p["document_filename"] for p in r.json()["payments"]] == ["cpf.pdf"]

        r = client.get("/api/v1/payments/manual", params={"sort_by": "amount", "sort_order": "asc"})
        assert [p["amount"] for p in r.json()["payments"]] == [20.0, 40.0]

        r = client.get("/api/v1/payments/manual", params={"min_amount": 30})
        assert [p["amount"] for p in r.json()["payments"]] == [40.0]

        r = client.get("/api/v1/payments/manual", params={"end_date": "2024-03-01"})
        assert [p["document_filename"] for p in r.json()["payments"]] == ["diploma.pdf"]

    def test_invalid_status_tab(self, client):
        r = client.get("/api/v1/payments/manual", params={"status": "refunded"})
        assert r.status_code == 400


class TestOutboxApi:
    def test_list_and_drain(self, client, seed, operator, dispatcher):
        user = seed.profile()
        pay = seed.payment(user, seed.document(user), zelle_confirmation_code="ZL-1")
        dispatcher.failing.add(TRANSLATION_SUBMISSION)

        client.post(f"/api/v1/payments/{pay}/approve", json={}, headers=OPERATOR)

        pending = client.get("/api/v1/outbox", params={"status": "pending"}).json()
        assert [e["event_type"] for e in pending] == [TRANSLATION_SUBMISSION]
        assert pending[0]["payload"]["document_id"]

        dispatcher.failing.clear()
        r = client.post("/api/v1/outbox/drain", json={}, headers=OPERATOR)
        assert r.status_code == 200
        assert r.json()["delivered"] == [pending[0]["id"]]
        assert client.get("/api/v1/outbox", params={"status": "pending"}).json() == []

    def test_drain_requires_operator(self, client):
        assert client.post("/api/v1/outbox/drain", json={}).status_code == 401
