class TestPaymentsReportApi:
    def test_report_rows_and_summary(self, client, seed):
        user = seed.profile(name="Ana Souza", email="ana@example.com")
        doc = seed.document(user, total_cost=40.0, created_at="2024-03-10T10:00:00Z")
        seed.verification(user, original_document_id=doc, created_at="2024-03-11T10:00:00Z")
        seed.payment(user, doc, amount=38.50, status="completed")

        r = client.get("/api/v1/reports/payments", params={"start_date": "2024-03-01", "end_date": "2024-03-31"})
        assert r.status_code == 200
        data = r.json()
        assert len(data["rows"]) == 1
        row = data["rows"][0]
        assert row["amount"] == 40.0
        assert row["tax"] == 1.5
        assert row["netValue"] == 38.5
        assert row["user_name"] == "Ana Souza"
        assert data["summary"]["count"] == 1
        assert data["summary"]["by_payment_status"]["completed"]["net"] == 38.5
        assert data["linkage_errors"] == []

    def test_linkage_errors_reported(self, client, seed):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc, filename="lost.pdf")

        data = client.get("/api/v1/reports/payments").json()
        assert data["rows"] == []
        assert data["linkage_errors"][0]["filename"] == "lost.pdf"

    def test_strict_mode_conflict(self, client, seed):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc)

        r = client.get("/api/v1/reports/payments", params={"strict": "true"})
        assert r.status_code == 409

    def test_inverted_date_range(self, client):
        r = client.get("/api/v1/reports/payments", params={"start_date": "2024-04-01", "end_date": "2024-03-01"})
        assert r.status_code == 400
