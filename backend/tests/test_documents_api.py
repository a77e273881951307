class TestResolvedDocumentsApi:
    def test_lists_most_advanced_state(self, client, seed):
        user = seed.profile()
        doc = seed.document(user, filename="certidao.pdf", created_at="2024-03-01T10:00:00Z")
        ver = seed.verification(user, original_document_id=doc, status="completed")
        tr = seed.translated(user, ver, translated_file_url="https://files.example.com/t.pdf",
                             is_authenticated=True)
        other = seed.document(user, filename="rg.pdf", created_at="2024-02-01T10:00:00Z")

        r = client.get(f"/api/v1/users/{user}/documents")
        assert r.status_code == 200
        data = r.json()
        assert [d["id"] for d in data] == [tr, other]
        assert data[0]["source"] == "translated"
        assert data[0]["translated_file_url"] == "https://files.example.com/t.pdf"
        assert data[1]["source"] == "base"

    def test_refunded_payment_shown(self, client, seed):
        user = seed.profile()
        doc = seed.document(user, status="processing")
        seed.payment(user, doc, status="refunded")

        data = client.get(f"/api/v1/users/{user}/documents").json()
        assert data[0]["status"] == "refunded"
        assert data[0]["status_overridden"] is True

    def test_unknown_user_has_no_documents(self, client):
        r = client.get("/api/v1/users/nobody/documents")
        assert r.status_code == 200
        assert r.json() == []

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"
