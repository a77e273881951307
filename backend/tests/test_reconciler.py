from datetime import date
from decimal import Decimal

import pytest

from doctrack.services.errors import LinkageError
from doctrack.services.reconciler import (
    KIND_PIPELINE,
    KIND_SELF_SERVICE,
    PaymentLedgerReconciler,
    ReportFilters,
    compute_fee,
    to_money,
)


class TestComputeFee:
    def test_fee_is_gross_minus_net(self):
        fees = compute_fee(40, 38.50)
        assert fees.gross == Decimal("40.00")
        assert fees.fee == Decimal("1.50")
        assert fees.net == Decimal("38.50")

    def test_unknown_gross_means_no_fee(self):
        fees = compute_fee(None, 25)
        assert fees.gross == Decimal("25.00")
        assert fees.fee == Decimal("0.00")
        assert fees.net == Decimal("25.00")

    def test_negative_fee_is_clamped(self):
        fees = compute_fee(30, 35)
        assert fees.fee == Decimal("0.00")
        assert fees.gross == Decimal("30.00")

    def test_money_rounds_half_up(self):
        assert to_money(1.005) == Decimal("1.01")
        assert to_money(2.675) == Decimal("2.68")
        assert to_money(None) is None


class TestPaymentLedgerReconciler:
    def _report(self, repository, **filters):
        return PaymentLedgerReconciler(repository).build_report(ReportFilters(**filters))

    def test_pipeline_order_uses_original_document_payment(self, seed, repository):
        user = seed.profile(role="user")
        doc = seed.document(user, total_cost=40.0)
        ver = seed.verification(user, original_document_id=doc, total_cost=40.0, pages=2)
        pay = seed.payment(user, doc, amount=38.50, status="completed")

        report = self._report(repository)
        assert len(report.rows) == 1
        row = report.rows[0]
        assert row.kind == KIND_PIPELINE
        assert row.order_id == pay
        assert row.document_id == doc
        assert row.verification_id == ver
        assert row.amount == Decimal("40.00")
        assert row.tax == Decimal("1.50")
        assert row.net_value == Decimal("38.50")
        assert report.linkage_errors == []

    def test_payment_on_verification_id_is_a_linkage_error(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        ver = seed.verification(user, original_document_id=doc)
        seed.payment(user, ver, amount=40.0)

        report = self._report(repository)
        assert report.rows == []
        assert len(report.linkage_errors) == 1
        assert report.linkage_errors[0].order_id == ver

    def test_no_user_id_fallback(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0, filename="first.pdf")
        seed.verification(user, original_document_id=doc)
        # Same user paid for something else; must not be matched
        other = seed.document(user, total_cost=10.0, filename="other.pdf", status="draft")
        seed.payment(user, other, amount=10.0)

        report = self._report(repository)
        assert report.rows == []
        assert [e.filename for e in report.linkage_errors] == ["certidao.pdf"]

    def test_strict_mode_raises(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc)

        with pytest.raises(LinkageError):
            self._report(repository, strict=True)

    def test_pipeline_record_without_original_id(self, seed, repository):
        user = seed.profile()
        seed.verification(user, filename="loose.pdf")

        report = self._report(repository)
        assert report.rows == []
        assert report.linkage_errors[0].filename == "loose.pdf"

    def test_self_service_order(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=25.0, status="completed")
        pay = seed.payment(user, doc, amount=25.0, status="completed", payment_method="card")

        report = self._report(repository)
        assert len(report.rows) == 1
        row = report.rows[0]
        assert row.kind == KIND_SELF_SERVICE
        assert row.order_id == pay
        assert row.tax == Decimal("0.00")
        assert row.payment_method == "card"

    def test_self_service_without_gross_reports_zero_fee(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=None, status="completed")
        seed.payment(user, doc, amount=25.0, status="completed")

        row = self._report(repository).rows[0]
        assert row.amount == Decimal("25.00")
        assert row.tax == Decimal("0.00")
        assert row.net_value == Decimal("25.00")

    def test_pipeline_document_not_reported_twice(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc)
        seed.payment(user, doc, amount=38.50)

        report = self._report(repository)
        assert len(report.rows) == 1
        assert report.rows[0].kind == KIND_PIPELINE

    def test_internal_and_draft_documents_skipped(self, seed, repository):
        user = seed.profile()
        internal = seed.document(user, filename="internal.pdf", total_cost=10.0, is_internal_use=True)
        seed.payment(user, internal, amount=10.0)
        draft = seed.document(user, filename="draft.pdf", total_cost=10.0, status="draft")
        seed.payment(user, draft, amount=10.0)
        seed.document(user, filename="quote.pdf", total_cost=None)

        report = self._report(repository)
        assert report.rows == []
        assert report.linkage_errors == []

    def test_internal_pipeline_original_skipped(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0, is_internal_use=True)
        seed.verification(user, original_document_id=doc)

        report = self._report(repository)
        assert report.rows == []
        assert report.linkage_errors == []

    def test_authentication_prefers_translated_record(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0, authenticated_by_name="Manual Override")
        ver = seed.verification(user, original_document_id=doc)
        seed.translated(
            user, ver, is_authenticated=True,
            authenticated_by_name="Jo Auth", authenticated_by_email="jo@example.com",
            authentication_date="2024-03-03T12:00:00Z",
        )
        seed.payment(user, doc, amount=40.0)

        row = self._report(repository).rows[0]
        assert row.authenticated_by_name == "Jo Auth"
        assert row.authenticated_by_email == "jo@example.com"

    def test_authentication_falls_back_to_base_document(self, seed, repository):
        user = seed.profile()
        doc = seed.document(
            user, total_cost=40.0,
            authenticated_by_name="Manual Override", authenticated_by_email="override@example.com",
        )
        ver = seed.verification(user, original_document_id=doc)
        seed.translated(user, ver)
        seed.payment(user, doc, amount=40.0)

        row = self._report(repository).rows[0]
        assert row.authenticated_by_name == "Manual Override"

    def test_authentication_absent(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc)
        seed.payment(user, doc, amount=40.0)

        row = self._report(repository).rows[0]
        assert row.authenticated_by_name is None
        assert row.authenticated_by_email is None

    def test_authenticated_pipeline_record_is_completed(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, total_cost=40.0)
        seed.verification(user, original_document_id=doc, status="processing", authenticated_by_name="Jo")
        seed.payment(user, doc, amount=40.0)

        assert self._report(repository).rows[0].document_status == "completed"

    def test_filters_and_summary(self, seed, repository):
        customer = seed.profile(name="Customer", email="c@example.com", role="user")
        staff = seed.profile(name="Staff", email="s@example.com", role="admin")
        a = seed.document(customer, filename="a.pdf", total_cost=40.0, created_at="2024-03-10T10:00:00Z")
        seed.payment(customer, a, amount=38.50, status="completed")
        b = seed.document(customer, filename="b.pdf", total_cost=20.0, created_at="2024-03-12T10:00:00Z")
        seed.payment(customer, b, amount=20.0, status="refunded")
        c = seed.document(staff, filename="c.pdf", total_cost=10.0, created_at="2024-03-14T10:00:00Z")
        seed.payment(staff, c, amount=10.0, status="completed")
        old = seed.document(customer, filename="old.pdf", total_cost=99.0, created_at="2024-02-01T10:00:00Z")
        seed.payment(customer, old, amount=99.0, status="completed")

        report = self._report(repository, start_date=date(2024, 3, 1), end_date=date(2024, 3, 31))
        assert [r.filename for r in report.rows] == ["c.pdf", "b.pdf", "a.pdf"]

        summary = report.summary()
        assert summary["count"] == 3
        assert summary["gross"] == Decimal("70.00")
        assert summary["tax"] == Decimal("1.50")
        assert summary["net"] == Decimal("68.50")
        assert summary["by_payment_status"]["completed"]["count"] == 2

        completed = self._report(repository, start_date=date(2024, 3, 1), payment_status="completed")
        assert {r.filename for r in completed.rows} == {"a.pdf", "c.pdf"}

        customers = self._report(repository, start_date=date(2024, 3, 1), user_role="user")
        assert {r.filename for r in customers.rows} == {"a.pdf", "b.pdf"}

    def test_filename_fallback_links_own_upload(self, seed, repository):
        user = seed.profile()
        doc = seed.document(user, filename="contract.pdf", total_cost=40.0)
        ver = seed.verification(user, filename="contract.pdf")
        pay = seed.payment(user, doc, amount=38.50, status="completed")

        report = self._report(repository)
        assert report.linkage_errors == []
        assert len(report.rows) == 1
        row = report.rows[0]
        assert row.kind == KIND_PIPELINE
        assert row.order_id == pay
        assert row.document_id == doc
        assert row.verification_id == ver
        assert row.tax == Decimal("1.50")

    def test_filename_fallback_ignores_other_users_uploads(self, seed, repository):
        alice = seed.profile(name="Alice", email="alice@example.com")
        bob = seed.profile(name="Bob", email="bob@example.com")
        doc = seed.document(alice, filename="contract.pdf", total_cost=40.0, status="completed")
        pay = seed.payment(alice, doc, amount=40.0, status="completed")
        ver = seed.verification(bob, filename="contract.pdf")

        report = self._report(repository)
        assert [(r.order_id, r.user_id) for r in report.rows] == [(pay, alice)]
        assert report.summary()["gross"] == Decimal("40.00")
        assert [e.order_id for e in report.linkage_errors] == [ver]

    def test_other_users_internal_upload_does_not_hide_pipeline_record(self, seed, repository):
        alice = seed.profile(name="Alice", email="alice@example.com")
        bob = seed.profile(name="Bob", email="bob@example.com")
        seed.document(alice, filename="x.pdf", total_cost=10.0, is_internal_use=True)
        ver = seed.verification(bob, filename="x.pdf")

        report = self._report(repository)
        assert report.rows == []
        assert [e.order_id for e in report.linkage_errors] == [ver]
