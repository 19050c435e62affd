"""
Tests for the admin HTTP API.
"""
from typing import Any

import pytest

from app.enrollments.database import create_enrollment

from tests.conftest import auth


class TestAccessControl:

    @pytest.mark.asyncio
    async def test_requires_token(self, client: Any, enrollment: Any) -> None:
        response = await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "PAID"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_rejects_malformed_header(self, client: Any) -> None:
        response = await client.get("/api/admin/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_students_are_forbidden(self, client: Any, student_token: str) -> None:
        response = await client.get("/api/admin/enrollments", headers=auth(student_token))

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_teachers_are_forbidden(self, client: Any, teacher_token: str) -> None:
        response = await client.get("/api/admin/audit-logs", headers=auth(teacher_token))

        assert response.status_code == 403


class TestPaymentStatusEndpoint:

    @pytest.mark.asyncio
    async def test_approve_payment(
        self, client: Any, storage: Any, enrollment: Any, admin_token: str
    ) -> None:
        response = await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "paid"},
            headers=auth(admin_token)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["changed"] is True
        assert body["receipt_issued"] is True
        assert body["enrollment"]["payment_status"] == "PAID"
        assert body["enrollment"]["receipt"]["url"].startswith("/api/receipts/REC-")

    @pytest.mark.asyncio
    async def test_invalid_status(self, client: Any, enrollment: Any, admin_token: str) -> None:
        response = await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "INVALID"},
            headers=auth(admin_token)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_argument"

    @pytest.mark.asyncio
    async def test_unknown_enrollment(self, client: Any, admin_token: str) -> None:
        response = await client.patch(
            "/api/admin/enrollments/nonexistent-id/payment-status",
            json={"status": "PAID"},
            headers=auth(admin_token)
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_paid_is_terminal(self, client: Any, enrollment: Any, admin_token: str) -> None:
        url = f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status"
        await client.patch(url, json={"status": "PAID"}, headers=auth(admin_token))

        response = await client.patch(url, json={"status": "LATER"}, headers=auth(admin_token))

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_mark_later_with_note(self, client: Any, enrollment: Any, admin_token: str) -> None:
        response = await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "LATER", "note": "Pays next month"},
            headers=auth(admin_token)
        )

        body = response.json()
        assert body["enrollment"]["payment_status"] == "LATER"
        assert body["enrollment"]["later_reason"] == "Pays next month"
        assert body["enrollment"]["receipt"] is None


class TestReceiptRetryEndpoint:

    @pytest.mark.asyncio
    async def test_retry_issues_missing_receipt(
        self, client: Any, seeded_db: Any, storage: Any, enrollment: Any, admin_token: str
    ) -> None:
        working_save = storage.save

        async def failing_save(filename, data, metadata=None):
            raise OSError("storage offline")

        storage.save = failing_save
        patch = await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "PAID"},
            headers=auth(admin_token)
        )
        assert patch.status_code == 200
        assert patch.json()["warnings"]

        storage.save = working_save
        response = await client.post(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/receipt",
            headers=auth(admin_token)
        )

        assert response.status_code == 200
        receipt = response.json()["receipt"]
        assert receipt["receipt_number"] == patch.json()["enrollment"]["receipt"]["receipt_number"]
        assert receipt["file_id"] in storage.files

    @pytest.mark.asyncio
    async def test_retry_upstream_failure(
        self, client: Any, seeded_db: Any, storage: Any, enrollment: Any, admin_token: str
    ) -> None:
        async def failing_save(filename, data, metadata=None):
            raise OSError("storage offline")

        storage.save = failing_save
        await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "PAID"},
            headers=auth(admin_token)
        )

        response = await client.post(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/receipt",
            headers=auth(admin_token)
        )

        assert response.status_code == 502
        assert response.json()["retryable"] is True

    @pytest.mark.asyncio
    async def test_retry_requires_paid(self, client: Any, enrollment: Any, admin_token: str) -> None:
        response = await client.post(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/receipt",
            headers=auth(admin_token)
        )

        assert response.status_code == 400


class TestListingEndpoints:

    @pytest.mark.asyncio
    async def test_list_enrollments_with_summary(
        self, client: Any, seeded_db: Any, enrollment: Any, admin_token: str
    ) -> None:
        await create_enrollment(seeded_db, "STU_2", "CRS_FREE")

        response = await client.get("/api/admin/enrollments", headers=auth(admin_token))

        body = response.json()
        assert response.status_code == 200
        assert body["pagination"]["total"] == 2
        by_student = {e["student_id"]: e for e in body["enrollments"]}
        assert by_student["STU_1"]["student"]["full_name"] == "Asha Verma"
        assert by_student["STU_1"]["course"]["title"] == "Python Foundations"

    @pytest.mark.asyncio
    async def test_filter_by_payment_status(
        self, client: Any, seeded_db: Any, enrollment: Any, admin_token: str
    ) -> None:
        await create_enrollment(seeded_db, "STU_2", "CRS_FREE")
        await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "LATER"},
            headers=auth(admin_token)
        )

        response = await client.get(
            "/api/admin/enrollments", params={"payment_status": "later"}, headers=auth(admin_token)
        )

        enrollments = response.json()["enrollments"]
        assert [e["enrollment_id"] for e in enrollments] == [enrollment.enrollment_id]

    @pytest.mark.asyncio
    async def test_get_enrollment_not_found(self, client: Any, admin_token: str) -> None:
        response = await client.get("/api/admin/enrollments/ENR_NOPE", headers=auth(admin_token))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_audit_logs_endpoint(self, client: Any, enrollment: Any, admin_token: str) -> None:
        url = f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status"
        await client.patch(url, json={"status": "PAID"}, headers=auth(admin_token))
        await client.patch(url, json={"status": "PAID"}, headers=auth(admin_token))
        await client.patch(url, json={"status": "PENDING"}, headers=auth(admin_token))

        response = await client.get("/api/admin/audit-logs", headers=auth(admin_token))

        body = response.json()
        assert body["stats"] == {"total": 3, "success": 1, "warnings": 1, "errors": 1}
        assert len(body["logs"]) == 3

        errors = await client.get(
            "/api/admin/audit-logs", params={"status": "error"}, headers=auth(admin_token)
        )
        assert errors.json()["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_invalid_audit_status(self, client: Any, admin_token: str) -> None:
        response = await client.get(
            "/api/admin/audit-logs", params={"status": "bogus"}, headers=auth(admin_token)
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_dashboard_and_finance(self, client: Any, enrollment: Any, admin_token: str) -> None:
        await client.patch(
            f"/api/admin/enrollments/{enrollment.enrollment_id}/payment-status",
            json={"status": "PAID"},
            headers=auth(admin_token)
        )

        stats = (await client.get("/api/admin/dashboard/stats", headers=auth(admin_token))).json()
        finance = (await client.get("/api/admin/finance/transactions", headers=auth(admin_token))).json()

        assert stats["enrollments"] == {"PENDING": 0, "PAID": 1, "LATER": 0, "total": 1}
        assert stats["finance"]["admin_revenue"] == 199.9
        assert stats["audit"]["success"] == 1
        assert finance["pagination"]["total"] == 1
        assert finance["transactions"][0]["gross_amount"] == 1999.0
