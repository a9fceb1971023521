"""Tests for api/base.py - Unified API response format."""

from datetime import timezone

from api.base import (
    success_response,
    error_response,
    ErrorCodes,
)


class TestSuccessResponse:
    """Tests for success_response()."""

    def test_structure(self):
        resp = success_response({"invoice_number": "INV-202503-0001"})
        assert resp.success is True
        assert resp.data == {"invoice_number": "INV-202503-0001"}
        assert resp.error is None

    def test_request_id_generated(self):
        resp = success_response({})
        assert len(resp.meta.request_id) > 0

    def test_request_id_passed_through(self):
        assert success_response({}, "req-123").meta.request_id == "req-123"

    def test_timestamp_is_utc(self):
        resp = success_response({})
        assert resp.meta.timestamp.tzinfo == timezone.utc


class TestErrorResponse:
    """Tests for error_response()."""

    def test_structure(self):
        resp = error_response("OVERPAYMENT", "Payment of 2000.00 exceeds balance 761.00")
        assert resp.success is False
        assert resp.data is None
        assert resp.error.code == "OVERPAYMENT"
        assert resp.error.message == "Payment of 2000.00 exceeds balance 761.00"

    def test_request_id_passed_through(self):
        assert error_response("ERR", "msg", "req-9").meta.request_id == "req-9"


class TestErrorCodes:

    def test_family_fallbacks(self):
        assert ErrorCodes.VALIDATION_ERROR == "VALIDATION_ERROR"
        assert ErrorCodes.NOT_FOUND == "NOT_FOUND"
        assert ErrorCodes.INVALID_STATE == "INVALID_STATE"
        assert ErrorCodes.BUSINESS_RULE_VIOLATION == "BUSINESS_RULE_VIOLATION"

    def test_transport_codes(self):
        assert ErrorCodes.UNKNOWN_DOMAIN == "UNKNOWN_DOMAIN"
        assert ErrorCodes.ACTION_NOT_ALLOWED == "ACTION_NOT_ALLOWED"
        assert ErrorCodes.INTERNAL_ERROR == "INTERNAL_ERROR"
