"""
Tests for ServiceResult and BaseService.

Covers:
- ServiceResult: success/failure construction, from_exception, truthiness
- BaseService: atomic rollback, handle_exception logging
"""

import logging

import pytest

from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


class TestServiceResult:
    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert result.data == {"id": 1}
        assert result.error is None
        assert bool(result) is True

    def test_success_without_data(self):
        """No-op successes carry no data."""
        result = ServiceResult.success()

        assert result.success
        assert result.data is None

    def test_failure(self):
        result = ServiceResult.failure(
            "User not found", error_code="USER_NOT_FOUND", errors={"user_id": ["x"]}
        )

        assert result.success is False
        assert bool(result) is False
        assert result.error == "User not found"
        assert result.error_code == "USER_NOT_FOUND"
        assert result.errors == {"user_id": ["x"]}

    def test_from_exception_default_code(self):
        result = ServiceResult.from_exception(ValueError("bad"))

        assert result.error == "bad"
        assert result.error_code == "VALUEERROR"

    def test_from_exception_explicit_code(self):
        result = ServiceResult.from_exception(RuntimeError("down"), "WRITE_FAILED")

        assert result.error_code == "WRITE_FAILED"


class TestBaseService:
    def test_logger_named_after_service(self):
        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"

    def test_atomic_rolls_back(self, db):
        from authentication.models import User

        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                User.objects.create_user(email="rollback@example.com", password="x")
                raise RuntimeError("fail inside transaction")

        assert not User.objects.filter(email="rollback@example.com").exists()

    def test_handle_exception_logs_and_converts(self, caplog):
        with caplog.at_level(logging.ERROR):
            result = ExampleService.handle_exception(
                RuntimeError("disk full"), "Saving", "WRITE_FAILED"
            )

        assert result.error_code == "WRITE_FAILED"
        assert "Saving: disk full" in caplog.text

