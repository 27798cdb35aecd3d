"""
Tests for ServiceResult and BaseService.
"""

import logging

import pytest
from django.contrib.auth.models import User

from core.services import BaseService, ServiceResult


class ExampleService(BaseService):
    pass


class TestServiceResult:
    """Tests for ServiceResult constructors."""

    def test_success(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert result.data == {"id": 1}
        assert result.error is None
        assert bool(result) is True

    def test_failure_keeps_data(self):
        """A failed result can still carry the state left behind."""
        result = ServiceResult.failure(
            "Gateway unavailable",
            error_code="REFUND_FAILED",
            data="refund",
        )

        assert result.success is False
        assert result.error_code == "REFUND_FAILED"
        assert result.data == "refund"
        assert bool(result) is False


class TestBaseService:
    """Tests for BaseService helpers."""

    def test_logger_named_after_service(self):
        logger = ExampleService.get_logger()

        assert isinstance(logger, logging.Logger)
        assert logger.name == f"{__name__}.ExampleService"

    @pytest.mark.django_db
    def test_atomic_rolls_back_on_error(self):
        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                User.objects.create(username="rolled-back")
                raise RuntimeError("boom")

        assert not User.objects.filter(username="rolled-back").exists()
