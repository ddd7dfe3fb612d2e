"""Tests for ServiceResult and ServiceError."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from topoctl.services.result import ServiceError, ServiceResult


class TestServiceResult:
    def test_success_defaults(self) -> None:
        result = ServiceResult(ok=True, op="synth", data={"resources": 57})
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_failure(self) -> None:
        result = ServiceResult(
            ok=False,
            op="nag",
            error=ServiceError(code="CONFIGURATION_ERROR", message="bad env"),
        )
        assert result.error is not None
        assert result.error.detail == {}
        assert result.model_dump()["error"]["code"] == "CONFIGURATION_ERROR"

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="route")
        with pytest.raises(ValidationError):
            result.ok = False  # type: ignore[misc]
