"""ServiceResult and ServiceError — the contract between services and the CLI.

Core builders raise :class:`~topoctl.domain.errors.TopologyError`;
service operations catch it and return a failed ServiceResult instead.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: str
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Return type of every service operation.

    Attributes:
        ok: Whether the operation succeeded.
        op: Operation name (``"synth"``, ``"route"``, ``"nag"``).
        data: Operation payload on success.
        warnings: Non-fatal issues, e.g. a failing plugin hook.
        error: Set when ``ok`` is False.
        meta: Optional metadata such as telemetry spans.
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None
