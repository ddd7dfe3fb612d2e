"""Edge route rules and error remapping."""

from __future__ import annotations

from fnmatch import fnmatchcase

from pydantic import BaseModel, Field, field_validator

from topoctl.domain.types import AllowedMethods, CachePolicy

DEFAULT_PATTERN = "*"


class RouteRule(BaseModel):
    """Map a path pattern to an origin with its caching behaviour."""

    model_config = {"frozen": True}

    path_pattern: str = DEFAULT_PATTERN
    origin: str
    cache_policy: CachePolicy = CachePolicy.CACHING_OPTIMIZED
    allowed_methods: AllowedMethods = AllowedMethods.GET_HEAD
    is_default: bool = False
    forward_all_viewer: bool = False

    @field_validator("path_pattern")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        if value != DEFAULT_PATTERN and not value.startswith("/"):
            raise ValueError(f"Path pattern must start with '/': {value!r}")
        return value

    @property
    def prefix(self) -> str:
        """Literal part of the pattern before its first wildcard."""
        cut = len(self.path_pattern)
        for wildcard in ("*", "?"):
            idx = self.path_pattern.find(wildcard)
            if idx != -1:
                cut = min(cut, idx)
        return self.path_pattern[:cut]

    def matches(self, path: str) -> bool:
        if self.is_default:
            return True
        return fnmatchcase(path, self.path_pattern)


class ErrorResponse(BaseModel):
    """Rewrite an origin error status to a page and status."""

    model_config = {"frozen": True}

    http_status: int = Field(ge=400, le=599)
    response_page_path: str
    response_http_status: int = Field(ge=100, le=599)
