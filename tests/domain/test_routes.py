"""Tests for route rules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from topoctl.domain.routes import ErrorResponse, RouteRule


class TestRouteRule:
    def test_prefix_stops_at_first_wildcard(self) -> None:
        assert RouteRule(path_pattern="/api/*", origin="alb").prefix == "/api/"
        assert RouteRule(path_pattern="/img/?.png", origin="b").prefix == "/img/"
        assert RouteRule(path_pattern="/exact", origin="b").prefix == "/exact"

    def test_pattern_needs_leading_slash(self) -> None:
        with pytest.raises(ValidationError, match="must start with '/'"):
            RouteRule(path_pattern="api/*", origin="alb")

    def test_matches(self) -> None:
        rule = RouteRule(path_pattern="/api/*", origin="alb")
        assert rule.matches("/api/todos")
        assert rule.matches("/api/todos/1")
        assert not rule.matches("/index.html")
        assert not rule.matches("/API/todos")

    def test_default_matches_everything(self) -> None:
        rule = RouteRule(origin="bucket", is_default=True)
        assert rule.matches("/anything/at/all")


class TestErrorResponse:
    def test_status_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ErrorResponse(
                http_status=200, response_page_path="/index.html", response_http_status=200
            )
