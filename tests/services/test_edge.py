"""Tests for the edge router: route resolution, error remapping, declaration."""

from __future__ import annotations

import pytest

from topoctl.domain.errors import CompositionError
from topoctl.domain.routes import RouteRule
from topoctl.domain.types import ALL_VIEWER_ORIGIN_REQUEST_POLICY, CachePolicy, ResourceKind
from topoctl.infrastructure.graph.engine import ResourceGraph
from topoctl.services.composer import Synthesis
from topoctl.services.edge import EdgeRouter

STACK = "todo-app-stack"
BUCKET = f"{STACK}/WebBucket"
ALB = f"{STACK}/ALB"


@pytest.fixture
def router() -> EdgeRouter:
    return EdgeRouter.standard(static_origin=BUCKET, api_origin=ALB)


class TestResolve:
    def test_api_goes_to_load_balancer_uncached(self, router: EdgeRouter) -> None:
        rule = router.resolve("/api/todos")
        assert rule.origin == ALB
        assert rule.cache_policy is CachePolicy.CACHING_DISABLED
        assert rule.forward_all_viewer

    def test_everything_else_is_static(self, router: EdgeRouter) -> None:
        for path in ("/index.html", "/", "/assets/app.js", "/apis"):
            rule = router.resolve(path)
            assert rule.is_default
            assert rule.origin == BUCKET
            assert rule.cache_policy is CachePolicy.CACHING_OPTIMIZED

    def test_longest_prefix_wins(self) -> None:
        router = EdgeRouter(
            [
                RouteRule(origin=BUCKET, is_default=True),
                RouteRule(path_pattern="/api/*", origin=ALB),
                RouteRule(path_pattern="/api/admin/*", origin=BUCKET),
            ]
        )
        assert [r.path_pattern for r in router.routes] == ["/api/admin/*", "/api/*"]
        assert router.resolve("/api/admin/users").path_pattern == "/api/admin/*"
        assert router.resolve("/api/todos").path_pattern == "/api/*"
        assert router.origins == [BUCKET, ALB]


class TestErrorRemapping:
    @pytest.mark.parametrize("status", [403, 404])
    def test_missing_pages_serve_the_entry_document(
        self, router: EdgeRouter, status: int
    ) -> None:
        response = router.remap_error(status)
        assert response is not None
        assert response.response_page_path == "/index.html"
        assert response.response_http_status == 200

    def test_other_statuses_pass_through(self, router: EdgeRouter) -> None:
        assert router.remap_error(500) is None


class TestValidation:
    def test_exactly_one_default(self) -> None:
        with pytest.raises(CompositionError, match="exactly one default route, found 0"):
            EdgeRouter([RouteRule(path_pattern="/api/*", origin=ALB)])
        with pytest.raises(CompositionError, match="found 2"):
            EdgeRouter(
                [
                    RouteRule(origin=BUCKET, is_default=True),
                    RouteRule(origin=ALB, is_default=True),
                ]
            )

    def test_duplicate_patterns(self) -> None:
        with pytest.raises(CompositionError, match="Duplicate route patterns"):
            EdgeRouter(
                [
                    RouteRule(origin=BUCKET, is_default=True),
                    RouteRule(path_pattern="/api/*", origin=ALB),
                    RouteRule(path_pattern="/api/*", origin=BUCKET),
                ]
            )

    def test_error_document_is_absolute(self) -> None:
        with pytest.raises(CompositionError, match="absolute path"):
            EdgeRouter([RouteRule(origin=BUCKET, is_default=True)], error_document="index.html")

    def test_origin_kind_is_checked(self, graph: ResourceGraph) -> None:
        router = EdgeRouter([RouteRule(origin=f"{STACK}/VPC", is_default=True)])
        with pytest.raises(CompositionError, match="cannot serve as an edge origin"):
            router.declare(graph)


class TestDeclare:
    def test_distribution_config(self, dev: Synthesis) -> None:
        config = dev.graph.get(dev.distribution).properties["DistributionConfig"]
        assert config["DefaultRootObject"] == "index.html"
        assert len(config["Origins"]) == 2
        assert config["DefaultCacheBehavior"]["CachePolicyId"] == str(
            CachePolicy.CACHING_OPTIMIZED
        )
        (api,) = config["CacheBehaviors"]
        assert api["PathPattern"] == "/api/*"
        assert api["CachePolicyId"] == str(CachePolicy.CACHING_DISABLED)
        assert api["OriginRequestPolicyId"] == ALL_VIEWER_ORIGIN_REQUEST_POLICY
        assert "DELETE" in api["AllowedMethods"]
        assert {e["ErrorCode"] for e in config["CustomErrorResponses"]} == {403, 404}

    def test_origin_access_resources(self, dev: Synthesis) -> None:
        kinds = {r.kind for r in dev.graph.children(dev.distribution)}
        assert kinds == {ResourceKind.ORIGIN_ACCESS_CONTROL, ResourceKind.VPC_ORIGIN}
        policy = dev.graph.get(f"{BUCKET}/Policy")
        (statement,) = policy.properties["PolicyDocument"]["Statement"]
        assert statement["Principal"] == {"Service": "cloudfront.amazonaws.com"}
        assert dev.distribution in dev.graph.dependencies(policy.path)
