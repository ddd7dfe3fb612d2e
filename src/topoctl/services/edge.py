"""EdgeRouter — path-based routing from the public edge to origins.

The default route serves cache-optimized GET/HEAD traffic from static
storage. Prefix routes (``/api/*``) forward to the compute origin with
caching disabled and every viewer attribute passed through. The longest
literal prefix wins, which is also the order behaviours are emitted in.

Origin 403/404 responses are rewritten to the static entry document with
status 200 so client-side routes resolve.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from topoctl.domain.errors import CompositionError
from topoctl.domain.routes import ErrorResponse, RouteRule
from topoctl.domain.types import (
    ALL_VIEWER_ORIGIN_REQUEST_POLICY,
    ALLOWED_METHODS,
    AllowedMethods,
    CachePolicy,
    ResourceKind,
    Tier,
)
from topoctl.infrastructure.graph.engine import ResourceGraph

logger = logging.getLogger(__name__)

REMAPPED_STATUSES = (404, 403)


class EdgeRouter:
    """An ordered, validated set of route rules for one distribution."""

    def __init__(
        self,
        rules: Iterable[RouteRule],
        *,
        error_document: str = "/index.html",
        remapped_statuses: Iterable[int] = REMAPPED_STATUSES,
    ) -> None:
        rules = list(rules)
        defaults = [r for r in rules if r.is_default]
        if len(defaults) != 1:
            raise CompositionError(
                f"An edge router needs exactly one default route, found {len(defaults)}"
            )
        others = [r for r in rules if not r.is_default]
        patterns = [r.path_pattern for r in others]
        duplicated = sorted({p for p in patterns if patterns.count(p) > 1})
        if duplicated:
            raise CompositionError(f"Duplicate route patterns: {duplicated}")
        if not error_document.startswith("/"):
            raise CompositionError(f"Error document must be an absolute path: {error_document!r}")

        self._default = defaults[0]
        self._routes = sorted(others, key=lambda r: (-len(r.prefix), r.path_pattern))
        self.error_document = error_document
        self.error_responses = tuple(
            ErrorResponse(
                http_status=status,
                response_page_path=error_document,
                response_http_status=200,
            )
            for status in remapped_statuses
        )

    @classmethod
    def standard(
        cls,
        *,
        static_origin: str,
        api_origin: str,
        api_pattern: str = "/api/*",
        error_document: str = "/index.html",
    ) -> EdgeRouter:
        """Static default route plus one uncached API route."""
        try:
            api_route = RouteRule(
                path_pattern=api_pattern,
                origin=api_origin,
                cache_policy=CachePolicy.CACHING_DISABLED,
                allowed_methods=AllowedMethods.ALL,
                forward_all_viewer=True,
            )
        except ValidationError as exc:
            raise CompositionError(f"Invalid API route pattern {api_pattern!r}") from exc
        return cls(
            [RouteRule(origin=static_origin, is_default=True), api_route],
            error_document=error_document,
        )

    @property
    def default(self) -> RouteRule:
        return self._default

    @property
    def routes(self) -> list[RouteRule]:
        """Non-default routes, most specific first."""
        return list(self._routes)

    @property
    def origins(self) -> list[str]:
        """Distinct origins, default first."""
        return list(dict.fromkeys([self._default.origin, *(r.origin for r in self._routes)]))

    def resolve(self, path: str) -> RouteRule:
        """Return the rule that serves *path*."""
        for rule in self._routes:
            if rule.matches(path):
                return rule
        return self._default

    def remap_error(self, status: int) -> ErrorResponse | None:
        for response in self.error_responses:
            if response.http_status == status:
                return response
        return None

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    def declare(self, graph: ResourceGraph, *, node_id: str = "Distribution") -> str:
        """Declare the distribution, its origin access resources, and bucket policies."""
        scope = graph.stack_name
        path = graph.add(scope, node_id, ResourceKind.DISTRIBUTION, tier=Tier.EDGE).path

        origin_ids: dict[str, str] = {}
        origins: list[dict[str, Any]] = []
        for index, origin in enumerate(self.origins, start=1):
            origin_id = f"Origin{index}"
            origin_ids[origin] = origin_id
            origins.append(self._declare_origin(graph, path, origin, origin_id))

        graph.update_properties(
            path,
            DistributionConfig={
                "Enabled": True,
                "Comment": f"{scope} edge distribution",
                "DefaultRootObject": self.error_document.lstrip("/"),
                "HttpVersion": "http2",
                "IPV6Enabled": False,
                "PriceClass": "PriceClass_100",
                "Origins": origins,
                "DefaultCacheBehavior": self._behavior(self._default, origin_ids),
                "CacheBehaviors": [self._behavior(r, origin_ids) for r in self._routes],
                "CustomErrorResponses": [
                    {
                        "ErrorCode": e.http_status,
                        "ResponseCode": e.response_http_status,
                        "ResponsePagePath": e.response_page_path,
                    }
                    for e in self.error_responses
                ],
            },
        )

        for origin in self.origins:
            if graph.get(origin).kind is ResourceKind.BUCKET:
                self._grant_bucket_read(graph, origin, path)

        logger.debug("Declared distribution with %d routes", len(self._routes) + 1)
        return path

    def _declare_origin(
        self, graph: ResourceGraph, distribution: str, origin: str, origin_id: str
    ) -> dict[str, Any]:
        target = graph.get(origin)
        match target.kind:
            case ResourceKind.BUCKET:
                oac = graph.add(
                    distribution,
                    f"{origin_id}S3OriginAccessControl",
                    ResourceKind.ORIGIN_ACCESS_CONTROL,
                    tier=Tier.EDGE,
                    properties={
                        "OriginAccessControlConfig": {
                            "Name": f"{graph.stack_name}-{origin_id}-oac",
                            "OriginAccessControlOriginType": "s3",
                            "SigningBehavior": "always",
                            "SigningProtocol": "sigv4",
                        }
                    },
                )
                return {
                    "Id": origin_id,
                    "DomainName": graph.get_att(origin, "RegionalDomainName"),
                    "OriginAccessControlId": graph.get_att(oac.path, "Id"),
                    "S3OriginConfig": {"OriginAccessIdentity": ""},
                }
            case ResourceKind.LOAD_BALANCER:
                vpc_origin = graph.add(
                    distribution,
                    f"{origin_id}VpcOrigin",
                    ResourceKind.VPC_ORIGIN,
                    tier=Tier.EDGE,
                    properties={
                        "VpcOriginEndpointConfig": {
                            "Arn": graph.ref(origin),
                            "Name": f"{graph.stack_name}-{origin_id}",
                            "HTTPPort": 80,
                            "HTTPSPort": 443,
                            "OriginProtocolPolicy": "http-only",
                        }
                    },
                )
                return {
                    "Id": origin_id,
                    "DomainName": graph.get_att(origin, "DNSName"),
                    "VpcOriginConfig": {"VpcOriginId": graph.get_att(vpc_origin.path, "Id")},
                }
            case _:
                raise CompositionError(
                    f"'{origin}' ({target.kind}) cannot serve as an edge origin"
                )

    @staticmethod
    def _behavior(rule: RouteRule, origin_ids: dict[str, str]) -> dict[str, Any]:
        behavior: dict[str, Any] = {
            "TargetOriginId": origin_ids[rule.origin],
            "ViewerProtocolPolicy": "redirect-to-https",
            "AllowedMethods": list(ALLOWED_METHODS[rule.allowed_methods]),
            "CachedMethods": ["GET", "HEAD"],
            "CachePolicyId": str(rule.cache_policy),
            "Compress": True,
        }
        if not rule.is_default:
            behavior = {"PathPattern": rule.path_pattern, **behavior}
        if rule.forward_all_viewer:
            behavior["OriginRequestPolicyId"] = ALL_VIEWER_ORIGIN_REQUEST_POLICY
        return behavior

    @staticmethod
    def _grant_bucket_read(graph: ResourceGraph, bucket: str, distribution: str) -> None:
        distribution_arn = {
            "Fn::Join": [
                "",
                [
                    "arn:aws:cloudfront::",
                    {"Ref": "AWS::AccountId"},
                    ":distribution/",
                    graph.ref(distribution),
                ],
            ]
        }
        graph.add(
            bucket,
            "Policy",
            ResourceKind.BUCKET_POLICY,
            tier=Tier.EDGE,
            properties={
                "Bucket": graph.ref(bucket),
                "PolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Action": "s3:GetObject",
                            "Effect": "Allow",
                            "Principal": {"Service": "cloudfront.amazonaws.com"},
                            "Resource": {
                                "Fn::Join": ["", [graph.get_att(bucket, "Arn"), "/*"]]
                            },
                            "Condition": {"StringEquals": {"AWS:SourceArn": distribution_arn}},
                        }
                    ],
                },
            },
        )
