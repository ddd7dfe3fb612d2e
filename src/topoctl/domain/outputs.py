"""OutputSet — the named values a finished synthesis exposes."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel


class OutputValue(BaseModel):
    model_config = {"frozen": True}

    description: str
    value: dict[str, Any] | str


class OutputSet(BaseModel):
    """Values handed to the deployment collaborator after composition."""

    model_config = {"frozen": True}

    database_endpoint: OutputValue
    load_balancer_dns: OutputValue
    edge_domain: OutputValue
    static_bucket: OutputValue

    # Output names in the target template, in declaration order.
    _NAMES: ClassVar[dict[str, str]] = {
        "database_endpoint": "DatabaseEndpoint",
        "load_balancer_dns": "LoadBalancerDNS",
        "edge_domain": "CloudFrontDomainName",
        "static_bucket": "WebBucketName",
    }

    def named(self) -> dict[str, OutputValue]:
        """Outputs keyed by their template output name."""
        return {name: getattr(self, field) for field, name in self._NAMES.items()}

    def to_template(self) -> dict[str, dict[str, Any]]:
        return {
            name: {"Description": out.description, "Value": out.value}
            for name, out in self.named().items()
        }
