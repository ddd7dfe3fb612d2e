"""Security rule model for the tier-to-tier permit chain."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, model_validator

from topoctl.domain.types import Tier


class SecurityRule(BaseModel):
    """One ingress permit from *source* into the group at *dest*.

    ``source`` is either a security-group path or an external peer
    (prefix list id or CIDR). ``dest`` is always a security-group path.
    """

    model_config = {"frozen": True}

    source: str
    dest: str
    source_tier: Tier
    dest_tier: Tier
    protocol: Literal["tcp", "udp"] = "tcp"
    port: int = Field(ge=1, le=65535)
    description: str = ""

    @model_validator(mode="after")
    def _single_hop(self) -> SecurityRule:
        hops = hop_distance(self.source_tier, self.dest_tier)
        if hops == 1:
            return self
        span = (
            f"Rule {self.source} -> {self.dest} spans "
            f"{self.source_tier.name} -> {self.dest_tier.name}"
        )
        if hops == -1:
            raise ValueError(f"{span}; ingress must come from the upstream tier")
        raise ValueError(f"{span}; tiers must be adjacent")


def hop_distance(source: Tier, dest: Tier) -> int:
    """Signed hops from *source* down to *dest*; negative when *dest* is upstream."""
    return int(dest) - int(source)


def is_prefix_list(peer: str) -> bool:
    return peer.startswith("pl-")
