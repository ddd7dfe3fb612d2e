"""Exception hierarchy for topology synthesis.

Every failure aborts the whole synthesis pass. Services translate these
into a failed ServiceResult; nothing in the core retries.
"""

from __future__ import annotations


class TopologyError(Exception):
    """Base class for all synthesis failures."""

    code = "TOPOLOGY_ERROR"


class ConfigurationError(TopologyError):
    """Unknown environment key, or a missing/malformed configuration field.

    Always raised before the first resource is declared.
    """

    code = "CONFIGURATION_ERROR"


class CompositionError(TopologyError):
    """A tier was wired incorrectly while the graph was being built."""

    code = "COMPOSITION_ERROR"
