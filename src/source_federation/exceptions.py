"""Custom exception hierarchy for the federation engine."""

from __future__ import annotations


class FederationError(Exception):
    """Base exception for all federation engine errors."""


class ConfigNotFound(FederationError):
    """Referenced config name does not exist."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Config '{name}' not found")
        self.name = name


class ConfigInUse(FederationError):
    """Delete blocked because one or more compositions reference the config."""

    def __init__(self, name: str, referenced_by: list[str]) -> None:
        super().__init__(
            f"Config '{name}' is referenced by: {', '.join(referenced_by)}"
        )
        self.name = name
        self.referenced_by = referenced_by


class ConfigValidationError(FederationError):
    """A config record failed validation on write."""


class SourceUnresolved(FederationError):
    """A source name does not resolve to an existing, active single-source config."""

    def __init__(self, name: str, reason: str = "not found") -> None:
        super().__init__(f"Source '{name}' unresolved: {reason}")
        self.name = name
        self.reason = reason


class InvalidComposition(FederationError):
    """A composition has a member that does not resolve."""

    def __init__(self, composition: str, member: str, reason: str = "not found") -> None:
        super().__init__(
            f"Composition '{composition}' is invalid: member '{member}' {reason}"
        )
        self.composition = composition
        self.member = member
        self.reason = reason


class StaleComposition(InvalidComposition):
    """A composition pins a member version that has since been edited."""

    def __init__(
        self, composition: str, member: str, pinned_version: int, current_version: int
    ) -> None:
        super().__init__(
            composition,
            member,
            f"is stale (pinned v{pinned_version}, current v{current_version})",
        )
        self.pinned_version = pinned_version
        self.current_version = current_version


class InvalidQuery(FederationError):
    """A federated query is malformed (target or limit)."""


class InvalidFieldSelection(FederationError):
    """Requested fields fall outside the union of the target sources' fields."""

    def __init__(self, fields: list[str]) -> None:
        super().__init__(f"Fields not available in target sources: {', '.join(fields)}")
        self.fields = fields


class BackendError(FederationError):
    """Error returned by a search backend for a single source."""


class BackendTimeout(BackendError):
    """A search backend call exceeded its timeout."""


class HistoryRecordNotFound(FederationError):
    """Referenced history record does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"History record '{record_id}' not found")
        self.record_id = record_id
