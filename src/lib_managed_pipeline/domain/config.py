"""Domain-level configuration value objects.

Purpose
-------
Anchor the immutable :class:`PipelineConfig` that carries the branch flow and
domain definitions through the generator. This module belongs to the domain
layer and contains no I/O.

Contents
--------
* :class:`DomainConfig` – one change-detection domain (paths, description,
  job prefixes).
* :class:`PlaceholderEntry` – derived identity ``{prefix}-{domain}`` of a
  generated suggestion job.
* :class:`PipelineConfig` – ``from_mapping`` constructor accepting the on-disk
  camelCase schema and helper properties used by the templates.
* :data:`LEGACY_PREFIX_FLAGS` – mapping from deprecated boolean flags to the
  prefix they stand for.

System Role
-----------
Built by :func:`lib_managed_pipeline.core.load_config` (or directly by callers)
and read by the operation templates and the composer. Instances are immutable so
one configuration can safely drive several documents in a single run.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final, Iterable

from .errors import ValidationError

DEFAULT_BRANCH: Final[str] = "main"
"""Branch used when the configured flow is empty."""

LEGACY_PREFIX_FLAGS: Final[tuple[tuple[str, str], ...]] = (
    ("testable", "test"),
    ("deployable", "deploy"),
    ("remoteTestable", "remote-test"),
)
"""Deprecated boolean domain flags and the job prefix each one enables."""

ACTION_SOURCE_MODES: Final[tuple[str, ...]] = ("local", "remote")

JOB_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_\-]*")
"""Characters allowed in domain names and prefixes; both end up in job ids."""


@dataclass(frozen=True, slots=True)
class PlaceholderEntry:
    """Suggestion job keyed by ``(domain, prefix)``.

    Examples
    --------
    >>> PlaceholderEntry("api", "test").name
    'test-api'
    >>> sorted([PlaceholderEntry("web", "deploy"), PlaceholderEntry("api", "test"), PlaceholderEntry("api", "deploy")])[0]
    PlaceholderEntry(domain='api', prefix='deploy')
    """

    domain: str
    prefix: str

    @property
    def name(self) -> str:
        return f"{self.prefix}-{self.domain}"

    def sort_key(self) -> tuple[str, str]:
        return (self.prefix, self.domain)

    def __lt__(self, other: PlaceholderEntry) -> bool:
        return self.sort_key() < other.sort_key()


@dataclass(frozen=True, slots=True)
class DomainConfig:
    """Configuration of a single change-detection domain.

    Attributes
    ----------
    paths:
        Glob patterns whose changes mark the domain as affected.
    description:
        Human readable summary.
    prefixes:
        Ordered job prefixes, or ``None`` when the legacy flags apply.
    legacy_flags:
        Names of the deprecated boolean flags that were set to ``True``.
    """

    paths: tuple[str, ...] = ()
    description: str = ""
    prefixes: tuple[str, ...] | None = None
    legacy_flags: frozenset[str] = frozenset()

    def job_prefixes(self) -> tuple[str, ...]:
        """Return the effective prefix list, translating legacy flags when needed.

        >>> DomainConfig(prefixes=("lint", "test")).job_prefixes()
        ('lint', 'test')
        >>> DomainConfig(legacy_flags=frozenset({"deployable", "testable"})).job_prefixes()
        ('test', 'deploy')
        """

        if self.prefixes is not None:
            return self.prefixes
        return tuple(prefix for flag, prefix in LEGACY_PREFIX_FLAGS if flag in self.legacy_flags)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> DomainConfig:
        if not isinstance(data, Mapping):
            raise ValidationError(f'Domain "{name}" must be a mapping')
        paths = data.get("paths") or ()
        if isinstance(paths, str) or not isinstance(paths, Iterable):
            raise ValidationError(f'Domain "{name}" must have a "paths" list')
        prefixes = data.get("prefixes")
        if prefixes is not None:
            prefixes = _string_tuple(prefixes, f'Domain "{name}" prefixes')
        flags = frozenset(flag for flag, _ in LEGACY_PREFIX_FLAGS if _flag(data, flag) is True)
        return cls(
            paths=tuple(str(path) for path in paths),
            description=str(data.get("description") or ""),
            prefixes=prefixes,
            legacy_flags=flags,
        )


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable configuration consumed by the document composer.

    Examples
    --------
    >>> cfg = PipelineConfig.from_mapping({
    ...     "branchFlow": ["develop", "main"],
    ...     "domains": {"api": {"paths": ["src/**"], "prefixes": ["test"]}},
    ... })
    >>> cfg.initial_branch, cfg.final_branch
    ('develop', 'main')
    >>> [entry.name for entry in cfg.placeholder_entries()]
    ['test-api']
    """

    branch_flow: tuple[str, ...] = (DEFAULT_BRANCH,)
    domains: Mapping[str, DomainConfig] = field(default_factory=lambda: MappingProxyType({}))
    auto_promote: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    initial_branch: str | None = None
    final_branch: str | None = None
    action_source_mode: str = "local"
    action_repository: str | None = None
    action_version: str | None = None

    def __post_init__(self) -> None:
        flow = tuple(self.branch_flow) or (DEFAULT_BRANCH,)
        object.__setattr__(self, "branch_flow", flow)
        object.__setattr__(self, "domains", MappingProxyType(dict(self.domains)))
        object.__setattr__(self, "auto_promote", MappingProxyType(dict(self.auto_promote)))
        if self.initial_branch is None:
            object.__setattr__(self, "initial_branch", flow[0])
        if self.final_branch is None:
            object.__setattr__(self, "final_branch", flow[-1])
        if self.action_source_mode not in ACTION_SOURCE_MODES:
            raise ValidationError(f"actionSourceMode must be one of: {', '.join(ACTION_SOURCE_MODES)}")
        for name, domain in self.domains.items():
            _ensure_job_id(name, f'Domain "{name}"')
            for prefix in domain.job_prefixes():
                _ensure_job_id(prefix, f'Domain "{name}" prefix')

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PipelineConfig:
        """Build a configuration from the on-disk schema (camelCase or snake_case keys)."""

        if not isinstance(data, Mapping):
            raise ValidationError("Pipeline configuration must be a mapping")
        flow = _lookup(data, "branchFlow", "branch_flow")
        branch_flow = _string_tuple(flow, "branchFlow") if flow is not None else ()
        domains_raw = _lookup(data, "domains") or {}
        if not isinstance(domains_raw, Mapping):
            raise ValidationError("domains must be a mapping")
        domains = {str(name): DomainConfig.from_mapping(str(name), body or {}) for name, body in domains_raw.items()}
        return cls(
            branch_flow=branch_flow,
            domains=domains,
            auto_promote=_auto_promote(_lookup(data, "autoPromote", "auto_promote"), branch_flow),
            initial_branch=_optional_str(_lookup(data, "initialBranch", "initial_branch")),
            final_branch=_optional_str(_lookup(data, "finalBranch", "final_branch")),
            action_source_mode=str(_lookup(data, "actionSourceMode", "action_source_mode") or "local"),
            action_repository=_optional_str(_lookup(data, "actionRepository", "action_repository")),
            action_version=_optional_str(_lookup(data, "actionVersion", "action_version")),
        )

    def placeholder_entries(self) -> list[PlaceholderEntry]:
        """Return every configured placeholder sorted by prefix, then domain."""

        entries = {
            PlaceholderEntry(domain, prefix)
            for domain, body in self.domains.items()
            for prefix in body.job_prefixes()
        }
        return sorted(entries)

    def action_reference(self, action: str) -> str:
        """Return the ``uses:`` reference for a generated composite action.

        >>> PipelineConfig().action_reference("create-tag")
        './.github/actions/create-tag'
        >>> PipelineConfig(action_source_mode="remote", action_repository="acme/ci", action_version="v2").action_reference("create-tag")
        'acme/ci/actions/create-tag@v2'
        """

        if self.action_source_mode == "remote":
            repository = self.action_repository or "owner/repo"
            version = self.action_version or "main"
            return f"{repository}/actions/{action}@{version}"
        return f"./.github/actions/{action}"


def _lookup(data: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if name in data:
            return data[name]
    return None


def _flag(data: Mapping[str, Any], camel: str) -> Any:
    snake = "".join(f"_{char.lower()}" if char.isupper() else char for char in camel)
    return _lookup(data, camel, snake)


def _ensure_job_id(value: str, label: str) -> None:
    """Raise :class:`ValidationError` unless *value* can be part of a workflow job id.

    >>> _ensure_job_id("remote-test", "prefix")
    >>> _ensure_job_id("my api", 'Domain "my api"')
    Traceback (most recent call last):
    ...
    lib_managed_pipeline.domain.errors.ValidationError: Domain "my api" must contain only letters, digits, '-' and '_'
    """

    if not JOB_ID_PATTERN.fullmatch(value):
        raise ValidationError(f"{label} must contain only letters, digits, '-' and '_'")


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _string_tuple(value: Any, label: str) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ValidationError(f"{label} must be a list of strings")
    items = tuple(value)
    if not all(isinstance(item, str) for item in items):
        raise ValidationError(f"{label} must be a list of strings")
    return items


def _auto_promote(value: Any, branch_flow: tuple[str, ...]) -> dict[str, bool]:
    if value is None or value is False:
        return {}
    if value is True:
        return {branch: True for branch in branch_flow[1:]}
    if not isinstance(value, Mapping):
        raise ValidationError("autoPromote must be a boolean or a mapping of branch names to booleans")
    return {str(branch): bool(enabled) for branch, enabled in value.items()}
