"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by adapters, the merge engine, the
composition root, and the CLI. The hierarchy lives in the domain layer so outer
rings may depend on it without creating import cycles.

Contents
--------
* :class:`PipelineError` – umbrella base class for every library failure.
* :class:`InvalidFormat` – a configuration file could not be parsed.
* :class:`ParseError` – an existing pipeline document is not a YAML mapping.
* :class:`StructuralError` – a required operation could not be resolved.
* :class:`ValidationError` – configuration is well-formed but semantically wrong.
* :class:`NotFound` – an expected configuration file is missing.

System Role
-----------
The composer recovers from :class:`ParseError` by rebuilding the document and
aborts a single document on :class:`StructuralError`. Callers catch
:class:`PipelineError` to handle all library failures uniformly.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base type for all exceptions emitted by ``lib_managed_pipeline``."""


class InvalidFormat(PipelineError):
    """Raised when an input artifact cannot be parsed into structured data.

    Typical Sources
    ---------------
    Structured file loaders (:mod:`tomllib`, :mod:`json`, :mod:`yaml`).
    """


class ParseError(InvalidFormat):
    """Existing document text is not valid YAML or its root is not a mapping.

    The composer never lets this escape: it falls back to rebuild mode for the
    affected document and reports a warning instead.
    """


class StructuralError(PipelineError):
    """A ``required`` operation addresses a path whose ancestor is not a mapping.

    Attributes
    ----------
    path:
        Dotted path of the operation that could not be applied.
    segment:
        Dotted prefix of ``path`` that resolved to a non-mapping node.
    """

    def __init__(self, path: str, segment: str) -> None:
        super().__init__(f"Cannot apply operation at '{path}': '{segment}' is not a mapping")
        self.path = path
        self.segment = segment


class ValidationError(PipelineError):
    """Signifies that a syntactically valid configuration failed semantic checks."""


class NotFound(PipelineError):
    """Represents a missing configuration resource."""
