"""Operation model describing the machine-managed skeleton of a document.

Purpose
-------
A flat, ordered list of :class:`Operation` values fully describes the structure
the generator owns inside one pipeline document. Sub-generators (header,
per-job builders) each return such a list; the composer concatenates them and
hands the result to :func:`lib_managed_pipeline.application.merge.apply_operations`.

Contents
--------
* :class:`OperationKind` – ``set`` (authoritative overwrite) or ``preserve``
  (write only when absent).
* :class:`Operation` – immutable description of one node.
* :class:`FlowSequence` / :class:`QuotedScalar` – value style hints understood
  by the serializer.
* :func:`set_op` / :func:`preserve_op` – tiny constructors that keep operation
  lists readable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class OperationKind(str, Enum):
    """How an operation treats an existing node at its path."""

    SET = "set"
    PRESERVE = "preserve"


class FlowSequence(list):
    """List rendered in flow style (``[ a, b ]``) instead of block style."""


class QuotedScalar(str):
    """String rendered double-quoted regardless of whether plain style is possible."""


@dataclass(frozen=True, slots=True)
class Operation:
    """Declarative description of one node of the target document.

    Attributes
    ----------
    path:
        Dotted address into the document (``on.push.branches``).
    kind:
        :class:`OperationKind` controlling overwrite semantics.
    value:
        Scalar, list, or nested ``dict`` installed at ``path``.
    required:
        When ``True`` an unresolvable path raises
        :class:`~lib_managed_pipeline.domain.errors.StructuralError` instead of
        being skipped.
    space_before:
        Emit a blank line before the node.
    comment_before:
        Optional multi-line comment attached above the node. Lines are written
        verbatim after a ``#``.

    Examples
    --------
    >>> op = set_op("on.push.branches", ["develop", "main"])
    >>> op.segments
    ('on', 'push', 'branches')
    >>> op.kind.value
    'set'
    """

    path: str
    kind: OperationKind
    value: Any = None
    required: bool = False
    space_before: bool = False
    comment_before: str | None = None

    @property
    def segments(self) -> tuple[str, ...]:
        """Return the dotted path split into its segments."""

        return tuple(self.path.split("."))

    def comment_lines(self) -> list[str] | None:
        """Return :attr:`comment_before` as a list of lines without outer blank lines.

        >>> Operation("a", OperationKind.SET, comment_before="\\n one\\n two\\n").comment_lines()
        [' one', ' two']
        """

        if self.comment_before is None:
            return None
        return self.comment_before.strip("\n").split("\n")


def set_op(path: str, value: Any, **hints: Any) -> Operation:
    """Build a ``set`` operation."""

    return Operation(path, OperationKind.SET, value, **hints)


def preserve_op(path: str, value: Any, **hints: Any) -> Operation:
    """Build a ``preserve`` operation."""

    return Operation(path, OperationKind.PRESERVE, value, **hints)
