"""Application-layer merge policy for managed documents.

Purpose
-------
Apply an ordered list of :class:`~lib_managed_pipeline.domain.operations.Operation`
values onto a :class:`~lib_managed_pipeline.domain.tree.Document` in place. The
module is free of I/O and of YAML library types so it works the same for a
freshly created document and for one parsed from disk.

Contents
    - ``apply_operations``: public entry point driven by a simple loop.
    - ``_apply_one``: per-operation stanza (resolve parent, write, hints).
    - ``_write_value`` / ``_invalidate``: helpers narrating how nodes change
      and how cached source text is dropped along the modified chain.
    - ``_verify_required``: post-merge check that every required path exists.

System Role
-----------
Called by :mod:`lib_managed_pipeline.core` between parsing and serialization.
Nodes never addressed by an operation keep their cached source and are emitted
verbatim by the codec.
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
from typing import Iterable

from ..domain.errors import StructuralError
from ..domain.operations import Operation, OperationKind
from ..domain.tree import Document, MappingNode, Node, from_value
from ..observability import log_debug, log_error


@dataclass(slots=True)
class MergeReport:
    """Counters describing what one merge pass did."""

    written: int = 0
    preserved: int = 0
    skipped: int = 0


def apply_operations(document: Document, operations: Iterable[Operation]) -> MergeReport:
    """Apply *operations* to *document* in list order and return a :class:`MergeReport`.

    Why
    ----
    Machine-owned structure (triggers, job graphs, conditionals) must be
    rewritten authoritatively while hand-edited values (runtime pins, custom
    ``needs``) must survive every regeneration.

    What
    ----
    ``set`` replaces the node at the path (deep replace); ``preserve`` writes
    only when the path is absent. Formatting hints are applied in both cases.
    Missing intermediate mappings are created and appended to their parent.

    Raises
    ------
    StructuralError
        When a ``required`` operation cannot be resolved, or when a required
        path is missing after the pass.

    Examples
    --------
    >>> from lib_managed_pipeline.domain.operations import preserve_op, set_op
    >>> from lib_managed_pipeline.domain.tree import from_value
    >>> doc = Document(from_value({"env": {"NODE_VERSION": "20"}}))
    >>> report = apply_operations(doc, [
    ...     preserve_op("env.NODE_VERSION", "22"),
    ...     set_op("on.push.branches", ["main"]),
    ... ])
    >>> doc.value_at("env.NODE_VERSION"), doc.value_at("on.push.branches")
    ('20', ['main'])
    >>> report.written, report.preserved
    (1, 1)
    """

    ops = list(operations)
    report = MergeReport()
    for operation in ops:
        _apply_one(document, operation, report)
    _verify_required(document, ops)
    log_debug(
        "operations_applied",
        document=None,
        path=None,
        written=report.written,
        preserved=report.preserved,
        skipped=report.skipped,
    )
    return report


def _apply_one(document: Document, operation: Operation, report: MergeReport) -> None:
    """Resolve the parent of *operation*, write its value, and apply hints."""

    try:
        chain = document.resolve_or_create(operation.path)
    except StructuralError as exc:
        if operation.required:
            log_error("operation_unresolvable", document=None, path=operation.path, segment=exc.segment)
            raise
        log_debug("operation_skipped", document=None, path=operation.path, segment=exc.segment)
        report.skipped += 1
        return

    parent = chain[-1]
    key = operation.segments[-1]
    existing = parent.get(key)
    changed = False
    if operation.kind is OperationKind.SET or existing is None:
        target = _write_value(parent, key, operation.value, existing)
        report.written += 1
        changed = True
    else:
        target = existing
        report.preserved += 1

    if target.apply_hints(space_before=operation.space_before, comment=operation.comment_lines()):
        changed = True
    if changed:
        _invalidate(chain)


def _write_value(parent: MappingNode, key: str, value: object, existing: Node | None) -> Node:
    """Install a fresh node for *value* under *key*, inheriting existing formatting."""

    node = from_value(deepcopy(value))
    if existing is not None:
        node.adopt_formatting(existing)
    parent.put(key, node)
    return node


def _invalidate(chain: list[MappingNode]) -> None:
    """Drop cached source text of every mapping on the modified path."""

    for node in chain:
        node.source = None


def _verify_required(document: Document, operations: list[Operation]) -> None:
    """Raise :class:`StructuralError` when a required path vanished during the pass."""

    for operation in operations:
        if operation.required and document.find(operation.path) is None:
            log_error("required_path_missing", document=None, path=operation.path)
            raise StructuralError(operation.path, operation.path)
