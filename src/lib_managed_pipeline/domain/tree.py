"""Explicit document tree walked by dotted paths.

Purpose
-------
Model a pipeline document as an ordered tree that the merge engine can mutate
without knowing anything about the YAML library used to read or write it.
Parsed nodes remember the verbatim text they came from so untouched content
(including comments inside it) is re-emitted byte for byte.

Contents
--------
* :class:`Node` – formatting metadata shared by every node.
* :class:`ValueNode` – scalars and sequences (leaves for path purposes).
* :class:`MappingNode` – ordered ``key → node`` mapping.
* :class:`Document` – root mapping plus path resolution helpers.
* :func:`from_value` / :func:`to_value` – convert between plain Python data and
  tree nodes.

System Role
-----------
Produced by :mod:`lib_managed_pipeline.adapters.document.yaml_codec`, mutated by
:mod:`lib_managed_pipeline.application.merge`, and serialized back by the codec.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

from .errors import StructuralError


@dataclass(eq=False, slots=True)
class Node:
    """Formatting metadata attached to a node.

    Attributes
    ----------
    comment:
        Comment lines emitted above the node (text after ``#``), or ``None``.
    space_before:
        Whether a blank line precedes the node.
    leading:
        Verbatim blank/comment lines that preceded the node in parsed text.
        Used instead of ``comment``/``space_before`` until a hint changes.
    source:
        Verbatim lines of the whole ``key: value`` entry, dedented to the key
        column. ``None`` once the node or anything below it was modified.
    """

    comment: list[str] | None = None
    space_before: bool = False
    leading: list[str] | None = None
    source: list[str] | None = None

    def apply_hints(self, *, space_before: bool, comment: list[str] | None) -> bool:
        """Apply formatting hints and return ``True`` when the metadata changed.

        ``comment=None`` keeps the current comment; ``space_before=False``
        keeps the current spacing.
        """

        new_comment = self.comment if comment is None else comment
        new_space = self.space_before or space_before
        if new_comment == self.comment and new_space == self.space_before:
            return False
        self.comment = new_comment
        self.space_before = new_space
        self.leading = None
        return True

    def adopt_formatting(self, other: Node) -> None:
        """Copy the formatting metadata of *other* (used when a node is replaced)."""

        self.comment = other.comment
        self.space_before = other.space_before
        self.leading = other.leading


@dataclass(eq=False, slots=True)
class ValueNode(Node):
    """Leaf node holding a scalar or a sequence."""

    value: Any = None


@dataclass(eq=False, slots=True)
class MappingNode(Node):
    """Ordered mapping whose children are addressable by dotted paths.

    ``trailer`` holds verbatim comment lines that followed the last entry in
    parsed text; they are re-emitted after the last child.
    """

    entries: dict[str, Node] = field(default_factory=dict)
    trailer: list[str] | None = None

    def get(self, key: str) -> Node | None:
        return self.entries.get(key)

    def put(self, key: str, node: Node) -> None:
        """Install *node* under *key*, keeping the key's position when it already exists."""

        self.entries[key] = node

    def remove(self, key: str) -> Node | None:
        return self.entries.pop(key, None)

    def keys(self) -> list[str]:
        return list(self.entries)

    def items(self) -> Iterator[tuple[str, Node]]:
        return iter(self.entries.items())

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(eq=False, slots=True)
class Document:
    """A parsed or freshly created pipeline document.

    Attributes
    ----------
    root:
        Top-level mapping.
    header:
        Comment lines emitted before the first key (text after ``#``).
    header_source:
        Verbatim lines that preceded the first key in parsed text.
    """

    root: MappingNode = field(default_factory=MappingNode)
    header: list[str] | None = None
    header_source: list[str] | None = None

    def find(self, path: str) -> Node | None:
        """Return the node at dotted *path* or ``None`` when any segment is missing.

        Examples
        --------
        >>> doc = Document(from_value({"jobs": {"version": {"runs-on": "ubuntu-latest"}}}))
        >>> doc.find("jobs.version.runs-on").value
        'ubuntu-latest'
        >>> doc.find("jobs.tag") is None
        True
        """

        node: Node | None = self.root
        for segment in path.split("."):
            if not isinstance(node, MappingNode):
                return None
            node = node.get(segment)
        return node

    def value_at(self, path: str, default: Any = None) -> Any:
        """Return the plain Python value stored at *path*."""

        node = self.find(path)
        return default if node is None else to_value(node)

    def resolve_or_create(self, path: str) -> list[MappingNode]:
        """Return the chain of mappings from the root to the parent of *path*.

        Missing intermediate segments are created as empty mappings appended at
        the end of their parent. An intermediate ``null`` value is treated as an
        absent mapping and replaced in place.

        Raises
        ------
        StructuralError
            When an intermediate segment holds a non-null, non-mapping value.

        Examples
        --------
        >>> doc = Document()
        >>> chain = doc.resolve_or_create("on.push.branches")
        >>> [len(node) for node in chain], doc.root.keys()
        ([1, 1, 0], ['on'])
        """

        segments = path.split(".")
        chain = [self.root]
        current = self.root
        for index, segment in enumerate(segments[:-1]):
            child = current.get(segment)
            if child is None or (isinstance(child, ValueNode) and child.value is None):
                replacement = MappingNode()
                if child is not None:
                    replacement.adopt_formatting(child)
                current.put(segment, replacement)
                child = replacement
            if not isinstance(child, MappingNode):
                raise StructuralError(path, ".".join(segments[: index + 1]))
            chain.append(child)
            current = child
        return chain


def from_value(value: Any) -> Node:
    """Convert plain Python data into tree nodes (mappings become :class:`MappingNode`).

    >>> node = from_value({"a": {"b": [1, 2]}})
    >>> isinstance(node, MappingNode), to_value(node)
    (True, {'a': {'b': [1, 2]}})
    """

    if isinstance(value, Mapping):
        return MappingNode(entries={str(key): from_value(item) for key, item in value.items()})
    return ValueNode(value=value)


def to_value(node: Node) -> Any:
    """Convert a tree node back into plain Python data."""

    if isinstance(node, MappingNode):
        return {key: to_value(child) for key, child in node.items()}
    return node.value  # type: ignore[attr-defined]
