"""YAML document codec.

Purpose
-------
Translate pipeline document text into the library-neutral tree of
:mod:`lib_managed_pipeline.domain.tree` and back. Parsing uses
``yaml.compose`` so every mapping entry can remember the exact lines it was
written on; serialization re-emits those lines verbatim for untouched nodes and
uses a tuned ``yaml.SafeDumper`` only for values the merge engine replaced.

Contents
--------
* :class:`YAMLDocumentCodec` – adapter implementing the document codec port.
* :func:`parse_document` / :func:`serialize_document` / :func:`render_entry` –
  module-level helpers the class delegates to.
* ``_PipelineDumper`` – ``SafeDumper`` with indented sequences, double-quote
  preference, literal blocks for multi-line strings, and no aliases.

System Role
-----------
Used by :mod:`lib_managed_pipeline.core` before and after
:func:`lib_managed_pipeline.application.merge.apply_operations`.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence

import yaml

from ...domain.errors import ParseError
from ...domain.operations import FlowSequence, QuotedScalar
from ...domain.tree import Document, MappingNode, Node, ValueNode
from ...observability import log_debug

INDENT_STEP = 2
_PLAIN_KEY = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.\-/]*")


class _PipelineDumper(yaml.SafeDumper):
    """SafeDumper tuned for CI workflow output."""

    def increase_indent(self, flow: bool = False, indentless: bool = False) -> None:
        return super().increase_indent(flow, False)

    def choose_scalar_style(self) -> str:
        style = super().choose_scalar_style()
        return '"' if style == "'" else style

    def ignore_aliases(self, data: Any) -> bool:
        return True


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    style = "|" if "\n" in data else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style=style)


def _represent_quoted(dumper: yaml.SafeDumper, data: QuotedScalar) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:str", str(data), style='"')


def _represent_flow(dumper: yaml.SafeDumper, data: FlowSequence) -> yaml.SequenceNode:
    return dumper.represent_sequence("tag:yaml.org,2002:seq", list(data), flow_style=True)


_PipelineDumper.add_representer(str, _represent_str)
_PipelineDumper.add_representer(QuotedScalar, _represent_quoted)
_PipelineDumper.add_representer(FlowSequence, _represent_flow)


class YAMLDocumentCodec:
    """Parse and serialize pipeline documents."""

    def parse(self, text: str) -> Document:
        """Return the tree for *text*; see :func:`parse_document`."""

        return parse_document(text)

    def serialize(self, document: Document, insertions: Mapping[str, Sequence[str]] | None = None) -> str:
        """Return YAML text for *document*; see :func:`serialize_document`."""

        return serialize_document(document, insertions)

    def render_entry(self, key: str, node: Node, indent: int = INDENT_STEP) -> str:
        """Return the text of a single ``key: value`` entry; see :func:`render_entry`."""

        return render_entry(key, node, indent)


def parse_document(text: str) -> Document:
    """Parse *text* into a :class:`Document` keeping verbatim source per entry.

    Raises
    ------
    ParseError
        When *text* is not valid YAML or its root is not a mapping.

    Examples
    --------
    >>> doc = parse_document("name: CI  # keep\\non:\\n  push:\\n    branches: [main]\\n")
    >>> doc.value_at("on.push.branches")
    ['main']
    >>> doc.find("name").source
    ['name: CI  # keep']
    >>> parse_document("- a\\n- b\\n")
    Traceback (most recent call last):
    ...
    lib_managed_pipeline.domain.errors.ParseError: Document root must be a mapping, got a sequence
    """

    try:
        document = _build_document(text)
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML: {exc}") from exc
    log_debug("document_parsed", document=None, path=None, keys=document.root.keys())
    return document


def _build_document(text: str) -> Document:
    """Compose *text* and convert it; unknown tags surface as ``yaml.YAMLError`` here."""

    root = yaml.compose(text, Loader=yaml.SafeLoader)
    lines = text.splitlines()
    if root is None:
        header = _strip_blank_edges(lines)
        return Document(header_source=header or None)
    if not isinstance(root, yaml.MappingNode):
        kind = "sequence" if isinstance(root, yaml.SequenceNode) else "scalar"
        raise ParseError(f"Document root must be a mapping, got a {kind}")

    if root.flow_style:
        mapping = _convert_flow_mapping(root)
        header = _strip_blank_edges(lines[: root.start_mark.line])
        return Document(root=mapping, header_source=header or None)
    return Document(root=_parse_block_mapping(root, lines, 0, len(lines)))


def serialize_document(document: Document, insertions: Mapping[str, Sequence[str]] | None = None) -> str:
    """Render *document* as YAML text ending in a single newline.

    Parameters
    ----------
    insertions:
        Mapping of dotted paths to raw lines emitted immediately after the
        entry at that path (the custom-region anchor).

    Examples
    --------
    >>> from lib_managed_pipeline.domain.tree import from_value
    >>> doc = Document(from_value({"on": {"push": {"branches": ["main"]}}, "env": {}}))
    >>> print(serialize_document(doc), end="")
    on:
      push:
        branches:
          - main
    env: {}
    """

    out: list[str] = []
    if document.header_source is not None:
        out.extend(document.header_source)
        out.append("")
    elif document.header:
        out.extend(f"#{line}" for line in document.header)
        out.append("")
    _emit_mapping(document.root, 0, (), out, insertions or {})
    return "\n".join(out).strip("\n") + "\n"


def render_entry(key: str, node: Node, indent: int = INDENT_STEP) -> str:
    """Render one entry (leading comments included, outer blank lines dropped)."""

    out: list[str] = []
    _emit_entry(key, node, indent, (), out, {})
    return "\n".join(out).strip("\n")


# ---------------------------------------------------------------------------
# parsing
# ---------------------------------------------------------------------------


def _parse_block_mapping(node: yaml.MappingNode, lines: list[str], start: int, end: int) -> MappingNode:
    """Convert a block mapping whose entries live within ``lines[start:end]``."""

    mapping = MappingNode()
    pairs = node.value
    cursor = start
    for index, (key_node, value_node) in enumerate(pairs):
        key_line = key_node.start_mark.line
        key_col = key_node.start_mark.column
        stop = pairs[index + 1][0].start_mark.line if index + 1 < len(pairs) else end
        last = _last_content_line(lines, key_line, stop, key_col)

        child = _convert(value_node, lines, key_line + 1, last + 1)
        leading = lines[cursor:key_line]
        child.leading = _dedent(leading, key_col)
        child.space_before = any(not line.strip() for line in leading)
        child.comment = [line.strip()[1:] for line in leading if line.strip().startswith("#")] or None
        child.source = _dedent(lines[key_line : last + 1], key_col)
        mapping.put(str(key_node.value), child)
        cursor = last + 1

        if index + 1 == len(pairs):
            trailer = _strip_blank_edges(lines[cursor:end])
            mapping.trailer = _dedent(trailer, key_col) or None
    return mapping


def _convert(node: yaml.Node, lines: list[str], start: int, end: int) -> Node:
    if isinstance(node, yaml.MappingNode):
        if node.flow_style:
            return _convert_flow_mapping(node)
        return _parse_block_mapping(node, lines, start, end)
    return ValueNode(value=_construct(node))


def _convert_flow_mapping(node: yaml.MappingNode) -> MappingNode:
    mapping = MappingNode()
    for key_node, value_node in node.value:
        if isinstance(value_node, yaml.MappingNode):
            child: Node = _convert_flow_mapping(value_node)
        else:
            child = ValueNode(value=_construct(value_node))
        mapping.put(str(key_node.value), child)
    return mapping


def _construct(node: yaml.Node) -> Any:
    loader = yaml.SafeLoader("")
    try:
        return loader.construct_document(node)
    finally:
        loader.dispose()


def _last_content_line(lines: list[str], key_line: int, stop: int, key_col: int) -> int:
    """Return the last line of an entry, leaving blank and outdented comment lines to the next one."""

    last = stop - 1
    while last > key_line:
        stripped = lines[last].strip()
        if stripped and not (stripped.startswith("#") and _indent_of(lines[last]) <= key_col):
            break
        last -= 1
    return last


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _dedent(lines: list[str], column: int) -> list[str]:
    return [line[min(column, _indent_of(line)) :] if line.strip() else "" for line in lines]


def _strip_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


# ---------------------------------------------------------------------------
# serialization
# ---------------------------------------------------------------------------


def _emit_mapping(
    node: MappingNode,
    indent: int,
    path: tuple[str, ...],
    out: list[str],
    insertions: Mapping[str, Sequence[str]],
) -> None:
    for key, child in node.items():
        _emit_entry(key, child, indent, path, out, insertions)
    if node.trailer:
        out.extend(_pad(node.trailer, indent))


def _emit_entry(
    key: str,
    node: Node,
    indent: int,
    path: tuple[str, ...],
    out: list[str],
    insertions: Mapping[str, Sequence[str]],
) -> None:
    pad = " " * indent
    if node.leading is not None:
        out.extend(_pad(node.leading, indent))
    else:
        if node.space_before and out:
            out.append("")
        if node.comment:
            out.extend(f"{pad}#{line}" for line in node.comment)

    dotted = (*path, key)
    if node.source is not None and not _inserts_below(dotted, insertions):
        out.extend(_pad(node.source, indent))
    elif isinstance(node, MappingNode):
        if not len(node) and not node.trailer:
            out.append(f"{pad}{_format_key(key)}: {{}}")
        else:
            out.append(f"{pad}{_format_key(key)}:")
            _emit_mapping(node, indent + INDENT_STEP, dotted, out, insertions)
    else:
        out.extend(_value_lines(key, node.value, indent))  # type: ignore[attr-defined]

    inserted = insertions.get(".".join(dotted))
    if inserted is not None:
        out.extend(inserted)


def _inserts_below(dotted: tuple[str, ...], insertions: Mapping[str, Sequence[str]]) -> bool:
    prefix = ".".join(dotted) + "."
    return any(path.startswith(prefix) for path in insertions)


def _value_lines(key: str, value: Any, indent: int) -> list[str]:
    pad = " " * indent
    head = f"{pad}{_format_key(key)}:"
    body = _dump(value)
    if isinstance(value, list) and not isinstance(value, FlowSequence) and value:
        return [head, *_pad(body, indent + INDENT_STEP)]
    first, rest = body[0], body[1:]
    return [f"{head} {first}", *_pad(rest, indent)]


def _dump(value: Any) -> list[str]:
    text = yaml.dump(
        value,
        Dumper=_PipelineDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )
    lines = text.splitlines()
    if lines and lines[-1] == "...":
        lines.pop()
    return lines


def _format_key(key: str) -> str:
    if _PLAIN_KEY.fullmatch(key):
        return key
    return json.dumps(key, ensure_ascii=False)


def _pad(lines: Sequence[str], indent: int) -> list[str]:
    pad = " " * indent
    return [f"{pad}{line}" if line else "" for line in lines]
