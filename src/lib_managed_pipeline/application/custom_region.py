"""Sentinel-delimited custom region: extraction, recovery, and reinsertion.

Purpose
-------
Keep the user-owned part of a pipeline document alive across regenerations.
The region is delimited by two comment lines carrying fixed marker tokens; the
tokens are a wire-format contract shared with every document generated so far.

Contents
    - ``START_MARKER`` / ``END_MARKER``: the sentinel tokens.
    - ``MANAGED_JOBS``: job names owned by the generator.
    - ``scan_markers``: dedicated line scanner, independent of the YAML parser.
    - ``extract_custom_region`` / ``strip_custom_region``: read and remove the
      region from raw text.
    - ``entry_names``: derive the job identities present in region text.
    - ``recover_custom_jobs``: demote non-managed jobs of a parsed document into
      region text (rebuild mode).
    - ``merge_placeholders``: union region text with generated placeholder
      entries keyed by name.
    - ``region_block``: lines inserted at the anchor, markers included.

System Role
-----------
Used by :mod:`lib_managed_pipeline.core` around the AST merge. Works on text so
indentation or quoting differences in the document never hide a region.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Final, Iterable

from ..domain.config import PlaceholderEntry
from ..domain.tree import Document, MappingNode, Node
from ..observability import log_debug

# A marker is a whole comment line. A token in a trailing comment after YAML
# content is ignored: removing the marker line would also remove that content.
START_MARKER: Final[str] = "<--START CUSTOM JOBS-->"
END_MARKER: Final[str] = "<--END CUSTOM JOBS-->"
MANAGED_JOBS: Final[frozenset[str]] = frozenset({"changes", "version", "gate", "tag", "promote", "release"})
ANCHOR_PATH: Final[str] = "jobs.version"
"""Dotted path of the entry the region is always re-inserted after."""
REGION_INDENT: Final[int] = 2

_ENTRY_KEY = re.compile(r"""(?P<quote>["']?)(?P<name>[A-Za-z0-9_.\-]+)(?P=quote)\s*:(?:\s|$)""")


@dataclass(frozen=True, slots=True)
class MarkerScan:
    """Line indices of the sentinel markers found in a text (``None`` when absent)."""

    start: int | None
    end: int | None

    @property
    def complete(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def mismatch(self) -> bool:
        """``True`` when markers are present but do not form a usable pair."""

        return not self.complete and (self.start is not None or self.end is not None)


@dataclass(frozen=True, slots=True)
class CustomRegion:
    """Text strictly between the markers, blank edges trimmed."""

    content: str

    def entry_names(self) -> set[str]:
        return entry_names(self.content)


def scan_markers(text: str) -> MarkerScan:
    """Locate the first start marker and the first end marker after it.

    Examples
    --------
    >>> scan_markers("a: 1\\n  ### <--START CUSTOM JOBS-->\\n\\n  #<--END CUSTOM JOBS-->\\n")
    MarkerScan(start=1, end=3)
    >>> scan_markers("# <--END CUSTOM JOBS-->\\n").mismatch
    True
    """

    lines = text.splitlines()
    start = _find_marker(lines, START_MARKER, 0)
    end = _find_marker(lines, END_MARKER, 0 if start is None else start + 1)
    if start is not None and end is None and _find_marker(lines, END_MARKER, 0) is not None:
        log_debug("custom_region_markers_reversed", document=None, path=None)
    return MarkerScan(start, end)


def extract_custom_region(text: str) -> CustomRegion | None:
    """Return the custom region of *text* or ``None`` when no complete marker pair exists.

    >>> extract_custom_region("jobs:\\n  # <--START CUSTOM JOBS-->\\n\\n  lint:\\n    runs-on: x\\n\\n  # <--END CUSTOM JOBS-->\\n").content
    '  lint:\\n    runs-on: x'
    >>> extract_custom_region("jobs: {}\\n") is None
    True
    """

    scan = scan_markers(text)
    if not scan.complete:
        return None
    lines = text.splitlines()
    content = _strip_blank_edges(lines[scan.start + 1 : scan.end])  # type: ignore[operator]
    log_debug("custom_region_extracted", document=None, path=None, lines=len(content))
    return CustomRegion("\n".join(content))


def strip_custom_region(text: str) -> str:
    """Remove the region (markers included) or any lone marker line from *text*.

    Blank lines around the removed block collapse into a single blank line so
    repeated strip/reinsert cycles do not accumulate spacing.
    """

    scan = scan_markers(text)
    found = [index for index in (scan.start, scan.end) if index is not None]
    if not found:
        return text
    first, last = found[0], found[-1]
    lines = text.splitlines()
    before = lines[:first]
    after = lines[last + 1 :]
    while before and not before[-1].strip():
        before.pop()
    while after and not after[0].strip():
        after.pop(0)
    joined = [*before, "", *after] if before and after else [*before, *after]
    return "\n".join(joined) + "\n"


def entry_names(content: str) -> set[str]:
    """Return the names of the top-level entries declared in region *content*.

    The entry column is the smallest indentation among non-comment lines; only
    keys written at that column count as entries.

    >>> sorted(entry_names("  # test-gate:\\n  lint:\\n    steps:\\n      - run: x\\n\\n  test-api:\\n    needs: changes"))
    ['lint', 'test-api']
    """

    candidates = [line for line in content.splitlines() if line.strip() and not line.lstrip().startswith("#")]
    if not candidates:
        return set()
    column = min(len(line) - len(line.lstrip(" ")) for line in candidates)
    names: set[str] = set()
    for line in candidates:
        if len(line) - len(line.lstrip(" ")) != column:
            continue
        match = _ENTRY_KEY.match(line[column:])
        if match:
            names.add(match.group("name"))
    return names


def document_custom_jobs(document: Document) -> list[tuple[str, Node]]:
    """Return ``(name, node)`` pairs of jobs outside :data:`MANAGED_JOBS`."""

    jobs = document.find("jobs")
    if not isinstance(jobs, MappingNode):
        return []
    return [(name, node) for name, node in jobs.items() if name not in MANAGED_JOBS]


def recover_custom_jobs(
    document: Document,
    render: Callable[[str, Node, int], str],
    exclude: Iterable[str] = (),
) -> list[str]:
    """Serialize each non-managed job of *document* individually for the region.

    Why
    ----
    Jobs written before markers existed (or outside them) must survive a
    rebuild instead of being discarded with the managed structure.
    """

    skip = set(exclude)
    recovered = [render(name, node, REGION_INDENT) for name, node in document_custom_jobs(document) if name not in skip]
    if recovered:
        log_debug("custom_jobs_recovered", document=None, path=None, count=len(recovered))
    return recovered


def merge_placeholders(
    content: str,
    entries: Iterable[PlaceholderEntry],
    render: Callable[[PlaceholderEntry], str],
    taken: Iterable[str] = (),
) -> tuple[str, list[str]]:
    """Append placeholder entries whose names are not already owned.

    Returns the merged region text and the names that were added. New entries
    follow the existing text in ``(prefix, domain)`` order.

    >>> merged, added = merge_placeholders(
    ...     "  test-api:\\n    runs-on: x",
    ...     [PlaceholderEntry("api", "test"), PlaceholderEntry("api", "deploy")],
    ...     lambda entry: f"  {entry.name}: {{}}",
    ... )
    >>> added
    ['deploy-api']
    >>> print(merged)
      test-api:
        runs-on: x
    <BLANKLINE>
      deploy-api: {}
    """

    owned = entry_names(content) | set(taken)
    fresh = [entry for entry in sorted(set(entries)) if entry.name not in owned]
    parts = [content] if content.strip() else []
    parts.extend(render(entry) for entry in fresh)
    added = [entry.name for entry in fresh]
    if added:
        log_debug("placeholders_added", document=None, path=None, names=added)
    return "\n\n".join(parts), added


def join_region_parts(parts: Iterable[str]) -> str:
    """Join non-empty region fragments with one blank line between them."""

    return "\n\n".join(part for part in parts if part.strip())


def region_block(content: str) -> list[str]:
    """Return the lines written at the anchor: blank line, markers, and *content*.

    >>> region_block("")
    ['', '  # <--START CUSTOM JOBS-->', '', '  # <--END CUSTOM JOBS-->']
    """

    pad = " " * REGION_INDENT
    block = ["", f"{pad}# {START_MARKER}", ""]
    if content.strip():
        block.extend(content.split("\n"))
        block.append("")
    block.append(f"{pad}# {END_MARKER}")
    return block


def _find_marker(lines: list[str], token: str, start: int) -> int | None:
    for index in range(start, len(lines)):
        stripped = lines[index].strip()
        if stripped.startswith("#") and stripped.lstrip("#").strip() == token:
            return index
    return None


def _strip_blank_edges(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]
