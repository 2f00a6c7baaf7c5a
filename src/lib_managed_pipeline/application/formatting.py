"""Post-serialization reflow of long ``if:`` expressions.

Purpose
    Make long workflow conditionals readable by folding them across lines at
    their ``&&`` / ``||`` operators, without changing what the YAML means.

Contents
    - ``format_if_conditions``: public entry point operating on document text.
    - ``_fold``: builds the folded block for one condition.
    - ``_same_meaning``: guard comparing the folded and original values.

System Role
    Last step of :func:`lib_managed_pipeline.core.compose_pipeline`; also
    exposed through the ``format-conditions`` CLI command. Already folded
    conditions no longer match the single-line pattern, so applying the
    function twice yields the same text.
"""

from __future__ import annotations

import re
from typing import Final

import yaml

from ..observability import log_debug

DEFAULT_MIN_LENGTH: Final[int] = 80
CONTINUATION_INDENT: Final[int] = 4

_IF_LINE = re.compile(
    r"^(?P<indent>[ \t]*)(?P<prefix>(?:- )?)if: \$\{\{(?P<cond>[^\n}]+)\}\}[ \t]*$",
    re.MULTILINE,
)
_OPERATOR = re.compile(r"\s+(&&|\|\|)\s+")


def format_if_conditions(text: str, min_length: int = DEFAULT_MIN_LENGTH) -> str:
    """Fold single-line ``if: ${{ ... }}`` conditions longer than *min_length*.

    Folded conditions use a ``>-`` block scalar so the parsed value stays the
    same single-line string; a condition whose folded form would parse
    differently is left untouched.

    Examples
    --------
    >>> text = "    if: ${{ always() && needs.version.result == 'success' && github.event_name != 'pull_request' }}\\n"
    >>> print(format_if_conditions(text), end="")
        if: >-
          ${{ always()
              && needs.version.result == 'success'
              && github.event_name != 'pull_request'
          }}
    >>> format_if_conditions("if: ${{ short }}\\n")
    'if: ${{ short }}\\n'
    """

    folded = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal folded
        condition = match.group("cond").strip()
        if len(condition) < min_length or not _OPERATOR.search(condition):
            return match.group(0)
        block = _fold(match.group("indent"), match.group("prefix"), condition)
        if not _same_meaning(match.group(0), block):
            log_debug("condition_reflow_rejected", document=None, path=None, condition=condition)
            return match.group(0)
        folded += 1
        return block

    result = _IF_LINE.sub(_replace, text)
    if folded:
        log_debug("conditions_reflowed", document=None, path=None, count=folded)
    return result


def _fold(indent: str, prefix: str, condition: str) -> str:
    """Return the ``>-`` block replacing one single-line condition."""

    key_column = indent + " " * len(prefix)
    body = key_column + "  "
    continuation = body + " " * CONTINUATION_INDENT
    parts = _OPERATOR.split(condition)
    lines = [f"{indent}{prefix}if: >-", f"{body}${{{{ {parts[0].strip()}"]
    for operator, operand in zip(parts[1::2], parts[2::2]):
        lines.append(f"{continuation}{operator} {operand.strip()}")
    lines.append(f"{body}}}}}")
    return "\n".join(lines)


def _same_meaning(original: str, folded: str) -> bool:
    """Return ``True`` when both fragments load to the same whitespace-normalised condition."""

    try:
        before = yaml.safe_load(_as_document(original))
        after = yaml.safe_load(_as_document(folded))
    except yaml.YAMLError:
        return False
    return _normalise(before) == _normalise(after)


def _as_document(fragment: str) -> str:
    """Dedent *fragment* and drop a leading sequence dash so it loads standalone."""

    lines = fragment.splitlines()
    first = lines[0]
    column = len(first) - len(first.lstrip())
    stripped = [line[column:] for line in lines]
    if stripped[0].startswith("- "):
        stripped = [stripped[0][2:], *(line[2:] for line in stripped[1:])]
    return "\n".join(stripped) + "\n"


def _normalise(value: object) -> object:
    if isinstance(value, dict) and set(value) == {"if"} and isinstance(value["if"], str):
        return " ".join(value["if"].split())
    return value
