"""Workflow header operations.

Purpose
-------
Describe the top of a pipeline document (workflow name, run name, runtime
environment pins, and triggers) as an ordered list of operations.

Contents
--------
* :data:`HEADER_COMMENT` – banner written above the first key of a new document.
* :func:`header_operations` – operation list derived from the branch flow.

System Role
-----------
First sub-generator concatenated by :func:`lib_managed_pipeline.core.build_operations`.
"""

from __future__ import annotations

from typing import Final

from ..application.custom_region import END_MARKER, START_MARKER
from ..domain.config import PipelineConfig
from ..domain.operations import Operation, QuotedScalar, preserve_op, set_op

_RULE: Final[str] = "=" * 77

HEADER_COMMENT: Final[list[str]] = [
    _RULE,
    " MANAGED PIPELINE WORKFLOW",
    _RULE,
    "",
    " YOU CAN CUSTOMIZE:",
    f"   - Custom jobs between the '# {START_MARKER}' and '# {END_MARKER}' comment markers",
    "   - Workflow name and the runtime versions under env",
    "",
    " THE GENERATOR MANAGES (do not modify):",
    "   - Workflow triggers, job dependencies, and conditionals",
    "   - Changes detection, version calculation, and tag creation",
    "   - Tag, promote, and release jobs",
    "",
    " Regenerating updates managed sections while preserving your customizations.",
    _RULE,
]
"""Comment lines (text after ``#``) of the banner above a freshly created document."""

ENV_COMMENT: Final[str] = """ Git fetch depth configuration
 - FETCH_DEPTH_AFFECTED: For change detection
   Lower values (50-100) improve performance, higher values (200+) improve accuracy
   Use 0 for complete history if your branches diverge significantly
 - FETCH_DEPTH_VERSIONING: For semantic version calculation (needs git tags)
   Should almost always be 0 to access all tags

 Runtime versions
 Update these to match your project's requirements without regenerating workflows"""

RUNTIME_DEFAULTS: Final[tuple[tuple[str, str], ...]] = (
    ("FETCH_DEPTH_AFFECTED", "100"),
    ("FETCH_DEPTH_VERSIONING", "0"),
    ("NODE_VERSION", "22"),
    ("PNPM_VERSION", "9"),
)

_DISPATCH_INPUTS: Final[tuple[tuple[str, str], ...]] = (
    ("version", "The version to deploy"),
    ("baseRef", "The base reference for comparison"),
    ("run_number", "The original run number from the initial branch"),
    ("commitSha", "The exact commit SHA to checkout and test"),
)


def run_name_expression(branch_flow: tuple[str, ...]) -> str:
    """Return the ``run-name`` expression shown for each workflow run.

    Pull requests between flow branches show the PR title; everything else shows
    the ref name, the run number and the version when one was passed in.
    """

    branches = ",".join(branch_flow)
    return (
        f"${{{{ github.event_name == 'pull_request' && !contains('{branches}', github.head_ref)"
        " && github.event.pull_request.title || github.ref_name }}"
        " #${{ inputs.run_number || github.run_number }}"
        "${{ inputs.version && format(' - {0}', inputs.version) || '' }}"
    )


def header_operations(config: PipelineConfig) -> list[Operation]:
    """Return the header operations for *config*.

    ``name``, ``run-name`` and the ``env`` pins are ``preserve`` so users may
    edit them; the ``on`` block is rebuilt on every pass.

    Examples
    --------
    >>> ops = header_operations(PipelineConfig(branch_flow=("develop", "main")))
    >>> [op.path for op in ops][:3]
    ['name', 'run-name', 'env']
    >>> next(op.value for op in ops if op.path == "on.pull_request.branches")
    ['develop']
    """

    flow = config.branch_flow
    operations = [
        preserve_op("name", "Pipeline", required=True),
        preserve_op("run-name", QuotedScalar(run_name_expression(flow)), required=True, space_before=True),
        preserve_op("env", {}, required=True, space_before=True, comment_before=ENV_COMMENT),
    ]
    operations.extend(preserve_op(f"env.{name}", value, required=True) for name, value in RUNTIME_DEFAULTS)
    operations.append(set_op("on", {}, required=True, space_before=True))
    for trigger in ("workflow_dispatch", "workflow_call"):
        operations.extend(
            set_op(
                f"on.{trigger}.inputs.{name}",
                {"description": description, "required": False, "type": "string"},
                required=True,
            )
            for name, description in _DISPATCH_INPUTS
        )
    operations.extend(
        [
            set_op("on.push.branches", list(flow), required=True),
            set_op("on.pull_request.types", ["opened", "synchronize", "reopened"], required=True),
            set_op("on.pull_request.branches", [config.initial_branch], required=True),
        ]
    )
    return operations
