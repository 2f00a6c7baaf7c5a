"""Managed job operations.

Purpose
-------
Describe the machine-owned jobs of a pipeline document: change detection,
version calculation, the gate, and the tag/promote/release chain. Each builder
returns operations only; ordering inside ``jobs`` follows the order in which
:func:`lib_managed_pipeline.core.build_operations` concatenates them.

Contents
--------
* :func:`changes_job_operation` / :func:`version_job_operation` – ``set`` jobs
  that anchor the custom region.
* :func:`gate_operations` – gate job whose ``needs``/``if`` stay user-editable.
* :func:`tag_promote_release_operations` – tag (partly customisable), promote,
  and release.
* ``promotable_branches_condition`` / ``target_branch_expression`` /
  ``auto_promote_expression`` – expression helpers derived from the branch flow.

System Role
-----------
Pure functions over :class:`~lib_managed_pipeline.domain.config.PipelineConfig`;
no I/O and no knowledge of existing documents.
"""

from __future__ import annotations

from typing import Any, Final

import yaml

from ..domain.config import PipelineConfig
from ..domain.operations import FlowSequence, Operation, preserve_op, set_op

RUNNER: Final[str] = "ubuntu-latest"
CHECKOUT: Final[str] = "actions/checkout@v4"
COMMIT_REF: Final[str] = "${{ inputs.commitSha || github.sha }}"
VERSION_OUTPUT: Final[str] = "${{ needs.version.outputs.version }}"


def _banner(title: str, *body: str) -> str:
    rule = "=" * 77
    return "\n".join([rule, f" {title}", rule, *(f" {line}" for line in body)])


CHANGES_COMMENT: Final[str] = _banner(
    "CHANGES DETECTION (Managed - do not modify)",
    "Detects which domains changed so domain jobs can be skipped when unaffected.",
)
VERSION_COMMENT: Final[str] = _banner(
    "VERSIONING (Managed - do not modify)",
    "Calculates the next semantic version based on conventional commits.",
    "Only runs on push events (skipped on pull requests).",
)
GATE_COMMENT: Final[str] = _banner(
    "GATE (Managed - customizable needs and if)",
    "Ensures prior jobs succeed before allowing tag/promote/release.",
    "Allows only SUCCESS or SKIPPED results (failures block progression).",
)
TAG_COMMENT: Final[str] = _banner(
    "TAG (Managed - customizable needs and if)",
    "Creates git tags and promotes code through branch flow.",
    "The 'needs' and 'if' fields are customizable and will be preserved.",
    "All other fields (runs-on, steps) are managed.",
)
PROMOTE_COMMENT: Final[str] = _banner(
    "PROMOTE (Managed - do not modify)",
    "Promotes code to the next branch of the flow via PR.",
)
RELEASE_COMMENT: Final[str] = _banner(
    "RELEASE (Managed - do not modify)",
    "Creates a release for the version.",
)

GATE_PREREQUISITES: Final[tuple[str, ...]] = ("changes", "version")
GATE_STEP_RUN: Final[str] = 'echo "All prerequisite jobs succeeded or were skipped - gate allows progression"'


def _checkout(fetch_depth: str) -> dict[str, Any]:
    return {"uses": CHECKOUT, "with": {"ref": COMMIT_REF, "fetch-depth": fetch_depth}}


def _expression(condition: str) -> str:
    return f"${{{{ {condition} }}}}"


def domains_config_text(config: PipelineConfig) -> str:
    """Return the literal YAML passed to the detect-changes action.

    >>> from lib_managed_pipeline.domain.config import DomainConfig
    >>> print(domains_config_text(PipelineConfig(domains={"api": DomainConfig(paths=("src/**",))})), end="")
    api:
      paths:
      - src/**
    """

    payload = {name: {"paths": list(domain.paths)} for name, domain in config.domains.items()}
    return yaml.safe_dump(payload, sort_keys=False, default_flow_style=False) if payload else "{}\n"


def changes_job_operation(config: PipelineConfig) -> Operation:
    """Return the ``set`` operation for the change-detection job (one output per domain)."""

    value = {
        "runs-on": RUNNER,
        "steps": [
            _checkout("${{ env.FETCH_DEPTH_AFFECTED }}"),
            {
                "uses": config.action_reference("detect-changes"),
                "id": "detect",
                "with": {
                    "baseRef": f"${{{{ inputs.baseRef || '{config.final_branch}' }}}}",
                    "domains-config": domains_config_text(config),
                },
            },
        ],
        "outputs": {name: f"${{{{ steps.detect.outputs.{name} }}}}" for name in config.domains},
    }
    return set_op("jobs.changes", value, required=True, space_before=True, comment_before=CHANGES_COMMENT)


def version_job_operation(config: PipelineConfig) -> Operation:
    """Return the ``set`` operation for the version job, the custom region anchor."""

    value = {
        "needs": FlowSequence(["changes"]),
        "if": _expression("always() && github.event_name != 'pull_request'"),
        "runs-on": RUNNER,
        "steps": [
            _checkout("${{ env.FETCH_DEPTH_VERSIONING }}"),
            {
                "uses": config.action_reference("calculate-version"),
                "id": "version",
                "with": {
                    "baseRef": f"${{{{ inputs.baseRef || '{config.final_branch}' }}}}",
                    "version": "${{ inputs.version }}",
                    "node-version": "${{ env.NODE_VERSION }}",
                    "commitSha": "${{ inputs.commitSha }}",
                },
            },
        ],
        "outputs": {"version": "${{ steps.version.outputs.version }}"},
    }
    return set_op("jobs.version", value, required=True, space_before=True, comment_before=VERSION_COMMENT)


def gate_condition(job_names: tuple[str, ...]) -> str:
    """Return the gate ``if``: every prerequisite succeeded or was skipped.

    >>> gate_condition(("changes",))
    "${{ always() && (needs['changes'].result == 'success' || needs['changes'].result == 'skipped') }}"
    >>> gate_condition(())
    '${{ always() }}'
    """

    clauses = [f"(needs['{name}'].result == 'success' || needs['{name}'].result == 'skipped')" for name in job_names]
    return _expression(" && ".join(["always()", *clauses]))


def gate_operations() -> list[Operation]:
    """Return the gate job operations; every field keeps user edits."""

    return [
        preserve_op("jobs.gate", {}, required=True, space_before=True, comment_before=GATE_COMMENT),
        preserve_op("jobs.gate.needs", list(GATE_PREREQUISITES)),
        preserve_op("jobs.gate.if", gate_condition(GATE_PREREQUISITES)),
        preserve_op("jobs.gate.runs-on", RUNNER),
        preserve_op("jobs.gate.steps", [{"name": "Gate passed", "run": GATE_STEP_RUN}]),
    ]


def promotable_branches_condition(branch_flow: tuple[str, ...]) -> str:
    """Return the condition selecting branches that promote (all but the last).

    >>> promotable_branches_condition(("develop", "staging", "main"))
    "github.ref_name == 'develop' || github.ref_name == 'staging'"
    >>> promotable_branches_condition(("main",))
    'false'
    """

    promotable = branch_flow[:-1]
    if not promotable:
        return "false"
    return " || ".join(f"github.ref_name == '{branch}'" for branch in promotable)


def target_branch_expression(branch_flow: tuple[str, ...]) -> str:
    """Return the expression naming the branch a promotion targets.

    >>> target_branch_expression(("develop", "main"))
    "'main'"
    >>> target_branch_expression(("develop", "staging", "main"))
    "github.ref_name == 'develop' && 'staging' || 'main'"
    """

    if len(branch_flow) == 1:
        return "''"
    if len(branch_flow) == 2:
        return f"'{branch_flow[1]}'"
    return f"github.ref_name == '{branch_flow[0]}' && '{branch_flow[1]}' || '{branch_flow[-1]}'"


def auto_promote_expression(config: PipelineConfig) -> str:
    """Return the expression telling the promote action whether to merge automatically.

    >>> auto_promote_expression(PipelineConfig(branch_flow=("develop", "main"), auto_promote={"main": True}))
    "(github.ref_name == 'develop' && 'true') || 'false'"
    >>> auto_promote_expression(PipelineConfig(branch_flow=("main",)))
    "'false'"
    """

    flow = config.branch_flow
    if not config.auto_promote or len(flow) == 1:
        return "'false'"
    clauses = [
        f"(github.ref_name == '{source}' && '{'true' if config.auto_promote.get(target) else 'false'}')"
        for source, target in zip(flow, flow[1:])
    ]
    return " || ".join([*clauses, "'false'"])


def tag_promote_release_operations(config: PipelineConfig) -> list[Operation]:
    """Return the tag, promote and release operations."""

    flow = config.branch_flow
    tag_condition = " && ".join(
        [
            "always()",
            "github.event_name != 'pull_request'",
            f"github.ref_name == '{config.initial_branch}'",
            "needs.version.result == 'success'",
            "needs.version.outputs.version != ''",
            "needs.gate.result == 'success'",
        ]
    )
    promote_condition = " && ".join(
        [
            "always()",
            "(github.event_name == 'push' || github.event_name == 'workflow_dispatch')",
            "needs.version.result == 'success'",
            "needs.version.outputs.version != ''",
            "(needs.tag.result == 'success' || needs.tag.result == 'skipped')",
            f"({promotable_branches_condition(flow)})",
        ]
    )
    release_condition = " && ".join(
        [
            "always()",
            f"github.ref_name == '{config.final_branch}'",
            "needs.version.result == 'success'",
            "needs.version.outputs.version != ''",
            "(needs.tag.result == 'success' || needs.tag.result == 'skipped')",
        ]
    )
    versioning_checkout = _checkout("${{ env.FETCH_DEPTH_VERSIONING }}")
    return [
        preserve_op("jobs.tag", {}, required=True, space_before=True, comment_before=TAG_COMMENT),
        preserve_op("jobs.tag.needs", ["version", "gate"]),
        preserve_op("jobs.tag.if", _expression(tag_condition)),
        set_op("jobs.tag.runs-on", RUNNER),
        set_op(
            "jobs.tag.steps",
            [versioning_checkout, {"uses": config.action_reference("create-tag"), "with": {"version": VERSION_OUTPUT}}],
        ),
        set_op(
            "jobs.promote",
            {
                "needs": FlowSequence(["version", "tag"]),
                "if": _expression(promote_condition),
                "runs-on": RUNNER,
                "steps": [
                    versioning_checkout,
                    {
                        "uses": config.action_reference("promote-branch"),
                        "with": {
                            "version": VERSION_OUTPUT,
                            "sourceBranch": "${{ github.ref_name }}",
                            "targetBranch": _expression(target_branch_expression(flow)),
                            "autoPromote": _expression(auto_promote_expression(config)),
                            "run_number": "${{ inputs.run_number || github.run_number }}",
                        },
                    },
                ],
            },
            required=True,
            space_before=True,
            comment_before=PROMOTE_COMMENT,
        ),
        set_op(
            "jobs.release",
            {
                "needs": FlowSequence(["tag", "version"]),
                "if": _expression(release_condition),
                "runs-on": RUNNER,
                "steps": [
                    versioning_checkout,
                    {"uses": config.action_reference("create-release"), "with": {"version": VERSION_OUTPUT}},
                ],
            },
            required=True,
            space_before=True,
            comment_before=RELEASE_COMMENT,
        ),
    ]
