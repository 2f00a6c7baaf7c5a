"""Composition root for ``lib_managed_pipeline``.

Purpose
-------
Provide the entry points that turn a pipeline configuration into pipeline
documents on disk. The module wires the YAML codec, the merge engine, the
custom-region protocol and the reflow post-processor, and owns the only
filesystem side effects of a generation run.

Contents
--------
* :class:`MergeStatus` – reporting tag of one generation (``created``,
  ``merged``, ``updated``, ``rebuilt``).
* :class:`ComposedDocument` / :class:`GenerationResult` – results of the
  in-memory composition and of the filesystem run.
* :func:`build_operations` – ordered operation list from the templates.
* :func:`compose_pipeline` – pure text-in/text-out composer.
* :func:`generate_pipeline` / :func:`generate_pipelines` – read once, compose,
  write once; errors isolated per document.
* :func:`load_config` – structured configuration file → :class:`PipelineConfig`.

System Role
-----------
This module connects adapters (document codec, file loaders) with the
application layer while emitting structured observability signals. The CLI is
its only in-tree caller.
"""

from __future__ import annotations

import dataclasses
import os
import stat
import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Final, Iterable, Mapping

from .adapters.document.yaml_codec import YAMLDocumentCodec
from .adapters.file_loaders.structured import loader_for
from .application.custom_region import (
    ANCHOR_PATH,
    document_custom_jobs,
    extract_custom_region,
    join_region_parts,
    merge_placeholders,
    recover_custom_jobs,
    region_block,
    scan_markers,
    strip_custom_region,
)
from .application.formatting import format_if_conditions
from .application.merge import apply_operations
from .application.ports import DocumentCodec
from .domain.config import PipelineConfig
from .domain.errors import ParseError, PipelineError, ValidationError
from .domain.operations import Operation, preserve_op
from .domain.tree import Document
from .observability import bind_trace_id, log_debug, log_error, log_info, log_warning, make_event
from .templates.header import HEADER_COMMENT, header_operations
from .templates.jobs import (
    changes_job_operation,
    gate_operations,
    tag_promote_release_operations,
    version_job_operation,
)
from .templates.placeholders import DEFAULT_CUSTOM_SECTION, render_placeholder

DEFAULT_PIPELINE_PATH: Final[str] = ".github/workflows/pipeline.yml"
"""Target written when callers do not name one."""

_DOCUMENT: Final[str] = "pipeline"


class MergeStatus(str, Enum):
    """How a document came to be; used for reporting only."""

    CREATED = "created"
    MERGED = "merged"
    UPDATED = "updated"
    REBUILT = "rebuilt"


@dataclass(frozen=True, slots=True)
class ComposedDocument:
    """Serialized document text plus its status and any recovered-from warnings."""

    text: str
    status: MergeStatus
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of generating one document on disk.

    Attributes
    ----------
    path:
        Target file.
    status:
        :class:`MergeStatus`, or ``None`` when generation failed.
    warnings:
        Human readable notes about recovered problems (parse failure, marker mismatch).
    error:
        The :class:`PipelineError` that aborted this document, if any.
    written:
        ``False`` when the composed text equals the current file content.
    """

    path: Path
    status: MergeStatus | None
    warnings: tuple[str, ...] = ()
    error: PipelineError | None = None
    written: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class _Plan:
    """Mutable working state of one composition."""

    document: Document
    status: MergeStatus
    region: str
    warnings: list[str] = field(default_factory=list)


def build_operations(config: PipelineConfig) -> list[Operation]:
    """Concatenate the template operation lists in document order.

    Examples
    --------
    >>> ops = build_operations(PipelineConfig())
    >>> [op.path for op in ops if op.path.count(".") == 1 and op.path.startswith("jobs.")]
    ['jobs.changes', 'jobs.version', 'jobs.gate', 'jobs.tag', 'jobs.promote', 'jobs.release']
    """

    return [
        *header_operations(config),
        preserve_op("jobs", {}, required=True, space_before=True),
        changes_job_operation(config),
        version_job_operation(config),
        *gate_operations(),
        *tag_promote_release_operations(config),
    ]


def compose_pipeline(
    config: PipelineConfig,
    existing_text: str | None = None,
    *,
    force: bool = False,
    codec: DocumentCodec | None = None,
) -> ComposedDocument:
    """Compose the pipeline document text for *config*.

    Why
    ----
    Keep every decision about rebuild versus merge, the custom region, and
    formatting in one pure function so it can be tested without a filesystem.

    What
    ----
    * ``existing_text is None`` → fresh document, empty custom region (``created``).
    * ``force`` or unparseable text → fresh document; non-managed jobs are
      recovered into the custom region (``rebuilt``).
    * otherwise the operations are applied to the parsed document in place
      (``merged`` when a custom region existed, ``updated`` when the default
      stub was written instead).

    Raises
    ------
    StructuralError
        When a required operation cannot be resolved; nothing is produced.

    Examples
    --------
    >>> composed = compose_pipeline(PipelineConfig(branch_flow=("develop", "main")))
    >>> composed.status.value
    'created'
    >>> "# <--START CUSTOM JOBS-->" in composed.text and "# <--END CUSTOM JOBS-->" in composed.text
    True
    """

    codec = codec or YAMLDocumentCodec()
    plan = _plan_fresh() if existing_text is None else _plan_existing(existing_text, force, codec)

    apply_operations(plan.document, build_operations(config))

    taken = {name for name, _ in document_custom_jobs(plan.document)}
    region, added = merge_placeholders(plan.region, config.placeholder_entries(), render_placeholder, taken)
    text = codec.serialize(plan.document, insertions={ANCHOR_PATH: region_block(region)})
    text = format_if_conditions(text)
    log_info(
        "pipeline_composed",
        **make_event(_DOCUMENT, None, {"status": plan.status.value, "placeholders_added": added}),
    )
    return ComposedDocument(text=text, status=plan.status, warnings=tuple(plan.warnings))


def _plan_fresh(status: MergeStatus = MergeStatus.CREATED, region: str = "") -> _Plan:
    return _Plan(document=Document(header=list(HEADER_COMMENT)), status=status, region=region)


def _plan_existing(text: str, force: bool, codec: DocumentCodec) -> _Plan:
    """Decide between merge and rebuild for an existing document."""

    warnings: list[str] = []
    if scan_markers(text).mismatch:
        warnings.append("Only one custom region marker found; the section was treated as absent")
        log_warning("custom_region_marker_mismatch", **make_event(_DOCUMENT, None))
    region = extract_custom_region(text)
    body = strip_custom_region(text)

    parsed: Document | None = None
    try:
        parsed = codec.parse(body)
    except ParseError as exc:
        warnings.append(f"Existing document could not be parsed and was rebuilt: {exc}")
        log_warning("document_parse_failed", **make_event(_DOCUMENT, None, {"error": str(exc)}))

    if force or parsed is None:
        owned = region.entry_names() if region is not None else set()
        recovered = recover_custom_jobs(parsed, codec.render_entry, exclude=owned) if parsed is not None else []
        content = join_region_parts([region.content if region is not None else "", *recovered])
        plan = _plan_fresh(MergeStatus.REBUILT, content)
    elif region is not None:
        plan = _Plan(document=parsed, status=MergeStatus.MERGED, region=region.content)
    else:
        plan = _Plan(document=parsed, status=MergeStatus.UPDATED, region=DEFAULT_CUSTOM_SECTION)
    plan.warnings.extend(warnings)
    log_debug("pipeline_plan_selected", **make_event(_DOCUMENT, None, {"status": plan.status.value}))
    return plan


def generate_pipeline(
    config: PipelineConfig,
    path: str | Path = DEFAULT_PIPELINE_PATH,
    *,
    force: bool = False,
) -> GenerationResult:
    """Generate one document at *path*: read at most once, write at most once.

    Raises
    ------
    PipelineError
        When composition fails; the existing file is left untouched.
    OSError
        When the target cannot be read or written.
    """

    target = Path(path)
    existing, warnings = _read_existing(target)
    if existing is None and warnings:
        composed = dataclasses.replace(compose_pipeline(config, None), status=MergeStatus.REBUILT)
    else:
        composed = compose_pipeline(config, existing, force=force)
    all_warnings = (*warnings, *composed.warnings)

    written = composed.text != existing
    if written:
        _write_atomic(target, composed.text)
    log_info(
        "document_written" if written else "document_unchanged",
        **make_event(_DOCUMENT, str(target), {"status": composed.status.value}),
    )
    return GenerationResult(path=target, status=composed.status, warnings=all_warnings, written=written)


def generate_pipelines(
    config: PipelineConfig,
    paths: Iterable[str | Path] = (DEFAULT_PIPELINE_PATH,),
    *,
    force: bool = False,
) -> list[GenerationResult]:
    """Generate every target in *paths*; a failure in one never stops the others."""

    bind_trace_id(uuid.uuid4().hex)
    results: list[GenerationResult] = []
    try:
        for path in paths:
            try:
                results.append(generate_pipeline(config, path, force=force))
            except (PipelineError, OSError) as exc:
                log_error("document_failed", **make_event(_DOCUMENT, str(path), {"error": str(exc)}))
                error = exc if isinstance(exc, PipelineError) else PipelineError(f"{path}: {exc}")
                results.append(GenerationResult(path=Path(path), status=None, error=error))
    finally:
        bind_trace_id(None)
    return results


def load_config(path: str | Path) -> PipelineConfig:
    """Load a configuration file and build a :class:`PipelineConfig`.

    A payload nested under a top-level ``pipeline`` key is unwrapped.

    Raises
    ------
    NotFound
        When *path* does not exist.
    InvalidFormat
        When the file cannot be parsed.
    ValidationError
        When the payload has the wrong shape.
    """

    data: Mapping[str, object] = loader_for(path).load(str(path))
    nested = data.get("pipeline")
    if isinstance(nested, Mapping):
        data = nested
    elif nested is not None:
        raise ValidationError("'pipeline' must be a mapping")
    config = PipelineConfig.from_mapping(data)
    log_debug("config_loaded", **make_event("config", str(path), {"domains": list(config.domains)}))
    return config


def _read_existing(target: Path) -> tuple[str | None, list[str]]:
    """Return the current text of *target* (``None`` when absent or undecodable)."""

    if not target.is_file():
        return None, []
    payload = target.read_bytes()
    try:
        return payload.decode("utf-8"), []
    except UnicodeDecodeError as exc:
        log_warning("document_parse_failed", **make_event(_DOCUMENT, str(target), {"error": str(exc)}))
        return None, [f"Existing document is not UTF-8 and was rebuilt: {exc}"]


def _write_atomic(target: Path, text: str) -> None:
    """Replace *target* with *text* in one step so readers never see a partial file."""

    _ensure_parent(target)
    mode = _target_mode(target)
    handle = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="\n",
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    )
    try:
        with handle:
            handle.write(text)
        os.chmod(handle.name, mode)
        os.replace(handle.name, target)
    except BaseException:
        Path(handle.name).unlink(missing_ok=True)
        raise


def _target_mode(target: Path) -> int:
    """Return the permission bits the written file should carry.

    An existing file keeps its mode; a new one gets what a plain ``open``
    would create under the current umask.
    """

    if target.is_file():
        return stat.S_IMODE(target.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def _ensure_parent(path: Path) -> None:
    """Create the parent directory hierarchy for *path* if missing."""

    path.parent.mkdir(parents=True, exist_ok=True)
