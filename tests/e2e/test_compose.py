"""End-to-end coverage for composing and generating pipeline documents.

The scenarios walk a repository through its life: a first generation, hand
edits inside and outside the custom region, new domains in the configuration,
forced rebuilds, and documents that can no longer be merged.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest
import yaml

from lib_managed_pipeline import (
    MergeStatus,
    PipelineConfig,
    StructuralError,
    ValidationError,
    compose_pipeline,
    generate_pipeline,
    generate_pipelines,
    load_config,
)
from lib_managed_pipeline.application.custom_region import END_MARKER, START_MARKER, extract_custom_region
from lib_managed_pipeline.templates.placeholders import DEFAULT_CUSTOM_SECTION

FLOW = PipelineConfig(branch_flow=("develop", "main"))
WITH_API = PipelineConfig.from_mapping(
    {
        "branchFlow": ["develop", "main"],
        "domains": {"api": {"paths": ["apps/api/**"], "prefixes": ["test", "deploy"]}},
    }
)

SECURITY_SCAN = """\
  security-scan:
    needs: changes
    runs-on: ubuntu-latest   # pinned runner
    steps:
      - uses: actions/checkout@v4
      - run: trivy fs --exit-code 1 ."""

HAND_WRITTEN = """\
name: My CI
on:
  push:
    branches: [feature]
env:
  NODE_VERSION: "20"
jobs:
  lint-extra:
    runs-on: ubuntu-latest
    steps:
      - run: make lint  # strict
"""

LINT_EXTRA = "  lint-extra:\n    runs-on: ubuntu-latest\n    steps:\n      - run: make lint  # strict\n"


def _with_security_scan(text: str) -> str:
    empty = f"  # {START_MARKER}\n\n  # {END_MARKER}"
    assert empty in text
    return text.replace(empty, f"  # {START_MARKER}\n\n{SECURITY_SCAN}\n\n  # {END_MARKER}")


def _region_names(text: str) -> set[str]:
    region = extract_custom_region(text)
    assert region is not None
    return region.entry_names()


def test_fresh_document_has_triggers_markers_and_single_managed_jobs() -> None:
    composed = compose_pipeline(FLOW)
    loaded = yaml.load(composed.text, Loader=yaml.BaseLoader)

    assert composed.status is MergeStatus.CREATED
    assert loaded["on"]["push"]["branches"] == ["develop", "main"]
    assert loaded["on"]["pull_request"]["branches"] == ["develop"]
    assert list(loaded["jobs"]) == ["changes", "version", "gate", "tag", "promote", "release"]
    assert composed.text.count("\n  changes:\n") == 1
    assert composed.text.count("\n  version:\n") == 1
    assert extract_custom_region(composed.text).content == ""  # type: ignore[union-attr]
    assert composed.text.startswith("#=====")


def test_on_key_is_written_unquoted() -> None:
    text = compose_pipeline(FLOW).text
    assert "\non:\n" in text
    assert '"on"' not in text


def test_custom_region_sits_between_version_and_gate() -> None:
    text = compose_pipeline(FLOW).text
    version = text.index("\n  version:\n")
    start = text.index(f"\n  # {START_MARKER}\n")
    gate = text.index("\n  gate:\n")
    assert version < start < gate


def test_fresh_document_is_a_fixed_point() -> None:
    first = compose_pipeline(WITH_API)
    second = compose_pipeline(WITH_API, first.text)
    assert second.status is MergeStatus.MERGED
    assert second.text == first.text


def test_custom_job_is_retained_byte_for_byte() -> None:
    existing = _with_security_scan(compose_pipeline(FLOW).text)
    composed = compose_pipeline(FLOW, existing)
    assert composed.status is MergeStatus.MERGED
    assert f"  # {START_MARKER}\n\n{SECURITY_SCAN}\n\n  # {END_MARKER}\n" in composed.text
    assert composed.text == existing


def test_new_domain_adds_placeholders_after_user_jobs() -> None:
    existing = _with_security_scan(compose_pipeline(FLOW).text)
    composed = compose_pipeline(WITH_API, existing)
    region = extract_custom_region(composed.text)
    assert region is not None
    assert region.entry_names() == {"security-scan", "test-api", "deploy-api"}
    assert region.content.startswith(SECURITY_SCAN + "\n\n  deploy-api:\n")
    assert "needs.changes.outputs.api == 'true'" in region.content
    assert yaml.safe_load(composed.text)["jobs"]["changes"]["outputs"] == {"api": "${{ steps.detect.outputs.api }}"}


def test_user_edited_placeholder_is_never_regenerated() -> None:
    first = compose_pipeline(WITH_API).text
    edited = first.replace("echo \"Running test for api domain\"", "pytest -q")
    assert edited != first
    composed = compose_pipeline(WITH_API, edited)
    assert "pytest -q" in composed.text
    assert composed.text.count("  test-api:\n") == 1


def test_preserved_fields_keep_user_edits() -> None:
    text = compose_pipeline(FLOW).text
    text = text.replace('NODE_VERSION: "22"', 'NODE_VERSION: "20"')
    text = text.replace("name: Pipeline", "name: Release Train")
    composed = compose_pipeline(FLOW, text)
    loaded = yaml.safe_load(composed.text)
    assert loaded["env"]["NODE_VERSION"] == "20"
    assert loaded["name"] == "Release Train"


def test_managed_fields_are_rebuilt() -> None:
    text = compose_pipeline(FLOW).text.replace("      - develop\n      - main\n", "      - hotfix\n", 1)
    loaded = yaml.load(compose_pipeline(FLOW, text).text, Loader=yaml.BaseLoader)
    assert loaded["on"]["push"]["branches"] == ["develop", "main"]


def test_document_without_region_is_updated_and_keeps_foreign_jobs() -> None:
    composed = compose_pipeline(FLOW, HAND_WRITTEN)
    loaded = yaml.load(composed.text, Loader=yaml.BaseLoader)

    assert composed.status is MergeStatus.UPDATED
    assert LINT_EXTRA in composed.text
    assert extract_custom_region(composed.text).content == DEFAULT_CUSTOM_SECTION  # type: ignore[union-attr]
    assert loaded["name"] == "My CI"
    assert loaded["env"]["NODE_VERSION"] == "20"
    assert loaded["env"]["PNPM_VERSION"] == "9"
    assert loaded["on"]["push"]["branches"] == ["develop", "main"]

    again = compose_pipeline(FLOW, composed.text)
    assert again.status is MergeStatus.MERGED
    assert again.text == composed.text


def test_foreign_job_does_not_receive_a_duplicate_placeholder() -> None:
    existing = HAND_WRITTEN + "  test-api:\n    runs-on: self-hosted\n"
    composed = compose_pipeline(WITH_API, existing)
    assert composed.text.count("  test-api:\n") == 1
    assert _region_names(composed.text) == {"deploy-api"}


def test_force_folds_foreign_jobs_into_the_region() -> None:
    composed = compose_pipeline(FLOW, HAND_WRITTEN, force=True)
    assert composed.status is MergeStatus.REBUILT
    assert _region_names(composed.text) == {"lint-extra"}
    assert composed.text.count("lint-extra:") == 1
    assert LINT_EXTRA in composed.text
    assert yaml.safe_load(composed.text)["name"] == "Pipeline"


def test_force_keeps_region_content_without_duplicates() -> None:
    existing = _with_security_scan(compose_pipeline(FLOW).text)
    composed = compose_pipeline(WITH_API, existing, force=True)
    assert composed.status is MergeStatus.REBUILT
    assert composed.text.count("  security-scan:\n") == 1
    assert _region_names(composed.text) == {"security-scan", "test-api", "deploy-api"}


def test_unparseable_document_is_rebuilt_with_warning() -> None:
    composed = compose_pipeline(FLOW, "jobs: [\n  broken\n")
    assert composed.status is MergeStatus.REBUILT
    assert len(composed.warnings) == 1
    assert "could not be parsed" in composed.warnings[0]
    assert yaml.safe_load(composed.text)["jobs"]["version"]["needs"] == ["changes"]


def test_lone_marker_is_treated_as_absent_with_warning() -> None:
    existing = f"name: CI\njobs:\n  # {START_MARKER}\n  lint:\n    runs-on: x\n"
    composed = compose_pipeline(FLOW, existing)
    assert composed.status is MergeStatus.UPDATED
    assert any("marker" in warning for warning in composed.warnings)
    assert extract_custom_region(composed.text).content == DEFAULT_CUSTOM_SECTION  # type: ignore[union-attr]
    assert "  lint:\n    runs-on: x\n" in composed.text


def test_scalar_jobs_block_is_a_structural_error() -> None:
    with pytest.raises(StructuralError) as excinfo:
        compose_pipeline(FLOW, "name: CI\njobs: disabled\n")
    assert excinfo.value.segment == "jobs"


def test_long_conditions_are_folded() -> None:
    text = compose_pipeline(FLOW).text
    assert "    if: >-\n" in text
    for line in text.splitlines():
        if line.lstrip().startswith("if: ${{"):
            assert len(line) < 120


def test_generate_creates_then_leaves_unchanged_file_alone(tmp_path: Path) -> None:
    target = tmp_path / ".github" / "workflows" / "pipeline.yml"
    first = generate_pipeline(FLOW, target)
    assert (first.status, first.written) == (MergeStatus.CREATED, True)
    content = target.read_text(encoding="utf-8")

    second = generate_pipeline(FLOW, target)
    assert (second.status, second.written) == (MergeStatus.MERGED, False)
    assert target.read_text(encoding="utf-8") == content
    assert list(target.parent.iterdir()) == [target]


def test_generate_rebuilds_undecodable_file(tmp_path: Path) -> None:
    target = tmp_path / "pipeline.yml"
    target.write_bytes(b"name: \xff\xfe\n")
    result = generate_pipeline(FLOW, target)
    assert result.status is MergeStatus.REBUILT
    assert result.warnings and "UTF-8" in result.warnings[0]
    assert "version:" in target.read_text(encoding="utf-8")


def test_structural_error_leaves_existing_file_untouched(tmp_path: Path) -> None:
    target = tmp_path / "pipeline.yml"
    target.write_text("jobs: disabled\n", encoding="utf-8")
    with pytest.raises(StructuralError):
        generate_pipeline(FLOW, target)
    assert target.read_text(encoding="utf-8") == "jobs: disabled\n"


def test_generate_pipelines_isolates_failures(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yml"
    broken.write_text("jobs: disabled\n", encoding="utf-8")
    fresh = tmp_path / "fresh.yml"

    results = generate_pipelines(FLOW, [broken, fresh])

    assert [result.ok for result in results] == [False, True]
    assert isinstance(results[0].error, StructuralError)
    assert results[0].status is None
    assert results[1].status is MergeStatus.CREATED
    assert fresh.is_file()
    assert broken.read_text(encoding="utf-8") == "jobs: disabled\n"


def test_load_config_reads_run_control_file(tmp_path: Path) -> None:
    rc = tmp_path / ".pipecraftrc"
    rc.write_text(
        "pipeline:\n  branchFlow: [develop, staging, main]\n  domains:\n    web:\n      paths: ['web/**']\n      testable: true\n",
        encoding="utf-8",
    )
    config = load_config(rc)
    assert config.branch_flow == ("develop", "staging", "main")
    assert [entry.name for entry in config.placeholder_entries()] == ["test-web"]


def test_load_config_rejects_non_mapping_pipeline_key(tmp_path: Path) -> None:
    path = tmp_path / "pipeline.json"
    path.write_text('{"pipeline": 3}', encoding="utf-8")
    with pytest.raises(ValidationError):
        load_config(path)


CUSTOM_TAG = "name: CI\njobs:\n  deploy:\n    runs-on: !Ref Runner\n"


def test_document_with_unknown_tag_is_rebuilt_with_warning() -> None:
    composed = compose_pipeline(FLOW, CUSTOM_TAG)
    assert composed.status is MergeStatus.REBUILT
    assert any("could not be parsed" in warning for warning in composed.warnings)
    assert "!Ref" not in composed.text


def test_unknown_tag_does_not_stop_other_documents(tmp_path: Path) -> None:
    tagged = tmp_path / "tagged.yml"
    tagged.write_text(CUSTOM_TAG, encoding="utf-8")
    fresh = tmp_path / "fresh.yml"

    results = generate_pipelines(FLOW, [tagged, fresh])

    assert [result.status for result in results] == [MergeStatus.REBUILT, MergeStatus.CREATED]
    assert fresh.is_file()


@pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
def test_new_document_gets_umask_default_mode(tmp_path: Path) -> None:
    previous = os.umask(0o022)
    try:
        target = tmp_path / "pipeline.yml"
        generate_pipeline(FLOW, target)
    finally:
        os.umask(previous)
    assert stat.S_IMODE(target.stat().st_mode) == 0o644


@pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
def test_regenerated_document_keeps_its_mode(tmp_path: Path) -> None:
    target = tmp_path / "pipeline.yml"
    target.write_text(HAND_WRITTEN, encoding="utf-8")
    target.chmod(0o664)
    result = generate_pipeline(FLOW, target)
    assert result.written
    assert stat.S_IMODE(target.stat().st_mode) == 0o664
