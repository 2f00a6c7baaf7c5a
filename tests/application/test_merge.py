from __future__ import annotations

import logging

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_managed_pipeline.adapters.document.yaml_codec import parse_document, serialize_document
from lib_managed_pipeline.application.merge import apply_operations
from lib_managed_pipeline.domain.errors import StructuralError
from lib_managed_pipeline.domain.operations import preserve_op, set_op
from lib_managed_pipeline.domain.tree import Document, from_value

KEY = st.text(alphabet="abcdefgh", min_size=1, max_size=4)
SCALAR = st.one_of(st.booleans(), st.integers(), st.text(min_size=1, max_size=5))
VALUE = st.recursive(
    SCALAR,
    lambda children: st.one_of(
        st.lists(children, max_size=3),
        st.dictionaries(KEY, children, min_size=1, max_size=3),
    ),
    max_leaves=8,
)
MAPPING = st.dictionaries(KEY, VALUE, max_size=4)
PATH = st.lists(KEY, min_size=1, max_size=3).map(".".join)


def _document(data: dict) -> Document:
    return Document(from_value(data))


def test_set_deep_replaces_subtree() -> None:
    doc = _document({"jobs": {"version": {"needs": ["changes"], "stale": True}}})
    apply_operations(doc, [set_op("jobs.version", {"needs": ["changes", "lint"]})])
    assert doc.value_at("jobs.version") == {"needs": ["changes", "lint"]}


def test_preserve_writes_only_missing_leaf() -> None:
    doc = _document({"env": {"NODE_VERSION": "20"}})
    report = apply_operations(
        doc,
        [preserve_op("env", {}), preserve_op("env.NODE_VERSION", "22"), preserve_op("env.PNPM_VERSION", "9")],
    )
    assert doc.value_at("env") == {"NODE_VERSION": "20", "PNPM_VERSION": "9"}
    assert (report.written, report.preserved) == (1, 2)


def test_new_keys_append_after_existing_siblings() -> None:
    doc = _document({"name": "CI", "jobs": {"lint": {"runs-on": "x"}}})
    apply_operations(doc, [set_op("on.push.branches", ["main"]), set_op("jobs.version.runs-on", "y")])
    assert doc.root.keys() == ["name", "jobs", "on"]
    assert doc.find("jobs").keys() == ["lint", "version"]  # type: ignore[union-attr]


def test_last_set_wins_within_a_pass() -> None:
    doc = Document()
    apply_operations(doc, [set_op("name", "first"), set_op("name", "second"), preserve_op("name", "third")])
    assert doc.value_at("name") == "second"


def test_required_operation_on_scalar_ancestor_raises() -> None:
    doc = _document({"jobs": "disabled"})
    with pytest.raises(StructuralError) as excinfo:
        apply_operations(doc, [set_op("jobs.version.runs-on", "x", required=True)])
    assert excinfo.value.path == "jobs.version.runs-on"


def test_optional_operation_on_scalar_ancestor_is_skipped(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="lib_managed_pipeline")
    doc = _document({"jobs": {"gate": "manual"}})
    report = apply_operations(doc, [preserve_op("jobs.gate.needs", ["changes"])])
    assert report.skipped == 1
    assert doc.value_at("jobs.gate") == "manual"
    assert any(record.getMessage() == "operation_skipped" for record in caplog.records)


def test_untouched_nodes_keep_their_comments() -> None:
    text = "name: CI\njobs:\n  # hand written\n  lint:\n    runs-on: x  # pinned\n"
    doc = parse_document(text)
    apply_operations(doc, [set_op("jobs.version.runs-on", "ubuntu-latest")])
    out = serialize_document(doc)
    assert "  # hand written\n  lint:\n    runs-on: x  # pinned\n" in out


def test_hints_apply_even_when_value_is_preserved() -> None:
    doc = _document({"env": {"A": "1"}})
    apply_operations(doc, [preserve_op("env", {}, space_before=True, comment_before=" Runtime pins")])
    env = doc.find("env")
    assert env is not None
    assert (env.space_before, env.comment) == (True, [" Runtime pins"])
    assert doc.value_at("env") == {"A": "1"}


@given(MAPPING, PATH, VALUE, VALUE)
def test_preserve_never_overwrites(data, path, existing, default) -> None:
    doc = _document(data)
    try:
        apply_operations(doc, [set_op(path, existing, required=True)])
    except StructuralError:
        return
    apply_operations(doc, [preserve_op(path, default)])
    assert doc.value_at(path) == existing


@given(MAPPING, PATH, VALUE)
def test_set_always_overwrites(data, path, value) -> None:
    doc = _document(data)
    try:
        apply_operations(doc, [set_op(path, value, required=True)])
    except StructuralError:
        return
    assert doc.value_at(path) == value


@given(MAPPING, st.lists(st.tuples(PATH, VALUE, st.booleans()), max_size=5))
def test_applying_operations_twice_is_idempotent(data, specs) -> None:
    operations = [(set_op if is_set else preserve_op)(path, value) for path, value, is_set in specs]
    doc = _document(data)
    apply_operations(doc, operations)
    once = serialize_document(doc)
    apply_operations(doc, operations)
    assert serialize_document(doc) == once
