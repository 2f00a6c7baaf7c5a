from __future__ import annotations

import pytest
import yaml

from lib_managed_pipeline.adapters.document.yaml_codec import (
    YAMLDocumentCodec,
    parse_document,
    render_entry,
    serialize_document,
)
from lib_managed_pipeline.domain.errors import ParseError
from lib_managed_pipeline.domain.operations import FlowSequence, QuotedScalar
from lib_managed_pipeline.domain.tree import Document, MappingNode, ValueNode, from_value

HAND_WRITTEN = """\
# Team pipeline
name: CI  # keep me

on:
  push:
    branches: [main]

jobs:
  # lint first
  lint:
    runs-on: ubuntu-latest
    steps:
      - run: |
          npm ci
          npm run lint

  build:
    runs-on: ubuntu-latest
  # trailing note
"""


def test_untouched_document_round_trips_byte_for_byte() -> None:
    assert serialize_document(parse_document(HAND_WRITTEN)) == HAND_WRITTEN


def test_on_key_is_not_coerced_to_boolean() -> None:
    doc = parse_document(HAND_WRITTEN)
    assert "on" in doc.root
    assert doc.value_at("on.push.branches") == ["main"]


def test_leading_comments_and_spacing_are_attached_to_entries() -> None:
    doc = parse_document(HAND_WRITTEN)
    lint = doc.find("jobs.lint")
    build = doc.find("jobs.build")
    assert lint is not None and build is not None
    assert lint.comment == [" lint first"]
    assert build.space_before is True
    jobs = doc.find("jobs")
    assert isinstance(jobs, MappingNode)
    assert jobs.trailer == ["# trailing note"]


def test_flow_mapping_becomes_addressable_mapping() -> None:
    doc = parse_document("env: {}\njobs: {lint: {runs-on: x}}\n")
    assert isinstance(doc.find("env"), MappingNode)
    assert doc.value_at("jobs.lint.runs-on") == "x"


def test_empty_text_gives_empty_document() -> None:
    doc = parse_document("")
    assert len(doc.root) == 0


@pytest.mark.parametrize("text", ["jobs: [\n", "- a\n- b\n", "just text\n"])
def test_invalid_documents_raise_parse_error(text: str) -> None:
    with pytest.raises(ParseError):
        parse_document(text)


def test_modified_entries_are_rendered_structurally() -> None:
    doc = parse_document(HAND_WRITTEN)
    node = doc.find("jobs.build")
    assert isinstance(node, MappingNode)
    node.put("needs", ValueNode(value=FlowSequence(["lint"])))
    node.source = None
    jobs = doc.find("jobs")
    assert jobs is not None
    jobs.source = None
    out = serialize_document(doc)
    assert "  build:\n    runs-on: ubuntu-latest\n    needs: [lint]\n" in out
    assert "      - run: |\n          npm ci\n" in out


def test_values_use_indented_sequences_double_quotes_and_literal_blocks() -> None:
    doc = Document(
        from_value(
            {
                "run-name": QuotedScalar("${{ github.ref_name }} #1"),
                "env": {"NODE_VERSION": "22"},
                "steps": [{"run": "echo a\necho b\n", "with": {"ref": "${{ github.sha }}"}}],
            }
        )
    )
    out = serialize_document(doc)
    assert 'run-name: "${{ github.ref_name }} #1"\n' in out
    assert '  NODE_VERSION: "22"\n' in out
    assert "steps:\n  - run: |\n      echo a\n      echo b\n" in out
    assert "      ref: ${{ github.sha }}\n" in out
    assert yaml.safe_load(out)["steps"][0]["run"] == "echo a\necho b\n"


def test_header_comment_for_fresh_documents() -> None:
    doc = Document(from_value({"name": "CI"}), header=["====", " MANAGED"])
    assert serialize_document(doc) == "#====\n# MANAGED\n\nname: CI\n"


def test_insertions_follow_their_anchor() -> None:
    doc = parse_document("jobs:\n  version:\n    runs-on: x\n  tag:\n    runs-on: y\n")
    out = serialize_document(doc, {"jobs.version": ["", "  # region"]})
    assert out == "jobs:\n  version:\n    runs-on: x\n\n  # region\n  tag:\n    runs-on: y\n"


def test_render_entry_indents_a_single_job() -> None:
    doc = parse_document("jobs:\n  lint:\n    runs-on: x  # pinned\n")
    node = doc.find("jobs.lint")
    assert node is not None
    assert render_entry("lint", node, 2) == "  lint:\n    runs-on: x  # pinned"


def test_codec_object_delegates() -> None:
    codec = YAMLDocumentCodec()
    doc = codec.parse("name: CI\n")
    assert codec.serialize(doc) == "name: CI\n"
    assert codec.render_entry("name", doc.find("name"), 0) == "name: CI"  # type: ignore[arg-type]


def test_unknown_tag_raises_parse_error() -> None:
    with pytest.raises(ParseError, match="Invalid YAML"):
        parse_document("name: CI\njobs:\n  deploy:\n    runs-on: !Ref Runner\n")
