"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters satisfy so the composition root can
orchestrate a generation run without depending on a concrete YAML library or
configuration format.

Contents
--------
* :class:`DocumentCodec` – parses and serializes pipeline documents.
* :class:`FileLoader` – parses structured configuration artifacts.

System Role
-----------
These protocols keep the merge engine and the custom-region protocol free of
library types. :mod:`lib_managed_pipeline.core` wires the default adapters.
"""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from ..domain.tree import Document, Node


class DocumentCodec(Protocol):
    """Translate document text into the tree model and back.

    Why
    ----
    The merge engine mutates an explicit tree; which parser produced it, and
    how comments survive the round trip, is an adapter concern.
    """

    def parse(self, text: str) -> Document:
        """Return the tree for *text* or raise ``ParseError``."""

    def serialize(self, document: Document, insertions: Mapping[str, Sequence[str]] | None = None) -> str:
        """Return text for *document*, emitting raw *insertions* after the entries they name."""

    def render_entry(self, key: str, node: Node, indent: int = 2) -> str:
        """Return the standalone text of one ``key: value`` entry at *indent*."""


class FileLoader(Protocol):
    """Parse a structured configuration file into a mapping.

    Why
    ----
    Segregate parsing concerns (TOML/JSON/YAML) from orchestration logic.
    """

    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping representation or raise ``InvalidFormat``."""
