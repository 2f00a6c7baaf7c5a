"""Structured pipeline configuration loaders.

Purpose
-------
Convert on-disk generator configuration into Python mappings that
:meth:`lib_managed_pipeline.domain.config.PipelineConfig.from_mapping`
understands. Adapters are small wrappers around ``tomllib``/``json``/
``yaml.safe_load`` so error handling and observability live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` / :class:`JSONFileLoader` / :class:`YAMLFileLoader` –
  one loader per format.
* :data:`FILE_LOADERS` / :func:`loader_for` – suffix-based selection; files
  without a suffix (``.pipecraftrc``) are read as YAML.

System Role
-----------
Invoked by :func:`lib_managed_pipeline.core.load_config` before the composer
receives an immutable configuration object.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[assignment]

import yaml

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"branchFlow = ['main']")
        >>> tmp.close()
        >>> BaseFileLoader()._read(tmp.name)[:10]
        b'branchFlow'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Configuration file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("config_file_read", document="config", path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        >>> BaseFileLoader._ensure_mapping({"branchFlow": ["main"]}, path="demo")
        {'branchFlow': ['main']}
        >>> BaseFileLoader._ensure_mapping(["main"], path="demo")
        Traceback (most recent call last):
        ...
        lib_managed_pipeline.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data  # type: ignore[return-value]


class TOMLFileLoader(BaseFileLoader):
    """Load TOML documents using the standard library parser."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from the TOML file at *path*."""

        try:
            text = self._read(path).decode("utf-8")
            data = tomllib.loads(text)
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:  # type: ignore[attr-defined]
            log_error("config_file_invalid", document="config", path=path, format="toml", error=str(exc))
            raise InvalidFormat(f"Invalid TOML in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", document="config", path=path, format="toml")
        return result


class JSONFileLoader(BaseFileLoader):
    """Load JSON documents."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from the JSON file at *path*.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', delete=False, encoding='utf-8')
        >>> _ = tmp.write('{"branchFlow": ["develop", "main"]}')
        >>> tmp.close()
        >>> JSONFileLoader().load(tmp.name)["branchFlow"]
        ['develop', 'main']
        >>> Path(tmp.name).unlink()
        """

        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_error("config_file_invalid", document="config", path=path, format="json", error=str(exc))
            raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", document="config", path=path, format="json")
        return result


class YAMLFileLoader(BaseFileLoader):
    """Load YAML documents; an empty file yields an empty mapping."""

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from the YAML file at *path*."""

        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            log_error("config_file_invalid", document="config", path=path, format="yaml", error=str(exc))
            raise InvalidFormat(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", document="config", path=path, format="yaml")
        return result


FILE_LOADERS: dict[str, BaseFileLoader] = {
    ".toml": TOMLFileLoader(),
    ".json": JSONFileLoader(),
    ".yaml": YAMLFileLoader(),
    ".yml": YAMLFileLoader(),
}
"""Structured loaders keyed by lower-case file suffix."""


def loader_for(path: str | Path) -> BaseFileLoader:
    """Return the loader responsible for *path*.

    Suffix-less run-control files are YAML documents.

    >>> type(loader_for(".pipecraftrc")).__name__
    'YAMLFileLoader'
    >>> type(loader_for("pipeline.toml")).__name__
    'TOMLFileLoader'
    >>> loader_for("pipeline.ini")
    Traceback (most recent call last):
    ...
    lib_managed_pipeline.domain.errors.InvalidFormat: Unsupported configuration format: pipeline.ini
    """

    suffix = Path(path).suffix.lower()
    if not suffix:
        return FILE_LOADERS[".yaml"]
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        raise InvalidFormat(f"Unsupported configuration format: {path}")
    return loader
