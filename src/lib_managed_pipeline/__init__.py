"""Public package surface for the managed pipeline generator.

Re-exports the composition root (:func:`compose_pipeline`,
:func:`generate_pipeline`, :func:`generate_pipelines`, :func:`load_config`),
the configuration value objects, and the error taxonomy so callers can write
``from lib_managed_pipeline import ...`` without knowing the module layout.
"""

from __future__ import annotations

from .core import (
    DEFAULT_PIPELINE_PATH,
    ComposedDocument,
    GenerationResult,
    MergeStatus,
    build_operations,
    compose_pipeline,
    generate_pipeline,
    generate_pipelines,
    load_config,
)
from .domain.config import DomainConfig, PipelineConfig, PlaceholderEntry
from .domain.errors import InvalidFormat, NotFound, ParseError, PipelineError, StructuralError, ValidationError
from .observability import bind_trace_id, get_logger

__all__ = [
    "DEFAULT_PIPELINE_PATH",
    "ComposedDocument",
    "DomainConfig",
    "GenerationResult",
    "InvalidFormat",
    "MergeStatus",
    "NotFound",
    "ParseError",
    "PipelineConfig",
    "PipelineError",
    "PlaceholderEntry",
    "StructuralError",
    "ValidationError",
    "bind_trace_id",
    "build_operations",
    "compose_pipeline",
    "generate_pipeline",
    "generate_pipelines",
    "get_logger",
    "load_config",
]
