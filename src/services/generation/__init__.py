"""Init file for code generation services."""

from .extractor import extract_files
from .pipeline import GenerationPipeline


__all__ = [
    "GenerationPipeline",
    "extract_files",
]
