"""Multi-strategy record extraction from rendered portal pages."""

from src.nlobby.extraction.engine import (
    DetailResult,
    ExtractionEngine,
    ExtractionResult,
    PayloadDiagnostics,
    default_strategies,
)

__all__ = [
    "DetailResult",
    "ExtractionEngine",
    "ExtractionResult",
    "PayloadDiagnostics",
    "default_strategies",
]
