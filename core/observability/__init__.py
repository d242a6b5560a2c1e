"""
Observability Module for the content sync engine

Provides:
- Structured logging with correlation IDs (run, content type, record, phase)
"""

from core.observability.logging import (
    get_logger,
    configure_logging,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "CorrelationContext",
    "with_correlation",
]
