"""Population estimation over state/taxonomy/segment percentage tables."""

from .core.catalog import EstimationContext, default_context
from .core.composer import EstimationResult, StateBreakdown
from .core.estimator import EstimationError, estimate

__all__ = [
    "EstimationContext",
    "EstimationError",
    "EstimationResult",
    "StateBreakdown",
    "default_context",
    "estimate",
]
