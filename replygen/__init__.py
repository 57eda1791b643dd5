# Reply generator package.
# Exposes the orchestrator and the result/error types callers deal with.

from .errors import ErrorClassifier, ErrorKind, ErrorResponse, GenerationError, Severity
from .cache import ResponseCache
from .types import QualityAssessment, Reference, ReplyMode, ReplyResult
from .orchestrator import EscalationOrchestrator, PipelineState

__all__ = [
    "ErrorClassifier",
    "ErrorKind",
    "ErrorResponse",
    "GenerationError",
    "Severity",
    "ResponseCache",
    "QualityAssessment",
    "Reference",
    "ReplyMode",
    "ReplyResult",
    "EscalationOrchestrator",
    "PipelineState",
]
