"""docmind HTTP API layer."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    AskQuestionRequest,
    AskQuestionResponse,
    ErrorResponse,
    HealthResponse,
    SearchRequest,
    SearchResultResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "AskQuestionRequest",
    "AskQuestionResponse",
    "ErrorResponse",
    "HealthResponse",
    "SearchRequest",
    "SearchResultResponse",
]
