"""Error taxonomy for the RAG subsystem."""
from typing import Optional


class RAGError(Exception):
    """Base class for all RAG errors."""
    pass


class ValidationError(RAGError):
    """Raised for an empty or invalid query or document."""
    pass


class ProviderError(RAGError):
    """Raised when the embedding provider fails (auth, timeout, rate limit, server error)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is not None:
            return f"{base} (HTTP {self.status_code})"
        return base


class StoreError(RAGError):
    """Raised inside vector/document store backends. Never escapes the store client."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class ConfigurationError(RAGError):
    """Raised at initialization when provider or store credentials are missing."""
    pass
