"""
Shared error types for SecondBrain services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class EmbeddingProviderError(RuntimeError):
    """Raised when the embedding provider is unavailable."""


class StaleEntryError(RuntimeError):
    """Raised when an update carries an outdated updated_at marker."""

    def __init__(self, entry_id: str, expected, actual):
        super().__init__(f"entry {entry_id} was modified concurrently")
        self.entry_id = entry_id
        self.expected = expected
        self.actual = actual
