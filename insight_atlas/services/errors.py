"""Service-layer exceptions."""

from typing import Optional


class PersistenceError(Exception):
    """Raised when the job or book store cannot complete a write or read."""

    def __init__(self, message: str, operation: Optional[str] = None, job_id: Optional[int] = None):
        self.message = message
        self.operation = operation
        self.job_id = job_id
        super().__init__(message)


class BookNotFoundError(Exception):
    """Raised when a book is not found."""

    def __init__(self, book_id: int):
        self.book_id = book_id
        super().__init__(f"Book with ID '{book_id}' not found")


class JobNotFoundError(Exception):
    """Raised when an insight job is not found."""

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Insight job with ID '{job_id}' not found")


class ParseError(Exception):
    """Raised inside the content parser when text cannot be read as JSON."""


class RateLimitExceeded(Exception):
    """Raised when an admission check denies a request."""

    def __init__(
        self,
        operation_class: str,
        limit: int,
        retry_after: int,
        error: str = "Too many requests",
        message: str = "Please wait before making more requests",
    ):
        self.operation_class = operation_class
        self.limit = limit
        self.retry_after = retry_after
        self.error = error
        self.message = message
        super().__init__(f"{error}: {message}")
