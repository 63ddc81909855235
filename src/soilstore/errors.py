"""
Error taxonomy for the data-access layer.

- ValidationError: bad input shape or range. Never retried.
- NotFoundError: the referenced report does not exist. Never retried.
- ConnectionError: transient infrastructure failure. Retried.
- UnknownError: anything uncategorized. Retried, logged with full detail.

Driver exceptions are translated into ConnectionError/UnknownError and
chained, so str(exc) never carries a raw driver message.
"""


class SoilStoreError(Exception):
    """Base class for all errors raised by soilstore."""


class ValidationError(SoilStoreError):
    """
    Input failed validation.

    Attributes:
        errors: Mapping of field name to message, one entry per violated field
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Validation failed: {fields}")


class NotFoundError(SoilStoreError):
    """No soil report with the given id exists."""

    def __init__(self, report_id):
        self.report_id = report_id
        super().__init__(f"Soil report {report_id} not found")


class ConnectionError(SoilStoreError):
    """The database could not be reached or the connection broke."""


class UnknownError(SoilStoreError):
    """An uncategorized failure while talking to the database."""


NON_RETRYABLE = (ValidationError, NotFoundError)


def is_transient(exc: BaseException) -> bool:
    """Retry policy used by the record store: everything but caller errors."""
    return not isinstance(exc, NON_RETRYABLE)
