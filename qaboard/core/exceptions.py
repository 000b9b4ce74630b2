"""
Platform-wide exception hierarchy.

Services and the report engine raise these types; blueprints register
handlers against them once and get consistent HTTP status codes.

Usage:
    from qaboard.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="ReportDefinition", resource_id=42)
    raise ValidationError("Unsupported metric: foo", details={"metrics": "foo"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "ReportDefinition").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when a request fails validation before any computation runs.

    Args:
        message: Human-readable explanation of what failed; names the
                 offending value (e.g. the unknown dimension id).
        details: Optional field-level breakdown for structured API responses.
        code: Machine-readable error code (``E.VALIDATION_*``).
    """

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        self.details = details or {}
        self.code = code
        super().__init__(message)


class AggregationError(Exception):
    """Raised when computing a metric or enumerating a dimension fails.

    The whole report fails; there is no partial result. ``source`` names the
    metric or dimension that raised, ``__cause__`` holds the original error.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        super().__init__(message)
