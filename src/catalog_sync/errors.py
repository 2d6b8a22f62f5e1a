"""Exception hierarchy and user-facing error formatting.

Engine code raises the exceptions below; the CLI turns them into
structured messages with a corrective action so an operator can recover
without reading a traceback.
"""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base class for all errors raised by catalog_sync."""


class CatalogTransportError(CatalogSyncError):
    """The remote catalog was unreachable or returned malformed data."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LocalStoreError(CatalogSyncError):
    """A read or write against the local store was rejected."""


class RecordNotFoundError(LocalStoreError):
    """No local record exists with the requested id."""

    def __init__(self, record_id: str):
        super().__init__(f"Local record '{record_id}' not found")
        self.record_id = record_id


class DuplicateReferenceError(LocalStoreError):
    """Two local records of one kind would reference the same remote item."""

    def __init__(self, external_ref: str, holder_name: str):
        super().__init__(
            f"external reference {external_ref} is already linked to '{holder_name}'"
        )
        self.external_ref = external_ref
        self.holder_name = holder_name


def format_error(
    error_type: str, message: str, corrective_action: str
) -> str:
    """Build a structured error message with corrective action.

    Args:
        error_type: Error category (configuration_error, validation_error,
            transport_error, store_error).
        message: Human-readable error description.
        corrective_action: What the operator can do about it.

    Returns:
        Two-paragraph message suitable for stderr.

    Examples:
        >>> format_error("transport_error", "timeout", "Retry later.")
        'Error (transport_error): timeout\\n\\nAction: Retry later.'
    """
    return f"Error ({error_type}): {message}\n\nAction: {corrective_action}"
