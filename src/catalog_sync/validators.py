"""
Input validation functions for catalog-sync.

Provides validation for display names and catalog identifiers before
they are written to either side of a sync.
"""

MAX_NAME_LENGTH = 255


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Display name")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_display_name(
    name: str, max_length: int = MAX_NAME_LENGTH
) -> tuple[bool, str]:
    """
    Validate a record display name.

    Args:
        name: The display name to validate
        max_length: Maximum length in characters (default: 255)

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot contain line breaks
        - Cannot exceed max_length characters
    """
    if not name or not name.strip():
        return (
            False,
            format_validation_error("Display name", "cannot be empty"),
        )

    if "\n" in name or "\r" in name:
        return (
            False,
            format_validation_error(
                "Display name", "cannot contain line breaks"
            ),
        )

    if len(name) > max_length:
        return (
            False,
            format_validation_error(
                "Display name",
                f"exceeds maximum length ({len(name)} > {max_length})",
            ),
        )

    return (True, "")


def validate_catalog_id(catalog_id: str) -> tuple[bool, str]:
    """
    Validate a remote catalog identifier.

    Catalog ids are positive integers, passed around as strings.

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not catalog_id or not catalog_id.strip():
        return (
            False,
            format_validation_error("Catalog id", "cannot be empty"),
        )

    if not catalog_id.strip().isdigit():
        return (
            False,
            format_validation_error(
                "Catalog id", f"must be numeric, got '{catalog_id}'"
            ),
        )

    return (True, "")
