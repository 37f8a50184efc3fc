"""Output formatting helpers for CLI commands."""

from __future__ import annotations

__all__ = ["format_error"]


def format_error(
    message: str, details: list[str] | None = None, suggestion: str | None = None
) -> str:
    """Format an error message with optional details and suggestion.

    Example:
        >>> print(format_error("Bad value", details=["Field: format"]))
        Error: Bad value
          Field: format
    """
    lines = [f"Error: {message}"]
    lines.extend(f"  {detail}" for detail in details or ())
    if suggestion:
        lines.append(f"Suggestion: {suggestion}")
    return "\n".join(lines)
