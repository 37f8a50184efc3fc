from __future__ import annotations


class TpsMeterError(Exception):
    """Base exception class for all TPS meter errors.

    Nothing derived from this class is allowed to reach the host event loop:
    the meter's entry points catch and log it. It exists so that internal
    code can signal a recoverable fault and the boundary can tell it apart
    from an unexpected bug.

    Attributes:
        message: Human-readable error message describing what went wrong.
    """

    def __init__(self, message: str) -> None:
        """Initialize the TpsMeterError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)
