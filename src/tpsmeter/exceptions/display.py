from __future__ import annotations

from tpsmeter.exceptions.base import TpsMeterError


class SinkError(TpsMeterError):
    """A notification sink could not deliver a message.

    Raised by a sink to hand the message to the next sink in the chain.

    Attributes:
        sink_name: Name of the sink that failed.
    """

    def __init__(self, sink_name: str, message: str) -> None:
        """Initialize the SinkError.

        Args:
            sink_name: Name of the failing sink.
            message: What went wrong.
        """
        self.sink_name = sink_name
        super().__init__(f"{sink_name}: {message}")


class EventParseError(TpsMeterError):
    """An inbound host event payload could not be decoded.

    Only used inside the event decoder; the meter turns it into a skipped
    event.

    Attributes:
        event_type: The payload's declared type, if any.
    """

    def __init__(self, message: str, event_type: str | None = None) -> None:
        self.event_type = event_type
        super().__init__(message)
