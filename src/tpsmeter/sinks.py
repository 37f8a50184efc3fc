"""Notification sinks.

A sink delivers one Notice to the host's display surface. Sinks signal
failure by raising; the display coordinator then tries the next sink in
the chain. A sink may return an awaitable, which the coordinator schedules
fire-and-forget.

The host client is duck-typed. ``build_sink_chain`` inspects it for:

- ``client.tui.show_toast(title=, message=, variant=, duration=)``
- ``client.tui.publish({"type": "tui.toast.show", "properties": {...}})``
- ``client.toast.info(message, duration=)`` and ``client.toast.success(...)``
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from rich.console import Console
from rich.markup import escape

from tpsmeter.constants import ToastVariant
from tpsmeter.exceptions import SinkError

__all__ = [
    "Notice",
    "Sink",
    "ToastSink",
    "PublishSink",
    "NotifySink",
    "ConsoleSink",
    "build_sink_chain",
]


@dataclass(frozen=True, slots=True)
class Notice:
    """One message headed for the display surface."""

    title: str
    message: str
    variant: ToastVariant
    duration_ms: float
    final: bool = False


class Sink(Protocol):
    name: str

    def __call__(self, notice: Notice) -> Any: ...


class ToastSink:
    """Rich toast call on the host's TUI."""

    name = "toast"

    def __init__(self, show_toast: Callable[..., Any]) -> None:
        self._show_toast = show_toast

    def __call__(self, notice: Notice) -> Any:
        return self._show_toast(
            title=notice.title,
            message=notice.message,
            variant=notice.variant,
            duration=notice.duration_ms,
        )


class PublishSink:
    """Generic event publish shaped as a toast-show event."""

    name = "publish"

    def __init__(self, publish: Callable[[dict[str, Any]], Any]) -> None:
        self._publish = publish

    def __call__(self, notice: Notice) -> Any:
        return self._publish(
            {
                "type": "tui.toast.show",
                "properties": {
                    "title": notice.title,
                    "message": notice.message,
                    "variant": notice.variant,
                    "duration": notice.duration_ms,
                },
            }
        )


class NotifySink:
    """Plain info/success notification.

    Only two levels exist on this surface, so colour-coded warning and
    error variants are delivered as info.
    """

    name = "notify"

    def __init__(
        self,
        info: Callable[..., Any],
        success: Callable[..., Any],
    ) -> None:
        self._info = info
        self._success = success

    def __call__(self, notice: Notice) -> Any:
        send = self._success if notice.final else self._info
        return send(notice.message, duration=notice.duration_ms)


_CONSOLE_STYLES: dict[str, str] = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


class ConsoleSink:
    """Prints notices to a rich console (used by the CLI replay)."""

    name = "console"

    def __init__(
        self,
        console: Console,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._console = console
        self._clock = clock

    def __call__(self, notice: Notice) -> None:
        style = _CONSOLE_STYLES.get(notice.variant, "cyan")
        prefix = ""
        if self._clock is not None:
            prefix = f"[dim]{self._clock() / 1000:>9.3f}s[/dim] "
        marker = "[bold]done[/bold] " if notice.final else ""
        try:
            for line in notice.message.splitlines() or [""]:
                self._console.print(
                    f"{prefix}{marker}[{style}]{escape(line)}[/{style}]"
                )
        except (OSError, ValueError) as e:
            raise SinkError(self.name, str(e)) from e


def _method(target: Any, name: str) -> Callable[..., Any] | None:
    method = getattr(target, name, None) if target is not None else None
    return method if callable(method) else None


def build_sink_chain(client: Any) -> list[Sink]:
    """Build the fallback chain for a host client.

    Only sinks whose methods the client provides are included, in the
    order toast, publish, notify.
    """
    chain: list[Sink] = []
    if client is None:
        return chain

    tui = getattr(client, "tui", None)
    show_toast = _method(tui, "show_toast")
    if show_toast is not None:
        chain.append(ToastSink(show_toast))
    publish = _method(tui, "publish")
    if publish is not None:
        chain.append(PublishSink(publish))

    toast = getattr(client, "toast", None)
    info = _method(toast, "info")
    success = _method(toast, "success")
    if info is not None and success is not None:
        chain.append(NotifySink(info, success))
    return chain
