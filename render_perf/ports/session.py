from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Union

from ..domain.errors import CapabilityUnsupportedError

EventCallback = Callable[[Dict[str, Any]], None]


class Session(Protocol):
    """Debug-protocol session bound to one page.

    Events subscribed with ``on``/``once`` are delivered before the completion
    event that follows them.
    """

    async def send(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        ...

    def on(self, event: str, callback: EventCallback) -> None:
        ...

    def once(self, event: str, callback: EventCallback) -> None:
        ...

    def off(self, event: str, callback: EventCallback) -> None:
        ...

    async def detach(self) -> None:
        ...


@dataclass(frozen=True)
class SessionUnsupported:
    """Returned instead of a session when the browser has no debug protocol."""

    reason: str = "debug protocol not available"


SessionResult = Union[Session, SessionUnsupported]


class Page(Protocol):
    """Browser page owned by one runner for the duration of a test."""

    @property
    def url(self) -> str:
        ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        ...

    async def goto_blank(self) -> None:
        ...

    async def add_init_script(self, script: str) -> None:
        ...

    async def new_session(self) -> SessionResult:
        ...


def is_unsupported(value: object) -> bool:
    return isinstance(value, (SessionUnsupported, CapabilityUnsupportedError))
