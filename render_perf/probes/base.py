from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from ..domain.errors import CapabilityUnsupportedError
from ..ports.session import Page, Session, is_unsupported

LOG = logging.getLogger("render_perf.probes")

T = TypeVar("T")


class ProbeKind(str, Enum):
    CPU_THROTTLE = "cpu-throttle"
    NETWORK_THROTTLE = "network-throttle"
    FRAME_SAMPLER = "frame-sampler"
    HEAP_SAMPLER = "heap-sampler"
    TRACE_CAPTURE = "trace-capture"


async def detach_quietly(session: Session) -> None:
    try:
        await session.detach()
    except Exception:  # session may already be gone with the page
        LOG.debug("session detach failed", exc_info=True)


async def send_quietly(session: Session, method: str, params: Optional[dict] = None) -> bool:
    try:
        await session.send(method, params)
    except Exception as exc:
        LOG.debug("%s failed during teardown: %s", method, exc)
        return False
    return True


class ProbeHandle(Generic[T]):
    """Live probe bound to its own session.

    ``stop`` is idempotent: the first call finalizes and detaches, later calls
    return ``None`` without touching the session.
    """

    def __init__(self, kind: ProbeKind, session: Session, page: Page) -> None:
        self.kind = kind
        self.session = session
        self.page = page
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    async def stop(self) -> Optional[T]:
        if not self._active:
            return None
        try:
            result = await self._finalize()
        except Exception:
            LOG.exception("%s: stop failed", self.kind.value)
            result = None
        self._active = False
        await detach_quietly(self.session)
        return result

    async def _finalize(self) -> Optional[T]:
        return None


class ResettableProbeHandle(ProbeHandle[T]):
    async def reset(self) -> None:
        """Discard the running window and start a fresh one on the same session."""
        if not self._active:
            return
        try:
            await self._restart()
        except Exception as exc:
            LOG.warning("%s: reset failed, deactivating: %s", self.kind.value, exc)
            self._active = False
            await detach_quietly(self.session)

    @abstractmethod
    async def _restart(self) -> None:
        ...


class Probe(ABC):
    """Startable capability tied to a dedicated debug session."""

    kind: ProbeKind

    @abstractmethod
    async def start(self, page: Page, config: Any = None) -> Optional[ProbeHandle]:
        """Returns a live handle, or None when the browser cannot serve this probe."""

    async def _open_session(
        self,
        page: Page,
        configure: Callable[[Session], Awaitable[None]],
    ) -> Optional[Session]:
        result = await page.new_session()
        if is_unsupported(result):
            LOG.warning("%s not supported on this browser: %s", self.kind.value, result.reason)
            return None
        session = result
        try:
            await configure(session)
        except CapabilityUnsupportedError as exc:
            LOG.warning("%s not supported on this browser: %s", self.kind.value, exc)
            await detach_quietly(session)
            return None
        except Exception:
            await detach_quietly(session)
            raise
        return session
