from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..ports.session import Page, Session
from .base import LOG, ProbeHandle, ProbeKind, Probe, send_quietly

SET_RATE = "Emulation.setCPUThrottlingRate"


@dataclass(frozen=True)
class CpuThrottleConfig:
    rate: float

    def __post_init__(self) -> None:
        if self.rate <= 0:
            raise ValueError("rate must be positive")


class CpuThrottleHandle(ProbeHandle[None]):
    def __init__(self, session: Session, page: Page, rate: float) -> None:
        super().__init__(ProbeKind.CPU_THROTTLE, session, page)
        self.rate = rate

    async def reapply(self) -> bool:
        """Re-sends the rate after navigation; False when inactive or the send failed."""
        if not self.active:
            return False
        return await send_quietly(self.session, SET_RATE, {"rate": self.rate})

    async def _finalize(self) -> None:
        await send_quietly(self.session, SET_RATE, {"rate": 1})
        return None


class CpuThrottleProbe(Probe):
    kind = ProbeKind.CPU_THROTTLE

    async def start(
        self,
        page: Page,
        config: Union[CpuThrottleConfig, float, None] = None,
    ) -> Optional[CpuThrottleHandle]:
        if config is None:
            return None
        rate = config.rate if isinstance(config, CpuThrottleConfig) else float(config)
        # 1 means unthrottled.
        if rate <= 1:
            return None

        async def configure(session: Session) -> None:
            await session.send(SET_RATE, {"rate": rate})

        session = await self._open_session(page, configure)
        if session is None:
            return None
        LOG.info("CPU throttling enabled at %sx", rate)
        return CpuThrottleHandle(session, page, rate)
