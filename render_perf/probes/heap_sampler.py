from __future__ import annotations

from typing import Any, Optional

from ..domain.measurements import HeapMetrics, HeapSnapshot
from ..formatting import format_bytes
from ..ports.session import Page, Session
from .base import LOG, Probe, ProbeKind, ResettableProbeHandle, send_quietly


async def capture_heap_snapshot(session: Session) -> HeapSnapshot:
    response = await session.send("Performance.getMetrics")
    return HeapSnapshot.from_metrics((response or {}).get("metrics") or [])


class HeapSamplerHandle(ResettableProbeHandle[HeapMetrics]):
    def __init__(self, session: Session, page: Page, baseline: HeapSnapshot) -> None:
        super().__init__(ProbeKind.HEAP_SAMPLER, session, page)
        self.baseline = baseline

    async def _finalize(self) -> HeapMetrics:
        final = await capture_heap_snapshot(self.session)
        metrics = HeapMetrics.between(self.baseline, final)
        await send_quietly(self.session, "Performance.disable")
        return metrics

    async def _restart(self) -> None:
        self.baseline = await capture_heap_snapshot(self.session)


class HeapSamplerProbe(Probe):
    kind = ProbeKind.HEAP_SAMPLER

    async def start(self, page: Page, config: Any = None) -> Optional[HeapSamplerHandle]:
        snapshots = []

        async def configure(session: Session) -> None:
            await session.send("Performance.enable")
            snapshots.append(await capture_heap_snapshot(session))

        session = await self._open_session(page, configure)
        if session is None:
            return None
        baseline = snapshots[0]
        LOG.info("Heap sampling enabled (initial heap: %s)", format_bytes(baseline.used_size))
        return HeapSamplerHandle(session, page, baseline)
