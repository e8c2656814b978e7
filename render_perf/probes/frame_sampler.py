from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from ..domain.measurements import FrameMetrics, round_to
from ..ports.session import Page, Session
from .base import LOG, Probe, ProbeKind, ResettableProbeHandle
from .tracing import TraceEvent, collect_trace_data, parse_trace_event, start_tracing

TRACING_CATEGORIES = "devtools.timeline,disabled-by-default-devtools.timeline.frame"
SAMPLING_FREQUENCY_HZ = 10000
COLLECTION_TIMEOUT_SECONDS = 10.0
MIN_RELIABLE_DURATION_MS = 100

# Most precise first: compositor draw, main-thread frame, vsync-only frame.
FRAME_EVENT_PRIORITY = ("DrawFrame", "BeginMainThreadFrame", "BeginFrame")


def extract_frame_events(events: Sequence[TraceEvent]) -> List[TraceEvent]:
    by_name: Dict[str, List[TraceEvent]] = {}
    for event in events:
        if event.name in FRAME_EVENT_PRIORITY:
            by_name.setdefault(event.name, []).append(event)
    for name in FRAME_EVENT_PRIORITY:
        frames = by_name.get(name)
        if frames:
            if name == "BeginFrame":
                LOG.warning(
                    "Frame sampling fell back to BeginFrame (vsync) events; "
                    "results may not reflect rendering smoothness"
                )
            return frames
    return []


def calculate_frame_metrics(frame_events: Sequence[TraceEvent]) -> FrameMetrics:
    if len(frame_events) < 2:
        return FrameMetrics(avg=0.0, frame_count=len(frame_events), tracking_duration_ms=0)
    timestamps = sorted(event.ts for event in frame_events)
    # Trace timestamps are microseconds.
    duration_ms = (timestamps[-1] - timestamps[0]) / 1000
    if duration_ms < MIN_RELIABLE_DURATION_MS:
        LOG.warning("Frame sampling window too short (%dms) for reliable metrics", round_to(duration_ms, 0))
    seconds = duration_ms / 1000
    avg = (len(timestamps) - 1) / seconds if seconds > 0 else 0.0
    return FrameMetrics(
        avg=round_to(avg),
        frame_count=len(timestamps),
        tracking_duration_ms=round_to(duration_ms, 0),
    )


async def _start_frame_tracing(session: Session) -> None:
    await start_tracing(session, TRACING_CATEGORIES, f"sampling-frequency={SAMPLING_FREQUENCY_HZ}")


class FrameSamplerHandle(ResettableProbeHandle[FrameMetrics]):
    def __init__(self, session: Session, page: Page) -> None:
        super().__init__(ProbeKind.FRAME_SAMPLER, session, page)

    async def _finalize(self) -> FrameMetrics:
        raw = await collect_trace_data(self.session, COLLECTION_TIMEOUT_SECONDS)
        frames = extract_frame_events([parse_trace_event(item) for item in raw])
        return calculate_frame_metrics(frames)

    async def _restart(self) -> None:
        await collect_trace_data(self.session, COLLECTION_TIMEOUT_SECONDS)
        await _start_frame_tracing(self.session)


class FrameSamplerProbe(Probe):
    kind = ProbeKind.FRAME_SAMPLER

    async def start(self, page: Page, config: Any = None) -> Optional[FrameSamplerHandle]:
        session = await self._open_session(page, _start_frame_tracing)
        if session is None:
            return None
        LOG.debug("Frame sampling started")
        return FrameSamplerHandle(session, page)
