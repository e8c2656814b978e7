"""Timeline tracing over a debug session."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..domain.errors import ProbeTimeoutError
from ..ports.session import Session


@dataclass(frozen=True)
class TraceEvent:
    name: str
    cat: str
    ph: str
    ts: float
    pid: int
    tid: int
    dur: Optional[float] = None
    args: Dict[str, Any] = field(default_factory=dict)


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def parse_trace_event(raw: Mapping[str, Any]) -> TraceEvent:
    dur = raw.get("dur")
    return TraceEvent(
        name=str(raw.get("name") or ""),
        cat=str(raw.get("cat") or ""),
        ph=str(raw.get("ph") or ""),
        ts=_as_number(raw.get("ts")),
        pid=int(_as_number(raw.get("pid"))),
        tid=int(_as_number(raw.get("tid"))),
        dur=None if dur is None else _as_number(dur),
        args=dict(raw.get("args") or {}),
    )


async def start_tracing(session: Session, categories: str, options: str = "") -> None:
    params: Dict[str, Any] = {"categories": categories}
    if options:
        params["options"] = options
    await session.send("Tracing.start", params)


async def collect_trace_data(session: Session, timeout: float) -> List[Dict[str, Any]]:
    """Ends tracing and returns the raw events delivered before completion.

    Raises ProbeTimeoutError when no completion event arrives within ``timeout``
    seconds.
    """
    loop = asyncio.get_running_loop()
    completed: asyncio.Future = loop.create_future()
    events: List[Dict[str, Any]] = []

    def on_data(params: Dict[str, Any]) -> None:
        events.extend(params.get("value") or [])

    def on_complete(params: Dict[str, Any]) -> None:
        if not completed.done():
            completed.set_result(None)

    session.on("Tracing.dataCollected", on_data)
    session.once("Tracing.tracingComplete", on_complete)
    try:
        await session.send("Tracing.end")
        await asyncio.wait_for(completed, timeout)
    except asyncio.TimeoutError as exc:
        raise ProbeTimeoutError(f"Trace data collection timed out after {timeout * 1000:.0f}ms") from exc
    finally:
        session.off("Tracing.dataCollected", on_data)
        session.off("Tracing.tracingComplete", on_complete)
    return events
