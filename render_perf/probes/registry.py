"""Probe registry keyed by ``ProbeKind``."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, MutableMapping, Optional, Union

from ..ports.session import Page
from .base import Probe, ProbeHandle, ProbeKind
from .cpu_throttle import CpuThrottleProbe
from .frame_sampler import FrameSamplerProbe
from .heap_sampler import HeapSamplerProbe
from .network_throttle import NetworkThrottleProbe
from .trace_capture import TraceCaptureProbe

LOG = logging.getLogger("render_perf.probes.registry")

ProbeName = Union[ProbeKind, str]


def _kind(name: ProbeName) -> ProbeKind:
    try:
        return ProbeKind(name)
    except ValueError:
        raise KeyError(f'Probe "{name}" is not registered') from None


class ProbeRegistry:
    """Registry of startable probes; one instance is built per process and passed in."""

    def __init__(self) -> None:
        self._probes: Dict[ProbeKind, Probe] = {}

    def register(self, probe: Probe) -> None:
        if probe.kind in self._probes:
            raise ValueError(f'Probe "{probe.kind.value}" is already registered')
        self._probes[probe.kind] = probe

    def get(self, name: ProbeName) -> Optional[Probe]:
        try:
            return self._probes.get(ProbeKind(name))
        except ValueError:
            return None

    def has(self, name: ProbeName) -> bool:
        return self.get(name) is not None

    def names(self) -> List[str]:
        return [kind.value for kind in self._probes]

    async def start_feature(self, name: ProbeName, page: Page, config: Any = None) -> Optional[ProbeHandle]:
        kind = _kind(name)
        probe = self._probes.get(kind)
        if probe is None:
            raise KeyError(f'Probe "{kind.value}" is not registered')
        return await probe.start(page, config)

    async def stop_all(self, handles: MutableMapping[str, ProbeHandle]) -> Dict[str, Any]:
        """Stops every handle concurrently and empties ``handles``.

        A handle whose stop raises is logged and recorded as None; the others
        still stop.
        """
        entries = list(handles.items())
        outcomes = await asyncio.gather(
            *(handle.stop() for _, handle in entries),
            return_exceptions=True,
        )
        results: Dict[str, Any] = {}
        for (name, _), outcome in zip(entries, outcomes):
            if isinstance(outcome, BaseException):
                LOG.warning('Failed to stop probe "%s": %s', name, outcome)
                results[name] = None
            else:
                results[name] = outcome
        handles.clear()
        return results


def default_registry() -> ProbeRegistry:
    registry = ProbeRegistry()
    for probe in (
        CpuThrottleProbe(),
        NetworkThrottleProbe(),
        FrameSamplerProbe(),
        HeapSamplerProbe(),
        TraceCaptureProbe(),
    ):
        registry.register(probe)
    return registry
