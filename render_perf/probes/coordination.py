from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from .base import ResettableProbeHandle


class CoordinationTable:
    """Resettable handles the workload may restart mid-test.

    Mutated only between awaited steps on the runner's event loop.
    """

    def __init__(self) -> None:
        self._handles: Dict[str, ResettableProbeHandle] = {}

    def set_handle(self, name: str, handle: Optional[ResettableProbeHandle]) -> None:
        if handle is None:
            self._handles.pop(name, None)
        else:
            self._handles[name] = handle

    def get_handle(self, name: str) -> Optional[ResettableProbeHandle]:
        return self._handles.get(name)

    async def reset_if_active(self, name: str) -> bool:
        handle = self._handles.get(name)
        if handle is None or not handle.active:
            return False
        await handle.reset()
        return True

    async def reset_all_active(self) -> List[str]:
        active = [(name, handle) for name, handle in self._handles.items() if handle.active]
        await asyncio.gather(*(handle.reset() for _, handle in active))
        return [name for name, _ in active]

    def clear(self) -> None:
        self._handles.clear()

    def __len__(self) -> int:
        return len(self._handles)
