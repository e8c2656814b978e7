"""Operations on the in-page render-instrumentation store.

The store lives on ``window.__RENDER_PERF__`` and is mounted by the page under
test. It records one sample per committed render and keeps running totals per
subject. Everything here talks to it through ``Page.evaluate``.
"""
from __future__ import annotations

import asyncio
import logging
import time

from ..domain.errors import StorePhase, StoreStateError
from ..domain.measurements import StoreSnapshot
from ..ports.session import Page
from .config import DEFAULTS

LOG = logging.getLogger("render_perf.store")

STORE_KEY = "__RENDER_PERF__"

IS_MOUNTED_SCRIPT = f"() => window.{STORE_KEY} !== undefined"

SAMPLE_COUNT_SCRIPT = f"""() => {{
  const store = window.{STORE_KEY};
  return store ? store.samples.length : null;
}}"""

RESET_SCRIPT = f"""() => {{
  const store = window.{STORE_KEY};
  if (!store) {{
    return false;
  }}
  store.reset();
  return true;
}}"""

SNAPSHOT_SCRIPT = f"""() => {{
  const store = window.{STORE_KEY};
  if (!store) {{
    return null;
  }}
  const countPhases = (samples) => {{
    const phases = {{}};
    for (const sample of samples) {{
      phases[sample.phase] = (phases[sample.phase] || 0) + 1;
    }}
    return phases;
  }};
  const subjects = {{}};
  for (const [name, entry] of Object.entries(store.subjects)) {{
    subjects[name] = {{
      duration: entry.totalDuration,
      baseDuration: entry.totalBaseDuration,
      rerenders: entry.renderCount,
      phases: countPhases(entry.samples),
    }};
  }}
  return {{
    sampleCount: store.samples.length,
    totalDuration: store.totalDuration,
    totalBaseDuration: store.totalBaseDuration,
    phases: countPhases(store.samples),
    subjects,
  }};
}}"""


async def wait_for_initialization(
    page: Page,
    timeout_ms: int = DEFAULTS.store.initialization_timeout_ms,
    check_interval_ms: int = DEFAULTS.store.check_interval_ms,
) -> None:
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        if await page.evaluate(IS_MOUNTED_SCRIPT):
            return
        if time.monotonic() >= deadline:
            raise StoreStateError(
                f"Render store not initialized within {timeout_ms}ms. "
                "Ensure the page navigated correctly and instrumentation is mounted.",
                StorePhase.INITIALIZATION,
                {"timeout": timeout_ms},
            )
        await asyncio.sleep(check_interval_ms / 1000)


async def wait_until_stable(
    page: Page,
    stability_period_ms: int = DEFAULTS.store.stability_period_ms,
    check_interval_ms: int = DEFAULTS.store.check_interval_ms,
    max_wait_ms: int = DEFAULTS.store.max_wait_ms,
    require_samples: bool = True,
) -> None:
    """Waits until the store's sample count stops changing.

    The store counts as stable once the count has not moved for
    ``stability_period_ms`` and, when ``require_samples`` is set, at least one
    sample was recorded. A missing store is treated as "not yet stable".
    """
    started = time.monotonic()
    deadline = started + max_wait_ms / 1000
    last_count = None
    last_change = started
    while True:
        count = await page.evaluate(SAMPLE_COUNT_SCRIPT)
        now = time.monotonic()
        if count is not None:
            if count != last_count:
                last_count = count
                last_change = now
            elif (now - last_change) * 1000 >= stability_period_ms and (count > 0 or not require_samples):
                LOG.debug("render store stable at %d samples", count)
                return
        if now >= deadline:
            raise StoreStateError(
                f"Render data did not stabilize within {max_wait_ms}ms. The page may still be updating.",
                StorePhase.STABILIZATION,
                {
                    "maxWaitMs": max_wait_ms,
                    "stabilityPeriodMs": stability_period_ms,
                    "checkIntervalMs": check_interval_ms,
                    "lastSampleCount": last_count,
                },
            )
        await asyncio.sleep(check_interval_ms / 1000)


async def reset_store(page: Page) -> None:
    if not await page.evaluate(RESET_SCRIPT):
        raise StoreStateError(
            "Cannot reset render store: store not available. Ensure instrumentation is mounted and the page has loaded.",
            StorePhase.VALIDATION,
            {"action": "reset"},
        )


async def capture_snapshot(page: Page) -> StoreSnapshot:
    payload = await page.evaluate(SNAPSHOT_SCRIPT)
    return StoreSnapshot.from_payload(payload)
