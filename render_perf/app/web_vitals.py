"""Page-side web-vitals collection through ``PerformanceObserver``."""
from __future__ import annotations

import logging
from typing import Optional

from ..domain.measurements import WebVitals
from ..ports.session import Page

LOG = logging.getLogger("render_perf.web_vitals")

STORE_KEY = "__WEB_VITALS__"

SETUP_SCRIPT = f"""(() => {{
  const existing = window.{STORE_KEY};
  if (existing && existing.initialized) {{
    return;
  }}
  const store = {{ lcp: null, inp: null, cls: 0, ttfb: null, fcp: null, initialized: true }};
  window.{STORE_KEY} = store;
  if (typeof PerformanceObserver === 'undefined') {{
    return;
  }}
  const observe = (options, handler) => {{
    try {{
      new PerformanceObserver((list) => handler(list.getEntries())).observe(options);
      return true;
    }} catch (error) {{
      return false;
    }}
  }};
  const recordInput = (entry) => {{
    const delay = entry.processingStart - entry.startTime;
    if (store.inp === null || delay > store.inp) {{
      store.inp = delay;
    }}
  }};
  observe({{ type: 'largest-contentful-paint', buffered: true }}, (entries) => {{
    if (entries.length > 0) {{
      const last = entries[entries.length - 1];
      store.lcp = last.renderTime || last.loadTime || null;
    }}
  }});
  const firstInput = observe({{ type: 'first-input', buffered: true }}, (entries) => entries.forEach(recordInput));
  if (!firstInput) {{
    observe({{ type: 'event', buffered: true, durationThreshold: 0 }}, (entries) => {{
      for (const entry of entries) {{
        if (['pointerdown', 'keydown', 'click'].includes(entry.name)) {{
          recordInput(entry);
        }}
      }}
    }});
  }}
  observe({{ type: 'layout-shift', buffered: true }}, (entries) => {{
    for (const entry of entries) {{
      if (!entry.hadRecentInput) {{
        store.cls += entry.value;
      }}
    }}
  }});
  observe({{ type: 'paint', buffered: true }}, (entries) => {{
    for (const entry of entries) {{
      if (entry.name === 'first-contentful-paint') {{
        store.fcp = entry.startTime;
      }}
    }}
  }});
  try {{
    const navigation = performance.getEntriesByType('navigation');
    if (navigation.length > 0) {{
      store.ttfb = navigation[0].responseStart;
    }}
  }} catch (error) {{
    // navigation timing unavailable
  }}
}})()"""

IS_INITIALIZED_SCRIPT = f"() => Boolean(window.{STORE_KEY} && window.{STORE_KEY}.initialized)"

CAPTURE_SCRIPT = f"""() => {{
  const store = window.{STORE_KEY};
  if (!store || !store.initialized) {{
    return null;
  }}
  return {{
    lcp: store.lcp,
    inp: store.inp,
    cls: store.cls > 0 ? store.cls : null,
    ttfb: store.ttfb,
    fcp: store.fcp,
  }};
}}"""

RESET_SCRIPT = f"""() => {{
  const store = window.{STORE_KEY};
  if (store) {{
    store.lcp = null;
    store.inp = null;
    store.cls = 0;
    store.ttfb = null;
    store.fcp = null;
  }}
}}"""


async def inject_observer(page: Page) -> None:
    """Registers the observers to run before any page script on the next navigation."""
    await page.add_init_script(SETUP_SCRIPT)
    LOG.debug("web vitals observer injected as init script")


async def ensure_initialized(page: Page) -> None:
    if not await page.evaluate(IS_INITIALIZED_SCRIPT):
        await page.evaluate(SETUP_SCRIPT)
        LOG.debug("web vitals observer injected into the current document")


async def capture_web_vitals(page: Page) -> Optional[WebVitals]:
    await ensure_initialized(page)
    payload = await page.evaluate(CAPTURE_SCRIPT)
    if payload is None:
        return None
    return WebVitals(
        lcp=payload.get("lcp"),
        inp=payload.get("inp"),
        cls=payload.get("cls"),
        ttfb=payload.get("ttfb"),
        fcp=payload.get("fcp"),
    )


async def reset_web_vitals(page: Page) -> None:
    await page.evaluate(RESET_SCRIPT)
    LOG.debug("web vitals reset")
