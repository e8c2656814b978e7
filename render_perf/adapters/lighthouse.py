from __future__ import annotations

import asyncio
import json
import logging
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from ..domain.measurements import AuditScores, round_to
from ..ports.audit import AuditExecutionError, AuditRequest, AuditRunnerPort

LOG = logging.getLogger("render_perf.adapters.lighthouse")

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_CHROME_FLAGS = ("--headless", "--no-sandbox", "--disable-gpu")

_CATEGORY_FIELDS = {
    "performance": "performance",
    "accessibility": "accessibility",
    "best-practices": "best_practices",
    "seo": "seo",
    "pwa": "pwa",
}


class LighthouseRunner(AuditRunnerPort):
    """Runs the Lighthouse CLI against a URL and reads category scores from its JSON report."""

    def __init__(
        self,
        binary: str = "lighthouse",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        chrome_flags: Sequence[str] = DEFAULT_CHROME_FLAGS,
    ) -> None:
        self.binary = binary
        self.timeout = timeout
        self.chrome_flags = tuple(chrome_flags)
        self.resolved_binary: Optional[str] = None

    async def run(self, request: AuditRequest) -> AuditScores:
        binary = self._ensure_binary()
        LOG.info("Running Lighthouse audit on %s", request.url)
        started = time.monotonic()
        with tempfile.TemporaryDirectory(prefix="lighthouse-") as tmp_dir:
            report_path = Path(tmp_dir) / "report.json"
            command = [binary, *self._build_arguments(request, report_path)]
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
            except asyncio.TimeoutError as exc:
                process.kill()
                await process.wait()
                raise AuditExecutionError(f"Lighthouse audit timed out after {self.timeout * 1000:.0f}ms") from exc
            if process.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                raise AuditExecutionError(f"Lighthouse exited with code {process.returncode}: {message}")
            payload = self._read_report(report_path)

        scores = self._extract_scores(payload, request.url, (time.monotonic() - started) * 1000)
        LOG.info(
            "Lighthouse completed in %.1fs: performance=%s, accessibility=%s",
            scores.audit_duration_ms / 1000,
            "N/A" if scores.performance is None else scores.performance,
            "N/A" if scores.accessibility is None else scores.accessibility,
        )
        return scores

    def _build_arguments(self, request: AuditRequest, report_path: Path) -> List[str]:
        throttling = request.throttling
        arguments = [
            request.url,
            "--output=json",
            f"--output-path={report_path}",
            "--quiet",
            f"--only-categories={','.join(request.categories)}",
            f"--form-factor={request.form_factor}",
            f"--screenEmulation.mobile={'true' if request.form_factor == 'mobile' else 'false'}",
            "--disable-storage-reset",
            f"--throttling.cpuSlowdownMultiplier={throttling.cpu_slowdown_multiplier:g}",
            f"--throttling.requestLatencyMs={throttling.request_latency_ms:g}",
            f"--throttling.rttMs={throttling.rtt_ms:g}",
            f"--throttling.downloadThroughputKbps={throttling.download_throughput_kbps:g}",
            f"--throttling.uploadThroughputKbps={throttling.upload_throughput_kbps:g}",
            f"--chrome-flags={' '.join(self.chrome_flags)}",
        ]
        if request.form_factor == "desktop":
            arguments.append("--preset=desktop")
        if request.skip_audits:
            arguments.append(f"--skip-audits={','.join(request.skip_audits)}")
        return arguments

    @staticmethod
    def _read_report(report_path: Path) -> Mapping[str, Any]:
        try:
            with report_path.open("r", encoding="utf-8") as handle:
                return json.load(handle)
        except OSError as exc:
            raise AuditExecutionError(f"unable to read Lighthouse report: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise AuditExecutionError(f"invalid JSON Lighthouse report: {exc}") from exc

    @staticmethod
    def _extract_scores(payload: Mapping[str, Any], url: str, duration_ms: float) -> AuditScores:
        categories = payload.get("categories")
        if not isinstance(categories, Mapping):
            raise AuditExecutionError("Lighthouse returned no results")
        values = {}
        for category, field_name in _CATEGORY_FIELDS.items():
            entry = categories.get(category)
            score = entry.get("score") if isinstance(entry, Mapping) else None
            values[field_name] = None if score is None else int(round_to(float(score) * 100, 0))
        return AuditScores(
            **values,
            audit_duration_ms=duration_ms,
            url=payload.get("finalDisplayedUrl") or url,
        )

    def _ensure_binary(self) -> str:
        if self.resolved_binary:
            return self.resolved_binary
        found = shutil.which(self.binary)
        if not found:
            raise AuditExecutionError(
                f"{self.binary} is required but not available in PATH (install with: npm install -g lighthouse)"
            )
        self.resolved_binary = found
        return found
