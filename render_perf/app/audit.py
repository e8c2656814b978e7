from __future__ import annotations

from typing import Optional

from ..ports.audit import AuditRequest, AuditThrottling
from ..probes.network_throttle import NetworkConditions
from .config import ResolvedConfig


def _kbps(bytes_per_second: float) -> float:
    return bytes_per_second * 8 / 1024


def build_audit_throttling(throttle_rate: float, network: Optional[NetworkConditions]) -> AuditThrottling:
    if network is None:
        return AuditThrottling(cpu_slowdown_multiplier=throttle_rate)
    return AuditThrottling(
        cpu_slowdown_multiplier=throttle_rate,
        request_latency_ms=network.latency,
        rtt_ms=network.latency,
        download_throughput_kbps=_kbps(network.download_throughput),
        upload_throughput_kbps=_kbps(network.upload_throughput),
    )


def build_audit_request(url: str, config: ResolvedConfig) -> AuditRequest:
    return AuditRequest(
        url=url,
        categories=config.audit.categories,
        form_factor=config.audit.form_factor,
        skip_audits=list(config.audit.skip_audits),
        throttling=build_audit_throttling(config.throttle_rate, config.network),
    )
