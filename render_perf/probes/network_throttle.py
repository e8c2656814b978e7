from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from ..domain.errors import ConfigurationError
from ..formatting import format_throughput
from ..ports.session import Page, Session
from .base import LOG, Probe, ProbeHandle, ProbeKind, send_quietly

EMULATE = "Network.emulateNetworkConditions"


@dataclass(frozen=True)
class NetworkConditions:
    """Latency in milliseconds, throughput in bytes per second (``-1`` = unlimited)."""

    latency: float
    download_throughput: float
    upload_throughput: float
    offline: bool = False

    def to_params(self) -> Dict[str, Any]:
        return {
            "offline": self.offline,
            "latency": self.latency,
            "downloadThroughput": self.download_throughput,
            "uploadThroughput": self.upload_throughput,
        }


UNLIMITED = NetworkConditions(latency=0, download_throughput=-1, upload_throughput=-1)

NETWORK_PRESETS: Mapping[str, NetworkConditions] = {
    "slow-3g": NetworkConditions(
        latency=400,
        download_throughput=500 * 1024 / 8,
        upload_throughput=500 * 1024 / 8,
    ),
    "fast-3g": NetworkConditions(
        latency=150,
        download_throughput=1.6 * 1024 * 1024 / 8,
        upload_throughput=750 * 1024 / 8,
    ),
    "slow-4g": NetworkConditions(
        latency=100,
        download_throughput=3 * 1024 * 1024 / 8,
        upload_throughput=1.5 * 1024 * 1024 / 8,
    ),
    "fast-4g": NetworkConditions(
        latency=20,
        download_throughput=10 * 1024 * 1024 / 8,
        upload_throughput=5 * 1024 * 1024 / 8,
    ),
    "offline": NetworkConditions(latency=0, download_throughput=0, upload_throughput=0, offline=True),
}

NetworkSetting = Union[str, NetworkConditions]


def resolve_network_conditions(setting: Union[NetworkSetting, Mapping[str, Any]]) -> NetworkConditions:
    if isinstance(setting, NetworkConditions):
        return setting
    if isinstance(setting, str):
        try:
            return NETWORK_PRESETS[setting]
        except KeyError:
            raise ConfigurationError(
                f"unknown network preset '{setting}' (expected one of {', '.join(NETWORK_PRESETS)})"
            ) from None
    if isinstance(setting, Mapping):
        try:
            return NetworkConditions(
                latency=float(setting.get("latency", 0)),
                download_throughput=float(setting.get("download_throughput", setting.get("downloadThroughput"))),
                upload_throughput=float(setting.get("upload_throughput", setting.get("uploadThroughput"))),
                offline=bool(setting.get("offline", False)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"invalid custom network conditions: {dict(setting)!r}") from exc
    raise ConfigurationError(f"network throttling must be a preset name or conditions, got {setting!r}")


def preset_name(conditions: NetworkConditions) -> Optional[str]:
    for name, preset in NETWORK_PRESETS.items():
        if preset == conditions:
            return name
    return None


def format_network_conditions(conditions: NetworkConditions) -> str:
    if conditions.offline:
        return "offline"
    name = preset_name(conditions)
    prefix = f"{name}: " if name else ""
    return (
        f"{prefix}{conditions.latency:g}ms latency, "
        f"down={format_throughput(conditions.download_throughput)}, "
        f"up={format_throughput(conditions.upload_throughput)}"
    )


class NetworkThrottleHandle(ProbeHandle[None]):
    def __init__(self, session: Session, page: Page, conditions: NetworkConditions) -> None:
        super().__init__(ProbeKind.NETWORK_THROTTLE, session, page)
        self.conditions = conditions

    async def reapply(self) -> bool:
        if not self.active:
            return False
        return await send_quietly(self.session, EMULATE, self.conditions.to_params())

    async def _finalize(self) -> None:
        await send_quietly(self.session, EMULATE, UNLIMITED.to_params())
        return None


class NetworkThrottleProbe(Probe):
    kind = ProbeKind.NETWORK_THROTTLE

    async def start(self, page: Page, config: Optional[NetworkSetting] = None) -> Optional[NetworkThrottleHandle]:
        if config is None:
            return None
        conditions = resolve_network_conditions(config)

        async def configure(session: Session) -> None:
            await session.send(EMULATE, conditions.to_params())

        session = await self._open_session(page, configure)
        if session is None:
            return None
        LOG.info("Network throttling enabled (%s)", format_network_conditions(conditions))
        return NetworkThrottleHandle(session, page, conditions)
