"""Per-volume-group IO rate limits, expressed per gigabyte of capacity."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType

log = logging.getLogger(__name__)

_UINT64_MAX = 2**64 - 1
_DIGITS = re.compile(r"[0-9]+")


@dataclass
class IOLimitConfig:
    """Driver settings that control IO throttling of mounted volumes."""

    container_runtime: str = ""
    set_io_limits: bool = False
    riops_limit_per_gb: list[str] | None = None
    wiops_limit_per_gb: list[str] | None = None
    rbps_limit_per_gb: list[str] | None = None
    wbps_limit_per_gb: list[str] | None = None


def _parse_uint(text: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def parse_rate_values(values: Iterable[str] | None) -> dict[str, int]:
    """Turn ``"prefix:rate"`` entries into a mapping of prefix to rate.

    ``None`` yields an empty mapping; a malformed entry raises ``ValueError``.
    """
    rates: dict[str, int] = {}
    if values is None:
        return rates
    for entry in values:
        parts = entry.split(":")
        if len(parts) < 2:
            raise ValueError(f"rate entry {entry!r} is not of the form key:value")
        rates[parts[0]] = _parse_uint(parts[1])
    return rates


class IOLimiter:
    """Holds the IO rate limits; the first configuration wins."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._configured = False
        self._enabled = False
        self._container_runtime = ""
        self._riops: Mapping[str, int] = MappingProxyType({})
        self._wiops: Mapping[str, int] = MappingProxyType({})
        self._rbps: Mapping[str, int] = MappingProxyType({})
        self._wbps: Mapping[str, int] = MappingProxyType({})

    @staticmethod
    def _rates(values: Iterable[str] | None, label: str) -> Mapping[str, int]:
        try:
            return MappingProxyType(parse_rate_values(values))
        except ValueError as exc:
            log.warning("%s limit rates could not be extracted from config: %s", label, exc)
            return MappingProxyType({})

    def configure(self, config: IOLimitConfig) -> None:
        """Load rates from ``config`` unless already configured."""
        with self._lock:
            if self._configured:
                return
            self._enabled = True
            self._container_runtime = config.container_runtime
            self._riops = self._rates(config.riops_limit_per_gb, "Read IOPS")
            self._wiops = self._rates(config.wiops_limit_per_gb, "Write IOPS")
            self._rbps = self._rates(config.rbps_limit_per_gb, "Read BPS")
            self._wbps = self._rates(config.wbps_limit_per_gb, "Write BPS")
            self._configured = True

    def is_configured(self) -> bool:
        with self._lock:
            return self._configured

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._enabled

    @property
    def container_runtime(self) -> str:
        with self._lock:
            return self._container_runtime

    def _rate_for(self, vg_name: str, rates: Mapping[str, int]) -> int:
        with self._lock:
            if vg_name in rates:
                return rates[vg_name]
            return next(
                (rate for prefix, rate in rates.items() if vg_name.startswith(prefix)),
                0,
            )

    def riops_per_gb(self, vg_name: str) -> int:
        return self._rate_for(vg_name, self._riops)

    def wiops_per_gb(self, vg_name: str) -> int:
        return self._rate_for(vg_name, self._wiops)

    def rbps_per_gb(self, vg_name: str) -> int:
        return self._rate_for(vg_name, self._rbps)

    def wbps_per_gb(self, vg_name: str) -> int:
        return self._rate_for(vg_name, self._wbps)