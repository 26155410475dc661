"""Typed runtime settings for the portal client."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping


@dataclass(frozen=True)
class PortalSettings:
    """Settings that persist via ``StorageLocal``.

    Durations are seconds. ``max_retries`` counts total network attempts per call.
    """

    base_url: str = "http://localhost:8080"
    api_key: str = ""
    actor_id: str = "Unknown"
    request_timeout_s: float = 10.0
    cache_ttl_s: float = 300.0
    max_retries: int = 3
    retry_base_s: float = 1.0
    watch_initial_interval_s: float = 2.0
    watch_later_interval_s: float = 5.0
    watch_transition_after_s: float = 20.0
    watch_max_duration_s: float = 60.0

    def __post_init__(self) -> None:
        if not self.base_url.strip():
            raise ValueError("base_url must not be empty")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        for name in (
            "request_timeout_s",
            "watch_initial_interval_s",
            "watch_later_interval_s",
            "watch_max_duration_s",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("cache_ttl_s", "retry_base_s", "watch_transition_after_s"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PortalSettings":
        """Build settings from persisted prefs, ignoring unknown keys.

        Raises:
            ValueError: If a value cannot be coerced to the field's type.
        """
        values: Dict[str, Any] = {}
        for spec in fields(cls):
            if spec.name not in data or data[spec.name] is None:
                continue
            raw = data[spec.name]
            kind = spec.type if isinstance(spec.type, str) else spec.type.__name__
            try:
                if kind == "int":
                    values[spec.name] = int(raw)
                elif kind == "float":
                    values[spec.name] = float(raw)
                else:
                    values[spec.name] = str(raw).strip()
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid value for {spec.name}: {raw!r}") from exc
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["PortalSettings"]
