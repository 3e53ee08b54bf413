"""Request, response, rule and event models."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Union

KEY_SEPARATOR = "\x1f"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class CheckLimitRequest:
    """A single rate limit decision request."""

    trace_id: str = ""
    tenant_id: str = ""
    user_id: str = ""
    resource: str = ""
    cost: int = 0


@dataclass
class CheckLimitResponse:
    """The outcome of a rate limit decision."""

    allowed: bool = False
    remaining: int = 0
    limit: int = 0
    reset_after: timedelta = timedelta(0)
    retry_after: timedelta = timedelta(0)
    error_code: str = ""

    def reset(self) -> None:
        """Return every field to its default."""
        self.allowed = False
        self.remaining = 0
        self.limit = 0
        self.reset_after = timedelta(0)
        self.retry_after = timedelta(0)
        self.error_code = ""


@dataclass
class Rule:
    """A tenant's rate limit configuration for one resource."""

    tenant_id: str = ""
    resource: str = ""
    algorithm: str = ""
    limit: int = 0
    window: timedelta = timedelta(0)
    burst_size: int = 0
    version: int = 0
    updated_at: datetime | None = None


@dataclass
class CreateRuleRequest:
    """Intent to create a rule."""

    tenant_id: str = ""
    resource: str = ""
    algorithm: str = ""
    limit: int = 0
    window: timedelta = timedelta(0)
    burst_size: int = 0
    idempotency_key: str = ""


@dataclass
class UpdateRuleRequest:
    """Intent to update a rule at a known version."""

    tenant_id: str = ""
    resource: str = ""
    algorithm: str = ""
    limit: int = 0
    window: timedelta = timedelta(0)
    burst_size: int = 0
    expected_version: int = 0


@dataclass
class Decision:
    """An evaluated rate limit outcome."""

    allowed: bool = False
    remaining: int = 0
    limit: int = 0
    reset_after: timedelta = timedelta(0)
    retry_after: timedelta = timedelta(0)


@dataclass(frozen=True)
class RuleParams:
    """Limiter parameters derived from a rule."""

    limit: int = 0
    window: timedelta = timedelta(0)
    burst: int = 0
    version: int = 0


_TIME_PATTERN = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _format_time(value: datetime) -> str:
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    fraction = f"{value.microsecond:06d}".rstrip("0")
    if fraction:
        text += "." + fraction
    offset = value.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _parse_time(text: str) -> datetime:
    match = _TIME_PATTERN.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction = match.group(7) or ""
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    zone = match.group(8)
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if zone[0] == "+" else -1
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)


def _string_field(obj: dict[str, Any], name: str) -> str:
    value = obj.get(name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string")
    return value


def _int_field(obj: dict[str, Any], name: str) -> int:
    value = obj.get(name)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {name!r} must be an integer")
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"field {name!r} is out of range")
    return value


@dataclass
class InvalidationEvent:
    """A cache invalidation broadcast for one rule."""

    tenant_id: str = ""
    resource: str = ""
    action: str = ""
    version: int = 0
    timestamp: datetime = _ZERO_TIME

    def to_json(self) -> bytes:
        """Serialise to compact JSON bytes."""
        payload = {
            "tenant_id": self.tenant_id,
            "resource": self.resource,
            "action": self.action,
            "version": self.version,
            "timestamp": _format_time(self.timestamp),
        }
        text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        for char, escape in _HTML_ESCAPES.items():
            text = text.replace(char, escape)
        return text.encode("utf-8")

    @classmethod
    def from_json(cls, data: Union[bytes, bytearray, str]) -> InvalidationEvent:
        """Parse JSON into an event; missing fields take their defaults.

        Raises ValueError on malformed input.
        """
        raw = json.loads(data)
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise ValueError("invalidation event must be a JSON object")
        stamp = raw.get("timestamp")
        if stamp is None:
            timestamp = _ZERO_TIME
        elif isinstance(stamp, str):
            timestamp = _parse_time(stamp)
        else:
            raise ValueError("field 'timestamp' must be a string")
        return cls(
            tenant_id=_string_field(raw, "tenant_id"),
            resource=_string_field(raw, "resource"),
            action=_string_field(raw, "action"),
            version=_int_field(raw, "version"),
            timestamp=timestamp,
        )


def marshal_invalidation_event(event: InvalidationEvent) -> bytes:
    """Serialise an invalidation event."""
    return event.to_json()


def unmarshal_invalidation_event(data: Union[bytes, bytearray, str]) -> InvalidationEvent:
    """Deserialise an invalidation event."""
    return InvalidationEvent.from_json(data)


def limiter_pool_key(tenant_id: str, resource: str) -> str:
    """Build the map key for a tenant/resource limiter."""
    return tenant_id + KEY_SEPARATOR + resource