"""Tracing spans, tracers and hash-based trace sampling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def _fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


@runtime_checkable
class Span(Protocol):
    """A unit of traced work."""

    def set_attribute(self, key: str, value: str) -> None:
        """Attach a string attribute to the span."""

    def record_error(self, err: BaseException | None) -> None:
        """Record an error against the span."""

    def end(self) -> None:
        """Finish the span."""


@runtime_checkable
class Tracer(Protocol):
    """Creates spans."""

    def start_span(self, name: str) -> Span:
        """Start a span with the given name."""


@runtime_checkable
class Sampler(Protocol):
    """Decides whether a trace is recorded."""

    def sampled(self, trace_id: str) -> bool:
        """Return True when the trace should be sampled."""


@dataclass
class NoopSpan:
    """A span that keeps no data; it only counts what it discarded."""

    discarded: int = 0
    ended: bool = False

    def set_attribute(self, key: str, value: str) -> None:
        """Discard the attribute."""
        self.discarded += 1

    def record_error(self, err: BaseException | None) -> None:
        """Discard the error."""
        self.discarded += 1

    def end(self) -> None:
        """Mark the span finished."""
        self.ended = True


@dataclass(frozen=True)
class NoopTracer:
    """A tracer whose spans record nothing."""

    def start_span(self, name: str) -> NoopSpan:
        return NoopSpan()


@dataclass(frozen=True)
class HashSampler:
    """Samples one in ``rate`` traces, chosen by an FNV-1a hash of the trace id."""

    rate: int = 100

    def sampled(self, trace_id: str) -> bool:
        if not trace_id or self.rate <= 0:
            return False
        return _fnv1a_32(trace_id.encode("utf-8")) % self.rate == 0