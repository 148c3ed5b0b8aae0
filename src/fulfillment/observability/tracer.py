"""
Tracer protocol and the three tracers the library ships.

Every store and service takes an optional ``tracer`` argument and falls
back to ``create_tracer(__name__, enable_tracing)``. Code under test can
pass a ``MockTracer`` and assert on the spans it opened.

Example:
    >>> from fulfillment.observability import create_tracer
    >>>
    >>> class Warehouse:
    ...     def __init__(self, tracer: Tracer | None = None, enable_tracing: bool = True):
    ...         self._tracer = tracer or create_tracer(__name__, enable_tracing)
    ...
    ...     async def pick(self, sku: str) -> None:
    ...         with self._tracer.span("fulfillment.warehouse.pick", {"sku": sku}):
    ...             ...
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from fulfillment.observability.tracing import should_trace


class SpanKindEnum(Enum):
    """
    Role of a span, mapped onto OpenTelemetry's SpanKind.

    INTERNAL covers ledger transactions and orchestration steps; CLIENT
    marks calls out to the payment gateway.
    """

    INTERNAL = "internal"
    CLIENT = "client"


@runtime_checkable
class Tracer(Protocol):
    """Anything that can open a span as a context manager."""

    @property
    def enabled(self) -> bool:
        """True if spans opened by this tracer are recorded somewhere."""
        ...

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open an INTERNAL span named ``name``."""
        ...

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """Open a span with an explicit kind."""
        ...


class NullTracer:
    """Tracer used when tracing is off or OpenTelemetry is missing."""

    @property
    def enabled(self) -> bool:
        return False

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace.get_tracer``.

    Spans are started as the current span, so ledger commit spans nest
    under the orchestration span that triggered them.

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    @property
    def enabled(self) -> bool:
        return True

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        from opentelemetry.trace import SpanKind

        otel_kind = SpanKind.CLIENT if kind is SpanKindEnum.CLIENT else SpanKind.INTERNAL
        return self._tracer.start_as_current_span(
            name,
            kind=otel_kind,
            attributes=attributes or {},
        )


class MockTracer:
    """
    Tracer that records every span it opens.

    ``spans`` holds ``(name, attributes)`` pairs in opening order;
    ``client_spans`` lists the names of spans opened with CLIENT kind.

    Example:
        >>> tracer = MockTracer()
        >>> with tracer.span("fulfillment.orders.pay", {"k": "v"}):
        ...     pass
        >>> tracer.span_names
        ['fulfillment.orders.pay']
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []
        self.client_spans: list[str] = []

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()
        self.client_spans.clear()

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[None]:
        return self.span_with_kind(name, SpanKindEnum.INTERNAL, attributes)

    @contextlib.contextmanager
    def span_with_kind(
        self,
        name: str,
        kind: SpanKindEnum = SpanKindEnum.INTERNAL,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        if kind is SpanKindEnum.CLIENT:
            self.client_spans.append(name)
        yield None


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """Return an OpenTelemetryTracer when enabled and installed, else a NullTracer."""
    if should_trace(enable_tracing):
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "SpanKindEnum",
    "create_tracer",
]
