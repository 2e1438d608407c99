from contextlib import contextmanager

from opentelemetry import trace

_tracer = trace.get_tracer(__name__)


@contextmanager
def trace_event(event_name: str, event_id: str, source: str = "storefront"):
    with _tracer.start_as_current_span("conversion_event") as span:
        span.set_attribute("event.id", event_id)
        span.set_attribute("event.name", event_name)
        span.set_attribute("event.source", source)
        yield span


def record_outcome(span, outcome) -> None:
    span.set_attribute("delivery.status", outcome.status.value)
    span.set_attribute("delivery.attempts", outcome.attempts)
    if outcome.trace_id:
        span.set_attribute("delivery.trace_id", outcome.trace_id)
