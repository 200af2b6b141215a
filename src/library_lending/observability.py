"""Logfire observability for the library lending service."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import logfire

from .config import ServerConfig
from .errors import ErrorKind, LendingError

logger = logging.getLogger(__name__)

circulation_events = logfire.metric_counter(
    "library.circulation.events",
    description="Successful lending operations by type",
)

operation_failures = logfire.metric_counter(
    "library.circulation.failures",
    description="Rejected or failed lending operations by error code",
)

operation_duration = logfire.metric_histogram(
    "library.circulation.duration_ms",
    unit="milliseconds",
    description="Lending operation duration, lock wait included",
)

# Rejections are routine; conflicts and outages deserve attention.
_LOG_LEVELS = {
    ErrorKind.NOT_FOUND: logging.INFO,
    ErrorKind.PRECONDITION_FAILED: logging.INFO,
    ErrorKind.CONFLICT: logging.WARNING,
    ErrorKind.TRANSIENT_FAILURE: logging.WARNING,
    ErrorKind.INVARIANT_VIOLATION: logging.ERROR,
}


def initialize_observability(config: ServerConfig) -> None:
    """Configure logfire once at process start."""
    logfire.configure(
        token=config.logfire_token,
        service_name=config.server_name,
        service_version=config.server_version,
        environment="development" if config.is_development else "production",
        send_to_logfire=config.send_to_logfire,
        console=False,
    )
    logger.debug("Observability initialized (send_to_logfire=%s)", config.send_to_logfire)


@contextmanager
def track_operation(operation: str, *, counted: bool = True, **attributes: Any) -> Iterator[Any]:
    """
    Wrap one lending operation in a ``lending.<operation>`` span.

    On success the circulation counter is incremented (unless ``counted`` is
    False, as for reads). Lending errors are logged at a level matching
    their kind, recorded on the span, and re-raised.
    """
    with logfire.span(f"lending.{operation}", operation=operation, **attributes) as span:
        start_time = datetime.now()
        try:
            yield span
        except LendingError as e:
            span.set_attribute("lending.success", False)
            span.set_attribute("lending.error_code", e.code)
            operation_failures.add(1, {"operation": operation, "code": e.code})
            logger.log(
                _LOG_LEVELS[e.kind],
                "%s rejected: %s (%s) %s",
                operation,
                e.code,
                e.message,
                attributes,
            )
            raise
        else:
            span.set_attribute("lending.success", True)
            if counted:
                circulation_events.add(1, {"event_type": operation})
            logger.info("%s succeeded %s", operation, attributes)
        finally:
            operation_duration.record(
                (datetime.now() - start_time).total_seconds() * 1000, {"operation": operation}
            )
