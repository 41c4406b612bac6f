"""
Structured logging for the site extractor.

Every API request gets a short trace id plus bound request context (the
endpoint and target URL), so the fetch, assembly, discovery and enrichment
events of one request can be grepped together.
"""
import logging
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog

from site_extractor.config import config

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")


def new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


def get_trace_id() -> str:
    """Current trace id; empty outside a request."""
    return trace_id_var.get()


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Set the trace id for the current context and return it."""
    value = trace_id or new_trace_id()
    trace_id_var.set(value)
    return value


def start_request(endpoint: str, **context: Any) -> str:
    """
    Begin a request scope: fresh trace id, and request context bound for
    every log line emitted until the next request in this context.
    """
    trace_id = set_trace_id()
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(endpoint=endpoint, **context)
    return trace_id


def add_trace_id(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Processor stamping the trace id on entries emitted inside a request."""
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id
    return event_dict


def configure_logging():
    processors = [
        structlog.contextvars.merge_contextvars,
        add_trace_id,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.LOG_FORMAT == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class LayerLogger:
    """
    Logger bound to one component (extractor, adapter or layer).

    Each helper emits a fixed event name, so decisions, fallbacks and fetch
    outcomes can be filtered across components.
    """

    def __init__(self, layer_name: str):
        self.layer_name = layer_name
        self.logger = get_logger(layer_name)

    def log_decision(self, decision: str, reason: str, url: Optional[str] = None, **extra):
        """Page type verdicts, fetch strategy choices, selector acceptance."""
        self.logger.info(
            "decision_made",
            layer=self.layer_name,
            decision=decision,
            reason=reason,
            url=url,
            **extra
        )

    def log_action(self, action: str, status: str = "started", **extra):
        self.logger.info(
            f"action_{status}",
            layer=self.layer_name,
            action=action,
            **extra
        )

    def log_fallback(self, from_source: str, to_source: str, reason: str, **extra):
        """A source (selector layer, sample URL, fetch attempt) was given up for the next one."""
        self.logger.warning(
            "fallback_triggered",
            layer=self.layer_name,
            from_source=from_source,
            to_source=to_source,
            reason=reason,
            **extra
        )

    def log_error(self, error: str, error_type: str = "unknown", **extra):
        """A recoverable failure; error_type is one of the ErrorType values."""
        self.logger.error(
            "error_occurred",
            layer=self.layer_name,
            error=error,
            error_type=error_type,
            **extra
        )

    def log_fetch(self, url: str, method: str, status_code: Optional[int], result: str, **extra):
        """Outcome of a light or headless fetch; anything but "ok" is a warning."""
        log = self.logger.info if result == "ok" else self.logger.warning
        log(
            "page_fetch",
            layer=self.layer_name,
            url=url,
            method=method,
            status_code=status_code,
            result=result,
            **extra
        )

    def log_record_summary(
        self,
        url: str,
        page_type: str,
        fields_present: List[str],
        fields_missing: List[str],
        **extra
    ):
        self.logger.info(
            "record_assembled",
            layer=self.layer_name,
            url=url,
            page_type=page_type,
            field_count=len(fields_present),
            fields_present=fields_present,
            fields_missing=fields_missing,
            **extra
        )


configure_logging()
