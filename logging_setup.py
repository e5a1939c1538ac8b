"""
Shared logging infrastructure for the voice editor.

Used by the conversation core (voice_loop), the LiveKit worker and the
control API so that every log line is a single JSON object that can be
correlated with the structured events in observability/.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Conversation ID correlation across all logs
- Component tagging
- PII-aware debug logging (transcripts and document text are PII)
"""

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """System components for log tagging."""
    ORCHESTRATOR = "orchestrator"
    SEGMENTER = "segmenter"
    CAPTURE = "capture"
    PLAYBACK = "playback"
    ACTIVATION = "activation"
    AGENT_CLIENT = "agent_client"
    DISPATCHER = "dispatcher"
    DOCUMENT_STORE = "document_store"
    WORKER = "worker"
    CONTROL_API = "control_api"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "exc_info", "exc_text", "stack_info",
    "taskName", "component", "conversation_id", "message",
])


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Each line carries:
    - ISO8601 timestamp
    - severity
    - component
    - conversation_id (if the logger is bound to one)
    - message and any additional keyword fields

    latency_ms values are suffixed with "ms" (and coloured orange on a
    terminal) to make turn timings easy to spot in a console.
    """

    ORANGE = '\033[38;5;208m'
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        if hasattr(record, "conversation_id"):
            log_data["conversation_id"] = record.conversation_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        json_output = json.dumps(log_data, ensure_ascii=False, default=str)

        if isinstance(log_data.get("latency_ms"), int):
            json_output = self._decorate_latency(json_output)

        return json_output

    def _decorate_latency(self, json_output: str) -> str:
        no_color = os.environ.get("NO_COLOR", "").lower() in ("1", "true", "yes")
        try:
            is_tty = sys.stdout.isatty()
        except (AttributeError, OSError):
            is_tty = False
        force_color = os.environ.get("FORCE_COLOR", "").lower() in ("1", "true", "yes")

        if (is_tty or force_color) and not no_color:
            replacement = rf'\1{self.ORANGE}\2 ms{self.RESET}'
        else:
            replacement = r'\1\2 ms'
        return re.sub(r'("latency_ms"\s*:\s*)(\d+)', replacement, json_output)


class StructuredLogger:
    """
    Wrapper around Python's logging with structured JSON output.

    Usage:
        logger = StructuredLogger(Component.ORCHESTRATOR, conversation_id="room-1")
        logger.info("Turn dispatched", turn_id="turn_3")
        logger.debug_pii("Utterance finalized", transcript="xin chào")
    """

    def __init__(
        self,
        component: str | Component,
        conversation_id: Optional[str] = None,
        logger_name: Optional[str] = None
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.conversation_id = conversation_id
        self.logger = logging.getLogger(logger_name or f"voice_editor.{self.component}")

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {
            "component": self.component,
            **kwargs
        }

        if self.conversation_id:
            extra["conversation_id"] = self.conversation_id

        if pii:
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """
        Log an error message with exception info.

        Mirrors logging.Logger.exception so LiveKit internals can call
        logger.exception(...) on this wrapper.
        """
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """
        Log debug with PII fields explicitly marked.

        Example:
            logger.debug_pii("Utterance finalized", transcript="thêm dòng mới")
        """
        self._log(logging.DEBUG, message, pii=pii_fields)

    def with_conversation(self, conversation_id: str) -> "StructuredLogger":
        """Create a new logger instance bound to a conversation."""
        return StructuredLogger(
            self.component,
            conversation_id=conversation_id,
            logger_name=self.logger.name
        )


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    """
    Configure the root logger. Call once at process startup.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSON formatter (True) or plain text (False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)

    if use_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(component)s - %(message)s")

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)


def get_logger(
    component: str | Component,
    conversation_id: Optional[str] = None
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.DISPATCHER, conversation_id="room-1")
        logger.info("Action applied", action="add_to_page")
    """
    return StructuredLogger(component, conversation_id=conversation_id)
