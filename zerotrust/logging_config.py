"""
Logging configuration for zerotrust.

Structured JSON logging for the audit trail. Rejection diagnostics (the
failing field, the expected vs. received key, the replay delta) are written
here and never returned to callers.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class AuditLogger:
    """
    Logger for verification and security events.

    Every layer outcome of the verification pipeline, every login attempt
    and every key-cache change goes through here.
    """

    def __init__(self, name: str = "zerotrust.audit"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        extra = {
            "event_type": event_type,
            "request_id": request_id_var.get(),
            **kwargs
        }

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def layer_passed(self, layer: str, username: Optional[str] = None) -> None:
        self._log(
            logging.DEBUG,
            "LAYER_PASSED",
            layer=layer,
            username=username,
            message=f"{layer} passed"
        )

    def verification_failed(
        self,
        layer: Optional[str],
        code: str,
        detail: str,
        passed_layers: Optional[List[str]] = None,
        username: Optional[str] = None,
    ) -> None:
        """Log a rejection with its internal detail."""
        self._log(
            logging.WARNING,
            "VERIFICATION_FAILED",
            layer=layer,
            code=code,
            detail=detail,
            passed_layers=passed_layers or [],
            username=username,
            message=f"Rejected at {layer or 'pipeline'}: {code}"
        )

    def verification_accepted(self, username: str, user_id: Any, passed_layers: List[str]) -> None:
        self._log(
            logging.INFO,
            "VERIFICATION_ACCEPTED",
            username=username,
            user_id=user_id,
            passed_layers=passed_layers,
            message=f"Request accepted for {username}"
        )

    def key_rotation_detected(self, username: str, snapshot_key: str, current_key: str) -> None:
        """Log a credential presented after its identity's key changed."""
        self._log(
            logging.WARNING,
            "KEY_ROTATION_DETECTED",
            username=username,
            snapshot_key=snapshot_key,
            current_key=current_key,
            message=f"Public key rotated for {username}"
        )

    def cache_event(self, action: str, username: Optional[str] = None, **details) -> None:
        self._log(
            logging.DEBUG,
            "CACHE_EVENT",
            action=action,
            username=username,
            **details,
            message=f"Key cache {action}" + (f" for {username}" if username else "")
        )

    def login_attempt(self, username: str, success: bool, reason: Optional[str] = None) -> None:
        level = logging.INFO if success else logging.WARNING
        self._log(
            level,
            "LOGIN_ATTEMPT",
            username=username,
            success=success,
            reason=reason,
            message=f"Login {'succeeded' if success else 'failed'} for {username}"
        )

    def security_event(
        self,
        event: str,
        severity: str = "medium",
        **details
    ) -> None:
        """Log a security-relevant event."""
        level = {
            "low": logging.INFO,
            "medium": logging.WARNING,
            "high": logging.ERROR,
            "critical": logging.CRITICAL
        }.get(severity, logging.WARNING)

        self._log(
            level,
            "SECURITY_EVENT",
            security_event=event,
            severity=severity,
            **details,
            message=f"Security event: {event}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Args:
        request_id: Request ID to set, or None to generate one

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


# Global audit logger instance
audit_log = AuditLogger()
