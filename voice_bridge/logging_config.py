"""
Structured Logging Configuration

This module configures structured logging using the 'structlog' library.
It sets up processors for adding timestamps, log levels, correlation IDs,
secret and PII redaction, and renders logs in JSON (default) or colorized
console format based on env.
"""

import os
import logging
import sys
import contextvars
import re
import uuid

import structlog
from structlog import dev as structlog_dev

# Context variable for correlation ID (one per webhook request)
correlation_id_var = contextvars.ContextVar('correlation_id', default=None)

SERVICE_NAME = 'voice-bridge'

_EMAIL_RE = re.compile(r'[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}', re.IGNORECASE)
# E.164 or general phone-ish sequences
_PHONE_RE = re.compile(r'(\+?\d[\d\-.\s()]{6,}\d)')

# Log fields that may carry caller-provided text
PII_FIELDS = {
    'body', 'payload', 'params', 'utterance', 'prompt', 'text',
    'preview', 'text_preview', 'body_preview', 'response', 'query',
}


def get_correlation_id():
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(value=None):
    """Set the correlation ID and return it."""
    if value is None:
        value = str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


def add_correlation_id(logger, method_name, event_dict):
    """Add correlation ID to the log record."""
    correlation_id = get_correlation_id()
    if correlation_id:
        event_dict['correlation_id'] = correlation_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    """Add service context to the log record."""
    event_dict['service'] = SERVICE_NAME
    component = event_dict.get('logger')
    if not component:
        component = getattr(getattr(logger, 'logger', None), 'name', None) or getattr(logger, 'name', 'unknown')
    event_dict['component'] = component
    return event_dict


def redact_pii(value):
    """
    Redact email-like and phone-like substrings.

    Accepts a string, dict or list and returns a redacted copy. Other
    types are returned unchanged.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return _PHONE_RE.sub('[phone]', _EMAIL_RE.sub('[email]', value))
    if isinstance(value, dict):
        return {k: redact_pii(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_pii(v) for v in value]
    return value


def redact_pii_fields(logger, method_name, event_dict):
    """Redact PII in body-carrying fields before anything is rendered."""
    for key in PII_FIELDS.intersection(event_dict.keys()):
        event_dict[key] = redact_pii(event_dict[key])
    return event_dict


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact sensitive information from log events.

    Prevents API keys, auth tokens, passwords and signatures from appearing
    in logs. Values are replaced with '***REDACTED***' while preserving log
    context.
    """
    SENSITIVE_KEYS = {
        'api_key', 'apikey', 'api-key', 'api_keys',
        'token', 'access_token', 'auth_token', 'bearer',
        'password', 'passwd', 'pwd', 'pass',
        'authorization', 'auth',
        'credential', 'credentials', 'secret', 'secrets',
        'signature', 'x-twilio-signature',
        'xi-api-key',
    }

    def redact_value(value):
        """Redact a sensitive value, preserving structure for debugging."""
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            if not value:
                return ''
            # Show first 2 chars for debugging (e.g., "sk" for OpenAI keys)
            if len(value) > 4:
                return f"{value[:2]}***REDACTED***"
            return "***REDACTED***"
        if isinstance(value, (list, tuple)):
            return [redact_value(v) for v in value]
        return "***REDACTED***"

    def is_sensitive(key):
        key_normalized = str(key).lower().replace('_', '').replace('-', '')
        for pattern in SENSITIVE_KEYS:
            pattern_normalized = pattern.replace('_', '').replace('-', '')
            # Exact or suffix match only; "passthrough" must not match "pass"
            if key_normalized == pattern_normalized or key_normalized.endswith(pattern_normalized):
                return True
        return False

    def sanitize_dict(d):
        sanitized = {}
        for key, value in d.items():
            if is_sensitive(key):
                sanitized[key] = redact_value(value)
            elif isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
            elif isinstance(value, (list, tuple)):
                sanitized[key] = [sanitize_dict(v) if isinstance(v, dict) else v for v in value]
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def configure_logging(log_level="INFO"):
    """
    Set up structured logging.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto, debug only)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level.upper()
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    log_level_upper = log_level.upper() if isinstance(log_level, str) else logging.getLevelName(log_level)
    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        show_tracebacks = True
    elif tb_mode == "never":
        show_tracebacks = False
    else:
        show_tracebacks = (log_level_upper == "DEBUG")

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        """Remove exc_info from event when tracebacks are disabled by policy."""
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    if isinstance(log_level, str):
        level_value = getattr(logging, log_level_upper, logging.INFO)
    else:
        level_value = int(log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            redact_pii_fields,
            sanitize_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_correlation_id,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog_dev.ConsoleRenderer(colors=log_color) if log_format == "console" else structlog.processors.JSONRenderer()

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    # Reduce noisy third-party loggers
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
