"""
Centralized Logging and Security Filtering
==========================================

This module provides the logging setup for Model Kombat, with a heavy emphasis
on keeping credentials out of log output. OpenRouter API keys pass through the
configuration core constantly (entry, verification, obfuscated storage), so every
handler installed here carries a redaction filter.

Key Features:
-------------
- Sensitive Data Masking: Automatic redaction of API keys, passwords, and
  tokens using regex and recursive dictionary filtering.
- API Instrumentation: Helpers for logging REST requests/responses with
  timing and status tracking.
- Contextual Logging: Timestamps, module origin, and line numbers.

Author: Model Kombat Project
"""

import json
import logging
import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_LOG_DIR = Path.cwd() / "logs"
LOG_FILE_NAME = "modelkombat.log"

# Sensitive field patterns to mask
SENSITIVE_FIELDS = {
    'password', 'passwd', 'pwd', 'secret', 'token', 'api_key',
    'apikey', 'auth', 'authorization', 'credential', 'credentials'
}

# Regex patterns for sensitive data in strings
SENSITIVE_PATTERNS = [
    (re.compile(r'(sk-or-[a-zA-Z0-9\-_]{16,})'), '***'),  # OpenRouter keys (sk-or-v1-...)
    (re.compile(r'(sk-[a-zA-Z0-9]{20,})'), '***'),  # API keys starting with sk-
    (re.compile(r'(Bearer\s+[a-zA-Z0-9\-._~+/]+=*)'), 'Bearer ***'),  # Bearer tokens
    (re.compile(r'([a-zA-Z0-9]{32,})'), lambda m: f"***{m.group(1)[-4:]}"),  # Long alphanumeric (likely keys)
]


def _mask_string(text: str) -> str:
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SensitiveDataFilter(logging.Filter):
    """
    Filtering hook to intercept and redact sensitive information.

    Attached to both file and console handlers. Scans log records for patterns
    matching credentials (API keys, Bearer tokens) and replaces them with masks
    (e.g. '***' or '***4a1b') before the record is written.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _mask_string(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = mask_sensitive_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    mask_sensitive_data(arg) if isinstance(arg, (dict, str)) else arg
                    for arg in record.args
                )

        return True


def mask_sensitive_data(data: Any, mask_value: str = "***") -> Any:
    """
    Recursively redact sensitive fields from complex data structures.

    Dictionary keys matching a known credential label (``api_key``,
    ``authorization``, ``openRouterApiKey``...) are masked; key- and token-like
    values keep their last 4 characters for identification. Strings are also run
    through the regex patterns.

    Args:
        data: The input data structure (dict, list, str, etc.) to be scrubbed.
        mask_value: The string used to replace sensitive content.

    Returns:
        A copy of the input data with sensitive values masked.
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
                if 'key' in key_lower or 'token' in key_lower:
                    if isinstance(value, str) and len(value) > 4:
                        masked[key] = f"{mask_value}{value[-4:]}"
                    else:
                        masked[key] = mask_value
                else:
                    masked[key] = mask_value
            else:
                masked[key] = mask_sensitive_data(value, mask_value)
        return masked

    elif isinstance(data, (list, tuple)):
        return type(data)(mask_sensitive_data(item, mask_value) for item in data)

    elif isinstance(data, str):
        return _mask_string(data)

    return data


def setup_logging(
    log_level: int = logging.DEBUG,
    console_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_format: Optional[str] = None
) -> Path:
    """
    Initialize application-wide logging.

    Configs include:
    - Root Logger: Set to DEBUG to capture all events.
    - File Handler: Persists detailed logs to ``<log_dir>/modelkombat.log``.
    - Console Handler: Human-readable output on stderr.

    Both handlers carry ``SensitiveDataFilter``.

    Returns:
        Path: The path to the log file.
    """
    log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    if log_format is None:
        log_format = (
            '%(asctime)s - %(name)s - %(levelname)s - '
            '[%(filename)s:%(lineno)d] - %(message)s'
        )
    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture everything, handlers will filter
    root_logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    file_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SensitiveDataFilter())
    root_logger.addHandler(console_handler)

    logging.getLogger(__name__).debug(f"Logging initialized - Log file: {log_file}")
    return log_file


def shutdown_logging():
    """Flush all handlers. Call before process exit."""
    for handler in logging.root.handlers:
        handler.flush()
    logging.shutdown()


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log configuration settings with automatic sensitive data masking.

    Args:
        config_name: Name of the configuration being logged
        config_data: Dictionary of configuration settings
        logger: Optional logger instance
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    masked_config = mask_sensitive_data(config_data)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(masked_config, indent=2, default=str)}")


def log_api_request(
    logger: logging.Logger,
    method: str,
    endpoint: str,
    headers: Optional[Dict] = None,
    data: Optional[Any] = None,
    params: Optional[Dict] = None
):
    """Log an outgoing API request with masked sensitive data."""
    logger.info(f"API Request: {method} {endpoint}")

    if headers:
        logger.debug(f"Request headers: {mask_sensitive_data(headers)}")

    if params:
        logger.debug(f"Request params: {mask_sensitive_data(params)}")

    if data:
        masked_data = mask_sensitive_data(data)
        logger.debug(f"Request body: {json.dumps(masked_data, indent=2, default=str)}")


def log_api_response(
    logger: logging.Logger,
    status_code: int,
    response_data: Optional[Any] = None,
    elapsed_time: Optional[float] = None
):
    """
    Log an API response with timing information.

    Args:
        logger: Logger instance to use
        status_code: HTTP status code
        response_data: Response body data
        elapsed_time: Request duration in seconds
    """
    timing_info = f" ({elapsed_time:.3f}s)" if elapsed_time else ""
    logger.info(f"API Response: {status_code}{timing_info}")

    if response_data:
        response_str = json.dumps(mask_sensitive_data(response_data), indent=2, default=str)
        if len(response_str) > 1000:
            response_str = response_str[:1000] + "\n... (truncated)"
        logger.debug(f"Response body: {response_str}")
