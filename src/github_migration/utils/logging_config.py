"""
Logging configuration for the GitHub migration toolkit.

Console and file output share one named logger. Every handler carries a
SecretRedactionFilter so that access tokens registered with the
MigrationLogger never reach the terminal or the log file.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Optional, Set
from urllib.parse import quote

LOGGER_NAME = 'github_migration'

SUCCESS = 25
logging.addLevelName(SUCCESS, 'SUCCESS')

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

GENERIC_ERROR_MESSAGE = "An unexpected error happened. Please see the logs for details."

REDACTED = '***'


class SecretRedactionFilter(logging.Filter):
    """
    Logging filter that masks secrets in the final log message.

    Registered secrets are replaced verbatim and in their URL-quoted form.
    Signed-URL query values (token=, sig=, X-Amz-Credential=) are masked even
    when they were never registered.
    """

    QUERY_PATTERNS = (
        re.compile(r'(token=)[^&\s"\']+', re.IGNORECASE),
        re.compile(r'(sig=)[^&\s"\']+', re.IGNORECASE),
        re.compile(r'(X-Amz-Credential=)[^&\s"\']+', re.IGNORECASE),
    )

    def __init__(self, secrets: Optional[Set[str]] = None) -> None:
        super().__init__()
        self.secrets = secrets if secrets is not None else set()

    def redact(self, message: str) -> str:
        # Longest first so a secret containing another secret is fully masked
        for secret in sorted(self.secrets, key=len, reverse=True):
            message = message.replace(secret, REDACTED)
            quoted = quote(secret, safe='')
            if quoted != secret:
                message = message.replace(quoted, REDACTED)

        for pattern in self.QUERY_PATTERNS:
            message = pattern.sub(r'\1' + REDACTED, message)

        return message

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None

        # Formatters append exc_text after filtering, so mask the traceback here
        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True


def setup_logger(name: str = LOGGER_NAME, log_level: str = 'INFO', log_file: Optional[str] = None,
                 verbose: bool = False,
                 redaction_filter: Optional[SecretRedactionFilter] = None) -> logging.Logger:
    """
    Configure the named logger with a console handler and an optional file handler.

    Calling it again replaces the handlers installed by the previous call, so
    each command invocation starts from a clean configuration.

    Args:
        name: Logger name
        log_level: Console level when verbose output is off
        log_file: Optional path of a log file that always receives DEBUG output
        verbose: Show DEBUG messages on the console
        redaction_filter: Filter attached to every handler

    Returns:
        The configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if verbose else getattr(logging, log_level.upper(), logging.INFO))
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if redaction_filter is not None:
        for handler in logger.handlers:
            handler.addFilter(redaction_filter)

    return logger


class MigrationLogger:
    """
    Logging context passed explicitly to clients, services and commands.

    Holds the set of secrets to redact. Anything passed to register_secret
    is masked in every message logged afterwards.

    Attributes:
        logger: Underlying standard library logger
        secrets: Registered secret values
        verbose_enabled: Whether DEBUG output reaches the console
    """

    def __init__(self, log_level: str = 'INFO', log_file: Optional[str] = None, verbose: bool = False,
                 name: str = LOGGER_NAME) -> None:
        self.verbose_enabled = verbose
        self.log_file = log_file
        self.secrets: Set[str] = set()
        self.redaction_filter = SecretRedactionFilter(self.secrets)
        self.logger = setup_logger(name, log_level, log_file, verbose, self.redaction_filter)

    def register_secret(self, secret: Optional[str]) -> None:
        """Mask the given value in all future log output."""
        if secret and secret.strip():
            self.secrets.add(secret)

    def debug(self, message: str) -> None:
        self.logger.debug(message)

    def verbose(self, message: str) -> None:
        self.logger.debug(message)

    def info(self, message: str) -> None:
        self.logger.info(message)

    def success(self, message: str) -> None:
        self.logger.log(SUCCESS, message)

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)


def redact_message(message: str, name: str = LOGGER_NAME) -> str:
    """
    Mask secrets in text printed outside the logging handlers.

    Uses the secrets registered with the redaction filter of the named
    logger's handlers, plus the signed-URL patterns.
    """
    for handler in logging.getLogger(name).handlers:
        for log_filter in handler.filters:
            if isinstance(log_filter, SecretRedactionFilter):
                return log_filter.redact(message)
    return SecretRedactionFilter().redact(message)
