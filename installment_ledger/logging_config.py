"""
Structured Logging Configuration Module

JSON log lines for ledger operations. Every line names the field agent and,
where one is involved, the borrower, loan and installment it concerns, so a
collection day can be replayed from the logs by loan or by borrower.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

# Record attributes emitted as top-level JSON fields, in output order
LEDGER_FIELDS = (
    "correlation_id",
    "user_id",
    "action",
    "borrower_id",
    "loan_id",
    "installment_id",
    "extra",
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record; unset ledger fields are left out"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in LEDGER_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "ledger",
                  log_format: str = "json") -> logging.Logger:
    """
    Configure the ledger logger hierarchy.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Parent of the per-component loggers (ledger.loans, ...)
        log_format: "json" for structured output, anything else for plain text
    """
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "ledger") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               borrower_id: Optional[str] = None, loan_id: Optional[str] = None,
               installment_id: Optional[str] = None,
               correlation_id: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log a ledger action with its identifiers as structured fields.

    Args:
        logger: Component logger
        level: Log level name (info, warning, error, ...)
        message: Human-readable message
        user_id: Field agent performing the action
        action: Operation name, e.g. "allocate_fifo"
        borrower_id: Borrower concerned
        loan_id: Loan concerned
        installment_id: Installment concerned
        correlation_id: Request correlation ID
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    fields = {
        "user_id": user_id,
        "action": action,
        "borrower_id": borrower_id,
        "loan_id": loan_id,
        "installment_id": installment_id,
        "correlation_id": correlation_id,
        "extra": extra or None,
    }
    logger.log(levelno, message, extra={k: v for k, v in fields.items() if v is not None})
