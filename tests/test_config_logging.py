"""
Tests for configuration and structured logging
"""

import json
import logging
from decimal import Decimal

from installment_ledger.config import LedgerConfig, LendingSettings, reload_config, get_config
from installment_ledger.currency import Currency
from installment_ledger.logging_config import JSONFormatter, setup_logging, get_logger, log_action


class TestConfig:
    """Test environment configuration"""

    def test_defaults(self):
        """Test default configuration values"""
        config = LedgerConfig()
        assert config.default_weeks == 24
        assert config.default_weekly_rate == "0.05"
        assert config.default_collection_day == 0
        assert config.allow_mass_record_past is False

    def test_env_prefix(self, monkeypatch):
        """Test settings read from LEDGER_ environment variables"""
        monkeypatch.setenv("LEDGER_DEFAULT_WEEKS", "12")
        monkeypatch.setenv("LEDGER_ALLOW_MASS_RECORD_PAST", "true")
        monkeypatch.setenv("LEDGER_CURRENCY", "KES")

        config = reload_config()
        try:
            assert get_config() is config
            assert config.default_weeks == 12

            settings = LendingSettings.from_config(config)
            assert settings.default_weeks == 12
            assert settings.allow_mass_record_past is True
            assert settings.currency == Currency.KES
            assert settings.weekly_rate == Decimal("0.05")
        finally:
            monkeypatch.undo()
            reload_config()


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLogging:
    """Test structured logging helpers"""

    def test_log_action_attaches_fields(self):
        """Test log_action attaches ledger identifiers as JSON fields"""
        logger = get_logger("ledger.test")
        handler = ListHandler()
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            log_action(
                logger, "warning", "Overpayment", user_id="agent-1",
                action="allocate_fifo", borrower_id="b1", loan_id="L1", extra={"overpayment": "100.00"}
            )
        finally:
            logger.removeHandler(handler)

        record = handler.records[0]
        assert record.levelname == "WARNING"
        assert record.user_id == "agent-1"
        assert record.borrower_id == "b1"
        assert record.loan_id == "L1"
        assert not hasattr(record, "installment_id")

        entry = json.loads(JSONFormatter().format(record))
        assert entry["message"] == "Overpayment"
        assert entry["extra"] == {"overpayment": "100.00"}
        assert entry["borrower_id"] == "b1"
        assert entry["loan_id"] == "L1"
        assert "installment_id" not in entry
        assert "correlation_id" not in entry

    def test_disabled_level_emits_nothing(self):
        """Test nothing is emitted below the logger level"""
        logger = get_logger("ledger.quiet")
        handler = ListHandler()
        logger.addHandler(handler)
        logger.setLevel(logging.ERROR)
        try:
            log_action(logger, "info", "ignored")
        finally:
            logger.removeHandler(handler)
        assert handler.records == []

    def test_setup_logging(self):
        """Test switching between text and JSON output"""
        logger = setup_logging("DEBUG", logger_name="ledger.setup", log_format="text")
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

        logger = setup_logging("INFO", logger_name="ledger.setup")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
