import logging

from scada_import.core import logging_config


def test_configure_logging_sets_service_level_and_quiets_boto(monkeypatch):
    monkeypatch.setattr(logging_config, "_is_configured", False)
    service_logger = logging.getLogger("scada_import")
    monkeypatch.setattr(service_logger, "level", service_logger.level)

    logging_config.configure_logging("debug")

    assert service_logger.level == logging.DEBUG
    assert logging.getLogger("botocore").level == logging.WARNING
    assert logging.getLogger("boto3").level == logging.WARNING
    assert logging_config._is_configured is True


def test_configure_logging_runs_once(monkeypatch):
    monkeypatch.setattr(logging_config, "_is_configured", True)
    service_logger = logging.getLogger("scada_import")
    monkeypatch.setattr(service_logger, "level", logging.ERROR)

    logging_config.configure_logging("DEBUG")

    assert service_logger.level == logging.ERROR
