import logging

from resource_storage.core.config import Settings
from resource_storage.core.logger import setup_logging


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("RESOURCE_STORAGE_STORAGE_TYPE", "elasticsearch")
    monkeypatch.setenv("RESOURCE_STORAGE_DEFAULT_LIMIT", "50")
    monkeypatch.setenv("RESOURCE_STORAGE_SEARCH_FIELDS", '["title^2", "tags"]')

    config = Settings()

    assert config.storage_type == "elasticsearch"
    assert config.default_limit == 50
    assert config.search_fields == ["title^2", "tags"]
    assert config.configure_logging is False


def test_setup_logging_scopes_the_package_logger():
    setup_logging("DEBUG")
    try:
        package_logger = logging.getLogger("resource_storage")

        assert package_logger.level == logging.DEBUG
        assert package_logger.propagate is False
        assert logging.getLogger("elastic_transport").level == logging.WARNING
    finally:
        setup_logging()
