"""
Tests for Settings and logging setup.
"""

import logging
import logging.handlers

import pytest
from rich.logging import RichHandler

from iscsi_bridge.logging_config import setup_logging
from tests.fakes import make_settings


def test_defaults_target_the_storage_service():
    settings = make_settings()

    assert settings.dbus_service_name == "org.opensuse.Agama.Storage1"
    assert settings.iscsi_nodes_path.startswith(settings.storage_object_path + "/")
    assert settings.bus_call_timeout_seconds > 0


def test_environment_overrides_use_prefix(monkeypatch):
    monkeypatch.setenv("ISCSI_BRIDGE_API_PORT", "9001")
    monkeypatch.setenv("ISCSI_BRIDGE_DBUS_ADDRESS", "")

    settings = make_settings()

    assert settings.api_port == 9001
    assert settings.dbus_address == ""


def test_env_file_is_read(tmp_path):
    env_file = tmp_path / "host-settings.env"
    env_file.write_text("ISCSI_BRIDGE_LOG_LEVEL=DEBUG\nISCSI_BRIDGE_BUS_CALL_TIMEOUT_SECONDS=2.5\n")

    settings = make_settings(_env_file=str(env_file))

    assert settings.log_level == "DEBUG"
    assert settings.bus_call_timeout_seconds == 2.5


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_installs_console_and_file_handlers(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "bridge.log"
    settings = make_settings(log_file_path=str(log_file), log_level="DEBUG")

    setup_logging(settings)
    logging.info("hello from the bridge")

    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h, RichHandler) for h in root.handlers)
    file_handlers = [
        h for h in root.handlers if isinstance(h, logging.handlers.TimedRotatingFileHandler)
    ]
    assert len(file_handlers) == 1
    file_handlers[0].flush()
    assert "hello from the bridge" in log_file.read_text(encoding="utf-8")
