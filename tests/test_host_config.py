"""
Tests for host specific settings file handling.
"""

from pathlib import Path

from iscsi_bridge.utils import host_config
from iscsi_bridge.utils.host_config import (
    get_hostname_settings_file,
    list_all_settings_files,
)


def test_hostname_has_no_domain(monkeypatch):
    monkeypatch.setattr(host_config.socket, "gethostname", lambda: "installer.example.org")

    assert host_config.get_hostname() == "installer"


def test_falls_back_to_base_file_when_nothing_exists(tmp_path):
    assert get_hostname_settings_file(tmp_path) == str(tmp_path / "settings.env")
    assert list(tmp_path.iterdir()) == []


def test_creates_host_file_from_base(tmp_path, monkeypatch):
    monkeypatch.setattr(host_config, "get_hostname", lambda: "node1")
    (tmp_path / "settings.env").write_text("ISCSI_BRIDGE_API_PORT=9000\n")

    result = Path(get_hostname_settings_file(tmp_path))

    assert result == tmp_path / "node1-settings.env"
    content = result.read_text()
    assert content.startswith("# Host-specific iSCSI bridge configuration for: node1")
    assert "ISCSI_BRIDGE_API_PORT=9000" in content


def test_existing_host_file_is_kept(tmp_path, monkeypatch):
    monkeypatch.setattr(host_config, "get_hostname", lambda: "node1")
    (tmp_path / "settings.env").write_text("ISCSI_BRIDGE_API_PORT=9000\n")
    (tmp_path / "node1-settings.env").write_text("ISCSI_BRIDGE_API_PORT=9100\n")

    result = get_hostname_settings_file(tmp_path)

    assert Path(result).read_text() == "ISCSI_BRIDGE_API_PORT=9100\n"


def test_list_all_settings_files(tmp_path):
    (tmp_path / "settings.env").write_text("")
    (tmp_path / "b-settings.env").write_text("")
    (tmp_path / "a-settings.env").write_text("")

    assert list_all_settings_files(tmp_path) == [
        str(tmp_path / "settings.env"),
        str(tmp_path / "a-settings.env"),
        str(tmp_path / "b-settings.env"),
    ]
