from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict
from .utils.host_config import get_hostname_settings_file


class Settings(BaseSettings):
    # D-Bus connection
    dbus_address: str = "unix:path=/run/agama/bus"  # Empty string = system bus
    dbus_service_name: str = "org.opensuse.Agama.Storage1"
    bus_call_timeout_seconds: float = 30.0

    # Storage service objects
    storage_object_path: str = "/org/opensuse/Agama/Storage1"
    iscsi_nodes_path: str = "/org/opensuse/Agama/Storage1/iscsi_nodes"
    initiator_interface: str = "org.opensuse.Agama.Storage1.ISCSI.Initiator"
    node_interface: str = "org.opensuse.Agama.Storage1.ISCSI.Node"

    # HTTP server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging konfiguration
    log_level: str = "INFO"
    log_file_path: str = "logs/iscsi_bridge.log"
    log_retention_days: int = 30

    model_config = SettingsConfigDict(
        env_file=get_hostname_settings_file(), env_prefix="ISCSI_BRIDGE_"
    )

    @property
    def log_directory(self) -> Path:
        """Returnerer log directory som Path objekt"""
        return Path(self.log_file_path).parent

    @property
    def config_file_info(self) -> dict:
        """Return information about which configuration file is being used."""
        from .utils.host_config import get_hostname, list_all_settings_files

        return {
            "hostname": get_hostname(),
            "active_config_file": get_hostname_settings_file(),
            "all_available_configs": list_all_settings_files(),
        }
