"""
Host-specific configuration files.

Every machine running the bridge gets its own ``<hostname>-settings.env``,
seeded from the shared ``settings.env`` the first time it is needed.
"""

import logging
import shutil
import socket
from pathlib import Path

BASE_SETTINGS_FILE = "settings.env"

HOST_HEADER = """# Host-specific iSCSI bridge configuration for: {hostname}
# Generated from {base}; edit freely for this machine.

"""


def get_hostname() -> str:
    """Get the current hostname (without domain)."""
    return socket.gethostname().split(".")[0]


def get_hostname_settings_file(directory: Path = Path(".")) -> str:
    """
    Return the settings file to use on this host.

    Creates ``<hostname>-settings.env`` from ``settings.env`` when the host
    file is missing. Falls back to ``settings.env`` when neither exists or
    the host file cannot be written.
    """
    base_settings = directory / BASE_SETTINGS_FILE
    host_settings = directory / f"{get_hostname()}-settings.env"

    if host_settings.exists():
        return str(host_settings)

    if not base_settings.exists():
        logging.debug(f"No {base_settings} found, using defaults and environment")
        return str(base_settings)

    try:
        shutil.copy2(base_settings, host_settings)
        content = host_settings.read_text(encoding="utf-8")
        header = HOST_HEADER.format(hostname=get_hostname(), base=base_settings.name)
        host_settings.write_text(header + content, encoding="utf-8")
        logging.info(f"Created host-specific configuration: {host_settings}")
    except OSError as e:
        logging.error(f"Could not create {host_settings}: {e}")
        return str(base_settings)

    return str(host_settings)


def list_all_settings_files(directory: Path = Path(".")) -> list[str]:
    """List the base settings file and all host-specific ones."""
    settings_files = []
    if (directory / BASE_SETTINGS_FILE).exists():
        settings_files.append(str(directory / BASE_SETTINGS_FILE))
    settings_files.extend(str(p) for p in sorted(directory.glob("*-settings.env")))
    return settings_files
