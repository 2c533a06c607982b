"""Client configuration kept in a file on disk."""

from __future__ import annotations

import os
import sys
import threading
from collections.abc import Mapping
from pathlib import Path

from mieru.appctl.client_rules import (
    merge_client_config_by_profile,
    validate_client_config_patch,
    validate_full_client_config,
)
from mieru.appctl.model import (
    ClientConfig,
    ConfigError,
    ConfigFileType,
    find_config_file_type,
    marshal,
    unmarshal,
)
from mieru.appctl.url import client_config_to_url, url_to_client_config
from mieru.appctl.users import hash_user_password

# Timeout in seconds to complete an RPC call. It is large on purpose so that
# it also works on slow embedded computers and inside anti-virus sandboxes.
RPC_TIMEOUT = 10.0

CONFIG_FILE_ENV = "MIERU_CONFIG_FILE"
CONFIG_JSON_FILE_ENV = "MIERU_CONFIG_JSON_FILE"
DEFAULT_FILE_NAME = "client.conf.pb"
APP_DIR_NAME = "mieru"


def _user_config_dir(environ: Mapping[str, str]) -> Path:
    if sys.platform == "win32":
        appdata = environ.get("APPDATA")
        if not appdata:
            raise ConfigError("%AppData% is not defined")
        return Path(appdata)
    home = environ.get("HOME")
    if sys.platform == "darwin":
        if not home:
            raise ConfigError("$HOME is not defined")
        return Path(home) / "Library" / "Application Support"
    xdg = environ.get("XDG_CONFIG_HOME")
    if xdg:
        if not os.path.isabs(xdg):
            raise ConfigError("path in $XDG_CONFIG_HOME is relative")
        return Path(xdg)
    if not home:
        raise ConfigError("neither $XDG_CONFIG_HOME nor $HOME are defined")
    return Path(home) / ".config"


def _write_config_file(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o660)
    with os.fdopen(fd, "wb") as out:
        out.write(data)


class ClientConfigStore:
    """Loads, stores and updates the client configuration file.

    The file is taken from MIERU_CONFIG_FILE (protobuf) or
    MIERU_CONFIG_JSON_FILE (JSON) when set, otherwise it is
    ``client.conf.pb`` inside the configuration directory.
    """

    def __init__(
        self,
        config_dir: str | os.PathLike[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._environ = os.environ if environ is None else environ
        self._config_dir = None if config_dir is None else Path(config_dir)
        self._lock = threading.RLock()

    @property
    def config_dir(self) -> Path:
        """Directory holding the default configuration file."""
        if self._config_dir is None:
            self._config_dir = _user_config_dir(self._environ) / APP_DIR_NAME
        return self._config_dir

    def _locate(self) -> tuple[Path, ConfigFileType]:
        value = self._environ.get(CONFIG_FILE_ENV)
        if value is not None:
            return Path(value), ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE
        value = self._environ.get(CONFIG_JSON_FILE_ENV)
        if value is not None:
            return Path(value), ConfigFileType.JSON_CONFIG_FILE_TYPE
        path = self.config_dir / DEFAULT_FILE_NAME
        return path, find_config_file_type(path)

    def path(self) -> Path:
        """Return the path of the configuration file."""
        return self._locate()[0]

    def load(self) -> ClientConfig:
        """Read the configuration; raise FileNotFoundError if there is none."""
        with self._lock:
            path, file_type = self._locate()
            path.parent.mkdir(parents=True, exist_ok=True)
            data = path.read_bytes()
            if file_type == ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE:
                return ClientConfig.from_bytes(data)
            if file_type == ConfigFileType.JSON_CONFIG_FILE_TYPE:
                return unmarshal(data, ClientConfig)
            raise ConfigError("config file type is invalid")

    def store(self, config: ClientConfig) -> None:
        """Write the configuration, adding hashed passwords to every profile user."""
        with self._lock:
            path, file_type = self._locate()
            path.parent.mkdir(parents=True, exist_ok=True)
            for profile in config.profiles:
                profile.user = hash_user_password(profile.user, True)
            if file_type == ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE:
                data = config.to_bytes()
            elif file_type == ConfigFileType.JSON_CONFIG_FILE_TYPE:
                data = marshal(config).encode("utf-8")
            else:
                raise ConfigError("config file type is invalid")
            _write_config_file(path, data)

    def _apply(self, patch: ClientConfig) -> None:
        validate_client_config_patch(patch)
        with self._lock:
            config = self.load()
            merge_client_config_by_profile(config, patch)
            validate_full_client_config(config)
            self.store(config)

    def apply_json_file(self, path: str | os.PathLike[str]) -> None:
        """Merge the JSON configuration in the given file into the stored one."""
        data = Path(path).read_bytes()
        self._apply(unmarshal(data, ClientConfig))

    def apply_url(self, url: str) -> None:
        """Merge the configuration carried by a mieru:// URL into the stored one."""
        self._apply(url_to_client_config(url))

    def delete_profile(self, profile_name: str) -> None:
        """Remove a profile; the active profile cannot be removed."""
        with self._lock:
            config = self.load()
            if (config.active_profile or "") == profile_name:
                raise ConfigError(f"activeProfile {profile_name!r} can't be deleted")
            config.profiles = [
                p for p in config.profiles if (p.profile_name or "") != profile_name
            ]
            self.store(config)

    def delete_file(self) -> None:
        """Remove the configuration file if it exists."""
        with self._lock:
            self.path().unlink(missing_ok=True)

    def json_text(self) -> str:
        """Return the stored configuration as JSON text."""
        return marshal(self.load())

    def url(self) -> str:
        """Return the stored configuration as a mieru:// URL."""
        return client_config_to_url(self.load())