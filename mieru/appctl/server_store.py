"""Server configuration kept in a file on disk."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterable, Mapping
from pathlib import Path

from mieru.appctl.model import (
    ConfigError,
    ConfigFileType,
    ServerConfig,
    find_config_file_type,
    marshal,
    unmarshal,
)
from mieru.appctl.server_rules import (
    merge_server_config,
    validate_full_server_config,
    validate_server_config_patch,
)
from mieru.appctl.users import hash_user_passwords

DEFAULT_CONFIG_FILE = "/etc/mita/server.conf.pb"
DEFAULT_UDS = "/var/run/mita.sock"

CONFIG_FILE_ENV = "MITA_CONFIG_FILE"
CONFIG_JSON_FILE_ENV = "MITA_CONFIG_JSON_FILE"
UDS_ENV = "MITA_UDS_PATH"


def server_uds(environ: Mapping[str, str] | None = None) -> str:
    """Return the UNIX domain socket the server listens to for RPC requests."""
    env = os.environ if environ is None else environ
    return env.get(UDS_ENV, DEFAULT_UDS)


def _write_config_file(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o660)
    with os.fdopen(fd, "wb") as out:
        out.write(data)


class ServerConfigStore:
    """Loads, stores and updates the server configuration file.

    The file is taken from MITA_CONFIG_FILE (protobuf) or
    MITA_CONFIG_JSON_FILE (JSON) when set, otherwise it is ``config_file``.
    Its directory must already exist.
    """

    def __init__(
        self,
        config_file: str | os.PathLike[str] = DEFAULT_CONFIG_FILE,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config_file = os.fspath(config_file)
        self._environ = os.environ if environ is None else environ
        self._lock = threading.RLock()

    def _locate(self) -> tuple[Path, ConfigFileType]:
        value = self._environ.get(CONFIG_FILE_ENV)
        if value is not None:
            return Path(value), ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE
        value = self._environ.get(CONFIG_JSON_FILE_ENV)
        if value is not None:
            return Path(value), ConfigFileType.JSON_CONFIG_FILE_TYPE
        if not self._config_file:
            raise ConfigError("server config file path is empty")
        return Path(self._config_file), find_config_file_type(self._config_file)

    def path(self) -> Path:
        """Return the path of the configuration file."""
        return self._locate()[0]

    def load(self) -> ServerConfig:
        """Read the configuration; raise FileNotFoundError if it is missing."""
        with self._lock:
            path, file_type = self._locate()
            os.stat(path.parent)
            data = path.read_bytes()
            if file_type == ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE:
                return ServerConfig.from_bytes(data)
            if file_type == ConfigFileType.JSON_CONFIG_FILE_TYPE:
                return unmarshal(data, ServerConfig)
            raise ConfigError("config file type is invalid")

    def store(self, config: ServerConfig | None) -> None:
        """Write the configuration, replacing plain passwords by hashed ones."""
        with self._lock:
            if config is None:
                raise ConfigError("ServerConfig is None")
            config.users = hash_user_passwords(config.users, False)
            path, file_type = self._locate()
            os.stat(path.parent)
            if file_type == ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE:
                data = config.to_bytes()
            elif file_type == ConfigFileType.JSON_CONFIG_FILE_TYPE:
                data = marshal(config).encode("utf-8")
            else:
                raise ConfigError("config file type is invalid")
            _write_config_file(path, data)

    def apply_json_file(self, path: str | os.PathLike[str]) -> None:
        """Merge the JSON configuration in the given file into the stored one."""
        patch = unmarshal(Path(path).read_bytes(), ServerConfig)
        validate_server_config_patch(patch)
        with self._lock:
            config = self.load()
            merge_server_config(config, patch)
            validate_full_server_config(config)
            self.store(config)

    def delete_users(self, names: Iterable[str]) -> None:
        """Remove the named users, keeping the order of the others."""
        to_delete = set(names)
        with self._lock:
            config = self.load()
            config.users = [u for u in config.users if (u.name or "") not in to_delete]
            self.store(config)

    def delete_file(self) -> None:
        """Remove the configuration file if it exists."""
        with self._lock:
            self.path().unlink(missing_ok=True)

    def json_text(self) -> str:
        """Return the stored configuration as JSON text."""
        return marshal(self.load())