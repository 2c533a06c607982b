"""Configuration messages with protobuf wire and JSON encodings."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum, IntEnum, auto
from functools import lru_cache
from typing import Any, TypeVar

_UINT64_MASK = (1 << 64) - 1
_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1
_INTEGER_TEXT = re.compile(r"-?[0-9]+")

_WIRE_VARINT = 0
_WIRE_FIXED64 = 1
_WIRE_BYTES = 2
_WIRE_FIXED32 = 5


class ConfigError(ValueError):
    """Raised when a configuration is invalid or cannot be encoded or decoded."""


class ConfigFileType(IntEnum):
    """Encoding of a configuration file."""

    INVALID_CONFIG_FILE_TYPE = 0
    PROTOBUF_CONFIG_FILE_TYPE = 1
    JSON_CONFIG_FILE_TYPE = 2


def find_config_file_type(file_name: str | os.PathLike[str]) -> ConfigFileType:
    """Decide the configuration file type from the file name extension."""
    if os.fspath(file_name).endswith(".json"):
        return ConfigFileType.JSON_CONFIG_FILE_TYPE
    return ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE


class TransportProtocol(IntEnum):
    UNKNOWN_TRANSPORT_PROTOCOL = 0
    UDP = 1
    TCP = 2


class LoggingLevel(IntEnum):
    DEFAULT = 0
    FATAL = 1
    ERROR = 2
    WARN = 3
    INFO = 4
    DEBUG = 5
    TRACE = 6


class ProxyProtocol(IntEnum):
    UNKNOWN_PROXY_PROTOCOL = 0
    SOCKS5_PROXY_PROTOCOL = 1


class EgressAction(IntEnum):
    PROXY = 0
    DIRECT = 1
    REJECT = 2


class _Kind(Enum):
    STRING = auto()
    INT32 = auto()
    BOOL = auto()
    ENUM = auto()
    MESSAGE = auto()


_STRING = _Kind.STRING
_INT32 = _Kind.INT32
_BOOL = _Kind.BOOL
_ENUM = _Kind.ENUM
_MESSAGE = _Kind.MESSAGE


def _field(
    number: int,
    kind: _Kind,
    ref: Any = None,
    *,
    repeated: bool = False,
    json_name: str | None = None,
) -> Any:
    meta = {"number": number, "json": json_name, "kind": kind, "ref": ref, "repeated": repeated}
    if repeated:
        return field(default_factory=list, metadata=meta)
    return field(default=None, metadata=meta)


@dataclass(frozen=True)
class _Spec:
    name: str
    number: int
    json: str
    kind: _Kind
    ref: Any
    repeated: bool


def _camel(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(part[:1].upper() + part[1:] for part in rest)


M = TypeVar("M", bound="_Message")


class _Message:
    """Common behaviour of configuration messages."""

    def to_bytes(self) -> bytes:
        """Encode the message in protobuf wire format."""
        return _encode(self)

    @classmethod
    def from_bytes(cls: type[M], data: bytes) -> M:
        """Decode a message from protobuf wire format."""
        return _decode(cls, bytes(data))


@dataclass(kw_only=True)
class PortBinding(_Message):
    port: int | None = _field(1, _INT32)
    protocol: TransportProtocol | None = _field(2, _ENUM, TransportProtocol)
    port_range: str | None = _field(3, _STRING)


@dataclass(kw_only=True)
class Quota(_Message):
    days: int | None = _field(1, _INT32)
    megabytes: int | None = _field(2, _INT32)


@dataclass(kw_only=True)
class User(_Message):
    name: str | None = _field(1, _STRING)
    password: str | None = _field(2, _STRING)
    hashed_password: str | None = _field(3, _STRING)
    quotas: list[Quota] = _field(4, _MESSAGE, Quota, repeated=True)


@dataclass(kw_only=True)
class ServerEndpoint(_Message):
    ip_address: str | None = _field(1, _STRING)
    domain_name: str | None = _field(2, _STRING)
    port_bindings: list[PortBinding] = _field(3, _MESSAGE, PortBinding, repeated=True)


@dataclass(kw_only=True)
class ClientProfile(_Message):
    profile_name: str | None = _field(1, _STRING)
    user: User | None = _field(2, _MESSAGE, User)
    servers: list[ServerEndpoint] = _field(3, _MESSAGE, ServerEndpoint, repeated=True)
    mtu: int | None = _field(4, _INT32)


@dataclass(kw_only=True)
class ClientAdvancedSettings(_Message):
    pass


@dataclass(kw_only=True)
class ClientConfig(_Message):
    active_profile: str | None = _field(1, _STRING)
    profiles: list[ClientProfile] = _field(2, _MESSAGE, ClientProfile, repeated=True)
    rpc_port: int | None = _field(3, _INT32)
    socks5_port: int | None = _field(4, _INT32)
    advanced_settings: ClientAdvancedSettings | None = _field(5, _MESSAGE, ClientAdvancedSettings)
    logging_level: LoggingLevel | None = _field(6, _ENUM, LoggingLevel)
    socks5_listen_lan: bool | None = _field(7, _BOOL, json_name="socks5ListenLAN")
    http_proxy_port: int | None = _field(8, _INT32)
    http_proxy_listen_lan: bool | None = _field(9, _BOOL, json_name="httpProxyListenLAN")


@dataclass(kw_only=True)
class EgressProxy(_Message):
    name: str | None = _field(1, _STRING)
    protocol: ProxyProtocol | None = _field(2, _ENUM, ProxyProtocol)
    host: str | None = _field(3, _STRING)
    port: int | None = _field(4, _INT32)


@dataclass(kw_only=True)
class EgressRule(_Message):
    ip_ranges: list[str] = _field(1, _STRING, repeated=True)
    domain_names: list[str] = _field(2, _STRING, repeated=True)
    action: EgressAction | None = _field(3, _ENUM, EgressAction)
    proxy_name: str | None = _field(4, _STRING)


@dataclass(kw_only=True)
class Egress(_Message):
    proxies: list[EgressProxy] = _field(1, _MESSAGE, EgressProxy, repeated=True)
    rules: list[EgressRule] = _field(2, _MESSAGE, EgressRule, repeated=True)


@dataclass(kw_only=True)
class ServerAdvancedSettings(_Message):
    allow_local_destination: bool | None = _field(1, _BOOL)


@dataclass(kw_only=True)
class ServerConfig(_Message):
    port_bindings: list[PortBinding] = _field(1, _MESSAGE, PortBinding, repeated=True)
    users: list[User] = _field(2, _MESSAGE, User, repeated=True)
    advanced_settings: ServerAdvancedSettings | None = _field(3, _MESSAGE, ServerAdvancedSettings)
    logging_level: LoggingLevel | None = _field(4, _ENUM, LoggingLevel)
    mtu: int | None = _field(5, _INT32)
    egress: Egress | None = _field(6, _MESSAGE, Egress)


@lru_cache(maxsize=None)
def _specs(cls: type) -> tuple[_Spec, ...]:
    specs = (
        _Spec(
            name=f.name,
            number=f.metadata["number"],
            json=f.metadata["json"] or _camel(f.name),
            kind=f.metadata["kind"],
            ref=f.metadata["ref"],
            repeated=f.metadata["repeated"],
        )
        for f in fields(cls)
    )
    return tuple(sorted(specs, key=lambda s: s.number))


# ---------------------------------------------------------------- wire format


def _varint(value: int) -> bytes:
    value &= _UINT64_MASK
    out = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def _key(number: int, wire: int) -> bytes:
    return _varint((number << 3) | wire)


def _encode_value(kind: _Kind, number: int, value: Any) -> bytes:
    if kind is _Kind.STRING:
        data = value.encode("utf-8")
        return _key(number, _WIRE_BYTES) + _varint(len(data)) + data
    if kind is _Kind.MESSAGE:
        data = _encode(value)
        return _key(number, _WIRE_BYTES) + _varint(len(data)) + data
    if kind is _Kind.BOOL:
        return _key(number, _WIRE_VARINT) + _varint(1 if value else 0)
    return _key(number, _WIRE_VARINT) + _varint(int(value))


def _encode(message: _Message) -> bytes:
    out = bytearray()
    for spec in _specs(type(message)):
        value = getattr(message, spec.name)
        if spec.repeated:
            for item in value:
                if item is not None:
                    out += _encode_value(spec.kind, spec.number, item)
        elif value is not None:
            out += _encode_value(spec.kind, spec.number, value)
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def done(self) -> bool:
        return self._pos >= len(self._data)

    def varint(self) -> int:
        result = 0
        shift = 0
        while True:
            if self._pos >= len(self._data):
                raise ConfigError("truncated varint")
            byte = self._data[self._pos]
            self._pos += 1
            result |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return result & _UINT64_MASK
            shift += 7
            if shift >= 70:
                raise ConfigError("varint is too long")

    def take(self, size: int) -> bytes:
        if size > len(self._data) - self._pos:
            raise ConfigError("truncated field")
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def skip(self, wire: int) -> None:
        if wire == _WIRE_VARINT:
            self.varint()
        elif wire == _WIRE_FIXED64:
            self.take(8)
        elif wire == _WIRE_BYTES:
            self.take(self.varint())
        elif wire == _WIRE_FIXED32:
            self.take(4)
        else:
            raise ConfigError(f"unsupported wire type {wire}")


def _to_int32(raw: int) -> int:
    return ((raw + (1 << 31)) % (1 << 32)) - (1 << 31)


_SCALAR_KINDS = (_Kind.INT32, _Kind.BOOL, _Kind.ENUM)


def _decode(cls: type[M], data: bytes) -> M:
    by_number = {spec.number: spec for spec in _specs(cls)}
    values: dict[str, Any] = {}
    reader = _Reader(data)
    while not reader.done:
        key = reader.varint()
        number, wire = key >> 3, key & 7
        if number == 0:
            raise ConfigError("invalid field number 0")
        spec = by_number.get(number)
        if spec is None:
            reader.skip(wire)
            continue
        items: list[Any] = []
        if spec.kind in _SCALAR_KINDS:
            if wire == _WIRE_VARINT:
                raws = [reader.varint()]
            elif wire == _WIRE_BYTES and spec.repeated:
                packed = _Reader(reader.take(reader.varint()))
                raws = []
                while not packed.done:
                    raws.append(packed.varint())
            else:
                raise ConfigError(f"field {spec.json!r} has wrong wire type {wire}")
            for raw in raws:
                if spec.kind is _Kind.BOOL:
                    items.append(raw != 0)
                elif spec.kind is _Kind.INT32:
                    items.append(_to_int32(raw))
                else:
                    try:
                        items.append(spec.ref(_to_int32(raw)))
                    except ValueError:
                        continue
        else:
            if wire != _WIRE_BYTES:
                raise ConfigError(f"field {spec.json!r} has wrong wire type {wire}")
            payload = reader.take(reader.varint())
            if spec.kind is _Kind.STRING:
                try:
                    items.append(payload.decode("utf-8"))
                except UnicodeDecodeError as exc:
                    raise ConfigError(f"field {spec.json!r} is not valid UTF-8") from exc
            else:
                items.append(_decode(spec.ref, payload))
        if not items:
            continue
        if spec.repeated:
            values.setdefault(spec.name, []).extend(items)
        else:
            values[spec.name] = items[-1]
    return cls(**values)


# ----------------------------------------------------------------------- JSON


def _json_value(spec: _Spec, value: Any) -> Any:
    if spec.kind is _Kind.ENUM:
        return spec.ref(value).name
    if spec.kind is _Kind.MESSAGE:
        return _to_json(value)
    if spec.kind is _Kind.BOOL:
        return bool(value)
    if spec.kind is _Kind.INT32:
        return int(value)
    return str(value)


def _to_json(message: _Message) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for spec in _specs(type(message)):
        value = getattr(message, spec.name)
        if spec.repeated:
            if value:
                out[spec.json] = [_json_value(spec, v) for v in value]
        elif value is not None:
            out[spec.json] = _json_value(spec, value)
    return out


def _json_int32(name: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"field {name!r}: invalid integer {raw!r}")
    if isinstance(raw, float):
        if not raw.is_integer():
            raise ConfigError(f"field {name!r}: invalid integer {raw!r}")
        raw = int(raw)
    elif isinstance(raw, str):
        if not _INTEGER_TEXT.fullmatch(raw):
            raise ConfigError(f"field {name!r}: invalid integer {raw!r}")
        raw = int(raw)
    elif not isinstance(raw, int):
        raise ConfigError(f"field {name!r}: invalid integer {raw!r}")
    if not _INT32_MIN <= raw <= _INT32_MAX:
        raise ConfigError(f"field {name!r}: value {raw} is out of int32 range")
    return raw


def _json_item(spec: _Spec, raw: Any) -> Any:
    name = spec.json
    if spec.kind is _Kind.STRING:
        if not isinstance(raw, str):
            raise ConfigError(f"field {name!r}: expected a string")
        return raw
    if spec.kind is _Kind.BOOL:
        if not isinstance(raw, bool):
            raise ConfigError(f"field {name!r}: expected a boolean")
        return raw
    if spec.kind is _Kind.INT32:
        return _json_int32(name, raw)
    if spec.kind is _Kind.ENUM:
        if isinstance(raw, str):
            try:
                return spec.ref[raw]
            except KeyError:
                raise ConfigError(f"field {name!r}: unknown enum value {raw!r}") from None
        number = _json_int32(name, raw)
        try:
            return spec.ref(number)
        except ValueError:
            raise ConfigError(f"field {name!r}: unknown enum value {number}") from None
    return _from_json(spec.ref, raw)


def _from_json(cls: type[M], obj: Any) -> M:
    if not isinstance(obj, dict):
        raise ConfigError(f"expected a JSON object for {cls.__name__}")
    by_json = {spec.json: spec for spec in _specs(cls)}
    values: dict[str, Any] = {}
    for key, raw in obj.items():
        spec = by_json.get(key)
        if spec is None:
            raise ConfigError(f"unknown field {key!r} in {cls.__name__}")
        if raw is None:
            continue
        if spec.repeated:
            if not isinstance(raw, list):
                raise ConfigError(f"field {key!r}: expected a list")
            values[spec.name] = [_json_item(spec, item) for item in raw]
        else:
            values[spec.name] = _json_item(spec, raw)
    return cls(**values)


def _unique_pairs(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in pairs:
        if key in out:
            raise ConfigError(f"duplicate field {key!r}")
        out[key] = value
    return out


def marshal(message: _Message) -> str:
    """Return the JSON text of a message, indented by four spaces."""
    return json.dumps(_to_json(message), indent=4, ensure_ascii=False)


def unmarshal(data: str | bytes, message_type: type[M]) -> M:
    """Build a message of the given type from JSON text."""
    if isinstance(data, (bytes, bytearray)):
        try:
            data = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ConfigError("JSON data is not valid UTF-8") from exc
    try:
        obj = json.loads(data, object_pairs_hook=_unique_pairs)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON: {exc}") from exc
    return _from_json(message_type, obj)