import json

import pytest

from mieru.appctl.model import (
    ClientConfig,
    ClientProfile,
    ConfigError,
    ConfigFileType,
    Egress,
    EgressAction,
    EgressProxy,
    EgressRule,
    LoggingLevel,
    PortBinding,
    ProxyProtocol,
    Quota,
    ServerAdvancedSettings,
    ServerConfig,
    ServerEndpoint,
    TransportProtocol,
    User,
    find_config_file_type,
    marshal,
    unmarshal,
)


def _client_config():
    password = "password"
    return ClientConfig(
        active_profile="default",
        profiles=[
            ClientProfile(
                profile_name="default",
                user=User(name="alice", password=password),
                servers=[
                    ServerEndpoint(
                        ip_address="1.2.3.4",
                        port_bindings=[
                            PortBinding(port=6666, protocol=TransportProtocol.TCP),
                            PortBinding(port_range="7000-7010", protocol=TransportProtocol.UDP),
                        ],
                    )
                ],
                mtu=1400,
            )
        ],
        rpc_port=8989,
        socks5_port=1080,
        logging_level=LoggingLevel.INFO,
        socks5_listen_lan=True,
        http_proxy_port=8080,
        http_proxy_listen_lan=False,
    )


def _server_config():
    return ServerConfig(
        port_bindings=[PortBinding(port=2012, protocol=TransportProtocol.TCP)],
        users=[
            User(name="bob", hashed_password="placeholder", quotas=[Quota(days=1, megabytes=100)])
        ],
        advanced_settings=ServerAdvancedSettings(allow_local_destination=True),
        logging_level=LoggingLevel.DEBUG,
        mtu=1400,
        egress=Egress(
            proxies=[
                EgressProxy(
                    name="up",
                    protocol=ProxyProtocol.SOCKS5_PROXY_PROTOCOL,
                    host="127.0.0.1",
                    port=1080,
                )
            ],
            rules=[
                EgressRule(
                    ip_ranges=["*"], domain_names=["*"], action=EgressAction.PROXY, proxy_name="up"
                )
            ],
        ),
    )


@pytest.mark.parametrize(
    "name, expected",
    [
        ("client.json", ConfigFileType.JSON_CONFIG_FILE_TYPE),
        ("client.conf.pb", ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE),
        ("json", ConfigFileType.PROTOBUF_CONFIG_FILE_TYPE),
        ("/etc/mita/server.json", ConfigFileType.JSON_CONFIG_FILE_TYPE),
    ],
)
def test_find_config_file_type(name, expected):
    assert find_config_file_type(name) == expected


def test_client_config_bytes_round_trip():
    config = _client_config()
    assert ClientConfig.from_bytes(config.to_bytes()) == config


def test_server_config_bytes_round_trip():
    config = _server_config()
    assert ServerConfig.from_bytes(config.to_bytes()) == config


def test_client_config_json_round_trip():
    config = _client_config()
    assert unmarshal(marshal(config), ClientConfig) == config


def test_server_config_json_round_trip():
    config = _server_config()
    assert unmarshal(marshal(config).encode("utf-8"), ServerConfig) == config


def test_lan_field_json_names():
    data = json.loads(marshal(ClientConfig(socks5_listen_lan=True, http_proxy_listen_lan=False)))
    assert data == {"socks5ListenLAN": True, "httpProxyListenLAN": False}


def test_empty_message_encodings():
    assert ClientConfig().to_bytes() == b""
    assert marshal(ServerConfig()) == "{}"
    assert ClientConfig.from_bytes(b"") == ClientConfig()


def test_single_varint_field_wire_bytes():
    assert PortBinding(port=1).to_bytes() == b"\x08\x01"


def test_presence_of_default_values_is_kept():
    config = ClientConfig(rpc_port=0)
    decoded = ClientConfig.from_bytes(config.to_bytes())
    assert decoded.rpc_port == 0
    assert decoded != ClientConfig()


def test_negative_int32_round_trip():
    quota = Quota(days=-5, megabytes=-1)
    assert Quota.from_bytes(quota.to_bytes()) == quota


def test_marshal_uses_enum_names_and_omits_unset():
    config = ClientConfig(active_profile="default", socks5_port=1080, logging_level=LoggingLevel.INFO)
    data = json.loads(marshal(config))
    assert data == {"activeProfile": "default", "socks5Port": 1080, "loggingLevel": "INFO"}


def test_unmarshal_accepts_enum_numbers_and_quoted_ints():
    text = '{"port": "6666", "protocol": 2}'
    binding = unmarshal(text, PortBinding)
    assert binding == PortBinding(port=6666, protocol=TransportProtocol.TCP)


def test_unmarshal_null_leaves_field_unset():
    assert unmarshal('{"rpcPort": null}', ClientConfig) == ClientConfig()


@pytest.mark.parametrize(
    "text",
    [
        '{"unknownField": 1}',
        '{"rpcPort": 1.5}',
        '{"rpcPort": true}',
        '{"rpcPort": 4294967296}',
        '{"loggingLevel": "LOUD"}',
        '{"profiles": {}}',
        '{"activeProfile": 3}',
        '{"socks5ListenLAN": "yes"}',
        '{"rpcPort": 1, "rpcPort": 2}',
        "[]",
        "{not json",
    ],
)
def test_unmarshal_rejects_invalid_json(text):
    with pytest.raises(ConfigError):
        unmarshal(text, ClientConfig)


@pytest.mark.parametrize("data", [b"\x08", b"\x12\x05ab", b"\x00\x01", b"\x0b"])
def test_from_bytes_rejects_malformed_data(data):
    with pytest.raises(ConfigError):
        ClientConfig.from_bytes(data)


def test_from_bytes_skips_unknown_fields():
    config = ClientConfig(rpc_port=8989)
    data = b"\xf8\x01\x05" + config.to_bytes()
    assert ClientConfig.from_bytes(data) == config