# mieru

This package handles configuration and block ciphers for the mieru proxy
client and server.

It has two parts:

- `mieru.cipher` provides AES-GCM block ciphers. Their keys come from a
  password through PBKDF2-HMAC-SHA256. The salts change every minute, so one
  password gives three ciphers, one each for the previous, the current and
  the next minute.
- `mieru.appctl` provides the client and server configuration models. It
  validates and merges them, reads and writes them on disk as protobuf or
  JSON, and shares a client configuration as a `mieru://` URL. It also keeps
  the process-wide application status and type, and offers a few debugging
  aids.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Ciphers

```python
from mieru.cipher.blocks import block_cipher_from_password, try_decrypt

password = b"password"
sender = block_cipher_from_password(password, True)
ciphertext = sender.encrypt(b"hello")

receiver, plaintext = try_decrypt(ciphertext, password, True)
assert plaintext == b"hello"
```

These are the modules and what they hold:

- `mieru.cipher.keygen` has `derive_key(password, salt, key_len, iterations)`.
  It uses PBKDF2-HMAC-SHA256 and runs 4096 iterations by default. It also has
  `salts_from_time(t)`, which rounds `t` to the nearest minute and returns
  three SHA-256 salts.
- `mieru.cipher.aesgcm` has `AESGCMBlockCipher` and `validate_key_size`. The
  cipher takes a 16, 24 or 32 byte key. `increment_nonce` adds one to a
  big-endian nonce. `CipherError` is raised on any encryption or decryption
  failure.
- `mieru.cipher.blocks` has `hash_password`, `block_cipher_from_password`,
  `block_cipher_list_from_password`, `select_decrypt`, `try_decrypt` and
  `clone_block_ciphers`.

A stateless cipher puts a fresh 12 byte nonce in front of every message. The
first 8 bytes of that nonce are printable ASCII. Stateless cipher lists for a
password are cached for one minute.

You turn on implicit nonce mode with `set_implicit_nonce_mode(True)`. In this
mode the nonce goes out only with the first message, and every later message
adds one to it. The two ends must therefore see the same sequence of calls.
Ciphers made with `stateless=False` use this mode. `encrypt_with_nonce` and
`decrypt_with_nonce` are refused while it is on. `clone()` returns an
independent copy with the same key, mode, nonce and `block_context`.

`hash_password(raw_password, unique_value)` returns the SHA-256 digest of the
password and the unique value, joined by a zero byte.

## Configuration models

`mieru.appctl.model` defines these dataclasses:

- `ClientConfig`, `ClientProfile`, `ServerEndpoint`, `User`, `Quota`,
  `PortBinding` and `ClientAdvancedSettings`.
- `ServerConfig`, `ServerAdvancedSettings`, `Egress`, `EgressProxy` and
  `EgressRule`.
- The enums `TransportProtocol`, `LoggingLevel`, `ProxyProtocol` and
  `EgressAction`.

Each message converts to and from the protobuf wire format with
`to_bytes()` and `from_bytes()`. For JSON there are two functions.
`marshal(message)` writes camel-case field names, indents by four spaces and
leaves out unset fields. `unmarshal(data, message_type)` rejects unknown or
duplicate fields. `find_config_file_type(file_name)` returns
`JSON_CONFIG_FILE_TYPE` for names that end in `.json` and
`PROTOBUF_CONFIG_FILE_TYPE` for any other name.

`mieru.appctl.url` has `client_config_to_url(config)` and
`url_to_client_config(url)`. The URL is `mieru://` followed by the standard
base64 encoding of the protobuf bytes.

`mieru.appctl.users` has `user_list_to_map`, `hash_user_password` and
`hash_user_passwords`. The last two store the hex hash of the password under
the user name. They clear the plain password unless `keep_plaintext` is true.

## Client configuration

```python
from mieru.appctl.client_store import ClientConfigStore
from mieru.appctl.model import ClientConfig

store = ClientConfigStore(config_dir="/tmp/mieru", environ={})
store.store(ClientConfig())            # start from an empty configuration
store.apply_json_file("client.json")   # validate, merge by profile, save
print(store.json_text())               # the stored configuration as JSON
print(store.url())                     # a mieru:// link to share it
store.delete_profile("old")            # the active profile cannot be deleted
```

The file is `client.conf.pb` inside the configuration directory. Without
`config_dir`, that directory is `mieru` under the user's configuration
directory. `MIERU_CONFIG_FILE` (protobuf) and `MIERU_CONFIG_JSON_FILE` (JSON)
in the environment override the path.

`load()` raises `FileNotFoundError` when there is no file. The apply methods
therefore need an existing configuration, even an empty one. `apply_url(url)`
merges a shared `mieru://` configuration. When profiles are stored, they keep
the plain password and gain a hashed one.

## Server configuration

```python
from mieru.appctl.model import ServerConfig
from mieru.appctl.server_store import ServerConfigStore

store = ServerConfigStore(config_file="/tmp/mita/server.conf.pb", environ={})
store.store(ServerConfig())
store.apply_json_file("server.json")
store.delete_users(["user2", "user3"])
config = store.load()
```

The default file is `/etc/mita/server.conf.pb`, and its directory must
already exist. `MITA_CONFIG_FILE` and `MITA_CONFIG_JSON_FILE` override the
path. When users are stored, their plain passwords are replaced by hashed
ones. `server_uds(environ)` returns the RPC socket path, which is
`/var/run/mita.sock` unless `MITA_UDS_PATH` is set.

## Validation and merging

These functions raise `ConfigError` when a configuration breaks a rule:

- `validate_client_config_patch` and `validate_full_client_config` in
  `mieru.appctl.client_rules`.
- `validate_server_config_patch` and `validate_full_server_config` in
  `mieru.appctl.server_rules`.

The rules cover:

- missing names or passwords
- user quotas on the client, and non-positive quotas on the server
- bad IP addresses, ports or port ranges
- an MTU outside 1280–1500
- clashing RPC, socks5 and HTTP proxy ports
- a missing active profile
- egress settings other than a single `*`/`*`/`PROXY` rule that names a
  defined proxy

`merge_client_config_by_profile(dst, src)` and `merge_server_config(dst, src)`
merge `src` into `dst` in place. Profiles are merged by profile name and
users by user name, and each list ends up sorted by name.
`get_active_profile_from_config(config, name)` finds a profile by name.

`mieru.appctl.portbinding.flat_port_bindings(bindings)` expands port ranges.
It returns a sorted list of single TCP ports followed by the UDP ports.

`is_server_daemon_running(status)` and `is_server_proxy_running(status)`
check an `AppStatus` value and return it, or raise `RuntimeError`.

## Application state and debugging

`mieru.appctl.state` holds the status and type of the current process:

- `get_app_status()` and `set_app_status(status)`. `UNKNOWN` cannot be set.
- `set_app_type(app_type)`. Only the first call takes effect.
- `is_client_app()` and `is_server_app()`.

`mieru.appctl.debug` has these aids:

- `get_thread_dump()` returns the stacks of all threads.
- `start_cpu_profile(path)` and `stop_cpu_profile()` count Python function
  calls and the time spent in them, and write the counts to `path`.
- `get_heap_profile(path)` collects garbage, then writes counts of live
  objects by type.

## What this package does not do

This package carries no proxy. It has no socks5 or HTTP proxy server, no
multiplexer and no network transport. It runs no RPC services, so nothing
listens on the socket path that `server_uds()` returns. It installs no
command-line programs. It only manages configuration, ciphers and
process-wide state, and other code drives it.