# smartdns

Building blocks for a local DNS forwarder, usable on their own from Python.
The package needs no third-party libraries; `smartdns.sysutil` uses `fcntl`
and therefore needs a POSIX system, and `IpsetClient` needs Linux netlink.

## Modules

- `smartdns.conf`: loads line-oriented `key value...` configuration files.
  Items are `ConfigItem` (keeps the raw arguments), `IntItem` and `SizeItem`
  (clamped to `minimum`/`maximum`; `SizeItem` understands `k`, `m` and `g`
  suffixes), `StringItem` (cut to `size` characters), `YesNoItem` (`yes`/`YES`
  is true, `auto`/`AUTO` leaves the value alone) and `CustomItem` (calls your
  function with the argument list). `parse_args` splits a value into arguments,
  honouring double quotes and backslash escapes. `load_conf` raises `ConfError`
  when the file cannot be opened, when a key has no value, or when the error
  handler asks to stop; `default_error_handler` prints the failing line and
  stops on `ConfResult.ERR` and `ConfResult.NOENT`. `current_conf_file()`
  returns the path of the file being applied.
- `smartdns.netutil`: `parse_ip` (splits `ip`, `ip:port` and `[ipv6]:port`),
  `parse_uri` (returns a `Uri` with `scheme`, `host`, `port`, `path`),
  `check_is_ipaddr` (a loose shape check), `host_from_sockaddr`,
  `getaddr_by_host`, `getsocknet_inet`, `fill_sockaddr_by_ip`, socket option
  helpers (`set_fd_nonblock`, `set_sock_keepalive`, `set_sock_lingertime`),
  `has_network_raw_cap`, and ipset support: `build_ipset_message` builds the
  netlink request, `IpsetClient` sends it (`add`, `delete`, `close`).
- `smartdns.sysutil`: `PidFile` (a locked pid file, usable as a context
  manager; raises `AlreadyRunningError` when another process holds it),
  `parse_tls_header` (server name from a TLS ClientHello; raises
  `IncompleteTlsRecord`, `NoServerName` or `InvalidTlsRecord`, all subclasses
  of `TlsParseError`), `sha256`, `base64_decode`, `reverse_string`,
  `is_numeric`, `get_free_space` and `get_tick_count`.
- `smartdns.bitops`: `find_first_bit`, `find_next_bit`, `find_first_zero_bit`,
  `find_next_zero_bit`, `find_next_and_bit` over bitmaps given as an `int` or
  a sequence of 64-bit words, and `hweight8` through `hweight64`.
- `smartdns.radix`: a Patricia trie of IPv4/IPv6 prefixes. `RadixTree.lookup`
  finds or creates the node for a `Prefix`; `search_exact`, `search_best`
  (longest prefix match), `remove`, `clear`, iteration and `len()` work on the
  nodes carrying a prefix. `prefix_pton` parses `addr` or `addr/len` and clears
  host bits; `prefix_from_blob` builds a prefix from 4 or 16 packed bytes.

## Install

```
pip install .
```

For tests:

```
pip install ".[test]"
pytest
```

## Examples

Load a config file:

```python
from smartdns.conf import IntItem, SizeItem, YesNoItem, load_conf

cache_size = IntItem("cache-size", minimum=0, maximum=65536)
log_size = SizeItem("log-size", minimum=0, maximum=1024 * 1024 * 1024)
prefetch = YesNoItem("prefetch-domain")
load_conf("smartdns.conf", [cache_size, log_size, prefetch], None)
print(cache_size.value, log_size.value, prefetch.value)
```

Parse an upstream address:

```python
from smartdns.netutil import parse_ip, parse_uri

parse_ip("[2001:db8::1]:853")         # ("2001:db8::1", 853)
parse_ip("192.0.2.1")                 # ("192.0.2.1", None)
uri = parse_uri("https://1.1.1.1/dns-query")
print(uri.scheme, uri.host, uri.port, uri.path)  # https 1.1.1.1 None /dns-query
```

Longest-prefix match:

```python
from smartdns.radix import RadixTree, prefix_pton

tree = RadixTree()
tree.lookup(prefix_pton("10.0.0.0/8")).data = "private"
node = tree.search_best(prefix_pton("10.1.2.3"))
print(node.data)  # private
```

Server name of a TLS ClientHello:

```python
from smartdns.sysutil import NoServerName, parse_tls_header

try:
    print(parse_tls_header(client_hello_bytes))
except NoServerName:
    print("no SNI")
```

Bit searches:

```python
from smartdns.bitops import find_first_zero_bit, hweight32

find_first_zero_bit(0b0111, 8)  # 3
hweight32(0xFF00FF00)           # 16
```

## What this package does not do

It is a library only. It has no command to run, no DNS server or client, no
upstream querying, no cache and no logging facility; those have to come from
elsewhere. `IpsetClient` only sends requests and reads no replies, and sending
them needs a Linux host and the right to open a netfilter netlink socket.