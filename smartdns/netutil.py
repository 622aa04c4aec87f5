"""Address parsing, socket options and ipset netlink messages."""

from __future__ import annotations

import contextlib
import enum
import errno
import ipaddress
import os
import re
import socket
import string
import struct
from dataclasses import dataclass
from time import sleep

MAX_IP_LEN = 64
PATH_MAX = 4096

IPSET_MAXNAMELEN = 32
_NFNL_SUBSYS_IPSET = 6
_IPSET_PROTOCOL = 6
_IPSET_ATTR_PROTOCOL = 1
_IPSET_ATTR_SETNAME = 2
_IPSET_ATTR_TIMEOUT = 6
_IPSET_ATTR_DATA = 7
_IPSET_ATTR_IP = 1
_IPSET_ATTR_IPADDR_IPV4 = 1
_IPSET_ATTR_IPADDR_IPV6 = 2
_NLA_F_NESTED = 1 << 15
_NLA_F_NET_BYTEORDER = 1 << 14
_NLM_F_REQUEST = 0x1
_NLM_F_REPLACE = 0x100
_NETLINK_NETFILTER = 12

_ATOI_RE = re.compile(r"\s*([+-]?[0-9]+)")


def _atoi(text: str) -> int:
    match = _ATOI_RE.match(text)
    return int(match.group(1)) if match else 0


@dataclass(frozen=True)
class Uri:
    """A parsed ``scheme://host:port/path`` server address."""

    scheme: str
    host: str
    port: int | None
    path: str


class IpsetOperation(enum.IntEnum):
    """ipset netlink commands."""

    ADD = 9
    DEL = 10


def parse_ip(value: str) -> tuple[str, int | None]:
    """Split ``ip``, ``ip:port`` or ``[ipv6]:port``; port is None when absent."""
    port_text: str | None = None
    if "[" in value:
        end = value.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in {value!r}")
        ip = value[1:end]
        colon = value.find(":", end)
        if colon >= 0:
            port_text = value[colon + 1 :]
    else:
        colon = value.find(":")
        if colon >= 0 and ":" not in value[colon + 1 :]:
            ip = value[:colon]
            port_text = value[colon + 1 :]
        else:
            ip = value[:MAX_IP_LEN]
    if not ip:
        raise ValueError(f"no address in {value!r}")
    port = _atoi(port_text) if port_text is not None else None
    return ip, port


def parse_uri(value: str) -> Uri:
    """Parse a server URI into scheme, host, port and path."""
    scheme = ""
    rest = value
    marker = value.find("://")
    if marker >= 0:
        scheme = value[:marker]
        rest = value[marker + 3 :]
    slash = rest.find("/")
    if slash < 0:
        host, port = parse_ip(rest)
        return Uri(scheme, host, port, "")
    if slash >= PATH_MAX:
        raise ValueError("host part is too long")
    host, port = parse_ip(rest[:slash])
    return Uri(scheme, host, port, rest[slash:][:PATH_MAX])


def _check_is_ipv4(ip: str) -> bool:
    dots = 0
    digits = 0
    for char in ip:
        if char == ".":
            dots += 1
            digits = 0
            continue
        if digits >= 4:
            return False
        if char in string.digits:
            digits += 1
            continue
        return False
    return dots == 3


def _check_is_ipv6(ip: str) -> bool:
    colons = 0
    digits = 0
    for char in ip:
        if char in "[]":
            continue
        if char == ":":
            colons += 1
            digits = 0
            continue
        if digits >= 5:
            return False
        digits += 1
        if char in string.hexdigits:
            continue
        return False
    return colons <= 7


def check_is_ipaddr(ip: str) -> bool:
    """Loosely check that ``ip`` looks like an IPv4 or IPv6 address."""
    if "." in ip:
        return _check_is_ipv4(ip)
    if ":" in ip:
        return _check_is_ipv6(ip)
    return False


def host_from_sockaddr(family: int, address: object) -> str:
    """Return the textual host of a socket address, unmapping IPv4-in-IPv6."""
    host = address[0] if isinstance(address, tuple) else address
    if family == socket.AF_INET:
        return str(ipaddress.IPv4Address(host))
    if family == socket.AF_INET6:
        addr = ipaddress.IPv6Address(str(host).split("%", 1)[0])
        mapped = addr.ipv4_mapped
        return str(mapped) if mapped is not None else str(addr)
    raise ValueError(f"unsupported address family {family}")


def getaddr_by_host(host: str) -> tuple[int, tuple]:
    """Resolve ``host`` for DNS port 53 and return ``(family, sockaddr)``."""
    results = socket.getaddrinfo(host, 53, socket.AF_UNSPEC, socket.SOCK_STREAM)
    family, _type, _proto, _name, sockaddr = results[0]
    return family, sockaddr


def getsocknet_inet(sock: socket.socket) -> tuple[int, tuple]:
    """Return the local address of ``sock``, unmapping IPv4-in-IPv6."""
    address = sock.getsockname()
    if sock.family == socket.AF_INET:
        return socket.AF_INET, (address[0], address[1])
    if sock.family == socket.AF_INET6:
        addr = ipaddress.IPv6Address(address[0].split("%", 1)[0])
        if addr.ipv4_mapped is not None:
            return socket.AF_INET, (str(addr.ipv4_mapped), 0)
        return socket.AF_INET6, tuple(address)
    raise ValueError(f"unsupported address family {sock.family}")


def fill_sockaddr_by_ip(ip: bytes, port: int) -> tuple[int, tuple]:
    """Build ``(family, sockaddr)`` from packed address bytes and a port."""
    packed = bytes(ip)
    if len(packed) == 4:
        return socket.AF_INET, (socket.inet_ntop(socket.AF_INET, packed), port)
    if len(packed) == 16:
        return socket.AF_INET6, (socket.inet_ntop(socket.AF_INET6, packed), port, 0, 0)
    raise ValueError(f"invalid address length {len(packed)}")


def set_fd_nonblock(fd, nonblock: bool) -> None:
    """Switch a descriptor (or object with ``fileno``) to (non-)blocking mode."""
    if hasattr(fd, "fileno"):
        fd = fd.fileno()
    os.set_blocking(fd, not nonblock)


def set_sock_keepalive(sock: socket.socket, keepidle: int, keepinterval: int, keepcnt: int) -> None:
    """Enable TCP keepalive; the timing options are applied where supported."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    for name, value in (
        ("TCP_KEEPIDLE", keepidle),
        ("TCP_KEEPINTVL", keepinterval),
        ("TCP_KEEPCNT", keepcnt),
    ):
        option = getattr(socket, name, None)
        if option is None:
            continue
        with contextlib.suppress(OSError):
            sock.setsockopt(socket.IPPROTO_TCP, option, value)


def set_sock_lingertime(sock: socket.socket, time: int) -> None:
    """Turn lingering on with the given linger time in seconds."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, time))


def has_network_raw_cap() -> bool:
    """Tell whether the process may open raw ICMP sockets."""
    try:
        probe = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
    except OSError:
        return False
    probe.close()
    return True


def _align(length: int) -> int:
    return (length + 3) & ~3


def _attr(attr_type: int, payload: bytes) -> bytes:
    length = 4 + len(payload)
    data = struct.pack("=HH", length, attr_type) + payload
    return data + b"\0" * (_align(length) - length)


def _nest(attr_type: int, content: bytes) -> bytes:
    return struct.pack("=HH", 4 + len(content), attr_type) + content


def _packed_address(addr: bytes | str) -> bytes:
    if isinstance(addr, str):
        return ipaddress.ip_address(addr).packed
    return bytes(addr)


def build_ipset_message(
    setname: str,
    addr: bytes | str,
    timeout: int = 0,
    operation: IpsetOperation = IpsetOperation.ADD,
    timeout_enabled: bool = False,
) -> bytes:
    """Build the netlink request that adds or deletes ``addr`` in an ipset."""
    packed = _packed_address(addr)
    if len(packed) == 4:
        family, addr_type = socket.AF_INET, _IPSET_ATTR_IPADDR_IPV4
    elif len(packed) == 16:
        family, addr_type = socket.AF_INET6, _IPSET_ATTR_IPADDR_IPV6
    else:
        raise ValueError(f"invalid address length {len(packed)}")
    name = setname.encode()
    if len(name) >= IPSET_MAXNAMELEN:
        raise ValueError(f"ipset name {setname!r} is too long")

    ip_attrs = _attr(addr_type | _NLA_F_NET_BYTEORDER, packed)
    data = _nest(_NLA_F_NESTED | _IPSET_ATTR_IP, ip_attrs)
    if timeout > 0 and timeout_enabled:
        data += _attr(
            _IPSET_ATTR_TIMEOUT | _NLA_F_NET_BYTEORDER,
            struct.pack("!I", timeout & 0xFFFFFFFF),
        )
    body = (
        struct.pack("!BBH", family, 0, 0)
        + _attr(_IPSET_ATTR_PROTOCOL, bytes([_IPSET_PROTOCOL]))
        + _attr(_IPSET_ATTR_SETNAME, name + b"\0")
        + _nest(_NLA_F_NESTED | _IPSET_ATTR_DATA, data)
    )
    header = struct.pack(
        "=IHHII",
        16 + len(body),
        int(operation) | (_NFNL_SUBSYS_IPSET << 8),
        _NLM_F_REQUEST | _NLM_F_REPLACE,
        0,
        0,
    )
    return header + body


class IpsetClient:
    """Sends ipset add/delete requests over a netfilter netlink socket."""

    def __init__(self, timeout_enabled: bool = False) -> None:
        self.timeout_enabled = timeout_enabled
        self._sock: socket.socket | None = None

    def _socket(self) -> socket.socket:
        if self._sock is None:
            family = getattr(socket, "AF_NETLINK", None)
            if family is None:
                raise OSError(errno.EAFNOSUPPORT, "netlink sockets are not available")
            protocol = getattr(socket, "NETLINK_NETFILTER", _NETLINK_NETFILTER)
            self._sock = socket.socket(family, socket.SOCK_RAW, protocol)
        return self._sock

    def _send(self, message: bytes) -> int:
        sock = self._socket()
        while True:
            try:
                return sock.sendto(message, (0, 0))
            except (BlockingIOError, InterruptedError):
                sleep(0.00001)

    def add(self, setname: str, addr: bytes | str, timeout: int = 0) -> int:
        """Add ``addr`` to the set; returns the number of bytes sent."""
        message = build_ipset_message(
            setname, addr, timeout, IpsetOperation.ADD, self.timeout_enabled
        )
        return self._send(message)

    def delete(self, setname: str, addr: bytes | str) -> int:
        """Remove ``addr`` from the set; returns the number of bytes sent."""
        message = build_ipset_message(setname, addr, 0, IpsetOperation.DEL, self.timeout_enabled)
        return self._send(message)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None