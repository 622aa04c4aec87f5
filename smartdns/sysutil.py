"""Process, string, hashing and TLS ClientHello helpers."""

from __future__ import annotations

import base64
import binascii
import fcntl
import hashlib
import os
import string
import time

_TLS_HEADER_LEN = 5
_TLS_HANDSHAKE_CONTENT_TYPE = 0x16
_TLS_HANDSHAKE_TYPE_CLIENT_HELLO = 0x01
_ASCII_UPPER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


class TlsParseError(ValueError):
    """Base class for failures to extract a server name from TLS data."""


class IncompleteTlsRecord(TlsParseError):
    """More data is needed to hold the whole TLS record."""


class NoServerName(TlsParseError):
    """The ClientHello carries no server name indication."""


class InvalidTlsRecord(TlsParseError):
    """The data is not a well-formed TLS ClientHello."""


class AlreadyRunningError(RuntimeError):
    """Another process holds the lock on the pid file."""


class PidFile:
    """A locked file holding the pid of the running server."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = os.fspath(path)
        self._fd: int | None = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Create and lock the file and write the current pid into it."""
        if self._fd is not None:
            return
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT | os.O_CLOEXEC, 0o600)
        try:
            try:
                fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError as exc:
                raise AlreadyRunningError("Server is already running.") from exc
            os.ftruncate(fd, 0)
            os.write(fd, f"{os.getpid()}\n".encode())
        except BaseException:
            os.close(fd)
            raise
        self._fd = fd

    def release(self) -> None:
        """Drop the lock and close the file."""
        if self._fd is None:
            return
        os.close(self._fd)
        self._fd = None

    def __enter__(self) -> PidFile:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def get_tick_count() -> int:
    """Milliseconds of a monotonic clock."""
    return time.monotonic_ns() // 1_000_000


def reverse_string(text: str, to_lower: bool = False) -> str:
    """Reverse ``text``, optionally lowering ASCII capitals."""
    reversed_text = text[::-1]
    return reversed_text.translate(_ASCII_UPPER) if to_lower else reversed_text


def is_numeric(text: str) -> bool:
    """True when every character is an ASCII digit (an empty string counts)."""
    return all(char in string.digits for char in text)


def get_free_space(path: str | os.PathLike[str]) -> int:
    """Bytes available to unprivileged users on the filesystem of ``path``, or 0."""
    try:
        stats = os.statvfs(path)
    except OSError:
        return 0
    return stats.f_frsize * stats.f_bavail


def sha256(data: bytes) -> bytes:
    """SHA-256 digest of ``data``."""
    return hashlib.sha256(data).digest()


def base64_decode(text: str) -> bytes:
    """Decode standard base64; raises ValueError on malformed input."""
    if not text:
        return b""
    try:
        return base64.b64decode(text.strip(), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc


def _u16(data: bytes, pos: int) -> int:
    return (data[pos] << 8) + data[pos + 1]


def _parse_server_name_extension(data: bytes) -> str:
    pos = 2
    while pos + 3 < len(data):
        length = _u16(data, pos + 1)
        if pos + 3 + length > len(data):
            raise InvalidTlsRecord("server name entry overruns extension")
        if data[pos] == 0x00:
            name = data[pos + 3 : pos + 3 + length].split(b"\0", 1)[0]
            return name.decode("utf-8", errors="replace")
        pos += 3 + length
    if pos != len(data):
        raise InvalidTlsRecord("trailing bytes in server name extension")
    raise NoServerName("no host_name entry")


def _parse_extensions(data: bytes) -> str:
    pos = 0
    while pos + 4 <= len(data):
        length = _u16(data, pos + 2)
        if data[pos] == 0x00 and data[pos + 1] == 0x00:
            if pos + 4 + length > len(data):
                raise InvalidTlsRecord("server name extension overruns data")
            return _parse_server_name_extension(data[pos + 4 : pos + 4 + length])
        pos += 4 + length
    if pos != len(data):
        raise InvalidTlsRecord("trailing bytes in extensions")
    raise NoServerName("no server name extension")


def parse_tls_header(data: bytes) -> str:
    """Return the SNI host name of a TLS ClientHello record."""
    data = bytes(data)
    if len(data) < _TLS_HEADER_LEN:
        raise IncompleteTlsRecord("shorter than a TLS header")
    if data[0] & 0x80 and data[2] == 1:
        raise NoServerName("SSL 2.0 compatible ClientHello")
    if data[0] != _TLS_HANDSHAKE_CONTENT_TYPE:
        raise InvalidTlsRecord("not a handshake record")
    major, minor = data[1], data[2]
    if major < 3 or major >= 0x80:
        raise NoServerName("protocol version has no extensions")

    record_len = _u16(data, 3) + _TLS_HEADER_LEN
    data_len = min(len(data), record_len)
    if data_len < record_len:
        raise IncompleteTlsRecord("TLS record is truncated")
    data = data[:data_len]

    pos = _TLS_HEADER_LEN
    if pos + 1 > data_len or data[pos] != _TLS_HANDSHAKE_TYPE_CLIENT_HELLO:
        raise InvalidTlsRecord("not a ClientHello")
    pos += 38

    if pos + 1 > data_len:
        raise InvalidTlsRecord("missing session id")
    pos += 1 + data[pos]

    if pos + 2 > data_len:
        raise InvalidTlsRecord("missing cipher suites")
    pos += 2 + _u16(data, pos)

    if pos + 1 > data_len:
        raise InvalidTlsRecord("missing compression methods")
    pos += 1 + data[pos]

    if pos == data_len and major == 3 and minor == 0:
        raise NoServerName("SSL 3.0 without extensions")

    if pos + 2 > data_len:
        raise InvalidTlsRecord("missing extensions length")
    length = _u16(data, pos)
    pos += 2
    if pos + length > data_len:
        raise InvalidTlsRecord("extensions overrun record")
    return _parse_extensions(data[pos : pos + length])