"""Loading of line-oriented ``key value...`` configuration files."""

from __future__ import annotations

import enum
import os
import re
from typing import Callable, Iterable, Iterator, Sequence

MAX_LINE_LEN = 1024
MAX_KEY_LEN = 64

_LINE_RE = re.compile(r"\s*(\S{1,%d})\s*([^\r\n]+)?" % (MAX_KEY_LEN - 1))
_ATOI_RE = re.compile(r"\s*([+-]?[0-9]+)")

_current_file: str | None = None


class ConfResult(enum.IntEnum):
    """Outcome of applying one configuration line."""

    OK = 0
    ERR = -1
    NOENT = -2
    WARN = -3


class ConfError(Exception):
    """Raised when a configuration file cannot be loaded."""


def _atoi(text: str) -> int:
    match = _ATOI_RE.match(text)
    return int(match.group(1)) if match else 0


def current_conf_file() -> str | None:
    """Return the path of the file whose line is being applied, if any."""
    return _current_file


class ConfigItem:
    """An item that keeps the raw arguments following its key."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.value: object = None

    def apply(self, args: Sequence[str]) -> ConfResult:
        if len(args) < 2:
            return ConfResult.ERR
        self.value = list(args[1:])
        return ConfResult.OK

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, value={self.value!r})"


class IntItem(ConfigItem):
    """Integer item, clamped to ``[minimum, maximum]``."""

    def __init__(self, name: str, minimum: int, maximum: int, value: int = 0) -> None:
        super().__init__(name)
        self.minimum = minimum
        self.maximum = maximum
        self.value = value

    def apply(self, args: Sequence[str]) -> ConfResult:
        if len(args) < 2:
            return ConfResult.ERR
        number = _atoi(args[1])
        self.value = min(max(number, self.minimum), self.maximum)
        return ConfResult.OK


class StringItem(ConfigItem):
    """String item holding at most ``size`` characters."""

    def __init__(self, name: str, size: int, value: str = "") -> None:
        super().__init__(name)
        self.size = size
        self.value = value

    def apply(self, args: Sequence[str]) -> ConfResult:
        if len(args) < 2:
            return ConfResult.ERR
        self.value = args[1][: self.size]
        return ConfResult.OK


class YesNoItem(ConfigItem):
    """Boolean item accepting yes/no; ``auto`` leaves the value unchanged."""

    def __init__(self, name: str, value: bool = False) -> None:
        super().__init__(name)
        self.value = value

    def apply(self, args: Sequence[str]) -> ConfResult:
        if len(args) < 2:
            return ConfResult.ERR
        text = args[1]
        if text in ("auto", "AUTO"):
            return ConfResult.OK
        self.value = text in ("yes", "YES")
        return ConfResult.OK


class SizeItem(ConfigItem):
    """Size item understanding k/m/g suffixes, clamped to its bounds."""

    def __init__(self, name: str, minimum: int, maximum: int, value: int = 0) -> None:
        super().__init__(name)
        self.minimum = minimum
        self.maximum = maximum
        self.value = value

    def apply(self, args: Sequence[str]) -> ConfResult:
        if len(args) < 2:
            return ConfResult.ERR
        text = args[1]
        if "k" in text or "K" in text:
            base = 1024
        elif "m" in text or "M" in text:
            base = 1024 * 1024
        elif "g" in text or "G" in text:
            base = 1024 * 1024 * 1024
        else:
            base = 1
        number = _atoi(text)
        if number < 0:
            return ConfResult.ERR
        self.value = min(max(number * base, self.minimum), self.maximum)
        return ConfResult.OK


class CustomItem(ConfigItem):
    """Item handled by a user function taking the argument list."""

    def __init__(self, name: str, func: Callable[[list[str]], object]) -> None:
        super().__init__(name)
        self.func = func

    def apply(self, args: Sequence[str]) -> ConfResult:
        result = self.func(list(args))
        try:
            return ConfResult(result)
        except ValueError:
            return ConfResult.ERR


def parse_args(key: str, value: str) -> list[str]:
    """Split ``value`` into arguments, honouring double quotes and backslashes."""
    args = [key]
    token: str | None = None
    separator = " "
    index = 0
    while index < len(value):
        char = value[index]
        if char == "\\":
            if index + 1 < len(value):
                token = (token or "") + value[index + 1]
                index += 2
            else:
                token = (token or "") + char
                index += 1
            continue
        if char == '"' and token is None:
            separator = '"'
        if token is None:
            if char != separator:
                token = char
            index += 1
            continue
        if char == separator:
            args.append(token)
            token = None
            separator = " "
        else:
            token += char
        index += 1
    if token:
        args.append(token)
    return args


def default_error_handler(path: str, lineno: int, result: ConfResult) -> bool:
    """Report a failed line; return True when loading should stop."""
    if result == ConfResult.OK:
        return False
    print(f"process config file '{path}' failed at line {lineno}.")
    return result in (ConfResult.ERR, ConfResult.NOENT)


def _read_lines(stream: Iterable[str]) -> Iterator[str]:
    chunk = MAX_LINE_LEN - 1
    for raw in stream:
        for start in range(0, len(raw), chunk):
            yield raw[start : start + chunk]


def _scan_line(line: str) -> tuple[str, str | None] | None:
    match = _LINE_RE.match(line)
    if match is None:
        return None
    return match.group(1), match.group(2)


def load_conf(
    path: str | os.PathLike[str],
    items: Iterable[ConfigItem],
    handler: Callable[[str, int, ConfResult], bool] | None = None,
) -> None:
    """Apply every line of the file at ``path`` to the matching item."""
    global _current_file
    if handler is None:
        handler = default_error_handler
    path_text = os.fspath(path)
    by_name: dict[str, ConfigItem] = {}
    for item in items:
        by_name.setdefault(item.name, item)

    try:
        stream = open(path_text, encoding="utf-8", errors="replace")
    except OSError as exc:
        raise ConfError(f"cannot open config file {path_text!r}: {exc}") from exc

    with stream:
        for lineno, line in enumerate(_read_lines(stream), start=1):
            scanned = _scan_line(line)
            if scanned is None:
                continue
            key, value = scanned
            if key.startswith("#"):
                continue
            if value is None:
                raise ConfError(f"{path_text}:{lineno}: missing value for {key!r}")
            item = by_name.get(key)
            if item is None:
                handler(path_text, lineno, ConfResult.NOENT)
                continue
            _current_file = path_text
            result = item.apply(parse_args(key, value))
            if handler(path_text, lineno, result):
                raise ConfError(f"{path_text}:{lineno}: invalid option {key!r}")