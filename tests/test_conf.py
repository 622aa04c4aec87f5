import pytest
from hypothesis import given, strategies as st

from smartdns.conf import (
    ConfError,
    ConfResult,
    ConfigItem,
    CustomItem,
    IntItem,
    SizeItem,
    StringItem,
    YesNoItem,
    current_conf_file,
    default_error_handler,
    load_conf,
    parse_args,
)


def test_parse_args_splits_on_spaces():
    assert parse_args("server", "1.2.3.4:53 -group office") == [
        "server",
        "1.2.3.4:53",
        "-group",
        "office",
    ]


def test_parse_args_quotes():
    assert parse_args("k", 'a "b c" d') == ["k", "a", "b c", "d"]


def test_parse_args_escape_keeps_separator():
    assert parse_args("k", r"a\ b c") == ["k", "a b", "c"]


def test_parse_args_collapses_spaces():
    assert parse_args("k", "a   b ") == ["k", "a", "b"]


def test_parse_args_key_only():
    assert parse_args("k", "") == ["k"]


@given(st.lists(st.text(alphabet="abcxyz0129-./:", min_size=1, max_size=8), max_size=6))
def test_parse_args_roundtrip(tokens):
    assert parse_args("key", " ".join(tokens)) == ["key", *tokens]


def test_int_item_clamps():
    item = IntItem("x", 0, 10)
    assert item.apply(["x", "5"]) == ConfResult.OK
    assert item.value == 5
    item.apply(["x", "20"])
    assert item.value == 10
    item.apply(["x", "-3"])
    assert item.value == 0
    item.apply(["x", "7abc"])
    assert item.value == 7


def test_int_item_missing_argument():
    item = IntItem("x", 0, 10, value=3)
    assert item.apply(["x"]) == ConfResult.ERR
    assert item.value == 3


def test_string_item_truncates():
    item = StringItem("s", 4)
    assert item.apply(["s", "abcdef"]) == ConfResult.OK
    assert item.value == "abcd"


def test_yesno_item():
    item = YesNoItem("b")
    item.apply(["b", "yes"])
    assert item.value is True
    item.apply(["b", "auto"])
    assert item.value is True
    item.apply(["b", "NO"])
    assert item.value is False
    item.apply(["b", "YES"])
    item.apply(["b", "maybe"])
    assert item.value is False


def test_size_item_suffixes():
    item = SizeItem("size", 0, 1 << 40)
    item.apply(["size", "1k"])
    assert item.value == 1024
    item.apply(["size", "2M"])
    assert item.value == 2 * 1024 * 1024
    item.apply(["size", "3"])
    assert item.value == 3


def test_size_item_negative_and_clamp():
    item = SizeItem("size", 10, 100, value=50)
    assert item.apply(["size", "-1"]) == ConfResult.ERR
    assert item.value == 50
    item.apply(["size", "1g"])
    assert item.value == 100
    item.apply(["size", "1"])
    assert item.value == 10


def test_custom_item_receives_args():
    seen = []

    def handle(args):
        seen.append(args)
        return ConfResult.WARN

    item = CustomItem("c", handle)
    assert item.apply(["c", "a", "b"]) == ConfResult.WARN
    assert seen == [["c", "a", "b"]]


def test_raw_item_keeps_arguments():
    item = ConfigItem("raw")
    assert item.apply(["raw", "a", "b"]) == ConfResult.OK
    assert item.value == ["a", "b"]
    assert ConfigItem("raw").apply(["raw"]) == ConfResult.ERR


def test_load_conf_applies_items(tmp_path):
    path = tmp_path / "smartdns.conf"
    path.write_text(
        "# comment\n"
        "port 5353\n"
        "unknown value\n"
        "\n"
        "log-size 1k\n"
        "enable yes\n"
    )
    port = IntItem("port", 1, 65535)
    size = SizeItem("log-size", 0, 1 << 30)
    enable = YesNoItem("enable")
    calls = []

    def handler(file, lineno, result):
        calls.append((lineno, result))
        return False

    load_conf(path, [port, size, enable], handler)
    assert port.value == 5353
    assert size.value == 1024
    assert enable.value is True
    assert (3, ConfResult.NOENT) in calls
    assert current_conf_file() == str(path)


def test_load_conf_first_item_wins(tmp_path):
    path = tmp_path / "a.conf"
    path.write_text("name first\n")
    one = StringItem("name", 32)
    two = StringItem("name", 32)
    load_conf(path, [one, two], lambda *a: False)
    assert one.value == "first"
    assert two.value == ""


def test_load_conf_missing_value(tmp_path):
    path = tmp_path / "a.conf"
    path.write_text("port\n")
    with pytest.raises(ConfError):
        load_conf(path, [IntItem("port", 0, 10)], lambda *a: False)


def test_load_conf_missing_file(tmp_path):
    with pytest.raises(ConfError):
        load_conf(tmp_path / "absent.conf", [])


def test_load_conf_handler_aborts(tmp_path):
    path = tmp_path / "a.conf"
    path.write_text("size -5\n")
    with pytest.raises(ConfError):
        load_conf(path, [SizeItem("size", 0, 10)])


def test_default_error_handler(capsys):
    assert default_error_handler("x.conf", 7, ConfResult.OK) is False
    assert default_error_handler("x.conf", 7, ConfResult.WARN) is False
    assert default_error_handler("x.conf", 7, ConfResult.ERR) is True
    assert default_error_handler("x.conf", 7, ConfResult.NOENT) is True
    assert "failed at line 7" in capsys.readouterr().out