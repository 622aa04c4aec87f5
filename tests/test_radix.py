import ipaddress
import socket

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from smartdns.radix import Prefix, RadixTree, prefix_from_blob, prefix_pton


def _tree(*texts):
    tree = RadixTree()
    for text in texts:
        node = tree.lookup(prefix_pton(text))
        node.data = text
    return tree


def test_pton_clears_host_bits():
    assert str(prefix_pton("192.168.1.77/24")) == "192.168.1.0/24"


def test_pton_ipv6_clears_host_bits():
    prefix = prefix_pton("2001:db8::1/32")
    assert prefix.family == socket.AF_INET6
    assert str(prefix) == "2001:db8::/32"


def test_pton_default_mask_lengths():
    assert prefix_pton("10.0.0.1").bitlen == 32
    assert prefix_pton("::1").bitlen == 128


def test_pton_separate_masklen():
    prefix = prefix_pton("10.1.2.3", 8)
    assert prefix.bitlen == 8
    assert prefix.addr == bytes([10, 0, 0, 0])


def test_pton_masklen_twice():
    with pytest.raises(ValueError, match="twice"):
        prefix_pton("10.0.0.0/8", 8)


@pytest.mark.parametrize("text", ["1.2.3.4/x", "1.2.3.4/-1", "1.2.3.4/", "1.2.3.4/8 "])
def test_pton_bad_masklen(text):
    with pytest.raises(ValueError, match="masklen"):
        prefix_pton(text)


@pytest.mark.parametrize("text", ["1.2.3.4/33", "::/129"])
def test_pton_masklen_out_of_range(text):
    with pytest.raises(ValueError):
        prefix_pton(text)


def test_pton_not_an_address():
    with pytest.raises(ValueError):
        prefix_pton("not-an-address")


def test_pton_string_too_long():
    with pytest.raises(ValueError, match="too long"):
        prefix_pton("1" * 300)


def test_from_blob_keeps_bytes():
    prefix = prefix_from_blob(bytes([10, 0, 0, 1]), 8)
    assert prefix.addr == bytes([10, 0, 0, 1])
    assert prefix.bitlen == 8
    assert prefix.addr_text() == "10.0.0.1"


def test_from_blob_defaults():
    assert prefix_from_blob(bytes([10, 0, 0, 1])).bitlen == 32
    assert prefix_from_blob(bytes(16)).family == socket.AF_INET6


@pytest.mark.parametrize("blob,length", [(b"\x01\x02\x03", -1), (bytes(4), 33), (bytes(16), 129)])
def test_from_blob_invalid(blob, length):
    with pytest.raises(ValueError):
        prefix_from_blob(blob, length)


def test_prefix_rejects_wrong_length():
    with pytest.raises(ValueError):
        Prefix(socket.AF_INET, bytes(16), 32)


def test_lookup_is_idempotent():
    tree = RadixTree()
    first = tree.lookup(prefix_pton("10.0.0.0/8"))
    second = tree.lookup(prefix_pton("10.0.0.0/8"))
    assert first is second
    assert len(tree) == 1


def test_search_exact():
    tree = _tree("10.0.0.0/8", "10.1.0.0/16")
    node = tree.search_exact(prefix_pton("10.1.0.0/16"))
    assert node.data == "10.1.0.0/16"
    assert tree.search_exact(prefix_pton("10.2.0.0/16")) is None
    assert tree.search_exact(prefix_pton("11.0.0.0/8")) is None


def test_search_best():
    tree = _tree("10.0.0.0/8", "10.1.0.0/16")
    assert tree.search_best(prefix_pton("10.1.2.3")).data == "10.1.0.0/16"
    assert tree.search_best(prefix_pton("10.2.0.1")).data == "10.0.0.0/8"
    assert tree.search_best(prefix_pton("11.0.0.1")) is None


def test_search_empty_tree():
    tree = RadixTree()
    assert tree.search_best(prefix_pton("10.0.0.1")) is None
    assert tree.search_exact(prefix_pton("10.0.0.1")) is None
    assert list(tree) == []


def test_remove_falls_back_to_shorter_prefix():
    tree = _tree("10.0.0.0/8", "10.1.0.0/16", "10.2.0.0/16")
    node = tree.search_exact(prefix_pton("10.1.0.0/16"))
    tree.remove(node)
    assert tree.search_exact(prefix_pton("10.1.0.0/16")) is None
    assert tree.search_best(prefix_pton("10.1.2.3")).data == "10.0.0.0/8"
    assert len(tree) == 2


def test_remove_inner_node_keeps_children():
    tree = _tree("10.0.0.0/8", "10.1.0.0/16", "10.128.0.0/16")
    tree.remove(tree.search_exact(prefix_pton("10.0.0.0/8")))
    assert tree.search_exact(prefix_pton("10.0.0.0/8")) is None
    assert tree.search_best(prefix_pton("10.1.9.9")).data == "10.1.0.0/16"
    assert tree.search_best(prefix_pton("10.5.0.1")) is None
    node = tree.lookup(prefix_pton("10.0.0.0/8"))
    assert node.prefix == prefix_pton("10.0.0.0/8")
    assert len(tree) == 3


def test_iteration_lists_every_prefix():
    texts = {"10.0.0.0/8", "10.1.0.0/16", "192.168.0.0/16", "172.16.0.0/12"}
    tree = _tree(*texts)
    assert {str(node.prefix) for node in tree} == texts


def test_clear_calls_func_for_data():
    tree = _tree("10.0.0.0/8", "10.1.0.0/16")
    tree.lookup(prefix_pton("10.2.0.0/16"))
    seen = []
    tree.clear(lambda node: seen.append(node.data))
    assert sorted(seen) == ["10.0.0.0/8", "10.1.0.0/16"]
    assert len(tree) == 0
    assert tree.head is None
    assert tree.active_nodes == 0


_v4_prefixes = st.lists(
    st.tuples(st.integers(0, 2**32 - 1), st.integers(0, 32)), min_size=1, max_size=30
)


def _to_prefixes(raw):
    return {prefix_pton(f"{ipaddress.IPv4Address(addr)}/{length}") for addr, length in raw}


@settings(max_examples=60)
@given(_v4_prefixes, st.randoms())
def test_insert_find_remove_roundtrip(raw, rng):
    prefixes = list(_to_prefixes(raw))
    tree = RadixTree()
    for prefix in prefixes:
        tree.lookup(prefix)
    assert len(tree) == len(prefixes)
    for prefix in prefixes:
        node = tree.search_exact(prefix)
        assert node is not None and node.prefix == prefix
    rng.shuffle(prefixes)
    for count, prefix in enumerate(prefixes, start=1):
        tree.remove(tree.search_exact(prefix))
        assert tree.search_exact(prefix) is None
        assert len(tree) == len(prefixes) - count
    assert tree.head is None
    assert tree.active_nodes == 0


@settings(max_examples=60)
@given(_v4_prefixes, st.integers(0, 2**32 - 1))
def test_search_best_is_longest_covering_prefix(raw, query):
    prefixes = _to_prefixes(raw)
    tree = RadixTree()
    for prefix in prefixes:
        tree.lookup(prefix)
    address = ipaddress.IPv4Address(query)
    covering = [p for p in prefixes if address in ipaddress.ip_network(str(p))]
    best = tree.search_best(prefix_pton(str(address)))
    if not covering:
        assert best is None
    else:
        assert best is not None
        assert address in ipaddress.ip_network(str(best.prefix))
        assert best.prefix.bitlen == max(p.bitlen for p in covering)