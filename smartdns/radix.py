"""Patricia trie of IPv4/IPv6 prefixes with exact and longest-prefix search."""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

RADIX_MAXBITS = 128
_MAX_TEXT_LEN = 256
_ADDR_BYTES = RADIX_MAXBITS // 8
_MASKLEN_RE = re.compile(r"\s*[+-]?[0-9]+")


@dataclass(frozen=True)
class Prefix:
    """An address with a mask length; ``addr`` holds 4 or 16 packed bytes."""

    family: int
    addr: bytes
    bitlen: int

    def __post_init__(self) -> None:
        expected = {socket.AF_INET: 4, socket.AF_INET6: 16}.get(self.family)
        if expected is None:
            raise ValueError(f"unsupported address family {self.family}")
        if len(self.addr) != expected:
            raise ValueError(f"address must be {expected} bytes long")

    def _bits(self) -> bytes:
        return self.addr.ljust(_ADDR_BYTES, b"\0")

    def addr_text(self) -> str:
        """The address in its usual textual form."""
        return socket.inet_ntop(self.family, self.addr)

    def __str__(self) -> str:
        return f"{self.addr_text()}/{self.bitlen}"


@dataclass(eq=False)
class RadixNode:
    """A trie node; nodes without a prefix only join two subtrees."""

    bit: int
    prefix: Optional[Prefix] = None
    data: object = None
    parent: Optional[RadixNode] = field(default=None, repr=False)
    left: Optional[RadixNode] = field(default=None, repr=False)
    right: Optional[RadixNode] = field(default=None, repr=False)


def _test_bit(addr: bytes, bit: int) -> bool:
    return bool(addr[bit >> 3] & (0x80 >> (bit & 0x07)))


def _comp_with_mask(addr: bytes, dest: bytes, mask: int) -> bool:
    whole = mask // 8
    if addr[:whole] != dest[:whole]:
        return False
    rest = mask % 8
    if rest == 0:
        return True
    bits = (0xFF << (8 - rest)) & 0xFF
    return (addr[whole] & bits) == (dest[whole] & bits)


class RadixTree:
    """A Patricia trie keyed by address prefixes."""

    def __init__(self) -> None:
        self.maxbits = RADIX_MAXBITS
        self.head: Optional[RadixNode] = None
        self.active_nodes = 0

    def _replace_in_parent(self, old: RadixNode, new: Optional[RadixNode]) -> None:
        parent = old.parent
        if parent is None:
            self.head = new
        elif parent.right is old:
            parent.right = new
        else:
            parent.left = new

    def lookup(self, prefix: Prefix) -> RadixNode:
        """Return the node for ``prefix``, creating it when missing."""
        if self.head is None:
            node = RadixNode(bit=prefix.bitlen, prefix=prefix)
            self.head = node
            self.active_nodes += 1
            return node

        addr = prefix._bits()
        bitlen = prefix.bitlen
        node = self.head
        while node.bit < bitlen or node.prefix is None:
            if node.bit < self.maxbits and _test_bit(addr, node.bit):
                if node.right is None:
                    break
                node = node.right
            else:
                if node.left is None:
                    break
                node = node.left

        if node.prefix is None:
            raise ValueError("corrupt tree: search ended on a node without prefix")
        test_addr = node.prefix._bits()
        check_bit = min(node.bit, bitlen)
        differ_bit = 0
        for index in range((check_bit + 7) // 8):
            diff = addr[index] ^ test_addr[index]
            if diff == 0:
                differ_bit = (index + 1) * 8
                continue
            differ_bit = index * 8 + (8 - diff.bit_length())
            break
        differ_bit = min(differ_bit, check_bit)

        parent = node.parent
        while parent is not None and parent.bit >= differ_bit:
            node = parent
            parent = node.parent

        if differ_bit == bitlen and node.bit == bitlen:
            if node.prefix is None:
                node.prefix = prefix
            return node

        new_node = RadixNode(bit=bitlen, prefix=prefix)
        self.active_nodes += 1

        if node.bit == differ_bit:
            new_node.parent = node
            if node.bit < self.maxbits and _test_bit(addr, node.bit):
                node.right = new_node
            else:
                node.left = new_node
            return new_node

        if bitlen == differ_bit:
            if bitlen < self.maxbits and _test_bit(test_addr, bitlen):
                new_node.right = node
            else:
                new_node.left = node
            new_node.parent = node.parent
            self._replace_in_parent(node, new_node)
            node.parent = new_node
        else:
            glue = RadixNode(bit=differ_bit, parent=node.parent)
            self.active_nodes += 1
            if differ_bit < self.maxbits and _test_bit(addr, differ_bit):
                glue.right, glue.left = new_node, node
            else:
                glue.right, glue.left = node, new_node
            new_node.parent = glue
            self._replace_in_parent(node, glue)
            node.parent = glue
        return new_node

    def search_exact(self, prefix: Prefix) -> Optional[RadixNode]:
        """The node holding exactly ``prefix``, or None."""
        node = self.head
        if node is None:
            return None
        addr = prefix._bits()
        bitlen = prefix.bitlen
        while node.bit < bitlen:
            node = node.right if _test_bit(addr, node.bit) else node.left
            if node is None:
                return None
        if node.bit > bitlen or node.prefix is None:
            return None
        if _comp_with_mask(node.prefix._bits(), addr, bitlen):
            return node
        return None

    def search_best(self, prefix: Prefix) -> Optional[RadixNode]:
        """The node with the longest prefix covering ``prefix``, or None."""
        node = self.head
        if node is None:
            return None
        addr = prefix._bits()
        bitlen = prefix.bitlen
        candidates: list[RadixNode] = []
        while node.bit < bitlen:
            if node.prefix is not None:
                candidates.append(node)
            node = node.right if _test_bit(addr, node.bit) else node.left
            if node is None:
                break
        if node is not None and node.prefix is not None:
            candidates.append(node)
        for candidate in reversed(candidates):
            if _comp_with_mask(candidate.prefix._bits(), addr, candidate.prefix.bitlen):
                return candidate
        return None

    def remove(self, node: RadixNode) -> None:
        """Take ``node``'s prefix out of the tree."""
        if node.left is not None and node.right is not None:
            node.prefix = None
            node.data = None
            return

        if node.left is None and node.right is None:
            parent = node.parent
            node.prefix = None
            self.active_nodes -= 1
            if parent is None:
                self.head = None
                return
            if parent.right is node:
                parent.right = None
                child = parent.left
            else:
                parent.left = None
                child = parent.right
            if parent.prefix is not None:
                return
            self._replace_in_parent(parent, child)
            if child is not None:
                child.parent = parent.parent
            self.active_nodes -= 1
            return

        child = node.right if node.right is not None else node.left
        parent = node.parent
        child.parent = parent
        node.prefix = None
        self.active_nodes -= 1
        if parent is None:
            self.head = child
        elif parent.right is node:
            parent.right = child
        else:
            parent.left = child

    def _all_nodes(self) -> Iterator[RadixNode]:
        stack = [self.head] if self.head is not None else []
        while stack:
            node = stack.pop()
            yield node
            if node.right is not None:
                stack.append(node.right)
            if node.left is not None:
                stack.append(node.left)

    def clear(self, func: Callable[[RadixNode], object] | None = None) -> None:
        """Empty the tree, calling ``func(node)`` for each node carrying data."""
        for node in list(self._all_nodes()):
            if node.prefix is not None and node.data is not None and func is not None:
                func(node)
        self.head = None
        self.active_nodes = 0

    def __iter__(self) -> Iterator[RadixNode]:
        """Nodes that carry a prefix, in pre-order, left before right."""
        return (node for node in self._all_nodes() if node.prefix is not None)

    def __len__(self) -> int:
        return sum(1 for _node in self)


def _sanitise(addr: bytes, masklen: int) -> bytes:
    data = bytearray(addr)
    whole, rest = divmod(masklen, 8)
    if rest:
        data[whole] &= (0xFF << (8 - rest)) & 0xFF
        whole += 1
    for index in range(whole, len(data)):
        data[index] = 0
    return bytes(data)


def prefix_pton(text: str, masklen: int = -1) -> Prefix:
    """Parse ``addr`` or ``addr/len``; host bits beyond the mask are cleared."""
    if len(text) + 1 > _MAX_TEXT_LEN:
        raise ValueError("string too long")
    host = text
    if "/" in text:
        if masklen != -1:
            raise ValueError("masklen specified twice")
        host, _slash, mask_text = text.partition("/")
        if not _MASKLEN_RE.fullmatch(mask_text):
            raise ValueError("could not parse masklen")
        masklen = int(mask_text)
        if masklen < 0:
            raise ValueError("could not parse masklen")
    try:
        results = socket.getaddrinfo(host, None, flags=socket.AI_NUMERICHOST)
    except (socket.gaierror, UnicodeError) as exc:
        raise ValueError(f"getaddrinfo: {exc}") from exc
    if not results:
        raise ValueError("getaddrinfo returned no result")
    family, _type, _proto, _name, sockaddr = results[0]
    address = sockaddr[0].split("%", 1)[0]
    if family == socket.AF_INET:
        maxbits = 32
    elif family == socket.AF_INET6:
        maxbits = 128
    else:
        raise ValueError(f"unsupported address family {family}")
    if masklen == -1:
        masklen = maxbits
    elif masklen < 0 or masklen > maxbits:
        raise ValueError(f"mask length {masklen} out of range")
    packed = socket.inet_pton(family, address)
    return Prefix(family, _sanitise(packed, masklen), masklen)


def prefix_from_blob(blob: bytes, prefixlen: int = -1) -> Prefix:
    """Build a prefix from 4 or 16 packed address bytes."""
    data = bytes(blob)
    if len(data) == 4:
        family, maxbits = socket.AF_INET, 32
    elif len(data) == 16:
        family, maxbits = socket.AF_INET6, 128
    else:
        raise ValueError(f"invalid address length {len(data)}")
    if prefixlen == -1:
        prefixlen = maxbits
    if prefixlen < 0 or prefixlen > maxbits:
        raise ValueError(f"prefix length {prefixlen} out of range")
    return Prefix(family, data, prefixlen)