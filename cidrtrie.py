# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
This module provides the CIDRSet class, a set of IPv4 addresses stored as a
binary trie that always holds a minimal CIDR cover of its contents.
"""

from __future__ import annotations
import ipaddress
from typing import Callable, Iterable, List, Tuple, Union

ADDR_BITS = 32
ADDR_MAX = (1 << ADDR_BITS) - 1


class _Sentinel:
    """A shared leaf value in the trie; compared by identity only."""

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

# A subtree with no address present.
EMPTY = _Sentinel("EMPTY")
# A subtree with every address present.
FULL = _Sentinel("FULL")

_Node = Union[_Sentinel, List]


def netmask(width: int) -> int:
    """Return the 32-bit netmask with the high width bits set."""
    assert 0 <= width <= ADDR_BITS
    if width == 0:
        return 0
    return (ADDR_MAX << (ADDR_BITS - width)) & ADDR_MAX


def normalize(addr: int, width: int) -> int:
    """Clear the host bits of addr for a prefix of the given width."""
    return addr & netmask(width)


def prefix_to_str(addr: int, width: int) -> str:
    """Format a prefix as a.b.c.d/w."""
    return str(ipaddress.IPv4Network((addr, width)))


class CIDRSet:
    """
    A set of IPv4 addresses.

    Conceptually the set is a full binary tree of depth 32 whose leaves say
    whether an address is present. Uniform subtrees are replaced by one of the
    two sentinels:
    - EMPTY means no address below this point is present.
    - FULL means every address below this point is present.
    - [node,node] is an inner node; the child at index b covers the half of
      the range where the discriminated bit equals b. The root discriminates
      bit 31, an inner node at depth k discriminates bit 31-k.

    No inner node ever has two FULL children (it is collapsed into FULL
    instead), so the FULL nodes are exactly the prefixes of a minimal cover.
    """

    def __init__(self) -> None:
        self._root: _Node = EMPTY

    @staticmethod
    def _insert(node: _Node, addr: int, depth: int, target: int) -> _Node:
        """Mark the prefix of addr at depth target below node; return the new node."""
        if node is FULL:
            return node
        if depth == target:
            # Any inner subtree here is dropped along with its descendants.
            return FULL
        if node is EMPTY:
            node = [EMPTY, EMPTY]
        bit = (addr >> (ADDR_BITS - 1 - depth)) & 1
        node[bit] = CIDRSet._insert(node[bit], addr, depth + 1, target)
        if node[0] is FULL and node[1] is FULL:
            return FULL
        return node

    def insert_prefix(self, addr: int, width: int) -> None:
        """
        Add every address of the prefix addr/width to the set.

        The address must already be normalized (no bits set below the mask).
        """
        if not 0 <= width <= ADDR_BITS:
            raise ValueError("prefix width %i out of range" % width)
        if not 0 <= addr <= ADDR_MAX:
            raise ValueError("address %i out of range" % addr)
        if addr & ~netmask(width) & ADDR_MAX:
            raise ValueError("host bits set in %s/%i" % (ipaddress.IPv4Address(addr), width))
        self._root = self._insert(self._root, addr, 0, width)

    def insert_address(self, addr: int) -> None:
        """Add a single address to the set."""
        self.insert_prefix(addr, ADDR_BITS)

    def insert_range(self, low: int, high: int) -> None:
        """
        Add every address x with low <= x <= high to the set.

        The range is cut into aligned blocks from the bottom up: at each step
        the largest block aligned at low is taken, and halved until it no
        longer extends past high.
        """
        if not (0 <= low <= ADDR_MAX and 0 <= high <= ADDR_MAX):
            raise ValueError("range bound out of range")
        if low > high:
            raise ValueError("invalid range (ends reversed)")
        while low <= high:
            if low == 0:
                mask = ADDR_MAX
            else:
                mask = (low - 1) & ~low & ADDR_MAX
            while low + mask > high:
                mask >>= 1
            self._root = self._insert(self._root, low, 0, ADDR_BITS - mask.bit_length())
            low += mask + 1
            if low > ADDR_MAX:
                break

    def contains(self, addr: int) -> bool:
        """Determine whether addr is in the set."""
        node = self._root
        for depth in range(ADDR_BITS):
            if node is FULL or node is EMPTY:
                break
            node = node[(addr >> (ADDR_BITS - 1 - depth)) & 1]
        return node is FULL

    def for_each_full_prefix(self, visit: Callable[[int, int], None]) -> None:
        """Call visit(addr, width) for every prefix of the minimal cover, in ascending order."""
        def recurse(node: _Node, addr: int, bit: int) -> None:
            if node is EMPTY:
                return
            if node is FULL:
                visit(addr, ADDR_BITS - 1 - bit)
                return
            if bit < 0:
                raise AssertionError("inner node below the last address bit")
            recurse(node[0], addr, bit - 1)
            recurse(node[1], addr | (1 << bit), bit - 1)
        recurse(self._root, 0, ADDR_BITS - 1)

    def to_prefixes(self) -> List[Tuple[int, int]]:
        """Convert this set to the list of (addr, width) pairs of its minimal cover."""
        ret: List[Tuple[int, int]] = []
        self.for_each_full_prefix(lambda addr, width: ret.append((addr, width)))
        return ret

    def num_addresses(self) -> int:
        """Count the addresses in the set."""
        return sum(1 << (ADDR_BITS - width) for _, width in self.to_prefixes())

    def clear(self) -> None:
        """Remove every address from the set."""
        self._root = EMPTY

    @staticmethod
    def from_prefixes(prefixes: Iterable[Tuple[int, int]]) -> CIDRSet:
        """Construct a CIDRSet from (addr, width) pairs; host bits are cleared first."""
        ret = CIDRSet()
        for addr, width in prefixes:
            ret.insert_prefix(normalize(addr, width), width)
        return ret

    def __len__(self) -> int:
        return len(self.to_prefixes())

    def __bool__(self) -> bool:
        return self._root is not EMPTY

    def __eq__(self, other: object) -> bool:
        if isinstance(other, CIDRSet):
            return self._root == other._root
        return False

    def __str__(self) -> str:
        """Convert this set to a space-separated list of its prefixes."""
        return " ".join(prefix_to_str(addr, width) for addr, width in self.to_prefixes())
