# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

"""
This module provides the InputParser class, which reads dotted quads,
ranges (a.b.c.d - e.f.g.h) and prefixes (a.b.c.d/w) from a byte stream and
adds them to a CIDRSet.

Parsing is a state machine driven one byte at a time. Examples of the state
sequence (I = IDLE, P = PENDING, R = SECOND_WANT1, w = expecting an octet,
digits = number of the octet being accumulated):

  input    1 2 . 4 . 6 . 8 9     1 ...
  state  I 1 1 w 2 w 3 w 4 4 P P 1 ...

  input    1 2 . 4 . 6 . 8   -   1 . 2 . 3 . 4       ...
  state  I 1 1 w 2 w 3 w 4 P R R 1 w 2 w 3 w 4 I I ...

When an error is found in a unit, a single diagnostic is reported and the
rest of the unit is skipped; nothing from it is added to the set.
"""

from __future__ import annotations
import sys
from enum import IntEnum
from typing import Callable, Optional

from cidrtrie import normalize

# Value of the number register once the current unit has failed.
_FAILED = -1

WHITESPACE = b" \t\r\n"


class State(IntEnum):
    """The states of the input parser."""
    # Between units, expecting the first digit of a dotted quad.
    IDLE = 1
    # First quad: accumulating octet k, or expecting the first digit of octet k.
    FIRST_OCT1 = 2
    FIRST_WANT2 = 3
    FIRST_OCT2 = 4
    FIRST_WANT3 = 5
    FIRST_OCT3 = 6
    FIRST_WANT4 = 7
    FIRST_OCT4 = 8
    # A complete quad followed by whitespace; the next character decides
    # whether it is an address on its own, a range start or a prefix.
    PENDING = 9
    # Second quad of a range.
    SECOND_WANT1 = 10
    SECOND_OCT1 = 11
    SECOND_WANT2 = 12
    SECOND_OCT2 = 13
    SECOND_WANT3 = 14
    SECOND_OCT3 = 15
    SECOND_WANT4 = 16
    SECOND_OCT4 = 17
    # Prefix width after the slash.
    WIDTH_WANT = 18
    WIDTH = 19

# States in which a digit continues (or, for WANT states, starts) an octet.
_OCTET_DIGIT = frozenset([
    State.FIRST_OCT1, State.FIRST_WANT2, State.FIRST_OCT2, State.FIRST_WANT3,
    State.FIRST_OCT3, State.FIRST_WANT4, State.FIRST_OCT4,
    State.SECOND_OCT1, State.SECOND_WANT2, State.SECOND_OCT2, State.SECOND_WANT3,
    State.SECOND_OCT3, State.SECOND_WANT4, State.SECOND_OCT4,
])
_WANT_OCTET = frozenset([
    State.FIRST_WANT2, State.FIRST_WANT3, State.FIRST_WANT4,
    State.SECOND_WANT2, State.SECOND_WANT3, State.SECOND_WANT4,
])
# States in which a dot ends octets 1-3 of a quad.
_OCTET_DOT = frozenset([
    State.FIRST_OCT1, State.FIRST_OCT2, State.FIRST_OCT3,
    State.SECOND_OCT1, State.SECOND_OCT2, State.SECOND_OCT3,
])
# States where whitespace cuts a quad short.
_PARTIAL_QUAD = frozenset([
    State.FIRST_OCT1, State.FIRST_WANT2, State.FIRST_OCT2, State.FIRST_WANT3,
    State.FIRST_OCT3, State.FIRST_WANT4,
    State.SECOND_OCT1, State.SECOND_WANT2, State.SECOND_OCT2, State.SECOND_WANT3,
    State.SECOND_OCT3, State.SECOND_WANT4,
])


def _print_diagnostic(msg: str) -> None:
    print(msg, file=sys.stderr)


class InputParser:
    """
    Incremental parser feeding addresses, ranges and prefixes into a store.

    The store must provide insert_address(addr), insert_range(low, high) and
    insert_prefix(addr, width); insert_range raises ValueError for a
    reversed range. Diagnostics are passed to report as strings of the form
    "line N: message" (or "invalid character 0xHH in input").
    """

    def __init__(self, store, report: Optional[Callable[[str], None]] = None) -> None:
        self._store = store
        self._report = report if report is not None else _print_diagnostic
        self.state = State.IDLE
        self.line = 1
        self.errors = 0
        # The address being built (or, from PENDING on, the first address).
        self._addr = 0
        # First address of a range while its second address is being read.
        self._first = 0
        # The octet or width being accumulated, or _FAILED.
        self._num = 0
        self._finished = False

    def _error(self, msg: str) -> None:
        self.errors += 1
        self._report("line %i: %s" % (self.line, msg))

    def _fail(self, msg: str) -> None:
        """Report msg unless the current unit already failed, and fail it."""
        if self._num != _FAILED:
            self._error(msg)
        self._num = _FAILED

    def _digit(self, val: int) -> None:
        state = self.state
        if state == State.IDLE or state == State.PENDING:
            if state == State.PENDING and self._num != _FAILED:
                self._store.insert_address(self._addr)
            # A new unit always starts clean.
            self._num = val
            self.state = State.FIRST_OCT1
        elif state in _OCTET_DIGIT:
            if state in _WANT_OCTET:
                self.state = State(state + 1)
            if self._num == _FAILED:
                return
            self._num = self._num * 10 + val
            if self._num > 255:
                self._fail("out-of-range number in input")
        elif state == State.SECOND_WANT1 or state == State.WIDTH_WANT:
            if self._num != _FAILED:
                self._num = val
            self.state = State(state + 1)
        elif state == State.WIDTH:
            if self._num == _FAILED:
                return
            self._num = self._num * 10 + val
            if self._num > 32:
                self._fail("out-of-range width in input")
        else:
            raise AssertionError("digit in unknown state %r" % state)

    def _dot(self) -> None:
        state = self.state
        if state in _OCTET_DOT:
            if state == State.FIRST_OCT1 or state == State.SECOND_OCT1:
                self._addr = 0
            if self._num != _FAILED:
                self._addr = (self._addr << 8) | self._num
                self._num = 0
            self.state = State(state + 1)
        elif state == State.PENDING:
            # The pending address was complete; the stray dot opens a new,
            # failed unit that lasts until the next whitespace.
            if self._num != _FAILED:
                self._store.insert_address(self._addr)
            self._fail(". at an inappropriate place")
            self.state = State.FIRST_OCT1
        else:
            self._fail(". at an inappropriate place")

    def _dash(self) -> None:
        state = self.state
        if state == State.FIRST_OCT4:
            if self._num != _FAILED:
                self._first = (self._addr << 8) | self._num
            self.state = State.SECOND_WANT1
        elif state == State.PENDING:
            self._first = self._addr
            self.state = State.SECOND_WANT1
        else:
            self._fail("- at an inappropriate place")

    def _slash(self) -> None:
        state = self.state
        if state == State.FIRST_OCT4:
            if self._num != _FAILED:
                self._addr = (self._addr << 8) | self._num
            self.state = State.WIDTH_WANT
        elif state == State.PENDING:
            self.state = State.WIDTH_WANT
        else:
            self._fail("/ at an inappropriate place")

    def _commit_range(self, low: int, high: int) -> None:
        try:
            self._store.insert_range(low, high)
        except ValueError as err:
            self._error(str(err))

    def _commit_prefix(self, addr: int, width: int) -> None:
        self._store.insert_prefix(normalize(addr, width), width)

    def _space(self) -> None:
        state = self.state
        if state in (State.IDLE, State.PENDING, State.SECOND_WANT1, State.WIDTH_WANT):
            return
        if state in _PARTIAL_QUAD:
            self._fail("whitespace at an inappropriate place")
            self.state = State.IDLE
        elif state == State.FIRST_OCT4:
            if self._num != _FAILED:
                self._addr = (self._addr << 8) | self._num
            self.state = State.PENDING
        elif state == State.SECOND_OCT4:
            if self._num != _FAILED:
                self._commit_range(self._first, (self._addr << 8) | self._num)
            self.state = State.IDLE
        elif state == State.WIDTH:
            if self._num != _FAILED:
                self._commit_prefix(self._addr, self._num)
            self.state = State.IDLE
        else:
            raise AssertionError("whitespace in unknown state %r" % state)

    def _invalid(self, char: int) -> None:
        if self.state == State.PENDING and self._num != _FAILED:
            self._store.insert_address(self._addr)
        self.errors += 1
        self._report("invalid character 0x%02x in input" % char)
        self._num = _FAILED
        self.state = State.FIRST_OCT1

    def feed(self, data: bytes) -> None:
        """Parse the next chunk of input."""
        assert not self._finished
        for char in data:
            if 0x30 <= char <= 0x39:
                self._digit(char - 0x30)
            elif char == 0x2e:
                self._dot()
            elif char == 0x2d:
                self._dash()
            elif char == 0x2f:
                self._slash()
            elif char in WHITESPACE:
                self._space()
                if char == 0x0a:
                    self.line += 1
            else:
                self._invalid(char)

    def finish(self) -> None:
        """Handle end of input: commit a complete trailing unit, or complain about a partial one."""
        assert not self._finished
        self._finished = True
        state = self.state
        failed = self._num == _FAILED
        if state == State.IDLE:
            pass
        elif state == State.FIRST_OCT4:
            if not failed:
                self._store.insert_address((self._addr << 8) | self._num)
        elif state == State.PENDING:
            if not failed:
                self._store.insert_address(self._addr)
        elif state == State.SECOND_OCT4:
            if not failed:
                self._commit_range(self._first, (self._addr << 8) | self._num)
        elif state == State.WIDTH:
            if not failed:
                self._commit_prefix(self._addr, self._num)
        elif state in _PARTIAL_QUAD or state == State.SECOND_WANT1 or state == State.WIDTH_WANT:
            if not failed:
                self._error("EOF at an inappropriate place")
        else:
            raise AssertionError("EOF in unknown state %r" % state)
        self.state = State.IDLE
