# Copyright (c) 2022 Pieter Wuille
# Distributed under the MIT software license, see the accompanying
# file LICENSE or http://www.opensource.org/licenses/mit-license.php.

import argparse
import os
import sys
from typing import Callable, List, Optional

from cidrparse import InputParser
from cidrtrie import CIDRSet, prefix_to_str

CHUNK_SIZE = 65536

def format_prefixes(state: CIDRSet) -> List[str]:
    """Render the minimal cover of state as a.b.c.d/w lines, in ascending order."""
    lines: List[str] = []
    state.for_each_full_prefix(lambda addr, width: lines.append(prefix_to_str(addr, width)))
    return lines

def convert(data: bytes, report: Optional[Callable[[str], None]] = None) -> List[str]:
    """Parse a complete input and return the output lines."""
    state = CIDRSet()
    parser = InputParser(state, report)
    parser.feed(data)
    parser.finish()
    return format_prefixes(state)

def load_stream(input_file, parser):
    while True:
        try:
            chunk = input_file.read(CHUNK_SIZE)
        except OSError as err:
            sys.exit("Input cannot be read: %s." % err.strerror)
        if not chunk:
            break
        parser.feed(chunk)
    parser.finish()

def save_text(output_file, state):
    try:
        for line in format_prefixes(state):
            print(line, file=output_file)
        output_file.flush()
    except OSError as err:
        sys.exit("Output cannot be written to: %s." % err.strerror)

def main():
    parser = argparse.ArgumentParser(description="Read IPv4 addresses, address ranges (a.b.c.d - e.f.g.h) "
                                     "and CIDR blocks (a.b.c.d/w) on stdin, and print the minimal set of "
                                     "CIDR blocks covering exactly those addresses.")
    parser.parse_args()

    progname = os.path.basename(sys.argv[0])
    def report(msg):
        print("%s: %s" % (progname, msg), file=sys.stderr)

    state = CIDRSet()
    load_stream(sys.stdin.buffer, InputParser(state, report))
    save_text(sys.stdout, state)

if __name__ == '__main__':
    main()
