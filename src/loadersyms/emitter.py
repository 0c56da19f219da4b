#!/usr/bin/env python3
"""
mdb Command Emitter
===================

Formats resolved symbols as ``::nmadd`` commands, one per line:

    0x<address>::nmadd <-f|-o> -s 0x<size> <name>

Symbols of the code section are tagged as functions (``-f``), everything
else as objects (``-o``). Addresses are 32-bit; check_addresses() is run
before anything is written so that an out-of-range symbol aborts the whole
output.
"""

import logging
from typing import Iterable, List, TextIO

from .types import AddressOverflow, ResolvedSymbol
from .utils import MAX_ADDRESS

logger = logging.getLogger(__name__)

DEFAULT_TEXT_SECTION = '.text'

KIND_FUNCTION = '-f'
KIND_OBJECT = '-o'


def symbol_kind(symbol: ResolvedSymbol, text_section: str = DEFAULT_TEXT_SECTION) -> str:
    """Function symbols live in the code section, everything else is an object"""
    return KIND_FUNCTION if symbol.section == text_section else KIND_OBJECT


def check_addresses(symbols: Iterable[ResolvedSymbol], global_base: int):
    """
    Make sure every absolute address fits in 32 bits

    Raises:
        AddressOverflow: global base + section RVA + value exceeds 0xffffffff
    """
    for symbol in symbols:
        address = symbol.vaddr(global_base)
        if address > MAX_ADDRESS:
            raise AddressOverflow(symbol, address)


def format_nmadd(symbol: ResolvedSymbol, global_base: int,
                 text_section: str = DEFAULT_TEXT_SECTION) -> str:
    """Format a single sized symbol as an ::nmadd command"""
    kind = symbol_kind(symbol, text_section)
    return f"0x{symbol.vaddr(global_base):08x}::nmadd {kind} -s 0x{symbol.size:08x} {symbol.name}"


def nmadd_lines(symbols: Iterable[ResolvedSymbol], global_base: int,
                text_section: str = DEFAULT_TEXT_SECTION) -> List[str]:
    """
    Format every symbol, keeping the given order

    Raises:
        AddressOverflow: see check_addresses()
    """
    symbols = list(symbols)
    check_addresses(symbols, global_base)
    return [format_nmadd(s, global_base, text_section) for s in symbols]


def write_nmadd(symbols: Iterable[ResolvedSymbol], global_base: int, stream: TextIO,
                text_section: str = DEFAULT_TEXT_SECTION) -> int:
    """
    Write one ::nmadd command per symbol

    All lines are formatted (and checked) before the first write.

    Returns:
        Number of lines written
    """
    lines = nmadd_lines(symbols, global_base, text_section)
    for line in lines:
        stream.write(line + '\n')

    logger.debug(f"Wrote {len(lines)} nmadd commands")
    return len(lines)
