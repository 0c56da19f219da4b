#!/usr/bin/env python3
"""
loadersyms
==========

Turns the COFF symbol table of a PE loader image into mdb ::nmadd commands.

Core modules:
- pe_reader: PE image and COFF symbol/string table parsing
- resolver: symbol reconciliation and size inference
- emitter: ::nmadd command formatting
- types: PE/COFF structure types, symbol model and errors
- utils: shared helpers
- main: command line entry point
"""

__version__ = "0.1.0"

from .pe_reader import PEReader, StringTable
from .resolver import SymbolResolver, resolve_symbols
from .emitter import format_nmadd, write_nmadd
from .types import *
from .main import main, generate_nmadd

__all__ = [
    'PEReader',
    'StringTable',
    'SymbolResolver',
    'resolve_symbols',
    'format_nmadd',
    'write_nmadd',
    'Section',
    'RawEntry',
    'ResolvedSymbol',
    'SymbolError',
    'PEFormatError',
    'MissingStringTableEntry',
    'InvalidSectionIndex',
    'DuplicateSymbol',
    'SymbolOutsideSection',
    'AddressOverflow',
    'main',
    'generate_nmadd',
]
