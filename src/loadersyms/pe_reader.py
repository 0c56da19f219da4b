#!/usr/bin/env python3
"""
PE Reader Module
================

Reader for linked PE loader images that still carry a COFF symbol table.

The whole file is read into memory once; the section table, the symbol table
and the string table are then parsed with ctypes structures that match the
on-disk layout.

Features:
- DOS stub and PE signature validation
- COFF file header parsing
- Section table parsing, including "/<offset>" long section names
- Symbol table iteration that skips auxiliary records
- String table lookup by offset
"""

import ctypes
import logging
import struct
from typing import Iterator, List, Optional, Union

from .types import *
from .utils import detect_pe_image

logger = logging.getLogger(__name__)

# Leading size field of the string table
STRING_TABLE_SIZE_FIELD = 4


# =============================================================================
# COFF string table
# =============================================================================

class StringTable:
    """
    COFF string table

    Offsets are relative to the start of the table, which begins with its own
    4-byte size field, so the first valid offset is 4.
    """

    def __init__(self, data: bytes = b''):
        self.data = data

    def __len__(self):
        return len(self.data)

    def get_at(self, offset: int) -> Optional[str]:
        """
        Look up the NUL-terminated string starting at offset

        Returns:
            The string, or None when offset does not point inside the table
        """
        if offset < STRING_TABLE_SIZE_FIELD or offset >= len(self.data):
            return None

        end = self.data.find(b'\x00', offset)
        if end == -1:
            end = len(self.data)
        return self.data[offset:end].decode('utf-8', errors='replace')


# =============================================================================
# PE image reader
# =============================================================================

class PEReader:
    """
    In-memory PE image reader using ctypes structures

    Usage mirrors the load pipeline: open() then the read_* steps, or load()
    to run all of them.
    """

    def __init__(self, file_path: Optional[str] = None):
        """
        Args:
            file_path: path of the PE image; may be None when the data is
                supplied through from_bytes()
        """
        self.file_path = file_path
        self.data = None
        self.file_size = 0
        self.file_header_offset = 0
        self.file_header = None
        self.sections: List[Section] = []
        self.symbol_table_offset = 0
        self.symbol_count = 0
        self.string_table = StringTable()

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray], name: str = '<memory>') -> 'PEReader':
        reader = cls(name)
        reader.data = bytes(data)
        reader.file_size = len(reader.data)
        return reader

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def open(self) -> bool:
        """
        Read the whole image into memory

        Returns:
            True if the file was read, False otherwise
        """
        if self.data is not None:
            return True

        try:
            with open(self.file_path, 'rb') as f:
                self.data = f.read()
        except (IOError, OSError) as e:
            logger.error(f"Failed to read file {self.file_path}: {e}")
            return False

        self.file_size = len(self.data)
        logger.info(f"read {self.file_size} bytes from {self.file_path}")
        return True

    def close(self):
        """Release the image data"""
        self.data = None

    def read_file_header(self) -> bool:
        """
        Locate the PE signature and read the COFF file header

        Returns:
            True if the header was read, False otherwise
        """
        if self.data is None:
            return False

        offset = detect_pe_image(self.data)
        if offset is None:
            logger.error(f"Not a valid PE image: {self.file_path}")
            return False

        header_size = ctypes.sizeof(ImageFileHeader)
        if offset + header_size > self.file_size:
            logger.error("File too small for COFF file header")
            return False

        self.file_header_offset = offset
        self.file_header = ImageFileHeader.from_buffer_copy(self.data, offset)
        self.symbol_table_offset = self.file_header.PointerToSymbolTable
        self.symbol_count = self.file_header.NumberOfSymbols

        try:
            machine = MachineType(self.file_header.Machine).name
        except ValueError:
            machine = f"0x{self.file_header.Machine:x}"

        logger.debug(f"COFF header: machine={machine}, "
                     f"sections={self.file_header.NumberOfSections}, "
                     f"symtab=0x{self.symbol_table_offset:x}, symbols={self.symbol_count}")
        return True

    def read_string_table(self) -> bool:
        """
        Read the string table that directly follows the symbol table

        Returns:
            True if the string table was read (or is absent), False otherwise
        """
        if self.file_header is None:
            return False

        if self.symbol_table_offset == 0:
            logger.debug("No COFF symbol table, string table is empty")
            self.string_table = StringTable()
            return True

        start = self.symbol_table_offset + self.symbol_count * IMAGE_SIZEOF_SYMBOL
        if start + STRING_TABLE_SIZE_FIELD > self.file_size:
            logger.warning("No string table after the symbol table")
            self.string_table = StringTable()
            return True

        size = struct.unpack_from('<I', self.data, start)[0]
        if size < STRING_TABLE_SIZE_FIELD:
            size = STRING_TABLE_SIZE_FIELD
        if start + size > self.file_size:
            logger.error(f"String table (0x{start:x}+0x{size:x}) extends beyond file")
            return False

        self.string_table = StringTable(self.data[start:start + size])
        logger.debug(f"String table: offset=0x{start:x}, size=0x{size:x}")
        return True

    def read_section_headers(self) -> bool:
        """
        Read the section table that follows the optional header

        Returns:
            True if the section headers were read, False otherwise
        """
        if self.file_header is None:
            return False

        count = self.file_header.NumberOfSections
        table_offset = (self.file_header_offset + ctypes.sizeof(ImageFileHeader) +
                        self.file_header.SizeOfOptionalHeader)

        if table_offset + count * IMAGE_SIZEOF_SECTION_HEADER > self.file_size:
            logger.error("Section table extends beyond file")
            return False

        self.sections = []
        for i in range(count):
            offset = table_offset + i * IMAGE_SIZEOF_SECTION_HEADER
            header = ImageSectionHeader.from_buffer_copy(self.data, offset)
            section = Section.from_header(header, self._section_name(header))
            self.sections.append(section)

            logger.debug(f"Section header {i + 1}: {section.name} "
                         f"addr=0x{section.base:x}, size=0x{section.size:x}")

        logger.info(f"Read {len(self.sections)} section headers")
        return True

    def _section_name(self, header: ImageSectionHeader) -> str:
        raw = bytes(header.Name).split(b'\x00', 1)[0].decode('utf-8', errors='replace')

        # Long section name: "/<decimal offset>" into the string table
        if raw.startswith('/') and raw[1:].isdigit():
            name = self.string_table.get_at(int(raw[1:]))
            if name is None:
                logger.warning(f"Section name {raw} not found in string table")
                return raw
            return name

        return raw

    def read_symbol_table(self) -> bool:
        """
        Check that the symbol table lies within the file

        Returns:
            True if the symbol table is usable (or absent), False otherwise
        """
        if self.file_header is None:
            return False

        if self.symbol_table_offset == 0 or self.symbol_count == 0:
            logger.warning("No COFF symbol table found")
            self.symbol_count = 0
            return True

        table_size = self.symbol_count * IMAGE_SIZEOF_SYMBOL
        if self.symbol_table_offset + table_size > self.file_size:
            logger.error("Symbol table extends beyond file")
            return False

        logger.info(f"Symbol table has {self.symbol_count} records")
        return True

    def iter_symbols(self) -> Iterator[RawEntry]:
        """
        Yield the primary symbol records in table order

        Auxiliary records count towards NumberOfSymbols but are not yielded.
        """
        index = 0
        while index < self.symbol_count:
            offset = self.symbol_table_offset + index * IMAGE_SIZEOF_SYMBOL
            symbol = ImageSymbol.from_buffer_copy(self.data, offset)
            yield RawEntry.from_image_symbol(symbol, index)
            index += 1 + symbol.NumberOfAuxSymbols

    def symbols(self) -> List[RawEntry]:
        return list(self.iter_symbols())

    def load(self) -> bool:
        """
        Main load function, reads every component needed for symbol resolution

        The string table is read before the section table so that long section
        names can be resolved.

        Returns:
            True if the image was loaded, False otherwise
        """
        return (self.open() and
                self.read_file_header() and
                self.read_symbol_table() and
                self.read_string_table() and
                self.read_section_headers())

    def list_sections(self) -> None:
        """
        Print the section table, for debugging
        """
        if not self.sections:
            print("No sections available")
            return

        print("=" * 72)
        print("SECTIONS:")
        print("=" * 72)
        print(f"{'Index':<6} {'Name':<16} {'VAddr':<12} {'VSize':<12} {'Flags':<8}")
        print("-" * 72)

        for i, section in enumerate(self.sections, start=1):
            flags = ""
            if section.characteristics & SectionFlags.IMAGE_SCN_MEM_READ: flags += "R"
            if section.characteristics & SectionFlags.IMAGE_SCN_MEM_WRITE: flags += "W"
            if section.characteristics & SectionFlags.IMAGE_SCN_MEM_EXECUTE: flags += "X"

            print(f"{i:<6} {section.name:<16} 0x{section.base:<10x} "
                  f"0x{section.size:<10x} {flags:<8}")

        print("=" * 72)
