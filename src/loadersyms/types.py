import ctypes
from enum import IntEnum

# =============================================================================
# PE/COFF Constants and Enums
# =============================================================================

DOS_MAGIC = b'MZ'
PE_SIGNATURE = b'PE\x00\x00'

# Suffix the toolchain appends to compiler-internal local aliases
LOCAL_ALIAS_SUFFIX = '.localalias'


class MachineType(IntEnum):
    """COFF file header machine constants"""
    IMAGE_FILE_MACHINE_UNKNOWN = 0x0
    IMAGE_FILE_MACHINE_I386 = 0x14C
    IMAGE_FILE_MACHINE_ARM = 0x1C0
    IMAGE_FILE_MACHINE_AMD64 = 0x8664
    IMAGE_FILE_MACHINE_ARM64 = 0xAA64


class SectionNumber(IntEnum):
    """Special section numbers of a symbol table entry"""
    IMAGE_SYM_UNDEFINED = 0
    IMAGE_SYM_ABSOLUTE = -1
    IMAGE_SYM_DEBUG = -2


class StorageClass(IntEnum):
    """Symbol storage class constants"""
    IMAGE_SYM_CLASS_END_OF_FUNCTION = 0xFF
    IMAGE_SYM_CLASS_NULL = 0
    IMAGE_SYM_CLASS_AUTOMATIC = 1
    IMAGE_SYM_CLASS_EXTERNAL = 2
    IMAGE_SYM_CLASS_STATIC = 3
    IMAGE_SYM_CLASS_REGISTER = 4
    IMAGE_SYM_CLASS_EXTERNAL_DEF = 5
    IMAGE_SYM_CLASS_LABEL = 6
    IMAGE_SYM_CLASS_UNDEFINED_LABEL = 7
    IMAGE_SYM_CLASS_MEMBER_OF_STRUCT = 8
    IMAGE_SYM_CLASS_ARGUMENT = 9
    IMAGE_SYM_CLASS_STRUCT_TAG = 10
    IMAGE_SYM_CLASS_MEMBER_OF_UNION = 11
    IMAGE_SYM_CLASS_UNION_TAG = 12
    IMAGE_SYM_CLASS_TYPE_DEFINITION = 13
    IMAGE_SYM_CLASS_UNDEFINED_STATIC = 14
    IMAGE_SYM_CLASS_ENUM_TAG = 15
    IMAGE_SYM_CLASS_MEMBER_OF_ENUM = 16
    IMAGE_SYM_CLASS_REGISTER_PARAM = 17
    IMAGE_SYM_CLASS_BIT_FIELD = 18
    IMAGE_SYM_CLASS_BLOCK = 100
    IMAGE_SYM_CLASS_FUNCTION = 101
    IMAGE_SYM_CLASS_END_OF_STRUCT = 102
    IMAGE_SYM_CLASS_FILE = 103
    IMAGE_SYM_CLASS_SECTION = 104
    IMAGE_SYM_CLASS_WEAK_EXTERNAL = 105
    IMAGE_SYM_CLASS_CLR_TOKEN = 107


class SectionFlags(IntEnum):
    """Section header characteristics used for display"""
    IMAGE_SCN_CNT_CODE = 0x00000020
    IMAGE_SCN_CNT_INITIALIZED_DATA = 0x00000040
    IMAGE_SCN_CNT_UNINITIALIZED_DATA = 0x00000080
    IMAGE_SCN_MEM_EXECUTE = 0x20000000
    IMAGE_SCN_MEM_READ = 0x40000000
    IMAGE_SCN_MEM_WRITE = 0x80000000


# =============================================================================
# ctypes Structure Definitions (matching winnt.h exactly)
# =============================================================================

class ImageDosHeader(ctypes.Structure):
    """Legacy DOS stub header"""
    _fields_ = [
        ('e_magic', ctypes.c_uint8 * 2),     # "MZ"
        ('e_cblp', ctypes.c_uint16),         # Bytes on last page of file
        ('e_cp', ctypes.c_uint16),           # Pages in file
        ('e_crlc', ctypes.c_uint16),         # Relocations
        ('e_cparhdr', ctypes.c_uint16),      # Size of header in paragraphs
        ('e_minalloc', ctypes.c_uint16),     # Minimum extra paragraphs needed
        ('e_maxalloc', ctypes.c_uint16),     # Maximum extra paragraphs needed
        ('e_ss', ctypes.c_uint16),           # Initial (relative) SS value
        ('e_sp', ctypes.c_uint16),           # Initial SP value
        ('e_csum', ctypes.c_uint16),         # Checksum
        ('e_ip', ctypes.c_uint16),           # Initial IP value
        ('e_cs', ctypes.c_uint16),           # Initial (relative) CS value
        ('e_lfarlc', ctypes.c_uint16),       # File address of relocation table
        ('e_ovno', ctypes.c_uint16),         # Overlay number
        ('e_res', ctypes.c_uint16 * 4),      # Reserved words
        ('e_oemid', ctypes.c_uint16),        # OEM identifier
        ('e_oeminfo', ctypes.c_uint16),      # OEM information
        ('e_res2', ctypes.c_uint16 * 10),    # Reserved words
        ('e_lfanew', ctypes.c_uint32),       # File address of new exe header
    ]


class ImageFileHeader(ctypes.Structure):
    """COFF file header, follows the PE signature"""
    _fields_ = [
        ('Machine', ctypes.c_uint16),               # Target machine
        ('NumberOfSections', ctypes.c_uint16),      # Section table entry count
        ('TimeDateStamp', ctypes.c_uint32),         # Link time
        ('PointerToSymbolTable', ctypes.c_uint32),  # COFF symbol table file offset
        ('NumberOfSymbols', ctypes.c_uint32),       # Symbol table entry count (aux included)
        ('SizeOfOptionalHeader', ctypes.c_uint16),  # Optional header size in bytes
        ('Characteristics', ctypes.c_uint16),       # File flags
    ]


class ImageSectionHeader(ctypes.Structure):
    """Section table entry"""
    _fields_ = [
        ('Name', ctypes.c_uint8 * 8),               # Short name or "/<offset>"
        ('VirtualSize', ctypes.c_uint32),           # Size when loaded
        ('VirtualAddress', ctypes.c_uint32),        # RVA when loaded
        ('SizeOfRawData', ctypes.c_uint32),         # Size in file
        ('PointerToRawData', ctypes.c_uint32),      # File offset of data
        ('PointerToRelocations', ctypes.c_uint32),  # File offset of relocations
        ('PointerToLinenumbers', ctypes.c_uint32),  # File offset of line numbers
        ('NumberOfRelocations', ctypes.c_uint16),   # Relocation count
        ('NumberOfLinenumbers', ctypes.c_uint16),   # Line number count
        ('Characteristics', ctypes.c_uint32),       # Section flags
    ]


class ImageSymbolNameLong(ctypes.Structure):
    """Long form of a symbol name: zeroes followed by a string table offset"""
    _fields_ = [
        ('Zeroes', ctypes.c_uint32),
        ('Offset', ctypes.c_uint32),
    ]


class ImageSymbolName(ctypes.Union):
    """Symbol name union for ShortName/LongName"""
    _fields_ = [
        ('ShortName', ctypes.c_uint8 * 8),
        ('LongName', ImageSymbolNameLong),
    ]


class ImageSymbol(ctypes.Structure):
    """COFF symbol table record (18 bytes, unaligned)"""
    _pack_ = 1
    _layout_ = 'ms'
    _fields_ = [
        ('N', ImageSymbolName),                   # Name or string table reference
        ('Value', ctypes.c_uint32),               # Section-relative value
        ('SectionNumber', ctypes.c_int16),        # 1-based section index
        ('Type', ctypes.c_uint16),                # Symbol type
        ('StorageClass', ctypes.c_uint8),         # Storage class
        ('NumberOfAuxSymbols', ctypes.c_uint8),   # Auxiliary records that follow
    ]


IMAGE_SIZEOF_SYMBOL = ctypes.sizeof(ImageSymbol)
IMAGE_SIZEOF_SECTION_HEADER = ctypes.sizeof(ImageSectionHeader)


# =============================================================================
# Errors
# =============================================================================

class SymbolError(Exception):
    """Base class for fatal symbol reconciliation errors"""


class PEFormatError(SymbolError):
    """The image could not be parsed"""


class MissingStringTableEntry(SymbolError):
    """A symbol name refers to an offset with no string table entry"""

    def __init__(self, offset: int, entry=None):
        self.offset = offset
        self.entry = entry
        super().__init__(f"missing string table entry at offset 0x{offset:x}: {entry!r}")


class InvalidSectionIndex(SymbolError):
    """A symbol refers to a section that does not exist"""

    def __init__(self, name: str, section_number: int, section_count: int):
        self.name = name
        self.section_number = section_number
        self.section_count = section_count
        super().__init__(f"symbol {name!r} has section number {section_number}, "
                         f"image has {section_count} sections")


class DuplicateSymbol(SymbolError):
    """Two distinct definitions resolve to the same virtual address"""

    def __init__(self, existing, duplicate):
        self.existing = existing
        self.duplicate = duplicate
        super().__init__(f"duplicate symbol: {existing!r} <-> {duplicate!r}")


class SymbolOutsideSection(SymbolError):
    """A symbol lies beyond the end of its section"""

    def __init__(self, symbol):
        self.symbol = symbol
        super().__init__(f"symbol lies outside its section: {symbol!r}")


class AddressOverflow(SymbolError):
    """A symbol address does not fit in 32 bits once the base is applied"""

    def __init__(self, symbol, address: int):
        self.symbol = symbol
        self.address = address
        super().__init__(f"address 0x{address:x} does not fit in 32 bits: {symbol!r}")


# =============================================================================
# Python-native symbol model
# =============================================================================

class Section:
    """A loaded section: name, RVA and virtual size"""

    def __init__(self, name: str, base: int, size: int, characteristics: int = 0):
        self.name = name
        self.base = base
        self.size = size
        self.characteristics = characteristics

    @classmethod
    def from_header(cls, header: ImageSectionHeader, name: str) -> 'Section':
        return cls(name, header.VirtualAddress, header.VirtualSize, header.Characteristics)

    @property
    def end(self) -> int:
        return self.base + self.size

    def __repr__(self):
        return f"Section({self.name!r}, base=0x{self.base:x}, size=0x{self.size:x})"


class RawEntry:
    """
    One primary record from the COFF symbol table.

    The name is either stored inline (``name``) or as an offset into the
    string table (``name_offset``); exactly one of them is set.
    """

    def __init__(self, value: int, section_number: int,
                 storage_class: int = StorageClass.IMAGE_SYM_CLASS_EXTERNAL,
                 name=None, name_offset=None, sym_type: int = 0,
                 number_of_aux_symbols: int = 0, index: int = 0):
        self.index = index
        self.name = name
        self.name_offset = name_offset
        self.value = value
        self.section_number = section_number
        self.storage_class = storage_class
        self.type = sym_type
        self.number_of_aux_symbols = number_of_aux_symbols

    @classmethod
    def from_image_symbol(cls, symbol: ImageSymbol, index: int = 0) -> 'RawEntry':
        name = None
        name_offset = None
        if symbol.N.LongName.Zeroes == 0:
            name_offset = symbol.N.LongName.Offset
        else:
            raw = bytes(symbol.N.ShortName).split(b'\x00', 1)[0]
            name = raw.decode('utf-8', errors='replace')

        return cls(value=symbol.Value,
                   section_number=symbol.SectionNumber,
                   storage_class=symbol.StorageClass,
                   name=name,
                   name_offset=name_offset,
                   sym_type=symbol.Type,
                   number_of_aux_symbols=symbol.NumberOfAuxSymbols,
                   index=index)

    def is_section_definition(self) -> bool:
        return (self.storage_class == StorageClass.IMAGE_SYM_CLASS_STATIC and
                self.number_of_aux_symbols > 0)

    def is_file(self) -> bool:
        return self.storage_class == StorageClass.IMAGE_SYM_CLASS_FILE

    def is_weak_external(self) -> bool:
        return self.storage_class == StorageClass.IMAGE_SYM_CLASS_WEAK_EXTERNAL

    def __repr__(self):
        name = self.name if self.name is not None else f"<strtab+0x{self.name_offset:x}>"
        return (f"RawEntry(#{self.index} {name}, value=0x{self.value:x}, "
                f"section={self.section_number}, class={self.storage_class}, "
                f"aux={self.number_of_aux_symbols})")


class ResolvedSymbol:
    """
    A named, section-relative symbol

    ``size`` is None until size inference has run.
    """

    def __init__(self, name: str, section: Section, offset: int):
        self.name = name
        self.section = section.name
        self.section_base = section.base
        self.section_size = section.size
        self.offset = offset
        self.size = None

    def vaddr(self, global_base: int = 0) -> int:
        return global_base + self.section_base + self.offset

    @property
    def section_end(self) -> int:
        return self.section_base + self.section_size

    def __repr__(self):
        size = "?" if self.size is None else f"0x{self.size:x}"
        return (f"ResolvedSymbol({self.name!r}, section={self.section!r}, "
                f"sectbase=0x{self.section_base:x}, sectsize=0x{self.section_size:x}, "
                f"offset=0x{self.offset:x}, size={size})")
