#!/usr/bin/env python3
"""
PE Utilities Module
===================

This module contains utility functions shared by the reader and the CLI:
- PE image detection
- Base address parsing
- Logging configuration
"""

import ctypes
import logging
from typing import Optional
from .types import *


MAX_ADDRESS = 0xFFFFFFFF


# =============================================================================
# PE image detection
# =============================================================================

def detect_pe_image(data: bytes) -> Optional[int]:
    """
    Check for the MZ stub and PE signature

    Args:
        data: raw image bytes

    Returns:
        File offset of the COFF file header, or None if this is not a PE image
    """
    if len(data) < ctypes.sizeof(ImageDosHeader):
        return None

    dos_header = ImageDosHeader.from_buffer_copy(data)
    if bytes(dos_header.e_magic) != DOS_MAGIC:
        return None

    e_lfanew = dos_header.e_lfanew
    if data[e_lfanew:e_lfanew + 4] != PE_SIGNATURE:
        return None

    return e_lfanew + len(PE_SIGNATURE)


def parse_base_address(addr_str: str) -> int:
    """Parse a 32-bit base address given as decimal or 0x-prefixed hex"""
    addr_str = addr_str.strip()

    if addr_str.startswith('0x'):
        value = int(addr_str[2:], 16)
    else:
        value = int(addr_str, 10)

    return check_base_address(value)


def check_base_address(value: int) -> int:
    """Reject base addresses that do not fit in 32 bits"""
    if value < 0 or value > MAX_ADDRESS:
        raise ValueError(f"base address out of range: {value:#x}")
    return value


def setup_logging(debug: bool):
    """Setup logging configuration"""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(levelname)s: %(message)s',
        force=True
    )
