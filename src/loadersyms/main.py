#!/usr/bin/env python3
"""
loadersyms
==========

Extract the COFF symbol table of a PE loader image and print it as mdb
``::nmadd`` commands, so that the loader can be debugged with symbols after
it has been placed at a known base address.

Every symbol gets an address (global base + section RVA + value) and a size
that runs up to the next symbol of its section. Weak externals that alias a
regular definition are dropped; two definitions at one address are an error.

CLI Usage:
    loadersyms loader.efi 0x7f000000 > loader.mdb

Module Usage:
    import loadersyms

    with open('loader.efi', 'rb') as f:
        data = f.read()

    for line in loadersyms.generate_nmadd(data, 0x7f000000):
        print(line)
"""

import sys
import argparse
import logging
from typing import List, Optional, Union

from .utils import setup_logging, parse_base_address, check_base_address
from .pe_reader import PEReader
from .resolver import SymbolResolver
from .emitter import DEFAULT_TEXT_SECTION, check_addresses, nmadd_lines, write_nmadd
from .types import PEFormatError, SymbolError

logger = logging.getLogger(__name__)


def generate_nmadd(image_data: Union[bytes, bytearray],
                   base_addr: Union[int, str],
                   text_section: str = DEFAULT_TEXT_SECTION) -> List[str]:
    """
    Build the ::nmadd commands for a PE image held in memory.

    Args:
        image_data: the PE image as bytes or bytearray
        base_addr: global base address (int, or decimal / 0x-prefixed string)
        text_section: name of the section whose symbols are functions

    Returns:
        One command line per symbol, in address order

    Raises:
        PEFormatError: the image could not be parsed
        SymbolError: the symbol table could not be reconciled
        ValueError: the base address is malformed or does not fit in 32 bits
    """
    if isinstance(base_addr, str):
        base_addr = parse_base_address(base_addr)
    else:
        base_addr = check_base_address(base_addr)

    with PEReader.from_bytes(image_data) as reader:
        if not reader.load():
            raise PEFormatError("Failed to load PE image")

        symbols = SymbolResolver.from_reader(reader).resolve()

    check_addresses(symbols, base_addr)
    return nmadd_lines(symbols, base_addr, text_section)


def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Emit mdb ::nmadd commands for the symbols of a PE loader image',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Symbols for a loader placed at 0x7f000000
  loadersyms loader.efi 0x7f000000 > loader.mdb

  # Decimal base address, written to a file, with debug output
  loadersyms loader.efi 2130706432 -o loader.mdb -d

  # Show the section table only
  loadersyms loader.efi 0 -l
        """
    )

    parser.add_argument('image',
                        help='PE loader image path')
    parser.add_argument('base',
                        help='Global base address (decimal or 0x-prefixed hex)')
    parser.add_argument('-o', '--output',
                        help='Write commands to this file instead of stdout')
    parser.add_argument('-t', '--text-section', default=DEFAULT_TEXT_SECTION,
                        help=f'Section holding functions (default: {DEFAULT_TEXT_SECTION})')
    parser.add_argument('-l', '--list-sections', action='store_true',
                        help='Print the section table and exit')
    parser.add_argument('-d', '--debug', action='store_true',
                        help='Enable debug output')

    args = parser.parse_args(argv)

    setup_logging(args.debug)

    try:
        try:
            global_base = parse_base_address(args.base)
        except ValueError:
            logger.error(f"Invalid base address: {args.base}")
            return 1

        with PEReader(args.image) as reader:
            if not reader.load():
                logger.error("Failed to load PE image")
                return 1
            logger.info("parsed ok")

            if args.list_sections:
                reader.list_sections()
                return 0

            symbols = SymbolResolver.from_reader(reader).resolve()

        # Nothing is written (or created) until every address is known to fit
        check_addresses(symbols, global_base)

        if args.output:
            try:
                with open(args.output, 'w') as f:
                    write_nmadd(symbols, global_base, f, args.text_section)
            except (IOError, OSError) as e:
                logger.error(f"Failed to write output file {args.output}: {e}")
                return 1
            logger.info(f"Wrote {len(symbols)} symbols to {args.output}")
        else:
            write_nmadd(symbols, global_base, sys.stdout, args.text_section)

        return 0

    except SymbolError as e:
        logger.error(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
