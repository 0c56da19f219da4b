#!/usr/bin/env python3
"""
Symbol Resolver Module
======================

Turns the raw COFF symbol records of a loader image into a flat, address
sorted, size annotated symbol list.

Resolution runs in three steps:
- Candidate collection: name lookup and filtering of records that do not
  name an address (section definitions, file records, zero values, local
  aliases)
- Reconciliation: strong definitions first, then weak externals, which are
  dropped when they alias a strong definition; any other address collision
  is fatal
- Size inference: each symbol extends to the next symbol of its section, the
  last one to the end of the section
"""

import logging
from typing import Dict, Iterable, List, Sequence

from .types import *

logger = logging.getLogger(__name__)


def symbol_name(entry: RawEntry, string_table) -> str:
    """
    Resolve the name of a raw entry

    Args:
        entry: raw symbol record
        string_table: object with a get_at(offset) lookup

    Raises:
        MissingStringTableEntry: the name offset has no string table entry
    """
    if entry.name is not None:
        return entry.name

    name = string_table.get_at(entry.name_offset)
    if name is None:
        raise MissingStringTableEntry(entry.name_offset, entry)
    return name


class SymbolResolver:
    """
    Reconciles raw symbol table entries against the image sections.
    """

    def __init__(self, sections: Sequence[Section], entries: Iterable[RawEntry], string_table):
        self.sections = list(sections)
        self.entries = list(entries)
        self.string_table = string_table

        # Working set, keyed by vaddr(0)
        self.symbols: Dict[int, ResolvedSymbol] = {}

    @classmethod
    def from_reader(cls, reader) -> 'SymbolResolver':
        return cls(reader.sections, reader.iter_symbols(), reader.string_table)

    def resolve(self) -> List[ResolvedSymbol]:
        """
        Run the whole resolution

        Returns:
            Symbols sorted by address, each with its size set
        """
        candidates = self._collect_candidates()

        strong = [c for c in candidates if not c[0].is_weak_external()]
        weak = [c for c in candidates if c[0].is_weak_external()]
        logger.debug(f"{len(strong)} strong candidates, {len(weak)} weak externals")

        # Every strong definition must be in place before any weak alias is
        # matched against the working set.
        for entry, name, section in strong:
            self._add_candidate(entry, name, section)
        for entry, name, section in weak:
            self._add_candidate(entry, name, section)

        result = self._infer_sizes()
        logger.info(f"Resolved {len(result)} symbols")
        return result

    def _collect_candidates(self) -> list:
        candidates = []

        for entry in self.entries:
            name = symbol_name(entry, self.string_table)

            if entry.is_section_definition() or entry.is_file():
                continue

            if entry.value == 0:
                logger.debug(f"SKIP: {name!r} -> {entry!r}")
                continue

            if name.endswith(LOCAL_ALIAS_SUFFIX):
                logger.debug(f"ignore local alias: {name!r}")
                continue

            candidates.append((entry, name, self._section_for(entry, name)))

        return candidates

    def _section_for(self, entry: RawEntry, name: str) -> Section:
        number = entry.section_number
        if number < 1 or number > len(self.sections):
            raise InvalidSectionIndex(name, number, len(self.sections))
        return self.sections[number - 1]

    def _add_candidate(self, entry: RawEntry, name: str, section: Section):
        symbol = ResolvedSymbol(name, section, entry.value)
        address = symbol.vaddr(0)

        existing = self.symbols.get(address)
        if existing is not None:
            if entry.is_weak_external():
                logger.debug(f"weak external {symbol!r} shadows {existing!r}")
                return
            raise DuplicateSymbol(existing, symbol)

        if entry.is_weak_external():
            logger.warning(f"missing main symbol for weak external {symbol!r}")

        self.symbols[address] = symbol

    def _infer_sizes(self) -> List[ResolvedSymbol]:
        ordered = sorted(self.symbols.values(), key=lambda s: s.vaddr(0))

        for i, symbol in enumerate(ordered):
            if i == len(ordered) - 1 or symbol.section != ordered[i + 1].section:
                # Runs to the end of its section
                size = symbol.section_end - symbol.vaddr(0)
                if size < 0:
                    raise SymbolOutsideSection(symbol)
            else:
                size = ordered[i + 1].vaddr(0) - symbol.vaddr(0)
            symbol.size = size

        return ordered


def resolve_symbols(sections: Sequence[Section], entries: Iterable[RawEntry],
                    string_table) -> List[ResolvedSymbol]:
    """Resolve raw entries into a sorted, sized symbol list"""
    return SymbolResolver(sections, entries, string_table).resolve()
