#!/usr/bin/env python3
"""
Symbol reconciliation tests
"""

import sys
import os

import pytest

# Add src to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from loadersyms.pe_reader import StringTable
from loadersyms.resolver import SymbolResolver, resolve_symbols, symbol_name
from loadersyms.emitter import nmadd_lines
from loadersyms.types import (
    RawEntry, Section, SectionNumber, StorageClass, DuplicateSymbol, InvalidSectionIndex,
    MissingStringTableEntry, SymbolOutsideSection,
)

EXTERNAL = StorageClass.IMAGE_SYM_CLASS_EXTERNAL
STATIC = StorageClass.IMAGE_SYM_CLASS_STATIC
FILE = StorageClass.IMAGE_SYM_CLASS_FILE
WEAK = StorageClass.IMAGE_SYM_CLASS_WEAK_EXTERNAL

TEXT = Section('.text', 0x1000, 0x100)
DATA = Section('.data', 0x2000, 0x80)

EMPTY_STRINGS = StringTable()


def entry(name, value, section=1, storage=EXTERNAL, aux=0):
    return RawEntry(value=value, section_number=section, storage_class=storage,
                    name=name, number_of_aux_symbols=aux)


def names(symbols):
    return [s.name for s in symbols]


def test_two_symbols_in_text():
    # A zero value means "no address", so the section starts 0x10 below foo
    text = Section('.text', 0xff0, 0x110)
    symbols = resolve_symbols([text], [entry('foo', 0x10), entry('bar', 0x20)], EMPTY_STRINGS)

    assert nmadd_lines(symbols, 0) == [
        '0x00001000::nmadd -f -s 0x00000010 foo',
        '0x00001010::nmadd -f -s 0x000000f0 bar',
    ]


def test_sizes_cover_each_section():
    entries = [
        entry('d2', 0x40, section=2),
        entry('t1', 0x8),
        entry('d1', 0x10, section=2),
        entry('t2', 0x30),
        entry('t3', 0x31),
    ]
    symbols = resolve_symbols([TEXT, DATA], entries, EMPTY_STRINGS)

    assert names(symbols) == ['t1', 't2', 't3', 'd1', 'd2']
    sizes = {s.name: s.size for s in symbols}
    assert sizes == {
        't1': 0x28,
        't2': 0x1,
        't3': 0x100 - 0x31,
        'd1': 0x30,
        'd2': 0x80 - 0x40,
    }

    for section in (TEXT, DATA):
        in_section = [s for s in symbols if s.section == section.name]
        last = in_section[-1]
        assert last.vaddr(0) + last.size == section.end


def test_output_sorted_and_unique():
    entries = [entry(f"s{i}", value) for i, value in enumerate([0x90, 0x04, 0x50, 0x20])]
    symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    addresses = [s.vaddr(0) for s in symbols]
    assert addresses == sorted(addresses)
    assert len(set(addresses)) == len(addresses)


def test_filtered_entries_never_appear():
    entries = [
        entry('zero', 0x0),
        entry('.text', 0x10, storage=STATIC, aux=1),
        entry('crt.c', 0x20, storage=FILE, aux=1),
        entry('helper.localalias', 0x30),
        entry('keep', 0x40),
    ]
    symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    assert names(symbols) == ['keep']


def test_static_without_aux_is_kept():
    symbols = resolve_symbols([TEXT], [entry('local_fn', 0x10, storage=STATIC)], EMPTY_STRINGS)

    assert names(symbols) == ['local_fn']


def test_zero_value_dropped_before_section_lookup():
    # Undefined symbol with value 0 and section 0 must not be fatal
    symbols = resolve_symbols([TEXT], [entry('undef', 0, section=SectionNumber.IMAGE_SYM_UNDEFINED), entry('foo', 0x10)],
                              EMPTY_STRINGS)

    assert names(symbols) == ['foo']


def test_weak_alias_dropped_when_primary_exists():
    entries = [entry('foo', 0x10), entry('foo_weak', 0x10, storage=WEAK, aux=1)]
    symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    assert names(symbols) == ['foo']


def test_weak_alias_before_primary_in_table():
    entries = [entry('foo_weak', 0x10, storage=WEAK, aux=1), entry('foo', 0x10)]
    symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    assert names(symbols) == ['foo']


def test_orphan_weak_external_is_promoted(caplog):
    entries = [entry('foo', 0x10), entry('orphan', 0x20, storage=WEAK, aux=1)]

    with caplog.at_level('WARNING'):
        symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    assert names(symbols) == ['foo', 'orphan']
    assert symbols[0].size == 0x10
    assert 'missing main symbol' in caplog.text


def test_second_weak_external_shadowed_by_promoted_one():
    entries = [
        entry('weak_a', 0x20, storage=WEAK, aux=1),
        entry('weak_b', 0x20, storage=WEAK, aux=1),
    ]
    symbols = resolve_symbols([TEXT], entries, EMPTY_STRINGS)

    assert names(symbols) == ['weak_a']


def test_duplicate_definitions_are_fatal():
    resolver = SymbolResolver([TEXT], [entry('foo', 0x10), entry('bar', 0x10)], EMPTY_STRINGS)

    with pytest.raises(DuplicateSymbol) as excinfo:
        resolver.resolve()

    assert excinfo.value.existing.name == 'foo'
    assert excinfo.value.duplicate.name == 'bar'
    assert 'foo' in str(excinfo.value) and 'bar' in str(excinfo.value)


def test_duplicate_across_sections_by_address():
    # Overlapping section layouts map two symbols to the same address
    overlapping = Section('.rdata', 0x1000, 0x40)
    entries = [entry('foo', 0x10, section=1), entry('bar', 0x10, section=2)]

    with pytest.raises(DuplicateSymbol):
        resolve_symbols([TEXT, overlapping], entries, EMPTY_STRINGS)


def test_invalid_section_index():
    with pytest.raises(InvalidSectionIndex) as excinfo:
        resolve_symbols([TEXT], [entry('foo', 0x10, section=2)], EMPTY_STRINGS)

    assert excinfo.value.section_number == 2


def test_absolute_symbol_is_invalid_section():
    with pytest.raises(InvalidSectionIndex):
        resolve_symbols([TEXT], [entry('abs', 0x10, section=SectionNumber.IMAGE_SYM_ABSOLUTE)], EMPTY_STRINGS)


def test_local_alias_not_checked_for_section():
    symbols = resolve_symbols([TEXT], [entry('x.localalias', 0x10, section=9), entry('y', 0x20)],
                              EMPTY_STRINGS)

    assert names(symbols) == ['y']


def test_symbol_outside_its_section():
    with pytest.raises(SymbolOutsideSection):
        resolve_symbols([TEXT], [entry('past_end', 0x200)], EMPTY_STRINGS)


def test_symbol_at_section_end_has_zero_size():
    symbols = resolve_symbols([TEXT], [entry('end', 0x100)], EMPTY_STRINGS)

    assert symbols[0].size == 0


def test_string_table_names():
    strings = StringTable(b'\x1e\x00\x00\x00' + b'a_rather_long_symbol_name\x00')
    long_entry = RawEntry(value=0x10, section_number=1, name_offset=4)

    assert symbol_name(long_entry, strings) == 'a_rather_long_symbol_name'
    symbols = resolve_symbols([TEXT], [long_entry], strings)
    assert names(symbols) == ['a_rather_long_symbol_name']


def test_missing_string_table_entry():
    bad = RawEntry(value=0x10, section_number=1, name_offset=0x400)

    with pytest.raises(MissingStringTableEntry) as excinfo:
        resolve_symbols([TEXT], [bad], EMPTY_STRINGS)

    assert excinfo.value.offset == 0x400


def test_missing_name_fatal_even_for_filtered_entry():
    bad = RawEntry(value=0, section_number=0, name_offset=0x400)

    with pytest.raises(MissingStringTableEntry):
        resolve_symbols([TEXT], [bad], EMPTY_STRINGS)


def test_empty_symbol_table():
    assert resolve_symbols([TEXT], [], EMPTY_STRINGS) == []
