"""Breakpad symbol file parsing and address lookup.

A Breakpad ``.sym`` file is a line-oriented text format: one MODULE header,
FILE records naming source files, FUNC records giving function ranges, line
records (four bare numbers) mapping address sub-ranges of the preceding FUNC
to source lines, and PUBLIC records for exported addresses without a size.

See https://chromium.googlesource.com/breakpad/breakpad/+/master/docs/symbol_files.md
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from .address_index import AddressIndex
from .exceptions import SymbolFileParseError


MODULE_RE = re.compile(r'^MODULE (\S+) (\S+) (\S+)(?: (.*))?$')
FILE_RE = re.compile(r'^FILE (\d+)(?: (.*))?$')
FUNC_RE = re.compile(r'^FUNC (?:(m) )?([0-9a-f]+) ([0-9a-f]+) ([0-9a-f]+)(?: (.*))?$')
PUBLIC_RE = re.compile(r'^PUBLIC (?:(m) )?([0-9a-f]+) ([0-9a-f]+)(?: (.*))?$')
LINE_RE = re.compile(r'^([0-9a-f]+) ([0-9a-f]+) (\d+) (\d+)$')


@dataclass(frozen=True)
class Module:
    """Identity of the binary a symbol file describes."""
    os: str
    architecture: str
    debug_id: str
    name: str


@dataclass
class FunctionRecord:
    """A FUNC record: a function's address range."""
    address: int
    size: int
    parameter_size: int
    name: str
    # Several (identical-code-folded) functions share this address
    multiple: bool = False


@dataclass
class PublicSymbolRecord:
    """A PUBLIC record: a named address with no known extent."""
    address: int
    parameter_size: int
    name: str
    multiple: bool = False


@dataclass
class LineRecord:
    """Maps an address sub-range of a function to a source line."""
    address: int
    size: int
    line_number: int
    source_file: Optional[str]
    # Last FUNC parsed before this record; None in truncated/malformed files
    owning_function: Optional[FunctionRecord] = field(default=None, repr=False, compare=False)


@dataclass
class SymbolLookup:
    """Result of resolving an offset within a module."""
    function: Optional[Union[FunctionRecord, PublicSymbolRecord]]
    file: Optional[str] = None
    line: Optional[int] = None

    @property
    def function_name(self) -> Optional[str]:
        return self.function.name if self.function is not None else None


@dataclass
class SymbolFile:
    """Parsed contents of one Breakpad symbol file.

    Built once by :func:`parse`; read-only afterwards, so a single instance
    can be shared between threads.
    """
    functions: AddressIndex = field(default_factory=AddressIndex)
    lines: AddressIndex = field(default_factory=AddressIndex)
    public_symbols: AddressIndex = field(default_factory=AddressIndex)
    files: Dict[str, str] = field(default_factory=dict)
    module: Optional[Module] = None
    # Records of kinds we do not index (STACK CFI, STACK WIN, INFO, INLINE...)
    skipped_records: int = 0

    def lookup(self, offset: int) -> Optional[SymbolLookup]:
        """
        Resolve a module-relative offset.

        Line information wins over function ranges, which win over public
        symbols. Line and function records only match inside their
        ``[address, address + size)`` range; a public symbol matches any
        offset at or above its address since its extent is unknown.
        """
        line = self.lines.predecessor(offset)
        if line is not None and offset < line.address + line.size:
            return SymbolLookup(line.owning_function, line.source_file, line.line_number)

        func = self.functions.predecessor(offset)
        if func is not None and offset < func.address + func.size:
            return SymbolLookup(func)

        public = self.public_symbols.predecessor(offset)
        if public is not None:
            return SymbolLookup(public)

        return None


def parse(lines: Iterable[str],
          on_unknown_record: Optional[Callable[[str], None]] = None) -> SymbolFile:
    """
    Build a SymbolFile from the lines of a Breakpad symbol file.

    Args:
        lines: Text lines; trailing newlines are ignored
        on_unknown_record: Called with every line that is not a MODULE, FILE,
            FUNC, PUBLIC or line record. Such lines are otherwise skipped.

    Returns:
        The populated SymbolFile
    """
    symbol_file = SymbolFile()
    files = symbol_file.files
    last_func: Optional[FunctionRecord] = None

    for raw in lines:
        line = raw.rstrip('\r\n')

        m = MODULE_RE.match(line)
        if m:
            os_name, arch, debug_id, name = m.groups()
            symbol_file.module = Module(os_name, arch, debug_id, name or '')
            continue

        m = FILE_RE.match(line)
        if m:
            file_id, file_name = m.groups()
            files[file_id] = file_name or ''
            continue

        m = FUNC_RE.match(line)
        if m:
            multiple, address_hex, size_hex, param_hex, name = m.groups()
            func = FunctionRecord(
                address=int(address_hex, 16),
                size=int(size_hex, 16),
                parameter_size=int(param_hex, 16),
                name=name or '',
                multiple=bool(multiple),
            )
            symbol_file.functions.insert(func.address, func)
            last_func = func
            continue

        m = PUBLIC_RE.match(line)
        if m:
            multiple, address_hex, param_hex, name = m.groups()
            public = PublicSymbolRecord(
                address=int(address_hex, 16),
                parameter_size=int(param_hex, 16),
                name=name or '',
                multiple=bool(multiple),
            )
            symbol_file.public_symbols.insert(public.address, public)
            continue

        m = LINE_RE.match(line)
        if m:
            address_hex, size_hex, line_number, file_id = m.groups()
            record = LineRecord(
                address=int(address_hex, 16),
                size=int(size_hex, 16),
                line_number=int(line_number, 10),
                source_file=files.get(file_id),
                owning_function=last_func,
            )
            symbol_file.lines.insert(record.address, record)
            continue

        symbol_file.skipped_records += 1
        if on_unknown_record is not None:
            on_unknown_record(line)

    return symbol_file


def parse_file(path: Union[str, Path],
               on_unknown_record: Optional[Callable[[str], None]] = None) -> SymbolFile:
    """Parse a symbol file from disk.

    Raises:
        SymbolFileParseError: the file cannot be read or is not valid UTF-8
    """
    try:
        with open(path, 'r', encoding='utf-8', errors='strict') as f:
            return parse(f, on_unknown_record)
    except UnicodeDecodeError as e:
        raise SymbolFileParseError(path, f"invalid UTF-8 at byte {e.start}") from e
    except OSError as e:
        raise SymbolFileParseError(path, str(e)) from e
