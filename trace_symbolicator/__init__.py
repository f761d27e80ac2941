"""Trace Symbolicator package.

This package resolves native frames in Chrome/Perfetto CPU profiler traces
using Breakpad symbol files, including:
- Parsing Breakpad .sym files into address-indexed function/line/public tables
- Tiered address lookup (line, then function, then public symbol)
- Downloading symbol files from an ordered list of symbol servers
- An on-disk symbol cache with atomic writes and corruption recovery
- Per-module download deduplication across concurrently symbolicated frames
"""
from .address_index import AddressIndex
from .breakpad import (
    FunctionRecord,
    LineRecord,
    Module,
    PublicSymbolRecord,
    SymbolFile,
    SymbolLookup,
    parse,
    parse_file,
)
from .config import SymbolicatorConfig
from .core import Symbolicator, format_frame, parse_frame
from .exceptions import (
    SymbolicationError,
    SymbolFetchError,
    SymbolFileParseError,
    TraceFormatError,
)
from .symbol_cache import ModuleResolver, SymbolCache
from .symbol_fetcher import DEFAULT_SYMBOL_SERVERS, FetchCoordinator

__all__ = [
    # Symbol files
    "AddressIndex",
    "FunctionRecord",
    "LineRecord",
    "Module",
    "PublicSymbolRecord",
    "SymbolFile",
    "SymbolLookup",
    "parse",
    "parse_file",
    # Fetching and caching
    "DEFAULT_SYMBOL_SERVERS",
    "FetchCoordinator",
    "ModuleResolver",
    "SymbolCache",
    # Symbolication
    "Symbolicator",
    "SymbolicatorConfig",
    "format_frame",
    "parse_frame",
    # Errors
    "SymbolicationError",
    "SymbolFetchError",
    "SymbolFileParseError",
    "TraceFormatError",
]

__version__ = "1.0.0"
