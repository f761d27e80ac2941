"""On-disk symbol cache and per-run module resolution.

Symbol files are stored as fetched, at::

    <cache_root>/<pdb>/<debug_id>/<symbol_file_name>

and parsed on every run. A file that fails to parse is treated as corrupt:
its per-module directory is removed and the symbol file is fetched again.
"""
from __future__ import annotations

import shutil
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Callable, Dict, Optional

from . import breakpad
from .breakpad import SymbolFile
from .console import safe_print
from .exceptions import SymbolFileParseError
from .symbol_fetcher import IN_PROGRESS_DIR, FetchCoordinator


def pdb_base_name(module_name: str) -> str:
    """Strip the leading slash trace exporters put on module names."""
    return module_name[1:] if module_name.startswith('/') else module_name


def symbol_file_name(pdb: str) -> str:
    """``foo.pdb`` -> ``foo.sym``; anything else gets ``.sym`` appended."""
    if pdb.endswith('.pdb'):
        return pdb[:-len('.pdb')] + '.sym'
    return pdb + '.sym'


class SymbolCache:
    """
    Maps (debug id, module name) to a parsed SymbolFile, fetching on a miss.

    All side effects stay under ``cache_dir``.
    """

    def __init__(self, cache_dir: Path, fetcher: FetchCoordinator,
                 verbose: bool = False,
                 parse_file: Callable[[Path], SymbolFile] = breakpad.parse_file):
        self.cache_dir = Path(cache_dir)
        self.fetcher = fetcher
        self.verbose = verbose
        self.parse_file = parse_file
        self._stats_lock = threading.Lock()
        self.stats: Dict[str, int] = {
            'symbols_downloaded': 0,
            'symbols_cached': 0,
            'symbols_missing': 0,
            'symbols_rejected': 0,
            'cache_recovered': 0,
        }

    def _log(self, message: str):
        if self.verbose:
            safe_print(f"[SYMBOL] {message}")

    def _count(self, key: str):
        with self._stats_lock:
            self.stats[key] += 1

    def get_statistics(self) -> Dict[str, int]:
        with self._stats_lock:
            return dict(self.stats)

    def cache_path(self, pdb: str, debug_id: str) -> Path:
        return self.cache_dir / pdb / debug_id / symbol_file_name(pdb)

    def get(self, module_id: str, module_name: str,
            force_refresh: bool = False) -> Optional[SymbolFile]:
        """
        Return the parsed symbol file for a module, or None if no symbol
        server has it.

        Raises:
            SymbolFetchError: a symbol server failed fatally
            SymbolFileParseError: a freshly downloaded file did not parse
        """
        pdb = pdb_base_name(module_name)
        sym_name = symbol_file_name(pdb)
        symbol_path = self.cache_path(pdb, module_id)

        if not self._within_cache(symbol_path):
            safe_print(f"[SYMBOL] - Ignoring module {module_name!r}: symbol path escapes the cache")
            self._count('symbols_rejected')
            return None

        if symbol_path.exists() and not force_refresh:
            try:
                symbols = self.parse_file(symbol_path)
            except SymbolFileParseError as e:
                safe_print(f"[SYMBOL] - {e}")
                safe_print("[SYMBOL] - Flushing cache and attempting redownload.")
                self._remove_module_dir(symbol_path)
                self._count('cache_recovered')
            else:
                self._count('symbols_cached')
                self._log(f"+ {pdb} (cached)")
                return symbols

        try:
            if not self.fetcher.fetch(pdb, module_id, sym_name, symbol_path):
                self._count('symbols_missing')
                self._log(f"- No symbols for {pdb} [{module_id}]")
                return None
            symbols = self.parse_file(symbol_path)
        except Exception:
            # Don't trust anything left for this module; next run refetches.
            self._remove_module_dir(symbol_path)
            raise

        self._count('symbols_downloaded')
        return symbols

    def _within_cache(self, symbol_path: Path) -> bool:
        """True if ``symbol_path`` and its module directory are below the cache root."""
        root = self.cache_dir.resolve()
        module_dir = symbol_path.parent.resolve()
        if root not in module_dir.parents or root not in symbol_path.resolve().parents:
            return False
        return module_dir.relative_to(root).parts[0] != IN_PROGRESS_DIR

    def _remove_module_dir(self, symbol_path: Path):
        shutil.rmtree(symbol_path.parent, ignore_errors=True)

    def clear(self):
        """Remove every cached symbol file."""
        if self.cache_dir.exists():
            shutil.rmtree(self.cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def size_bytes(self) -> int:
        """Total size of cached files in bytes."""
        if not self.cache_dir.exists():
            return 0
        return sum(p.stat().st_size for p in self.cache_dir.rglob('*') if p.is_file())


class ModuleResolver:
    """
    Per-run table of module id -> in-flight or completed resolution.

    The first caller for a module id performs the cache lookup (and fetch);
    callers arriving while it runs wait on the same future, so each module
    is fetched at most once per run. Errors are re-raised to every waiter.
    """

    def __init__(self, cache: SymbolCache, force_refresh: bool = False):
        self.cache = cache
        self.force_refresh = force_refresh
        self._lock = threading.Lock()
        self._futures: Dict[str, Future] = {}

    def resolve(self, module_id: str, module_name: str) -> Optional[SymbolFile]:
        with self._lock:
            future = self._futures.get(module_id)
            owner = future is None
            if owner:
                future = Future()
                self._futures[module_id] = future

        if owner:
            try:
                result = self.cache.get(module_id, module_name, self.force_refresh)
            except BaseException as e:
                future.set_exception(e)
                raise
            future.set_result(result)
            return result

        return future.result()

    def __len__(self) -> int:
        with self._lock:
            return len(self._futures)
