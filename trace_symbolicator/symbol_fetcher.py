"""Symbol server retrieval.

Downloads Breakpad symbol files from an ordered list of symbol servers and
moves them into the local cache only once the download has completed.
"""
from __future__ import annotations

import os
import tempfile
import urllib.parse
from pathlib import Path
from typing import Callable, Optional, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .console import safe_print
from .exceptions import SymbolFetchError


DEFAULT_SYMBOL_SERVERS = (
    'https://symbols.mozilla.org/try',
    'https://symbols.electronjs.org',
)

USER_AGENT = 'trace-symbolicator/1.0 (Symbol Download)'

# Staging directory for partial downloads, relative to the cache root
IN_PROGRESS_DIR = 'in_progress'


def _quote(component: str) -> str:
    # Same escaping as JavaScript's encodeURIComponent
    return urllib.parse.quote(component, safe="!~*'()")


def build_session(retries: int = 3) -> requests.Session:
    """Create an HTTP session that retries transient server errors."""
    session = requests.Session()
    retry_strategy = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({'User-Agent': USER_AGENT})
    return session


class FetchCoordinator:
    """
    Fetches symbol files from symbol servers into a cache directory.

    Servers are tried strictly in order. A 404 means "try the next server";
    any other failure raises :class:`SymbolFetchError`.
    """

    CHUNK_SIZE = 8192

    def __init__(self, cache_dir: Path,
                 symbol_servers: Sequence[str] = DEFAULT_SYMBOL_SERVERS,
                 session: Optional[requests.Session] = None,
                 timeout: float = 60.0,
                 verbose: bool = False,
                 on_fetch: Optional[Callable[[str], None]] = None):
        """
        Args:
            cache_dir: Cache root; downloads are staged in its in_progress/ subdirectory
            symbol_servers: Base URLs in priority order
            session: HTTP session to use. Defaults to a retrying session.
            timeout: Per-request timeout in seconds
            verbose: Print each attempt
            on_fetch: Called with each URL before it is requested
        """
        self.cache_dir = Path(cache_dir)
        self.symbol_servers = list(symbol_servers)
        self.timeout = timeout
        self.verbose = verbose
        self.on_fetch = on_fetch
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session()
        return self._session

    def _log(self, message: str):
        if self.verbose:
            safe_print(f"[SYMBOL] {message}")

    @staticmethod
    def build_url(base_url: str, pdb: str, debug_id: str, symbol_file_name: str) -> str:
        return f"{base_url.rstrip('/')}/{_quote(pdb)}/{debug_id}/{_quote(symbol_file_name)}"

    def fetch(self, pdb: str, debug_id: str, symbol_file_name: str, dest: Path) -> bool:
        """
        Download a symbol file to ``dest``.

        Returns:
            True if the file is now at ``dest``, False if no server had it

        Raises:
            SymbolFetchError: a server failed with anything but a 404
        """
        for server_idx, base_url in enumerate(self.symbol_servers, 1):
            url = self.build_url(base_url, pdb, debug_id, symbol_file_name)
            self._log(f"Try {server_idx}/{len(self.symbol_servers)}: {url}")
            if self._download(url, pdb, debug_id, dest):
                return True
        return False

    def _download(self, url: str, pdb: str, debug_id: str, dest: Path) -> bool:
        if self.on_fetch is not None:
            self.on_fetch(url)

        try:
            response = self.session.get(url, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            raise SymbolFetchError(url, f"{type(e).__name__}: {e}") from e

        with response:
            self._log(f"  -> HTTP {response.status_code}")
            if response.status_code == 404:
                return False
            if response.status_code != 200:
                raise SymbolFetchError(url, f"HTTP {response.status_code}",
                                       status_code=response.status_code)

            staging_dir = self.cache_dir / IN_PROGRESS_DIR
            staging_dir.mkdir(parents=True, exist_ok=True)
            prefix = f"{pdb}_{debug_id}_".replace('/', '_')
            fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix='.download', dir=staging_dir)
            try:
                with os.fdopen(fd, 'wb') as f:
                    # iter_content undoes any Content-Encoding (gzip, deflate)
                    for chunk in response.iter_content(chunk_size=self.CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)

                # Only a complete download is moved into place, so an
                # interrupted run never leaves a truncated file at dest.
                dest.parent.mkdir(parents=True, exist_ok=True)
                os.replace(tmp_name, dest)
            except requests.RequestException as e:
                _discard(tmp_name)
                raise SymbolFetchError(url, f"{type(e).__name__}: {e}") from e
            except BaseException:
                _discard(tmp_name)
                raise

        self._log(f"+ Downloaded {dest.name} ({dest.stat().st_size} bytes)")
        return True


def _discard(path: str):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
