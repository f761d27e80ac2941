"""Runtime configuration.

Values come from keyword arguments or from environment variables (a ``.env``
file is loaded by the ``symbolicate_trace.py`` launcher):

    TRACE_SYMBOL_CACHE          cache directory
    TRACE_SYMBOL_SERVERS        comma separated symbol server base URLs
    TRACE_SYMBOL_FORCE_REFETCH  1/true/yes to ignore cached symbol files
    TRACE_SYMBOL_WORKERS        number of frame worker threads
    TRACE_SYMBOL_TIMEOUT        HTTP timeout in seconds
    TRACE_SYMBOL_VERBOSE        1/true/yes for per-download output
"""
from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from .symbol_fetcher import DEFAULT_SYMBOL_SERVERS


def default_cache_dir() -> Path:
    return Path(tempfile.gettempdir()) / "breakpad_symbols"


def _env_flag(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass
class SymbolicatorConfig:
    """Settings for one symbolication run."""
    cache_dir: Path = field(default_factory=default_cache_dir)
    symbol_servers: List[str] = field(default_factory=lambda: list(DEFAULT_SYMBOL_SERVERS))
    force_refetch: bool = False
    max_workers: int = 16
    request_timeout: float = 60.0
    verbose: bool = False

    def __post_init__(self):
        self.cache_dir = Path(self.cache_dir)
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if not self.symbol_servers:
            raise ValueError("at least one symbol server is required")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "SymbolicatorConfig":
        """Build a config from environment variables; ``overrides`` that are not None win."""
        env = os.environ if environ is None else environ
        values = {}

        if env.get('TRACE_SYMBOL_CACHE'):
            values['cache_dir'] = Path(env['TRACE_SYMBOL_CACHE']).expanduser()
        if env.get('TRACE_SYMBOL_SERVERS'):
            values['symbol_servers'] = [s.strip() for s in env['TRACE_SYMBOL_SERVERS'].split(',') if s.strip()]
        if 'TRACE_SYMBOL_FORCE_REFETCH' in env:
            values['force_refetch'] = _env_flag(env['TRACE_SYMBOL_FORCE_REFETCH'])
        if env.get('TRACE_SYMBOL_WORKERS'):
            values['max_workers'] = int(env['TRACE_SYMBOL_WORKERS'])
        if env.get('TRACE_SYMBOL_TIMEOUT'):
            values['request_timeout'] = float(env['TRACE_SYMBOL_TIMEOUT'])
        if 'TRACE_SYMBOL_VERBOSE' in env:
            values['verbose'] = _env_flag(env['TRACE_SYMBOL_VERBOSE'])

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
