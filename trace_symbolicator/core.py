"""Trace symbolication.

Native CPU-profiler samples in Chrome traces carry their stacks as text,
one frame per line, in the form written by Perfetto's JSON exporter::

    0x<offset> - <module name> [<module id>]

Each frame is resolved against the module's Breakpad symbol file and the
function name (plus source file and line, when known) is appended.
"""
from __future__ import annotations

import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from .breakpad import SymbolLookup
from .config import SymbolicatorConfig
from .console import safe_print
from .exceptions import TraceFormatError
from .symbol_cache import ModuleResolver, SymbolCache
from .symbol_fetcher import FetchCoordinator


# ref: perfetto src/trace_processor/export_json.cc
FRAME_RE = re.compile(r'^0x([0-9a-f]+) - (.+) \[([0-9A-F]+)\]$')

CPU_PROFILER_CATEGORY = 'disabled-by-default-cpu_profiler'

UNKNOWN_FUNCTION = '<unknown>'


@dataclass
class FrameReference:
    """Module-relative address extracted from a frame line."""
    offset: int
    module_name: str
    module_id: str


def parse_frame(frame: str) -> Optional[FrameReference]:
    m = FRAME_RE.match(frame)
    if not m:
        return None
    offset_hex, module_name, module_id = m.groups()
    return FrameReference(int(offset_hex, 16), module_name, module_id)


def format_frame(frame: str, lookup: SymbolLookup) -> str:
    """Append the resolved function (and file:line) to a frame line."""
    name = lookup.function_name
    if name is None:
        name = UNKNOWN_FUNCTION
    formatted = f"{frame} {name}"
    if lookup.file:
        formatted += f" ({lookup.file}:{lookup.line})"
    return formatted


def is_symbolicatable(event: Any) -> bool:
    if not isinstance(event, dict) or event.get('cat') != CPU_PROFILER_CATEGORY:
        return False
    args = event.get('args')
    return isinstance(args, dict) and isinstance(args.get('frames'), str) and bool(args['frames'])


class Symbolicator:
    """
    Resolves native frames in CPU profiler trace events.

    Every frame is a separate task on a thread pool. Symbol files are fetched
    once per module per run; a fatal fetch error aborts the run.
    """

    def __init__(self, config: Optional[SymbolicatorConfig] = None,
                 session: Optional[requests.Session] = None,
                 progress_callback: Optional[Callable[[str, int, int], None]] = None):
        """
        Args:
            config: Run settings. Defaults to SymbolicatorConfig.from_env().
            session: HTTP session for symbol downloads
            progress_callback: Callback for progress updates (message, current, total)
        """
        self.config = config or SymbolicatorConfig.from_env()
        self.progress_callback = progress_callback
        self._stats_lock = threading.Lock()
        # Frame counters; symbol file counters are owned by self.cache
        self.stats: Dict[str, int] = {
            'frames_total': 0,
            'frames_resolved': 0,
            'modules_requested': 0,
        }
        self.fetcher = FetchCoordinator(
            self.config.cache_dir,
            self.config.symbol_servers,
            session=session,
            timeout=self.config.request_timeout,
            verbose=self.config.verbose,
        )
        self.cache = SymbolCache(
            self.config.cache_dir,
            self.fetcher,
            verbose=self.config.verbose,
        )

    def _report_progress(self, message: str, current: int = 0, total: int = 0):
        """Report progress to callback if available."""
        if self.progress_callback:
            self.progress_callback(message, current, total)

    def _count(self, key: str, amount: int = 1):
        with self._stats_lock:
            self.stats[key] += amount

    def new_resolver(self) -> ModuleResolver:
        return ModuleResolver(self.cache, force_refresh=self.config.force_refetch)

    def symbolicate_frame(self, frame: str, resolver: ModuleResolver) -> str:
        """Resolve one frame line; lines that don't resolve are returned unchanged."""
        ref = parse_frame(frame)
        if ref is None:
            return frame
        symbols = resolver.resolve(ref.module_id, ref.module_name)
        if symbols is None:
            return frame
        lookup = symbols.lookup(ref.offset)
        if lookup is None:
            return frame
        self._count('frames_resolved')
        return format_frame(frame, lookup)

    def _symbolicate_frame_lists(self, frame_lists: List[List[str]]) -> List[List[str]]:
        resolver = self.new_resolver()
        total = sum(len(frames) for frames in frame_lists)
        self._count('frames_total', total)

        executor = ThreadPoolExecutor(max_workers=self.config.max_workers,
                                      thread_name_prefix='symbolicate')
        try:
            pending: List[List[Future]] = [
                [executor.submit(self.symbolicate_frame, frame, resolver) for frame in frames]
                for frames in frame_lists
            ]
            results = []
            done = 0
            for futures in pending:
                # Collected in submission order, so frames keep their order
                results.append([f.result() for f in futures])
                done += len(futures)
                self._report_progress(f"Symbolicated {done}/{total} frames", done, total)
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            self._count('modules_requested', len(resolver))
        executor.shutdown(wait=True)
        return results

    def symbolicate_frames(self, frames: str) -> str:
        """Symbolicate a newline-joined frame list."""
        return '\n'.join(self._symbolicate_frame_lists([frames.split('\n')])[0])

    def symbolicate(self, trace: Any) -> Any:
        """
        Return a copy of ``trace`` with CPU profiler frames symbolicated.

        ``trace`` is either a trace document with a ``traceEvents`` list or a
        bare list of events. Input objects are not modified.

        Raises:
            TraceFormatError: ``trace`` is neither a list nor has a traceEvents list
            SymbolFetchError: a symbol server failed with a non-404 error
        """
        if isinstance(trace, list):
            events = trace
        elif isinstance(trace, dict) and isinstance(trace.get('traceEvents'), list):
            events = trace['traceEvents']
        else:
            raise TraceFormatError("trace has no traceEvents list")
        eligible = [i for i, event in enumerate(events) if is_symbolicatable(event)]
        if self.config.verbose:
            safe_print(f"[*] {len(eligible)} CPU profiler events to symbolicate")

        frame_lists = [events[i]['args']['frames'].split('\n') for i in eligible]
        resolved = self._symbolicate_frame_lists(frame_lists)

        new_events = list(events)
        for i, frames in zip(eligible, resolved):
            event = events[i]
            new_events[i] = {**event, 'args': {**event['args'], 'frames': '\n'.join(frames)}}

        if isinstance(trace, list):
            return new_events
        return {**trace, 'traceEvents': new_events}

    def get_statistics(self) -> Dict[str, int]:
        """Get symbolication statistics."""
        stats = self.cache.get_statistics()
        with self._stats_lock:
            stats.update(self.stats)
        return stats
