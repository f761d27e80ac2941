"""Command line interface for the trace symbolicator."""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

from .config import SymbolicatorConfig
from .core import Symbolicator
from .exceptions import SymbolicationError
from .symbol_cache import SymbolCache
from .symbol_fetcher import FetchCoordinator
from .trace_io import default_output_path, load_trace, write_trace


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='symbolicate-trace',
        description='Symbolicate native CPU profiler stacks in Chrome traces using Breakpad symbols',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Symbolicate a trace (writes recording.trace.symbolicated)
  %(prog)s symbolicate path/to/recording.trace

  # Ignore cached symbol files and download them again
  %(prog)s symbolicate recording.trace --force-refetch

  # Use a different symbol server
  %(prog)s symbolicate recording.trace --server https://symbols.example.com

  # Show or wipe the symbol cache
  %(prog)s cache-info
  %(prog)s clear-cache
        """
    )

    parser.add_argument(
        'command',
        choices=['symbolicate', 'cache-info', 'clear-cache'],
        help='Command to execute'
    )

    parser.add_argument(
        'trace_file',
        nargs='?',
        help='Path to trace file (.json / .trace)'
    )

    parser.add_argument(
        '--output',
        '-o',
        help='Output file (default: <trace_file>.symbolicated)'
    )

    parser.add_argument(
        '--cache-dir',
        help='Symbol cache directory (default: $TRACE_SYMBOL_CACHE or <tmp>/breakpad_symbols)'
    )

    parser.add_argument(
        '--server',
        action='append',
        dest='servers',
        help='Symbol server base URL; repeat to try several in order'
    )

    parser.add_argument(
        '--force-refetch',
        action='store_true',
        default=None,
        help='Download symbol files even if they are cached'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Number of worker threads'
    )

    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        default=None,
        help='Print every symbol download attempt'
    )

    parser.add_argument(
        '--quiet',
        '-q',
        action='store_true',
        help='Only print errors'
    )

    return parser


def _symbolicate(args, config: SymbolicatorConfig, parser: argparse.ArgumentParser) -> int:
    if not args.trace_file or not Path(args.trace_file).is_file():
        parser.error("symbolicate command requires an existing trace_file argument")

    trace_path = Path(args.trace_file)
    out_path = Path(args.output) if args.output else default_output_path(trace_path)

    def say(message: str):
        if not args.quiet:
            print(message, file=sys.stderr)

    say("Reading trace...")
    trace = load_trace(trace_path)
    say("Symbolicating...")
    symbolicator = Symbolicator(config)
    symbolicated = symbolicator.symbolicate(trace)

    say(f"Writing symbolicated trace to '{out_path}'...")
    write_trace(symbolicated, out_path)

    stats = symbolicator.get_statistics()
    say(f"[+] Resolved {stats['frames_resolved']}/{stats['frames_total']} frames "
        f"across {stats['modules_requested']} modules "
        f"(downloaded={stats['symbols_downloaded']}, cached={stats['symbols_cached']}, "
        f"missing={stats['symbols_missing']})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = SymbolicatorConfig.from_env(
            cache_dir=args.cache_dir,
            symbol_servers=args.servers,
            force_refetch=args.force_refetch,
            max_workers=args.workers,
            verbose=args.verbose,
        )
    except ValueError as e:
        parser.error(str(e))

    try:
        if args.command == 'symbolicate':
            return _symbolicate(args, config, parser)

        cache = SymbolCache(config.cache_dir, FetchCoordinator(config.cache_dir, config.symbol_servers))
        if args.command == 'cache-info':
            size = cache.size_bytes()
            print(f"Cache location: {config.cache_dir}")
            print(f"Cache size: {size / 1024 / 1024:.2f} MB ({size} bytes)")
        elif args.command == 'clear-cache':
            cache.clear()
            print(f"[+] Cleared symbol cache at {config.cache_dir}")
        return 0
    except (SymbolicationError, OSError) as e:
        print(f"[-] Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
