"""Console output helpers."""
import sys


def safe_print(msg: str):
    """Print message safely, handling unicode encoding issues on Windows."""
    try:
        print(msg)
    except UnicodeEncodeError:
        # Fallback: try with errors='replace'
        encoding = sys.stdout.encoding or 'utf-8'
        print(msg.encode(encoding, errors='replace').decode(encoding, errors='replace'))
