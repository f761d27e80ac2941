"""Reading and writing Chrome trace JSON files."""
import json
from pathlib import Path
from typing import Any, Union

from .exceptions import TraceFormatError


OUTPUT_SUFFIX = '.symbolicated'


def load_trace(path: Union[str, Path]) -> Any:
    """
    Load a trace file.

    Accepts the JSON object form (``{"traceEvents": [...]}``) and the bare
    JSON array form.

    Raises:
        TraceFormatError: the file is not JSON or has no event list
    """
    with open(path, 'r', encoding='utf-8') as f:
        try:
            trace = json.load(f)
        except json.JSONDecodeError as e:
            raise TraceFormatError(f"{path} is not valid JSON: {e}") from e

    if isinstance(trace, list):
        return trace
    if not isinstance(trace, dict) or not isinstance(trace.get('traceEvents'), list):
        raise TraceFormatError(f"{path} has no traceEvents list")
    return trace


def write_trace(trace: Any, path: Union[str, Path]):
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(trace, f)


def default_output_path(path: Union[str, Path]) -> Path:
    return Path(str(path) + OUTPUT_SUFFIX)
