"""Text and JSON helpers for PDF-derived content and index persistence."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import orjson

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0e-\x1f\x7f]")
_HYPHEN_BREAK = re.compile(r"(\w)-\n(\w)")


def clean_text(text: str) -> str:
    """
    Normalise text pulled out of a PDF text layer.

    - form feeds (page breaks) become blank lines
    - words hyphenated across a line break are rejoined
    - control characters are dropped, CRLF becomes LF
    - runs of spaces/tabs collapse to one space, 3+ newlines to 2
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\f", "\n\n")
    text = _CONTROL_CHARS.sub("", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = _HYPHEN_BREAK.sub(r"\1\2", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def strip_extension(filename: str) -> str:
    """'HSCA_Report.pdf' -> 'HSCA_Report'.  Only the last suffix is removed."""
    return Path(filename).stem


# --- Index persistence --------------------------------------------------------

def save_json(data: Any, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS))


def load_json(path: str | Path) -> Any:
    return orjson.loads(Path(path).read_bytes())
