"""Newline-delimited JSON emission."""

from __future__ import annotations

import json
from typing import Any, TextIO

from .errors import EncodingError
from .models import canonical


def dumps_record(record: Any, *, pretty: bool = False) -> str:
    tree = canonical(record)
    try:
        if pretty:
            return json.dumps(tree, indent=2, ensure_ascii=False, allow_nan=False)
        return json.dumps(tree, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise EncodingError(str(exc)) from exc


def write_record(stream: TextIO, record: Any, *, pretty: bool = False) -> None:
    """Write ``record`` as one line and flush; stream errors propagate."""

    stream.write(dumps_record(record, pretty=pretty))
    stream.write("\n")
    stream.flush()
