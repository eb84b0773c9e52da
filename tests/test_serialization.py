from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from continuity.util.serialization import sanitize_for_json


class _Result:
    def __init__(self) -> None:
        self.item = "a"
        self.stdout = b"ok\n"


def test_sanitize_converts_common_types() -> None:
    value = {
        "at": datetime(2024, 1, 2, tzinfo=timezone.utc),
        "path": Path("out/results.json"),
        "items": ("a", "b"),
        "result": _Result(),
    }
    assert sanitize_for_json(value) == {
        "at": "2024-01-02T00:00:00+00:00",
        "path": "out/results.json",
        "items": ["a", "b"],
        "result": {"item": "a", "stdout": "ok\n"},
    }
