from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from narrator.config import Settings


class Span:
    def __init__(self) -> None:
        self.start = time.perf_counter()
        self.end: Optional[float] = None

    def stop(self) -> float:
        if self.end is None:
            self.end = time.perf_counter()
        return (self.end - self.start) * 1000.0

    @property
    def duration_ms(self) -> float:
        return self.stop()


def now_ms() -> int:
    return int(time.time() * 1000)


def log_metrics(settings: Settings, entry: Dict[str, Any]) -> None:
    if not settings.log_metrics:
        return
    path = Path(settings.metrics_jl_path)
    entry.setdefault("ts", now_ms())
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            json.dump(entry, handle, ensure_ascii=False)
            handle.write("\n")
    except OSError as exc:  # pragma: no cover
        logger.warning("Failed to append metrics: {}", exc)
