"""Hand-off of a classified transcript to the report submission workflow."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from models import UNKNOWN_LABEL

logger = logging.getLogger(__name__)

NO_TRANSCRIPT = "N/A"


@dataclass
class ReportDraft:
    classification: List[str] = field(default_factory=lambda: [UNKNOWN_LABEL])
    transcribed_text: str = NO_TRANSCRIPT

    @classmethod
    def from_classification(
        cls, result: Optional[List[str]], transcript: Optional[str]
    ) -> "ReportDraft":
        labels = [label for label in (result or []) if label]
        text = (transcript or "").strip()
        return cls(
            classification=labels or [UNKNOWN_LABEL],
            transcribed_text=text or NO_TRANSCRIPT,
        )

    def to_fields(self) -> Dict[str, Any]:
        return {
            "classification": list(self.classification),
            "transcribedText": self.transcribed_text,
        }


class JsonlReportSink:
    """Appends report fields to a local JSON-lines file."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def submit(self, fields: Dict[str, Any]) -> None:
        record = dict(fields)
        record.setdefault("date", datetime.now(timezone.utc).isoformat())
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, ensure_ascii=False) + "\n")
        logger.info("Report draft written to %s", self._path)
