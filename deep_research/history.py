"""Local research history.

A single JSON file holding finished results, most recent first, capped
at ``limit`` entries. The schema is append-only: entries written by older
versions still load because every optional field has a default.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from .models import ResearchResult

logger = logging.getLogger(__name__)


class HistoryStore:
    def __init__(self, path: Union[str, Path], limit: int = 50):
        self.path = Path(path)
        self.limit = limit

    def load(self) -> List[ResearchResult]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("History file %s is unreadable, starting empty: %s", self.path, exc)
            return []
        if not isinstance(raw, list):
            logger.warning("History file %s does not hold a list, starting empty", self.path)
            return []

        results: List[ResearchResult] = []
        for entry in raw:
            try:
                results.append(ResearchResult.model_validate(entry))
            except ValidationError as exc:
                logger.warning("Skipping malformed history entry: %s", exc.errors()[:1])
        return results

    def _write(self, results: List[ResearchResult]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([r.to_json_dict() for r in results], ensure_ascii=False, indent=2)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".history-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def save(self, result: ResearchResult) -> List[ResearchResult]:
        """Insert *result* at the front (replacing any entry with its id) and trim."""
        results = [r for r in self.load() if r.id != result.id]
        results.insert(0, result)
        results = results[: self.limit]
        self._write(results)
        logger.info("Saved research '%s' to history (%d entries)", result.title, len(results))
        return results

    def get(self, result_id: str) -> Optional[ResearchResult]:
        for r in self.load():
            if r.id == result_id:
                return r
        return None

    def delete(self, result_id: str) -> bool:
        results = self.load()
        remaining = [r for r in results if r.id != result_id]
        if len(remaining) == len(results):
            return False
        self._write(remaining)
        return True

    def clear(self) -> None:
        self._write([])
