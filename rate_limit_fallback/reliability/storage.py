"""
Persistence of learned error patterns.

Learned patterns live under ``errorPatterns.learnedPatterns`` of a shared JSON
document (normally the configuration file). The document is always read and
written whole so that unrelated configuration keys are preserved.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..config.constants import DEFAULT_MAX_LEARNED_PATTERNS, PATTERN_MERGE_THRESHOLD
from ..errors import PatternStorageError
from ..models.patterns import LearnedPattern
from .scoring import jaccard_similarity

logger = logging.getLogger(__name__)


class PatternStore:
    """Load-modify-write store for learned patterns in a JSON document."""

    def __init__(self, path: Union[str, Path], max_patterns: Optional[int] = None):
        """
        Initialize the store.

        Args:
            path: Location of the JSON document
            max_patterns: Capacity; defaults to ``errorPatterns.maxLearnedPatterns``
                from the document, or 20
        """
        self.path = Path(path)
        self.max_patterns = max_patterns
        self._lock = asyncio.Lock()

    async def save_pattern(self, pattern: LearnedPattern) -> None:
        """Insert or replace a pattern by name, pruning when over capacity.

        Raises:
            PatternStorageError: If the document cannot be read or written
        """
        async with self._lock:
            document = await self._read_document("save")
            section = document["errorPatterns"]
            learned = _learned_list(section)
            section["learnedPatterns"] = learned

            entry = pattern.to_document()
            index = _index_of(learned, pattern.name)
            if index is not None:
                learned[index] = entry
                logger.debug(f"Updated learned pattern: {pattern.name}")
            else:
                learned.append(entry)
                logger.info(f"Saved new learned pattern: {pattern.name}")

            max_patterns = self._max_patterns(document)
            if len(learned) > max_patterns:
                section["learnedPatterns"] = self._prune(learned, max_patterns)

            await self._write_document(document, "save")

    async def load_patterns(self) -> List[LearnedPattern]:
        """Return every valid stored pattern; unreadable documents yield []."""
        try:
            document = await self._read_document("load")
        except PatternStorageError as e:
            logger.error(f"Failed to load patterns: {e}")
            return []

        raw = document.get("errorPatterns", {}).get("learnedPatterns") or []
        if not isinstance(raw, list):
            logger.warning("Ignoring learnedPatterns: expected a list")
            return []

        patterns = []
        for entry in raw:
            try:
                patterns.append(LearnedPattern.model_validate(entry))
            except ValidationError:
                continue

        invalid = len(raw) - len(patterns)
        if invalid:
            logger.warning(f"Filtered out {invalid} invalid learned patterns")
        return patterns

    async def delete_pattern(self, name: str) -> bool:
        """Delete a pattern by name.

        Returns:
            True if the pattern existed and the document was rewritten

        Raises:
            PatternStorageError: If the document cannot be read or written
        """
        async with self._lock:
            document = await self._read_document("delete")
            learned = _learned_list(document["errorPatterns"])

            index = _index_of(learned, name)
            if index is None:
                return False

            del learned[index]
            document["errorPatterns"]["learnedPatterns"] = learned
            await self._write_document(document, "delete")
            logger.info(f"Deleted learned pattern: {name}")
            return True

    async def merge_duplicate_patterns(self) -> int:
        """
        Merge same-provider patterns whose text is at least 80% similar.

        Returns:
            Number of merged pairs; 0 when nothing merged or on any failure
        """
        try:
            async with self._lock:
                document = await self._read_document("merge")
                section = document.get("errorPatterns", {})
                learned = _learned_list(section)

                removed = set()
                merged_count = 0
                for i, first in enumerate(learned):
                    if i in removed or not _is_mergeable(first):
                        continue
                    for j in range(i + 1, len(learned)):
                        if j in removed or not _is_mergeable(learned[j]):
                            continue
                        second = learned[j]
                        if first.get("provider") != second.get("provider"):
                            continue

                        if _pattern_similarity(first, second) >= PATTERN_MERGE_THRESHOLD:
                            first["patterns"] = list(dict.fromkeys(first["patterns"] + second["patterns"]))
                            first["sampleCount"] = first.get("sampleCount", 0) + second.get("sampleCount", 0)
                            first["confidence"] = max(first.get("confidence", 0), second.get("confidence", 0))
                            removed.add(j)
                            merged_count += 1
                            logger.info(f"Merged pattern {second.get('name')} into {first.get('name')}")

                if merged_count:
                    section["learnedPatterns"] = [p for k, p in enumerate(learned) if k not in removed]
                    await self._write_document(document, "merge")

                return merged_count
        except Exception as e:
            logger.error(f"Failed to merge patterns: {e}")
            return 0

    async def cleanup_old_patterns(self, max_count: Optional[int] = None) -> int:
        """
        Keep only the ``max_count`` best patterns.

        Patterns are ranked by confidence, then sample count, then recency.

        Returns:
            Number of removed patterns

        Raises:
            PatternStorageError: If the document cannot be read or written
        """
        async with self._lock:
            document = await self._read_document("cleanup")
            section = document.get("errorPatterns", {})
            learned = _learned_list(section)
            if max_count is None:
                max_count = self._max_patterns(document)

            if len(learned) <= max_count:
                return 0

            section["learnedPatterns"] = self._prune(learned, max_count)
            await self._write_document(document, "cleanup")

            removed = len(learned) - max_count
            logger.info(f"Cleaned up {removed} old patterns")
            return removed

    def _prune(self, learned: List[Dict[str, Any]], max_count: int) -> List[Dict[str, Any]]:
        ranked = sorted(
            learned,
            key=lambda p: (
                _number(p.get("confidence")),
                _number(p.get("sampleCount")),
                _timestamp(p.get("learnedAt")),
            ),
            reverse=True,
        )
        return ranked[:max_count]

    def _max_patterns(self, document: Dict[str, Any]) -> int:
        if self.max_patterns is not None:
            return self.max_patterns
        configured = document.get("errorPatterns", {}).get("maxLearnedPatterns")
        if isinstance(configured, int) and configured > 0:
            return configured
        return DEFAULT_MAX_LEARNED_PATTERNS

    async def _read_document(self, operation: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read_sync, operation)

    async def _write_document(self, document: Dict[str, Any], operation: str) -> None:
        await asyncio.to_thread(self._write_sync, document, operation)

    def _read_sync(self, operation: str) -> Dict[str, Any]:
        if not self.path.exists():
            return {"errorPatterns": {}}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PatternStorageError(operation, str(self.path), e) from e

        if not isinstance(document, dict):
            raise PatternStorageError(operation, str(self.path), ValueError("document is not an object"))
        if not isinstance(document.get("errorPatterns"), dict):
            document["errorPatterns"] = {}
        return document

    def _write_sync(self, document: Dict[str, Any], operation: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as e:
            raise PatternStorageError(operation, str(self.path), e) from e


def _index_of(learned: List[Any], name: str) -> Optional[int]:
    for index, entry in enumerate(learned):
        if isinstance(entry, dict) and entry.get("name") == name:
            return index
    return None


def _is_mergeable(entry: Any) -> bool:
    return isinstance(entry, dict) and isinstance(entry.get("patterns"), list)


def _pattern_similarity(first: Dict[str, Any], second: Dict[str, Any]) -> float:
    text1 = " ".join(str(p) for p in first["patterns"]).lower()
    text2 = " ".join(str(p) for p in second["patterns"]).lower()
    return jaccard_similarity(text1, text2)


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _timestamp(value: Any) -> float:
    if not isinstance(value, str):
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def _learned_list(section: Dict[str, Any]) -> List[Dict[str, Any]]:
    """The stored entries as a list of objects; other values are dropped."""
    raw = section.get("learnedPatterns")
    if raw is None:
        return []
    if not isinstance(raw, list):
        logger.warning("Replacing learnedPatterns: expected a list")
        return []

    entries = [entry for entry in raw if isinstance(entry, dict)]
    if len(entries) != len(raw):
        logger.warning(f"Dropping {len(raw) - len(entries)} malformed learned pattern entries")
    return entries
