"""
Local annotation store for the Filla annotator.

Each (task, image) pair owns one JSON record holding an append-only log of
annotation entries. Saving appends the whole set; loading keeps the highest
version seen for every annotation id.

Record layout:
    {
        "id": "...",
        "task_id": "...",
        "image_id": "...",
        "created_by": "...",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
        "annotations": [ {annotation wire dict}, ... ]
    }
"""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from annotator.editor.annotations import AnnotationBase, annotation_from_dict
from annotator.services.logging_service import get_logger


class AnnotationStoreError(Exception):
    """Raised when the store cannot load or save a record."""


def latest_versions(entries: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Collapse a log to the newest entry per annotationId.

    Order follows the first appearance of each id. On a version tie the
    later entry wins.
    """
    latest: Dict[str, Dict[str, Any]] = {}
    for entry in entries:
        annotation_id = entry.get("annotationId")
        if annotation_id is None:
            continue
        existing = latest.get(annotation_id)
        if existing is None or entry.get("version", 0) >= existing.get("version", 0):
            latest[annotation_id] = entry
    return list(latest.values())


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", value)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AnnotationStore:
    """
    Append-only annotation persistence backed by JSON files.

    Unchanged sets are not written again: the store remembers the last set
    loaded or saved for each record.
    """

    def __init__(self, store_dir: Path) -> None:
        self._logger = get_logger(__name__)
        self._store_dir = Path(store_dir)
        self._last_saved: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}

    @property
    def store_dir(self) -> Path:
        return self._store_dir

    def record_path(self, task_id: str, image_id: str) -> Path:
        return self._store_dir / _safe_name(task_id) / f"{_safe_name(image_id)}.json"

    @staticmethod
    def _check_ids(task_id: str, image_id: str) -> None:
        if not task_id or not image_id:
            raise AnnotationStoreError("Missing required IDs")

    def _read_record(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            self._logger.error(f"Could not read annotation record {path}: {e}")
            raise AnnotationStoreError(f"Unreadable annotation record: {path}") from e

        if not isinstance(record, dict) or not isinstance(record.get("annotations", []), list):
            self._logger.error(f"Annotation record {path} has an unexpected layout")
            raise AnnotationStoreError(f"Invalid annotation record: {path}")

        return record

    def _write_record(self, path: Path, record: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            tmp_path.replace(path)
        except OSError as e:
            self._logger.error(f"Could not write annotation record {path}: {e}")
            raise AnnotationStoreError(f"Could not write annotation record: {path}") from e

    # ─── Public API ───────────────────────────────────────────────────────

    def load(self, task_id: str, image_id: str) -> List[AnnotationBase]:
        """
        Load the current annotations for an image.

        Returns an empty list when no record exists yet. Log entries that
        cannot be parsed are skipped with a warning.
        """
        self._check_ids(task_id, image_id)

        record = self._read_record(self.record_path(task_id, image_id))
        if record is None:
            self._last_saved[(task_id, image_id)] = []
            return []

        annotations: List[AnnotationBase] = []
        for entry in latest_versions(record.get("annotations", [])):
            try:
                annotations.append(annotation_from_dict(entry))
            except ValueError as e:
                self._logger.warning(f"Skipping malformed annotation entry: {e}")

        self._last_saved[(task_id, image_id)] = [a.to_dict() for a in annotations]
        self._logger.info(
            f"Loaded {len(annotations)} annotation(s) for task {task_id}, image {image_id}"
        )
        return annotations

    def save(
        self,
        task_id: str,
        image_id: str,
        annotations: Iterable[AnnotationBase],
        created_by: str,
    ) -> bool:
        """
        Append an annotation set to the image's log.

        Returns:
            False if the set matches what was last loaded or saved.

        Raises:
            AnnotationStoreError: Missing ids, or the record cannot be
                read or written.
        """
        self._check_ids(task_id, image_id)

        key = (task_id, image_id)
        entries = [annotation.to_dict() for annotation in annotations]
        if entries == self._last_saved.get(key):
            self._logger.debug(f"Annotations for {task_id}/{image_id} unchanged, skipping save")
            return False

        path = self.record_path(task_id, image_id)
        record = self._read_record(path)
        now = _now()

        if record is None:
            record = {
                "id": str(uuid4()),
                "task_id": task_id,
                "image_id": image_id,
                "created_by": created_by,
                "created_at": now,
                "updated_at": now,
                "annotations": entries,
            }
        else:
            record["annotations"] = record.get("annotations", []) + entries
            record["updated_at"] = now

        self._write_record(path, record)
        self._last_saved[key] = entries
        self._logger.info(f"Appended {len(entries)} annotation(s) to {path}")
        return True

    def history(self, task_id: str, image_id: str) -> List[Dict[str, Any]]:
        """Raw log entries for an image, oldest first."""
        self._check_ids(task_id, image_id)
        record = self._read_record(self.record_path(task_id, image_id))
        return list(record.get("annotations", [])) if record else []
