"""
JSON mirror of project embeddings.

Keeps ``<projects_dir>/<project_id>/embeddings.json`` for tools that read
embeddings from files instead of the database. Each entry has the shape
``{chunkId, embedding, metadata, createdAt}``.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)

MIRROR_FILENAME = "embeddings.json"


def make_mirror_record(
    chunk_id: str,
    vector: NDArray[np.float32],
    metadata: dict[str, Any],
) -> dict[str, Any]:
    return {
        "chunkId": chunk_id,
        "embedding": [float(x) for x in vector],
        "metadata": metadata,
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


class EmbeddingFileMirror:
    """Per-project JSON sidecar of chunk embeddings."""

    def __init__(self, projects_dir: str | Path) -> None:
        self.projects_dir = Path(projects_dir)

    def path_for(self, project_id: str) -> Path:
        return self.projects_dir / project_id / MIRROR_FILENAME

    def load(self, project_id: str) -> list[dict[str, Any]]:
        """Entries for a project; an absent file yields an empty list."""
        path = self.path_for(project_id)
        if not path.exists():
            return []
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    def append(self, project_id: str, records: list[dict[str, Any]]) -> int:
        """
        Merge records into the project's file.

        A record replaces any existing entry with the same chunkId.

        Returns:
            Number of entries in the file after the merge
        """
        if not records:
            return len(self.load(project_id))

        merged = {entry["chunkId"]: entry for entry in self.load(project_id)}
        for record in records:
            merged[record["chunkId"]] = record

        path = self.path_for(project_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(list(merged.values()), f, ensure_ascii=False)
        tmp_path.replace(path)

        logger.debug(f"Mirrored {len(records)} embeddings to {path}")
        return len(merged)
