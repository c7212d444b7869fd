"""Single-file JSON store for the archive state with atomic replace on save."""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from haakweer.models.archive import ArchiveState
from haakweer.storage.schema import ArchiveDocument

logger = logging.getLogger(__name__)


def create_empty_state() -> ArchiveState:
    return ArchiveState()


def load_archive(path: str | Path) -> ArchiveState:
    """Load the archive, falling back to an empty state.

    A missing, unparsable or invalid document yields an empty state. Other
    I/O errors propagate.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return create_empty_state()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Archive %s is not valid JSON, starting empty: %s", path, e)
        return create_empty_state()

    try:
        doc = ArchiveDocument.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "Archive %s failed validation (%d error(s)), starting empty",
            path, e.error_count(),
        )
        return create_empty_state()

    return doc.to_state()


def save_archive(state: ArchiveState, path: str | Path) -> None:
    """Write the archive to a temp file next to `path`, then rename over it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    doc = ArchiveDocument.from_state(state)
    payload = json.dumps(doc.model_dump(mode="json", by_alias=True), indent=2) + "\n"

    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    os.replace(tmp_path, path)
