"""Persistence for the worker status snapshot."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from autoworker_contracts import WorkerStatus

LOGGER = logging.getLogger(__name__)

STATUS_FILE_NAME = "worker-status.json"


def save_worker_status(state_dir: str | Path, status: WorkerStatus) -> Path:
    directory = Path(state_dir)
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / STATUS_FILE_NAME
    tmp_path = target.with_suffix(".json.tmp")
    tmp_path.write_text(json.dumps(status.model_dump(mode="json"), indent=2), encoding="utf-8")
    os.replace(tmp_path, target)
    return target


def load_worker_status(state_dir: str | Path) -> Optional[WorkerStatus]:
    """Returns None when no worker has written a status or the file is corrupt."""
    target = Path(state_dir) / STATUS_FILE_NAME
    if not target.exists():
        return None
    try:
        return WorkerStatus.model_validate_json(target.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as exc:
        LOGGER.warning("Unable to read worker status %s: %s", target, exc)
        return None


__all__ = ["save_worker_status", "load_worker_status", "STATUS_FILE_NAME"]
