"""
Atomic JSON file writes.

Catalogs and snapshots are fully overwritten on every update, so a reader must
never observe a half-written file: write to a sibling temp file, fsync, then
os.replace over the target.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from ..exceptions import PersistenceError

__all__ = ['read_model', 'write_json_atomic', 'write_model_atomic']


def write_json_atomic(filename: Path, data: Any) -> None:
    """Write JSON atomically via temp file + rename.

    Raises:
        PersistenceError: If the directory cannot be created or the write fails
    """
    try:
        filename.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=filename.parent, prefix=f'.tmp_{filename.stem}_', suffix='.json')
        fd_owned_by_file = False
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                fd_owned_by_file = True  # fdopen took ownership, will close on exit
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write('\n')
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            if not fd_owned_by_file:
                os.close(fd)
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

        os.replace(temp_path, filename)
    except OSError as e:
        raise PersistenceError(filename, str(e)) from e


def write_model_atomic(filename: Path, model: BaseModel) -> None:
    """Serialize a model with its JSON aliases and write it atomically."""
    write_json_atomic(filename, model.model_dump(mode='json', by_alias=True))


def read_model[M: BaseModel](filename: Path, model_class: type[M]) -> M | None:
    """Read and validate a JSON document, returning None when the file does not exist.

    Raises:
        pydantic.ValidationError: If the file does not match the model
    """
    try:
        text = filename.read_text(encoding='utf-8')
    except FileNotFoundError:
        return None
    return model_class.model_validate_json(text)
