"""
Atomic JSON document persistence.

Documents are written to a temporary file in the target directory, flushed
and fsynced, then moved over the previous version with os.replace. A crash
mid-write leaves the prior document intact.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from ..models.errors import PersistenceError
from .logging_config import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


def write_document(path: PathLike, data: Any) -> None:
    """Atomically replace the JSON document at path.

    Raises:
        PersistenceError: If the document cannot be written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f'.{path.stem}_', suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, str(path))
    except (OSError, TypeError, ValueError) as e:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        logger.error(f'Failed to write document {path}: {e}')
        raise PersistenceError(f'Failed to write {path}: {e}')


def read_document(path: PathLike, default: Optional[Any] = None) -> Any:
    """Read a JSON document, returning default when it does not exist.

    Raises:
        PersistenceError: If the document exists but cannot be decoded
    """
    path = Path(path)
    if not path.exists():
        return default
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f'Failed to read document {path}: {e}')
        raise PersistenceError(f'Failed to read {path}: {e}')
