"""Atomic JSON documents on disk (tmp + fsync + rename)."""

import json
import os
from pathlib import Path
from typing import Any, Union

from ..errors import MalformedDataError, MissingDataError, PersistenceError

PathLike = Union[str, os.PathLike, Path]


def write_json_atomic(path: PathLike, payload: dict[str, Any]) -> None:
    """
    Write ``payload`` so readers only ever see the old or the new document.

    Raises:
        PersistenceError: If the directory, temp file or rename fails
    """
    out_path = Path(path)
    tmp_path = out_path.with_name(f"{out_path.name}.tmp")
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(payload, indent=2, ensure_ascii=False)
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, out_path)
    except (OSError, TypeError, ValueError) as e:
        raise PersistenceError(f"Failed to write {out_path.name}: {e}",
                               operation="write_json_atomic", target=str(out_path)) from e


def read_json_object(path: PathLike) -> dict[str, Any]:
    """
    Read a JSON object.

    Raises:
        MissingDataError: If the file does not exist
        MalformedDataError: If it cannot be read or is not a JSON object
    """
    in_path = Path(path)
    try:
        text = in_path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise MissingDataError(f"{in_path.name}:not_found", data_type=in_path.name) from e
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedDataError(f"{in_path.name}:read_error:{e}",
                                 expected_format="json_object") from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedDataError(f"{in_path.name}:parse_error:{e}", raw_data=text[:200],
                                 expected_format="json_object") from e

    if not isinstance(payload, dict):
        raise MalformedDataError(f"{in_path.name}:not_an_object",
                                 expected_format="json_object")
    return payload
