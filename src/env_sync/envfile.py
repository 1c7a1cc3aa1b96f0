"""Reading and writing the local ``KEY=VALUE`` file.

Comments and blank lines are accepted on input but not preserved on
output: the file is treated purely as a serialized snapshot.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path

from env_sync.errors import FileIOError, SyncPhase

PlainSnapshot = dict[str, str]

_QUOTES = ("'", '"')
_ESCAPES = {"n": "\n", "r": "\r", '"': '"', "\\": "\\"}


def parse_env(content: str) -> PlainSnapshot:
    """Parse ``KEY=VALUE`` lines into a snapshot.

    Blank lines, ``#`` comments and lines without ``=`` are skipped.
    The first ``=`` separates key from value.  A value wrapped in a
    matching pair of quotes is unwrapped; double-quoted values also
    have ``\\n``, ``\\r``, ``\\"`` and ``\\\\`` escapes decoded.
    """
    snapshot: PlainSnapshot = {}
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        key = key.strip()
        if not key or not sep:
            continue
        snapshot[key] = _unquote(value.strip())
    return snapshot


def _unquote(value: str) -> str:
    if len(value) < 2 or value[0] not in _QUOTES or value[-1] != value[0]:
        return value
    inner = value[1:-1]
    if value[0] == "'":
        return inner

    out: list[str] = []
    chars = iter(inner)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
        else:
            out.append(ch)
    return "".join(out)


def _needs_quotes(value: str) -> bool:
    if not value:
        return False
    return (
        value != value.strip()
        or "\n" in value
        or "\r" in value
        or value[0] in _QUOTES
        or value[-1] in _QUOTES
    )


def _quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def serialize_env(snapshot: PlainSnapshot) -> str:
    """Render a snapshot as ``KEY=VALUE`` lines that ``parse_env`` reads back."""
    lines = [
        f"{key}={_quote(value) if _needs_quotes(value) else value}"
        for key, value in snapshot.items()
    ]
    return "\n".join(lines) + "\n" if lines else ""


def compute_content_hash(content: str) -> str:
    """SHA-256 of *content* after normalizing line endings to ``\\n``."""
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def read_env_file(path: str | Path) -> PlainSnapshot:
    """Parse the file at *path*, returning an empty snapshot if it is missing.

    Raises:
        FileIOError: If the file exists but cannot be read or decoded.
    """
    file_path = Path(path)
    try:
        content = file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except (OSError, UnicodeDecodeError) as exc:
        raise FileIOError(f"Could not read {file_path}: {exc}", path=str(file_path)) from exc
    return parse_env(content)


def write_env_file(path: str | Path, snapshot: PlainSnapshot) -> str:
    """Atomically replace the file at *path* with *snapshot*.

    The content is written to a temporary file in the same directory
    and renamed over the target, so readers never observe a partial
    file.

    Returns:
        The serialized content that was written.

    Raises:
        FileIOError: If the file cannot be written.
    """
    file_path = Path(path)
    content = serialize_env(snapshot)
    tmp_name: str | None = None
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=file_path.parent,
            prefix=f".{file_path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            handle.write(content)
        os.replace(tmp_name, file_path)
    except OSError as exc:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise FileIOError(
            f"Could not write {file_path}: {exc}",
            path=str(file_path),
            phase=SyncPhase.WRITE,
        ) from exc
    return content
