# fleetdesk/services/storage.py
from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass

from flask import current_app


# =========================================================
# Types
# =========================================================
@dataclass(frozen=True)
class StoredFile:
    storage_key: str
    sha256: str
    size: int


# =========================================================
# Storage helpers
# =========================================================
def _storage_dir() -> str:
    """
    Local disk by default; callers only deal in storage keys.
    Priority:
      1) Flask config RECEIPT_STORAGE_DIR
      2) Env RECEIPT_STORAGE_DIR
      3) instance_path/receipts
    """
    base = current_app.config.get("RECEIPT_STORAGE_DIR") or os.getenv("RECEIPT_STORAGE_DIR")
    if not base:
        base = os.path.join(current_app.instance_path, "receipts")

    os.makedirs(base, exist_ok=True)
    return base


def _abs_path(storage_key: str) -> str:
    base = os.path.realpath(_storage_dir())
    abs_path = os.path.realpath(os.path.join(base, storage_key))
    if os.path.commonpath([base, abs_path]) != base:
        raise ValueError(f"Storage key escapes storage dir: {storage_key!r}")
    return abs_path


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


# =========================================================
# Store / load / delete
# =========================================================
def store_bytes(storage_key: str, data: bytes) -> StoredFile:
    abs_path = _abs_path(storage_key)
    os.makedirs(os.path.dirname(abs_path), exist_ok=True)

    with open(abs_path, "wb") as f:
        f.write(data)

    return StoredFile(storage_key=storage_key, sha256=sha256_hex(data), size=len(data))


def load_bytes(storage_key: str) -> bytes:
    with open(_abs_path(storage_key), "rb") as f:
        return f.read()


def delete_bytes(storage_key: str) -> bool:
    try:
        os.remove(_abs_path(storage_key))
        return True
    except FileNotFoundError:
        return False
