"""
Security utilities: shared-secret comparison, document path checks, file hashes.
"""
import hashlib
import os
import secrets
from typing import Optional


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of a provided secret against the configured one."""
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def compute_file_hash(file_path: str) -> str:
    """
    Compute SHA-256 hash of a file.
    Reads file in chunks for memory efficiency.
    """
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def compute_bytes_hash(data: bytes) -> str:
    """Compute SHA-256 hash of bytes."""
    return hashlib.sha256(data).hexdigest()


def resolve_under_root(path: str, root: str) -> Optional[str]:
    """
    Resolve path against root, following symlinks.

    Relative paths are joined to root. Returns None when the result escapes root.
    """
    real_root = os.path.realpath(root)
    candidate = path if os.path.isabs(path) else os.path.join(real_root, path)
    resolved = os.path.realpath(candidate)
    if os.path.commonpath([real_root, resolved]) != real_root:
        return None
    return resolved
