"""
Kiro Gateway - Auth Module
"""

from .manager import (
    KiroAuthManager,
    candidate_db_paths,
    find_kiro_db,
    read_token_from_db,
)

__all__ = [
    "KiroAuthManager",
    "candidate_db_paths",
    "find_kiro_db",
    "read_token_from_db",
]
