"""
Kiro Gateway Adapters Module

Adapters that translate between the unified request format and the
Kiro API's native format.
"""

from .base import BaseAdapter, ProviderHealth
from .kiro_adapter import KiroAdapter
from .kiro_converter import build_kiro_payload, build_tool_specs, sanitize_json_schema

__all__ = [
    "BaseAdapter",
    "ProviderHealth",
    "KiroAdapter",
    "build_kiro_payload",
    "build_tool_specs",
    "sanitize_json_schema",
]
