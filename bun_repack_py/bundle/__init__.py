"""
Module graph parsing and patching.

This module provides:
- Bundle / ModuleTable: zero-copy views over a module graph arena
- find_module / entry_module_predicate: locate the module to replace
- patch_module_in_place: replace a module's contents without moving data
"""

from .structures import (
    StringPointer,
    OffsetTable,
    ModuleRecord,
    ModuleRevision,
    BUN_TRAILER,
)
from .graph import (
    Bundle,
    ModuleTable,
    parse_offset_table,
    resolve,
    detect_module_revision,
    find_module,
    entry_module_predicate,
)
from .patcher import patch_module_in_place, PatchResult

__all__ = [
    'StringPointer',
    'OffsetTable',
    'ModuleRecord',
    'ModuleRevision',
    'BUN_TRAILER',
    'Bundle',
    'ModuleTable',
    'parse_offset_table',
    'resolve',
    'detect_module_revision',
    'find_module',
    'entry_module_predicate',
    'patch_module_in_place',
    'PatchResult',
]
