"""
Revision-aware field helpers.

This module provides helpers for defining dataclass fields that are only
present in certain revisions of the module graph format.
"""

from dataclasses import field
from typing import Any, Optional


class VersionRange:
    """Represents a revision range for conditional fields."""

    def __init__(self, min_ver: int = 0, max_ver: int = 99):
        self.min = min_ver
        self.max = max_ver

    def contains(self, version: int) -> bool:
        """Check if version is within this range."""
        return self.min <= version <= self.max

    def __repr__(self) -> str:
        return f"VersionRange({self.min}, {self.max})"


def version_field(
    min_ver: int = 0,
    max_ver: int = 99,
    default: Any = None,
    default_factory: Any = None
):
    """
    Create a dataclass field with revision metadata.

    Args:
        min_ver: Minimum format revision (inclusive)
        max_ver: Maximum format revision (inclusive)
        default: Default value for the field
        default_factory: Factory function for default value

    Returns:
        A dataclass field with revision metadata

    Example:
        @dataclass
        class ModuleRecord:
            name: StringPointer = field(default_factory=StringPointer)
            # Only present from revision 2 on
            module_info: StringPointer = version_field(
                min_ver=2, default_factory=StringPointer)
    """
    metadata = {'version': VersionRange(min_ver, max_ver)}

    if default_factory is not None:
        return field(default_factory=default_factory, metadata=metadata)
    else:
        return field(default=default if default is not None else 0, metadata=metadata)


def get_version_range(field_info) -> Optional[VersionRange]:
    """Get the revision range from a field's metadata."""
    return field_info.metadata.get('version')


def should_read_field(field_info, version: int) -> bool:
    """
    Determine if a field is present in the given revision.

    Args:
        field_info: The dataclass field info
        version: The format revision

    Returns:
        True if the field should be read, False otherwise
    """
    version_range = get_version_range(field_info)
    if version_range is None:
        return True  # No revision constraint, always read
    return version_range.contains(version)
