"""
Binary stream reader with revision-aware struct parsing.

This module provides a BinaryStream class that reads little-endian binary
data and decodes dataclasses whose fields may depend on the format revision.
"""

import struct
from io import BytesIO
from typing import TypeVar, Type, Any, Dict, Tuple, Union, get_type_hints
from dataclasses import fields, is_dataclass

from .version_aware import should_read_field

T = TypeVar('T')

# Cache for struct sizes
# Key: (dataclass_type, version) -> size
_SIZE_CACHE: Dict[Tuple[type, int], int] = {}

BytesLike = Union[bytes, bytearray, memoryview]


class BinaryStream:
    """
    Binary stream reader with revision-aware deserialization.

    Attributes:
        version: The format revision being parsed
    """

    def __init__(self, data: BytesLike, version: int = 1):
        """
        Initialize a BinaryStream.

        Args:
            data: Raw bytes-like data
            version: Format revision used for conditional fields
        """
        self._stream = BytesIO(data)
        self.version: int = version

    @property
    def position(self) -> int:
        """Get current stream position."""
        return self._stream.tell()

    # ========== Primitive Readers ==========

    def read_bytes(self, count: int) -> bytes:
        """Read raw bytes, failing on a short read."""
        data = self._stream.read(count)
        if len(data) != count:
            raise EOFError(
                f"Unexpected end of data: wanted {count} bytes at "
                f"{self.position - len(data)}, got {len(data)}"
            )
        return data

    def read_byte(self) -> int:
        """Read an unsigned byte."""
        return struct.unpack('<B', self.read_bytes(1))[0]

    def read_uint32(self) -> int:
        """Read an unsigned 32-bit integer."""
        return struct.unpack('<I', self.read_bytes(4))[0]

    def read_uint64(self) -> int:
        """Read an unsigned 64-bit integer."""
        return struct.unpack('<Q', self.read_bytes(8))[0]

    # ========== Class/Struct Reading ==========

    def read_class(self, cls: Type[T]) -> T:
        """
        Read a dataclass instance at the current position.

        Fields are read in declaration order. Fields whose revision range
        (see version_field()) does not contain the stream's version keep
        their default value and consume no bytes.

        Args:
            cls: The dataclass type to read

        Returns:
            An instance of the dataclass with fields populated from the stream
        """
        if not is_dataclass(cls):
            raise TypeError(f"{cls!r} is not a dataclass")

        instance = cls()
        hints = get_type_hints(cls)

        for field_info in fields(cls):
            if not should_read_field(field_info, self.version):
                continue

            field_type = hints.get(field_info.name, field_info.type)
            value = self._read_field_value(field_type, field_info)
            setattr(instance, field_info.name, value)

        return instance

    def _read_field_value(self, field_type: Any, field_info: Any) -> Any:
        """Read a field value based on its type and size metadata."""
        if is_dataclass(field_type):
            return self.read_class(field_type)

        binary_size = field_info.metadata.get('binary_size')
        if binary_size == 1:
            return self.read_byte()
        elif binary_size == 4:
            return self.read_uint32()
        elif binary_size == 8:
            return self.read_uint64()

        raise TypeError(f"Field {field_info.name!r} has no readable binary size")

    # ========== Utility Methods ==========

    def size_of(self, cls: Type) -> int:
        """
        Calculate the size of a dataclass for the current revision.

        Args:
            cls: The dataclass type

        Returns:
            Size in bytes
        """
        cache_key = (cls, self.version)
        if cache_key in _SIZE_CACHE:
            return _SIZE_CACHE[cache_key]

        hints = get_type_hints(cls)

        size = 0
        for field_info in fields(cls):
            if not should_read_field(field_info, self.version):
                continue

            field_type = hints.get(field_info.name, field_info.type)
            if is_dataclass(field_type):
                size += self.size_of(field_type)
            elif field_info.metadata.get('binary_size'):
                size += field_info.metadata['binary_size']
            else:
                raise TypeError(f"Field {field_info.name!r} has no readable binary size")

        _SIZE_CACHE[cache_key] = size
        return size
