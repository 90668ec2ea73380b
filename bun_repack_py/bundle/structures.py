"""
Module graph structure definitions.

These dataclasses represent the binary structures at the tail of a Bun
standalone executable's module graph. Fields marked with version_field()
are only present in certain record revisions.
"""

from dataclasses import dataclass, field
from enum import IntEnum

from ..io.binary_stream import BinaryStream
from ..io.version_aware import version_field


def byte_field(default: int = 0):
    """Create a field that should be read as an unsigned byte."""
    return field(default=default, metadata={'binary_size': 1})


def uint_field(default: int = 0):
    """Create a field that should be read as unsigned int (4 bytes)."""
    return field(default=default, metadata={'binary_size': 4})


def ulong_field(default: int = 0):
    """Create a field that should be read as unsigned long (8 bytes)."""
    return field(default=default, metadata={'binary_size': 8})


# Magic marker closing every module graph
BUN_TRAILER = b"\n---- Bun! ----\n"

# ELF overlays end with a u64 total length after the trailer
SIZEOF_TOTAL_LENGTH = 8


class ModuleRevision(IntEnum):
    """Module record layout revisions."""
    V1 = 1  # 36 bytes: four pointers + four tag bytes
    V2 = 2  # 52 bytes: adds module_info and bytecode_origin_path


# ============================================================
# Tag names
# ============================================================

ENCODING_NAMES = {0: "binary", 1: "latin1", 2: "utf8"}
LOADER_NAMES = {
    0: "file", 1: "jsx", 2: "js", 3: "tsx", 4: "ts", 5: "css",
    6: "json", 7: "toml", 8: "wasm", 9: "napi", 10: "base64",
    11: "dataurl", 12: "text", 13: "sqlite", 14: "sqlite_embedded",
}
FORMAT_NAMES = {0: "none", 1: "esm", 2: "cjs"}
SIDE_NAMES = {0: "server", 1: "client"}


# ============================================================
# Structures
# ============================================================

@dataclass
class StringPointer:
    """An (offset, length) pair into a module graph arena."""
    offset: int = uint_field()
    length: int = uint_field()

    @property
    def end(self) -> int:
        return self.offset + self.length


@dataclass
class OffsetTable:
    """The 32-byte table preceding the trailer."""
    byte_count: int = ulong_field()
    modules_ptr: StringPointer = field(default_factory=StringPointer)
    entry_point_id: int = uint_field()
    compile_exec_argv_ptr: StringPointer = field(default_factory=StringPointer)
    flags: int = uint_field()


@dataclass
class ModuleRecord:
    """One fixed-size entry of the module table."""
    name: StringPointer = field(default_factory=StringPointer)
    contents: StringPointer = field(default_factory=StringPointer)
    sourcemap: StringPointer = field(default_factory=StringPointer)
    bytecode: StringPointer = field(default_factory=StringPointer)
    module_info: StringPointer = version_field(min_ver=2, default_factory=StringPointer)
    bytecode_origin_path: StringPointer = version_field(min_ver=2, default_factory=StringPointer)
    encoding: int = byte_field()
    loader: int = byte_field()
    module_format: int = byte_field()
    side: int = byte_field()

    @property
    def encoding_name(self) -> str:
        return ENCODING_NAMES.get(self.encoding, f"unknown({self.encoding})")

    @property
    def loader_name(self) -> str:
        return LOADER_NAMES.get(self.loader, f"unknown({self.loader})")

    @property
    def format_name(self) -> str:
        return FORMAT_NAMES.get(self.module_format, f"unknown({self.module_format})")

    @property
    def side_name(self) -> str:
        return SIDE_NAMES.get(self.side, f"unknown({self.side})")


# ============================================================
# Sizes
# ============================================================

SIZEOF_OFFSETS = BinaryStream(b'').size_of(OffsetTable)

# Bytes following the data region: offset table + trailer
SIZEOF_BUNDLE_TAIL = SIZEOF_OFFSETS + len(BUN_TRAILER)

MODULE_RECORD_SIZES = {
    revision: BinaryStream(b'', version=revision).size_of(ModuleRecord)
    for revision in ModuleRevision
}
SIZEOF_MODULE_V1 = MODULE_RECORD_SIZES[ModuleRevision.V1]
SIZEOF_MODULE_V2 = MODULE_RECORD_SIZES[ModuleRevision.V2]
