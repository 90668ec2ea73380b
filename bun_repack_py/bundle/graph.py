"""
Module graph parser.

A module graph is one contiguous arena of bytes. All strings inside it
(module names, contents, source maps, bytecode and the module table itself)
are addressed by StringPointer (offset, length) pairs relative to the start
of the arena. The arena ends with a 32-byte OffsetTable followed by the
16-byte trailer marker:

    [data region: byte_count bytes]
    [OffsetTable: 32 bytes]
    [trailer: "\\n---- Bun! ----\\n"]

Pointers may overlap, so modules are never copied out into separate buffers;
they are read through zero-copy views of the arena.
"""

from dataclasses import dataclass
from typing import Callable, Iterator, Union

from ..errors import InvalidBundleError, TargetModuleNotFoundError
from ..io.binary_stream import BinaryStream
from .structures import (
    BUN_TRAILER,
    MODULE_RECORD_SIZES,
    SIZEOF_BUNDLE_TAIL,
    SIZEOF_MODULE_V1,
    SIZEOF_MODULE_V2,
    SIZEOF_OFFSETS,
    ModuleRecord,
    ModuleRevision,
    OffsetTable,
    StringPointer,
)

BytesLike = Union[bytes, bytearray, memoryview]
ModulePredicate = Callable[[str], bool]


def parse_offset_table(data: BytesLike) -> OffsetTable:
    """
    Parse the 32-byte OffsetTable.

    Args:
        data: Exactly the table bytes

    Returns:
        The decoded OffsetTable
    """
    if len(data) != SIZEOF_OFFSETS:
        raise InvalidBundleError(
            f"Offset table must be {SIZEOF_OFFSETS} bytes, got {len(data)}"
        )
    return BinaryStream(data).read_class(OffsetTable)


def resolve(arena: BytesLike, pointer: StringPointer) -> memoryview:
    """
    Resolve a StringPointer against an arena.

    The result is a view, not a copy: it reflects later writes to the arena.

    Raises:
        InvalidBundleError: If the pointer reaches past the end of the arena
    """
    if pointer.end > len(arena):
        raise InvalidBundleError(
            f"Pointer extends beyond arena: offset={pointer.offset}, "
            f"length={pointer.length}, arena_size={len(arena)}"
        )
    return memoryview(arena)[pointer.offset:pointer.end]


def detect_module_revision(table_length: int) -> ModuleRevision:
    """
    Infer the module record revision from the module table length.

    The format has no version tag. If exactly one of the known record sizes
    divides the table length, that revision is returned. When both sizes
    divide it (the table length is a multiple of 468) or neither does, the
    answer is V1.

    Known limitation: a V2 table whose length is a multiple of 468 (for
    example exactly 9 records from a recent Bun) is misdecoded as 13 V1
    records. The target module is then usually not found.
    """
    fits_v2 = table_length % SIZEOF_MODULE_V2 == 0
    fits_v1 = table_length % SIZEOF_MODULE_V1 == 0
    if fits_v2 and not fits_v1:
        return ModuleRevision.V2
    return ModuleRevision.V1


class ModuleTable:
    """
    Lazy view over a module table.

    Records are decoded on demand from the table bytes each time the table is
    iterated, so iteration can be restarted any number of times.
    """

    def __init__(self, table: BytesLike):
        self._table = table
        self.revision = detect_module_revision(len(table))
        self.record_size = MODULE_RECORD_SIZES[self.revision]

    def __len__(self) -> int:
        return len(self._table) // self.record_size

    def __iter__(self) -> Iterator[ModuleRecord]:
        for index in range(len(self)):
            yield self.record_at(index)

    def record_at(self, index: int) -> ModuleRecord:
        """Decode the record at the given index."""
        if not 0 <= index < len(self):
            raise IndexError(f"Module index {index} out of range (0..{len(self) - 1})")
        start = index * self.record_size
        data = self._table[start:start + self.record_size]
        return BinaryStream(data, version=self.revision).read_class(ModuleRecord)


@dataclass
class Bundle:
    """A module graph arena and its parsed offset table."""
    arena: bytearray
    offsets: OffsetTable

    @classmethod
    def from_arena(cls, arena: bytearray) -> 'Bundle':
        """
        Parse the tail of an arena.

        Raises:
            InvalidBundleError: If the arena is too short or lacks the trailer
        """
        if len(arena) < SIZEOF_BUNDLE_TAIL:
            raise InvalidBundleError(
                f"Module graph too short ({len(arena)} bytes) to hold its trailer"
            )
        if bytes(arena[-len(BUN_TRAILER):]) != BUN_TRAILER:
            raise InvalidBundleError("Module graph trailer not found")

        offsets_start = len(arena) - SIZEOF_BUNDLE_TAIL
        offsets = parse_offset_table(arena[offsets_start:offsets_start + SIZEOF_OFFSETS])
        return cls(arena=arena, offsets=offsets)

    @property
    def modules(self) -> ModuleTable:
        """The module table, decoded lazily."""
        return ModuleTable(resolve(self.arena, self.offsets.modules_ptr))

    def module_name(self, record: ModuleRecord) -> str:
        """Decode a record's name as UTF-8."""
        return bytes(resolve(self.arena, record.name)).decode('utf-8', errors='replace')


def entry_module_predicate(basename: str, executable_suffix: str = ".exe") -> ModulePredicate:
    """
    Build a name matcher for the executable's entry module.

    Accepts the bare basename or a path ending in "/basename", each with and
    without the executable suffix. Matching is case-sensitive.
    """
    names = [basename]
    if executable_suffix:
        names.append(basename + executable_suffix)

    def matches(name: str) -> bool:
        for candidate in names:
            if name == candidate or name.endswith("/" + candidate):
                return True
        return False

    return matches


def find_module(arena: BytesLike, table: ModuleTable, predicate: ModulePredicate) -> ModuleRecord:
    """
    Find the first module whose name satisfies the predicate.

    Args:
        arena: The module graph arena
        table: The module table
        predicate: Called with each decoded module name, in table order

    Returns:
        The first matching ModuleRecord

    Raises:
        TargetModuleNotFoundError: If no module matches
    """
    for record in table:
        name = bytes(resolve(arena, record.name)).decode('utf-8', errors='replace')
        if predicate(name):
            return record

    raise TargetModuleNotFoundError("Target module not found in module graph")
