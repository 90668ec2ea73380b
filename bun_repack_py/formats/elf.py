"""
ELF container for Bun standalone executables.

On Linux the module graph is appended to the executable as overlay data.
The overlay is read backward from its end:

    [... data region: byte_count bytes ...]
    [OffsetTable: 32 bytes]
    [trailer: 16 bytes]
    [total length: u64]
"""

from pathlib import Path
from typing import Any, Optional

from ..bundle.graph import Bundle, parse_offset_table
from ..bundle.structures import (
    BUN_TRAILER,
    SIZEOF_BUNDLE_TAIL,
    SIZEOF_OFFSETS,
    SIZEOF_TOTAL_LENGTH,
)
from ..config import Config
from ..errors import InvalidBundleError, OverlayMissingError
from .base import BundleContainer, PathLike, copy_mode


class ElfContainer(BundleContainer):
    """
    Module graph stored in an ELF overlay.

    The whole file is kept in memory; write_back() copies the patched data
    region over its original absolute file offset.
    """

    format_name = 'ELF'

    def __init__(self, binary: Any, data: bytes, config: Config):
        """
        Args:
            binary: Parsed ELF handle exposing has_overlay / overlay
            data: Raw bytes of the whole executable
            config: Run configuration
        """
        super().__init__(binary, config)
        self._data = bytearray(data)
        self.data_offset: Optional[int] = None

    def extract_bundle(self) -> Bundle:
        if not self.binary.has_overlay:
            raise OverlayMissingError("ELF binary has no overlay data")

        overlay = memoryview(self.binary.overlay)
        tail_length = SIZEOF_BUNDLE_TAIL + SIZEOF_TOTAL_LENGTH
        if len(overlay) < tail_length:
            raise InvalidBundleError(
                f"Overlay too short ({len(overlay)} bytes) to hold a module graph"
            )

        offsets_start = len(overlay) - tail_length
        trailer_start = offsets_start + SIZEOF_OFFSETS
        if bytes(overlay[trailer_start:trailer_start + len(BUN_TRAILER)]) != BUN_TRAILER:
            raise InvalidBundleError("Overlay does not end with the module graph trailer")

        offsets = parse_offset_table(overlay[offsets_start:trailer_start])

        data_start = offsets_start - offsets.byte_count
        if data_start < 0:
            raise InvalidBundleError(
                f"Module graph byte count {offsets.byte_count} exceeds overlay size"
            )

        # Overlay starts right after the ELF content
        elf_size = len(self._data) - len(overlay)
        if elf_size < 0:
            raise InvalidBundleError("Overlay is larger than the file")
        self.data_offset = elf_size + data_start

        arena = bytearray(overlay[data_start:len(overlay) - SIZEOF_TOTAL_LENGTH])
        return Bundle(arena=arena, offsets=offsets)

    def write_back(self, bundle: Bundle, source_path: PathLike, output_path: PathLike) -> None:
        if self.data_offset is None:
            raise RuntimeError("extract_bundle() must be called before write_back()")

        # The data region keeps its size; offset table and trailer are untouched
        region_size = bundle.offsets.byte_count
        self._data[self.data_offset:self.data_offset + region_size] = bundle.arena[:region_size]

        Path(output_path).write_bytes(self._data)
        copy_mode(source_path, output_path)
