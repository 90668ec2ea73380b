"""
Mach-O container for Bun standalone executables.

On macOS the module graph lives in the __bun section of the __BUN segment,
behind a little-endian length header that is either 4 or 8 bytes wide.
"""

import os
import subprocess
from pathlib import Path
from typing import Any, Optional, Tuple

from ..bundle.graph import Bundle, BytesLike
from ..config import Config
from ..errors import HeaderAmbiguousError, SectionMissingError, SegmentMissingError
from ..io.binary_stream import BinaryStream
from .base import BundleContainer, PathLike, copy_mode


def resolve_section_header(section_data: BytesLike, slack: int = 4096) -> Tuple[int, int]:
    """
    Work out the width of the section's length header.

    No revision tag says which width is in use. The payload is expected to
    fill the section up to at most `slack` bytes of alignment padding, so each
    candidate width is accepted when header + length lands in
    [len(section) - slack, len(section)]. The 8-byte header is tried first.

    Args:
        section_data: Raw section contents
        slack: Tolerated padding after the payload

    Returns:
        Tuple of (header_size, payload_length)

    Raises:
        HeaderAmbiguousError: If neither header width fits
    """
    total = len(section_data)

    if total >= 8:
        length_u64 = BinaryStream(section_data).read_uint64()
        if total - slack <= 8 + length_u64 <= total:
            return 8, length_u64

    if total >= 4:
        length_u32 = BinaryStream(section_data).read_uint32()
        if total - slack <= 4 + length_u32 <= total:
            return 4, length_u32

    raise HeaderAmbiguousError("Cannot determine section header format")


class MachoContainer(BundleContainer):
    """
    Module graph stored in a Mach-O section.

    The patched arena is copied back into the section buffer, which keeps its
    size, and the binary is rewritten through the parsing library. Because the
    contents change, any code signature is stripped and the output re-signed.
    """

    format_name = 'Mach-O'

    def __init__(self, binary: Any, config: Config):
        super().__init__(binary, config)
        self._section = None
        self._section_data: Optional[bytearray] = None
        self.header_size: Optional[int] = None

    def _find_section(self):
        """Look up the module graph section."""
        segment = self.binary.get_segment(self.config.segment_name)
        if segment is None:
            raise SegmentMissingError(f"{self.config.segment_name} segment not found")

        section = segment.get_section(self.config.section_name)
        if section is None:
            raise SectionMissingError(f"{self.config.section_name} section not found")

        return section

    def extract_bundle(self) -> Bundle:
        self._section = self._find_section()
        self._section_data = bytearray(self._section.content)

        self.header_size, payload_length = resolve_section_header(
            self._section_data, self.config.header_slack
        )
        arena = self._section_data[self.header_size:self.header_size + payload_length]
        return Bundle.from_arena(arena)

    def write_back(self, bundle: Bundle, source_path: PathLike, output_path: PathLike) -> None:
        if self._section is None:
            raise RuntimeError("extract_bundle() must be called before write_back()")

        start = self.header_size
        self._section_data[start:start + len(bundle.arena)] = bundle.arena

        if self.binary.has_code_signature:
            self.binary.remove_signature()
        self._section.content = list(self._section_data)

        output_path = Path(output_path)
        temp_path = output_path.with_name(output_path.name + '.tmp')
        try:
            self.binary.write(str(temp_path))
            copy_mode(source_path, temp_path)
            os.replace(temp_path, output_path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def finalize(self, output_path: PathLike) -> None:
        """Ad-hoc re-sign the output. Failure only produces a warning."""
        if not self.config.codesign:
            print("Code signing skipped")
            return

        try:
            subprocess.run(
                ['codesign', '-s', self.config.codesign_identity, '-f', str(output_path)],
                check=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            print("Code signed successfully")
        except (subprocess.CalledProcessError, OSError):
            print("WARNING: codesign failed, binary may not run")
