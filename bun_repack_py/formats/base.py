"""
Abstract base class for module graph containers.

This module defines the interface that each executable format must implement
to hand its embedded module graph to the patcher and write it back.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Union
import stat

from ..bundle.graph import Bundle
from ..config import Config

PathLike = Union[str, Path]


class BundleContainer(ABC):
    """
    Abstract base class for executables carrying a module graph.

    Subclasses must implement:
    - extract_bundle(): Locate the module graph and copy it into an arena
    - write_back(): Store a patched arena where it was found and write the file

    and may override:
    - finalize(): Post-write steps on the output file

    Attributes:
        binary: The parsed executable handle (a LIEF binary)
        config: Run configuration
    """

    format_name = ''

    def __init__(self, binary: Any, config: Config):
        """Initialize the container."""
        self.binary = binary
        self.config = config

    @abstractmethod
    def extract_bundle(self) -> Bundle:
        """
        Locate the module graph and copy it into a mutable arena.

        Returns:
            The parsed Bundle

        Raises:
            RepackError: If the module graph cannot be located
        """
        pass

    @abstractmethod
    def write_back(self, bundle: Bundle, source_path: PathLike, output_path: PathLike) -> None:
        """
        Store the arena at the location it was extracted from and write the
        executable to output_path.

        Args:
            bundle: The (patched) bundle returned by extract_bundle()
            source_path: The executable the bundle was read from
            output_path: Destination path
        """
        pass

    def finalize(self, output_path: PathLike) -> None:
        """Run format-specific steps after the output file is written."""
        pass


def copy_mode(source_path: PathLike, dest_path: PathLike) -> None:
    """Copy the permission bits of source_path onto dest_path."""
    mode = stat.S_IMODE(Path(source_path).stat().st_mode)
    Path(dest_path).chmod(mode)
