"""
Exceptions raised while locating and repacking an embedded module graph.

Every error here is fatal for a run: nothing is written to the output path
once one of them has been raised.
"""


class RepackError(Exception):
    """Base class for all repack failures."""


class UnsupportedFormatError(RepackError):
    """The executable is not one of the supported container formats."""


class OverlayMissingError(RepackError):
    """An ELF executable carries no overlay data."""


class SegmentMissingError(RepackError):
    """The Mach-O segment holding the module graph is absent."""


class SectionMissingError(RepackError):
    """The Mach-O section holding the module graph is absent."""


class HeaderAmbiguousError(RepackError):
    """Neither the 8-byte nor the 4-byte length header fits the section."""


class InvalidBundleError(RepackError):
    """The module graph is truncated, lacks its trailer, or points out of range."""


class TargetModuleNotFoundError(RepackError):
    """No module in the table matches the requested name."""


class ContentTooLargeError(RepackError):
    """Replacement content does not fit in the original module slot."""

    def __init__(self, new_size: int, original_size: int):
        self.new_size = new_size
        self.original_size = original_size
        super().__init__(
            f"Replacement content ({new_size} bytes) is larger than the original "
            f"module ({original_size} bytes). In-place replacement requires the "
            f"new content to be <= the original size."
        )
