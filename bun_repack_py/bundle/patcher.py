"""
In-place replacement of a module's contents.

Pointers in a module graph are absolute offsets into one shared arena, and
several of them may reference overlapping ranges. Rebuilding the arena module
by module would duplicate every shared range, so the new contents are written
over the original slot instead, and nothing else in the arena moves.
"""

from dataclasses import dataclass

from ..errors import ContentTooLargeError
from .graph import BytesLike, resolve
from .structures import ModuleRecord

# ';' is a no-op statement when appended after JavaScript source
DEFAULT_FILLER = 0x3B


@dataclass
class PatchResult:
    """Outcome of one in-place replacement."""
    arena: bytearray
    original_size: int
    new_size: int

    @property
    def padding(self) -> int:
        return self.original_size - self.new_size


def patch_module_in_place(
    arena: bytearray,
    record: ModuleRecord,
    new_content: BytesLike,
    filler: int = DEFAULT_FILLER
) -> PatchResult:
    """
    Overwrite a module's contents inside the arena.

    The new content is copied to the start of the module's slot and the rest
    of the slot is filled with the filler byte. The record's stored contents
    length is left at the original slot size: a bytecode blob may follow the
    contents directly, and shrinking the length without moving it would
    desynchronize the two.

    Args:
        arena: The module graph arena, mutated in place
        record: The module whose contents are replaced
        new_content: Replacement bytes
        filler: Byte used to pad the unused tail of the slot

    Returns:
        A PatchResult holding the mutated arena and both sizes

    Raises:
        ContentTooLargeError: If the new content is larger than the slot.
            The arena is left untouched in that case.
        InvalidBundleError: If the contents pointer is out of range
    """
    slot = resolve(arena, record.contents)
    original_size = len(slot)
    new_size = len(new_content)

    if new_size > original_size:
        raise ContentTooLargeError(new_size, original_size)

    slot[:new_size] = new_content
    if new_size < original_size:
        slot[new_size:] = bytes([filler]) * (original_size - new_size)

    return PatchResult(arena=arena, original_size=original_size, new_size=new_size)
