"""
Executable containers carrying a module graph.

Supports:
- ELF (Linux) - module graph appended as overlay data
- Mach-O (macOS) - module graph in the __BUN,__bun section
"""

from .base import BundleContainer
from .elf import ElfContainer
from .macho import MachoContainer, resolve_section_header

__all__ = ['BundleContainer', 'ElfContainer', 'MachoContainer', 'resolve_section_header']
