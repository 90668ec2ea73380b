"""
bun-repack
A tool for replacing a module inside a Bun standalone executable in place.

Supports Linux (ELF overlay) and macOS (Mach-O __BUN segment) executables.
"""

__version__ = "0.1.0"

from .config import Config
from .bundle.graph import Bundle, ModuleTable
from .bundle.patcher import patch_module_in_place

__all__ = ['Config', 'Bundle', 'ModuleTable', 'patch_module_in_place', '__version__']
