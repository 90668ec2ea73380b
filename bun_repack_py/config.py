"""
Configuration handling for bun-repack.
"""

from dataclasses import dataclass, fields as dataclass_fields
from typing import Optional
import json
from pathlib import Path


@dataclass
class Config:
    """Configuration options for bun-repack."""

    # Target module
    module_name: str = "claude"
    executable_suffix: str = ".exe"

    # Mach-O placement of the module graph
    segment_name: str = "__BUN"
    section_name: str = "__bun"

    # Patching options
    filler_byte: int = 0x3B
    header_slack: int = 4096

    # Re-signing (Mach-O only)
    codesign: bool = True
    codesign_identity: str = "-"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'Config':
        """Load configuration from a JSON file."""
        if path is None:
            path = Path(__file__).parent / 'config.json'

        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = json.load(f)

        # Convert camelCase to snake_case
        converted = {}
        for key, value in data.items():
            snake_key = ''.join(
                f'_{c.lower()}' if c.isupper() else c
                for c in key
            ).lstrip('_')
            converted[snake_key] = value

        # Filter to only include valid fields
        valid_fields = {f.name for f in dataclass_fields(cls)}
        filtered = {k: v for k, v in converted.items() if k in valid_fields}

        return cls(**filtered)
