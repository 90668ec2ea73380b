#!/usr/bin/env python3
"""
bun-repack

Command-line interface for replacing the entry module of a Bun standalone
executable in place.

Usage:
    bun-repack repack <binary> <content> <output> [--module NAME] [--no-sign]
    bun-repack info <binary>
    bun-repack extract <binary> <output> [--module NAME]
    bun-repack -h | --help
    bun-repack --version

Arguments:
    binary     Path to the Bun standalone executable (ELF or Mach-O)
    content    Path to the replacement module contents
    output     Output path

Options:
    --config PATH   Path to config.json
    --module NAME   Basename of the module to replace (default: claude)
    --no-sign       Do not re-sign Mach-O output
"""

import sys
import argparse
from pathlib import Path
from typing import Any, List, Optional, Union

import lief

from . import __version__
from .config import Config
from .errors import RepackError, UnsupportedFormatError
from .bundle.graph import Bundle, ModulePredicate, entry_module_predicate, find_module, resolve
from .bundle.patcher import PatchResult, patch_module_in_place
from .formats.base import BundleContainer
from .formats.elf import ElfContainer
from .formats.macho import MachoContainer

PathLike = Union[str, Path]

# Magic numbers for format detection
MAGIC_PE = 0x905A4D
MAGIC_ELF = 0x464C457F
MAGIC_MACHO_FAT_BE = 0xCAFEBABE
MAGIC_MACHO_FAT_LE = 0xBEBAFECA
MAGIC_MACHO64 = 0xFEEDFACF
MAGIC_MACHO32 = 0xFEEDFACE

FORMAT_ELF = 'ELF'
FORMAT_MACHO = 'Mach-O'


def detect_format(data: bytes) -> str:
    """
    Detect the container format from the leading magic number.

    Args:
        data: Raw bytes of the executable

    Returns:
        FORMAT_ELF or FORMAT_MACHO

    Raises:
        UnsupportedFormatError: For any other format
    """
    magic = int.from_bytes(data[:4], 'little')

    if magic == MAGIC_ELF:
        return FORMAT_ELF
    elif magic in (MAGIC_MACHO64, MAGIC_MACHO32):
        return FORMAT_MACHO
    elif magic in (MAGIC_MACHO_FAT_BE, MAGIC_MACHO_FAT_LE):
        raise UnsupportedFormatError("FAT (Universal) Mach-O binaries are not supported; thin the binary first")
    elif magic == MAGIC_PE:
        raise UnsupportedFormatError("PE executables are not supported")
    else:
        raise UnsupportedFormatError(f"Unsupported binary format (magic: 0x{magic:08X})")


def parse_binary(path: PathLike) -> Any:
    """Parse an executable with LIEF."""
    lief.logging.disable()
    binary = lief.parse(str(path))
    if binary is None:
        raise UnsupportedFormatError(f"Failed to parse {path}")
    return binary


def create_container(container_format: str, binary: Any, data: bytes, config: Config) -> BundleContainer:
    """
    Create the container adapter for a detected format.

    Args:
        container_format: FORMAT_ELF or FORMAT_MACHO
        binary: Parsed executable handle
        data: Raw bytes of the executable
        config: Configuration

    Returns:
        Container instance
    """
    if container_format == FORMAT_ELF:
        print("Detected ELF format")
        return ElfContainer(binary, data, config)
    elif container_format == FORMAT_MACHO:
        print("Detected Mach-O format")
        return MachoContainer(binary, config)
    else:
        raise UnsupportedFormatError(f"Unsupported format: {container_format}")


def open_container(binary_path: PathLike, config: Config) -> BundleContainer:
    """Read, detect and parse an executable."""
    data = Path(binary_path).read_bytes()
    container_format = detect_format(data)
    binary = parse_binary(binary_path)
    return create_container(container_format, binary, data, config)


def target_predicate(config: Config) -> ModulePredicate:
    """Name matcher for the configured target module."""
    return entry_module_predicate(config.module_name, config.executable_suffix)


def load_bundle(binary_path: PathLike, config: Config):
    """
    Open an executable and extract its module graph.

    Returns:
        Tuple of (container, bundle)
    """
    container = open_container(binary_path, config)
    bundle = container.extract_bundle()
    table = bundle.modules
    print(f"Module graph: {len(table)} modules "
          f"(record revision {int(table.revision)}, {table.record_size} bytes each)")
    return container, bundle


def repack(binary_path: PathLike, content_path: PathLike, output_path: PathLike, config: Config) -> PatchResult:
    """
    Replace the target module's contents and write a new executable.

    Args:
        binary_path: Source executable
        content_path: Replacement module contents
        output_path: Destination executable
        config: Configuration

    Returns:
        The PatchResult describing the replacement
    """
    content = Path(content_path).read_bytes()
    print(f"Replacement content: {len(content)} bytes")

    container, bundle = load_bundle(binary_path, config)
    record = find_module(bundle.arena, bundle.modules, target_predicate(config))

    result = patch_module_in_place(bundle.arena, record, content, config.filler_byte)
    print(f"Replaced {bundle.module_name(record)}: {result.original_size} -> {result.new_size} bytes "
          f"({result.padding} bytes padded)")

    container.write_back(bundle, binary_path, output_path)
    container.finalize(output_path)
    print(f"Written to: {output_path}")
    return result


def extract(binary_path: PathLike, output_path: PathLike, config: Config) -> int:
    """
    Write the target module's current contents to a file.

    Returns:
        Number of bytes written
    """
    _, bundle = load_bundle(binary_path, config)
    record = find_module(bundle.arena, bundle.modules, target_predicate(config))
    contents = bytes(resolve(bundle.arena, record.contents))
    Path(output_path).write_bytes(contents)
    print(f"Extracted {bundle.module_name(record)} ({len(contents):,} bytes) to {output_path}")
    return len(contents)


def print_info(container: BundleContainer, bundle: Bundle, config: Config) -> None:
    """Print the module graph summary and module listing."""
    offsets = bundle.offsets
    table = bundle.modules
    is_target = target_predicate(config)

    print(f"\n{'=' * 72}")
    print(f"  Format:          {container.format_name}")
    print(f"  Data length:     {offsets.byte_count:#x} ({offsets.byte_count:,} bytes)")
    print(f"  Entry point:     module[{offsets.entry_point_id}]")
    print(f"  Flags:           {offsets.flags:#010b}")
    print(f"  Record revision: {int(table.revision)} ({table.record_size} bytes)")
    print(f"  Module count:    {len(table)}")
    print(f"{'=' * 72}")

    for index, record in enumerate(table):
        name = bundle.module_name(record)
        marker = " >> " if index == offsets.entry_point_id else "    "
        target = "  [target]" if is_target(name) else ""
        print(f"{marker}[{index:2d}] {name}{target}")
        print(f"         contents: {record.contents.length:>12,} bytes"
              f"  bytecode: {record.bytecode.length:>12,} bytes")
        print(f"         encoding: {record.encoding_name:<8}"
              f"  loader: {record.loader_name:<8}"
              f"  format: {record.format_name:<5}"
              f"  side: {record.side_name}")
        if record.sourcemap.length > 0:
            print(f"         sourcemap: {record.sourcemap.length:>11,} bytes")


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', type=str, help='Path to config.json')

    parser = argparse.ArgumentParser(
        description="bun-repack - Replace a module inside a Bun standalone executable",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'bun-repack {__version__}')
    sub = parser.add_subparsers(dest='command', required=True)

    repack_cmd = sub.add_parser('repack', parents=[common], help='Replace the target module contents')
    repack_cmd.add_argument('binary', help='Bun standalone executable')
    repack_cmd.add_argument('content', help='Replacement module contents')
    repack_cmd.add_argument('output', help='Output executable')
    repack_cmd.add_argument('--module', help='Basename of the module to replace')
    repack_cmd.add_argument('--no-sign', action='store_true', help='Do not re-sign Mach-O output')

    info_cmd = sub.add_parser('info', parents=[common], help='Show the module graph listing')
    info_cmd.add_argument('binary', help='Bun standalone executable')

    extract_cmd = sub.add_parser('extract', parents=[common], help='Write the target module contents to a file')
    extract_cmd.add_argument('binary', help='Bun standalone executable')
    extract_cmd.add_argument('output', help='Output file')
    extract_cmd.add_argument('--module', help='Basename of the module to extract')

    args = parser.parse_args(argv)

    # Load config
    config_path = Path(args.config) if args.config else None
    config = Config.load(config_path)
    if getattr(args, 'module', None):
        config.module_name = args.module
    if getattr(args, 'no_sign', False):
        config.codesign = False

    if not Path(args.binary).is_file():
        print(f"ERROR: {args.binary} not found")
        sys.exit(1)

    try:
        if args.command == 'repack':
            repack(args.binary, args.content, args.output, config)
        elif args.command == 'info':
            container, bundle = load_bundle(args.binary, config)
            print_info(container, bundle, config)
        elif args.command == 'extract':
            extract(args.binary, args.output, config)
    except RepackError as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    except Exception as e:
        print(f"ERROR: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
