import stat
import struct
import subprocess

import pytest

from bun_repack_py.bundle import entry_module_predicate, find_module, patch_module_in_place, resolve
from bun_repack_py.config import Config
from bun_repack_py.errors import (
    HeaderAmbiguousError,
    InvalidBundleError,
    OverlayMissingError,
    SectionMissingError,
    SegmentMissingError,
)
from bun_repack_py.formats import ElfContainer, MachoContainer, resolve_section_header
from bun_repack_py.formats import macho as macho_module

from builders import (
    ELF_BODY,
    FakeElfBinary,
    FakeMachoBinary,
    build_arena,
    build_elf,
    build_section,
    default_modules,
    section_from_macho_file,
)


def claude(bundle):
    return find_module(bundle.arena, bundle.modules, entry_module_predicate('claude'))


# ============================================================
# Section header resolution
# ============================================================

def test_header_prefers_eight_bytes():
    # The low 4 bytes of the u64 length also satisfy the 4-byte rule
    section = struct.pack('<Q', 92) + b'\x00' * 92
    assert resolve_section_header(section) == (8, 92)

    length_u32 = struct.unpack_from('<I', section)[0]
    assert 4 + length_u32 <= len(section)


def test_header_falls_back_to_four_bytes():
    payload = b'\x01\x02\x03\x04' + b'\x00' * 60
    section = struct.pack('<I', len(payload)) + payload
    assert resolve_section_header(section) == (4, len(payload))


def test_header_tolerates_alignment_padding():
    section = struct.pack('<Q', 100) + b'\x00' * 100 + b'\x00' * 4096
    assert resolve_section_header(section) == (8, 100)


def test_header_ambiguous():
    section = b'\xff' * 64
    with pytest.raises(HeaderAmbiguousError):
        resolve_section_header(section)


def test_header_padding_beyond_slack_is_ambiguous():
    section = struct.pack('<Q', 100) + b'\x00' * 100 + b'\x00' * 4097
    with pytest.raises(HeaderAmbiguousError):
        resolve_section_header(section)


def test_header_too_short():
    with pytest.raises(HeaderAmbiguousError):
        resolve_section_header(b'\x00\x00')


def test_header_short_section_uses_four_bytes():
    # Too short for a u64 length, so only the 4-byte header is considered
    section = struct.pack('<I', 2) + b'ab'
    assert resolve_section_header(section) == (4, 2)
    assert resolve_section_header(memoryview(bytearray(section))) == (4, 2)


def test_header_custom_slack():
    section = struct.pack('<Q', 10) + b'\x00' * 10 + b'\x00' * 32
    assert resolve_section_header(section, slack=32) == (8, 10)
    with pytest.raises(HeaderAmbiguousError):
        resolve_section_header(section, slack=16)


# ============================================================
# ELF
# ============================================================

def test_elf_extract_bundle():
    arena = build_arena(default_modules())
    data, overlay = build_elf(arena)
    container = ElfContainer(FakeElfBinary(overlay), data, Config())

    bundle = container.extract_bundle()

    assert bytes(bundle.arena) == arena
    assert container.data_offset == len(ELF_BODY)
    assert data[container.data_offset:container.data_offset + bundle.offsets.byte_count] == \
        arena[:bundle.offsets.byte_count]
    assert bytes(resolve(bundle.arena, claude(bundle).contents)) == b'console.log(1)'


def test_elf_without_overlay():
    container = ElfContainer(FakeElfBinary(b''), ELF_BODY, Config())
    with pytest.raises(OverlayMissingError):
        container.extract_bundle()


def test_elf_overlay_without_trailer():
    overlay = b'\x00' * 128
    container = ElfContainer(FakeElfBinary(overlay), ELF_BODY + overlay, Config())
    with pytest.raises(InvalidBundleError):
        container.extract_bundle()


def test_elf_byte_count_larger_than_overlay():
    arena = bytearray(build_arena(default_modules()))
    struct.pack_into('<Q', arena, len(arena) - 48, 10 ** 9)
    data, overlay = build_elf(bytes(arena))
    container = ElfContainer(FakeElfBinary(overlay), data, Config())
    with pytest.raises(InvalidBundleError):
        container.extract_bundle()


def test_elf_write_back(tmp_path):
    arena = build_arena(default_modules())
    data, overlay = build_elf(arena)
    source = tmp_path / 'claude'
    source.write_bytes(data)
    source.chmod(0o751)
    output = tmp_path / 'claude-patched'

    container = ElfContainer(FakeElfBinary(overlay), data, Config())
    bundle = container.extract_bundle()
    record = claude(bundle)
    patch_module_in_place(bundle.arena, record, b'1')
    container.write_back(bundle, source, output)
    container.finalize(output)

    written = output.read_bytes()
    assert len(written) == len(data)
    start = container.data_offset + record.contents.offset
    assert written[start:start + 14] == b'1' + b';' * 13
    assert written[:start] == data[:start]
    assert written[start + 14:] == data[start + 14:]
    assert stat.S_IMODE(output.stat().st_mode) == 0o751
    # Source is left alone
    assert source.read_bytes() == data


# ============================================================
# Mach-O
# ============================================================

def test_macho_missing_segment():
    binary = FakeMachoBinary(build_section(build_arena(default_modules())), segment_name='__TEXT')
    with pytest.raises(SegmentMissingError):
        MachoContainer(binary, Config()).extract_bundle()


def test_macho_missing_section():
    binary = FakeMachoBinary(build_section(build_arena(default_modules())), section_name='__text')
    with pytest.raises(SectionMissingError):
        MachoContainer(binary, Config()).extract_bundle()


@pytest.mark.parametrize('header_size', [4, 8])
def test_macho_extract_bundle(header_size):
    arena = build_arena(default_modules())
    binary = FakeMachoBinary(build_section(arena, header_size=header_size, padding=16))
    container = MachoContainer(binary, Config())

    bundle = container.extract_bundle()

    assert container.header_size == header_size
    assert bytes(bundle.arena) == arena


def test_macho_configured_names():
    arena = build_arena(default_modules())
    binary = FakeMachoBinary(build_section(arena), segment_name='__APP', section_name='__graph')
    config = Config(segment_name='__APP', section_name='__graph')
    assert bytes(MachoContainer(binary, config).extract_bundle().arena) == arena


def test_macho_write_back(tmp_path):
    arena = build_arena(default_modules())
    section = build_section(arena, padding=24)
    binary = FakeMachoBinary(section)
    source = tmp_path / 'claude'
    source.write_bytes(b'original')
    source.chmod(0o755)
    output = tmp_path / 'out' / 'claude'
    output.parent.mkdir()

    container = MachoContainer(binary, Config())
    bundle = container.extract_bundle()
    record = claude(bundle)
    patch_module_in_place(bundle.arena, record, b'1')
    container.write_back(bundle, source, output)

    assert binary.signature_removed
    assert not (output.parent / 'claude.tmp').exists()
    assert stat.S_IMODE(output.stat().st_mode) == 0o755

    new_section = section_from_macho_file(output.read_bytes())
    assert len(new_section) == len(section)
    start = 8 + record.contents.offset
    assert new_section[start:start + 14] == b'1' + b';' * 13
    assert new_section[:start] == section[:start]
    assert new_section[start + 14:] == section[start + 14:]


def test_macho_write_failure_leaves_no_output(tmp_path):
    binary = FakeMachoBinary(build_section(build_arena(default_modules())))

    def failing_write(path):
        with open(path, 'wb') as f:
            f.write(b'partial')
        raise OSError('disk full')

    binary.write = failing_write
    source = tmp_path / 'claude'
    source.write_bytes(b'original')
    output = tmp_path / 'claude-patched'

    container = MachoContainer(binary, Config())
    bundle = container.extract_bundle()
    with pytest.raises(OSError):
        container.write_back(bundle, source, output)

    assert not output.exists()
    assert not (tmp_path / 'claude-patched.tmp').exists()


def test_macho_unsigned_binary_keeps_no_signature(tmp_path):
    binary = FakeMachoBinary(build_section(build_arena(default_modules())), has_code_signature=False)
    source = tmp_path / 'claude'
    source.write_bytes(b'original')

    container = MachoContainer(binary, Config())
    container.write_back(container.extract_bundle(), source, tmp_path / 'out')
    assert not binary.signature_removed


def test_finalize_signs(tmp_path, monkeypatch, capsys):
    calls = []

    def fake_run(cmd, **kwargs):
        calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(macho_module.subprocess, 'run', fake_run)
    container = MachoContainer(FakeMachoBinary(b''), Config())
    container.finalize(tmp_path / 'out')

    assert calls == [['codesign', '-s', '-', '-f', str(tmp_path / 'out')]]
    assert 'Code signed successfully' in capsys.readouterr().out


@pytest.mark.parametrize('error', [
    subprocess.CalledProcessError(1, 'codesign'),
    FileNotFoundError('codesign'),
])
def test_finalize_failure_is_a_warning(tmp_path, monkeypatch, capsys, error):
    def fake_run(cmd, **kwargs):
        raise error

    monkeypatch.setattr(macho_module.subprocess, 'run', fake_run)
    container = MachoContainer(FakeMachoBinary(b''), Config())
    container.finalize(tmp_path / 'out')

    assert 'WARNING: codesign failed' in capsys.readouterr().out


def test_finalize_skipped_when_disabled(tmp_path, monkeypatch, capsys):
    def fake_run(cmd, **kwargs):
        raise AssertionError('codesign should not run')

    monkeypatch.setattr(macho_module.subprocess, 'run', fake_run)
    container = MachoContainer(FakeMachoBinary(b''), Config(codesign=False))
    container.finalize(tmp_path / 'out')

    assert 'skipped' in capsys.readouterr().out


# ============================================================
# Both formats
# ============================================================

def test_formats_produce_identical_module_contents(tmp_path):
    arena = build_arena(default_modules())
    replacement = b'console.log("patched")'[:12]

    # ELF
    elf_data, overlay = build_elf(arena)
    elf_source = tmp_path / 'elf'
    elf_source.write_bytes(elf_data)
    elf = ElfContainer(FakeElfBinary(overlay), elf_data, Config())
    elf_bundle = elf.extract_bundle()
    patch_module_in_place(elf_bundle.arena, claude(elf_bundle), replacement)
    elf.write_back(elf_bundle, elf_source, tmp_path / 'elf-out')

    # Mach-O
    macho_source = tmp_path / 'macho'
    macho_source.write_bytes(b'original')
    macho = MachoContainer(FakeMachoBinary(build_section(arena)), Config())
    macho_bundle = macho.extract_bundle()
    patch_module_in_place(macho_bundle.arena, claude(macho_bundle), replacement)
    macho.write_back(macho_bundle, macho_source, tmp_path / 'macho-out')

    # Re-read both outputs
    elf_out = (tmp_path / 'elf-out').read_bytes()
    elf_overlay = elf_out[len(ELF_BODY):]
    reread_elf = ElfContainer(FakeElfBinary(elf_overlay), elf_out, Config()).extract_bundle()

    macho_out = section_from_macho_file((tmp_path / 'macho-out').read_bytes())
    reread_macho = MachoContainer(FakeMachoBinary(macho_out), Config()).extract_bundle()

    elf_contents = bytes(resolve(reread_elf.arena, claude(reread_elf).contents))
    macho_contents = bytes(resolve(reread_macho.arena, claude(reread_macho).contents))
    assert elf_contents == macho_contents == replacement + b';' * 2
    assert bytes(reread_elf.arena) == bytes(reread_macho.arena)
