"""Tests for the monolithic and split container readers."""

from __future__ import annotations

import errno
import struct
from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import EntrySpec, build_pak, build_utoc

from pak_explorer.core.containers import (
    MonolithicArchiveReader,
    SplitTableReader,
    _BaseReader,
    discover_containers,
    open_container,
    read_container,
    read_entry_bytes,
    validate_container,
)
from pak_explorer.core.errors import (
    ContainerUnreadable,
    CorruptContainer,
    FormatMismatch,
    IndexEncrypted,
    UnsupportedFormat,
)
from pak_explorer.core.formats import PAK_FOOTER_SIZE, UTOC_MAGIC
from pak_explorer.models import CompressionMethod, ContainerKind

WritePak = Callable[..., Path]


def _entries() -> list[EntrySpec]:
    return [
        EntrySpec("Meshes/Mesh_A.mesh", b"mesh-bytes", refs=["Tex_A"]),
        EntrySpec("Textures/Tex_A.png", b"texture-bytes"),
    ]


class TestMonolithicArchiveReader:
    def test_reads_handle_and_entries(self, write_pak: WritePak) -> None:
        path = write_pak("Base.pak", _entries())
        with MonolithicArchiveReader(path) as handle:
            assert handle.kind is ContainerKind.MONOLITHIC
            assert handle.entry_count == 2
            assert handle.mount_point == "../../../Game/"
            assert handle.payload_path == path
            assert handle.name == "Base"

        handle, entries = read_container(path)
        assert [e.identifier for e in entries] == ["Meshes/Mesh_A.mesh", "Textures/Tex_A.png"]
        assert entries[0].references == ("Tex_A",)
        assert entries[1].offset == len(b"mesh-bytes")
        assert all(e.container is handle for e in entries)

    def test_every_entry_lies_before_the_index(self, write_pak: WritePak) -> None:
        path = write_pak("Base.pak", _entries())
        handle, entries = read_container(path)
        payload_end = handle.file_size - PAK_FOOTER_SIZE
        assert all(0 <= e.offset and e.end <= payload_end for e in entries)

    def test_records_compression_method(self, write_pak: WritePak) -> None:
        path = write_pak(
            "Packed.pak",
            [
                EntrySpec("a.txt", b"hello" * 20, compression=1),
                EntrySpec("b.txt", b"data", compression=4),
                EntrySpec("c.txt", b"data", compression=99),
            ],
        )
        _, entries = read_container(path)
        assert [e.compression_method for e in entries] == [
            CompressionMethod.ZLIB,
            CompressionMethod.LZ4,
            CompressionMethod.UNSUPPORTED,
        ]
        assert entries[2].compression_code == 99

    def test_index_past_end_of_file_is_corrupt(self, write_pak: WritePak) -> None:
        path = write_pak("Broken.pak", _entries(), index_offset=10_000_000)
        with pytest.raises(CorruptContainer, match="past end of file"):
            read_container(path)

    def test_file_smaller_than_footer_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "Tiny.pak"
        path.write_bytes(b"\x00" * 10)
        with pytest.raises(CorruptContainer):
            read_container(path)

    def test_bad_magic_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "Junk.pak"
        path.write_bytes(b"\xab" * 128)
        with pytest.raises(CorruptContainer, match="magic"):
            read_container(path)

    def test_table_of_contents_under_pak_extension_is_format_mismatch(self, tmp_path: Path) -> None:
        toc = build_utoc(tmp_path / "Real.utoc", _entries())
        disguised = tmp_path / "Disguised.pak"
        disguised.write_bytes(toc.read_bytes())
        with pytest.raises(FormatMismatch):
            read_container(disguised)

    def test_unknown_version_is_unsupported(self, write_pak: WritePak) -> None:
        path = write_pak("Future.pak", _entries(), version=9)
        with pytest.raises(UnsupportedFormat, match="version 9"):
            read_container(path)

    def test_encrypted_index_opens_but_yields_no_entries(self, write_pak: WritePak) -> None:
        path = write_pak("Secret.pak", _entries(), flags=1)
        reader = MonolithicArchiveReader(path)
        try:
            handle = reader.open()
            assert handle.index_encrypted is True
            with pytest.raises(IndexEncrypted):
                reader.read_entries()
        finally:
            reader.close()

    def test_absurd_entry_count_is_rejected_before_allocation(self, write_pak: WritePak) -> None:
        path = write_pak("Huge.pak", _entries(), entry_count=0xFFFFFFFF)
        with pytest.raises(CorruptContainer, match="entry count"):
            read_container(path)

    def test_entry_count_above_configured_limit(self, write_pak: WritePak) -> None:
        path = write_pak("Base.pak", _entries())
        with pytest.raises(CorruptContainer, match="exceeds limit 1"):
            read_container(path, max_entries=1)

    def test_duplicate_paths_are_corrupt(self, write_pak: WritePak) -> None:
        path = write_pak("Dup.pak", [EntrySpec("a.txt", b"1"), EntrySpec("a.txt", b"2")])
        with pytest.raises(CorruptContainer, match="duplicate"):
            read_container(path)

    def test_entry_spanning_into_index_is_corrupt(self, tmp_path: Path) -> None:
        path = build_pak(tmp_path / "Spill.pak", [EntrySpec("a.txt", b"abc")])
        raw = bytearray(path.read_bytes())
        # csize of the only entry sits right after the path string and offset
        csize_pos = 3 + 4 + len("../../../Game/") + 4 + 4 + len("a.txt") + 8
        struct.pack_into("<Q", raw, csize_pos, 1000)
        path.write_bytes(bytes(raw))
        with pytest.raises(CorruptContainer, match="beyond payload bounds"):
            read_container(path)

    def test_missing_file_is_unreadable(self, tmp_path: Path) -> None:
        with pytest.raises(ContainerUnreadable):
            read_container(tmp_path / "Nope.pak")

    def test_io_error_while_reading_is_unreadable(self, write_pak: WritePak, monkeypatch: pytest.MonkeyPatch) -> None:
        path = write_pak("Base.pak", _entries())

        def _fail(self: MonolithicArchiveReader, fh: object) -> None:
            raise OSError(errno.EIO, "Input/output error")

        monkeypatch.setattr(MonolithicArchiveReader, "_read_structure", _fail)
        with pytest.raises(ContainerUnreadable, match="Input/output error"):
            read_container(path)

    def test_base_reader_is_abstract(self, tmp_path: Path) -> None:
        with pytest.raises(TypeError):
            _BaseReader(tmp_path / "Base.pak")  # type: ignore[abstract]


class TestSplitTableReader:
    def test_reads_table_and_payload_sibling(self, write_utoc: WritePak) -> None:
        path = write_utoc("DLC.utoc", _entries())
        handle, entries = read_container(path)
        assert handle.kind is ContainerKind.SPLIT
        assert handle.payload_path == path.with_suffix(".ucas")
        assert [e.chunk_id for e in entries] == [1, 2]
        assert entries[0].references == ("Tex_A",)
        assert read_entry_bytes(entries[1], 1024) == b"texture-bytes"

    def test_missing_payload_is_unreadable(self, tmp_path: Path) -> None:
        path = build_utoc(tmp_path / "Orphan.utoc", _entries(), write_payload=False)
        with pytest.raises(ContainerUnreadable):
            read_container(path)

    def test_archive_under_utoc_extension_is_format_mismatch(self, tmp_path: Path) -> None:
        pak = build_pak(tmp_path / "Real.pak", _entries())
        disguised = tmp_path / "Disguised.utoc"
        disguised.write_bytes(pak.read_bytes())
        with pytest.raises(FormatMismatch):
            read_container(disguised)

    def test_bad_header_is_corrupt(self, tmp_path: Path) -> None:
        path = tmp_path / "Junk.utoc"
        path.write_bytes(b"\x01" * 64)
        with pytest.raises(CorruptContainer):
            read_container(path)

    def test_entry_outside_payload_is_corrupt(self, tmp_path: Path) -> None:
        path = build_utoc(tmp_path / "Short.utoc", _entries())
        path.with_suffix(".ucas").write_bytes(b"xy")
        with pytest.raises(CorruptContainer, match="beyond payload bounds"):
            read_container(path)

    def test_encrypted_table(self, write_utoc: WritePak) -> None:
        path = write_utoc("Secret.utoc", _entries(), flags=1)
        reader = SplitTableReader(path)
        try:
            assert reader.open().index_encrypted is True
            with pytest.raises(IndexEncrypted):
                reader.read_entries()
        finally:
            reader.close()

    def test_truncated_table_is_corrupt(self, write_utoc: WritePak) -> None:
        path = write_utoc("Cut.utoc", _entries())
        path.write_bytes(path.read_bytes()[:-6])
        with pytest.raises(CorruptContainer, match="truncated"):
            read_container(path)

    def test_unknown_version_is_unsupported(self, write_utoc: WritePak) -> None:
        path = write_utoc("Future.utoc", _entries(), version=3)
        with pytest.raises(UnsupportedFormat):
            read_container(path)


class TestOpenContainer:
    def test_dispatches_on_extension(self, tmp_path: Path) -> None:
        assert isinstance(open_container(tmp_path / "a.pak"), MonolithicArchiveReader)
        assert isinstance(open_container(tmp_path / "a.UTOC"), SplitTableReader)

    def test_unknown_extension(self, tmp_path: Path) -> None:
        with pytest.raises(UnsupportedFormat):
            open_container(tmp_path / "a.zip")


class TestDiscoverContainers:
    def test_walks_directories_in_sorted_order(self, tmp_path: Path) -> None:
        build_pak(tmp_path / "b" / "Second.pak", _entries())
        build_pak(tmp_path / "a" / "First.pak", _entries())
        build_utoc(tmp_path / "a" / "Split.utoc", _entries())
        (tmp_path / "a" / "notes.txt").write_text("ignored")

        found, diagnostics = discover_containers([tmp_path])

        assert found == [tmp_path / "a" / "First.pak", tmp_path / "a" / "Split.utoc", tmp_path / "b" / "Second.pak"]
        assert diagnostics == []

    def test_payload_root_maps_to_its_table(self, tmp_path: Path) -> None:
        toc = build_utoc(tmp_path / "Split.utoc", _entries())
        found, _ = discover_containers([toc.with_suffix(".ucas")])
        assert found == [toc]

    def test_same_container_listed_twice_is_scanned_once(self, tmp_path: Path) -> None:
        pak = build_pak(tmp_path / "Base.pak", _entries())
        found, _ = discover_containers([pak, tmp_path])
        assert found == [pak]

    def test_missing_root_becomes_diagnostic(self, tmp_path: Path) -> None:
        found, diagnostics = discover_containers([tmp_path / "missing"])
        assert found == []
        assert [d.kind for d in diagnostics] == ["UnreadableContainer"]

    def test_unrelated_file_root_becomes_diagnostic(self, tmp_path: Path) -> None:
        other = tmp_path / "readme.md"
        other.write_text("hi")
        found, diagnostics = discover_containers([other])
        assert found == []
        assert diagnostics[0].kind == "UnsupportedFormat"


class TestValidateContainer:
    def test_clean_container_has_no_issues(self, write_pak: WritePak) -> None:
        assert validate_container(write_pak("Base.pak", _entries())) == []

    def test_reports_codec_and_encryption_issues(self, write_pak: WritePak) -> None:
        path = write_pak(
            "Mixed.pak",
            [
                EntrySpec("a.bin", b"x", compression=8),
                EntrySpec("b.bin", b"x", compression=77),
                EntrySpec("c.bin", b"x", flags=1),
            ],
        )
        issues = validate_container(path)
        assert any("a.bin" in i and "oodle" in i for i in issues)
        assert any("b.bin" in i and "77" in i for i in issues)
        assert any("c.bin" in i and "encrypted" in i for i in issues)

    def test_structural_failure_is_single_issue(self, tmp_path: Path) -> None:
        path = tmp_path / "Junk.pak"
        path.write_bytes(UTOC_MAGIC + b"\x00" * 64)
        issues = validate_container(path)
        assert len(issues) == 1
        assert issues[0].startswith("FormatMismatch")
