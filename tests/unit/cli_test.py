"""CLI commands run end to end over generated container files."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import EntrySpec, build_pak, build_utoc, png_bytes, wav_bytes
from PIL import Image
from typer.testing import CliRunner

from pak_explorer.cli.app import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def no_env_roots(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PAK_EXPLORER_ROOTS", raising=False)


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    root = tmp_path / "Game"
    build_pak(
        root / "Base.pak",
        [
            EntrySpec("Meshes/Mesh_A.mesh", b"MESH", refs=["Tex_A"]),
            EntrySpec("Textures/Tex_A.png", png_bytes(64, 32)),
        ],
    )
    build_utoc(root / "DLC.utoc", [EntrySpec("Audio/Audio_A.wav", wav_bytes(), refs=["Missing"])])
    return root


class TestScanCommand:
    def test_summary(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["scan", str(game_dir)])
        assert result.exit_code == 0, result.output
        assert "Scanned 2 of 2 container(s), 3 asset(s)" in result.output
        assert "Base" in result.output
        assert "DLC" in result.output

    def test_roots_from_environment(self, game_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAK_EXPLORER_ROOTS", str(game_dir))
        result = runner.invoke(app, ["scan"])
        assert result.exit_code == 0, result.output
        assert "3 asset(s)" in result.output

    def test_no_roots(self) -> None:
        result = runner.invoke(app, ["scan"])
        assert result.exit_code == 2
        assert "No roots given" in result.output

    def test_invalid_setting(self, game_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PAK_EXPLORER_SCAN_WORKERS", "many")
        result = runner.invoke(app, ["scan", str(game_dir)])
        assert result.exit_code == 2
        assert "must be an integer" in result.output

    def test_nothing_readable(self, tmp_path: Path) -> None:
        (tmp_path / "junk.pak").write_bytes(b"junk")
        result = runner.invoke(app, ["scan", str(tmp_path)])
        assert result.exit_code == 1
        assert "No readable containers" in result.output


class TestAssetsCommand:
    def test_lists_assets(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["assets", str(game_dir)])
        assert result.exit_code == 0, result.output
        for asset_id in ("Mesh_A", "Tex_A", "Audio_A"):
            assert asset_id in result.output
        assert "(3 rows)" in result.output

    def test_filters(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["assets", str(game_dir), "--type", "audio"])
        assert result.exit_code == 0, result.output
        assert "Audio_A" in result.output
        assert "(1 rows)" in result.output

    def test_bad_type(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["assets", str(game_dir), "-t", "Shader"])
        assert result.exit_code == 2
        assert "Unknown asset type" in result.output

    def test_limit_must_be_positive(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["assets", str(game_dir), "--limit", "0"])
        assert result.exit_code == 2
        assert "(0 rows)" not in result.output


class TestDepsCommand:
    def test_direct_dependencies(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir), "--asset", "Mesh_A"])
        assert result.exit_code == 0, result.output
        assert "Tex_A" in result.output
        assert "(1 rows)" in result.output

    def test_whole_graph(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir)])
        assert result.exit_code == 0, result.output
        assert "external::Missing" in result.output
        assert "(2 rows)" in result.output

    def test_reverse(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir), "-a", "Tex_A", "--reverse"])
        assert result.exit_code == 0, result.output
        assert "Mesh_A" in result.output

    def test_tree(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir), "-a", "Audio_A", "--tree"])
        assert result.exit_code == 0, result.output
        assert "external::Missing" in result.output
        assert "(unresolved)" in result.output

    def test_unknown_asset(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir), "-a", "NoSuchAsset"])
        assert result.exit_code == 1
        assert "Asset not found: NoSuchAsset" in result.output

    def test_tree_requires_asset(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["deps", str(game_dir), "--tree"])
        assert result.exit_code == 2


class TestPreviewCommand:
    def test_audio_preview(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["preview", "--asset", "Audio_A", str(game_dir), "--budget", "64"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["preview_kind"] == "audio-meta"
        assert data["truncated"] is True
        assert data["payload"]["duration_seconds"] == 1.0

    def test_thumbnail_is_elided_from_output(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["preview", "-a", "Tex_A", str(game_dir)])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["payload"]["thumbnail"].endswith("base64 chars>")

    def test_thumbnail_written_to_file(self, game_dir: Path, tmp_path: Path) -> None:
        out = tmp_path / "thumb.png"
        result = runner.invoke(app, ["preview", "-a", "Tex_A", str(game_dir), "--thumbnail", str(out)])
        assert result.exit_code == 0, result.output
        with Image.open(out) as image:
            assert image.size == (64, 32)

    def test_bad_budget(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["preview", "-a", "Tex_A", str(game_dir), "--budget", "0"])
        assert result.exit_code == 2
        assert "positive" in result.output

    def test_unknown_asset(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["preview", "-a", "NoSuchAsset", str(game_dir)])
        assert result.exit_code == 1


class TestStatsExportValidate:
    def test_stats(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["stats", str(game_dir)])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["assets"] == 3
        assert data["containers"] == 2

    def test_export_to_stdout(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["export", str(game_dir), "--format", "csv"])
        assert result.exit_code == 0, result.output
        assert result.output.splitlines() == ["source,target", "Mesh_A,Tex_A", "Audio_A,external::Missing"]

    def test_export_to_file(self, game_dir: Path, tmp_path: Path) -> None:
        out = tmp_path / "graph.dot"
        result = runner.invoke(app, ["export", str(game_dir), "-f", "dot", "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_text(encoding="utf-8").startswith("digraph")

    def test_export_unknown_format(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["export", str(game_dir), "-f", "graphml"])
        assert result.exit_code == 2

    def test_validate_clean(self, game_dir: Path) -> None:
        result = runner.invoke(app, ["validate", str(game_dir / "Base.pak")])
        assert result.exit_code == 0, result.output
        assert "valid" in result.output

    def test_validate_reports_issues(self, tmp_path: Path) -> None:
        pak = build_pak(tmp_path / "Odd.pak", [EntrySpec("Packed.mesh", b"x", compression=4, flags=1)])
        result = runner.invoke(app, ["validate", str(pak)])
        assert result.exit_code == 1
        assert "no decoder for lz4" in result.output
        assert "(2 issue(s))" in result.output
