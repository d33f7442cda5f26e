"""Tests for package intake: suffix check, extraction and metadata."""

import json
import zipfile
from pathlib import Path

import pytest
from plugin_helpers import zip_bytes

from yufanbot.plugins.errors import PluginCompileError, PluginErrorKind
from yufanbot.plugins.package import extract_bytes, extract_package, read_metadata, validate_suffix


class TestValidateSuffix:
    @pytest.mark.parametrize("name", ["plugin.yf", "my.plugin.yf", "/tmp/x/a.yf"])
    def test_accepts_yf(self, name):
        assert validate_suffix(name)

    @pytest.mark.parametrize("name", ["plugin.YF", "plugin.zip", "plugin.yf.bak", "plugin"])
    def test_rejects_other_suffixes(self, name):
        assert not validate_suffix(name)


class TestExtractPackage:
    def test_extracts_members(self, tmp_path: Path):
        archive = tmp_path / "p.yf"
        archive.write_bytes(zip_bytes({"META_INF": "{}", "pkg/__init__.py": "x = 1\n"}))
        dest = tmp_path / "out"
        dest.mkdir()

        extract_package(archive, dest)

        assert (dest / "META_INF").read_text() == "{}"
        assert (dest / "pkg" / "__init__.py").read_text() == "x = 1\n"

    def test_corrupt_archive(self, tmp_path: Path):
        archive = tmp_path / "p.yf"
        archive.write_bytes(b"definitely not a zip file")

        with pytest.raises(PluginCompileError) as exc_info:
            extract_package(archive, tmp_path)
        assert exc_info.value.kind == PluginErrorKind.EXTRACTION_FAILED

    def test_member_escaping_destination(self, tmp_path: Path):
        archive = tmp_path / "p.yf"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../evil.py", "print('x')")
        dest = tmp_path / "out"
        dest.mkdir()

        with pytest.raises(PluginCompileError) as exc_info:
            extract_package(archive, dest)
        assert exc_info.value.kind == PluginErrorKind.EXTRACTION_FAILED
        assert not (tmp_path / "evil.py").exists()

    def test_too_many_entries(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("yufanbot.plugins.package._MAX_ZIP_ENTRIES", 2)
        archive = tmp_path / "p.yf"
        archive.write_bytes(zip_bytes({"a": "1", "b": "2", "c": "3"}))

        with pytest.raises(PluginCompileError) as exc_info:
            extract_package(archive, tmp_path / "out")
        assert exc_info.value.kind == PluginErrorKind.EXTRACTION_FAILED


class TestExtractBytes:
    def test_extracts_members(self, tmp_path: Path):
        extract_bytes(zip_bytes({"lib/__init__.py": "X = 1\n"}), tmp_path)
        assert (tmp_path / "lib" / "__init__.py").read_text() == "X = 1\n"

    def test_corrupt_archive(self, tmp_path: Path):
        with pytest.raises(PluginCompileError) as exc_info:
            extract_bytes(b"not a wheel", tmp_path, "lib-1.0-py3-none-any.whl")
        assert exc_info.value.kind == PluginErrorKind.EXTRACTION_FAILED
        assert "lib-1.0-py3-none-any.whl" in str(exc_info.value)

    def test_too_many_entries(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr("yufanbot.plugins.package._MAX_ZIP_ENTRIES", 1)
        with pytest.raises(PluginCompileError) as exc_info:
            extract_bytes(zip_bytes({"a": "1", "b": "2"}), tmp_path)
        assert exc_info.value.kind == PluginErrorKind.EXTRACTION_FAILED


class TestReadMetadata:
    def _write(self, workspace: Path, content: str) -> None:
        (workspace / "META_INF").write_text(content)

    def test_missing_manifest(self, tmp_path: Path):
        assert read_metadata(tmp_path) is None

    def test_full_manifest(self, tmp_path: Path):
        self._write(
            tmp_path,
            json.dumps(
                {
                    "id": "helloworld",
                    "name": "HelloWorld",
                    "description": "HelloWorld plugin",
                    "version": "2.1.0",
                    "authors": ["a", "b"],
                    "dependencies": ["requests:2.31.0"],
                }
            ),
        )
        meta = read_metadata(tmp_path)

        assert meta is not None
        assert meta.id == "helloworld"
        assert meta.name == "HelloWorld"
        assert meta.description == "HelloWorld plugin"
        assert meta.version == "2.1.0"
        assert meta.authors == ["a", "b"]
        assert meta.dependencies == ["requests:2.31.0"]

    def test_defaults(self, tmp_path: Path):
        self._write(tmp_path, '{"id": "minimal"}')
        meta = read_metadata(tmp_path)

        assert meta is not None
        assert meta.version == "1.0.0"
        assert meta.name == ""
        assert meta.authors == []
        assert meta.dependencies == []
        assert meta.display_name == "minimal"

    def test_legacy_dependency_key(self, tmp_path: Path):
        self._write(tmp_path, '{"id": "x", "nuget_dependencies": ["Pkg:1.0.0"]}')
        meta = read_metadata(tmp_path)
        assert meta is not None
        assert meta.dependencies == ["Pkg:1.0.0"]

    def test_unknown_keys_ignored(self, tmp_path: Path):
        self._write(tmp_path, '{"id": "x", "author": "mcdaxia"}')
        meta = read_metadata(tmp_path)
        assert meta is not None
        assert meta.id == "x"

    @pytest.mark.parametrize("content", ['{"id": ""}', '{"id": "   "}', '{"name": "no id"}'])
    def test_blank_id(self, tmp_path: Path, content):
        self._write(tmp_path, content)
        assert read_metadata(tmp_path) is None

    @pytest.mark.parametrize("content", ["{not json", "[]", '{"id": 5}', '{"id": "x", "authors": "a"}'])
    def test_invalid_manifest(self, tmp_path: Path, content, caplog):
        self._write(tmp_path, content)
        assert read_metadata(tmp_path) is None
        assert "Failed to parse" in caplog.text

    def test_metadata_is_frozen(self, tmp_path: Path):
        self._write(tmp_path, '{"id": "x"}')
        meta = read_metadata(tmp_path)
        with pytest.raises(Exception):
            meta.id = "y"

    def test_manifest_with_byte_order_mark(self, tmp_path: Path):
        (tmp_path / "META_INF").write_bytes(b"\xef\xbb\xbf" + b'{"id": "x", "name": "Bom"}')
        meta = read_metadata(tmp_path)
        assert meta is not None
        assert meta.id == "x"
        assert meta.name == "Bom"

    def test_manifest_not_utf8(self, tmp_path: Path, caplog):
        (tmp_path / "META_INF").write_bytes(b'{"id": "\xff\xfe"}')
        assert read_metadata(tmp_path) is None
        assert "Failed to parse" in caplog.text
