"""
Playground handler tests, driven with files on disk like gradio uploads.
"""
from __future__ import annotations

import json

import pytest

from json_field_mapper.handlers import (
    handle_config_upload,
    handle_inspect_root_change,
    handle_inspect_upload,
    handle_sources_upload,
    preview_of,
    run_mapping_handler,
)

CONFIG = {
    "sourceSelection": {"sources": [{"id": "feed", "primaryPath": "items"}]},
    "fieldMappings": [{"targetPath": "title", "sourcePath": "items[*].name"}],
}
SOURCES = {"feed": {"items": [{"name": f"n{i}"} for i in range(5)]}}


@pytest.fixture
def write_json(tmp_path):
    def write(name, payload):
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return str(path)
    return write


class TestRunMappingTab:

    def test_config_upload_reports_validation(self, write_json) -> None:
        data, status, report = handle_config_upload(write_json("config.json", CONFIG))
        assert data == CONFIG
        assert "1 field mappings" in status
        assert report == {"valid": True, "errors": [], "warnings": []}

    def test_bad_files(self, tmp_path, write_json) -> None:
        broken = tmp_path / "broken.json"
        broken.write_text("{nope", encoding="utf-8")
        assert handle_config_upload(str(broken))[0] is None
        assert handle_config_upload(None)[1] == "Mapping config: No file uploaded."
        assert handle_sources_upload(write_json("list.json", [1]))[0] is None

    def test_run_writes_output_and_previews(self, write_json, tmp_path, monkeypatch) -> None:
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        config, _, _ = handle_config_upload(write_json("config.json", CONFIG))
        sources, _ = handle_sources_upload(write_json("sources.json", SOURCES))

        path, status, preview = run_mapping_handler(config, sources, "result")

        with open(path, encoding="utf-8") as f:
            assert json.load(f) == [{"title": f"n{i}"} for i in range(5)]
        assert path.endswith("result.json")
        assert status.startswith("Mapping complete")
        assert preview == [{"title": "n0"}, {"title": "n1"}, {"title": "n2"}]

    def test_run_reports_configuration_error(self) -> None:
        path, status, preview = run_mapping_handler({"fieldMappings": []}, {}, None)
        assert path is None
        assert status == "Mapping failed: No sources selected"

    def test_preview_trims_nested_lists(self) -> None:
        assert preview_of({"data": list(range(10)), "meta": {"n": 1}}, limit=2) == {"data": [0, 1], "meta": {"n": 1}}


class TestInspectTab:

    def test_upload_lists_paths(self, write_json) -> None:
        data, dropdown, status, lists, fields, tree, count = handle_inspect_upload(write_json("s.json", SOURCES["feed"]))
        assert dropdown["value"] == "items"
        assert lists == [["items", 5]]
        assert fields == [["name"]]
        assert tree == {"name": "name"}
        assert count == "Items: 5"

    def test_root_change(self) -> None:
        fields, tree, count = handle_inspect_root_change({"a": [{"x": 1}], "b": {"y": 2}}, "b")
        assert fields == [["y"]]
        assert count == "Items: 1"
