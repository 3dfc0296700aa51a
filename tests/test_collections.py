import json

import pytest

from conftest import write_manifest
from levelfetch.core.resolver import resolve_level_ids
from levelfetch.exceptions import ConfigurationError, ManifestError
from levelfetch.storage.collections import (
    list_collections,
    normalize_level_id,
    parse_manifest_file,
    resolve_builtin_collections_dir,
    validate_collections_dir,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("11451", "11451"),
        ("abc", "abc"),
        (834, "834"),
        (12.0, "12"),
        (1.5, None),
        (True, None),
        (None, None),
        ({"id": 1}, None),
        ([1], None),
    ],
)
def test_normalize_level_id(raw, expected):
    assert normalize_level_id(raw) == expected


def test_parse_manifest_keeps_valid_entries(tmp_path):
    path = write_manifest(tmp_path, "festival", [1, "2", 3.0, None, False], "Festival")

    parsed = parse_manifest_file(path)

    assert parsed.name == "Festival"
    assert parsed.level_ids == ["1", "2", "3"]


def test_parse_manifest_defaults_name_to_directory(tmp_path):
    path = write_manifest(tmp_path, "buddies", [10])

    assert parse_manifest_file(path).name == "buddies"


@pytest.mark.parametrize(
    "content, message",
    [
        ("{not json", "parse manifest failed"),
        ("[1, 2, 3]", "expected a JSON object"),
        ('{"name": "x"}', "missing levelIds"),
        ('{"levelIds": "1,2"}', "missing levelIds"),
        ('{"levelIds": [true, null, 1.5]}', "empty levelIds"),
    ],
)
def test_parse_manifest_rejects_bad_content(tmp_path, content, message):
    path = tmp_path / "manifest.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ManifestError, match=message):
        parse_manifest_file(path)


def test_parse_manifest_missing_file(tmp_path):
    with pytest.raises(ManifestError, match="open manifest failed"):
        parse_manifest_file(tmp_path / "nope" / "manifest.json")


def test_resolve_level_ids_is_sorted_union(tmp_path):
    first = write_manifest(tmp_path, "a", [5, 1, 3, 2, 4])
    second = write_manifest(tmp_path, "b", ["7", "3", "6", "4", "5"])

    expected = ["1", "2", "3", "4", "5", "6", "7"]
    assert resolve_level_ids([str(first), str(second)]) == expected
    assert resolve_level_ids([str(second), str(first)]) == expected


def test_resolve_level_ids_fails_on_any_bad_manifest(tmp_path):
    good = write_manifest(tmp_path, "a", [1])
    bad = tmp_path / "b" / "manifest.json"
    bad.parent.mkdir()
    bad.write_text(json.dumps({"levelIds": []}), encoding="utf-8")

    with pytest.raises(ManifestError):
        resolve_level_ids([str(good), str(bad)])


def test_list_collections_applies_overlay_by_relative_path(tmp_path):
    builtin = tmp_path / "builtin"
    overlay = tmp_path / "overlay"
    write_manifest(builtin, "prism", [1, 2], "Prism")
    write_manifest(builtin, "universe", [3], "Universe")
    write_manifest(overlay, "prism", [1, 2, 9], "Prism Plus")
    write_manifest(overlay, "extra", [4], "Extra")

    items = list_collections(builtin, overlay)

    assert [item.name for item in items] == ["Extra", "Prism Plus", "Universe"]
    prism = next(item for item in items if item.relative_path == "prism/manifest.json")
    assert prism.source == "overlay"
    assert prism.level_count == 3
    assert prism.id == "overlay:prism/manifest.json"
    assert prism.model_dump(by_alias=True)["levelCount"] == 3


def test_list_collections_requires_builtin_root():
    with pytest.raises(ConfigurationError):
        list_collections(None)


def test_validate_collections_dir(tmp_path):
    write_manifest(tmp_path, "a", [1])
    write_manifest(tmp_path, "b/c", [2])

    assert validate_collections_dir(tmp_path) == 2


def test_validate_collections_dir_errors(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        validate_collections_dir(tmp_path / "missing")
    with pytest.raises(ConfigurationError, match="No manifest.json"):
        validate_collections_dir(tmp_path)


def test_builtin_dir_resolution_order(tmp_path, monkeypatch):
    configured = tmp_path / "configured"
    from_env = tmp_path / "env"
    local = tmp_path / "collections"
    for directory in (configured, from_env, local):
        directory.mkdir()
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("LEVELFETCH_COLLECTIONS_DIR", str(from_env))

    assert resolve_builtin_collections_dir(str(configured)) == configured
    assert resolve_builtin_collections_dir("") == from_env

    monkeypatch.delenv("LEVELFETCH_COLLECTIONS_DIR")
    assert resolve_builtin_collections_dir("").resolve() == local.resolve()
    fallback = resolve_builtin_collections_dir(str(tmp_path / "missing"))
    assert fallback.resolve() == local.resolve()
