"""Tests for object storage — LocalFileStorage and MemoryStorage."""

from __future__ import annotations

import pytest

from fleetcore.core.storage import LocalFileStorage, MemoryStorage, Storage


@pytest.fixture(params=["memory", "file"])
def any_storage(request, tmp_dir):
    if request.param == "memory":
        return MemoryStorage()
    return LocalFileStorage(tmp_dir, "test-bucket")


class TestStorageContract:
    def test_satisfies_protocol(self, any_storage):
        assert isinstance(any_storage, Storage)

    def test_put_get(self, any_storage):
        any_storage.put("a/b.json", b"data")
        assert any_storage.get("a/b.json") == b"data"

    def test_get_missing_raises_key_error(self, any_storage):
        with pytest.raises(KeyError):
            any_storage.get("missing")

    def test_put_overwrites(self, any_storage):
        any_storage.put("k", b"1")
        any_storage.put("k", b"2")
        assert any_storage.get("k") == b"2"

    def test_put_if_absent(self, any_storage):
        assert any_storage.put_if_absent("k", b"first") is True
        assert any_storage.put_if_absent("k", b"second") is False
        assert any_storage.get("k") == b"first"

    def test_remove_missing_is_fine(self, any_storage):
        any_storage.remove("never-there")

    def test_list_prefix_sorted(self, any_storage):
        for key in ["tools/b", "tools/a", "images/index.json"]:
            any_storage.put(key, b"x")
        assert any_storage.list("tools/") == ["tools/a", "tools/b"]
        assert len(any_storage.list()) == 3

    def test_url_under_base_url(self, any_storage):
        assert any_storage.url("tools/index.json") == any_storage.base_url + "tools/index.json"
        assert any_storage.base_url.endswith("/")

    @pytest.mark.parametrize("key", ["", "/", "../escape", "a//b", "a/./b"])
    def test_invalid_keys(self, any_storage, key):
        with pytest.raises(ValueError):
            any_storage.put(key, b"x")


class TestLocalFileStorage:
    def test_layout_and_uri(self, tmp_dir):
        storage = LocalFileStorage(tmp_dir, "bucket")
        storage.put("tools/index.json", b"{}")
        assert (tmp_dir / "bucket" / "tools" / "index.json").read_bytes() == b"{}"
        assert storage.base_url.startswith("file://")

    def test_no_temp_files_left_behind(self, tmp_dir):
        storage = LocalFileStorage(tmp_dir, "bucket")
        storage.put_if_absent("k", b"1")
        storage.put_if_absent("k", b"2")
        assert sorted(p.name for p in (tmp_dir / "bucket").iterdir()) == ["k"]

    def test_shared_directory(self, tmp_dir):
        LocalFileStorage(tmp_dir, "bucket").put("k", b"v")
        assert LocalFileStorage(tmp_dir, "bucket").get("k") == b"v"
