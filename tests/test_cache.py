"""Tests for FilesystemCache."""

from __future__ import annotations

from slider_server.storage.filesystem import CACHE_SUFFIX, FilesystemCache

SNAPSHOT = {
    "notebook_id": "abc",
    "cell_results": {"c1": {"output": {"body": "2", "mime": "text/plain"}}},
    "bonds": {"x": {"value": 1}},
}


def test_missing_directory_is_a_miss(tmp_dir):
    cache = FilesystemCache(tmp_dir / "does-not-exist")
    assert cache.load("H2") is None
    assert "H2" not in cache
    assert not (tmp_dir / "does-not-exist").exists()


def test_store_creates_directory_and_loads_back(tmp_dir):
    cache = FilesystemCache(tmp_dir / "cache")
    cache.store("H2", SNAPSHOT)
    assert (tmp_dir / "cache").is_dir()
    assert cache.load("H2") == SNAPSHOT
    assert "H2" in cache


def test_one_file_per_hash(tmp_dir):
    cache = FilesystemCache(tmp_dir)
    cache.store("H1", {"a": 1})
    cache.store("H2", {"a": 2})
    assert sorted(p.name for p in tmp_dir.iterdir()) == [f"H1{CACHE_SUFFIX}", f"H2{CACHE_SUFFIX}"]
    assert cache.load("H1") == {"a": 1}
    assert cache.load("H3") is None


def test_base64_hash_is_escaped_in_file_name(tmp_dir):
    cache = FilesystemCache(tmp_dir)
    notebook_hash = "ab/cd+ef=="
    cache.store(notebook_hash, SNAPSHOT)
    files = list(tmp_dir.iterdir())
    assert len(files) == 1
    assert "/" not in files[0].name
    assert cache.load(notebook_hash) == SNAPSHOT


def test_corrupt_entry_is_a_miss(tmp_dir):
    cache = FilesystemCache(tmp_dir)
    (tmp_dir / f"H1{CACHE_SUFFIX}").write_bytes(b"\xc1\xc1")
    assert cache.load("H1") is None


def test_non_mapping_entry_is_a_miss(tmp_dir):
    import msgpack

    cache = FilesystemCache(tmp_dir)
    (tmp_dir / f"H1{CACHE_SUFFIX}").write_bytes(msgpack.packb([1, 2]))
    assert cache.load("H1") is None


def test_unwritable_directory_is_logged_not_raised(tmp_dir, caplog):
    (tmp_dir / "not_a_dir").write_text("a regular file")
    cache = FilesystemCache(tmp_dir / "not_a_dir" / "cache")
    with caplog.at_level("WARNING", logger="slider_server.storage.filesystem"):
        cache.store("H1", SNAPSHOT)
    assert cache.load("H1") is None
    assert "Could not write cache entry" in caplog.text
