"""Unit tests for artisync.cache."""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import pytest

from artisync.cache import INDEX_FILE, CacheStore, Match, Mismatch
from artisync.errors import ArtisyncError, ErrorCode
from artisync.models.cache import ArtifactId, ContentHash, ETag, Index, Unknown

if TYPE_CHECKING:
    from pathlib import Path

    from artisync.cache import Reference
    from artisync.models.cache import Token


async def _put(store: CacheStore, key: str, token: Token, name: str, data: bytes) -> Reference:
    entry = await store.entry(key)
    result = entry.try_update(token)
    assert isinstance(result, Mismatch)
    return await result.updater.update(name, data)


async def _seed(root: Path, items: dict[str, Token]) -> None:
    store = await CacheStore.open(root)
    for key, token in items.items():
        await _put(store, key, token, f"{key}.jar", key.encode())
    await store.close()


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_same_variant_same_payload_equal(self) -> None:
        assert ETag(value="abc") == ETag(value="abc")
        assert ArtifactId(id=42) == ArtifactId(id=42)
        assert ContentHash(algorithm="sha1", digest="ff") == ContentHash(
            algorithm="sha1", digest="ff"
        )

    def test_same_variant_different_payload_not_equal(self) -> None:
        assert ETag(value="abc") != ETag(value="abd")
        assert ArtifactId(id=42) != ArtifactId(id=43)

    def test_different_variants_never_equal(self) -> None:
        tokens: list[Token] = [
            ETag(value="1"),
            ArtifactId(id=1),
            ContentHash(algorithm="sha1", digest="1"),
            ContentHash(algorithm="sha512", digest="1"),
            Unknown(),
        ]
        for i, left in enumerate(tokens):
            for j, right in enumerate(tokens):
                if i != j:
                    assert left != right

    def test_unknown_equals_nothing(self) -> None:
        unknown = Unknown()
        assert unknown != unknown  # noqa: PLR0124
        assert Unknown() != Unknown()
        assert not (Unknown() == Unknown())

    def test_tokens_are_immutable(self) -> None:
        token = ETag(value="abc")
        with pytest.raises(ValueError):
            token.value = "other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# open / close
# ---------------------------------------------------------------------------


class TestOpen:
    async def test_creates_missing_root(self, tmp_path: Path) -> None:
        root = tmp_path / "a" / "b"
        store = await CacheStore.open(root)
        assert root.is_dir()
        assert store.keys() == []

    async def test_malformed_index_raises(self, tmp_path: Path) -> None:
        (tmp_path / INDEX_FILE).write_text('{"entries": [{"key": "a"}]}')
        with pytest.raises(ArtisyncError) as exc_info:
            await CacheStore.open(tmp_path)
        assert exc_info.value.code == ErrorCode.CACHE_INDEX_CORRUPT

    async def test_invalid_json_raises(self, tmp_path: Path) -> None:
        (tmp_path / INDEX_FILE).write_text("not json")
        with pytest.raises(ArtisyncError) as exc_info:
            await CacheStore.open(tmp_path)
        assert exc_info.value.code == ErrorCode.CACHE_INDEX_CORRUPT

    async def test_root_is_a_file_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        with pytest.raises(ArtisyncError) as exc_info:
            await CacheStore.open(blocker / "cache")
        assert exc_info.value.code == ErrorCode.CACHE_IO_ERROR


class TestIndexRoundTrip:
    async def test_every_token_variant_survives(self, cache_root: Path) -> None:
        tokens: dict[str, Token] = {
            "etag": ETag(value="W-123"),
            "artifact": ArtifactId(id=42),
            "sha1": ContentHash(algorithm="sha1", digest="a" * 40),
            "sha512": ContentHash(algorithm="sha512", digest="b" * 128),
            "unknown": Unknown(),
        }
        await _seed(cache_root, tokens)

        reopened = await CacheStore.open(cache_root)
        assert sorted(reopened.keys()) == sorted(tokens)
        for key, token in tokens.items():
            entry = await reopened.entry(key)
            assert entry.current_token.model_dump() == token.model_dump()
            existing = entry.get_existing()
            assert existing is not None
            assert existing.name == f"{key}.jar"

    async def test_index_file_is_plain_json(self, cache_root: Path) -> None:
        await _seed(cache_root, {"a": ArtifactId(id=7)})
        raw = json.loads((cache_root / INDEX_FILE).read_text())
        assert raw == {
            "entries": [
                {"key": "a", "token": {"kind": "artifact", "id": 7}, "file_name": "a.jar"}
            ]
        }

    async def test_close_leaves_no_temp_files(self, cache_root: Path) -> None:
        await _seed(cache_root, {"a": ArtifactId(id=7)})
        assert sorted(p.name for p in cache_root.iterdir()) == ["a", INDEX_FILE]


# ---------------------------------------------------------------------------
# entry / try_update / get_existing
# ---------------------------------------------------------------------------


class TestTryUpdate:
    async def test_absent_key_has_unknown_token(self, store: CacheStore) -> None:
        entry = await store.entry("new")
        assert isinstance(entry.current_token, Unknown)
        assert entry.get_existing() is None

    async def test_unknown_candidate_always_mismatches(self, store: CacheStore) -> None:
        await _put(store, "a", Unknown(), "a.jar", b"1")
        entry = await store.entry("a")
        assert isinstance(entry.try_update(Unknown()), Mismatch)

    async def test_match_returns_unchanged_reference(self, store: CacheStore) -> None:
        await _put(store, "a", ETag(value="v1"), "a-1.0.jar", b"data")
        entry = await store.entry("a")

        result = entry.try_update(ETag(value="v1"))

        assert isinstance(result, Match)
        assert result.reference.name == "a-1.0.jar"
        assert result.reference.changed is False
        assert result.reference.path == store.root / "a"
        assert result.reference.path.is_absolute()

    async def test_mismatch_writes_nothing(self, store: CacheStore) -> None:
        entry = await store.entry("a")
        result = entry.try_update(ArtifactId(id=1))
        assert isinstance(result, Mismatch)
        assert result.updater.token == ArtifactId(id=1)
        assert not (store.root / "a").exists()
        assert store.keys() == []

    async def test_different_variant_mismatches(self, store: CacheStore) -> None:
        await _put(store, "a", ArtifactId(id=1), "a.zip", b"data")
        entry = await store.entry("a")
        assert isinstance(entry.try_update(ETag(value="1")), Mismatch)

    async def test_get_existing_ignores_tokens(self, store: CacheStore) -> None:
        await _put(store, "a", ArtifactId(id=1), "a.zip", b"data")
        entry = await store.entry("a")
        existing = entry.get_existing()
        assert existing is not None
        assert existing.name == "a.zip"
        assert existing.changed is False

    async def test_key_with_separator_rejected(self, store: CacheStore) -> None:
        with pytest.raises(ArtisyncError) as exc_info:
            await store.entry("../escape")
        assert exc_info.value.code == ErrorCode.INVALID_SOURCE

    async def test_index_file_name_rejected(self, store: CacheStore) -> None:
        with pytest.raises(ArtisyncError):
            await store.entry(INDEX_FILE)


class TestEntryUpdater:
    async def test_update_writes_blob_and_entry(self, store: CacheStore) -> None:
        reference = await _put(store, "a", ArtifactId(id=1), "a.zip", b"payload")

        assert reference.changed is True
        assert reference.name == "a.zip"
        assert reference.path.read_bytes() == b"payload"
        assert store.keys() == ["a"]

    async def test_update_overwrites_previous_blob(self, store: CacheStore) -> None:
        await _put(store, "a", ArtifactId(id=1), "a.zip", b"a much longer first payload")
        reference = await _put(store, "a", ArtifactId(id=2), "a.zip", b"short")
        assert reference.path.read_bytes() == b"short"

    async def test_updater_is_single_use(self, store: CacheStore) -> None:
        entry = await store.entry("a")
        result = entry.try_update(ArtifactId(id=1))
        assert isinstance(result, Mismatch)
        await result.updater.update("a.zip", b"1")
        with pytest.raises(RuntimeError):
            await result.updater.update("a.zip", b"2")

    async def test_renamed_file_is_superseded(self, store: CacheStore) -> None:
        await _put(store, "a", ArtifactId(id=1), "a-1.0.jar", b"1")
        await _put(store, "a", ArtifactId(id=2), "a-1.1.jar", b"2")
        assert [r.name for r in store.superseded()] == ["a-1.0.jar"]

    async def test_same_name_is_not_superseded(self, store: CacheStore) -> None:
        await _put(store, "a", ArtifactId(id=1), "a.jar", b"1")
        await _put(store, "a", ArtifactId(id=2), "a.jar", b"2")
        assert store.superseded() == []

    async def test_concurrent_updates_all_persist(self, cache_root: Path) -> None:
        store = await CacheStore.open(cache_root)
        keys = [f"key{i}" for i in range(20)]
        await asyncio.gather(
            *(
                _put(store, key, ArtifactId(id=i), f"{key}.jar", key.encode())
                for i, key in enumerate(keys)
            )
        )
        await store.close()

        index = Index.model_validate_json((cache_root / INDEX_FILE).read_text())
        assert sorted(e.key for e in index.entries) == sorted(keys)
        for key in keys:
            assert (cache_root / key).read_bytes() == key.encode()


# ---------------------------------------------------------------------------
# drop_stale
# ---------------------------------------------------------------------------


class TestDropStale:
    async def test_untouched_keys_are_evicted(self, cache_root: Path) -> None:
        await _seed(
            cache_root, {"a": ArtifactId(id=1), "b": ArtifactId(id=2), "c": ArtifactId(id=3)}
        )

        store = await CacheStore.open(cache_root)
        await store.entry("a")
        await store.entry("b")
        removed = await store.drop_stale()
        await store.close()

        assert [r.name for r in removed] == ["c.jar"]
        assert removed[0].path == cache_root.resolve() / "c"
        assert not (cache_root / "c").exists()
        index = Index.model_validate_json((cache_root / INDEX_FILE).read_text())
        assert sorted(e.key for e in index.entries) == ["a", "b"]

    async def test_touched_key_survives_failed_fetch(self, cache_root: Path) -> None:
        await _seed(cache_root, {"a": ArtifactId(id=1)})

        store = await CacheStore.open(cache_root)
        entry = await store.entry("a")
        # Provider fails: the entry is looked up but never updated.
        del entry
        removed = await store.drop_stale()
        await store.close()

        assert removed == []
        assert (cache_root / "a").read_bytes() == b"a"

    async def test_missing_blob_is_not_an_error(self, cache_root: Path) -> None:
        await _seed(cache_root, {"a": ArtifactId(id=1)})
        (cache_root / "a").unlink()

        store = await CacheStore.open(cache_root)
        removed = await store.drop_stale()
        assert [r.name for r in removed] == ["a.jar"]

    async def test_nothing_stale_on_empty_store(self, store: CacheStore) -> None:
        assert await store.drop_stale() == []

    async def test_failed_removal_keeps_entry_and_evicts_the_rest(self, cache_root: Path) -> None:
        await _seed(
            cache_root, {"a": ArtifactId(id=1), "b": ArtifactId(id=2), "c": ArtifactId(id=3)}
        )
        # A directory where the blob should be cannot be unlinked.
        (cache_root / "b").unlink()
        (cache_root / "b").mkdir()
        (cache_root / "b" / "inner").write_bytes(b"x")

        store = await CacheStore.open(cache_root)
        with pytest.raises(ArtisyncError) as exc_info:
            await store.drop_stale()
        await store.close()

        assert exc_info.value.code == ErrorCode.CACHE_IO_ERROR
        assert store.keys() == ["b"]
        assert not (cache_root / "a").exists()
        assert not (cache_root / "c").exists()
        index = Index.model_validate_json((cache_root / INDEX_FILE).read_text())
        assert [e.key for e in index.entries] == ["b"]
