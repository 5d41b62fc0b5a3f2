import os

import pytest

from prismo.services.cache_manager import CacheManager


def _write(path, size):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)


@pytest.fixture
def populated_cache(tmp_path):
    old_dir = tmp_path / "Old Movie"
    _write(old_dir / "movie.mkv", 300)
    _write(old_dir / "Subs" / "en.srt", 100)
    mid_file = tmp_path / "mid.mp4"
    _write(mid_file, 300)
    new_dir = tmp_path / "New Movie"
    _write(new_dir / "movie.mkv", 300)

    os.utime(old_dir, (100, 100))
    os.utime(mid_file, (200, 200))
    os.utime(new_dir, (300, 300))
    return tmp_path, old_dir, mid_file, new_dir


@pytest.mark.asyncio
async def test_enforce_quota_deletes_oldest_until_under_limit(populated_cache):
    root, old_dir, mid_file, new_dir = populated_cache

    deleted = await CacheManager(str(root), 700).enforce_quota()

    assert deleted == [str(old_dir)]
    assert not old_dir.exists()
    assert mid_file.exists()
    assert new_dir.exists()


@pytest.mark.asyncio
async def test_enforce_quota_keeps_deleting_in_age_order(populated_cache):
    root, old_dir, mid_file, new_dir = populated_cache

    deleted = await CacheManager(str(root), 300).enforce_quota()

    assert deleted == [str(old_dir), str(mid_file)]
    assert new_dir.exists()


@pytest.mark.asyncio
async def test_enforce_quota_under_limit_deletes_nothing(populated_cache):
    root, old_dir, mid_file, new_dir = populated_cache

    assert await CacheManager(str(root), 10_000).enforce_quota() == []
    assert old_dir.exists() and mid_file.exists() and new_dir.exists()


@pytest.mark.asyncio
async def test_enforce_quota_skips_entries_it_cannot_delete(mocker, populated_cache):
    root, old_dir, mid_file, new_dir = populated_cache
    from prismo.services import cache_manager

    real_delete = cache_manager._delete_entry

    def flaky_delete(path):
        if path == str(old_dir):
            raise PermissionError("in use")
        real_delete(path)

    mocker.patch.object(cache_manager, "_delete_entry", side_effect=flaky_delete)

    deleted = await CacheManager(str(root), 700).enforce_quota()

    # The failed entry is not credited, so the next oldest has to go instead.
    assert deleted == [str(mid_file)]
    assert old_dir.exists()
    assert new_dir.exists()


@pytest.mark.asyncio
async def test_clear_deletes_everything(populated_cache):
    root, *_ = populated_cache

    deleted = await CacheManager(str(root), 10_000).clear()

    assert len(deleted) == 3
    assert list(root.iterdir()) == []


@pytest.mark.asyncio
async def test_missing_directory_is_a_no_op(tmp_path):
    manager = CacheManager(str(tmp_path / "missing"), 0)

    assert await manager.enforce_quota() == []
    assert await manager.clear() == []
