import pytest

pytest.importorskip("libtorrent")

from prismo.app import PrismoApp  # noqa: E402
from prismo.services.cache_manager import CacheManager  # noqa: E402
from prismo.services.progress import ProgressChannel  # noqa: E402
from prismo.state import Settings  # noqa: E402


@pytest.fixture
def app(mocker, tmp_path):
    sessions = mocker.Mock()
    sessions.progress = ProgressChannel()
    sessions.start = mocker.AsyncMock(return_value="http://127.0.0.1:5000/0")
    sessions.stop = mocker.AsyncMock()
    sessions.stop_active = mocker.AsyncMock()
    sessions.clear_cache = mocker.AsyncMock(return_value=[])
    sessions.shutdown = mocker.AsyncMock()
    cache = CacheManager(str(tmp_path / "downloads"), 1024)
    return PrismoApp(
        sessions,
        cache,
        Settings(downloads_path=str(tmp_path / "downloads")),
        settings_path=str(tmp_path / "settings.json"),
    )


def test_update_bandwidth_limit_converts_kilobytes(app):
    app.update_bandwidth_limit(50)
    app.sessions.update_bandwidth_limit.assert_called_with(50 * 1024)

    app.update_bandwidth_limit(-3)
    app.sessions.update_bandwidth_limit.assert_called_with(0)


def test_apply_settings_updates_engine_and_quota(app, tmp_path):
    settings = app.apply_settings({"cacheLimitGB": 3, "uploadLimitKB": 8})

    assert settings.cache_limit_gb == 3
    assert app.cache.limit_bytes == 3 * 1024**3
    app.sessions.update_bandwidth_limit.assert_called_with(8 * 1024)
    assert (tmp_path / "settings.json").exists()


@pytest.mark.asyncio
async def test_stream_operations_delegate_to_session_manager(app):
    assert await app.start_stream("magnet:a", 2) == "http://127.0.0.1:5000/0"
    app.sessions.start.assert_awaited_once_with("magnet:a", 2)

    await app.stop_stream("magnet:a")
    await app.stop_active_stream()
    await app.clear_cache_now()
    await app.shutdown()

    app.sessions.stop.assert_awaited_once_with("magnet:a")
    app.sessions.stop_active.assert_awaited_once()
    app.sessions.clear_cache.assert_awaited_once()
    app.sessions.shutdown.assert_awaited_once()


@pytest.mark.asyncio
async def test_search_sources_uses_aggregator(app, mocker):
    ranked = mocker.patch(
        "prismo.services.search_logic.get_ranked_sources",
        mocker.AsyncMock(return_value=[]),
    )

    assert await app.search_sources("Dune", "tt1160419", "movie") == []
    ranked.assert_awaited_once_with("Dune", "tt1160419", "movie")


def test_progress_events_subscribe_per_identifier(app):
    subscription = app.progress_events("magnet:a")

    assert subscription.identifier == "magnet:a"


@pytest.mark.asyncio
async def test_list_subtitles_merges_backends(app, mocker):
    yify = mocker.patch(
        "prismo.services.subtitles.list_subtitles", mocker.AsyncMock(return_value=["y"])
    )
    opensubs = mocker.patch(
        "prismo.services.subtitles.list_opensubtitles",
        mocker.AsyncMock(return_value=["o"]),
    )

    assert await app.list_subtitles("tt1160419") == ["y", "o"]
    yify.assert_awaited_once()
    opensubs.assert_awaited_once_with("tt1160419", "", ("english",), None)
