import httpx
import pytest

from prismo.models import SourceProvider
from prismo.services.scrapers.yts import search_yts
from tests._fakes import FakeAsyncClient, FakeResponse


def _payload():
    return {
        "status": "ok",
        "data": {
            "movie_count": 1,
            "movies": [
                {
                    "title": "Dune",
                    "title_english": "Dune",
                    "year": 2021,
                    "imdb_code": "tt1160419",
                    "torrents": [
                        {
                            "hash": "1" * 40,
                            "quality": "1080p",
                            "type": "web",
                            "seeds": 500,
                            "peers": 40,
                            "size_bytes": 2 * 1024**3,
                        },
                        {
                            "hash": "2" * 40,
                            "quality": "2160p",
                            "type": "bluray",
                            "seeds": "120",
                            "peers": "x",
                            "size_bytes": 6 * 1024**3,
                        },
                    ],
                }
            ],
        },
    }


@pytest.mark.asyncio
async def test_search_yts_flattens_every_release_variant(mocker):
    fake = FakeAsyncClient(FakeResponse(_payload()))
    mocker.patch("httpx.AsyncClient", return_value=fake)

    results = await search_yts("Dune 2021")

    assert fake.calls[0]["params"]["query_term"] == "Dune"
    assert [c.name for c in results] == [
        "Dune 2021 1080p web YTS",
        "Dune 2021 2160p bluray YTS",
    ]
    assert all(c.source_provider is SourceProvider.YTS for c in results)
    assert results[0].seeders == 500
    assert results[0].leechers == 40
    assert results[1].seeders == 120
    assert results[1].leechers == 0
    assert results[1].imdb_id == "tt1160419"


@pytest.mark.asyncio
async def test_search_yts_prefers_imdb_id_as_query_term(mocker):
    fake = FakeAsyncClient(FakeResponse(_payload()))
    mocker.patch("httpx.AsyncClient", return_value=fake)

    await search_yts("Dune", imdb_id="tt1160419")

    assert fake.calls[0]["params"]["query_term"] == "tt1160419"


@pytest.mark.asyncio
async def test_search_yts_skips_series(mocker):
    client_cls = mocker.patch("httpx.AsyncClient")

    assert await search_yts("Breaking Bad", kind="series") == []
    client_cls.assert_not_called()


@pytest.mark.asyncio
async def test_search_yts_missing_movies_returns_empty(mocker):
    payload = {"status": "ok", "data": {"movie_count": 0}}
    mocker.patch("httpx.AsyncClient", return_value=FakeAsyncClient(FakeResponse(payload)))

    assert await search_yts("Nothing") == []


@pytest.mark.asyncio
async def test_search_yts_network_error_returns_empty(mocker):
    mocker.patch(
        "httpx.AsyncClient",
        return_value=FakeAsyncClient(error=httpx.ConnectError("refused")),
    )

    assert await search_yts("Dune") == []
