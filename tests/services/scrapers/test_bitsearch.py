import pytest

from prismo.models import SourceProvider
from prismo.services.scrapers.bitsearch import parse_results_page, search_bitsearch
from tests._fakes import FakeAsyncClient, FakeResponse

HASH_A = "e" * 40
HASH_B = "f" * 40

RESULTS_HTML = f"""
<html><body><ul>
  <li class="search-result">
    <div class="info">
      <h5 class="title"><a href="/torrent/1">[Bitsearch.to] Arrival 2016 1080p BluRay x265</a></h5>
      <div class="category">Movies</div>
      <div class="stats">
        <div>1.8 GB</div>
        <div><font color="#0ab49a">1,204</font></div>
        <div><font color="#C35257">57</font></div>
      </div>
    </div>
    <div class="links">
      <a href="magnet:?xt=urn:btih:{HASH_A.upper()}&dn=Arrival">Magnet</a>
    </div>
  </li>
  <li class="search-result">
    <div class="info">
      <div class="stats"><div>700 MB</div></div>
    </div>
    <a href="magnet:?xt=urn:btih:{HASH_B}&dn=%5BBitsearch.to%5D%20Arrival%20720p">Magnet</a>
  </li>
  <li class="search-result">
    <h5 class="title"><a href="/torrent/3">Duplicate of the first</a></h5>
    <a href="magnet:?xt=urn:btih:{HASH_A}&dn=dup">Magnet</a>
  </li>
  <li class="search-result">
    <h5 class="title"><a href="/torrent/4">No magnet at all</a></h5>
  </li>
</ul></body></html>
"""


def test_parse_results_page_reads_cards():
    results = parse_results_page(RESULTS_HTML)

    assert [c.info_hash for c in results] == [HASH_A, HASH_B]

    first = results[0]
    assert first.name == "Arrival 2016 1080p BluRay x265"
    assert first.source_provider is SourceProvider.BITSEARCH
    assert first.seeders == 1204
    assert first.leechers == 57
    assert first.size_bytes == int(1.8 * 1024**3)
    assert first.category == "Movies"
    assert first.magnet_uri.startswith(f"magnet:?xt=urn:btih:{HASH_A.upper()}&dn=Arrival&tr=")

    second = results[1]
    assert second.name == "Arrival 720p"
    assert second.seeders == 0
    assert second.size_bytes == 700 * 1024**2


@pytest.mark.asyncio
async def test_search_bitsearch_fetches_and_parses(mocker):
    fake = FakeAsyncClient(FakeResponse(text=RESULTS_HTML))
    mocker.patch("httpx.AsyncClient", return_value=fake)

    results = await search_bitsearch("Arrival")

    assert fake.calls[0]["url"] == "https://bitsearch.to/search"
    assert fake.calls[0]["params"]["q"] == "Arrival"
    assert len(results) == 2


@pytest.mark.asyncio
async def test_search_bitsearch_http_error_returns_empty(mocker):
    mocker.patch(
        "httpx.AsyncClient",
        return_value=FakeAsyncClient(FakeResponse(status_code=403)),
    )

    assert await search_bitsearch("Arrival") == []
