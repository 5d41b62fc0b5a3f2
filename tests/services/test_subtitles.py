import io
import zipfile

import pytest

from prismo.models import SubtitleItem
from prismo.services.subtitles import (
    PROVIDER_OPENSUBTITLES,
    PROVIDER_YIFY,
    decode_subtitle,
    download_subtitle,
    list_opensubtitles,
    list_subtitles,
    parse_listing_page,
    srt_to_vtt,
)
from tests._fakes import FakeAsyncClient, FakeResponse

SRT = "1\r\n00:00:01,500 --> 00:00:03,000\r\n{\\i1}Hello{\\i0} there\r\n"


def _row(lang, rating, release, href):
    return f"""
    <tr>
      <td class="rating-cell"><span class="label">{rating}</span></td>
      <td class="flag-cell"><span class="sub-lang">{lang}</span></td>
      <td><a href="{href}"><span class="text-muted">subtitle</span> {release}</a></td>
      <td class="download-cell"><a href="{href}" class="subtitle-download">download</a></td>
    </tr>"""


def _listing(rows):
    return f"<html><body><table><tbody>{''.join(rows)}</tbody></table></body></html>"


LISTING = _listing(
    [
        _row("English", 3, "Dune.2021.1080p.WEBRip.x264-RARBG", "/subtitles/dune-en-1"),
        _row("English", 9, "Dune.2021.720p.BluRay", "/subtitles/dune-en-2"),
        _row("Turkish", 5, "Dune.2021.1080p.WEBRip", "/subtitles/dune-tr-1"),
        _row("French", 7, "Dune.2021.1080p", "/subtitles/dune-fr-1"),
    ]
)


def _zip_with(name, data):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(name, data)
    return buffer.getvalue()


def test_srt_to_vtt_converts_timestamps_and_strips_tags():
    vtt = srt_to_vtt(SRT)

    assert vtt.startswith("WEBVTT\n\n")
    assert "00:00:01.500 --> 00:00:03.000" in vtt
    assert "Hello there" in vtt
    assert "\r" not in vtt


def test_decode_subtitle_falls_back_to_windows_code_pages():
    turkish = "Şişli çığ".encode("cp1254")
    assert decode_subtitle(turkish, "tr") == "Şişli çığ"
    assert decode_subtitle("café".encode("cp1252"), "en") == "café"
    assert decode_subtitle("ünïcode".encode("utf-8"), "tr") == "ünïcode"


def test_parse_listing_page_filters_languages():
    items = parse_listing_page(LISTING, "tt1160419", ["english", "turkish"])

    assert [(item.lang, item.rating) for item in items] == [
        ("en", 3),
        ("en", 9),
        ("tr", 5),
    ]
    assert items[0].url == "https://yifysubtitles.org/subtitles/dune-en-1"
    assert items[0].name.startswith("Dune.2021.1080p")
    assert len(items[0].name) <= 40
    assert items[0].provider == PROVIDER_YIFY


@pytest.mark.asyncio
async def test_list_subtitles_ranks_by_rating(mocker):
    mocker.patch(
        "httpx.AsyncClient", return_value=FakeAsyncClient(FakeResponse(text=LISTING))
    )

    items = await list_subtitles("tt1160419")

    assert [item.rating for item in items] == [9, 3]


@pytest.mark.asyncio
async def test_list_subtitles_prefers_matching_release(mocker):
    mocker.patch(
        "httpx.AsyncClient", return_value=FakeAsyncClient(FakeResponse(text=LISTING))
    )

    items = await list_subtitles(
        "tt1160419", release_name="Dune.2021.1080p.WEBRip.x264-RARBG"
    )

    assert items[0].url.endswith("dune-en-1")


@pytest.mark.asyncio
async def test_list_subtitles_keeps_five_per_language(mocker):
    rows = [_row("English", i, f"Release {i}", f"/subtitles/en-{i}") for i in range(8)]
    mocker.patch(
        "httpx.AsyncClient",
        return_value=FakeAsyncClient(FakeResponse(text=_listing(rows))),
    )

    items = await list_subtitles("tt1160419")

    assert [item.rating for item in items] == [7, 6, 5, 4, 3]


@pytest.mark.asyncio
async def test_list_subtitles_returns_empty_when_page_cannot_be_parsed(mocker):
    mocker.patch(
        "httpx.AsyncClient", return_value=FakeAsyncClient(FakeResponse(text=LISTING))
    )
    mocker.patch(
        "prismo.services.subtitles.parse_listing_page",
        side_effect=AttributeError("unexpected markup"),
    )

    assert await list_subtitles("tt1160419") == []


@pytest.mark.asyncio
async def test_download_subtitle_writes_vtt(mocker, tmp_path):
    detail = '<html><a class="btn-icon download-subtitle" href="/subtitle/dune.zip">Download</a></html>'
    fake = FakeAsyncClient(
        FakeResponse(text=detail),
        FakeResponse(content=_zip_with("Dune.srt", SRT.encode("utf-8"))),
    )
    mocker.patch("httpx.AsyncClient", return_value=fake)
    item = SubtitleItem(
        id="abc=",
        lang="en",
        name="Dune",
        url="https://yifysubtitles.org/subtitles/dune-en-1",
        rating=9,
        provider=PROVIDER_YIFY,
        imdb_id="tt1160419",
    )

    path = await download_subtitle(item, str(tmp_path))

    assert path == str(tmp_path / "tt1160419-abc.vtt")
    assert fake.calls[1]["url"] == "https://yifysubtitles.org/subtitle/dune.zip"
    with open(path, encoding="utf-8") as f:
        assert "00:00:01.500" in f.read()


@pytest.mark.asyncio
async def test_download_subtitle_without_srt_returns_none(mocker, tmp_path):
    fake = FakeAsyncClient(
        FakeResponse(text='<a href="/files/sub.zip">zip</a>'),
        FakeResponse(content=_zip_with("readme.txt", b"nothing")),
    )
    mocker.patch("httpx.AsyncClient", return_value=fake)
    item = SubtitleItem("x", "en", "Dune", "https://yifysubtitles.org/s/1", 1, PROVIDER_YIFY)

    assert await download_subtitle(item, str(tmp_path)) is None
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_opensubtitles_is_skipped_without_api_key(mocker):
    client_cls = mocker.patch("httpx.AsyncClient")

    assert await list_opensubtitles("tt1160419", api_key="") == []
    client_cls.assert_not_called()


@pytest.mark.asyncio
async def test_opensubtitles_listing_and_download(mocker, tmp_path):
    listing = {
        "data": [
            {
                "attributes": {
                    "language": "en",
                    "release": "Dune.2021.1080p.WEB",
                    "ratings": 8.5,
                    "files": [{"file_id": 4242, "file_name": "dune.srt"}],
                }
            },
            {"attributes": {"language": "en", "files": []}},
        ]
    }
    fake = FakeAsyncClient(FakeResponse(listing))
    mocker.patch("httpx.AsyncClient", return_value=fake)

    items = await list_opensubtitles("tt1160419", api_key="secret")

    assert fake.calls[0]["params"] == {"imdb_id": "1160419", "languages": "en"}
    assert fake.calls[0]["headers"]["Api-Key"] == "secret"
    assert len(items) == 1
    assert items[0].id == "4242"
    assert items[0].rating == 8
    assert items[0].provider == PROVIDER_OPENSUBTITLES

    download = FakeAsyncClient(
        FakeResponse({"link": "https://dl.opensubtitles.com/file/4242"}),
        FakeResponse(content=SRT.encode("utf-8")),
    )
    mocker.patch("httpx.AsyncClient", return_value=download)

    path = await download_subtitle(items[0], str(tmp_path), api_key="secret")

    assert download.calls[0]["method"] == "POST"
    assert download.calls[0]["json"] == {"file_id": 4242}
    assert path == str(tmp_path / "tt1160419-4242.vtt")
