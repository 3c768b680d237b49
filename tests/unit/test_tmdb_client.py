"""Tests for the TMDb API client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from cineingest.services.tmdb_client import TMDbClient


# ---------------------------------------------------------------------------
# Sample fixture data
# ---------------------------------------------------------------------------

SAMPLE_SEARCH_RESPONSE = {
    "results": [
        {
            "id": 12345,
            "title": "Nosferatu",
            "release_date": "2024-12-25",
            "overview": "A horror film.",
            "poster_path": "/nosferatu.jpg",
        },
        {"id": 653, "title": "Nosferatu", "release_date": "1922-02-16"},
    ]
}

SAMPLE_DETAILS_RESPONSE = {
    "id": 12345,
    "title": "Nosferatu",
    "release_date": "2024-12-25",
    "runtime": 132,
    "genres": [{"id": 27, "name": "Horror"}, {"id": 14, "name": "Fantasy"}],
    "production_countries": [
        {"name": "United States of America"},
        {"name": "Germany"},
    ],
    "credits": {
        "crew": [
            {"id": 138781, "name": "Robert Eggers", "job": "Director"},
            {"id": 2, "name": "John Smith", "job": "Producer"},
        ],
    },
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_http_response(json_data: dict, status_code: int = 200) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"HTTP {status_code}", request=MagicMock(), response=response
        )
    else:
        response.raise_for_status = MagicMock()
    return response


def make_async_client_ctx(response: MagicMock | None = None, error: Exception | None = None) -> AsyncMock:
    """Return an async context manager whose .get() returns *response* or raises *error*."""
    inner = AsyncMock()
    inner.get = AsyncMock(return_value=response, side_effect=error)
    ctx = AsyncMock()
    ctx.__aenter__ = AsyncMock(return_value=inner)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


# ---------------------------------------------------------------------------
# search_films
# ---------------------------------------------------------------------------


class TestSearchFilms:
    async def test_returns_empty_without_api_key(self) -> None:
        client = TMDbClient(api_key="dummy")
        client.api_key = ""
        assert await client.search_films("Nosferatu") == []

    async def test_returns_all_results_in_order(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_SEARCH_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            results = await client.search_films("Nosferatu")
        assert [r["id"] for r in results] == [12345, 653]

    async def test_includes_year_in_params_when_provided(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_SEARCH_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            await client.search_films("Nosferatu", year=2024)
        params = ctx.__aenter__.return_value.get.call_args.kwargs["params"]
        assert params["year"] == 2024
        assert params["language"] == "en-GB"

    async def test_does_not_include_year_when_not_provided(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_SEARCH_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            await client.search_films("Nosferatu")
        params = ctx.__aenter__.return_value.get.call_args.kwargs["params"]
        assert "year" not in params

    async def test_repeated_search_is_cached(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_SEARCH_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            await client.search_films("Nosferatu")
            await client.search_films("NOSFERATU")
        assert ctx.__aenter__.return_value.get.await_count == 1

    async def test_returns_empty_on_http_error(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response({}, status_code=500))
        with patch("httpx.AsyncClient", return_value=ctx):
            assert await client.search_films("Nosferatu") == []

    async def test_returns_empty_on_network_error(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(error=httpx.ConnectError("Connection refused"))
        with patch("httpx.AsyncClient", return_value=ctx):
            assert await client.search_films("Nosferatu") == []


# ---------------------------------------------------------------------------
# get_film_details / get_person_details
# ---------------------------------------------------------------------------


class TestGetFilmDetails:
    async def test_returns_film_details_on_success(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_DETAILS_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            result = await client.get_film_details(12345)
        assert result is not None
        assert result["runtime"] == 132
        params = ctx.__aenter__.return_value.get.call_args.kwargs["params"]
        assert params["append_to_response"] == "credits"

    async def test_calls_correct_endpoint(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response(SAMPLE_DETAILS_RESPONSE))
        with patch("httpx.AsyncClient", return_value=ctx):
            await client.get_film_details(99)
        url = ctx.__aenter__.return_value.get.call_args.args[0]
        assert url.endswith("/movie/99")

    async def test_returns_none_on_http_error(self) -> None:
        client = TMDbClient(api_key="test-key")
        ctx = make_async_client_ctx(make_http_response({}, status_code=404))
        with patch("httpx.AsyncClient", return_value=ctx):
            assert await client.get_film_details(99999) is None

    async def test_person_details(self) -> None:
        client = TMDbClient(api_key="test-key")
        person = {"id": 8452, "name": "Andrei Tarkovsky", "also_known_as": ["Andrey Tarkovskiy"]}
        ctx = make_async_client_ctx(make_http_response(person))
        with patch("httpx.AsyncClient", return_value=ctx):
            result = await client.get_person_details(8452)
            await client.get_person_details(8452)
        assert result == person
        assert ctx.__aenter__.return_value.get.await_count == 1


# ---------------------------------------------------------------------------
# Extraction helpers
# ---------------------------------------------------------------------------


class TestExtractors:
    def test_extracts_director_names(self) -> None:
        client = TMDbClient(api_key="key")
        assert client.extract_directors(SAMPLE_DETAILS_RESPONSE["credits"]) == ["Robert Eggers"]

    def test_returns_empty_list_when_crew_missing(self) -> None:
        assert TMDbClient(api_key="key").extract_directors({}) == []

    def test_extracts_country_names(self) -> None:
        client = TMDbClient(api_key="key")
        assert client.extract_countries(SAMPLE_DETAILS_RESPONSE) == [
            "United States of America",
            "Germany",
        ]

    def test_extracts_genres(self) -> None:
        client = TMDbClient(api_key="key")
        assert client.extract_genres(SAMPLE_DETAILS_RESPONSE) == ["Horror", "Fantasy"]

    def test_image_url(self) -> None:
        client = TMDbClient(api_key="key")
        assert client.image_url("/x.jpg") == "https://image.tmdb.org/t/p/w500/x.jpg"
        assert client.image_url(None) is None
