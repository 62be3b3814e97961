from __future__ import annotations

from unittest.mock import Mock

import pytest
import requests

from draft_orchestrator.search import HttpSourceSearch, SearchServiceError, SourceRecord


def _session(body: object) -> Mock:
    session = Mock()
    response = Mock()
    response.json.return_value = body
    session.post.return_value = response
    return session


def test_search_parses_results_and_skips_malformed() -> None:
    session = _session(
        {
            "results": [
                {
                    "externalId": "pm-1",
                    "title": "Sleep spindles",
                    "authors": ["A. Author"],
                    "year": 2020,
                    "doi": "10.1/abc",
                    "source": "pubmed",
                },
                {"title": "No id"},
            ]
        }
    )
    client = HttpSourceSearch(base_url="http://search/", session=session)

    records = client.search("sleep")

    assert records == [
        SourceRecord(
            external_id="pm-1",
            title="Sleep spindles",
            authors=["A. Author"],
            year=2020,
            doi="10.1/abc",
        )
    ]
    assert session.post.call_args.args == ("http://search/api/search",)
    assert session.post.call_args.kwargs["json"] == {"query": "sleep", "page": 1}


def test_search_without_result_list_is_empty() -> None:
    client = HttpSourceSearch(base_url="http://search", session=_session({"error": "x"}))
    assert client.search("sleep") == []


def test_search_wraps_transport_errors() -> None:
    session = Mock()
    session.post.side_effect = requests.ConnectionError("refused")
    client = HttpSourceSearch(base_url="http://search", session=session)

    with pytest.raises(SearchServiceError):
        client.search("sleep")


def test_search_wraps_http_errors() -> None:
    session = _session({})
    session.post.return_value.raise_for_status.side_effect = requests.HTTPError("503")
    client = HttpSourceSearch(base_url="http://search", session=session)

    with pytest.raises(SearchServiceError):
        client.search("sleep")


def test_dedupe_key_prefers_doi() -> None:
    assert SourceRecord(external_id="x", title="t", doi=" 10.1/ABC ").dedupe_key() == "doi:10.1/abc"
    assert SourceRecord(external_id="x", title="t", doi="").dedupe_key() == "id:x"


def test_search_requires_base_url() -> None:
    with pytest.raises(ValueError):
        HttpSourceSearch(base_url="  ")
