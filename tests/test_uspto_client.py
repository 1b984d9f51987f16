"""Tests for the USPTO trademark search client."""

import json
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from ip_tracker.api.uspto_client import TrademarkSearchClient, remove_duplicates


FIXTURES_DIR = Path(__file__).parent / "fixtures"


def load_fixture(name: str) -> dict:
    with open(FIXTURES_DIR / name) as f:
        return json.load(f)


def make_response(status_code: int = 200, payload: dict | None = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.raise_for_status.return_value = None
    return response


def make_client(mock_session_cls, *responses, **kwargs) -> tuple[TrademarkSearchClient, MagicMock]:
    mock_session = MagicMock()
    mock_session_cls.return_value = mock_session
    if len(responses) == 1:
        mock_session.request.return_value = responses[0]
    else:
        mock_session.request.side_effect = list(responses)
    client = TrademarkSearchClient(api_key="test-key", rate_limit=1000, **kwargs)
    client.session = mock_session
    return client, mock_session


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_search_trademarks(mock_session_cls):
    client, _ = make_client(mock_session_cls, make_response(payload=load_fixture("sample_trademark_search.json")))

    results = client.search_trademarks("Innovatr")

    # The document without a serial number is dropped
    assert len(results) == 3
    first = results[0]
    assert first["serialNumber"] == "97123456"
    assert first["markDescription"] == "INNOVATR TECH"
    assert first["applicantName"] == "Tech Solutions LLC"
    assert first["applicationDate"] == date(2026, 2, 20)
    assert first["registrationNumber"] is None
    assert first["status"] == "630"
    assert results[1]["registrationDate"] == date(2026, 1, 10)


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_search_request_params(mock_session_cls):
    client, mock_session = make_client(mock_session_cls, make_response(payload={}))

    client.search_trademarks("Innovatr", rows=20, sort="applicationDate desc")

    call_args = mock_session.request.call_args
    assert call_args.args[0] == "GET"
    assert call_args.args[1] == "https://tmsearch.uspto.gov/search/v1.0/trademark/search"
    params = call_args.kwargs["params"]
    assert params["q"] == "Innovatr"
    assert params["rows"] == 20
    assert params["sort"] == "applicationDate desc"


def test_api_key_header():
    client = TrademarkSearchClient(api_key="secret-key")
    assert client.session.headers["USPTO-API-KEY"] == "secret-key"

    anonymous = TrademarkSearchClient()
    assert "USPTO-API-KEY" not in anonymous.session.headers


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_404_returns_empty(mock_session_cls):
    client, _ = make_client(mock_session_cls, make_response(status_code=404))
    assert client.search_trademarks("Nothing") == []


@patch("ip_tracker.api.uspto_client.time.sleep")
@patch("ip_tracker.api.uspto_client.requests.Session")
def test_429_is_retried(mock_session_cls, mock_sleep):
    fixture = load_fixture("sample_trademark_search.json")
    client, mock_session = make_client(
        mock_session_cls,
        make_response(status_code=429),
        make_response(payload=fixture),
    )

    results = client.search_trademarks("Innovatr")

    assert len(results) == 3
    assert mock_session.request.call_count == 2
    mock_sleep.assert_any_call(10)


@patch("ip_tracker.api.uspto_client.time.sleep")
@patch("ip_tracker.api.uspto_client.requests.Session")
def test_server_error_retried_then_raised(mock_session_cls, mock_sleep):
    response = make_response(status_code=500)
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
    client, mock_session = make_client(mock_session_cls, response, max_retries=2)

    with pytest.raises(requests.exceptions.HTTPError):
        client.search_trademarks("Innovatr")

    assert mock_session.request.call_count == 2


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_monitor_new_applications_filters_by_date(mock_session_cls):
    client, _ = make_client(mock_session_cls, make_response(payload=load_fixture("sample_trademark_search.json")))

    apps = client.monitor_new_applications(["Innovatr", "InnovatR"], since=date(2026, 2, 1))

    # Same filing returned for both keywords is reported once
    assert [a["serialNumber"] for a in apps] == ["97123456"]


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_find_similar_trademarks(mock_session_cls):
    client, mock_session = make_client(
        mock_session_cls, make_response(payload=load_fixture("sample_trademark_search.json")),
    )

    similar = client.find_similar_trademarks("Innovatr", include_variations=False)

    # Exact copy and the 67%-similar "INNOVATR TECH" are excluded
    assert [s["serialNumber"] for s in similar] == ["97654321"]
    assert similar[0]["similarity"] == pytest.approx(8 / 9)
    assert mock_session.request.call_count == 1


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_find_similar_trademarks_searches_variations(mock_session_cls):
    client, mock_session = make_client(
        mock_session_cls, make_response(payload=load_fixture("sample_trademark_search.json")),
    )

    similar = client.find_similar_trademarks("Innovatr Tech", include_variations=True, threshold=0.5)

    assert mock_session.request.call_count > 1
    serials = [s["serialNumber"] for s in similar]
    assert len(serials) == len(set(serials))


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_get_trademark_details(mock_session_cls):
    client, mock_session = make_client(mock_session_cls, make_response(payload=load_fixture("sample_case_status.json")))

    details = client.get_trademark_details("97123456")

    assert details["serialNumber"] == "97123456"
    assert details["status"] == "641"
    assert details["applicantName"] == "Tech Solutions LLC"
    assert mock_session.request.call_args.args[1] == "https://tsdrapi.uspto.gov/ts/cd/casestatus/sn97123456/info"


@patch("ip_tracker.api.uspto_client.requests.Session")
def test_check_status_changes(mock_session_cls):
    client, _ = make_client(mock_session_cls, make_response(payload=load_fixture("sample_case_status.json")))

    changes = client.check_status_changes([
        {"serialNumber": "97123456", "lastKnownStatus": "630"},
    ])
    unchanged = client.check_status_changes([
        {"serialNumber": "97123456", "lastKnownStatus": "641"},
    ])

    assert len(changes) == 1
    assert changes[0]["previousStatus"] == "630"
    assert changes[0]["status"] == "641"
    assert unchanged == []


def test_remove_duplicates():
    records = [{"serialNumber": "1", "n": 1}, {"serialNumber": "2"}, {"serialNumber": "1", "n": 2}]
    assert remove_duplicates(records, "serialNumber") == [{"serialNumber": "1", "n": 1}, {"serialNumber": "2"}]
