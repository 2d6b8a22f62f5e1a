from unittest.mock import Mock, patch

import pytest
import requests

from catalog_sync.config import Config
from catalog_sync.core.client import TOKEN_TTL_SECONDS, CatalogClient
from catalog_sync.errors import CatalogTransportError


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


def _token(value="tok-1"):
    return _response(payload={"access_token": value})


SNAPSHOT = {
    "catalog_headers": [{"name": "Name"}, {"name": "Building"}],
    "items": [
        {"item_id": 1, "values": ["Library", "A"]},
        {"item_id": 2, "values": ["Hall 1", None], "deleted": True},
        {"item_id": 3, "values": [42]},
    ],
}


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# Session and URLs
def test_url_construction_strips_trailing_slash():
    config = Config(
        login="bot",
        security_key="key",
        api_url="https://api.example.com/v4/",
    )
    client = CatalogClient(config)
    assert client._url("catalogs/1") == "https://api.example.com/v4/catalogs/1"


def test_session_verifies_tls_by_default(mock_config):
    client = CatalogClient(mock_config)
    assert client.session.verify


def test_session_insecure():
    config = Config(login="bot", security_key="key", insecure=True)
    client = CatalogClient(config)
    assert not client.session.verify


def test_session_is_reused_within_thread(mock_config):
    client = CatalogClient(mock_config)
    assert client.session is client.session


# Authentication
@patch("catalog_sync.core.client.requests.Session.request")
def test_validate_connection_requests_token(mock_request, mock_config):
    mock_request.return_value = _token()

    client = CatalogClient(mock_config)
    assert client.validate_connection() == "https://api.example.com/v4"

    args, kwargs = mock_request.call_args
    assert args == ("POST", "https://accounts.example.com/api/v4/auth")
    assert kwargs["json"] == {
        "login": "bot@example.com",
        "security_key": "secret-key",
    }
    assert kwargs["timeout"] == 5.0


@patch("catalog_sync.core.client.requests.Session.request")
def test_authentication_rejected(mock_request, mock_config):
    mock_request.return_value = _response(status_code=403)

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError) as exc_info:
        client.validate_connection()

    assert exc_info.value.status_code == 403


@patch("catalog_sync.core.client.requests.Session.request")
def test_authentication_without_token(mock_request, mock_config):
    mock_request.return_value = _response(payload={"error": "nope"})

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="access_token"):
        client.validate_connection()


@patch("catalog_sync.core.client.requests.Session.request")
def test_token_is_cached_until_expiry(mock_request, mock_config):
    clock = FakeMonotonic()
    mock_request.side_effect = [
        _token("tok-1"),
        _response(payload={"items": []}),
        _response(payload={"items": []}),
        _token("tok-2"),
        _response(payload={"items": []}),
    ]
    client = CatalogClient(mock_config, clock=clock)

    client.fetch_snapshot("62235")
    client.fetch_snapshot("62235")
    clock.now += TOKEN_TTL_SECONDS + 1
    client.fetch_snapshot("62235")

    assert mock_request.call_count == 5
    last_headers = mock_request.call_args[1]["headers"]
    assert last_headers == {"Authorization": "Bearer tok-2"}


@patch("catalog_sync.core.client.requests.Session.request")
def test_unauthorized_triggers_one_reauth(mock_request, mock_config):
    mock_request.side_effect = [
        _token("tok-1"),
        _response(status_code=401),
        _token("tok-2"),
        _response(payload={"items": []}),
    ]
    client = CatalogClient(mock_config)

    assert client.fetch_snapshot("62235") == []
    assert mock_request.call_count == 4


@patch("catalog_sync.core.client.requests.Session.request")
def test_second_unauthorized_is_an_error(mock_request, mock_config):
    mock_request.side_effect = [
        _token("tok-1"),
        _response(status_code=401),
        _token("tok-2"),
        _response(status_code=401),
    ]
    client = CatalogClient(mock_config)

    with pytest.raises(CatalogTransportError) as exc_info:
        client.fetch_snapshot("62235")

    assert exc_info.value.status_code == 401


# Snapshots
@patch("catalog_sync.core.client.requests.Session.request")
def test_fetch_snapshot_success(mock_request, mock_config):
    mock_request.side_effect = [_token(), _response(payload=SNAPSHOT)]

    client = CatalogClient(mock_config)
    records = client.fetch_snapshot("62235")

    args = mock_request.call_args[0]
    assert args == ("GET", "https://api.example.com/v4/catalogs/62235")
    assert [r.external_id for r in records] == ["1", "2", "3"]
    assert records[0].values == ["Library", "A"]
    assert records[1].deleted
    assert records[1].values == ["Hall 1", ""]
    assert records[2].display_name == "42"


def test_fetch_snapshot_rejects_bad_catalog_id(mock_config):
    client = CatalogClient(mock_config)
    with pytest.raises(ValueError, match="must be numeric"):
        client.fetch_snapshot("rooms")


@patch("catalog_sync.core.client.requests.Session.request")
def test_fetch_snapshot_http_error(mock_request, mock_config):
    mock_request.side_effect = [
        _token(),
        _response(status_code=500, text="Internal error"),
    ]

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="HTTP 500") as exc_info:
        client.fetch_snapshot("62235")

    assert exc_info.value.status_code == 500


@patch("catalog_sync.core.client.requests.Session.request")
def test_fetch_snapshot_network_error(mock_request, mock_config):
    mock_request.side_effect = [
        _token(),
        requests.ConnectionError("connection refused"),
    ]

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="connection refused"):
        client.fetch_snapshot("62235")


@patch("catalog_sync.core.client.requests.Session.request")
def test_fetch_snapshot_invalid_json(mock_request, mock_config):
    mock_request.side_effect = [
        _token(),
        _response(payload=ValueError("not json")),
    ]

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="invalid JSON"):
        client.fetch_snapshot("62235")


@patch("catalog_sync.core.client.requests.Session.request")
def test_fetch_snapshot_without_items(mock_request, mock_config):
    mock_request.side_effect = [_token(), _response(payload={"id": 62235})]

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="no items list"):
        client.fetch_snapshot("62235")


# Writes
@patch("catalog_sync.core.client.requests.Session.request")
def test_create_item_pads_to_column_count(mock_request, mock_config):
    mock_request.side_effect = [
        _token(),
        _response(payload=SNAPSHOT),
        _response(payload={"items": [{"item_id": 77, "values": []}]}),
    ]
    client = CatalogClient(mock_config)
    client.fetch_snapshot("62235")

    item_id = client.create_item("62235", ["Kitchen"])

    assert item_id == "77"
    args, kwargs = mock_request.call_args
    assert args == ("POST", "https://api.example.com/v4/catalogs/62235/diff")
    assert kwargs["json"] == {"upsert": [{"values": ["Kitchen", ""]}]}


@patch("catalog_sync.core.client.requests.Session.request")
def test_create_item_without_returned_id(mock_request, mock_config):
    mock_request.side_effect = [_token(), _response(payload={"items": []})]

    client = CatalogClient(mock_config)
    with pytest.raises(CatalogTransportError, match="did not return"):
        client.create_item("62235", ["Kitchen"])


@patch("catalog_sync.core.client.requests.Session.request")
def test_update_item(mock_request, mock_config):
    mock_request.side_effect = [_token(), _response(payload={})]

    client = CatalogClient(mock_config)
    client.update_item("62235", "1", ["Library", "A"])

    args, kwargs = mock_request.call_args
    assert args == ("PUT", "https://api.example.com/v4/catalogs/62235/items/1")
    assert kwargs["json"] == {"values": ["Library", "A"]}
    assert kwargs["headers"] == {"Authorization": "Bearer tok-1"}
