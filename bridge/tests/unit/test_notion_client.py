from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from qc_bridge.infrastructure.external.notion.notion_client import NotionClient, NotionCredentials
from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor
from qc_bridge.shared.exceptions import SourceApiError


def _response(status_code: int, payload=None, text: str = ""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    resp.text = text
    return resp


def test_query_database_sends_body_and_headers() -> None:
    session = MagicMock()
    session.request.return_value = _response(200, {"results": [], "has_more": False})
    client = NotionClient(NotionCredentials(token="secret", version="2022-06-28"), session=session)

    payload = client.query_database(
        "db1", filter={"x": 1}, sorts=[{"timestamp": "last_edited_time"}], page_size=25, start_cursor="c2"
    )

    assert payload == {"results": [], "has_more": False}
    kwargs = session.request.call_args.kwargs
    assert kwargs["method"] == "POST"
    assert kwargs["url"] == "https://api.notion.com/v1/databases/db1/query"
    assert kwargs["json"] == {
        "page_size": 25,
        "filter": {"x": 1},
        "sorts": [{"timestamp": "last_edited_time"}],
        "start_cursor": "c2",
    }
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["headers"]["Notion-Version"] == "2022-06-28"


def test_error_status_raises_source_api_error_with_code() -> None:
    session = MagicMock()
    session.request.return_value = _response(429, {"message": "Rate limited"}, text="{}")
    client = NotionClient(NotionCredentials(token="secret"), session=session)

    with pytest.raises(SourceApiError) as excinfo:
        client.update_page("page-1", {"Linked ✅": {"checkbox": True}})

    assert excinfo.value.status_code == 429
    assert "Rate limited" in excinfo.value.message


def test_calls_are_counted_in_monitor() -> None:
    session = MagicMock()
    session.request.return_value = _response(200, {"id": "new"})
    monitor = HealthMonitor()
    client = NotionClient(NotionCredentials(token="secret"), session=session, monitor=monitor)

    client.create_page("alerts-db", {"Title": {}})
    client.create_page("alerts-db", {"Title": {}})

    assert monitor.metrics["notion_api_calls"] == 2
    body = session.request.call_args.kwargs["json"]
    assert body["parent"] == {"database_id": "alerts-db"}
