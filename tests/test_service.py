import pytest
import requests

from flow_app.core.api_client import ItemsAPI
from flow_app.core.service import FlowService


class DummyAPI(ItemsAPI):
    def __init__(self):
        self.server = "http://backend.local"
        self.cleared = 0

    def clear_cache(self):
        self.cleared += 1

    def fetch_items(self, days=None):
        # Return minimal fake work items
        return [
            {
                "workItemId": 1,
                "title": "Test",
                "state": "Done",
                "type": "Task",
                "areaPath": "Loja\\Squad A",
                "createdDate": "2024-01-01T12:00:00Z",
                "closedDate": "2024-01-06T12:00:00Z",
                "stateHistory": [
                    {"changedDate": "2024-01-03T12:00:00Z", "from": "New", "to": "Active"},
                    {"changedDate": "2024-01-06T12:00:00Z", "from": "Active", "to": "Done"},
                ],
            },
            {
                "workItemId": 2,
                "title": "Still open",
                "state": "Active",
                "type": "Bug",
                "createdDate": "2024-01-04T12:00:00Z",
                "timeInStatusDays": {"Active": 1.5},
            },
        ]

    def sync_status(self):
        return {"status": "idle", "lastSync": "2024-01-06T12:00:00Z"}


class FailingAPI(DummyAPI):
    def fetch_items(self, days=None):
        raise RuntimeError("backend down")

    def sync_status(self):
        raise RuntimeError("backend down")


def test_refresh_maps_and_enriches():
    api = DummyAPI()
    svc = FlowService(api)
    snapshot = svc.refresh()
    assert api.cleared == 1
    assert snapshot.size == 2
    assert svc.snapshot() is snapshot
    df = svc.frame()
    done = df[df["work_item_id"] == 1].iloc[0]
    assert done["team"] == "Squad A"
    assert done["cycle_time"] == 5
    assert done["time_in_status_days"] == {"New": 2.0, "Active": 3.0}
    still_open = df[df["work_item_id"] == 2].iloc[0]
    assert still_open["time_in_status_days"] == {"Active": 1.5}
    assert svc.last_error is None


def test_refresh_reports_progress():
    events = []
    FlowService(DummyAPI()).refresh(progress=lambda msg, cur, tot: events.append((msg, cur, tot)))
    assert events[0] == ("Fetching work items", None, None)
    assert events[-1][1:] == (2, 2)


def test_failed_refresh_keeps_previous_snapshot():
    svc = FlowService(DummyAPI())
    first = svc.refresh()
    svc.api = FailingAPI()
    assert svc.refresh() is first
    assert svc.last_error == "backend down"
    assert svc.sync_status() is None


def test_load_raw_publishes_uploaded_items():
    svc = FlowService(DummyAPI())
    snapshot = svc.load_raw(DummyAPI().fetch_items(), source="upload")
    assert snapshot.source == "upload"
    assert snapshot.meta == {"raw_count": 2}
    assert svc.store.version == 1


class _Response:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


class _Session:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append(url)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_items_api_caches_and_unwraps():
    session = _Session([_Response(200, {"items": [{"workItemId": 1}]})])
    api = ItemsAPI("http://backend.local/", session=session)
    assert api.fetch_items(days=30) == [{"workItemId": 1}]
    assert api.fetch_items(days=30) == [{"workItemId": 1}]
    assert session.calls == ["http://backend.local/api/items/period/30"]
    api.clear_cache()
    assert api._cache == {}


def test_items_api_errors_become_runtime_errors():
    api = ItemsAPI("http://backend.local", session=_Session([_Response(500, "boom")]))
    with pytest.raises(RuntimeError, match="500"):
        api.fetch_items()
    api = ItemsAPI("http://backend.local", session=_Session([requests.ConnectionError("refused")]))
    with pytest.raises(RuntimeError, match="refused"):
        api.fetch_items()
    api = ItemsAPI("http://backend.local", session=_Session([requests.ConnectionError("refused")]))
    assert api.health() is False


class _HtmlResponse(_Response):
    def __init__(self):
        super().__init__(200, "<html>Sign in</html>")

    def json(self):
        raise requests.JSONDecodeError("Expecting value", self.text, 0)


def test_non_json_reply_keeps_previous_snapshot():
    svc = FlowService(DummyAPI())
    first = svc.refresh()
    svc.api = ItemsAPI("http://backend.local", session=_Session([_HtmlResponse()]))
    assert svc.refresh() is first
    assert "non-JSON" in svc.last_error
    assert "Sign in" in svc.last_error
