import pytest
import requests
import responses
from responses import matchers

from autoscaler.model import Server, ServerState, ServerStore
from autoscaler.slack import SlackNotifier, humanize_time

WEBHOOK = "https://hooks.slack.com/services/XXX/YYY/ZZZ"

CREATE_PAYLOAD = {
    "text": "Provisioned server instance this-is-a-test-message",
    "attachments": [
        {
            "color": "#00BFA5",
            "fields": [
                {"title": "Name", "value": "this-is-a-test-message", "short": False},
                {"title": "Size", "value": "s-1vcpu-1gb", "short": False},
                {"title": "Region", "value": "nyc1", "short": False},
            ],
        }
    ],
}

ERROR_PAYLOAD = {
    "text": "Problem with server instance this-is-a-test-message",
    "attachments": [
        {
            "color": "#F44336",
            "fields": [
                {"title": "Name", "value": "this-is-a-test-message", "short": False},
                {"title": "Error", "value": "pc load letter", "short": False},
            ],
        }
    ],
}


class RecordingStore(ServerStore):
    def __init__(self, fail=None):
        self.updated = []
        self.fail = fail

    def find(self, name):
        return Server(name=name)

    def list(self):
        return []

    def list_state(self, state):
        return []

    def create(self, server):
        pass

    def update(self, server):
        self.updated.append(server)
        if self.fail is not None:
            raise self.fail

    def delete(self, server):
        pass

    def purge(self, before):
        pass


def make_server(state, **extra):
    return Server(
        name="this-is-a-test-message",
        region="nyc1",
        size="s-1vcpu-1gb",
        state=state,
        **extra,
    )


def test_humanize_time():
    now = 1_700_000_000
    assert humanize_time(now - 60 * 60, now) == "1 hour"


def test_humanize_time_default_now():
    import time

    assert humanize_time(int(time.time()) - 60 * 60) == "1 hour"


def test_humanize_time_grows_with_distance():
    now = 1_700_000_000
    assert humanize_time(now - 3 * 60 * 60, now) == "3 hours"
    assert humanize_time(now, now) == "now"


def test_update_running():
    store = RecordingStore()
    server = make_server(ServerState.RUNNING)
    notifier = SlackNotifier(store, WEBHOOK, create=True)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            WEBHOOK,
            match=[matchers.json_params_matcher(CREATE_PAYLOAD)],
            status=200,
        )
        notifier.update(server)
        assert len(rsps.calls) == 1
    assert store.updated == [server]


def test_update_stopped():
    store = RecordingStore()
    server = make_server(ServerState.STOPPED)
    notifier = SlackNotifier(store, WEBHOOK, destroy=True)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, WEBHOOK, status=200)
        notifier.update(server)
        assert len(rsps.calls) == 1
        body = rsps.calls[0].request.body
    assert b"Terminated server instance this-is-a-test-message" in body
    assert b"Uptime" in body
    assert store.updated == [server]


def test_update_error():
    store = RecordingStore()
    server = make_server(ServerState.ERROR, error="pc load letter")
    notifier = SlackNotifier(store, WEBHOOK, error=True)
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.POST,
            WEBHOOK,
            match=[matchers.json_params_matcher(ERROR_PAYLOAD)],
            status=200,
        )
        notifier.update(server)
        assert len(rsps.calls) == 1


@pytest.mark.parametrize(
    "state",
    [ServerState.RUNNING, ServerState.STOPPED, ServerState.ERROR, ServerState.PENDING],
)
def test_no_notification_when_disabled(state):
    store = RecordingStore()
    server = make_server(state)
    notifier = SlackNotifier(store, WEBHOOK)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        rsps.add(responses.POST, WEBHOOK, status=200)
        notifier.update(server)
        assert len(rsps.calls) == 0
    assert store.updated == [server]


def test_store_error_propagates_and_still_notifies():
    store = RecordingStore(fail=RuntimeError("bad request"))
    server = make_server(ServerState.RUNNING)
    notifier = SlackNotifier(store, WEBHOOK, create=True)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, WEBHOOK, status=200)
        with pytest.raises(RuntimeError, match="bad request"):
            notifier.update(server)
        assert len(rsps.calls) == 1


def test_webhook_failure_is_not_raised():
    store = RecordingStore()
    server = make_server(ServerState.RUNNING)
    notifier = SlackNotifier(store, WEBHOOK, create=True)
    with responses.RequestsMock() as rsps:
        rsps.add(responses.POST, WEBHOOK, body=requests.ConnectionError("unreachable"))
        assert notifier.update(server) is None
    assert store.updated == [server]


def test_other_methods_delegate():
    store = RecordingStore()
    notifier = SlackNotifier(store, WEBHOOK)
    assert notifier.find("server1").name == "server1"
    assert notifier.list() == []
    assert notifier.list_state(ServerState.RUNNING) == []