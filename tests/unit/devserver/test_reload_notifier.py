"""ReloadHub fan-out and run-result notifiers."""

import pytest

from assetflow_engine.devserver.hub import ReloadHub
from assetflow_engine.notify import CompositeNotifier, LoggingNotifier, ReloadNotifier
from assetflow_engine.pipeline.domain.models import RunState


class FakeClient:
    def __init__(self, broken=False):
        self.messages = []
        self.broken = broken

    async def send_json(self, data):
        if self.broken:
            raise ConnectionError("socket closed")
        self.messages.append(data)


@pytest.fixture
def hub():
    return ReloadHub()


@pytest.fixture
def client(hub):
    client = FakeClient()
    hub.connect(client)
    return client


class TestReloadHub:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self, hub, client):
        other = FakeClient()
        hub.connect(other)

        delivered = await hub.reload()

        assert delivered == 2
        assert client.messages == [{"type": "reload"}]
        assert other.messages == [{"type": "reload"}]

    @pytest.mark.asyncio
    async def test_failing_client_is_dropped(self, hub, client):
        hub.connect(FakeClient(broken=True))

        assert await hub.inject("css", "css/style.min.css") == 1
        assert hub.client_count == 1
        assert client.messages == [{"type": "inject", "kind": "css", "path": "css/style.min.css"}]

    @pytest.mark.asyncio
    async def test_disconnect(self, hub, client):
        hub.disconnect(client)
        hub.disconnect(client)

        assert await hub.error("scripts", "boom") == 0
        assert client.messages == []


class TestReloadNotifier:
    @pytest.mark.asyncio
    async def test_stylesheets_are_injected(self, hub, client):
        notifier = ReloadNotifier(hub, strip_prefix="app")

        await notifier.on_run_result(
            "styles",
            RunState.SUCCEEDED,
            outputs=("app/css/style.min.css", "app/css/style.min.css.map"),
        )

        assert client.messages == [{"type": "inject", "kind": "css", "path": "css/style.min.css"}]

    @pytest.mark.asyncio
    async def test_other_outputs_reload(self, hub, client):
        notifier = ReloadNotifier(hub, strip_prefix="app")

        await notifier.on_run_result("pages", RunState.SUCCEEDED, outputs=("app/index.html", "app/css/x.css"))
        await notifier.on_run_result("images", RunState.SUCCEEDED, outputs=())

        assert client.messages == [{"type": "reload"}, {"type": "reload"}]

    @pytest.mark.asyncio
    async def test_failures_and_skips_show_error(self, hub, client):
        notifier = ReloadNotifier(hub)

        await notifier.on_run_result("styles", RunState.FAILED, "Undefined variable")
        await notifier.on_run_result("dist", RunState.SKIPPED, "skipped: dependency 'styles' failed")

        assert client.messages == [
            {"type": "error", "pipeline": "styles", "message": "Undefined variable"},
            {"type": "error", "pipeline": "dist", "message": "skipped: dependency 'styles' failed"},
        ]

    @pytest.mark.asyncio
    async def test_outputs_outside_prefix_keep_their_path(self, hub, client):
        notifier = ReloadNotifier(hub, strip_prefix="app")

        await notifier.on_run_result("styles", RunState.SUCCEEDED, outputs=("public/site.css",))

        assert client.messages == [{"type": "inject", "kind": "css", "path": "public/site.css"}]


class TestCompositeNotifier:
    @pytest.mark.asyncio
    async def test_one_failing_notifier_does_not_stop_the_rest(self, notifier):
        class Broken:
            async def on_run_result(self, name, state, error=None, *, outputs=()):
                raise RuntimeError("down")

        composite = CompositeNotifier([Broken(), LoggingNotifier(), notifier])

        await composite.on_run_result("scripts", RunState.SUCCEEDED, outputs=("app/js/main.min.js",))

        assert notifier.results == [("scripts", RunState.SUCCEEDED, None, ("app/js/main.min.js",))]
