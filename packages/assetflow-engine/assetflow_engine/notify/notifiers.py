"""Run result notifiers."""

from collections.abc import Sequence
from pathlib import PurePosixPath

from assetflow_engine.devserver.hub import ReloadHub
from assetflow_engine.pipeline.domain.models import RunState
from assetflow_engine.pipeline.domain.ports import NotifierPort
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)

STYLESHEET_SUFFIXES = (".css",)


class LoggingNotifier:
    """Logs every run result."""

    async def on_run_result(
        self,
        name: str,
        state: RunState,
        error: str | None = None,
        *,
        outputs: Sequence[str] = (),
    ) -> None:
        if state is RunState.SUCCEEDED:
            logger.info("run_result", pipeline=name, state=state.value, outputs=len(outputs))
        else:
            logger.error("run_result", pipeline=name, state=state.value, error=error)


class ReloadNotifier:
    """
    Pushes run results to browsers through the reload hub.

    Stylesheet-only results are injected without a page reload; any other
    success reloads; failures and skips show the error message.

    ``strip_prefix`` maps output paths (relative to the project root) to URL
    paths (relative to the served directory).
    """

    def __init__(self, hub: ReloadHub, strip_prefix: str | None = None):
        self.hub = hub
        self.strip_prefix = strip_prefix

    def _url_path(self, output: str) -> str:
        path = PurePosixPath(output)
        if self.strip_prefix:
            try:
                path = path.relative_to(self.strip_prefix)
            except ValueError:
                pass
        return path.as_posix()

    async def on_run_result(
        self,
        name: str,
        state: RunState,
        error: str | None = None,
        *,
        outputs: Sequence[str] = (),
    ) -> None:
        if state is not RunState.SUCCEEDED:
            await self.hub.error(name, error or state.value)
            return

        visible = [output for output in outputs if not output.endswith(".map")]
        if visible and all(output.endswith(STYLESHEET_SUFFIXES) for output in visible):
            for output in visible:
                await self.hub.inject("css", self._url_path(output))
        else:
            await self.hub.reload()


class CompositeNotifier:
    """Fans a result out to several notifiers; one failing does not stop the rest."""

    def __init__(self, notifiers: Sequence[NotifierPort]):
        self.notifiers = list(notifiers)

    async def on_run_result(
        self,
        name: str,
        state: RunState,
        error: str | None = None,
        *,
        outputs: Sequence[str] = (),
    ) -> None:
        for notifier in self.notifiers:
            try:
                await notifier.on_run_result(name, state, error, outputs=outputs)
            except Exception:
                logger.exception("notifier_failed", notifier=type(notifier).__name__, pipeline=name)
