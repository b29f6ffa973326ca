"""
변경 감지기 - 파일 시스템 알림을 ChangeEvent 스트림으로 변환.

- 경로 정규화: 감시 루트 기준 상대 POSIX 경로
- 스트림: 제한된 크기의 asyncio 큐, ``events()`` 로 소비
- 오버플로: 큐가 가득 차면 경로별로 병합 (최신 우선), 경고 로그, 유실 없음

파이프라인 매칭은 하지 않는다 (PipelineRegistry 담당).
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from pathlib import Path

from assetflow_engine.pipeline.domain.models import ChangeEvent, ChangeKind, utcnow
from assetflow_engine.pipeline.infrastructure.glob_matcher import normalize_path
from assetflow_shared.common.exceptions import WatchOverflowError
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


class ChangeDetector:
    """
    파일 시스템 이벤트 → ChangeEvent.

    ``on_fs_event`` 는 이벤트 루프 스레드에서 호출되어야 한다
    (watchdog 스레드에서는 ``loop.call_soon_threadsafe`` 사용).

    사용 예:
        detector = ChangeDetector(root=Path("."))
        detector.on_fs_event("app/scss/main.scss")
        async for event in detector.events():
            await scheduler.submit(event)
    """

    def __init__(self, root: Path, max_queue_size: int = 10000, poll_interval: float = 0.1):
        """
        Args:
            root: 감시 루트 (상대 경로 기준)
            max_queue_size: 스트림 최대 크기 (초과 시 병합)
            poll_interval: 종료 확인 주기 (초)
        """
        self.root = Path(root).resolve()
        self.max_queue_size = max_queue_size
        self.poll_interval = poll_interval

        self._queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max_queue_size)
        # 오버플로 버퍼: path → 최신 ChangeEvent
        self._overflow: dict[str, ChangeEvent] = {}
        self._closed = False

        self.received_count = 0
        self.overflow_count = 0

    def normalize(self, path: str | Path) -> str:
        """감시 루트 기준 상대 POSIX 경로 (루트 밖이면 절대 경로 유지)."""
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                return candidate.relative_to(self.root).as_posix()
            except ValueError:
                return candidate.as_posix()
        return normalize_path(str(path))

    def on_fs_event(
        self,
        path: str | Path,
        timestamp: datetime | None = None,
        kind: ChangeKind = ChangeKind.MODIFIED,
    ) -> ChangeEvent:
        """이벤트 생성 후 스트림에 추가."""
        event = ChangeEvent(path=self.normalize(path), timestamp=timestamp or utcnow(), kind=kind)
        self.received_count += 1

        try:
            self._push(event)
        except WatchOverflowError as e:
            if not self._overflow:
                logger.warning(
                    "watch_overflow",
                    capacity=e.capacity,
                    path=event.path,
                    action="coalescing",
                )
            self._overflow[event.path] = event
            self.overflow_count += 1

        return event

    def _push(self, event: ChangeEvent) -> None:
        # 오버플로 중에는 순서 유지를 위해 버퍼로 보냄
        if self._overflow:
            raise WatchOverflowError(self.max_queue_size)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull as e:
            raise WatchOverflowError(self.max_queue_size) from e

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """
        ChangeEvent 비동기 시퀀스.

        ``close()`` 까지 계속되며, ``open()`` 후 다시 호출하면 재시작된다.
        """
        while not self._closed:
            if self._queue.empty() and self._overflow:
                coalesced = list(self._overflow.values())
                self._overflow.clear()
                logger.info("watch_overflow_coalesced", events=len(coalesced))
                for event in coalesced:
                    yield event
                continue

            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue
            yield event

    def open(self) -> None:
        self._closed = False

    def close(self) -> None:
        self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_pending_count(self) -> int:
        """대기 중인 이벤트 개수 (병합 버퍼 포함)."""
        return self._queue.qsize() + len(self._overflow)

    def get_stats(self) -> dict:
        return {
            "root": str(self.root),
            "received": self.received_count,
            "overflowed": self.overflow_count,
            "pending": self.get_pending_count(),
            "closed": self._closed,
        }
