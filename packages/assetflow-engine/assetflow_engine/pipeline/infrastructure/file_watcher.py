"""
파일 감시자 - Watchdog 기반 실시간 파일 시스템 모니터링.

소스 파일이 바뀌면 ChangeDetector 로 이벤트를 전달하고,
스케줄러가 해당 파이프라인을 다시 실행한다.
"""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from assetflow_engine.pipeline.domain.models import ChangeKind
from assetflow_engine.pipeline.infrastructure.change_detector import ChangeDetector
from assetflow_engine.pipeline.infrastructure.glob_matcher import glob_match
from assetflow_shared.infra.observability import get_logger

logger = get_logger(__name__)


DEFAULT_EXCLUDE_PATTERNS = [
    ".git/**",
    "**/.git/**",
    "node_modules/**",
    "**/node_modules/**",
    "dist/**",
    "**/*.swp",
    "**/*~",
    "**/.DS_Store",
]


class AssetEventHandler(FileSystemEventHandler):
    """
    Watchdog 이벤트 핸들러.

    디렉토리 이벤트와 제외 패턴을 걸러내고 ChangeDetector 로 전달한다.
    """

    def __init__(
        self,
        root: Path,
        detector: ChangeDetector,
        loop: asyncio.AbstractEventLoop,
        exclude_patterns: list[str] | None = None,
    ):
        super().__init__()
        self.root = root
        self.detector = detector
        self.exclude_patterns = DEFAULT_EXCLUDE_PATTERNS if exclude_patterns is None else exclude_patterns
        self._loop = loop

    def _should_ignore(self, path: str) -> bool:
        rel_path = self.detector.normalize(path)
        return any(glob_match(pattern, rel_path) for pattern in self.exclude_patterns)

    def _push_event(self, path: str, kind: ChangeKind) -> None:
        """이벤트를 감지기에 전달 (스레드 안전)."""
        if self._should_ignore(path):
            return
        timestamp = datetime.now(timezone.utc)
        # watchdog 은 별도 스레드에서 실행됨
        self._loop.call_soon_threadsafe(self.detector.on_fs_event, path, timestamp, kind)

    def on_created(self, event: FileSystemEvent):
        if isinstance(event, DirCreatedEvent):
            return
        logger.debug("file_created", path=event.src_path)
        self._push_event(event.src_path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent):
        if isinstance(event, DirModifiedEvent):
            return
        logger.debug("file_modified", path=event.src_path)
        self._push_event(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent):
        if isinstance(event, DirDeletedEvent):
            return
        logger.debug("file_deleted", path=event.src_path)
        self._push_event(event.src_path, ChangeKind.DELETED)

    def on_moved(self, event: FileSystemEvent):
        # 이동 = 원본 삭제 + 대상 생성
        if isinstance(event, DirMovedEvent):
            return
        logger.debug("file_moved", src=event.src_path, dest=event.dest_path)
        self._push_event(event.src_path, ChangeKind.DELETED)
        self._push_event(event.dest_path, ChangeKind.CREATED)


class FileWatcher:
    """
    Watchdog 기반 파일 감시자.

    사용 예:
        detector = ChangeDetector(root)
        watcher = FileWatcher(root, detector)
        await watcher.start()
        await scheduler.consume(detector.events())
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        root: Path,
        detector: ChangeDetector,
        exclude_patterns: list[str] | None = None,
        recursive: bool = True,
    ):
        self.root = Path(root).resolve()
        self.detector = detector
        self.exclude_patterns = exclude_patterns
        self.recursive = recursive

        self._observer: Observer | None = None
        self._is_running = False

    async def start(self) -> None:
        """파일 감시 시작."""
        if self._is_running:
            logger.warning("file_watcher_already_running", root=str(self.root))
            return

        if not self.root.exists():
            raise ValueError(f"Watch root does not exist: {self.root}")

        self.detector.open()
        handler = AssetEventHandler(
            root=self.root,
            detector=self.detector,
            loop=asyncio.get_running_loop(),
            exclude_patterns=self.exclude_patterns,
        )

        self._observer = Observer()
        self._observer.schedule(handler, str(self.root), recursive=self.recursive)
        self._observer.start()

        self._is_running = True
        logger.info("file_watcher_started", root=str(self.root), recursive=self.recursive)

    async def stop(self) -> None:
        """파일 감시 중지."""
        if not self._is_running:
            return

        self._is_running = False

        if self._observer:
            self._observer.stop()
            await asyncio.to_thread(self._observer.join, 5.0)
            self._observer = None

        self.detector.close()
        logger.info("file_watcher_stopped", root=str(self.root))

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_stats(self) -> dict:
        return {
            "root": str(self.root),
            "is_running": self._is_running,
            "recursive": self.recursive,
            **self.detector.get_stats(),
        }
