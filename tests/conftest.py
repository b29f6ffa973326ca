"""
Global test configuration and fixtures
"""

import asyncio
import time
from collections import defaultdict
from pathlib import Path

import pytest

from assetflow_engine.pipeline.domain.models import RunState
from assetflow_shared.common.exceptions import TransformError

# 느린 테스트 임계값 (초)
SLOW_TEST_THRESHOLD = 5.0
WARNING_TEST_THRESHOLD = 2.0


@pytest.fixture(autouse=True)
def track_test_duration(request):
    """모든 테스트의 실행 시간을 추적하고 느린 테스트 경고"""
    start_time = time.time()

    yield

    duration = time.time() - start_time
    test_name = request.node.nodeid

    if duration > SLOW_TEST_THRESHOLD:
        print(f"\n⚠️  SLOW TEST ({duration:.2f}s): {test_name}")
        print("   Consider marking with @pytest.mark.slow or optimizing")
    elif duration > WARNING_TEST_THRESHOLD:
        print(f"\n⏱️  Slow ({duration:.2f}s): {test_name}")


# ==============================================================================
# Project fixtures
# ==============================================================================


@pytest.fixture
def project(tmp_path) -> Path:
    """빈 프로젝트 루트"""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def write_file(project):
    """프로젝트 루트 기준으로 파일 생성"""

    def _write(relative: str, content: str | bytes = "") -> Path:
        path = project / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    return _write


# ==============================================================================
# Scheduler fakes
# ==============================================================================


class FakeExecutor:
    """
    Records calls instead of running stages.

    - ``gates[name]``: run blocks until the event is set
    - ``failing``: names whose runs raise TransformError
    - ``crashing``: names whose runs raise RuntimeError
    """

    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.log: list[tuple[str, str]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.failing: set[str] = set()
        self.crashing: set[str] = set()
        self.active: dict[str, int] = defaultdict(int)
        self.max_active: dict[str, int] = defaultdict(int)
        self.max_total_active = 0

    def gate(self, name: str) -> asyncio.Event:
        self.gates[name] = asyncio.Event()
        return self.gates[name]

    def runs_of(self, name: str) -> list[tuple[str, ...]]:
        return [inputs for called, inputs in self.calls if called == name]

    async def execute(self, spec, inputs):
        name = spec.name
        self.calls.append((name, tuple(inputs)))
        self.log.append(("start", name))
        self.active[name] += 1
        self.max_active[name] = max(self.max_active[name], self.active[name])
        self.max_total_active = max(self.max_total_active, sum(self.active.values()))
        try:
            if name in self.gates:
                await self.gates[name].wait()
            else:
                await asyncio.sleep(self.delay)
            if name in self.failing:
                raise TransformError("sass", f"{name} broke")
            if name in self.crashing:
                raise RuntimeError("executor crashed")
            return [f"{name}/out.txt"]
        finally:
            self.active[name] -= 1
            self.log.append(("end", name))


class RecordingNotifier:
    def __init__(self):
        self.results: list[tuple[str, RunState, str | None, tuple[str, ...]]] = []

    async def on_run_result(self, name, state, error=None, *, outputs=()):
        self.results.append((name, state, error, tuple(outputs)))

    def states(self, name: str) -> list[RunState]:
        return [state for result_name, state, _, _ in self.results if result_name == name]


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def wait_until():
    """조건이 참이 될 때까지 이벤트 루프를 양보"""

    async def _wait(predicate, timeout: float = 2.0, interval: float = 0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met within timeout")
            await asyncio.sleep(interval)

    return _wait


# Pytest hooks
def pytest_configure(config):
    """pytest 설정"""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests (medium speed)")
    config.addinivalue_line("markers", "slow: Slow tests (>5s)")


def pytest_collection_modifyitems(config, items):
    """테스트 수집 후 처리"""
    for item in items:
        # 경로 기반 자동 마커 추가
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def pytest_report_header(config):
    """리포트 헤더 추가"""
    return [
        f"Slow test threshold: {SLOW_TEST_THRESHOLD}s",
        f"Warning threshold: {WARNING_TEST_THRESHOLD}s",
    ]
