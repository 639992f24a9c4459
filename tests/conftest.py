"""
Pytest configuration and shared fixtures for Image Optimizer tests.
"""
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import Settings
from core.batch_queue import (
    BatchStateStore,
    Converter,
    ItemRef,
    ItemResolver,
    ManualTrigger,
    MemoryKeyValueStore,
    create_batch_processor,
)


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeResolver(ItemResolver):
    """In-memory media catalog: item_id -> file size."""

    def __init__(self, items: Optional[Dict[str, Optional[int]]] = None):
        self.items: Dict[str, Optional[int]] = dict(items or {})
        self.missing_files = set()
        self.converted = set()  # (item_id, fmt)

    def path_for(self, item_id: str) -> str:
        return f"/uploads/{item_id}.jpg"

    def list_candidates(self, limit: int = 0, offset: int = 0) -> List[ItemRef]:
        refs = [ItemRef(item_id, size) for item_id, size in self.items.items()]
        refs = refs[offset:]
        if limit > 0:
            refs = refs[:limit]
        return refs

    def get_item(self, item_id: str) -> Optional[ItemRef]:
        if item_id not in self.items:
            return None
        return ItemRef(item_id, self.items[item_id])

    def resolve_path(self, item_id: str) -> Optional[str]:
        if item_id not in self.items or item_id in self.missing_files:
            return None
        return self.path_for(item_id)

    def exists_converted(self, path: str, fmt: str) -> bool:
        item_id = Path(path).stem
        return (item_id, fmt) in self.converted


class FakeConverter(Converter):
    """
    Records calls; per-item scripted outcomes.

    script[item_id] is a list consumed one entry per call: an int is bytes
    saved, an exception is raised. Once exhausted the last entry repeats.
    """

    def __init__(self, bytes_saved: int = 100):
        self.bytes_saved = bytes_saved
        self.script: Dict[str, list] = {}
        self.calls: List[tuple] = []
        self.side_effect = None

    def convert(self, source_path: str, fmt: str, quality: int) -> int:
        item_id = Path(source_path).stem
        self.calls.append((item_id, fmt, quality))

        if self.side_effect is not None:
            self.side_effect(item_id, fmt)

        outcomes = self.script.get(item_id)
        if not outcomes:
            return self.bytes_saved
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def called_items(self) -> List[str]:
        return [call[0] for call in self.calls]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def state(kv):
    return BatchStateStore(kv)


@pytest.fixture
def trigger(clock):
    return ManualTrigger(clock=clock)


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def converter():
    return FakeConverter()


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated from the environment and the project data dir."""
    return Settings(
        store_backend="memory",
        store_path=tmp_path / "state.db",
        upload_dir=tmp_path / "uploads",
        enabled_formats=["webp"],
        memory_limit="-1",
        log_file="",
    )


@pytest.fixture
def make_processor(test_settings, trigger, converter, resolver, kv, clock):
    """Factory: build a processor over the shared fakes, optionally overriding settings."""

    def _make(memory_usage=lambda: 0, timer=None, **overrides):
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        return create_batch_processor(
            settings=settings,
            trigger=trigger,
            converter=converter,
            resolver=resolver,
            kv=kv,
            clock=clock,
            timer=timer or clock,
            memory_usage=memory_usage,
        )

    return _make


@pytest.fixture
def processor(make_processor):
    return make_processor()
