from __future__ import annotations

import pytest
from _fakes import FakeSource, RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()
