from __future__ import annotations

import pytest

from scheduler_logic import clear_custom_shifts


@pytest.fixture(autouse=True)
def _reset_custom_shifts():
    clear_custom_shifts()
    yield
    clear_custom_shifts()
