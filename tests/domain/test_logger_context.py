from __future__ import annotations

import threading

import pytest

from logharbour.domain.context import LoggerContext, new_context
from logharbour.domain.priority import Priority


def test_threshold_filters_strictly_lower_priorities() -> None:
    ctx = new_context(Priority.WARN)
    assert not ctx.is_enabled(Priority.INFO)
    assert ctx.is_enabled(Priority.WARN)
    assert ctx.is_enabled(Priority.CRIT)


def test_set_priority_accepts_wire_names() -> None:
    ctx = LoggerContext()
    ctx.set_priority("debug2")
    assert ctx.priority is Priority.DEBUG2


def test_unknown_priority_name_is_rejected() -> None:
    with pytest.raises(ValueError):
        LoggerContext("loud")


def test_concurrent_updates_leave_a_valid_threshold() -> None:
    ctx = LoggerContext(Priority.INFO)
    choices = list(Priority)

    def flip(offset: int) -> None:
        for index in range(200):
            ctx.set_priority(choices[(index + offset) % len(choices)])

    threads = [threading.Thread(target=flip, args=(offset,)) for offset in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert ctx.priority in choices
