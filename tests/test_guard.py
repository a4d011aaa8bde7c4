"""Tests for the sequencing guard."""

import threading
import time

import pytest

from onstep_drivers.protocol.engine import CommandEngine
from onstep_drivers.protocol.guard import SequencingGuard
from onstep_drivers.protocol.lexicon import ResponseKind
from onstep_drivers.utils.exceptions import LockTimeoutError


def test_busy_flag_follows_acquire_release():
    guard = SequencingGuard()
    assert not guard.busy
    guard.acquire()
    assert guard.busy
    guard.release()
    assert not guard.busy


def test_released_when_body_raises():
    guard = SequencingGuard()
    with pytest.raises(ValueError):
        with guard:
            raise ValueError("boom")
    assert not guard.busy


def test_reentrant_for_owner():
    guard = SequencingGuard()
    with guard:
        with guard:
            assert guard.busy
        assert guard.busy
    assert not guard.busy


def test_bounded_wait_times_out():
    guard = SequencingGuard(wait_slice=0.005)
    holding = threading.Event()
    done = threading.Event()

    def holder():
        with guard:
            holding.set()
            done.wait(2.0)

    t = threading.Thread(target=holder)
    t.start()
    holding.wait(1.0)
    try:
        with pytest.raises(LockTimeoutError):
            guard.acquire(max_wait=0.05)
    finally:
        done.set()
        t.join()
    assert not guard.busy


def test_waiter_proceeds_after_release():
    guard = SequencingGuard(wait_slice=0.005)
    order = []
    holding = threading.Event()

    def holder():
        with guard:
            holding.set()
            time.sleep(0.05)
            order.append("holder")

    t = threading.Thread(target=holder)
    t.start()
    holding.wait(1.0)
    with guard:
        order.append("waiter")
    t.join()

    assert order == ["holder", "waiter"]


def test_release_by_other_thread_is_rejected():
    guard = SequencingGuard()
    guard.acquire()
    errors = []

    def intruder():
        try:
            guard.release()
        except RuntimeError as e:
            errors.append(e)

    t = threading.Thread(target=intruder)
    t.start()
    t.join()
    guard.release()

    assert len(errors) == 1
    assert not guard.busy


def test_wait_slice_is_tenth_of_timeout():
    guard = SequencingGuard()
    guard.set_timeout(0.2)
    assert guard.wait_slice == pytest.approx(0.02)
    guard.set_timeout(0.0)
    assert guard.wait_slice == SequencingGuard.MIN_WAIT_SLICE


@pytest.mark.parametrize("failure", ["timeout", "write", "read", "format"])
def test_guard_free_after_every_engine_outcome(scripted, protocol_logger, failure):
    transport = scripted({":FG#": "ERR#" if failure == "format" else None})
    transport.fail_write = failure == "write"
    transport.fail_read = failure == "read"
    guard = SequencingGuard()
    engine = CommandEngine(transport, guard=guard, protocol_logger=protocol_logger)

    outcome = engine.query(":FG#", ResponseKind.INTEGER)

    assert not outcome.ok
    assert not guard.busy


def test_engine_installs_profile_wait_slice(scripted, protocol_logger):
    guard = SequencingGuard()
    CommandEngine(scripted({}), guard=guard, protocol_logger=protocol_logger)
    # Default profile is 0.1 s
    assert guard.wait_slice == pytest.approx(0.01)
