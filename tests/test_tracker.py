import logging

import pytest

from workbench.services import TransferStatusTracker
from workbench.services.errors import ApiError
from workbench.services.tracker import progress
from conftest import make_transfer


@pytest.fixture
def tracker(session):
    return TransferStatusTracker(session, kind="CRYPTO_WITHDRAWAL", interval_ms=5000)


def _poll_cycle(clock, session):
    clock.advance(5)
    session.scheduler.run_due()


def _t(status, tid="t1"):
    return make_transfer(tid, direction="OUT", status=status)


def test_polls_until_terminal_status(tracker, client, clock, session):
    client.transfer_polls = [[_t("PENDING")], [_t("PROCESSING")], [_t("COMPLETED")]]
    tracker.track("t1")

    for _ in range(6):
        _poll_cycle(clock, session)

    assert tracker.polls == 3
    assert tracker.history == ["PENDING", "PENDING", "PROCESSING", "COMPLETED"]
    assert client.calls.count(("list_transfers", 1, "CRYPTO_WITHDRAWAL")) == 3
    assert not tracker.polling
    assert session.scheduler.active == []


def test_failed_poll_is_no_update(tracker, client, clock, session):
    client.transfer_polls = [ApiError("Gateway timeout", status=504), [], [_t("PROCESSING")]]
    tracker.track("t1")

    _poll_cycle(clock, session)
    assert tracker.status == "PENDING" and tracker.polling
    _poll_cycle(clock, session)
    assert tracker.status == "PENDING" and tracker.polling
    _poll_cycle(clock, session)
    assert tracker.status == "PROCESSING"


def test_matching_id_wins_over_first_item(tracker, client, clock, session):
    client.transfer_polls = [[_t("FAILED", tid="other"), _t("PROCESSING")]]
    tracker.track("t1")
    _poll_cycle(clock, session)
    assert tracker.status == "PROCESSING"


def test_first_item_used_when_id_absent(tracker, client, clock, session):
    client.transfer_polls = [[_t("PROCESSING", tid="newest")]]
    tracker.track("t1")
    _poll_cycle(clock, session)
    assert tracker.status == "PROCESSING"


def test_fallback_to_other_transfer_is_logged(tracker, client, clock, session, caplog):
    caplog.set_level(logging.DEBUG, logger="workbench.services.tracker")
    client.transfer_polls = [[_t("PROCESSING", tid="newest")], [_t("PROCESSING")]]
    tracker.track("t1")

    _poll_cycle(clock, session)
    fallbacks = [r for r in caplog.records if r.getMessage() == "status lookup fell back to newest transfer"]
    assert [(r.transfer_id, r.used_id) for r in fallbacks] == [("t1", "newest")]

    caplog.clear()
    _poll_cycle(clock, session)
    assert not any(r.getMessage() == "status lookup fell back to newest transfer" for r in caplog.records)


def test_terminal_initial_status_starts_no_timer(tracker, session):
    tracker.track(_t("COMPLETED"))
    assert tracker.terminal
    assert session.scheduler.active == []


def test_close_stops_polling_and_discards_late_result(tracker, client, clock, session):
    tracker.track("t1")

    def closing_list_transfers(limit=None, type=None):
        tracker.close()
        return [_t("COMPLETED")]

    client.list_transfers = closing_list_transfers
    _poll_cycle(clock, session)

    assert tracker.status == "PENDING"
    assert session.scheduler.active == []


def test_resume_restarts_polling_after_close(tracker, client, clock, session):
    tracker.track("t1")
    tracker.close()

    assert tracker.poll() is None
    client.transfer_polls = [[_t("COMPLETED")]]
    assert tracker.resume()
    assert not tracker.resume()
    _poll_cycle(clock, session)

    assert tracker.status == "COMPLETED"
    assert session.scheduler.active == []


def test_resume_is_noop_without_live_transfer(tracker, session):
    assert not tracker.resume()
    tracker.track(_t("FAILED"))
    assert not tracker.resume()
    assert session.scheduler.active == []


def test_subscribe_and_unsubscribe(tracker, client, clock, session):
    seen = []
    unsubscribe = tracker.subscribe(seen.append)
    client.transfer_polls = [[_t("PROCESSING")], [_t("FAILED")]]

    tracker.track("t1")
    _poll_cycle(clock, session)
    unsubscribe()
    _poll_cycle(clock, session)

    assert seen == ["PENDING", "PROCESSING"]
    assert tracker.status == "FAILED"


def test_reset_forgets_transfer(tracker, session):
    tracker.track("t1")
    tracker.reset()
    assert tracker.transfer_id is None
    assert tracker.history == []
    assert session.scheduler.active == []


def test_progress_steps():
    p = progress("PROCESSING")
    assert not p.failed
    assert [(s.name, s.filled, s.current) for s in p.steps] == [
        ("PENDING", True, False),
        ("PROCESSING", True, True),
        ("COMPLETED", False, False),
    ]
    assert all(s.filled for s in progress("COMPLETED").steps)
    assert progress(None).steps[0].current


@pytest.mark.parametrize("status,banner", [("FAILED", "Transfer failed"), ("CANCELLED", "Transfer cancelled")])
def test_failure_replaces_steps_with_banner(status, banner):
    p = progress(status)
    assert p.failed
    assert p.banner == banner
    assert p.steps == ()
