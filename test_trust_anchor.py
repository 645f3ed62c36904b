from datetime import datetime, timezone

import pytest

from truststore_tester.config import HarnessConfig
from truststore_tester.errors import PollTimeoutError
from truststore_tester.trust_anchor import AnchorState, TrustAnchorActivationController


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def controller(clock, logs):
    return TrustAnchorActivationController(60, 3, ocsp_wait_seconds=35, clock=clock, log_callback=logs.append)


def test_safe_window_covers_three_poll_cycles():
    assert TrustAnchorActivationController(60, 3, ocsp_wait_seconds=35).safe_window_seconds() == 189
    # OCSP cache expiry dominates a short download interval
    assert TrustAnchorActivationController(10, 2, ocsp_wait_seconds=35).safe_window_seconds() == 36 + 70


def test_from_config():
    config = HarnessConfig(tsl_download_interval_seconds=30, tsl_processing_time_seconds=4)
    controller = TrustAnchorActivationController.from_config(config)
    assert controller.download_interval_seconds == 30
    assert controller.processing_time_seconds == 4
    assert controller.ocsp_wait_seconds == config.ocsp_wait_seconds


def test_anchor_activates_on_first_poll_after_activation_time(controller, clock):
    activation = controller.announce("ta-1")
    assert activation == clock.now + 189

    controller.record_poll_cycle(clock.now + 100)
    clock.now = activation + 1
    # no poll since activation yet
    assert controller.state_of("ta-1") is AnchorState.ANNOUNCED

    controller.record_poll_cycle(activation + 5)
    clock.now = activation + 6
    assert controller.state_of("ta-1") is AnchorState.ACTIVE


def test_anchor_is_not_active_before_its_time(controller, clock):
    controller.announce("ta-1", activation_time=clock.now + 50)
    controller.record_poll_cycle(clock.now + 60)
    assert controller.state_of("ta-1", now=clock.now + 40) is AnchorState.ANNOUNCED


def test_later_announcement_overwrites_pending_one(controller, clock):
    controller.announce("ta-1")
    clock.now += 10
    controller.announce("ta-2")
    assert controller.state_of("ta-1") is AnchorState.OVERWRITTEN
    assert controller.state_of("ta-2") is AnchorState.ANNOUNCED


def test_active_anchor_stays_active(controller, clock):
    activation = controller.announce("ta-1", activation_time=clock.now + 1)
    controller.record_poll_cycle(activation)
    clock.now = activation
    assert controller.state_of("ta-1") is AnchorState.ACTIVE
    controller.announce("ta-2")
    assert controller.state_of("ta-1") is AnchorState.ACTIVE


def test_unknown_anchor(controller):
    with pytest.raises(KeyError):
        controller.state_of("nope")


def test_wait_until_active_reads_poll_cycles_from_history(tsl_state, logs):
    controller = TrustAnchorActivationController(1, 0, log_callback=logs.append)
    now = datetime.now(timezone.utc).timestamp()
    controller.announce("ta-1", activation_time=now - 1)
    tsl_state.record("primary/xml", 3, False, "HTTP/1.1")
    assert controller.wait_until_active("ta-1", tsl_state, timeout_seconds=1, poll_interval_seconds=0.02) is AnchorState.ACTIVE


def test_wait_until_active_fails_fast_when_overwritten(tsl_state, logs):
    controller = TrustAnchorActivationController(1, 0, log_callback=logs.append)
    now = datetime.now(timezone.utc).timestamp()
    controller.announce("ta-1", activation_time=now + 100)
    controller.announce("ta-2", activation_time=now + 100)
    with pytest.raises(PollTimeoutError, match="overwritten"):
        controller.wait_until_active("ta-1", tsl_state, timeout_seconds=5, poll_interval_seconds=0.02)
