"""Tests del despacho a sinks: reintentos, timeout y aislamiento."""

import time
from unittest.mock import MagicMock

import pytest

from derivation_api.core.derivation.engine import derive
from derivation_api.core.domain.errors import SinkDeliveryError
from derivation_api.core.pipeline.dispatcher import SinkChannel, SinkDispatcher
from derivation_api.core.pipeline.retry import RetryConfig

from .conftest import FailingSink, FlakySink, RecordingSink, SlowSink


@pytest.fixture
def derived(make_raw, tank_calibration):
    return derive(make_raw(level=512), tank_calibration)


# =============================================================================
# RETRY CONFIG
# =============================================================================

class TestRetryConfig:

    def test_exponential_delay(self):
        config = RetryConfig(base_delay=0.5, exponential_base=2, jitter=False)

        assert config.calculate_delay(1) == 0.5
        assert config.calculate_delay(2) == 1.0
        assert config.calculate_delay(3) == 2.0

    def test_delay_capped(self):
        config = RetryConfig(base_delay=1, max_delay=3, jitter=False)

        assert config.calculate_delay(10) == 3

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(base_delay=1, jitter=True)

        for _ in range(50):
            assert 0.75 <= config.calculate_delay(1) <= 1.25

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SINK_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("SINK_TIMEOUT_SECONDS", "0.25")

        config = RetryConfig.from_env()

        assert config.max_attempts == 5
        assert config.timeout == 0.25


# =============================================================================
# CANAL
# =============================================================================

class TestSinkChannel:

    def test_delivers_first_try(self, derived, fast_retry):
        call = MagicMock()
        channel = SinkChannel("live", call, fast_retry)

        result = channel.deliver(derived)

        assert result.delivered is True
        assert result.attempts == 1
        call.assert_called_once_with(derived)
        channel.shutdown()

    def test_retries_transient_failure_in_background(self, derived, fast_retry):
        call = MagicMock(side_effect=[ConnectionError("blip"), None])
        failures = []
        channel = SinkChannel("live", call, fast_retry, on_failure=failures.append)

        result = channel.deliver(derived)

        assert result.delivered is False
        assert result.pending is True
        assert result.attempts == 1
        assert channel.flush(timeout=5) is True
        assert call.call_count == 2
        assert failures == []
        assert channel.backlog_size == 0
        channel.shutdown()

    def test_exhausted_retries_reported_not_raised(self, derived, fast_retry):
        call = MagicMock(side_effect=RuntimeError("down"))
        failures = []
        channel = SinkChannel("persistence", call, fast_retry, on_failure=failures.append)

        result = channel.deliver(derived)
        assert channel.flush(timeout=5) is True

        assert result.pending is True
        assert call.call_count == fast_retry.max_attempts
        assert len(failures) == 1
        assert isinstance(failures[0], SinkDeliveryError)
        assert failures[0].sink == "persistence"
        assert failures[0].attempts == fast_retry.max_attempts
        assert isinstance(failures[0].cause, RuntimeError)
        channel.shutdown()

    def test_single_attempt_fails_immediately(self, derived):
        retry = RetryConfig(max_attempts=1, base_delay=0, jitter=False, timeout=1.0)
        call = MagicMock(side_effect=RuntimeError("down"))
        channel = SinkChannel("persistence", call, retry)

        result = channel.deliver(derived)

        assert result.delivered is False
        assert result.pending is False
        assert isinstance(result.error, SinkDeliveryError)
        assert isinstance(result.error.cause, RuntimeError)
        channel.shutdown()

    def test_first_attempt_does_not_wait_for_backoff(self, derived):
        retry = RetryConfig(max_attempts=2, base_delay=0.5, jitter=False, timeout=1.0)
        call = MagicMock(side_effect=ConnectionError("down"))
        channel = SinkChannel("persistence", call, retry)

        start = time.monotonic()
        result = channel.deliver(derived)
        elapsed = time.monotonic() - start

        assert result.pending is True
        assert elapsed < 0.4
        assert channel.flush(timeout=5) is True
        channel.shutdown()

    def test_later_readings_queue_behind_retry(self, make_raw, tank_calibration):
        """Con reintentos en curso, el sink recibe las lecturas en orden de llegada."""
        retry = RetryConfig(max_attempts=5, base_delay=0.05, jitter=False, timeout=1.0)
        sink = FlakySink("persistence", failures=2)
        channel = SinkChannel("persistence", sink.store, retry)

        results = [
            channel.deliver(derive(make_raw(level=100, sequence=i), tank_calibration))
            for i in range(4)
        ]
        assert channel.flush(timeout=5) is True

        assert results[0].pending is True
        assert all(r.pending and r.attempts == 0 for r in results[1:])
        assert sink.sequences("tank-01") == [0, 1, 2, 3]
        channel.shutdown()

    def test_backlog_full_drops_incoming(self, make_raw, tank_calibration):
        retry = RetryConfig(max_attempts=3, base_delay=0.2, jitter=False, timeout=1.0)
        failures = []
        channel = SinkChannel(
            "persistence", MagicMock(side_effect=ConnectionError("down")), retry,
            max_backlog=2, on_failure=failures.append,
        )

        results = [
            channel.deliver(derive(make_raw(level=100, sequence=i), tank_calibration))
            for i in range(3)
        ]

        assert results[1].pending is True
        assert results[2].pending is False
        assert isinstance(results[2].error, SinkDeliveryError)
        assert "backlog full" in str(results[2].error)
        assert len(failures) == 1
        channel.shutdown()

    def test_timeout_abandons_attempt(self, derived):
        retry = RetryConfig(max_attempts=1, base_delay=0, jitter=False, timeout=0.1)
        sink = SlowSink("slow", delay=1.0)
        channel = SinkChannel("slow", sink.store, retry)

        start = time.monotonic()
        result = channel.deliver(derived)
        elapsed = time.monotonic() - start

        assert result.delivered is False
        assert isinstance(result.error.cause, TimeoutError)
        assert elapsed < 0.9
        channel.shutdown()


# =============================================================================
# DISPATCHER
# =============================================================================

class TestSinkDispatcher:

    def test_fan_out_to_both_sinks(self, derived, fast_retry):
        persistence = RecordingSink("persistence")
        live = RecordingSink("live")
        dispatcher = SinkDispatcher(persistence=persistence, live=live, retry=fast_retry)

        results = dispatcher.dispatch(derived)

        assert {r.sink for r in results} == {"persistence", "live"}
        assert all(r.delivered for r in results)
        assert persistence.received == [derived]
        assert live.received == [derived]
        dispatcher.shutdown()

    def test_failing_sink_does_not_block_other(self, derived, fast_retry):
        persistence = FailingSink("persistence")
        live = RecordingSink("live")
        dispatcher = SinkDispatcher(persistence=persistence, live=live, retry=fast_retry)

        failures = []
        dispatcher.set_failure_listener(failures.append)

        results = {r.sink: r for r in dispatcher.dispatch(derived)}

        assert results["persistence"].delivered is False
        assert results["persistence"].pending is True
        assert results["live"].delivered is True
        assert live.received == [derived]

        assert dispatcher.flush(timeout=5) is True
        assert persistence.calls == fast_retry.max_attempts
        assert [f.sink for f in failures] == ["persistence"]
        assert dispatcher.backlog == {"persistence": 0, "live": 0}
        dispatcher.shutdown()

    def test_slow_sink_does_not_delay_other(self, derived):
        retry = RetryConfig(max_attempts=1, base_delay=0, jitter=False, timeout=0.3)
        live = RecordingSink("live")
        dispatcher = SinkDispatcher(persistence=SlowSink("persistence", delay=1.0), live=live, retry=retry)

        results = {r.sink: r for r in dispatcher.dispatch(derived)}

        assert results["persistence"].delivered is False
        assert results["live"].delivered is True
        dispatcher.shutdown()

    def test_no_sinks(self, derived, fast_retry):
        dispatcher = SinkDispatcher(retry=fast_retry)

        assert dispatcher.dispatch(derived) == []
        assert dispatcher.sink_names == []
        dispatcher.shutdown()

    def test_sink_names(self, fast_retry):
        dispatcher = SinkDispatcher(live=RecordingSink("live"), retry=fast_retry)

        assert dispatcher.sink_names == ["live"]
        assert dispatcher.persistence is None
        dispatcher.shutdown()
