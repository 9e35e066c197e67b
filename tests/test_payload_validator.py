"""Tests de la frontera de validación de payloads crudos."""

from datetime import datetime, timezone

import pytest

from derivation_api.core.domain.errors import ValidationError
from derivation_api.core.domain.reading import RawReading
from derivation_api.core.validation.payload_validator import (
    check_raw_reading,
    validate_raw_payload,
)


def _payload(**overrides):
    data = {
        "v": 1,
        "deviceId": "tank-01",
        "fields": {"level": 512, "flow": 3.5},
        "sensorType": "ultrasonic",
        "timestamp": "2026-01-31T08:00:00.123Z",
        "sequence": 7,
    }
    data.update(overrides)
    return data


# =============================================================================
# PAYLOADS VÁLIDOS
# =============================================================================

class TestValidPayloads:

    def test_full_payload(self):
        result = validate_raw_payload(_payload())

        assert result.valid is True
        assert result.warnings == []
        reading = result.reading
        assert isinstance(reading, RawReading)
        assert reading.device_id == "tank-01"
        assert dict(reading.fields) == {"level": 512.0, "flow": 3.5}
        assert reading.sensor_type == "ultrasonic"
        assert reading.sequence == 7
        assert reading.timestamp.tzinfo is not None

    def test_flat_raw_suffix_fields(self):
        data = _payload(levelRaw=800)
        del data["fields"]

        result = validate_raw_payload(data)

        assert result.valid is True
        assert dict(result.reading.fields) == {"level": 800.0}

    def test_explicit_fields_win_over_flat(self):
        result = validate_raw_payload(_payload(levelRaw=1))

        assert result.reading.fields["level"] == 512.0

    def test_snake_case_device_id(self):
        data = _payload(device_id="tank-09")
        del data["deviceId"]

        result = validate_raw_payload(data)

        assert result.reading.device_id == "tank-09"

    def test_device_id_is_stripped(self):
        result = validate_raw_payload(_payload(deviceId="  tank-01 "))

        assert result.reading.device_id == "tank-01"

    def test_missing_timestamp_uses_receive_time(self):
        data = _payload()
        del data["timestamp"]
        before = datetime.now(timezone.utc)

        result = validate_raw_payload(data)

        assert result.valid is True
        assert result.reading.timestamp >= before
        assert "timestamp missing, using receive time" in result.warnings

    def test_naive_timestamp_assumed_utc(self):
        result = validate_raw_payload(_payload(timestamp="2026-01-31T08:00:00"))

        assert result.reading.timestamp == datetime(2026, 1, 31, 8, 0, tzinfo=timezone.utc)

    def test_device_id_from_hint(self):
        data = _payload()
        del data["deviceId"]

        result = validate_raw_payload(data, device_id_hint="tank-42")

        assert result.reading.device_id == "tank-42"
        assert "deviceId taken from transport metadata" in result.warnings

    def test_payload_device_id_wins_over_hint(self):
        result = validate_raw_payload(_payload(), device_id_hint="tank-42")

        assert result.reading.device_id == "tank-01"
        assert result.warnings == []


# =============================================================================
# PAYLOADS INVÁLIDOS
# =============================================================================

class TestInvalidPayloads:

    @pytest.mark.parametrize(
        "data",
        [
            _payload(fields={}),
            _payload(fields={"level": "512"}),
            _payload(fields={"level": True}),
            _payload(fields={"level": None}),
            _payload(fields={"level": float("nan")}),
            _payload(fields={"level": float("inf")}),
            _payload(fields={"level": 1e13}),
            _payload(fields={"level": 10**400}),
            _payload(fields=[512]),
            _payload(deviceId=""),
            _payload(deviceId="   "),
            _payload(v=2),
            _payload(timestamp="yesterday"),
        ],
    )
    def test_rejected(self, data):
        result = validate_raw_payload(data)

        assert result.valid is False
        assert result.reading is None
        assert result.error

    def test_missing_device_id(self):
        data = _payload()
        del data["deviceId"]

        result = validate_raw_payload(data)

        assert result.valid is False
        assert "deviceId" in result.error

    @pytest.mark.parametrize("data", [None, "tank-01", 42, [1, 2]])
    def test_non_object_payload(self, data):
        result = validate_raw_payload(data)

        assert result.valid is False
        assert result.error == "Payload must be an object"


# =============================================================================
# LECTURAS YA CONSTRUIDAS
# =============================================================================

class TestCheckRawReading:

    def test_valid_reading_passes(self, make_raw):
        check_raw_reading(make_raw(level=10))

    def test_not_a_reading(self):
        with pytest.raises(ValidationError):
            check_raw_reading({"device_id": "tank-01"})

    def test_empty_device_id(self, make_raw):
        with pytest.raises(ValidationError):
            check_raw_reading(make_raw(device_id=" "))

    def test_non_numeric_field(self, make_raw):
        with pytest.raises(ValidationError) as exc:
            check_raw_reading(make_raw(level="high"))

        assert exc.value.device_id == "tank-01"

    def test_bool_field(self, make_raw):
        with pytest.raises(ValidationError):
            check_raw_reading(make_raw(level=True))

    def test_nan_field(self, make_raw):
        with pytest.raises(ValidationError):
            check_raw_reading(make_raw(level=float("nan")))

    def test_huge_int_field(self, make_raw):
        """Un entero que no cabe en float se rechaza como fuera de rango."""
        with pytest.raises(ValidationError) as exc:
            check_raw_reading(make_raw(level=10**400))

        assert "range" in str(exc.value)
