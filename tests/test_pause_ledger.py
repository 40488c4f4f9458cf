"""Unit tests for the pause reason catalog and PauseLedger."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from pause_ledger import MAX_REASON_LENGTH, PAUSE_REASON_OPTIONS, PauseLedger, normalize_reason
from session_errors import InvalidPauseReason
from session_models import PauseRecord
from tests.helpers import T0


class TestNormalizeReason:
    @pytest.mark.parametrize("reason", list(k for k in PAUSE_REASON_OPTIONS if k != "other"))
    def test_catalog_reasons_accepted(self, reason):
        assert normalize_reason(reason) == reason

    def test_free_text_accepted_and_trimmed(self):
        assert normalize_reason("  kid woke up\n") == "kid woke up"

    @pytest.mark.parametrize("reason", [None, "", "   ", "\t\n", "other", " Other "])
    def test_blank_or_bare_other_rejected(self, reason):
        with pytest.raises(InvalidPauseReason):
            normalize_reason(reason)

    def test_too_long_rejected(self):
        with pytest.raises(InvalidPauseReason):
            normalize_reason("x" * (MAX_REASON_LENGTH + 1))

    def test_invalid_reason_is_value_error(self):
        with pytest.raises(ValueError):
            normalize_reason("")


class TestPauseLedger:
    def test_open_and_close(self):
        ledger = PauseLedger()
        ledger.open(T0, "rest")
        assert ledger.current.reason == "rest"
        closed = ledger.close(T0 + timedelta(seconds=45))
        assert closed.duration_seconds() == 45
        assert ledger.current is None
        assert len(ledger) == 1

    def test_only_one_open_interval(self):
        ledger = PauseLedger()
        ledger.open(T0, "rest")
        with pytest.raises(ValueError):
            ledger.open(T0, "hydration")
        assert len(ledger) == 1

    def test_close_without_open_is_noop(self):
        ledger = PauseLedger()
        assert ledger.close(T0) is None
        assert len(ledger) == 0

    def test_closed_records_are_frozen(self):
        ledger = PauseLedger()
        ledger.open(T0, "rest")
        ledger.close(T0 + timedelta(seconds=5))
        with pytest.raises(ValidationError):
            ledger.records[0].reason = "changed"

    def test_close_never_before_start(self):
        ledger = PauseLedger()
        ledger.open(T0, "rest")
        closed = ledger.close(T0 - timedelta(seconds=10))
        assert closed.duration_seconds() == 0

    def test_paused_seconds_includes_open_interval(self):
        ledger = PauseLedger()
        ledger.open(T0, "rest")
        ledger.close(T0 + timedelta(seconds=10))
        ledger.open(T0 + timedelta(seconds=20), "hydration")
        assert ledger.paused_seconds() == 10
        assert ledger.paused_seconds(now=T0 + timedelta(seconds=25)) == 15

    def test_rejects_two_open_records(self):
        records = [PauseRecord(started_at=T0, reason="a"), PauseRecord(started_at=T0, reason="b")]
        with pytest.raises(ValueError):
            PauseLedger(records)
