from datetime import datetime

import pytest

from errors import ValidationFailed
from services.patches import PatchSchema, apply_patch, bounded_int, optional_int, timestamp


class Record:
    name = "old"


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "inf", 1e400])
def test_non_finite_numbers_are_rejected(value):
    schema = PatchSchema(level=bounded_int(1, 5), bpm=optional_int)
    with pytest.raises(ValidationFailed):
        schema.clean({"level": value})
    with pytest.raises(ValidationFailed):
        schema.clean({"bpm": value})


def test_bounded_int_clamps_and_rounds():
    coerce = bounded_int(1, 5)
    assert [coerce(v) for v in (0, "4.6", 9)] == [1, 5, 5]


@pytest.mark.parametrize("value", [10**20, -(10**20), 1e300, "not a date", "2024-13-45"])
def test_timestamp_out_of_range_is_a_validation_error(value):
    with pytest.raises(ValidationFailed, match="Expected a date."):
        timestamp(value)


def test_timestamp_accepts_epoch_ms_and_iso():
    assert timestamp(0) == datetime(1970, 1, 1)
    assert timestamp("2024-06-01T20:00:00Z") == datetime(2024, 6, 1, 20, 0)
    assert timestamp("") is None


def test_apply_patch_reports_whether_anything_changed():
    record = Record()
    assert apply_patch(record, {}) is False
    assert record.name == "old"
    assert apply_patch(record, {"name": "new"}) is True
    assert record.name == "new"
