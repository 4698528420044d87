from __future__ import annotations

from datetime import datetime

from fx_fallback.utils.date_range import DateRange, utc_now


def test_date_range_as_tuple() -> None:
    range_item = DateRange(start=datetime(2024, 1, 1), end=datetime(2024, 1, 2))
    assert range_item.as_tuple() == (datetime(2024, 1, 1), datetime(2024, 1, 2))


def test_utc_now_is_naive() -> None:
    assert utc_now().tzinfo is None
