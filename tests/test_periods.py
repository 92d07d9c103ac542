from datetime import date

import pytest

from periods import month_period, next_month, parse_month


def test_next_month_rolls_over_december() -> None:
    assert next_month("2025-01") == "2025-02"
    assert next_month("2025-09") == "2025-10"
    assert next_month("2025-12") == "2026-01"


def test_month_period_uses_real_month_length() -> None:
    assert month_period("2024-02").end == date(2024, 2, 29)
    assert month_period("2025-02").end == date(2025, 2, 28)
    assert month_period("2025-04").end == date(2025, 4, 30)
    assert month_period("2025-12").start == date(2025, 12, 1)
    assert month_period("2025-12").end == date(2025, 12, 31)


@pytest.mark.parametrize("value", ["2025-1", "2025-13", "25-01", "2025-00"])
def test_parse_month_rejects_non_canonical_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_month(value)
