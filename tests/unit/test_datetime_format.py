from datetime import datetime, timezone

import pytest

from src.system_settings.domain.datetime_format import to_strftime


def test_default_format():
    assert to_strftime("YYYY-MM-DD HH:mm:ss") == "%Y-%m-%d %H:%M:%S"


def test_long_tokens_win_over_short_ones():
    assert to_strftime("dddd, MMMM DD YYYY") == "%A, %B %d %Y"
    assert to_strftime("ddd MMM YY") == "%a %b %y"


def test_twelve_hour_clock_with_meridiem():
    fmt = to_strftime("hh:mm A")
    assert datetime(2024, 3, 5, 15, 7, tzinfo=timezone.utc).strftime(fmt) == "03:07 PM"


def test_bracketed_and_quoted_text_is_literal():
    assert to_strftime("[Day] DD 'of' MMMM") == "Day %d of %B"


def test_percent_is_escaped():
    assert to_strftime("DD%") == "%d%%"


@pytest.mark.parametrize("fmt", ["", "   ", "YYYY-QQ", "foo", "--"])
def test_invalid_formats(fmt):
    with pytest.raises(ValueError):
        to_strftime(fmt)
