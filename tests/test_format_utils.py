from flix.utils.format_utils import format_time, ticks_to_seconds, format_runtime

def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(65) == "1:05"
    assert format_time(59.9) == "0:59"
    assert format_time(3725) == "1:02:05"

def test_format_time_invalid_input():
    assert format_time(None) == "0:00"
    assert format_time(-10) == "0:00"
    assert format_time(float("nan")) == "0:00"

def test_ticks():
    assert ticks_to_seconds(None) == 0.0
    assert ticks_to_seconds(25_000_000) == 2.5

def test_format_runtime():
    assert format_runtime(0) == ""
    assert format_runtime(45 * 60 * 10_000_000) == "45m"
    assert format_runtime(112 * 60 * 10_000_000) == "1h 52m"
