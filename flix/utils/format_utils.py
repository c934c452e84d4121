# Jellyfin reports durations and positions in 100-nanosecond ticks
TICKS_PER_SECOND = 10_000_000

def format_time(seconds: float) -> str:
    if not seconds or seconds < 0 or seconds != seconds:
        seconds = 0
    s = int(seconds)
    hours = s // 3600
    minutes = (s % 3600) // 60
    seconds = s % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"

def ticks_to_seconds(ticks) -> float:
    if not ticks:
        return 0.0
    return ticks / TICKS_PER_SECOND

def format_runtime(ticks) -> str:
    """Runtime label for detail pages, e.g. "1h 52m"."""
    total_minutes = int(ticks_to_seconds(ticks) // 60)
    if total_minutes <= 0:
        return ""
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
