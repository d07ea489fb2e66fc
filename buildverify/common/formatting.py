def human_readable_size(num: int) -> str:
    """Convert bytes to a human readable string using binary prefixes.

    Examples:
    - 123 -> '123 B'
    - 2048 -> '2.0 KB'
    - 52_848_230 -> '50 MB'
    """
    try:
        n = int(num)
    except (TypeError, ValueError):
        return str(num)

    if n < 1024:
        return f"{n} B"

    units = ["KB", "MB", "GB", "TB", "PB"]
    value = n / 1024.0
    for u in units:
        if value < 1024.0:
            # show one decimal for values < 10, else no decimals
            if value < 10:
                return f"{value:.1f} {u}"
            return f"{value:.0f} {u}"
        value /= 1024.0

    return f"{value:.1f} PB"


def short_hash(value: str, length: int = 12) -> str:
    """Shorten a hex digest for log lines; placeholders pass through."""
    if not value or len(value) <= length:
        return value
    return f"{value[:length]}..."


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m{sec:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"
