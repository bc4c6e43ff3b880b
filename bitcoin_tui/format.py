import time
from datetime import datetime


def fmt_int(n: int) -> str:
    return f"{n:,}"


def fmt_height(n: int) -> str:
    return f"{n:,}".replace(",", "'")


def fmt_bytes(b: int) -> str:
    if b >= 1_000_000_000:
        return f"{b / 1e9:.1f} GB"
    if b >= 1_000_000:
        return f"{b / 1e6:.1f} MB"
    if b >= 1_000:
        return f"{b / 1e3:.1f} KB"
    return f"{b} B"


def _scaled(value: float, units: list[tuple[float, str]], suffix: str) -> str:
    for scale, unit in units:
        if value >= scale:
            return f"{value / scale:.2f} {unit}{suffix}"
    return f"{value:.2f} {suffix}".rstrip()


def fmt_difficulty(d: float) -> str:
    return _scaled(d, [(1e18, "E"), (1e15, "P"), (1e12, "T"), (1e9, "G")], "")


def fmt_hashrate(h: float) -> str:
    units = [(1e21, "Z"), (1e18, "E"), (1e15, "P"), (1e12, "T"), (1e9, "G"), (1e6, "M"), (1e3, "k")]
    return _scaled(h, units, "H/s")


def fmt_satsvb(btc_per_kvb: float) -> str:
    return f"{btc_per_kvb * 1e5:.1f} sat/vB"


def fmt_btc(btc: float, precision: int = 8) -> str:
    return f"{btc:.{precision}f} BTC"


def fmt_age(secs: int) -> str:
    secs = max(0, int(secs))
    if secs < 60:
        return f"{secs}s"
    if secs < 3600:
        return f"{secs // 60}m {secs % 60}s"
    return f"{secs // 3600}h {(secs % 3600) // 60}m"


def fmt_time_ago(timestamp: int, now: float | None = None) -> str:
    diff = int((time.time() if now is None else now) - timestamp)
    if diff < 0:
        return "just now"
    if diff < 60:
        return f"{diff}s ago"
    if diff < 3600:
        return f"{diff // 60}m ago"
    if diff < 86400:
        return f"{diff // 3600}h ago"
    return f"{diff // 86400}d ago"


def fmt_timestamp(timestamp: int) -> str:
    if timestamp <= 0:
        return "—"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def abbreviate(value: str, head: int, tail: int) -> str:
    if len(value) <= head + tail + 1:
        return value
    return f"{value[:head]}…{value[-tail:]}"
