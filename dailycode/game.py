import datetime
from typing import Iterator, List

CODE_LENGTH = 4
SYMBOLS = [1, 2, 3, 4, 5, 6]

# Numerical Recipes LCG constants
_LCG_A = 1664525
_LCG_C = 1013904223
_LCG_M = 2 ** 32


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_seed(text: str) -> int:
    """Java-style 31x string hash folded to a signed 32-bit int, returned as abs().

    Characters are consumed as UTF-16 code units so the seed matches clients that
    hash with charCodeAt.
    """
    h = 0
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32((h << 5) - h + unit)
    return abs(h)


def lcg_stream(seed: int) -> Iterator[float]:
    """Yield floats in [0, 1) from a 32-bit linear congruential generator."""
    state = seed
    while True:
        state = (state * _LCG_A + _LCG_C) % _LCG_M
        yield state / _LCG_M


def daily_code(date: str, allow_duplicates: bool = False) -> List[int]:
    rng = lcg_stream(string_seed(date))
    code: List[int] = []
    for _ in range(CODE_LENGTH):
        pool = SYMBOLS if allow_duplicates else [n for n in SYMBOLS if n not in code]
        code.append(pool[int(next(rng) * len(pool))])
    return code


def today_str() -> str:
    return datetime.datetime.now(datetime.timezone.utc).date().isoformat()


def parse_date(date: str) -> datetime.date:
    return datetime.date.fromisoformat(date)


def previous_day(date: str) -> str:
    return (parse_date(date) - datetime.timedelta(days=1)).isoformat()


def yesterday_str() -> str:
    return previous_day(today_str())


def week_start(date: str = "") -> str:
    """Monday of the week containing date (defaults to today)."""
    d = parse_date(date or today_str())
    return (d - datetime.timedelta(days=d.weekday())).isoformat()
