import math

# Text shown in place of a reading that is silent or not yet available.
PLACEHOLDER = "--.-"


def _finite(value):
    try:
        x = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(x):
        return None
    return x


def format_lufs(value, decimals: int = 1) -> str:
    """'-23.0 LUFS', or '--.- LUFS' for silence."""
    x = _finite(value)
    if x is None:
        return f"{PLACEHOLDER} LUFS"
    return f"{x:.{decimals}f} LUFS"


def format_lra(value, decimals: int = 1) -> str:
    # None means "not enough history yet"
    x = _finite(value)
    if x is None:
        return f"{PLACEHOLDER} LU"
    return f"{x:.{decimals}f} LU"


def format_true_peak(value, decimals: int = 1) -> str:
    x = _finite(value)
    if x is None:
        return f"{PLACEHOLDER} dBTP"
    return f"{x:.{decimals}f} dBTP"


def format_signed(value, unit: str, decimals: int = 1, floor=None) -> str:
    """Signed reading with unit; values under `floor` show the placeholder."""
    x = _finite(value)
    if x is None or (floor is not None and x < floor):
        return f"{PLACEHOLDER} {unit}"
    sign = "+" if x >= 0 else ""
    return f"{sign}{x:.{decimals}f} {unit}"


def format_ppm(ppm, decimals: int = 1) -> str:
    """'+3.5 PPM'. Below -36 PPM (the bottom of the scale) is treated as silence."""
    return format_signed(ppm, "PPM", decimals, floor=-36.0)


def format_dbu(dbu, decimals: int = 1) -> str:
    return format_signed(dbu, "dBu", decimals)


def format_correlation(value, decimals: int = 2) -> str:
    x = _finite(value)
    if x is None:
        return PLACEHOLDER
    sign = "+" if x >= 0 else ""
    return f"{sign}{x:.{decimals}f}"


def format_balance(value) -> str:
    """'C', 'L 25%' or 'R 40%'."""
    x = _finite(value)
    if x is None:
        return PLACEHOLDER
    pct = int(round(abs(x) * 100))
    if pct == 0:
        return "C"
    return f"{'L' if x < 0 else 'R'} {pct}%"


def format_duration(seconds) -> str:
    """mm:ss, or h:mm:ss past one hour."""
    x = _finite(seconds)
    if x is None or x < 0:
        x = 0.0
    total = int(x)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m:02d}:{s:02d}"
