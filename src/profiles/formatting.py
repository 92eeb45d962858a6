"""Display formatting for profile figures."""

import math
from typing import Optional, Tuple


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_number(n: Optional[float]) -> str:
    """Compact count: 1234567 -> "1.2M", 3400 -> "3.4K", 999.6 -> "1,000"."""
    if n is None:
        return "-"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return f"{_round_half_up(n):,}"


def format_percentage(part: float, total: float) -> str:
    if total == 0:
        return "0%"
    return f"{part / total * 100:.1f}%"


def format_share(value: Optional[float]) -> str:
    """A percentage figure that is already scaled, or '-' when not positive."""
    if not value or value <= 0:
        return "-"
    return f"{value:g}%"


def format_estimate(estimated: float, lower: float, upper: float, label: str = "Estimated cases") -> str:
    return f"{label}: {format_number(estimated)} [{format_number(lower)}, {format_number(upper)}]"


def format_parasite_split(p_falciparum: Optional[float], p_vivax: Optional[float]) -> Tuple[str, str]:
    """Return display strings for the P. falciparum and P. vivax shares."""
    return (
        f"P. falciparum: {format_share(p_falciparum)}",
        f"P. vivax: {format_share(p_vivax)}",
    )
