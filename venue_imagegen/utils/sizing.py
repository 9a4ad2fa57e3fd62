from __future__ import annotations

from collections.abc import Iterable
from math import gcd, log

from loguru import logger


def derive_ratio(width: int, height: int) -> str:
    """Reduce a width/height pair to a ``W:H`` ratio string.

    Order sensitive: ``derive_ratio(1024, 1792) == "4:7"``.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Dimensions must be positive, got {width}x{height}")
    divisor = gcd(width, height)
    return f"{width // divisor}:{height // divisor}"


def resolve_size_or_default(token: str | None, allowed: Iterable[str], default: str, *, label: str = "size") -> tuple[str, bool]:
    """Return ``token`` if the family accepts it, otherwise the family default.

    Leniency policy: an unknown or missing token is replaced, never rejected.
    The second element reports whether a substitution happened.
    """
    allowed_set = {a.lower() for a in allowed}
    normalized = (token or "").strip().lower()
    if normalized in allowed_set:
        return normalized, False
    if token:
        logger.warning(f"Unsupported {label} '{token}', substituting default '{default}'")
    return default, True


def _parse_ratio(token: str | None) -> float | None:
    if not token or ":" not in token:
        return None
    w, _, h = token.strip().partition(":")
    try:
        width, height = float(w), float(h)
    except ValueError:
        return None
    if width <= 0 or height <= 0:
        return None
    return width / height


def resolve_ratio_or_default(token: str | None, allowed: Iterable[str], default: str) -> tuple[str, bool]:
    """Snap ``token`` to the nearest allowed ratio of the same orientation.

    A ratio that does not parse, or falls outside the widest and tallest
    allowed ratios, gets ``default``. The second element reports whether the
    result differs from ``token``.
    """
    choices = {a: _parse_ratio(a) for a in allowed}
    target = _parse_ratio(token)
    values = [v for v in choices.values() if v is not None]
    if target is None or not values or not min(values) <= target <= max(values):
        return resolve_size_or_default(token, allowed, default, label="aspect ratio")

    # Portrait stays portrait, landscape stays landscape.
    side = (target > 1) - (target < 1)
    same_side = {a: v for a, v in choices.items() if v is not None and (v > 1) - (v < 1) == side}
    ratio = min(same_side, key=lambda a: abs(log(same_side[a] / target)))
    substituted = ratio != token.strip()
    if substituted:
        logger.warning(f"Aspect ratio '{token}' snapped to '{ratio}'")
    return ratio, substituted


def clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def clamp_int(value: int, bounds: tuple[int, int]) -> int:
    return int(clamp(value, bounds))


__all__ = ["derive_ratio", "resolve_size_or_default", "resolve_ratio_or_default", "clamp", "clamp_int"]
