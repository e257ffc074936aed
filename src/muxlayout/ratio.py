"""Ratio normalization into integer percentages."""

import math

from muxlayout.utils import round_half_up


def is_valid_ratio(values: list[float] | tuple[float, ...]) -> bool:
    """Check that a ratio is non-empty and made of positive finite numbers."""
    if not values:
        return False
    return all(
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > 0
        for value in values
    )


def normalize_ratio(values: list[float] | tuple[float, ...]) -> list[int]:
    """Convert weights into integer percentages that sum to exactly 100.

    An all-zero input is spread evenly, with the remainder of 100 / N handed
    out one each to the trailing entries. Otherwise each weight is rounded to
    its nearest percentage and the total is repaired by adjusting the entries
    whose rounding error is largest (under 100) or smallest (over 100), ties
    broken by original index.

    Args:
        values: Non-negative weights.

    Returns:
        Percentages in the same order as the input.
    """
    count = len(values)
    if count == 0:
        return []
    if count == 1:
        return [100]

    total = sum(values)
    if total <= 0:
        base, remainder = divmod(100, count)
        result = [base] * count
        for index in range(count - remainder, count):
            result[index] += 1
        return result

    raw = [value / total * 100 for value in values]
    result = [round_half_up(value) for value in raw]
    # Signed rounding error; positive means the entry was rounded down
    fractions = [raw[i] - result[i] for i in range(count)]

    difference = 100 - sum(result)
    if difference > 0:
        # Largest remainders first
        order = sorted(range(count), key=lambda i: (-fractions[i], i))
        for step in range(difference):
            result[order[step % count]] += 1
    elif difference < 0:
        order = sorted(range(count), key=lambda i: (fractions[i], i))
        adjusted = 0
        step = 0
        while adjusted < -difference:
            index = order[step % count]
            if result[index] > 0:
                result[index] -= 1
                adjusted += 1
            step += 1

    return result
