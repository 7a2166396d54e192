import math


def round_half_up(value: float) -> int:
    """Round halves up (2.5 -> 3). Python's round() would give 2."""
    return int(math.floor(value + 0.5))
