from typing import Optional, Union

Number = Union[int, float]


def percentage(numerator: Optional[Number], denominator: Optional[Number], precision: int) -> float:
    """numerator / denominator * 100, 0 when there is nothing to divide by."""
    if not denominator:
        return 0.0
    return round(float(numerator or 0) / float(denominator) * 100, precision)


def ratio(numerator: Optional[Number], denominator: Optional[Number], precision: int) -> float:
    if not denominator:
        return 0.0
    return round(float(numerator or 0) / float(denominator), precision)


def rounded(value: Optional[Number], precision: int) -> float:
    """Round an aggregate that may be NULL (AVG over no rows)."""
    if value is None:
        return 0.0
    return round(float(value), precision)
