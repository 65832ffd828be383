"""
A/B comparison helpers: two-proportion confidence and required sample size.
"""

import math

Z_SCORES = {
    0.80: 1.28,
    0.85: 1.44,
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
    0.999: 3.291,
}
DEFAULT_Z_SCORE = 1.96
MAX_CONFIDENCE = 0.9999


def get_z_score(confidence_level: float = 0.95) -> float:
    """z for a confidence level from the fixed table, 1.96 for anything else."""
    return Z_SCORES.get(confidence_level, DEFAULT_Z_SCORE)


def standard_error(rate: float, visitors: int) -> float:
    return math.sqrt(rate * (1 - rate) / visitors)


def calculate_confidence(conversions_a: int, visitors_a: int, conversions_b: int, visitors_b: int) -> float:
    """
    Confidence that the conversion rates of A and B differ.

    0 when either variant has no visitors or both rates are equal,
    never above 0.9999.
    """
    if visitors_a <= 0 or visitors_b <= 0:
        return 0.0

    rate_a = conversions_a / visitors_a
    rate_b = conversions_b / visitors_b
    if rate_a == rate_b:
        return 0.0

    se = math.sqrt(standard_error(rate_a, visitors_a) ** 2 + standard_error(rate_b, visitors_b) ** 2)
    if se == 0:
        # both rates are 0 or 1, so the difference is certain
        return MAX_CONFIDENCE

    z = abs(rate_a - rate_b) / se
    return min(MAX_CONFIDENCE, (1 + math.erf(z / math.sqrt(2))) / 2)


def calculate_required_sample_size(
    baseline_rate: float,
    expected_lift: float,
    confidence_level: float = 0.95,
    power: float = 0.8,
) -> int:
    """
    Visitors needed per variant to detect a relative lift over baseline_rate.

    expected_lift is relative, 0.1 means +10%.
    """
    if expected_lift == 0 or baseline_rate == 0:
        raise ValueError("baseline_rate and expected_lift must be non-zero")

    z = get_z_score(confidence_level)
    z_power = get_z_score(power)

    p1 = baseline_rate
    p2 = baseline_rate * (1 + expected_lift)
    pooled_rate = (p1 + p2) / 2

    return math.ceil(2 * pooled_rate * (1 - pooled_rate) * ((z + z_power) / (p2 - p1)) ** 2)
