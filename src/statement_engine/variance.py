# Statement Engine - Declarative financial statement calculation engine
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period-over-period variance.

    amount  = current - prior
    percent = amount / |prior| * 100   (0 when prior is 0)

Dividing by the absolute prior value keeps the sign of the percentage
aligned with the direction of change, also for negative bases.
"""

from typing import Optional


def variance_amount(current: Optional[float], prior: Optional[float]) -> float:
    return (current or 0.0) - (prior or 0.0)


def variance_percent(current: Optional[float], prior: Optional[float]) -> float:
    prior = prior or 0.0
    if prior == 0:
        return 0.0
    return variance_amount(current, prior) / abs(prior) * 100


def calculate_variance(
    current: Optional[float], prior: Optional[float]
) -> tuple[float, float]:
    """Return (variance_amount, variance_percent) for two period values.

    None counts as 0.
    """
    return variance_amount(current, prior), variance_percent(current, prior)
