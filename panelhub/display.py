"""Quota-unit to currency conversion for display."""

from __future__ import annotations

from typing import NamedTuple

CONVERSION_FACTOR = 500_000
DEFAULT_EXCHANGE_RATE = 7.0


class CurrencyAmount(NamedTuple):
    usd: float
    cny: float


def to_currency(quota: float, exchange_rate: float = DEFAULT_EXCHANGE_RATE) -> CurrencyAmount:
    usd = quota / CONVERSION_FACTOR
    return CurrencyAmount(usd=round(usd, 2), cny=round(usd * exchange_rate, 2))
