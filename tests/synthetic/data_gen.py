"""Synthetic OHLC data generation.

Generates a seeded random walk of candles with visible bodies and wicks on
both sides, so every candle renders with a known pixel structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import numpy as np

from candle_digitizer import config


@dataclass
class SyntheticCandle:
    """Ground-truth prices of one candle."""

    timestamp: str
    open: float
    high: float
    low: float
    close: float

    @property
    def bullish(self) -> bool:
        return self.close >= self.open


@dataclass
class SyntheticChartCase:
    """A complete synthetic chart scenario."""

    name: str
    seed: int
    timeframe: str
    candles: list[SyntheticCandle]
    price_min: float
    price_max: float
    tick_values: list[float] = field(default_factory=list)


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def generate_ohlc(
    n_candles: int,
    seed: int,
    timeframe: str = "1h",
    start_price: float = 100.0,
    volatility: float = 0.01,
    start: datetime = datetime(2025, 1, 1, tzinfo=timezone.utc),
) -> list[SyntheticCandle]:
    rng = np.random.default_rng(seed)
    step = timedelta(seconds=config.TIMEFRAMES[timeframe])
    min_body = start_price * volatility * 0.5
    min_wick = start_price * volatility * 0.3

    candles = []
    price = start_price
    for i in range(n_candles):
        open_ = price
        move = rng.normal(0.0, volatility) * price
        if abs(move) < min_body:
            move = min_body if move >= 0 else -min_body
        close = open_ + move
        high = max(open_, close) + min_wick + abs(rng.normal(0.0, volatility)) * price
        low = min(open_, close) - min_wick - abs(rng.normal(0.0, volatility)) * price
        candles.append(
            SyntheticCandle(
                timestamp=_iso(start + i * step),
                open=round(open_, 4),
                high=round(high, 4),
                low=round(low, 4),
                close=round(close, 4),
            )
        )
        price = close
    return candles


def generate_test_case(
    name: str,
    seed: int,
    n_candles: int = 20,
    timeframe: str = "1h",
    n_ticks: int = 5,
) -> SyntheticChartCase:
    """Random-walk candles plus a price axis whose ticks bracket every candle."""
    candles = generate_ohlc(n_candles, seed, timeframe)
    lo = min(c.low for c in candles)
    hi = max(c.high for c in candles)
    pad = (hi - lo) * 0.05
    price_min, price_max = lo - pad, hi + pad
    ticks = list(np.linspace(price_min, price_max, n_ticks))
    return SyntheticChartCase(
        name=name,
        seed=seed,
        timeframe=timeframe,
        candles=candles,
        price_min=price_min,
        price_max=price_max,
        tick_values=[float(t) for t in ticks],
    )
