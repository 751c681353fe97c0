"""Digital option pricing off an options venue's IV surface.

A prediction market "BTC above K at T" is a cash-or-nothing digital call,
priced under Black-Scholes as ``N(d2)``. The vol input comes from the
options surface: nearest listed strike within an expiry, interpolated
across expiries in total variance (``sigma^2 * T``).
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence

import numpy as np

from binary_arb.models import ExpiryData, IVSnapshot

SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60

# Bisection bracket for implied vol, 1% to 500%.
IV_LOWER_BOUND = 0.01
IV_UPPER_BOUND = 5.0

# Relative distance to the nearest listed strike that still counts as close.
CLOSE_STRIKE_DISTANCE = 0.05

# Abramowitz & Stegun 7.1.26 coefficients.
_A1 = 0.254829592
_A2 = -0.284496736
_A3 = 1.421413741
_A4 = -1.453152027
_A5 = 1.061405429
_P = 0.3275911


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class TheoreticalPriceResult:
    price: float
    iv: float
    forward: float
    d2: float
    confidence: Confidence


def normal_cdf(x: float) -> float:
    """Normal CDF from the Abramowitz & Stegun 7.1.26 erf polynomial.

    The polynomial is evaluated at ``x`` without the ``1/sqrt(2)`` rescaling,
    so values away from zero sit a little outside the exact CDF (about 0.981
    at 1.96). Theoretical prices are quoted off this exact curve.
    """
    sign = -1.0 if x < 0 else 1.0
    abs_x = abs(x)
    t = 1.0 / (1.0 + _P * abs_x)
    y = 1.0 - ((((_A5 * t + _A4) * t + _A3) * t + _A2) * t + _A1) * t * math.exp(-abs_x * abs_x / 2.0)
    return 0.5 * (1.0 + sign * y)


def years_until(target: datetime | float, now: float | None = None) -> float:
    """Years from ``now`` (epoch seconds) to ``target``, floored at zero."""
    current = time.time() if now is None else now
    target_ts = target.timestamp() if isinstance(target, datetime) else float(target)
    return max(0.0, (target_ts - current) / SECONDS_PER_YEAR)


def find_nearest_strike(target_strike: float, available_strikes: Sequence[float]) -> float:
    """Closest strike by absolute distance; the first one wins a tie."""
    if len(available_strikes) == 0:
        raise ValueError("No available strikes provided")
    strikes = np.asarray(available_strikes, dtype=float)
    return float(strikes[int(np.argmin(np.abs(strikes - target_strike)))])


def get_iv_at_strike(expiry: ExpiryData, target_strike: float) -> float:
    """Call mark IV at the nearest listed strike, as a decimal."""
    if not expiry.strikes:
        raise ValueError(f"No strike data for expiry {expiry.expiry_date}")
    nearest = find_nearest_strike(target_strike, [s.strike for s in expiry.strikes])
    for strike_iv in expiry.strikes:
        if strike_iv.strike == nearest:
            return strike_iv.call_mark_iv / 100.0
    raise ValueError(f"Strike data not found for {nearest}")


def interpolate_iv(
    snapshot: IVSnapshot,
    target_expiry: datetime,
    target_strike: float | None = None,
    now: float | None = None,
) -> float:
    """IV for ``target_expiry`` at ``target_strike`` (ATM when omitted).

    Parameters
    ----------
    snapshot:
        Surface to read from. Must carry at least one expiry.
    target_expiry:
        Settlement instant of the contract being priced.
    target_strike:
        Strike to price; defaults to the snapshot's underlying price.
    now:
        Epoch seconds used for the target's time to expiry. Defaults to
        the wall clock.

    Returns
    -------
    float
        Annualized IV as a decimal. Targets before the first expiry use it
        directly; targets after the last one extrapolate from the last two.
    """
    if not snapshot.expiries:
        raise ValueError("No expiry data available in IV snapshot")

    target_ts = target_expiry.timestamp()
    strike = snapshot.underlying_price if target_strike is None else target_strike
    ordered = sorted(snapshot.expiries, key=lambda e: e.expiry_timestamp)

    lower: ExpiryData | None = None
    upper: ExpiryData | None = None
    for expiry in ordered:
        if expiry.expiry_timestamp <= target_ts:
            lower = expiry
        if expiry.expiry_timestamp >= target_ts and upper is None:
            upper = expiry

    if lower is None:
        return get_iv_at_strike(ordered[0], strike)
    if upper is None:
        if len(ordered) >= 2:
            return _interpolate_between(ordered[-2], ordered[-1], target_ts, strike, now)
        return get_iv_at_strike(ordered[-1], strike)
    if lower.expiry_timestamp == upper.expiry_timestamp:
        return get_iv_at_strike(lower, strike)
    return _interpolate_between(lower, upper, target_ts, strike, now)


def _interpolate_between(
    lower: ExpiryData,
    upper: ExpiryData,
    target_ts: float,
    strike: float,
    now: float | None,
) -> float:
    iv1 = get_iv_at_strike(lower, strike)
    iv2 = get_iv_at_strike(upper, strike)
    t1 = lower.time_to_expiry_years
    t2 = upper.time_to_expiry_years
    target_t = years_until(target_ts, now)

    if target_t <= 0:
        return iv1

    w1 = iv1 * iv1 * t1
    w2 = iv2 * iv2 * t2
    alpha = (target_t - t1) / (t2 - t1) if t2 > t1 else 0.0
    w_target = w1 + alpha * (w2 - w1)
    return math.sqrt(max(0.0, w_target / target_t))


def _d2(forward: float, strike: float, iv: float, time_to_expiry_years: float) -> float:
    return (math.log(forward / strike) - 0.5 * iv * iv * time_to_expiry_years) / (
        iv * math.sqrt(time_to_expiry_years)
    )


def compute_theoretical_price(forward: float, strike: float, iv: float, time_to_expiry_years: float) -> float:
    """Digital call ``N(d2)``; collapses to the payoff indicator at expiry or zero vol."""
    if time_to_expiry_years <= 0 or iv <= 0:
        return 1.0 if forward >= strike else 0.0
    return normal_cdf(_d2(forward, strike, iv, time_to_expiry_years))


def determine_confidence(snapshot: IVSnapshot, target_expiry: datetime, strike: float) -> Confidence:
    if not snapshot.expiries:
        return Confidence.LOW
    target_ts = target_expiry.timestamp()
    timestamps = [e.expiry_timestamp for e in snapshot.expiries]
    in_range = min(timestamps) <= target_ts <= max(timestamps)

    listed = [s.strike for e in snapshot.expiries for s in e.strikes]
    close_strike = False
    if listed and strike != 0:
        distance = float(np.min(np.abs(np.asarray(listed, dtype=float) - strike) / abs(strike)))
        close_strike = distance < CLOSE_STRIKE_DISTANCE

    if in_range and close_strike:
        return Confidence.HIGH
    if in_range or close_strike:
        return Confidence.MEDIUM
    return Confidence.LOW


def compute_theoretical_price_with_diagnostics(
    snapshot: IVSnapshot,
    strike: float,
    target_expiry: datetime,
    now: float | None = None,
) -> TheoreticalPriceResult:
    forward = snapshot.underlying_price
    time_to_expiry = years_until(target_expiry, now)
    iv = interpolate_iv(snapshot, target_expiry, strike, now)

    d2 = 0.0
    if time_to_expiry > 0 and iv > 0:
        d2 = _d2(forward, strike, iv, time_to_expiry)

    return TheoreticalPriceResult(
        price=compute_theoretical_price(forward, strike, iv, time_to_expiry),
        iv=iv,
        forward=forward,
        d2=d2,
        confidence=determine_confidence(snapshot, target_expiry, strike),
    )


def compute_implied_iv(
    market_price: float,
    forward: float,
    strike: float,
    time_to_expiry_years: float,
    tolerance: float = 1e-4,
    max_iterations: int = 100,
) -> float | None:
    """Inverts ``compute_theoretical_price`` by bisection over [0.01, 5.0].

    Above the forward (OTM) the digital price rises with vol; at or below
    it (ITM) the price falls. Returns None when no vol in the bracket can
    reproduce ``market_price``.
    """
    if time_to_expiry_years <= 0:
        return None
    if market_price <= 0 or market_price >= 1:
        return None

    iv_low = IV_LOWER_BOUND
    iv_high = IV_UPPER_BOUND
    price_low = compute_theoretical_price(forward, strike, iv_low, time_to_expiry_years)
    price_high = compute_theoretical_price(forward, strike, iv_high, time_to_expiry_years)
    is_otm = strike > forward

    if is_otm:
        if market_price < price_low or market_price > price_high:
            return None
    elif market_price > price_low or market_price < price_high:
        return None

    for _ in range(max_iterations):
        iv_mid = (iv_low + iv_high) / 2.0
        error = compute_theoretical_price(forward, strike, iv_mid, time_to_expiry_years) - market_price
        if abs(error) < tolerance:
            return iv_mid
        # OTM: too expensive means too much vol. ITM: the reverse.
        if (error > 0) == is_otm:
            iv_high = iv_mid
        else:
            iv_low = iv_mid
    return (iv_low + iv_high) / 2.0
