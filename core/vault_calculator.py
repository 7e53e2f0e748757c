"""
Vault Calculator for Wand Protocol.

Pure pricing functions for vault operations. Every function works on an immutable
VaultState snapshot taken at the start of a call and returns the amounts to move;
the Vault applies them. Amounts use 18 decimals, AAR and parameters use settings
decimals, and every division truncates.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from protocol_settings import ONE, HOUR, YEAR

# AAR reported while a vault has no $USB outstanding
AAR_INFINITE = 2 ** 256 - 1


class VaultPhase(Enum):
    """Vault phase, derived from AAR."""
    EMPTY = 0
    STABILITY = 1
    ADJUSTMENT_BELOW_AARS = 2
    ADJUSTMENT_ABOVE_AARU = 3


@dataclass(frozen=True)
class VaultState:
    """Snapshot of everything the pricing formulas read."""
    m_asset: int
    m_usb: int
    m_lev: int
    price: int
    price_decimals: int
    aar: int
    phase: VaultPhase
    params: Dict[str, int] = field(default_factory=dict)
    aar_below_safe_line_time: int = 0
    aar_below_circuit_breaker_line_time: int = 0
    now: int = 0

    @property
    def price_unit(self):
        return 10 ** self.price_decimals

    def param(self, name):
        return self.params[name]


def calc_aar(m_asset, m_usb, price, price_decimals):
    """
    Adequacy Asset Ratio: reserve value over $USB liability, in settings decimals.
    """
    if m_usb == 0:
        return AAR_INFINITE
    return m_asset * price * ONE // (10 ** price_decimals * m_usb)


def calc_phase(aar, m_usb, params):
    if m_usb == 0:
        return VaultPhase.EMPTY
    if aar >= params["AARU"]:
        return VaultPhase.ADJUSTMENT_ABOVE_AARU
    if aar <= params["AARS"]:
        return VaultPhase.ADJUSTMENT_BELOW_AARS
    return VaultPhase.STABILITY


def calc_interest(m_lev, y, seconds):
    """New leveraged-token interest for the elapsed period, linear in time and supply."""
    if seconds <= 0:
        return 0
    return m_lev * y * seconds // (ONE * YEAR)


def _nav_scaled(state):
    # Reserve value minus $USB liability, scaled by the price unit
    return state.m_asset * state.price - state.m_usb * state.price_unit


def _require_phase(state, phases, message):
    if state.phase not in phases:
        raise ValueError(message)


def _require_above_100(state):
    if state.aar <= ONE:
        raise ValueError("AAR Below 100%")


def circuit_breaker_active(state):
    """True while the pause after AAR first fell below AARC has not elapsed."""
    started = state.aar_below_circuit_breaker_line_time
    if started == 0:
        return False
    return state.now < started + state.param("CircuitBreakPeriod")


def average_bonus(aar_from, aar_to, aart, slope):
    """
    Average of slope * max(0, AART - a) over the AAR path [aar_from, aar_to].

    Below AART this is (2 * AART - AAR - AAR') * slope / 2.
    """
    lo, hi = min(aar_from, aar_to), max(aar_from, aar_to)
    if hi == lo:
        return slope * max(0, aart - lo) // ONE
    top = min(hi, aart)
    if top <= lo:
        return 0
    return slope * (2 * aart - lo - top) * (top - lo) // (2 * ONE * (hi - lo))


def split_by_thresholds(amount, aar_before, aar_after, amount_to_reach, thresholds):
    """
    Splits an input amount into segments at every threshold the AAR path crosses.

    Args:
        amount: Total input
        aar_before: AAR before any input is consumed
        aar_after: AAR after the whole input is consumed (greater than aar_before)
        amount_to_reach: Function giving the input needed to move AAR to a threshold
        thresholds: AAR thresholds to split at

    Returns:
        List of (segment_amount, aar_from, aar_to)
    """
    segments = []
    consumed = 0
    lower = aar_before
    for threshold in sorted(set(thresholds)):
        if aar_before < threshold < aar_after:
            reach = min(max(amount_to_reach(threshold), consumed), amount)
            segments.append((reach - consumed, lower, threshold))
            consumed = reach
            lower = threshold
    segments.append((amount - consumed, lower, aar_after))
    return [segment for segment in segments if segment[0] > 0]


def _thresholds(state):
    return (state.param("AARC"), state.param("AARS"), state.param("AART"))


def calc_mint_pairs_at_stability_phase(state, asset_amount):
    """
    Pair mint at the target ratio.

    Returns:
        Tuple of (usb_amount, leveraged_amount)
    """
    _require_phase(state, (VaultPhase.EMPTY, VaultPhase.STABILITY), "Vault not at stable phase")
    aart = state.param("AART")
    usb_amount = asset_amount * state.price * ONE // (state.price_unit * aart)
    leveraged_amount = asset_amount * (aart - ONE) // aart
    return usb_amount, leveraged_amount


def calc_mint_pairs_at_adjustment_phase(state, asset_amount):
    """
    Pair mint that keeps AAR unchanged: the deposit value is split between $USB and
    leveraged tokens in the ratio of the current liabilities and leveraged NAV.
    """
    _require_phase(state, (VaultPhase.ADJUSTMENT_BELOW_AARS, VaultPhase.ADJUSTMENT_ABOVE_AARU),
                   "Vault not at adjustment phase")
    if state.phase == VaultPhase.ADJUSTMENT_BELOW_AARS:
        _require_above_100(state)
        if state.aar < state.param("AARC") and circuit_breaker_active(state):
            raise ValueError("AAR Below Circuit Breaker AAR Threshold")
    usb_amount = asset_amount * state.price * ONE // (state.price_unit * state.aar)
    leveraged_amount = (asset_amount * state.price * ONE * state.m_lev
                        // (state.price_unit * state.aar * state.m_usb))
    return usb_amount, leveraged_amount


def calc_mint_usb_above_aaru(state, asset_amount):
    _require_phase(state, (VaultPhase.ADJUSTMENT_ABOVE_AARU,),
                   "Vault not at adjustment above AARU phase")
    usb_amount = asset_amount * state.price // state.price_unit
    aar_after = calc_aar(state.m_asset + asset_amount, state.m_usb + usb_amount,
                         state.price, state.price_decimals)
    if aar_after < state.param("AARS"):
        raise ValueError("AAR Below Safe Threshold")
    return usb_amount


def calc_mint_leveraged_tokens_below_aars(state, asset_amount):
    """
    Leveraged-token-only mint at NAV, improved by the average bonus R2 over the
    AAR range the deposit moves through.
    """
    _require_phase(state, (VaultPhase.ADJUSTMENT_BELOW_AARS,),
                   "Vault not at adjustment below AARS phase")
    _require_above_100(state)
    if state.aar < state.param("AARC") and circuit_breaker_active(state):
        raise ValueError("AAR Below Circuit Breaker AAR Threshold")
    if state.m_lev == 0:
        raise ValueError("Leveraged token supply is zero")

    pu = state.price_unit
    nav = _nav_scaled(state)
    aar_after = calc_aar(state.m_asset + asset_amount, state.m_usb, state.price,
                         state.price_decimals)

    def amount_to_reach(target):
        return target * state.m_usb * pu // (state.price * ONE) - state.m_asset

    aart = state.param("AART")
    c1 = state.param("C1")
    total = 0
    for amount, aar_from, aar_to in split_by_thresholds(
            asset_amount, state.aar, aar_after, amount_to_reach, _thresholds(state)):
        bonus = average_bonus(aar_from, aar_to, aart, c1)
        total += amount * state.price * state.m_lev * (ONE + bonus) // (ONE * nav)
    return total


def hours_below_safe_line(state):
    """Elapsed time below AARS in hours, in settings decimals."""
    if state.aar_below_safe_line_time == 0:
        return 0
    return (state.now - state.aar_below_safe_line_time) * ONE // HOUR


def calc_usb_to_leveraged_tokens(state, usb_amount):
    """
    Conditional discount purchase: $USB is burned for leveraged tokens at NAV times
    (1 + r), where r adds a time bonus for every hour spent below AARS.
    """
    _require_phase(state, (VaultPhase.ADJUSTMENT_BELOW_AARS,),
                   "Vault not at adjustment below AARS phase")
    _require_above_100(state)
    if state.aar < state.param("AARC") and circuit_breaker_active(state):
        raise ValueError("Conditional Discount Purchase suspended")
    if usb_amount > state.m_usb:
        raise ValueError("Too large $USB amount")
    if state.m_lev == 0:
        raise ValueError("Leveraged token supply is zero")

    pu = state.price_unit
    nav = _nav_scaled(state)
    aar_after = calc_aar(state.m_asset, state.m_usb - usb_amount, state.price,
                         state.price_decimals)

    def amount_to_reach(target):
        return state.m_usb - state.m_asset * state.price * ONE // (pu * target)

    aart = state.param("AART")
    aars = state.param("AARS")
    time_bonus = state.param("C2") * hours_below_safe_line(state) // ONE
    total = 0
    for amount, aar_from, aar_to in split_by_thresholds(
            usb_amount, state.aar, aar_after, amount_to_reach, _thresholds(state)):
        r = average_bonus(aar_from, aar_to, aart, state.param("C1"))
        if aar_to <= aars:
            r += time_bonus
        total += amount * state.m_lev * pu * (ONE + r) // (ONE * nav)
    return total


def _with_fee(gross, fee_rate):
    fee = gross * fee_rate // ONE
    return gross - fee, fee


def calc_redeem_by_usb_below_aars(state, usb_amount):
    """
    Returns:
        Tuple of (net_asset_amount, fee_amount)
    """
    _require_phase(state, (VaultPhase.ADJUSTMENT_BELOW_AARS,),
                   "Vault not at adjustment below AARS phase")
    if usb_amount > state.m_usb:
        raise ValueError("Too large $USB amount")
    if state.aar < ONE:
        gross = usb_amount * state.m_asset // state.m_usb
    else:
        gross = usb_amount * state.price_unit // state.price
    return _with_fee(gross, state.param("C1"))


def calc_redeem_by_leveraged_token_above_aaru(state, leveraged_amount):
    """
    Redeems leveraged tokens at NAV while the vault is over-collateralized.

    Returns:
        Tuple of (net_asset_amount, fee_amount)
    """
    _require_phase(state, (VaultPhase.ADJUSTMENT_ABOVE_AARU,),
                   "Vault not at adjustment above AARU phase")
    if leveraged_amount > state.m_lev:
        raise ValueError("Too large leveraged token amount")
    gross = leveraged_amount * _nav_scaled(state) // (state.m_lev * state.price)
    return _with_fee(gross, state.param("C2"))


def _require_not_empty(state):
    if state.phase == VaultPhase.EMPTY or state.m_lev == 0:
        raise ValueError("Vault is empty")


def calc_redeem_by_leveraged_tokens(state, leveraged_amount):
    """
    Redeems leveraged tokens together with their paired $USB, charging C2.

    Returns:
        Tuple of (paired_usb_amount, net_asset_amount, fee_amount)
    """
    _require_not_empty(state)
    if leveraged_amount > state.m_lev:
        raise ValueError("Too large leveraged token amount")
    paired_usb = leveraged_amount * state.m_usb // state.m_lev
    gross = leveraged_amount * state.m_asset // state.m_lev
    net, fee = _with_fee(gross, state.param("C2"))
    return paired_usb, net, fee


def calc_pairs_with_expected_usb_amount(state, usb_amount):
    """
    Returns:
        Tuple of (leveraged_amount, asset_amount)
    """
    _require_not_empty(state)
    if usb_amount > state.m_usb:
        raise ValueError("Too large $USB amount")
    leveraged_amount = usb_amount * state.m_lev // state.m_usb
    return leveraged_amount, leveraged_amount * state.m_asset // state.m_lev


def calc_pairs_with_expected_leveraged_token_amount(state, leveraged_amount):
    """
    Returns:
        Tuple of (usb_amount, asset_amount)
    """
    _require_not_empty(state)
    if leveraged_amount > state.m_lev:
        raise ValueError("Too large leveraged token amount")
    usb_amount = leveraged_amount * state.m_usb // state.m_lev
    return usb_amount, leveraged_amount * state.m_asset // state.m_lev


def calc_usb_to_match_below_aars(state):
    """$USB the BelowAARS pool must redeem at spot to lift AAR back to AART."""
    aart = state.param("AART")
    if state.aar <= ONE or state.aar >= aart:
        return 0
    numerator = aart * state.m_usb * state.price_unit - state.m_asset * state.price * ONE
    return max(0, numerator // ((aart - ONE) * state.price_unit))


def calc_asset_to_match_above_aaru(state):
    """Reserve the AboveAARU pool must deposit as $USB-only mint to bring AAR down to AART."""
    aart = state.param("AART")
    if state.m_usb == 0 or state.aar <= aart:
        return 0
    numerator = state.m_asset * state.price * ONE - aart * state.m_usb * state.price_unit
    return max(0, numerator // ((aart - ONE) * state.price))
