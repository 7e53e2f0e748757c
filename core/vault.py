"""
Vault Model for Wand Protocol.

This module simulates the Vault contract. A vault holds one reserve asset and issues
$USB and a leveraged token against it. The Adequacy Asset Ratio (AAR) of reserve
value to $USB liability selects the vault phase, and the phase selects which mint,
redeem and swap operations are open and how they are priced.

Every state-mutating call runs as one atomic step:
1. Settle reserve yields and leveraged-token interest
2. Re-evaluate the phase and the safe-line / circuit-breaker timers
3. Price the operation from a snapshot and move tokens
4. Re-evaluate the phase and let the PtyPools absorb any imbalance
"""

import logging

from atomic import Stateful, atomic
from protocol_settings import ONE
from vault_calculator import (
    VaultPhase, VaultState, calc_aar, calc_phase, calc_interest, circuit_breaker_active,
    calc_mint_pairs_at_stability_phase, calc_mint_pairs_at_adjustment_phase,
    calc_mint_usb_above_aaru, calc_mint_leveraged_tokens_below_aars,
    calc_usb_to_leveraged_tokens, calc_redeem_by_usb_below_aars,
    calc_redeem_by_leveraged_token_above_aaru, calc_redeem_by_leveraged_tokens,
    calc_pairs_with_expected_usb_amount, calc_pairs_with_expected_leveraged_token_amount,
    calc_usb_to_match_below_aars, calc_asset_to_match_above_aaru,
)

logger = logging.getLogger(__name__)


class Vault(Stateful):
    """
    Simulates the Vault contract for a single reserve asset.
    """

    _state_fields = (
        "asset_total_amount", "usb_total_supply", "vault_phase",
        "last_interest_settlement_time", "aar_below_safe_line_time",
        "aar_below_circuit_breaker_line_time", "params",
    )

    def __init__(self, owner, asset_token, leveraged_token, usb, price_feed, settings,
                 clock, events, params=None):
        self.owner = owner
        self.address = "Vault:%s" % asset_token.symbol

        # External contracts
        self.asset_token = asset_token
        self.leveraged_token = leveraged_token
        self.usb = usb
        self.price_feed = price_feed
        self.settings = settings
        self.clock = clock
        self.events = events

        # Linked after construction, set once
        self.pty_pool_below_aars = None
        self.pty_pool_above_aaru = None
        self.interest_pool = None

        # Reserve held by the vault, excluding unsettled rebasing yields
        self.asset_total_amount = 0

        # $USB liability issued by this vault
        self.usb_total_supply = 0

        self.vault_phase = VaultPhase.EMPTY
        self.last_interest_settlement_time = clock.now()

        # 0 when AAR is above the line, else the time it was first seen below
        self.aar_below_safe_line_time = 0
        self.aar_below_circuit_breaker_line_time = 0

        # Per-vault parameter overrides
        self.params = dict(params or {})

    def _only_owner(self, caller):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")

    def _entities(self):
        entities = [self, self.events, self.asset_token, self.leveraged_token, self.usb,
                    self.pty_pool_below_aars, self.pty_pool_above_aaru, self.interest_pool]
        if self.interest_pool is not None:
            entities.extend(self.interest_pool.reward_tokens.values())
        return entities

    # Configuration

    def set_pty_pools(self, caller, pty_pool_below_aars, pty_pool_above_aaru):
        self._only_owner(caller)
        if self.pty_pool_below_aars is not None or self.pty_pool_above_aaru is not None:
            raise ValueError("PtyPools already set")
        if pty_pool_below_aars.vault is not self or pty_pool_above_aaru.vault is not self:
            raise ValueError("Invalid PtyPool vault")
        self.pty_pool_below_aars = pty_pool_below_aars
        self.pty_pool_above_aaru = pty_pool_above_aaru
        self.events.emit(self.address, "SetPtyPools", below_aars=pty_pool_below_aars.address,
                         above_aaru=pty_pool_above_aaru.address)

    def set_interest_pool(self, caller, interest_pool):
        self._only_owner(caller)
        if self.interest_pool is not None:
            raise ValueError("InterestPool already set")
        self.interest_pool = interest_pool

    def get_param_value(self, name):
        if name in self.params:
            return self.params[name]
        return self.settings.param_default_value(name)

    def update_param_value(self, caller, name, value):
        self._only_owner(caller)
        if not self.settings.is_valid_param(name, value):
            raise ValueError("Invalid param or value")
        self.params[name] = value
        self.events.emit(self.address, "UpdateParamValue", param=name, value=value)

    # Views

    def get_vault_state(self):
        """Builds the snapshot every pricing formula reads."""
        price, price_decimals = self.price_feed.latest_price()
        params = {name: self.get_param_value(name) for name in self.settings.params}
        aar = calc_aar(self.asset_total_amount, self.usb_total_supply, price, price_decimals)
        return VaultState(
            m_asset=self.asset_total_amount,
            m_usb=self.usb_total_supply,
            m_lev=self.leveraged_token.total_supply(),
            price=price,
            price_decimals=price_decimals,
            aar=aar,
            phase=calc_phase(aar, self.usb_total_supply, params),
            params=params,
            aar_below_safe_line_time=self.aar_below_safe_line_time,
            aar_below_circuit_breaker_line_time=self.aar_below_circuit_breaker_line_time,
            now=self.clock.now(),
        )

    def aar(self):
        price, price_decimals = self.price_feed.latest_price()
        return calc_aar(self.asset_total_amount, self.usb_total_supply, price, price_decimals)

    def is_circuit_breaker_active(self):
        return circuit_breaker_active(self.get_vault_state())

    def calculate_interest(self):
        """
        Returns:
            Tuple of (new_interest, total_interest); total includes leveraged tokens
            already settled to the vault but not yet distributed
        """
        new_interest = calc_interest(self.leveraged_token.total_supply(),
                                     self.get_param_value("Y"),
                                     self.clock.now() - self.last_interest_settlement_time)
        return new_interest, new_interest + self.leveraged_token.balance_of(self.address)

    # Call framing

    def _before_call(self):
        self._settle_yields()
        self._settle_interest()
        self._update_phase_and_timers()
        return self.get_vault_state()

    def _after_call(self):
        self._update_phase_and_timers()
        self._match_pty_pools()

    def _update_phase_and_timers(self):
        state = self.get_vault_state()
        if state.phase != self.vault_phase:
            logger.info("%s phase %s -> %s at AAR %d", self.address, self.vault_phase.name,
                        state.phase.name, state.aar)
            self.vault_phase = state.phase

        if state.phase == VaultPhase.ADJUSTMENT_BELOW_AARS:
            if self.aar_below_safe_line_time == 0:
                self.aar_below_safe_line_time = state.now
        else:
            self.aar_below_safe_line_time = 0

        if state.m_usb > 0 and state.aar < state.param("AARC"):
            if self.aar_below_circuit_breaker_line_time == 0:
                self.aar_below_circuit_breaker_line_time = state.now
                logger.warning("%s AAR %d below circuit breaker line", self.address, state.aar)
        else:
            self.aar_below_circuit_breaker_line_time = 0

    def check_aar(self):
        """Settles, re-evaluates phase and timers, and runs PtyPool matching."""
        with atomic(*self._entities()):
            self._before_call()
            self._after_call()
        return self.vault_phase

    # Token movements

    def _deposit_asset(self, user, asset_amount):
        self.asset_token.transfer(user, self.address, asset_amount)
        self.asset_total_amount += asset_amount

    def _pay_asset(self, user, net_amount, fee_amount):
        self.asset_total_amount -= net_amount + fee_amount
        if net_amount > 0:
            self.asset_token.transfer(self.address, user, net_amount)
        if fee_amount > 0:
            self.asset_token.transfer(self.address, self.settings.treasury, fee_amount)

    def _mint_usb(self, to, usb_amount, asset_amount, state):
        if usb_amount == 0:
            return
        usb_shares = self.usb.mint(self.address, to, usb_amount)
        self.usb_total_supply += usb_amount
        self.events.emit(self.address, "UsbMinted", user=to, asset_amount=asset_amount,
                         usb_amount=usb_amount, usb_shares=usb_shares, price=state.price,
                         price_decimals=state.price_decimals)

    def _burn_usb(self, account, usb_amount, state):
        if usb_amount == 0:
            return
        usb_shares = self.usb.burn(self.address, account, usb_amount)
        self.usb_total_supply -= usb_amount
        self.events.emit(self.address, "UsbBurned", user=account, usb_amount=usb_amount,
                         usb_shares=usb_shares, price=state.price,
                         price_decimals=state.price_decimals)

    def _mint_leveraged(self, to, leveraged_amount, asset_amount, state):
        if leveraged_amount == 0:
            return
        self.leveraged_token.mint(self.address, to, leveraged_amount)
        self.events.emit(self.address, "LeveragedTokenMinted", user=to,
                         asset_amount=asset_amount, leveraged_amount=leveraged_amount,
                         price=state.price, price_decimals=state.price_decimals)

    def _burn_leveraged(self, account, leveraged_amount, state):
        if leveraged_amount == 0:
            return
        self.leveraged_token.burn(self.address, account, leveraged_amount)
        self.events.emit(self.address, "LeveragedTokenBurned", user=account,
                         leveraged_amount=leveraged_amount, price=state.price,
                         price_decimals=state.price_decimals)

    @staticmethod
    def _require_positive(amount):
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")

    # Mints

    def mint_pairs_at_stability_phase(self, user, asset_amount):
        """
        Deposits reserve for $USB and leveraged tokens at the target ratio AART.

        Args:
            user: Address of the depositor
            asset_amount: Reserve deposited

        Returns:
            Tuple of (usb_amount, leveraged_amount) minted
        """
        self._require_positive(asset_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            usb_amount, leveraged_amount = calc_mint_pairs_at_stability_phase(state, asset_amount)
            self._deposit_asset(user, asset_amount)
            self._mint_usb(user, usb_amount, asset_amount, state)
            self._mint_leveraged(user, leveraged_amount, asset_amount, state)
            self._after_call()
        return usb_amount, leveraged_amount

    def mint_pairs_at_adjustment_phase(self, user, asset_amount):
        """Pair mint that leaves AAR unchanged, open in both adjustment phases."""
        self._require_positive(asset_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            usb_amount, leveraged_amount = calc_mint_pairs_at_adjustment_phase(state, asset_amount)
            self._deposit_asset(user, asset_amount)
            self._mint_usb(user, usb_amount, asset_amount, state)
            self._mint_leveraged(user, leveraged_amount, asset_amount, state)
            self._after_call()
        return usb_amount, leveraged_amount

    def mint_usb_above_aaru(self, user, asset_amount):
        self._require_positive(asset_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            usb_amount = calc_mint_usb_above_aaru(state, asset_amount)
            self._deposit_asset(user, asset_amount)
            self._mint_usb(user, usb_amount, asset_amount, state)
            self._after_call()
        return usb_amount

    def mint_leveraged_tokens_below_aars(self, user, asset_amount):
        self._require_positive(asset_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            leveraged_amount = calc_mint_leveraged_tokens_below_aars(state, asset_amount)
            self._deposit_asset(user, asset_amount)
            self._mint_leveraged(user, leveraged_amount, asset_amount, state)
            self._after_call()
        return leveraged_amount

    def usb_to_leveraged_tokens(self, user, usb_amount):
        """
        Conditional discount purchase: burns $USB for leveraged tokens while the
        vault is below AARS.

        Returns:
            Leveraged tokens minted
        """
        self._require_positive(usb_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            leveraged_amount = calc_usb_to_leveraged_tokens(state, usb_amount)
            self._burn_usb(user, usb_amount, state)
            self._mint_leveraged(user, leveraged_amount, 0, state)
            self.events.emit(self.address, "UsbToLeveragedTokens", user=user,
                             usb_amount=usb_amount, leveraged_amount=leveraged_amount,
                             price=state.price, price_decimals=state.price_decimals)
            self._after_call()
        return leveraged_amount

    # Redemptions

    def redeem_by_usb_below_aars(self, user, usb_amount):
        """
        Returns:
            Net reserve paid to the user
        """
        self._require_positive(usb_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            net_amount, fee_amount = calc_redeem_by_usb_below_aars(state, usb_amount)
            self._burn_usb(user, usb_amount, state)
            self._pay_asset(user, net_amount, fee_amount)
            self.events.emit(self.address, "AssetRedeemedWithUSB", user=user,
                             usb_amount=usb_amount, asset_amount=net_amount, price=state.price,
                             price_decimals=state.price_decimals)
            self.events.emit(self.address, "AssetRedeemedWithUSBFeeCollected", user=user,
                             fee_to=self.settings.treasury, usb_amount=usb_amount,
                             fee_amount=fee_amount, price=state.price,
                             price_decimals=state.price_decimals)
            self._after_call()
        return net_amount

    def _emit_leveraged_redemption(self, user, leveraged_amount, net_amount, fee_amount, state):
        self.events.emit(self.address, "AssetRedeemedWithLeveragedToken", user=user,
                         leveraged_amount=leveraged_amount, asset_amount=net_amount,
                         price=state.price, price_decimals=state.price_decimals)
        self.events.emit(self.address, "AssetRedeemedWithLeveragedTokenFeeCollected", user=user,
                         fee_to=self.settings.treasury, leveraged_amount=leveraged_amount,
                         fee_amount=fee_amount, price=state.price,
                         price_decimals=state.price_decimals)

    def redeem_by_leveraged_token_above_aaru(self, user, leveraged_amount):
        """Redeems leveraged tokens at NAV while the vault is above AARU."""
        self._require_positive(leveraged_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            net_amount, fee_amount = calc_redeem_by_leveraged_token_above_aaru(
                state, leveraged_amount)
            self._burn_leveraged(user, leveraged_amount, state)
            self._pay_asset(user, net_amount, fee_amount)
            self._emit_leveraged_redemption(user, leveraged_amount, net_amount, fee_amount, state)
            self._after_call()
        return net_amount

    def redeem_by_leveraged_tokens(self, user, leveraged_amount):
        """
        Redeems leveraged tokens together with the paired $USB, charging C2.

        Returns:
            Tuple of (paired_usb_amount, net_asset_amount)
        """
        self._require_positive(leveraged_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            usb_amount, net_amount, fee_amount = calc_redeem_by_leveraged_tokens(
                state, leveraged_amount)
            self._burn_usb(user, usb_amount, state)
            self._burn_leveraged(user, leveraged_amount, state)
            self._pay_asset(user, net_amount, fee_amount)
            self._emit_leveraged_redemption(user, leveraged_amount, net_amount, fee_amount, state)
            self._after_call()
        return usb_amount, net_amount

    def _redeem_pairs(self, user, usb_amount, leveraged_amount, asset_amount, state):
        self._burn_usb(user, usb_amount, state)
        self._burn_leveraged(user, leveraged_amount, state)
        self._pay_asset(user, asset_amount, 0)
        self.events.emit(self.address, "AssetRedeemedWithPairs", user=user,
                         usb_amount=usb_amount, leveraged_amount=leveraged_amount,
                         asset_amount=asset_amount, price=state.price,
                         price_decimals=state.price_decimals)

    def redeem_by_pairs_with_expected_usb_amount(self, user, usb_amount):
        """
        Returns:
            Tuple of (leveraged_amount burned, asset_amount paid)
        """
        self._require_positive(usb_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            leveraged_amount, asset_amount = calc_pairs_with_expected_usb_amount(state, usb_amount)
            self._redeem_pairs(user, usb_amount, leveraged_amount, asset_amount, state)
            self._after_call()
        return leveraged_amount, asset_amount

    def redeem_by_pairs_with_expected_leveraged_token_amount(self, user, leveraged_amount):
        """
        Returns:
            Tuple of (usb_amount burned, asset_amount paid)
        """
        self._require_positive(leveraged_amount)
        with atomic(*self._entities()):
            state = self._before_call()
            usb_amount, asset_amount = calc_pairs_with_expected_leveraged_token_amount(
                state, leveraged_amount)
            self._redeem_pairs(user, usb_amount, leveraged_amount, asset_amount, state)
            self._after_call()
        return usb_amount, asset_amount

    # Interest and yields

    def settle_interest(self):
        with atomic(*self._entities()):
            self._settle_interest()

    def settle_yields(self):
        """Splits reserve rebase gains between the PtyPools; no-op for plain reserves."""
        with atomic(*self._entities()):
            self._settle_yields()

    def _settle_interest(self):
        new_interest, total_interest = self.calculate_interest()
        self.last_interest_settlement_time = self.clock.now()
        if new_interest > 0:
            self.leveraged_token.mint(self.address, self.address, new_interest)
        distributed = total_interest > 0 and self._distribute_interest(total_interest)
        if new_interest > 0 or distributed:
            self.events.emit(self.address, "InterestSettlement", new_interest=new_interest,
                             total_interest=total_interest, distributed=distributed)

    def _distribute_interest(self, amount):
        below, above = self.pty_pool_below_aars, self.pty_pool_above_aaru
        if below is not None and below.total_staking_shares > 0:
            staking_part = amount * self.get_param_value("YieldsSplit") // ONE
            matching_part = amount - staking_part
            if staking_part > 0:
                self.leveraged_token.transfer(self.address, below.address, staking_part)
                below.add_staking_yields(self.address, staking_part)
            if matching_part > 0:
                self.leveraged_token.transfer(self.address, above.address, matching_part)
                above.add_matching_yields(self.address, matching_part)
            logger.info("%s distributed %d interest to PtyPools", self.address, amount)
            return True

        pool = self.interest_pool
        if (pool is not None and pool.total_staked_shares > 0
                and pool.reward_token_added(self.leveraged_token)):
            pool.add_rewards(self.address, self.leveraged_token, amount)
            logger.info("%s distributed %d interest to %s", self.address, amount, pool.address)
            return True
        return False

    def _settle_yields(self):
        below, above = self.pty_pool_below_aars, self.pty_pool_above_aaru
        if not self.asset_token.is_rebasing or below is None:
            return
        yields = self.asset_token.balance_of(self.address) - self.asset_total_amount
        if yields <= 0:
            return
        matching_part = yields * self.get_param_value("YieldsSplit") // ONE
        staking_part = yields - matching_part if above.total_staking_shares > 0 else 0
        if matching_part > 0:
            self.asset_token.transfer(self.address, below.address, matching_part)
            below.add_matching_yields(self.address, matching_part)
        if staking_part > 0:
            self.asset_token.transfer(self.address, above.address, staking_part)
            above.add_staking_yields(self.address, staking_part)
        self.events.emit(self.address, "YieldsSettlement",
                         yields=matching_part + staking_part)

    # PtyPool matching

    def _match_pty_pools(self):
        below, above = self.pty_pool_below_aars, self.pty_pool_above_aaru
        if below is None:
            return
        state = self.get_vault_state()
        if self.vault_phase == VaultPhase.ADJUSTMENT_BELOW_AARS and below.total_staking_shares > 0:
            usb_amount = min(calc_usb_to_match_below_aars(state), below.total_staking_balance())
            asset_amount = usb_amount * state.price_unit // state.price
            if usb_amount > 0 and 0 < asset_amount <= self.asset_total_amount:
                below.add_matched_tokens(self.address, asset_amount, usb_amount)
                self._burn_usb(below.address, usb_amount, state)
                self._pay_asset(below.address, asset_amount, 0)
                self.events.emit(self.address, "AssetRedeemedWithUSB", user=below.address,
                                 usb_amount=usb_amount, asset_amount=asset_amount,
                                 price=state.price, price_decimals=state.price_decimals)
                self._update_phase_and_timers()
        elif (self.vault_phase == VaultPhase.ADJUSTMENT_ABOVE_AARU
                and above.total_staking_shares > 0):
            asset_amount = min(calc_asset_to_match_above_aaru(state), above.total_staking_balance())
            usb_amount = asset_amount * state.price // state.price_unit
            if usb_amount > 0:
                above.add_matched_tokens(self.address, usb_amount, asset_amount)
                self.asset_total_amount += asset_amount
                self._mint_usb(above.address, usb_amount, asset_amount, state)
                self._update_phase_and_timers()
