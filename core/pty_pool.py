"""
PtyPool Model for Wand Protocol.

This module simulates the PtyPool contracts. Each vault has two pools that
pre-commit capital for rebalancing:

- RedeemByUsbBelowAARS: stakers deposit $USB. When AAR drops below AARS, the vault
  redeems part of the staked $USB for reserve at spot price and the reserve becomes
  claimable by the stakers.
- MintUsbAboveAARU: stakers deposit the reserve asset. When AAR rises above AARU,
  the vault mints $USB with part of the staked reserve and the $USB becomes claimable.

Stakers earn three independent streams: staking yields (continuous, per share),
matching yields (accumulated, then split among the shares present at the next
match) and the matched tokens themselves.
"""

import logging
from enum import Enum

from atomic import Stateful, atomic
from vault_calculator import VaultPhase

logger = logging.getLogger(__name__)

PRECISION = 10 ** 18


class PtyPoolType(Enum):
    REDEEM_BY_USB_BELOW_AARS = 0
    MINT_USB_ABOVE_AARU = 1


class PtyPool(Stateful):
    """
    Simulates a PtyPool contract.
    """

    _state_fields = (
        "total_staking_shares", "total_staking_token_shares", "user_staking_shares",
        "staking_yields_per_share", "user_staking_yields_per_share_paid", "user_staking_yields",
        "pending_matching_yields", "matching_yields_per_share",
        "user_matching_yields_per_share_paid", "user_matching_yields",
        "matched_tokens_per_share", "user_matched_tokens_per_share_paid", "user_matched_tokens",
    )

    def __init__(self, vault, pool_type, staking_token, target_token,
                 staking_yields_token, matching_yields_token, events):
        self.vault = vault
        self.pool_type = pool_type
        self.staking_token = staking_token
        self.target_token = target_token
        self.staking_yields_token = staking_yields_token
        self.matching_yields_token = matching_yields_token
        self.events = events
        self.address = "%s:PtyPool%s" % (vault.address, pool_type.name)

        # Pool-level staking shares, 1:1 with the first stake
        self.total_staking_shares = 0
        self.user_staking_shares = {}

        # Staking-token shares held for stakers (equal to balance for plain tokens)
        self.total_staking_token_shares = 0

        # Staking yields, distributed per share as they arrive
        self.staking_yields_per_share = 0
        self.user_staking_yields_per_share_paid = {}
        self.user_staking_yields = {}

        # Matching yields, held back until the next match
        self.pending_matching_yields = 0
        self.matching_yields_per_share = 0
        self.user_matching_yields_per_share_paid = {}
        self.user_matching_yields = {}

        # Matched target tokens
        self.matched_tokens_per_share = 0
        self.user_matched_tokens_per_share_paid = {}
        self.user_matched_tokens = {}

    def _only_vault(self, caller):
        if caller != self.vault.address:
            raise ValueError("Caller is not Vault")

    def _entities(self):
        return (self, self.events, self.staking_token, self.target_token,
                self.staking_yields_token, self.matching_yields_token)

    # Views

    def total_staking_balance(self):
        return self.staking_token.get_balance_by_shares(self.total_staking_token_shares)

    def user_staking_balance(self, user):
        shares = self.user_staking_shares.get(user, 0)
        if shares == 0:
            return 0
        return shares * self.total_staking_balance() // self.total_staking_shares

    def earned_staking_yields(self, user):
        shares = self.user_staking_shares.get(user, 0)
        paid = self.user_staking_yields_per_share_paid.get(user, 0)
        return (self.user_staking_yields.get(user, 0)
                + shares * (self.staking_yields_per_share - paid) // PRECISION)

    def earned_matching_yields(self, user):
        shares = self.user_staking_shares.get(user, 0)
        paid = self.user_matching_yields_per_share_paid.get(user, 0)
        return (self.user_matching_yields.get(user, 0)
                + shares * (self.matching_yields_per_share - paid) // PRECISION)

    def earned_matched_token(self, user):
        shares = self.user_staking_shares.get(user, 0)
        paid = self.user_matched_tokens_per_share_paid.get(user, 0)
        return (self.user_matched_tokens.get(user, 0)
                + shares * (self.matched_tokens_per_share - paid) // PRECISION)

    def _update_rewards(self, user):
        self.user_staking_yields[user] = self.earned_staking_yields(user)
        self.user_staking_yields_per_share_paid[user] = self.staking_yields_per_share
        self.user_matching_yields[user] = self.earned_matching_yields(user)
        self.user_matching_yields_per_share_paid[user] = self.matching_yields_per_share
        self.user_matched_tokens[user] = self.earned_matched_token(user)
        self.user_matched_tokens_per_share_paid[user] = self.matched_tokens_per_share

    def _retire_shares(self):
        """Freezes every staker's credits and drops all pool shares."""
        for user in list(self.user_staking_shares):
            self._update_rewards(user)
            self.user_staking_shares[user] = 0
        self.total_staking_shares = 0
        self.total_staking_token_shares = 0

    # Staking

    def stake(self, user, amount):
        """
        Stakes tokens into the pool.

        Args:
            user: Address of the staker
            amount: Amount of staking token to deposit

        Returns:
            The pool shares minted
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        with atomic(*self._entities()):
            self._update_rewards(user)
            total_balance = self.total_staking_balance()
            if total_balance == 0 and self.total_staking_shares > 0:
                # Shares left over a worthless balance are retired before restarting at 1:1
                self._retire_shares()
            if self.total_staking_shares == 0:
                shares = amount
            else:
                shares = amount * self.total_staking_shares // total_balance
            token_shares = self.staking_token.get_shares_by_balance(amount)
            self.staking_token.transfer(user, self.address, amount)

            self.total_staking_token_shares += token_shares
            self.total_staking_shares += shares
            self.user_staking_shares[user] = self.user_staking_shares.get(user, 0) + shares
            self.events.emit(self.address, "Staked", user=user, amount=amount)
        return shares

    def withdraw(self, user, amount):
        """Withdraws staked tokens; the full balance may always be withdrawn exactly."""
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        with atomic(*self._entities()):
            self._update_rewards(user)
            balance = self.user_staking_balance(user)
            if amount > balance:
                raise ValueError("Insufficient staking balance")
            user_shares = self.user_staking_shares[user]
            if amount == balance:
                shares = user_shares
            else:
                total_balance = self.total_staking_balance()
                shares = min(user_shares,
                             -(-amount * self.total_staking_shares // total_balance))
            token_shares = min(self.staking_token.get_shares_by_balance(amount),
                               self.total_staking_token_shares)

            self.user_staking_shares[user] = user_shares - shares
            self.total_staking_shares -= shares
            self.total_staking_token_shares -= token_shares
            if self.total_staking_shares == 0:
                # Rounding dust belongs to nobody
                self.total_staking_token_shares = 0
            self.staking_token.transfer(self.address, user, amount)
            self.events.emit(self.address, "Withdrawn", user=user, amount=amount)

    def exit(self, user):
        """Withdraws the whole stake and claims every reward stream."""
        balance = self.user_staking_balance(user)
        with atomic(*self._entities()):
            if balance > 0:
                self.withdraw(user, balance)
            self.claim_staking_yields(user)
            self.claim_matching_tokens_and_yields(user)

    # Vault callbacks

    def add_staking_yields(self, caller, amount):
        """
        Distributes staking yields (already transferred to the pool) per share.
        Only callable by the vault.
        """
        self._only_vault(caller)
        if self.total_staking_shares == 0:
            raise ValueError("No staking shares")
        self.staking_yields_per_share += amount * PRECISION // self.total_staking_shares
        self.events.emit(self.address, "StakingYieldsAdded", amount=amount)

    def add_matching_yields(self, caller, amount):
        """Holds matching yields until the next match."""
        self._only_vault(caller)
        self.pending_matching_yields += amount
        self.events.emit(self.address, "MatchingYieldsAdded", amount=amount)

    def add_matched_tokens(self, caller, matched_amount, staking_amount):
        """
        Records a match: staking_amount of staked tokens left the pool and
        matched_amount of target tokens arrived.

        Args:
            caller: Must be the vault
            matched_amount: Target tokens credited to stakers
            staking_amount: Staking tokens consumed by the match
        """
        self._only_vault(caller)
        if self.pool_type == PtyPoolType.REDEEM_BY_USB_BELOW_AARS:
            if self.vault.vault_phase != VaultPhase.ADJUSTMENT_BELOW_AARS:
                raise ValueError("Vault not at adjustment below AARS phase")
        elif self.vault.vault_phase != VaultPhase.ADJUSTMENT_ABOVE_AARU:
            raise ValueError("Vault not at adjustment above AARU phase")
        if self.total_staking_shares == 0:
            raise ValueError("No staking shares")
        total_balance = self.total_staking_balance()
        if staking_amount > total_balance:
            raise ValueError("Insufficient staking balance")
        if staking_amount == total_balance:
            token_shares = self.total_staking_token_shares
        else:
            token_shares = min(self.staking_token.get_shares_by_balance(staking_amount),
                               self.total_staking_token_shares)

        self.total_staking_token_shares -= token_shares
        if self.pool_type == PtyPoolType.MINT_USB_ABOVE_AARU:
            self.staking_token.transfer(self.address, self.vault.address, staking_amount)

        self.matched_tokens_per_share += matched_amount * PRECISION // self.total_staking_shares
        self.events.emit(self.address, "MatchedTokensAdded", matched_amount=matched_amount,
                         staking_amount=staking_amount)
        if self.pending_matching_yields > 0:
            self.matching_yields_per_share += (self.pending_matching_yields * PRECISION
                                               // self.total_staking_shares)
            self.pending_matching_yields = 0

        if self.total_staking_token_shares == 0:
            # Fully matched
            self._retire_shares()
        logger.info("%s matched %d staking tokens for %d target tokens",
                    self.address, staking_amount, matched_amount)

    # Claims

    def claim_staking_yields(self, user):
        with atomic(*self._entities()):
            self._update_rewards(user)
            amount = self.user_staking_yields.get(user, 0)
            if amount > 0:
                self.user_staking_yields[user] = 0
                self.staking_yields_token.transfer(self.address, user, amount)
                self.events.emit(self.address, "StakingYieldsPaid", user=user, amount=amount)
        return amount

    def claim_matching_tokens_and_yields(self, user):
        """
        Returns:
            Tuple of (matched_tokens_paid, matching_yields_paid)
        """
        with atomic(*self._entities()):
            self._update_rewards(user)
            matched = self.user_matched_tokens.get(user, 0)
            if matched > 0:
                self.user_matched_tokens[user] = 0
                self.target_token.transfer(self.address, user, matched)
                self.events.emit(self.address, "MatchedTokensPaid", user=user, amount=matched)
            yields = self.user_matching_yields.get(user, 0)
            if yields > 0:
                self.user_matching_yields[user] = 0
                self.matching_yields_token.transfer(self.address, user, yields)
                self.events.emit(self.address, "MatchingYieldsPaid", user=user, amount=yields)
        return matched, yields
