"""
Interest Pool Model for Wand Protocol.

This module simulates the InterestPool contract where $USB holders stake to receive
the interest vaults mint in leveraged tokens. Rewards are discrete deposits
distributed by the reward-per-token method, one accumulator per reward token.
Stakes are tracked in staking-token shares so a $USB rebase keeps every staker's
weight proportional.
"""

import logging

from atomic import Stateful, atomic

logger = logging.getLogger(__name__)

PRECISION = 10 ** 18


class InterestPool(Stateful):
    """
    Simulates the InterestPool contract.
    """

    _state_fields = ("total_staked_shares", "user_staked_shares", "reward_per_token_stored",
                     "user_reward_per_token_paid", "user_rewards")

    def __init__(self, owner, staking_token, events, reward_tokens=None):
        self.owner = owner
        self.staking_token = staking_token
        self.events = events
        self.address = "InterestPool:%s" % staking_token.symbol

        # Stakes, in staking-token shares
        self.total_staked_shares = 0
        self.user_staked_shares = {}

        # symbol -> token; reward tokens are never removed
        self.reward_tokens = {}

        # symbol -> accumulated reward per staked share
        self.reward_per_token_stored = {}

        # (user, symbol) -> accumulator value at the user's last update
        self.user_reward_per_token_paid = {}

        # (user, symbol) -> rewards credited but not yet paid
        self.user_rewards = {}

        for token in reward_tokens or []:
            self.add_reward_token(owner, token)

    def _entities(self):
        return (self, self.events, self.staking_token) + tuple(self.reward_tokens.values())

    def add_reward_token(self, caller, token):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")
        if token.symbol in self.reward_tokens:
            raise ValueError("Reward token already added")
        self.reward_tokens[token.symbol] = token
        self.reward_per_token_stored[token.symbol] = 0
        self.events.emit(self.address, "RewardTokenAdded", token=token.symbol)

    def reward_token_added(self, token):
        return token.symbol in self.reward_tokens

    def _require_reward_token(self, token):
        if not self.reward_token_added(token):
            raise ValueError("Invalid reward token")

    def total_staking_amount(self):
        return self.staking_token.get_balance_by_shares(self.total_staked_shares)

    def user_staking_amount(self, user):
        return self.staking_token.get_balance_by_shares(self.user_staked_shares.get(user, 0))

    def staking_rewards_earned(self, token, user):
        self._require_reward_token(token)
        return self._earned(token.symbol, user)

    def _earned(self, symbol, user):
        shares = self.user_staked_shares.get(user, 0)
        paid = self.user_reward_per_token_paid.get((user, symbol), 0)
        return (self.user_rewards.get((user, symbol), 0)
                + shares * (self.reward_per_token_stored[symbol] - paid) // PRECISION)

    def _update_rewards(self, user):
        for symbol in self.reward_tokens:
            self.user_rewards[(user, symbol)] = self._earned(symbol, user)
            self.user_reward_per_token_paid[(user, symbol)] = self.reward_per_token_stored[symbol]

    def stake(self, user, amount):
        """
        Stakes tokens into the pool.

        Args:
            user: Address of the staker
            amount: Amount of staking token to deposit
        """
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        with atomic(*self._entities()):
            self._update_rewards(user)
            share_amount = self.staking_token.get_shares_by_balance(amount)
            self.staking_token.transfer(user, self.address, amount)
            self.total_staked_shares += share_amount
            self.user_staked_shares[user] = self.user_staked_shares.get(user, 0) + share_amount
            self.events.emit(self.address, "Staked", user=user, amount=amount)

    def unstake(self, user, amount):
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        with atomic(*self._entities()):
            self._update_rewards(user)
            staked = self.user_staking_amount(user)
            if amount > staked:
                raise ValueError("Not enough staking amount")
            user_shares = self.user_staked_shares[user]
            if amount == staked:
                share_amount = user_shares
            else:
                share_amount = min(user_shares, self.staking_token.get_shares_by_balance(amount))
            self.user_staked_shares[user] = user_shares - share_amount
            self.total_staked_shares -= share_amount
            self.staking_token.transfer(self.address, user, amount)
            self.events.emit(self.address, "Unstaked", user=user, amount=amount)

    def add_rewards(self, caller, token, amount):
        """
        Deposits rewards from caller and distributes them over the current stakes.
        Rewards deposited while nothing is staked stay in the pool undistributed.
        """
        self._require_reward_token(token)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        with atomic(*self._entities()):
            token.transfer(caller, self.address, amount)
            if self.total_staked_shares > 0:
                self.reward_per_token_stored[token.symbol] += (amount * PRECISION
                                                               // self.total_staked_shares)
            else:
                logger.info("%s received %d %s with no stakers", self.address, amount,
                            token.symbol)
            self.events.emit(self.address, "StakingRewardsAdded", token=token.symbol,
                             amount=amount)

    def get_staking_rewards(self, user, token):
        """Pays the user's rewards in one token; returns the amount paid."""
        self._require_reward_token(token)
        with atomic(*self._entities()):
            self._update_rewards(user)
            amount = self.user_rewards.get((user, token.symbol), 0)
            if amount > 0:
                self.user_rewards[(user, token.symbol)] = 0
                token.transfer(self.address, user, amount)
                self.events.emit(self.address, "StakingRewardsPaid", token=token.symbol,
                                 user=user, amount=amount)
        return amount

    def get_all_staking_rewards(self, user):
        """Pays rewards in every token; returns a dict of symbol to amount paid."""
        with atomic(*self._entities()):
            return {symbol: self.get_staking_rewards(user, token)
                    for symbol, token in list(self.reward_tokens.items())}
