"""
Share Ledger Model for Wand Protocol.

This module simulates the rebasing balance primitive shared by $USB and the
stETH-like reserve tokens. Holders own shares; balances are shares scaled by
the ledger's current supply/shares exchange rate, so a rebase changes every
balance at once without touching per-holder state.
"""

from atomic import Stateful
from event_log import EventLog


class ShareLedger(Stateful):
    """
    Simulates a rebasing ERC20 token built on shares.

    balance_of(a) = shares[a] * total_supply / total_shares
    """

    is_rebasing = True

    _state_fields = ("total_shares", "_total_supply", "shares", "allowances")

    def __init__(self, symbol, events=None):
        self.symbol = symbol
        self.decimals = 18

        # Sum of all holder shares
        self.total_shares = 0

        # Token supply; may drift away from total_shares through rebases
        self._total_supply = 0

        # Mapping of addresses to shares
        self.shares = {}

        # Mapping of (owner, spender) to allowance in token amount
        self.allowances = {}

        self.events = events if events is not None else EventLog()

    def total_supply(self):
        return self._total_supply

    def shares_of(self, account):
        return self.shares.get(account, 0)

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.get_balance_by_shares(self.shares_of(account))

    def get_shares_by_balance(self, amount):
        if self.total_shares == 0 or self._total_supply == 0:
            return amount
        return amount * self.total_shares // self._total_supply

    def get_balance_by_shares(self, share_amount):
        if self.total_shares == 0:
            return 0
        return share_amount * self._total_supply // self.total_shares

    def allowance(self, owner, spender):
        return self.allowances.get((owner, spender), 0)

    def approve(self, owner, spender, amount):
        if amount < 0:
            raise ValueError("Negative allowance")
        self.allowances[(owner, spender)] = amount
        self.events.emit(self.symbol, "Approval", owner=owner, spender=spender, value=amount)
        return True

    def increase_allowance(self, owner, spender, added_value):
        return self.approve(owner, spender, self.allowance(owner, spender) + added_value)

    def decrease_allowance(self, owner, spender, subtracted_value):
        current = self.allowance(owner, spender)
        if subtracted_value > current:
            raise ValueError("Allowance below zero")
        return self.approve(owner, spender, current - subtracted_value)

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens from sender to recipient.

        Args:
            sender: Address sending the tokens
            recipient: Address receiving the tokens
            amount: Amount of tokens to transfer

        Returns:
            True if successful
        """
        share_amount = self.get_shares_by_balance(amount)
        self._transfer_shares(sender, recipient, share_amount)
        self._emit_transfer_events(sender, recipient, amount, share_amount)
        return True

    def transfer_from(self, spender, sender, recipient, amount):
        self._spend_allowance(sender, spender, amount)
        return self.transfer(sender, recipient, amount)

    def transfer_shares(self, sender, recipient, share_amount):
        """Transfers a share amount; returns the token amount it was worth."""
        amount = self.get_balance_by_shares(share_amount)
        self._transfer_shares(sender, recipient, share_amount)
        self._emit_transfer_events(sender, recipient, amount, share_amount)
        return amount

    def transfer_shares_from(self, spender, sender, recipient, share_amount):
        amount = self.get_balance_by_shares(share_amount)
        self._spend_allowance(sender, spender, amount)
        self._transfer_shares(sender, recipient, share_amount)
        self._emit_transfer_events(sender, recipient, amount, share_amount)
        return amount

    def _spend_allowance(self, owner, spender, amount):
        current = self.allowance(owner, spender)
        if current < amount:
            raise ValueError("Allowance exceeded")
        self.allowances[(owner, spender)] = current - amount

    def _transfer_shares(self, sender, recipient, share_amount):
        if share_amount < 0:
            raise ValueError("Amount must not be negative")
        sender_shares = self.shares_of(sender)
        if sender_shares < share_amount:
            raise ValueError("Insufficient balance")
        self.shares[sender] = sender_shares - share_amount
        self.shares[recipient] = self.shares_of(recipient) + share_amount

    def _emit_transfer_events(self, sender, recipient, amount, share_amount):
        self.events.emit(self.symbol, "Transfer", sender=sender, recipient=recipient, value=amount)
        self.events.emit(self.symbol, "TransferShares", sender=sender, recipient=recipient,
                         shares=share_amount)

    def _mint(self, to, amount):
        # First mint fixes the exchange rate at 1:1
        share_amount = self.get_shares_by_balance(amount)
        self.total_shares += share_amount
        self._total_supply += amount
        self.shares[to] = self.shares_of(to) + share_amount
        self._emit_transfer_events(None, to, amount, share_amount)
        return share_amount

    def _burn(self, account, amount):
        share_amount = self.get_shares_by_balance(amount)
        account_shares = self.shares_of(account)
        if account_shares < share_amount:
            raise ValueError("Insufficient balance")
        self.shares[account] = account_shares - share_amount
        self.total_shares -= share_amount
        self._total_supply -= amount
        self._emit_transfer_events(account, None, amount, share_amount)
        return share_amount

    def _rebase(self, amount):
        self._total_supply += amount
        self.events.emit(self.symbol, "Rebased", amount=amount)

    def _submit_penalties(self, amount):
        # Outstanding shares must keep a nonzero backing
        if amount > self._total_supply or (self.total_shares > 0 and amount == self._total_supply):
            raise ValueError("Penalties exceed total supply")
        self._total_supply -= amount
        self.events.emit(self.symbol, "SubmitPenalties", amount=amount)
