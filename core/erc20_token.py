"""
Reserve Token Models for Wand Protocol.

Plain ERC20 reserves (ETH, WBTC) and stETH-like rebasing reserves. Both expose the
same share-capability surface so that vaults and pools can treat them alike: for
plain tokens shares and balances are the same number.
"""

from atomic import Stateful
from event_log import EventLog
from share_ledger import ShareLedger


class ERC20Token(Stateful):
    """
    Simulates a plain ERC20 token, mintable for simulation purposes.
    """

    is_rebasing = False

    _state_fields = ("_total_supply", "balances", "allowances")

    def __init__(self, symbol, decimals=18, events=None):
        self.symbol = symbol
        self.decimals = decimals

        # Total token supply
        self._total_supply = 0

        # Mapping of addresses to token balances
        self.balances = {}

        # Mapping of (owner, spender) to allowance
        self.allowances = {}

        self.events = events if events is not None else EventLog()

    def total_supply(self):
        return self._total_supply

    def balance_of(self, account):
        """Returns the token balance of the given account."""
        return self.balances.get(account, 0)

    # Share capability, degenerate for non-rebasing tokens
    def shares_of(self, account):
        return self.balance_of(account)

    def get_shares_by_balance(self, amount):
        return amount

    def get_balance_by_shares(self, share_amount):
        return share_amount

    def mint(self, to, amount):
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        self._total_supply += amount
        self.balances[to] = self.balance_of(to) + amount
        self.events.emit(self.symbol, "Transfer", sender=None, recipient=to, value=amount)

    def burn(self, account, amount):
        self._debit(account, amount)
        self._total_supply -= amount
        self.events.emit(self.symbol, "Transfer", sender=account, recipient=None, value=amount)

    def approve(self, owner, spender, amount):
        self.allowances[(owner, spender)] = amount
        self.events.emit(self.symbol, "Approval", owner=owner, spender=spender, value=amount)
        return True

    def allowance(self, owner, spender):
        return self.allowances.get((owner, spender), 0)

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
        self._debit(sender, amount)
        self.balances[recipient] = self.balance_of(recipient) + amount
        self.events.emit(self.symbol, "Transfer", sender=sender, recipient=recipient, value=amount)
        return True

    def transfer_from(self, spender, sender, recipient, amount):
        current = self.allowance(sender, spender)
        if current < amount:
            raise ValueError("Allowance exceeded")
        self.allowances[(sender, spender)] = current - amount
        return self.transfer(sender, recipient, amount)

    def _debit(self, account, amount):
        if amount < 0:
            raise ValueError("Amount must not be negative")
        balance = self.balance_of(account)
        if balance < amount:
            raise ValueError("Insufficient balance")
        self.balances[account] = balance - amount


class RebasableToken(ShareLedger):
    """
    Simulates an stETH-like reserve token whose supply follows staking rewards
    and slashing penalties submitted by its admin.
    """

    def __init__(self, symbol, admin, events=None):
        super().__init__(symbol, events)
        self.admin = admin

    def _only_admin(self, caller):
        if caller != self.admin:
            raise ValueError("Caller is not admin")

    def mint(self, caller, to, amount):
        self._only_admin(caller)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        return self._mint(to, amount)

    def add_rewards(self, caller, amount):
        self._only_admin(caller)
        self._rebase(amount)

    def submit_penalties(self, caller, amount):
        self._only_admin(caller)
        self._submit_penalties(amount)
