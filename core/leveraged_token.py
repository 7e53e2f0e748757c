"""
Leveraged Token Model for Wand Protocol.

This module simulates the leveraged token (e.g. ETHx) of a vault. Only the vault
mints and burns it. Transfers between non-whitelisted accounts pay a fee to the
protocol treasury.
"""

from erc20_token import ERC20Token
from protocol_settings import ONE, percent


class LeveragedToken(ERC20Token):
    """
    Simulates the LeveragedToken contract.
    """

    _state_fields = ERC20Token._state_fields + ("vault", "fee", "whitelist")

    def __init__(self, symbol, owner, settings, events=None):
        super().__init__(symbol, 18, events)
        self.owner = owner
        self.settings = settings

        # Address of the vault, set once
        self.vault = None

        # Transfer fee in settings decimals
        self.fee = percent(0.08)

        # Addresses exempt from the transfer fee
        self.whitelist = set()

    def _only_owner(self, caller):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")

    def _only_vault(self, caller):
        if self.vault is None or caller != self.vault:
            raise ValueError("Caller is not Vault")

    def set_vault(self, caller, vault):
        self._only_owner(caller)
        if self.vault is not None:
            raise ValueError("Vault already set")
        if not vault:
            raise ValueError("Zero address detected")
        self.vault = vault
        self.events.emit(self.symbol, "SetVault", vault=vault)

    def set_fee(self, caller, new_fee):
        self._only_owner(caller)
        if new_fee < 0 or new_fee > ONE:
            raise ValueError("Invalid fee")
        previous_fee = self.fee
        self.fee = new_fee
        self.events.emit(self.symbol, "UpdatedFee", previous_fee=previous_fee, new_fee=new_fee)

    def set_whitelist_address(self, caller, account, whitelisted):
        self._only_owner(caller)
        if whitelisted:
            if account in self.whitelist:
                raise ValueError("Address already whitelisted")
            self.whitelist.add(account)
        else:
            if account not in self.whitelist:
                raise ValueError("Address not whitelisted")
            self.whitelist.remove(account)
        self.events.emit(self.symbol, "UpdateWhitelistAddress", account=account,
                         whitelisted=whitelisted)

    def is_whitelisted(self, account):
        return account in self.whitelist

    def mint(self, caller, to, amount):
        self._only_vault(caller)
        super().mint(to, amount)

    def burn(self, caller, account, amount):
        self._only_vault(caller)
        super().burn(account, amount)

    def transfer(self, sender, recipient, amount):
        """
        Transfers tokens, charging the transfer fee unless either side is whitelisted.

        Returns:
            True if successful
        """
        if amount < 0:
            raise ValueError("Amount must not be negative")
        if sender in self.whitelist or recipient in self.whitelist or self.fee == 0:
            return super().transfer(sender, recipient, amount)

        fee_amount = amount * self.fee // ONE
        treasury = self.settings.treasury
        if self.balance_of(sender) < amount:
            raise ValueError("Insufficient balance")
        super().transfer(sender, recipient, amount - fee_amount)
        if fee_amount > 0:
            super().transfer(sender, treasury, fee_amount)
            self.events.emit(self.symbol, "TransferFeeCollected", sender=sender,
                             treasury=treasury, fee=fee_amount)
        return True
