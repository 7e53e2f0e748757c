"""
USB Token Model for Wand Protocol.

This module simulates the $USB stablecoin. $USB is a rebasing token: vaults mint
and burn it against reserve deposits, and the owner (or a vault) may rebase it to
pass on yield to every holder at once.
"""

from share_ledger import ShareLedger


class Usb(ShareLedger):
    """
    Simulates the Usb contract, the protocol's rebasing stablecoin.
    """

    _state_fields = ShareLedger._state_fields + ("minters",)

    def __init__(self, owner, events=None):
        super().__init__("USB", events)

        # Owner of the contract
        self.owner = owner

        # Vaults allowed to mint and burn
        self.minters = set()

    def add_minter(self, caller, minter):
        """
        Adds an address to the list of allowed minters.
        Only callable by the owner.
        """
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")
        self.minters.add(minter)

    def remove_minter(self, caller, minter):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")
        self.minters.discard(minter)

    def _only_minter(self, caller):
        if caller not in self.minters:
            raise ValueError("Caller is not a minter")

    def mint(self, caller, to, amount):
        """
        Mints $USB to an account at the current exchange rate.

        Returns:
            The number of shares minted
        """
        self._only_minter(caller)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        return self._mint(to, amount)

    def burn(self, caller, account, amount):
        """
        Burns $USB from an account.

        Returns:
            The number of shares burned
        """
        self._only_minter(caller)
        if amount <= 0:
            raise ValueError("Amount must be greater than zero")
        return self._burn(account, amount)

    def rebase(self, caller, amount):
        if caller != self.owner and caller not in self.minters:
            raise ValueError("Caller is not a minter")
        self._rebase(amount)

    def submit_penalties(self, caller, amount):
        if caller != self.owner:
            raise ValueError("Ownable: caller is not the owner")
        self._submit_penalties(amount)
