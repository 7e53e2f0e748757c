"""
Price Feed Model for Wand Protocol.

Mock oracle returning the reserve asset price as an integer together with its
decimals exponent.
"""


class PriceFeed:
    """Simulates a price oracle for one reserve asset."""

    def __init__(self, initial_price=2000, decimals=8):
        self.decimals = decimals
        self.price = 0
        self.set_price(initial_price)

    def latest_price(self):
        """Returns the (price, decimals) pair."""
        return self.price, self.decimals

    def fetch_price(self):
        """Returns the price as a float, for reporting."""
        return self.price / 10 ** self.decimals

    def set_price(self, new_price):
        """Sets the price; floats are converted to fixed point."""
        if new_price <= 0:
            raise ValueError("Price must be positive")
        self.price = int(round(new_price * 10 ** self.decimals))
