"""
Economic Model for Wand Protocol.

This main module combines all the individual components to create a complete
economic model of the Wand Protocol $USB system: it deploys the shared contracts,
wires each vault to its leveraged token and PtyPools, and simulates market
scenarios for analysis.
"""

import logging
from decimal import Decimal

import numpy as np
import matplotlib.pyplot as plt

from event_log import EventLog
from sim_clock import SimClock
from protocol_settings import ProtocolSettings, ONE
from usb_token import Usb
from leveraged_token import LeveragedToken
from interest_pool import InterestPool
from pty_pool import PtyPool, PtyPoolType
from vault import Vault
from vault_calculator import AAR_INFINITE, VaultPhase

logger = logging.getLogger(__name__)

WEI = 10 ** 18


def to_wei(amount):
    """Converts a token amount to 18-decimal fixed point."""
    return int(Decimal(str(amount)) * WEI)


def from_wei(amount):
    return amount / WEI


class WandProtocolEconomicModel:
    """
    Complete economic model of the Wand Protocol.
    Deploys and links all components and provides simulation capabilities.
    """

    def __init__(self, owner="owner", treasury="treasury", start_time=None):
        self.owner = owner

        # Shared infrastructure
        self.events = EventLog()
        self.clock = SimClock(start_time)
        self.settings = ProtocolSettings(owner, treasury, self.events)

        # $USB and the pool paying interest to its stakers
        self.usb = Usb(owner, self.events)
        self.interest_pool = InterestPool(owner, self.usb, self.events)

        # symbol -> Vault
        self.vaults = {}

        # History tracking for simulations, per vault symbol
        self.history = {}

    def add_vault(self, asset_token, price_feed, leveraged_symbol, params=None):
        """
        Creates a vault for a reserve asset and links it to a new leveraged token
        and its two PtyPools.

        Args:
            asset_token: Reserve token (plain or rebasing)
            price_feed: Oracle for the reserve price
            leveraged_symbol: Symbol of the leveraged token, e.g. "ETHx"
            params: Optional per-vault parameter overrides

        Returns:
            The new Vault
        """
        if asset_token.symbol in self.vaults:
            raise ValueError("Vault already exists for %s" % asset_token.symbol)

        leveraged_token = LeveragedToken(leveraged_symbol, self.owner, self.settings,
                                         self.events)
        vault = Vault(self.owner, asset_token, leveraged_token, self.usb, price_feed,
                      self.settings, self.clock, self.events)
        for name, value in (params or {}).items():
            vault.update_param_value(self.owner, name, value)

        pty_pool_below_aars = PtyPool(vault, PtyPoolType.REDEEM_BY_USB_BELOW_AARS,
                                      staking_token=self.usb, target_token=asset_token,
                                      staking_yields_token=leveraged_token,
                                      matching_yields_token=asset_token, events=self.events)
        pty_pool_above_aaru = PtyPool(vault, PtyPoolType.MINT_USB_ABOVE_AARU,
                                      staking_token=asset_token, target_token=self.usb,
                                      staking_yields_token=asset_token,
                                      matching_yields_token=leveraged_token, events=self.events)

        # Link components
        leveraged_token.set_vault(self.owner, vault.address)
        vault.set_pty_pools(self.owner, pty_pool_below_aars, pty_pool_above_aaru)
        vault.set_interest_pool(self.owner, self.interest_pool)
        self.usb.add_minter(self.owner, vault.address)
        self.interest_pool.add_reward_token(self.owner, leveraged_token)
        for address in (vault.address, pty_pool_below_aars.address,
                        pty_pool_above_aaru.address, self.interest_pool.address):
            leveraged_token.set_whitelist_address(self.owner, address, True)

        self.vaults[asset_token.symbol] = vault
        self.history[asset_token.symbol] = []
        logger.info("Added %s vault with leveraged token %s", asset_token.symbol,
                    leveraged_symbol)
        return vault

    def update_price(self, symbol, new_price):
        """Sets the reserve price of a vault and re-checks its AAR."""
        vault = self.vaults[symbol]
        vault.price_feed.set_price(new_price)
        vault.check_aar()
        self._update_history(symbol)

    def update_time(self, seconds):
        return self.clock.update_time(seconds)

    def get_system_state(self, symbol):
        """
        Returns a readable summary of a vault.
        """
        vault = self.vaults[symbol]
        state = vault.get_vault_state()
        return {
            'time': self.clock.now(),
            'price': vault.price_feed.fetch_price(),
            'asset_total_amount': from_wei(state.m_asset),
            'usb_total_supply': from_wei(state.m_usb),
            'leveraged_total_supply': from_wei(state.m_lev),
            'aar': None if state.aar == AAR_INFINITE else state.aar / ONE,
            'phase': vault.vault_phase.name,
            'below_aars_pool_balance': from_wei(vault.pty_pool_below_aars.total_staking_balance()),
            'above_aaru_pool_balance': from_wei(vault.pty_pool_above_aaru.total_staking_balance()),
        }

    def _update_history(self, symbol):
        self.history[symbol].append(self.get_system_state(symbol))

    def simulate_market_scenario(self, symbol, days, price_volatility=0.02, plot_results=True,
                                 seed=None):
        """
        Run a simulation with random price movements over the specified period.

        Each hourly step moves the price along a log-normal path, advances the clock
        and lets the vault settle interest, update its phase and run PtyPool matching.

        Args:
            symbol: Reserve symbol of the vault to simulate
            days: Number of days to simulate
            price_volatility: Standard deviation of daily log returns for price
            plot_results: Whether to generate plots of the results
            seed: Optional seed for reproducible runs

        Returns:
            Dictionary with simulation results
        """
        vault = self.vaults[symbol]
        steps = days * 24
        step_size = 3600
        rng = np.random.default_rng(seed)

        time_points = np.zeros(steps)
        price_points = np.zeros(steps)
        aar_points = np.zeros(steps)
        phase_points = np.zeros(steps, dtype=int)
        usb_points = np.zeros(steps)
        leveraged_points = np.zeros(steps)

        # Daily volatility scaled to hourly steps
        log_returns = rng.normal(0, price_volatility / np.sqrt(24), steps)
        price = vault.price_feed.fetch_price()
        start_time = self.clock.now()

        for i in range(steps):
            price *= np.exp(log_returns[i])
            vault.price_feed.set_price(price)
            self.update_time(step_size)
            vault.check_aar()

            state = vault.get_vault_state()
            time_points[i] = (self.clock.now() - start_time) / (24 * 3600)
            price_points[i] = vault.price_feed.fetch_price()
            aar_points[i] = np.nan if state.aar == AAR_INFINITE else state.aar / ONE
            phase_points[i] = vault.vault_phase.value
            usb_points[i] = from_wei(state.m_usb)
            leveraged_points[i] = from_wei(state.m_lev)

        if plot_results:
            fig, axs = plt.subplots(4, 1, figsize=(12, 16), sharex=True)

            axs[0].plot(time_points, price_points)
            axs[0].set_title('%s Price' % symbol)
            axs[0].set_ylabel('USD')

            axs[1].plot(time_points, aar_points)
            for name in ("AARU", "AART", "AARS", "AARC"):
                axs[1].axhline(vault.get_param_value(name) / ONE, linestyle='--', label=name)
            axs[1].set_title('Adequacy Asset Ratio')
            axs[1].legend()

            axs[2].step(time_points, phase_points)
            axs[2].set_yticks([p.value for p in VaultPhase])
            axs[2].set_yticklabels([p.name for p in VaultPhase])
            axs[2].set_title('Vault Phase')

            axs[3].plot(time_points, usb_points, label='$USB')
            axs[3].plot(time_points, leveraged_points, label=vault.leveraged_token.symbol)
            axs[3].set_title('Supplies')
            axs[3].set_xlabel('Days')
            axs[3].legend()

            plt.tight_layout()
            plt.show()

        phases, counts = np.unique(phase_points, return_counts=True)
        return {
            'final_price': vault.price_feed.fetch_price(),
            'final_aar': aar_points[-1] if steps else None,
            'min_aar': float(np.nanmin(aar_points)) if steps else None,
            'max_aar': float(np.nanmax(aar_points)) if steps else None,
            'final_usb_supply': from_wei(vault.usb_total_supply),
            'final_leveraged_supply': from_wei(vault.leveraged_token.total_supply()),
            'phase_hours': {VaultPhase(int(p)).name: int(c) for p, c in zip(phases, counts)},
        }
