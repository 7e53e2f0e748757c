"""
Visualization simulation for Wand Protocol Economic Model.

This script runs a month of hourly random price moves against an ETH vault with
staked PtyPools and plots price, AAR, phase and supplies.
"""

import logging
import sys
import os

import numpy as np

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import WandProtocolEconomicModel, to_wei
from erc20_token import ERC20Token
from price_feed import PriceFeed


def run_visualization_simulation(seed=None):
    model = WandProtocolEconomicModel()
    eth = ERC20Token("ETH", events=model.events)
    vault = model.add_vault(eth, PriceFeed(2000), "ETHx")
    rng = np.random.default_rng(seed)

    print("Minting pairs...")
    for i in range(10):
        user = f"user{i}"
        amount = rng.uniform(2.0, 10.0)
        eth.mint(user, to_wei(100))
        vault.mint_pairs_at_stability_phase(user, to_wei(round(amount, 6)))
        print(f"{user}: deposited {amount:.2f} ETH")

    print("\nStaking into PtyPools...")
    for i in range(0, 10, 2):
        user = f"user{i}"
        vault.pty_pool_below_aars.stake(user, model.usb.balance_of(user) // 2)
        vault.pty_pool_above_aaru.stake(f"user{i + 1}", to_wei(20))

    print("\nRunning simulation with visualizations...")
    results = model.simulate_market_scenario("ETH", 30, price_volatility=0.03, plot_results=True,
                                             seed=seed)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)
    run_visualization_simulation()
