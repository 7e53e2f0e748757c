"""
Simple simulation for Wand Protocol Economic Model.

This script walks one ETH vault through its phases: stability minting, a price
rally that lets the MintUsbAboveAARU pool match, and a price drop that lets the
RedeemByUsbBelowAARS pool match.
"""

import logging
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import WandProtocolEconomicModel, to_wei, from_wei
from erc20_token import ERC20Token
from price_feed import PriceFeed


def print_state(model, symbol):
    state = model.get_system_state(symbol)
    aar = "inf" if state['aar'] is None else "%.2f%%" % (state['aar'] * 100)
    print(f"  Price: ${state['price']:.2f}, AAR: {aar}, phase: {state['phase']}")
    print(f"  Reserve: {state['asset_total_amount']:.4f} {symbol}, "
          f"$USB: {state['usb_total_supply']:.2f}, "
          f"leveraged: {state['leveraged_total_supply']:.4f}")
    print(f"  PtyPool below AARS: {state['below_aars_pool_balance']:.2f} $USB, "
          f"above AARU: {state['above_aaru_pool_balance']:.4f} {symbol}")


def run_basic_simulation():
    model = WandProtocolEconomicModel()
    eth = ERC20Token("ETH", events=model.events)
    vault = model.add_vault(eth, PriceFeed(2000), "ETHx")
    usb = model.usb
    for user in ("alice", "bob", "caro"):
        eth.mint(user, to_wei(100))

    print("Minting pairs at stability phase...")
    usb_amount, leveraged_amount = vault.mint_pairs_at_stability_phase("alice", to_wei(10))
    print(f"alice: 10 ETH -> {from_wei(usb_amount):.2f} $USB + {from_wei(leveraged_amount):.4f} ETHx")
    print_state(model, "ETH")

    print("\nStaking into PtyPools...")
    usb.transfer("alice", "bob", to_wei(5000))
    vault.pty_pool_below_aars.stake("bob", to_wei(5000))
    vault.pty_pool_above_aaru.stake("caro", to_wei(5))
    print("bob staked 5000 $USB below AARS, caro staked 5 ETH above AARU")

    print("\nOne day passes...")
    model.update_time(24 * 3600)
    vault.settle_interest()
    earned = vault.pty_pool_below_aars.earned_staking_yields("bob")
    print(f"bob earned {from_wei(earned):.6f} ETHx of interest")

    print("\nSimulating price rally to $3000")
    model.update_price("ETH", 3000)
    print_state(model, "ETH")
    matched = vault.pty_pool_above_aaru.earned_matched_token("caro")
    print(f"caro's staked ETH matched into {from_wei(matched):.2f} $USB")

    print("\nSimulating price drop to $2400")
    model.update_price("ETH", 2400)
    print_state(model, "ETH")
    matched = vault.pty_pool_below_aars.earned_matched_token("bob")
    print(f"bob's staked $USB matched into {from_wei(matched):.4f} ETH")

    print("\nTrying a conditional discount purchase after matching...")
    try:
        leveraged_amount = vault.usb_to_leveraged_tokens("alice", to_wei(100))
        print(f"  alice swapped 100 $USB for {from_wei(leveraged_amount):.4f} ETHx")
    except ValueError as e:
        print(f"  Rejected: {e}")

    print("\nFinal protocol state:")
    print_state(model, "ETH")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")
    run_basic_simulation()
