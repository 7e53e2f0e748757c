"""
Unit tests for the InterestPool model.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from erc20_token import ERC20Token
from event_log import EventLog
from interest_pool import InterestPool
from usb_token import Usb

WEI = 10 ** 18


class TestInterestPool(unittest.TestCase):
    def setUp(self):
        """Bob and Caro hold 1000 $USB each; Alice funds rewards"""
        self.events = EventLog()
        self.usb = Usb("owner", self.events)
        self.usb.add_minter("owner", "minter")
        self.ethx = ERC20Token("ETHx", events=self.events)
        self.wbtcx = ERC20Token("WBTCx", events=self.events)
        self.pool = InterestPool("owner", self.usb, self.events,
                                 reward_tokens=[self.ethx, self.wbtcx])

        self.usb.mint("minter", "Bob", 1000 * WEI)
        self.usb.mint("minter", "Caro", 1000 * WEI)
        self.ethx.mint("Alice", 100000 * WEI)

    def test_reward_tokens(self):
        self.assertTrue(self.pool.reward_token_added(self.ethx))
        self.assertTrue(self.pool.reward_token_added(self.wbtcx))

        other = ERC20Token("STx", events=self.events)
        self.assertFalse(self.pool.reward_token_added(other))
        with self.assertRaises(ValueError) as context:
            self.pool.add_reward_token("Alice", other)
        self.assertIn("Ownable: caller is not the owner", str(context.exception))
        with self.assertRaises(ValueError) as context:
            self.pool.staking_rewards_earned(other, "Bob")
        self.assertIn("Invalid reward token", str(context.exception))

        self.pool.add_reward_token("owner", other)
        self.assertEqual(self.pool.staking_rewards_earned(other, "Bob"), 0)

    def test_rewards_without_stakers_stay_undistributed(self):
        self.pool.add_rewards("Alice", self.ethx, 10000 * WEI)
        self.assertEqual(self.ethx.balance_of(self.pool.address), 10000 * WEI)

        self.pool.stake("Bob", 800 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Bob"), 0)

    def test_rewards_follow_stakes(self):
        self.pool.stake("Bob", 800 * WEI)
        self.pool.stake("Caro", 200 * WEI)
        self.assertEqual(self.pool.total_staking_amount(), 1000 * WEI)

        self.pool.add_rewards("Alice", self.ethx, 10000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Bob"), 8000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Caro"), 2000 * WEI)

        self.pool.unstake("Bob", 600 * WEI)
        self.assertEqual(self.usb.balance_of("Bob"), 800 * WEI)
        self.pool.add_rewards("Alice", self.ethx, 10000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Bob"), 13000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Caro"), 7000 * WEI)

        paid = self.pool.get_all_staking_rewards("Bob")
        self.assertEqual(paid, {"ETHx": 13000 * WEI, "WBTCx": 0})
        self.assertEqual(self.ethx.balance_of("Bob"), 13000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Bob"), 0)

        self.assertEqual(self.pool.get_staking_rewards("Caro", self.ethx), 7000 * WEI)
        self.assertEqual(self.ethx.balance_of(self.pool.address), 0)

    def test_unstake_too_much(self):
        self.pool.stake("Bob", 800 * WEI)
        with self.assertRaises(ValueError) as context:
            self.pool.unstake("Bob", 801 * WEI)
        self.assertIn("Not enough staking amount", str(context.exception))
        self.assertEqual(self.pool.user_staking_amount("Bob"), 800 * WEI)

    def test_rebase_keeps_stakes_proportional(self):
        self.pool.stake("Bob", 800 * WEI)
        self.pool.stake("Caro", 200 * WEI)

        # Supply 2000 -> 4000
        self.usb.rebase("minter", 2000 * WEI)
        self.assertEqual(self.pool.total_staking_amount(), 2000 * WEI)
        self.assertEqual(self.pool.user_staking_amount("Bob"), 1600 * WEI)
        self.assertEqual(self.pool.user_staking_amount("Caro"), 400 * WEI)

        self.pool.add_rewards("Alice", self.ethx, 1000 * WEI)
        self.assertEqual(self.pool.staking_rewards_earned(self.ethx, "Bob"), 800 * WEI)

        self.pool.unstake("Bob", 1600 * WEI)
        self.assertEqual(self.usb.balance_of("Bob"), 2000 * WEI)
        self.assertEqual(self.pool.user_staking_amount("Bob"), 0)


if __name__ == '__main__':
    unittest.main()
