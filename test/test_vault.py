"""
Unit tests for the vault phase machine and its mint, swap and redeem pricing.
"""

import unittest
import sys
import os

# Add the core directory to the path
sys.path.append(os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "core"))
from economic_model import WandProtocolEconomicModel
from erc20_token import ERC20Token
from price_feed import PriceFeed
from protocol_settings import ONE, HOUR, percent
from vault_calculator import VaultPhase, AAR_INFINITE, calc_phase

WEI = 10 ** 18
START = 1_700_000_000


class VaultTestCase(unittest.TestCase):
    """Deploys an ETH vault with interest switched off; Alice opens it with 2 ETH at $2000"""

    open_vault = True

    def setUp(self):
        self.model = WandProtocolEconomicModel(start_time=START)
        self.eth = ERC20Token("ETH", events=self.model.events)
        self.feed = PriceFeed(2000, decimals=8)
        self.vault = self.model.add_vault(self.eth, self.feed, "ETHx", params={"Y": 0})
        self.usb = self.model.usb
        self.ethx = self.vault.leveraged_token
        for user in ("Alice", "Bob", "Caro"):
            self.eth.mint(user, 1000 * WEI)
        if self.open_vault:
            self.vault.mint_pairs_at_stability_phase("Alice", 2 * WEI)

    def move_price(self, price):
        """Moves the price and lets the vault observe it"""
        self.feed.set_price(price)
        return self.vault.check_aar()

    def assert_phase_matches_aar(self):
        state = self.vault.get_vault_state()
        self.assertEqual(self.vault.vault_phase, calc_phase(state.aar, state.m_usb, state.params))


class TestEmptyVault(VaultTestCase):
    open_vault = False

    def test_empty_vault(self):
        self.assertEqual(self.vault.vault_phase, VaultPhase.EMPTY)
        self.assertEqual(self.vault.aar(), AAR_INFINITE)
        with self.assertRaises(ValueError):
            self.vault.redeem_by_pairs_with_expected_usb_amount("Alice", WEI)
        with self.assertRaises(ValueError):
            self.vault.mint_pairs_at_adjustment_phase("Alice", WEI)

    def test_stability_mint_exact_amounts(self):
        usb_amount, leveraged_amount = self.vault.mint_pairs_at_stability_phase("Alice", 2 * WEI)

        self.assertEqual(usb_amount, 2666666666666666666666)
        self.assertEqual(leveraged_amount, 666666666666666666)
        self.assertEqual(self.usb.balance_of("Alice"), usb_amount)
        self.assertEqual(self.ethx.balance_of("Alice"), leveraged_amount)
        self.assertEqual(self.vault.asset_total_amount, 2 * WEI)
        self.assertEqual(self.vault.usb_total_supply, usb_amount)
        self.assertEqual(self.vault.vault_phase, VaultPhase.STABILITY)
        self.assertEqual(self.vault.aar(), percent(150))

        event = self.model.events.last("UsbMinted")
        self.assertEqual(event.args["usb_amount"], usb_amount)
        self.assertEqual(event.args["asset_amount"], 2 * WEI)

    def test_zero_amount_rejected(self):
        with self.assertRaises(ValueError):
            self.vault.mint_pairs_at_stability_phase("Alice", 0)


class TestStabilityPhase(VaultTestCase):
    def test_pair_round_trip(self):
        usb_amount = self.usb.balance_of("Alice")
        leveraged_amount, asset_amount = self.vault.redeem_by_pairs_with_expected_usb_amount(
            "Alice", usb_amount)

        self.assertEqual(leveraged_amount, 666666666666666666)
        self.assertGreaterEqual(asset_amount * 10000, 2 * WEI * 9999)
        self.assertEqual(self.eth.balance_of("Alice"), 998 * WEI + asset_amount)
        self.assertEqual(self.vault.vault_phase, VaultPhase.EMPTY)
        self.assertEqual(self.model.events.last("AssetRedeemedWithPairs").args["asset_amount"],
                         asset_amount)

    def test_pairs_with_expected_leveraged_token_amount(self):
        usb_amount, asset_amount = self.vault.redeem_by_pairs_with_expected_leveraged_token_amount(
            "Alice", 333333333333333333)
        self.assertAlmostEqual(usb_amount, 1333333333333333333333, delta=10 ** 4)
        self.assertAlmostEqual(asset_amount, WEI, delta=10)

    def test_redeem_by_leveraged_tokens_charges_c2(self):
        usb_amount, net_amount = self.vault.redeem_by_leveraged_tokens("Alice", 333333333333333333)

        self.assertAlmostEqual(usb_amount, 1333333333333333333333, delta=10 ** 4)
        # 1 ETH gross, 0.5% fee
        self.assertAlmostEqual(net_amount, 995 * 10 ** 15, delta=10)
        self.assertAlmostEqual(self.eth.balance_of("treasury"), 5 * 10 ** 15, delta=10)
        self.assertAlmostEqual(self.vault.asset_total_amount, WEI, delta=10)

    def test_wrong_phase_entry_points(self):
        with self.assertRaises(ValueError) as context:
            self.vault.mint_usb_above_aaru("Bob", WEI)
        self.assertIn("Vault not at adjustment above AARU phase", str(context.exception))

        with self.assertRaises(ValueError) as context:
            self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)
        self.assertIn("Vault not at adjustment below AARS phase", str(context.exception))

        with self.assertRaises(ValueError) as context:
            self.vault.usb_to_leveraged_tokens("Alice", WEI)
        self.assertIn("Vault not at adjustment below AARS phase", str(context.exception))

    def test_failed_call_leaves_no_trace(self):
        events_before = len(self.model.events.events)
        with self.assertRaises(ValueError):
            self.vault.mint_pairs_at_stability_phase("Bob", 2000 * WEI)
        self.assertEqual(len(self.model.events.events), events_before)
        self.assertEqual(self.vault.asset_total_amount, 2 * WEI)
        self.assertEqual(self.eth.balance_of("Bob"), 1000 * WEI)

    def test_param_updates(self):
        with self.assertRaises(ValueError) as context:
            self.vault.update_param_value("Alice", "AART", percent(160))
        self.assertIn("Ownable", str(context.exception))

        with self.assertRaises(ValueError) as context:
            self.vault.update_param_value("owner", "AARU", 0)
        self.assertIn("Invalid param or value", str(context.exception))

        self.vault.update_param_value("owner", "AART", percent(160))
        self.assertEqual(self.vault.get_param_value("AART"), percent(160))
        self.assertEqual(self.model.events.last("UpdateParamValue").args["value"], percent(160))


class TestAdjustmentAboveAARU(VaultTestCase):
    def setUp(self):
        super().setUp()
        self.assertEqual(self.move_price(3000), VaultPhase.ADJUSTMENT_ABOVE_AARU)

    def test_stability_mint_rejected(self):
        with self.assertRaises(ValueError) as context:
            self.vault.mint_pairs_at_stability_phase("Bob", WEI)
        self.assertIn("Vault not at stable phase", str(context.exception))

    def test_mint_usb_at_spot(self):
        usb_amount = self.vault.mint_usb_above_aaru("Bob", WEI)

        self.assertEqual(usb_amount, 3000 * WEI)
        self.assertEqual(self.usb.balance_of("Bob"), 3000 * WEI)
        self.assertEqual(self.ethx.balance_of("Bob"), 0)
        # 9000 / 5666.67
        self.assertEqual(self.vault.vault_phase, VaultPhase.STABILITY)
        self.assert_phase_matches_aar()

    def test_mint_usb_rejected_when_post_mint_aar_below_aars(self):
        with self.assertRaises(ValueError) as context:
            self.vault.mint_usb_above_aaru("Bob", 100 * WEI)
        self.assertIn("AAR Below Safe Threshold", str(context.exception))

    def test_redeem_leveraged_token_at_nav(self):
        net_amount = self.vault.redeem_by_leveraged_token_above_aaru("Alice", 666666666666666666)

        # NAV of all leveraged tokens: (6000 - 2666.67) / 3000 ETH, less 0.5%
        self.assertAlmostEqual(net_amount, 1105555555555555556, delta=10)
        self.assertAlmostEqual(self.eth.balance_of("treasury"), 5555555555555555, delta=10)
        self.assertEqual(self.ethx.total_supply(), 0)

    def test_pair_mint_keeps_aar(self):
        aar_before = self.vault.aar()
        usb_amount, leveraged_amount = self.vault.mint_pairs_at_adjustment_phase("Bob", WEI)

        self.assertAlmostEqual(usb_amount, 1333333333333333333333, delta=10 ** 4)
        self.assertAlmostEqual(leveraged_amount, 333333333333333333, delta=10 ** 4)
        self.assertAlmostEqual(self.vault.aar(), aar_before, delta=10)


class TestAdjustmentBelowAARS(VaultTestCase):
    def setUp(self):
        super().setUp()
        # AAR 120%: below AARS, above AARC
        self.assertEqual(self.move_price(1600), VaultPhase.ADJUSTMENT_BELOW_AARS)
        self.safe_line_time = self.vault.aar_below_safe_line_time

    def test_timers(self):
        self.assertEqual(self.safe_line_time, START)
        self.assertEqual(self.vault.aar_below_circuit_breaker_line_time, 0)
        self.assertEqual(self.vault.aar(), percent(120))

    def test_usb_mints_rejected(self):
        with self.assertRaises(ValueError):
            self.vault.mint_pairs_at_stability_phase("Bob", WEI)
        with self.assertRaises(ValueError):
            self.vault.mint_usb_above_aaru("Bob", WEI)

    def test_mint_leveraged_tokens_at_nav(self):
        self.vault.update_param_value("owner", "C1", 0)
        leveraged_amount = self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)

        # 1600 * 0.6667 / (3200 - 2666.67)
        self.assertAlmostEqual(leveraged_amount, 2 * WEI, delta=10 ** 4)
        self.assertEqual(self.usb.balance_of("Bob"), 0)
        # 4800 / 2666.67
        self.assertEqual(self.vault.vault_phase, VaultPhase.STABILITY)
        self.assertEqual(self.vault.aar_below_safe_line_time, 0)

    def test_mint_leveraged_tokens_with_depth_bonus(self):
        leveraged_amount = self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)

        # Segments 1.2-1.3, 1.3-1.5 and 1.5-1.8 earn 0.025%, 0.01% and nothing
        self.assertAlmostEqual(leveraged_amount, 2000150000000000000, delta=10 ** 10)

    def test_pair_mint_keeps_aar(self):
        usb_amount, leveraged_amount = self.vault.mint_pairs_at_adjustment_phase("Bob", WEI)

        self.assertAlmostEqual(usb_amount, 1333333333333333333333, delta=10 ** 4)
        self.assertAlmostEqual(leveraged_amount, 333333333333333333, delta=10 ** 4)
        self.assertAlmostEqual(self.vault.aar(), percent(120), delta=10)

    def test_discount_swap_time_bonus(self):
        self.vault.update_param_value("owner", "C1", 0)
        self.vault.update_param_value("owner", "C2", percent(0.1))
        self.model.update_time(4 * HOUR)

        leveraged_amount = self.vault.usb_to_leveraged_tokens("Alice", 100 * WEI)

        # 100 * 0.6667 / 533.33 * (1 + 0.001 * 4)
        self.assertAlmostEqual(leveraged_amount, 125500000000000000, delta=10 ** 6)
        self.assertEqual(self.usb.balance_of("Alice"), 2566666666666666666666)
        self.assertEqual(self.vault.usb_total_supply, 2566666666666666666666)
        event = self.model.events.last("UsbToLeveragedTokens")
        self.assertEqual(event.args["leveraged_amount"], leveraged_amount)

    def test_discount_swap_across_safe_line(self):
        self.vault.update_param_value("owner", "C1", 0)
        self.vault.update_param_value("owner", "C2", percent(0.1))
        self.model.update_time(4 * HOUR)

        leveraged_amount = self.vault.usb_to_leveraged_tokens("Alice", 300 * WEI)

        # 205.13 $USB lifts AAR to 130% and earns the time bonus, the remaining 94.87 does not
        self.assertAlmostEqual(leveraged_amount, 376025641025641025, delta=10 ** 4)
        self.assertEqual(self.vault.vault_phase, VaultPhase.STABILITY)
        self.assertEqual(self.vault.aar_below_safe_line_time, 0)

    def test_discount_swap_with_depth_and_time_bonus(self):
        self.vault.update_param_value("owner", "C2", percent(0.1))
        self.model.update_time(4 * HOUR)

        leveraged_amount = self.vault.usb_to_leveraged_tokens("Alice", 300 * WEI)

        # 120%-130%: 0.025% depth + 0.4% time; 130%-135.2%: 0.0174% depth only
        self.assertAlmostEqual(leveraged_amount, 376110371516666666, delta=10 ** 4)

    def test_swap_too_large(self):
        with self.assertRaises(ValueError) as context:
            self.vault.usb_to_leveraged_tokens("Alice", 3000 * WEI)
        self.assertIn("Too large $USB amount", str(context.exception))

    def test_redeem_by_usb_at_spot(self):
        net_amount = self.vault.redeem_by_usb_below_aars("Alice", 100 * WEI)

        # 100 / 1600 ETH less 0.1%
        self.assertEqual(net_amount, 62437500000000000)
        self.assertEqual(self.eth.balance_of("treasury"), 62500000000000)
        fee_event = self.model.events.last("AssetRedeemedWithUSBFeeCollected")
        self.assertEqual(fee_event.args["fee_amount"], 62500000000000)
        self.assertEqual(self.vault.asset_total_amount, 2 * WEI - 62500000000000000)

    def test_redeem_by_usb_too_large(self):
        with self.assertRaises(ValueError) as context:
            self.vault.redeem_by_usb_below_aars("Alice", 3000 * WEI)
        self.assertIn("Too large $USB amount", str(context.exception))


class TestBelowOneHundredPercent(VaultTestCase):
    def setUp(self):
        super().setUp()
        # AAR 97.5%
        self.move_price(1300)

    def test_leveraged_mints_rejected(self):
        for call in (self.vault.mint_leveraged_tokens_below_aars,
                     self.vault.mint_pairs_at_adjustment_phase):
            with self.assertRaises(ValueError) as context:
                call("Bob", WEI)
            self.assertIn("AAR Below 100%", str(context.exception))
        with self.assertRaises(ValueError) as context:
            self.vault.usb_to_leveraged_tokens("Alice", WEI)
        self.assertIn("AAR Below 100%", str(context.exception))

    def test_redeem_by_usb_pro_rata(self):
        net_amount = self.vault.redeem_by_usb_below_aars("Alice", 100 * WEI)

        # 100 * 2 / 2666.67 ETH less 0.1%
        self.assertAlmostEqual(net_amount, 74925000000000000, delta=10)


class TestCircuitBreaker(VaultTestCase):
    def setUp(self):
        super().setUp()
        self.vault.update_param_value("owner", "C1", 0)
        # AAR 105%, not yet observed by the vault
        self.feed.set_price(1400)

    def test_first_observation_in_failed_call_is_rolled_back(self):
        with self.assertRaises(ValueError) as context:
            self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)
        self.assertIn("AAR Below Circuit Breaker AAR Threshold", str(context.exception))
        self.assertEqual(self.vault.aar_below_circuit_breaker_line_time, 0)

    def test_pause_lasts_exactly_one_period(self):
        self.vault.check_aar()
        self.assertEqual(self.vault.aar_below_circuit_breaker_line_time, START)
        self.assertTrue(self.vault.is_circuit_breaker_active())

        self.model.update_time(HOUR - 1)
        with self.assertRaises(ValueError):
            self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)
        with self.assertRaises(ValueError) as context:
            self.vault.usb_to_leveraged_tokens("Alice", WEI)
        self.assertIn("Conditional Discount Purchase suspended", str(context.exception))

        self.model.update_time(1)
        leveraged_amount = self.vault.mint_leveraged_tokens_below_aars("Bob", WEI)

        # 1400 * 0.6667 / (2800 - 2666.67)
        self.assertAlmostEqual(leveraged_amount, 7 * WEI, delta=10 ** 6)
        # 4200 / 2666.67 clears both timers
        self.assertEqual(self.vault.vault_phase, VaultPhase.STABILITY)
        self.assertEqual(self.vault.aar_below_circuit_breaker_line_time, 0)

    def test_recovery_clears_pause(self):
        self.vault.check_aar()
        self.move_price(1600)
        self.assertEqual(self.vault.aar_below_circuit_breaker_line_time, 0)
        self.assertEqual(self.vault.vault_phase, VaultPhase.ADJUSTMENT_BELOW_AARS)
        self.assertGreater(self.vault.mint_leveraged_tokens_below_aars("Bob", WEI), 0)


class TestProtocolSettings(VaultTestCase):
    open_vault = False

    def test_defaults(self):
        settings = self.model.settings
        self.assertEqual(settings.param_default_value("AART"), 15 * ONE // 10)
        self.assertEqual(settings.param_default_value("CircuitBreakPeriod"), HOUR)
        self.assertTrue(settings.is_valid_param("C1", percent(1)))
        self.assertFalse(settings.is_valid_param("C1", 2 * ONE))
        self.assertFalse(settings.is_valid_param("Unknown", 0))
        with self.assertRaises(ValueError):
            settings.param_default_value("Unknown")

    def test_upsert_param_config(self):
        settings = self.model.settings
        with self.assertRaises(ValueError) as context:
            settings.upsert_param_config("Alice", "AARU", percent(250), ONE, 10 * ONE)
        self.assertIn("Ownable: caller is not the owner", str(context.exception))
        with self.assertRaises(ValueError) as context:
            settings.upsert_param_config("owner", "AARU", percent(50), ONE, 10 * ONE)
        self.assertIn("Invalid param or value", str(context.exception))

        settings.upsert_param_config("owner", "AARU", percent(250), ONE, 10 * ONE)
        # Vaults without an override follow the new default
        self.assertEqual(self.vault.get_param_value("AARU"), percent(250))
        self.assertEqual(self.vault.get_param_value("Y"), 0)

    def test_set_treasury(self):
        settings = self.model.settings
        with self.assertRaises(ValueError):
            settings.set_treasury("Alice", "dao")
        settings.set_treasury("owner", "dao")
        self.assertEqual(settings.treasury, "dao")
        self.assertEqual(self.model.events.last("UpdateTreasury").args["treasury"], "dao")


if __name__ == '__main__':
    unittest.main()
