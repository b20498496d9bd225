# test_settings.py — session defaults, validation, env/secrets overrides
# Run with: python run_tests.py settings

import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import copilot_settings
from copilot_settings import CopilotSettings, load_settings
from ledger import MANAGEMENT_IA, MIN_BET, PROFILE_ELITE
from tactics import SMART_PRESET_WEIGHTS, default_weights


class TestCopilotSettings(unittest.TestCase):
    def test_defaults(self):
        s = CopilotSettings()
        self.assertEqual(s.initial_bankroll, 100.0)
        self.assertEqual(s.stop_win_pct, 20.0)
        self.assertEqual(s.stop_loss_pct, 15.0)
        self.assertEqual(s.max_blue_streak_stop, 3)
        self.assertEqual(s.pink_hunt_max_losses, 3)
        self.assertEqual(s.min_history, 25)
        self.assertTrue(s.cautious_mode)
        self.assertEqual(s.tactic_weights, default_weights())

    def test_validation(self):
        for bad in (
            dict(initial_bankroll=0),
            dict(stop_loss_pct=-5),
            dict(min_history=0),
            dict(max_blue_streak_stop=-1),
            dict(cautious_after_multiplier=0.5),
            dict(profile_mode="Turbo"),
            dict(management_type="auto"),
            dict(baseline_mode="whatever"),
        ):
            with self.assertRaises(ValueError, msg=str(bad)):
                CopilotSettings(**bad)

    def test_smart_mode_weights(self):
        s = CopilotSettings(tactic_weights={**default_weights(), "purple_pressure": 10})
        self.assertEqual(s.effective_weights()["purple_pressure"], 10)
        smart = s.updated(smart_mode=True)
        self.assertEqual(smart.effective_weights(), {**default_weights(), **SMART_PRESET_WEIGHTS})

    def test_to_bankroll_state(self):
        s = CopilotSettings(initial_bankroll=250.0, base_bet=0.1, profile_mode=PROFILE_ELITE, management_type=MANAGEMENT_IA)
        state = s.to_bankroll_state()
        self.assertFalse(state.is_active)
        self.assertEqual(state.current_bankroll, 250.0)
        self.assertEqual(state.base_bet_unit, MIN_BET)
        self.assertEqual(state.profile_mode, PROFILE_ELITE)
        self.assertEqual(s.to_bankroll_state(80.0).initial_bankroll, 80.0)

    def test_export_import(self):
        s = CopilotSettings(stop_win_pct=35.0, dual_strategy=True, tactic_weights={"hot_market": 12})
        back = CopilotSettings.import_state(s.export_state())
        self.assertEqual(back.stop_win_pct, 35.0)
        self.assertTrue(back.dual_strategy)
        # missing weights fall back to the registry defaults
        self.assertEqual(back.tactic_weights["hot_market"], 12.0)
        self.assertEqual(back.tactic_weights["reversal_hunter"], 90)

    def test_import_ignores_unknown_keys(self):
        back = CopilotSettings.import_state({"stop_loss_pct": 5, "legacy_flag": True})
        self.assertEqual(back.stop_loss_pct, 5)
        self.assertEqual(CopilotSettings.import_state(None), CopilotSettings())


class TestLoadSettings(unittest.TestCase):
    def _secrets(self, values):
        return patch.object(copilot_settings, "_get_secret", side_effect=lambda name, default=None: values.get(name, default))

    def test_overrides(self):
        values = {
            "COPILOT_STOP_WIN_PCT": "50",
            "COPILOT_DUAL_STRATEGY": "true",
            "COPILOT_MIN_HISTORY": "10",
            "COPILOT_PROFILE_MODE": " Elite ",
            "COPILOT_WEIGHT_HOT_MARKET": "150",
        }
        with self._secrets(values):
            s = load_settings()
        self.assertEqual(s.stop_win_pct, 50.0)
        self.assertTrue(s.dual_strategy)
        self.assertEqual(s.min_history, 10)
        self.assertEqual(s.profile_mode, PROFILE_ELITE)
        self.assertEqual(s.tactic_weights["hot_market"], 100.0)

    def test_malformed_values_are_skipped(self):
        with self._secrets({"COPILOT_MIN_HISTORY": "lots", "COPILOT_WEIGHT_HOT_MARKET": "x"}):
            s = load_settings()
        self.assertEqual(s.min_history, 25)
        self.assertEqual(s.tactic_weights["hot_market"], 80)

    def test_environment_is_read(self):
        with patch.dict(os.environ, {"COPILOT_INITIAL_BANKROLL": "500"}):
            s = load_settings()
        self.assertEqual(s.initial_bankroll, 500.0)


if __name__ == "__main__":
    unittest.main()
