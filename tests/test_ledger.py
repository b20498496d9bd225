# test_ledger.py — bankroll snapshot validation, transactions, replay invariant, base bet management
# Run with: python run_tests.py ledger

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ledger import (
    MANAGEMENT_IA,
    MAX_BET,
    MIN_BET,
    PROFILE_ELITE,
    TX_CORRECTION,
    TX_LOSS,
    TX_START,
    TX_WIN,
    BankrollState,
    Ledger,
    LedgerIntegrityError,
    Transaction,
    clamp_bet,
    project,
)


def _started(**kwargs):
    ledger = Ledger()
    ledger.start(BankrollState(**kwargs))
    return ledger


class TestClamp(unittest.TestCase):
    def test_bounds(self):
        self.assertEqual(clamp_bet(0.5), MIN_BET)
        self.assertEqual(clamp_bet(1000), MAX_BET)
        self.assertEqual(clamp_bet(12.5), 12.5)

    def test_garbage_becomes_minimum(self):
        self.assertEqual(clamp_bet(float("nan")), MIN_BET)
        self.assertEqual(clamp_bet(float("inf")), MIN_BET)
        self.assertEqual(clamp_bet("abc"), MIN_BET)
        self.assertEqual(clamp_bet(None), MIN_BET)


class TestBankrollState(unittest.TestCase):
    def test_validation(self):
        with self.assertRaises(ValueError):
            BankrollState(initial_bankroll=0)
        with self.assertRaises(ValueError):
            BankrollState(stop_win_pct=-1)
        with self.assertRaises(ValueError):
            BankrollState(profile_mode="Reckless")
        with self.assertRaises(ValueError):
            BankrollState(management_type="auto")

    def test_stop_amounts_use_initial_bankroll(self):
        state = BankrollState(initial_bankroll=200.0, current_bankroll=150.0, stop_win_pct=20, stop_loss_pct=15)
        self.assertAlmostEqual(state.stop_win_amount, 240.0)
        self.assertAlmostEqual(state.stop_loss_amount, 170.0)
        self.assertEqual(state.session_profit, -50.0)
        self.assertTrue(state.in_net_loss)

    def test_stop_amounts_are_whole_cents(self):
        # 100 * 1.12 and 100 * 0.66 are not exact in binary floating point
        self.assertEqual(BankrollState(stop_win_pct=12).stop_win_amount, 112.0)
        self.assertEqual(BankrollState(stop_loss_pct=34).stop_loss_amount, 66.0)
        self.assertEqual(BankrollState(stop_win_pct=50).stop_win_amount, 150.0)

    def test_snapshot_is_read_only(self):
        state = BankrollState(tactic_weights={"hot_market": 80})
        with self.assertRaises(Exception):
            state.current_bankroll = 5.0  # type: ignore[misc]
        with self.assertRaises(TypeError):
            state.tactic_weights["hot_market"] = 1  # type: ignore[index]

    def test_export_import(self):
        state = BankrollState(current_bankroll=91.5, consecutive_losses=2, recent_losses=(3.0, 5.5), profile_mode=PROFILE_ELITE)
        self.assertEqual(BankrollState.import_state(state.export_state()), state)


class TestProjection(unittest.TestCase):
    def test_win_resets_streaks(self):
        state = BankrollState(consecutive_losses=2, recent_losses=(1.0, 2.0), pink_hunt_consecutive_losses=2)
        nxt = project(state, 4.0, True)
        self.assertEqual(nxt.current_bankroll, 104.0)
        self.assertEqual(nxt.consecutive_losses, 0)
        self.assertEqual(nxt.recent_losses, ())
        self.assertEqual(nxt.pink_hunt_consecutive_losses, 0)

    def test_loss_tracks_hunt_counter(self):
        state = BankrollState(pink_hunt_consecutive_losses=1)
        hunt = project(state, -3.0, True)
        self.assertEqual(hunt.pink_hunt_consecutive_losses, 2)
        self.assertEqual(hunt.consecutive_losses, 1)
        self.assertEqual(hunt.recent_losses, (3.0,))

        plain = project(state, -3.0, False)
        self.assertEqual(plain.pink_hunt_consecutive_losses, 0)

    def test_break_even_counts_as_win(self):
        state = BankrollState(consecutive_losses=1, recent_losses=(2.0,))
        self.assertEqual(project(state, 0.0, False).consecutive_losses, 0)


class TestBaseBetManagement(unittest.TestCase):
    def test_manual_flat_by_default(self):
        state = BankrollState(base_bet=5.0, base_bet_unit=5.0)
        self.assertEqual(project(state, -5.0, False).base_bet, 5.0)
        self.assertEqual(project(state, 7.5, False).base_bet, 5.0)

    def test_manual_loss_progression_and_reset(self):
        state = BankrollState(base_bet=2.0, base_bet_unit=2.0, on_loss_increase=100)
        one = project(state, -2.0, False)
        self.assertEqual(one.base_bet, 4.0)
        two = project(one, -4.0, False)
        self.assertEqual(two.base_bet, 8.0)
        back = project(two, 10.0, False)
        self.assertEqual(back.base_bet, 2.0)

    def test_manual_win_increase(self):
        state = BankrollState(base_bet=2.0, base_bet_unit=2.0, on_win_increase=50)
        self.assertEqual(project(state, 3.0, False).base_bet, 3.0)

    def test_ia_share_of_bankroll(self):
        ledger = _started(initial_bankroll=200.0, management_type=MANAGEMENT_IA)
        self.assertEqual(ledger.state.base_bet, 4.0)  # Moderado 2%
        ledger.apply_settlement(100.0, False)
        self.assertEqual(ledger.state.base_bet, 6.0)

        elite = _started(initial_bankroll=200.0, management_type=MANAGEMENT_IA, profile_mode=PROFILE_ELITE)
        self.assertEqual(elite.state.base_bet, 6.0)


class TestLedger(unittest.TestCase):
    def test_start_opens_a_fresh_log(self):
        ledger = _started(initial_bankroll=150.0, consecutive_losses=4, base_bet_unit=3.0)
        self.assertTrue(ledger.state.is_active)
        self.assertEqual(ledger.balance, 150.0)
        self.assertEqual(ledger.state.consecutive_losses, 0)
        self.assertEqual(ledger.state.base_bet, 3.0)
        self.assertEqual([tx.type for tx in ledger.transactions], [TX_START])

    def test_settlements_keep_the_replay_invariant(self):
        ledger = _started()
        ledger.apply_settlement(1.5, False)
        ledger.apply_settlement(-2.25, True)
        ledger.apply_settlement(-1.0, False)
        ledger.apply_settlement(0.8, False)

        self.assertEqual(ledger.balance, round(100 + 1.5 - 2.25 - 1.0 + 0.8, 2))
        self.assertEqual(ledger.replay(), ledger.balance)
        self.assertEqual([tx.type for tx in ledger.transactions], [TX_START, TX_WIN, TX_LOSS, TX_LOSS, TX_WIN])
        self.assertEqual(ledger.transactions[2].amount, 2.25)
        self.assertEqual(ledger.transactions[-1].resulting_balance, ledger.balance)

    def test_settlement_on_inactive_session_is_refused(self):
        ledger = Ledger()
        with self.assertRaises(RuntimeError):
            ledger.apply_settlement(1.0, False)
        started = _started()
        started.close()
        with self.assertRaises(RuntimeError):
            started.apply_settlement(1.0, False)

    def test_correction(self):
        ledger = _started()
        tx = ledger.apply_correction(50.0)
        self.assertEqual(tx.type, TX_CORRECTION)
        self.assertEqual(ledger.balance, 150.0)
        self.assertEqual(ledger.state.corrections_total, 50.0)
        self.assertEqual(ledger.state.initial_bankroll, 100.0)
        ledger.apply_correction(-20.0)
        self.assertEqual(ledger.replay(), 130.0)
        with self.assertRaises(ValueError):
            ledger.apply_correction(0)

    def test_reconfigure_rejects_balance_fields(self):
        ledger = _started()
        with self.assertRaises(ValueError):
            ledger.reconfigure(current_bankroll=500.0)
        state = ledger.reconfigure(dual_strategy=True, base_bet=0.2)
        self.assertTrue(state.dual_strategy)
        self.assertEqual(state.base_bet, MIN_BET)

    def test_tampering_is_detected(self):
        ledger = _started()
        ledger._transactions.append(
            Transaction(id="x", type=TX_WIN, amount=5.0, timestamp="", resulting_balance=105.0)
        )
        with self.assertRaises(LedgerIntegrityError):
            ledger.verify()

    def test_export_import(self):
        ledger = _started()
        ledger.apply_settlement(-3.0, True)
        ledger.apply_correction(10.0)

        copy = Ledger()
        copy.import_state(ledger.export_state())
        self.assertEqual(copy.state, ledger.state)
        self.assertEqual(copy.transactions, ledger.transactions)
        copy.verify()


if __name__ == "__main__":
    unittest.main()
