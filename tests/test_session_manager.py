# test_session_manager.py — lifecycle, per-round decisions, stops, pauses, smart profile, persistence
# Run with: python run_tests.py session_manager

import os
import random
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import session_manager
from bet_planner import (
    BRANCH_HUNT_CEILING,
    BRANCH_NET_RECOVERY,
    BRANCH_SINGLE,
    EMPTY_PLAN,
    MAX_BET,
    MIN_BET,
    WagerLeg,
)
from copilot_settings import CopilotSettings
from ledger import (
    PROFILE_CONSERVATIVE,
    PROFILE_ELITE,
    PROFILE_MODERATE,
    TX_CORRECTION,
    TX_START,
)
from market_signals import (
    MARKET_COLD,
    MARKET_VERY_HOT,
    MARKET_WARM,
    PINK_CRITICAL,
    RISK_CRITICAL,
    RISK_LOW,
    HotSpots,
    MarketSnapshot,
    PatternAlerts,
    PressureSnapshot,
    Round,
    SignalSnapshot,
)
from session_manager import (
    SESSION_LOSS,
    SESSION_WIN,
    ProfileChangeEvent,
    SessionEndEvent,
    SessionManager,
    select_profile,
)
from status_codes import (
    BETTING,
    EVALUATING,
    HUNTING,
    INACTIVE,
    PAUSED_BLUE_STREAK,
    PAUSED_CRITICAL_RISK,
    PAUSED_STRATEGIC,
    RECOVERING,
    SESSION_LOST,
    SESSION_WON,
    WAITING,
    WAITING_FOR_DATA,
)


class _Clock:
    """Unique (date, time) per round; minute is fixed at :30."""

    def __init__(self):
        self.i = 0

    def round(self, multiplier):
        self.i += 1
        day = 1 + self.i // 60
        return Round(multiplier, f"2026-01-{day:02d}", f"10:30:{self.i % 60:02d}")


VERY_HOT = SignalSnapshot(market=MarketSnapshot(state=MARKET_VERY_HOT))


def _manager(prefill=25, last=None, **kwargs):
    """Started manager with `prefill` purple rounds already on the history."""
    kwargs.setdefault("cautious_mode", False)
    kwargs.setdefault("base_bet", 10.0)
    clock = _Clock()
    m = SessionManager(CopilotSettings(**kwargs))
    rounds = [clock.round(2.5) for _ in range(prefill)]
    if last is not None:
        rounds[-1] = Round(last, rounds[-1].date, rounds[-1].time)
    m.load_history(rounds)
    m.start_session()
    return m, clock


class TestLifecycle(unittest.TestCase):
    def test_rounds_are_recorded_while_inactive(self):
        clock = _Clock()
        m = SessionManager()
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, INACTIVE)
        self.assertEqual(len(m.history), 1)
        self.assertEqual(m.transactions, ())
        self.assertTrue(out.plan.is_empty)

    def test_start_session(self):
        m, _ = _manager()
        self.assertTrue(m.is_active)
        self.assertEqual(m.status, WAITING_FOR_DATA)
        self.assertEqual(m.bankroll.current_bankroll, 100.0)
        self.assertEqual([tx.type for tx in m.transactions], [TX_START])

    def test_not_enough_history(self):
        m, clock = _manager(prefill=0)
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, WAITING_FOR_DATA)
        self.assertEqual(out.reason, "Collecting rounds (1/25).")
        self.assertTrue(out.plan.is_empty)

    def test_duplicate_round_is_ignored(self):
        m, clock = _manager()
        r = clock.round(3.0)
        first = m.on_round(r, VERY_HOT)
        second = m.on_round(r, VERY_HOT)
        self.assertIs(second, first)
        self.assertEqual(len(m.history), 26)
        self.assertEqual(len(m.transactions), 1)

    def test_rounds_without_time_are_never_duplicates(self):
        m, _ = _manager()
        m.on_round(Round(3.0), VERY_HOT)
        m.on_round(Round(3.0), VERY_HOT)
        self.assertEqual(len(m.history), 27)

    def test_stop_discards_the_plan(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), VERY_HOT)
        self.assertFalse(m.plan.is_empty)

        out = m.stop_session()
        self.assertEqual(out.status, INACTIVE)
        self.assertTrue(m.plan.is_empty)

        m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(m.status, INACTIVE)
        self.assertEqual(len(m.transactions), 1)
        self.assertEqual(m.bankroll.current_bankroll, 100.0)

    def test_add_funds(self):
        m, _ = _manager()
        tx = m.add_funds(50.0)
        self.assertEqual(tx.type, TX_CORRECTION)
        self.assertEqual(m.bankroll.current_bankroll, 150.0)
        m.ledger.verify()

        idle = SessionManager()
        with self.assertRaises(RuntimeError):
            idle.add_funds(10.0)

    def test_update_config(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(m.plan.branch, BRANCH_SINGLE)

        state = m.update_config(dual_strategy=True, base_bet=20.0)
        self.assertTrue(state.dual_strategy)
        self.assertEqual(state.base_bet, 20.0)
        self.assertEqual(m.plan.safety, WagerLeg(20.0, 1.80))
        self.assertEqual(m.plan.profit, WagerLeg(10.0, 3.00))

        with self.assertRaises(ValueError):
            m.update_config(current_bankroll=5000.0)


class TestStops(unittest.TestCase):
    def test_stop_win_is_sticky(self):
        m, clock = _manager()
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, BETTING)
        self.assertEqual(out.plan.safety, WagerLeg(10.0, 2.50))

        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, BETTING)
        self.assertEqual(out.bankroll.current_bankroll, 115.0)
        self.assertEqual(out.last_result.profit, 15.0)

        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, SESSION_WON)
        self.assertEqual(out.bankroll.current_bankroll, 130.0)
        self.assertTrue(out.plan.is_empty)
        self.assertEqual(out.events, (SessionEndEvent(type=SESSION_WIN, profit_or_loss=30.0),))
        self.assertEqual(out.reason, "Profit of R$ 30.00 reached.")

        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, SESSION_WON)
        self.assertEqual(out.events, ())
        self.assertIsNone(out.last_result)
        self.assertEqual(len(m.transactions), 3)
        self.assertEqual(len(m.session_events), 1)
        self.assertEqual(m.lifetime.sessions_won, 1)
        self.assertEqual(out.preview_if_win, EMPTY_PLAN)

    def test_stop_win_at_an_inexact_percentage(self):
        m, clock = _manager(stop_win_pct=12.0, base_bet=4.0)
        self.assertEqual(m.on_round(clock.round(3.0), VERY_HOT).status, BETTING)
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.bankroll.current_bankroll, 106.0)
        self.assertEqual(out.status, BETTING)

        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.bankroll.current_bankroll, 112.0)
        self.assertEqual(out.status, SESSION_WON)

    def test_stop_win_lands_exactly_on_the_target(self):
        m, clock = _manager(stop_win_pct=50.0, dual_strategy=True, profile_mode=PROFILE_ELITE)
        out = m.on_round(clock.round(4.0), VERY_HOT)
        self.assertEqual(out.plan.safety, WagerLeg(10.0, 1.80))
        self.assertEqual(out.plan.profit, WagerLeg(5.0, 4.00))

        # both legs win: +8 +15
        self.assertEqual(m.on_round(clock.round(4.0), VERY_HOT).bankroll.current_bankroll, 123.0)
        # safety wins, profit leg loses: +8 -5
        for expected in range(126, 150, 3):
            out = m.on_round(clock.round(2.0), VERY_HOT)
            self.assertEqual(out.bankroll.current_bankroll, float(expected))
            self.assertEqual(out.status, BETTING)

        out = m.on_round(clock.round(2.0), VERY_HOT)
        self.assertEqual(out.bankroll.current_bankroll, 150.0)
        self.assertEqual(out.status, SESSION_WON)
        self.assertEqual(out.events[0].profit_or_loss, 50.0)

    def test_stop_loss_suggests_the_hottest_minute(self):
        m, clock = _manager()
        signals = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            hot_spots=HotSpots(hottest_pink_minutes=(":23", ":07")),
        )
        m.on_round(clock.round(3.0), signals)

        out = m.on_round(clock.round(1.5), signals)
        self.assertEqual(out.status, RECOVERING)
        self.assertEqual(out.bankroll.current_bankroll, 90.0)
        self.assertEqual(out.plan.branch, BRANCH_NET_RECOVERY)
        self.assertEqual(out.plan.safety, WagerLeg(13.75, 1.80))

        out = m.on_round(clock.round(1.5), signals)
        self.assertEqual(out.status, SESSION_LOST)
        self.assertEqual(out.bankroll.current_bankroll, 76.25)
        end = out.events[0]
        self.assertEqual(end.type, SESSION_LOSS)
        self.assertEqual(end.profit_or_loss, -23.75)
        self.assertEqual(end.next_best_time_suggestion, ":23")
        self.assertEqual(m.session_end, end)
        self.assertEqual(m.lifetime.sessions_lost, 1)

    def test_reset_clears_the_terminal_state(self):
        m, clock = _manager(stop_win_pct=10.0)
        m.on_round(clock.round(3.0), VERY_HOT)
        m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(m.status, SESSION_WON)

        out = m.reset_session()
        self.assertEqual(out.status, WAITING_FOR_DATA)
        self.assertFalse(m.is_terminal)
        self.assertTrue(m.plan.is_empty)
        self.assertIsNone(m.session_end)
        self.assertEqual(m.bankroll.current_bankroll, 100.0)
        self.assertEqual(m.bankroll.consecutive_losses, 0)
        self.assertEqual(len(m.transactions), 1)
        self.assertEqual(m.lifetime.sessions_won, 1)
        self.assertEqual(m.lifetime.rounds_settled, 1)

        self.assertEqual(m.on_round(clock.round(3.0), VERY_HOT).status, BETTING)

    def test_continue_with_remaining_balance(self):
        m, clock = _manager(stop_win_pct=10.0)
        m.on_round(clock.round(3.0), VERY_HOT)
        m.on_round(clock.round(3.0), VERY_HOT)

        m.continue_session()
        self.assertEqual(m.bankroll.initial_bankroll, 115.0)
        self.assertEqual(m.bankroll.current_bankroll, 115.0)
        self.assertEqual(m.status, WAITING_FOR_DATA)


class TestPauses(unittest.TestCase):
    def test_blue_streak_latch(self):
        m, clock = _manager()
        self.assertEqual(m.on_round(clock.round(1.5)).status, WAITING)
        self.assertEqual(m.on_round(clock.round(1.5)).status, WAITING)
        self.assertEqual(m.on_round(clock.round(1.5)).status, PAUSED_BLUE_STREAK)
        # still latched until a purple or better lands
        self.assertEqual(m.on_round(clock.round(1.9)).status, PAUSED_BLUE_STREAK)
        self.assertEqual(m.on_round(clock.round(2.0)).status, WAITING)

    def test_long_blue_run_stays_paused_until_purple(self):
        m, clock = _manager(max_blue_streak_stop=3)
        statuses = [m.on_round(clock.round(1.5)).status for _ in range(7)]
        self.assertEqual(statuses[:2], [WAITING, WAITING])
        self.assertEqual(statuses[2:], [PAUSED_BLUE_STREAK] * 5)
        self.assertTrue(m.plan.is_empty)

        out = m.on_round(clock.round(2.0))
        self.assertEqual(out.status, WAITING)
        self.assertNotIn("blue", out.reason.lower())

    def test_blue_streak_stop_disabled(self):
        m, clock = _manager(max_blue_streak_stop=0)
        for _ in range(5):
            out = m.on_round(clock.round(1.5))
        self.assertNotEqual(out.status, PAUSED_BLUE_STREAK)

    def test_critical_risk(self):
        m, clock = _manager()
        signals = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            pause_risk=PressureSnapshot(level=RISK_CRITICAL, percentage=90),
        )
        out = m.on_round(clock.round(3.0), signals)
        self.assertEqual(out.status, PAUSED_CRITICAL_RISK)
        self.assertTrue(out.plan.is_empty)

    def test_strategic_pause(self):
        m, clock = _manager()
        signals = SignalSnapshot(market=MarketSnapshot(state=MARKET_VERY_HOT, is_market_paused=True))
        self.assertEqual(m.on_round(clock.round(3.0), signals).status, PAUSED_STRATEGIC)

    def test_pause_never_settles_a_new_plan(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), VERY_HOT)
        paused = SignalSnapshot(market=MarketSnapshot(state=MARKET_VERY_HOT, is_market_paused=True))
        m.on_round(clock.round(3.0), paused)
        m.on_round(clock.round(3.0), paused)
        # only the plan issued before the pause was booked
        self.assertEqual(len(m.transactions), 2)

    def test_no_previews_without_a_wager(self):
        m, clock = _manager()
        self.assertFalse(m.on_round(clock.round(3.0), VERY_HOT).preview_if_win.is_empty)

        critical = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            pause_risk=PressureSnapshot(level=RISK_CRITICAL, percentage=90),
        )
        out = m.on_round(clock.round(3.0), critical)
        self.assertEqual(out.status, PAUSED_CRITICAL_RISK)
        self.assertEqual((out.preview_if_win, out.preview_if_loss), (EMPTY_PLAN, EMPTY_PLAN))
        self.assertEqual(m.snapshot().preview_if_loss, EMPTY_PLAN)

        out = m.on_round(clock.round(3.0))
        self.assertEqual(out.status, WAITING)
        self.assertEqual((out.preview_if_win, out.preview_if_loss), (EMPTY_PLAN, EMPTY_PLAN))

        fresh, clock = _manager(prefill=0)
        out = fresh.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, WAITING_FOR_DATA)
        self.assertEqual((out.preview_if_win, out.preview_if_loss), (EMPTY_PLAN, EMPTY_PLAN))


class TestPlans(unittest.TestCase):
    def test_previews(self):
        m, clock = _manager()
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.preview_if_win.branch, BRANCH_SINGLE)
        self.assertEqual(out.preview_if_win.safety, WagerLeg(10.0, 2.50))
        self.assertEqual(out.preview_if_loss.branch, BRANCH_NET_RECOVERY)
        self.assertEqual(out.preview_if_loss.safety, WagerLeg(13.75, 1.80))

    def test_cautious_after_a_spike(self):
        m, clock = _manager(last=60.0, cautious_mode=True)
        out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(out.status, BETTING)
        self.assertTrue(out.plan.cautious)
        self.assertEqual(out.plan.safety, WagerLeg(2.5, 2.50))
        self.assertEqual(out.reason, "Safety entry (post-spike): Market on fire! (confidence 74%)")

    def test_pink_hunt_ceiling(self):
        m, clock = _manager(
            profile_mode=PROFILE_ELITE,
            dual_strategy=True,
            pink_hunt_max_losses=1,
            stop_win_pct=500.0,
        )
        signals = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            patterns=PatternAlerts(double_pink=True),
        )
        out = m.on_round(clock.round(3.0), signals)
        self.assertEqual(out.status, HUNTING)
        self.assertEqual(out.plan.safety, WagerLeg(10.0, 1.80))
        self.assertEqual(out.plan.profit, WagerLeg(1.0, 20.00))

        out = m.on_round(clock.round(25.0), signals)
        self.assertEqual(out.bankroll.current_bankroll, 127.0)
        self.assertEqual(out.status, HUNTING)

        out = m.on_round(clock.round(1.5), signals)
        self.assertEqual(out.bankroll.current_bankroll, 116.0)
        self.assertTrue(out.last_result.was_pink_hunt)
        self.assertEqual(out.bankroll.pink_hunt_consecutive_losses, 1)
        self.assertEqual(out.status, RECOVERING)
        self.assertEqual(out.plan.branch, BRANCH_HUNT_CEILING)
        self.assertEqual(out.plan.safety, WagerLeg(10.0, 2.00))

    def test_pink_hunt_ceiling_after_three_losses(self):
        m, clock = _manager(
            profile_mode=PROFILE_ELITE,
            dual_strategy=True,
            pink_hunt_max_losses=3,
            stop_win_pct=500.0,
            max_blue_streak_stop=0,
        )
        signals = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            patterns=PatternAlerts(double_pink=True),
        )
        self.assertEqual(m.on_round(clock.round(3.0), signals).status, HUNTING)
        m.on_round(clock.round(25.0), signals)
        self.assertEqual(m.on_round(clock.round(25.0), signals).bankroll.current_bankroll, 154.0)

        # two lost hunts keep hunting
        for expected_balance, expected_count in ((143.0, 1), (132.0, 2)):
            out = m.on_round(clock.round(1.5), signals)
            self.assertEqual(out.bankroll.current_bankroll, expected_balance)
            self.assertEqual(out.bankroll.pink_hunt_consecutive_losses, expected_count)
            self.assertEqual(out.status, HUNTING)
            self.assertEqual(out.plan.profit, WagerLeg(1.0, 20.00))

        # the third one hits the ceiling: single safety leg only
        out = m.on_round(clock.round(1.5), signals)
        self.assertEqual(out.bankroll.current_bankroll, 121.0)
        self.assertEqual(out.bankroll.pink_hunt_consecutive_losses, 3)
        self.assertEqual(out.status, RECOVERING)
        self.assertEqual(out.plan.branch, BRANCH_HUNT_CEILING)
        self.assertEqual(out.plan.safety, WagerLeg(10.0, 2.00))
        self.assertFalse(out.plan.profit.active)

        # one win clears it
        out = m.on_round(clock.round(2.5), signals)
        self.assertEqual(out.bankroll.current_bankroll, 131.0)
        self.assertEqual(out.bankroll.pink_hunt_consecutive_losses, 0)
        self.assertEqual(out.status, HUNTING)
        self.assertEqual(out.plan.profit, WagerLeg(1.0, 20.00))

    def test_status_is_evaluating_while_scoring(self):
        m, clock = _manager()
        seen = []
        real_score = session_manager.score

        def _score(*args, **kwargs):
            seen.append(m.status)
            return real_score(*args, **kwargs)

        with patch.object(session_manager, "score", side_effect=_score):
            out = m.on_round(clock.round(3.0), VERY_HOT)
        self.assertEqual(seen, [EVALUATING])
        self.assertEqual(out.status, BETTING)

    def test_history_records_and_lifetime(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), VERY_HOT)
        m.on_round(clock.round(3.0), VERY_HOT)
        m.on_round(clock.round(1.2), VERY_HOT)
        self.assertEqual(len(m.history_records), 2)
        self.assertEqual([r.profit for r in m.history_records], [15.0, -10.0])
        self.assertEqual(m.lifetime.wins, 1)
        self.assertEqual(m.lifetime.losses, 1)
        self.assertEqual(m.lifetime.total_profit, 5.0)
        self.assertEqual(m.lifetime.win_rate, 0.5)

    def test_ledger_stays_balanced_over_random_rounds(self):
        rng = random.Random(7)
        m, clock = _manager(stop_win_pct=1000.0, stop_loss_pct=90.0, dual_strategy=True)
        for _ in range(300):
            mult = round(1.0 + rng.expovariate(0.6), 2)
            out = m.on_round(clock.round(mult), VERY_HOT)
            m.ledger.verify()
            for leg in out.plan.legs:
                if leg.active:
                    self.assertGreaterEqual(leg.amount, MIN_BET)
                    self.assertLessEqual(leg.amount, MAX_BET)
            if m.is_terminal:
                break


class TestSmartMode(unittest.TestCase):
    def test_select_profile(self):
        self.assertEqual(select_profile(SignalSnapshot(market=MarketSnapshot(state=MARKET_COLD))), PROFILE_CONSERVATIVE)
        hot_pink = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            pink_pressure=PressureSnapshot(level=PINK_CRITICAL),
            pause_risk=PressureSnapshot(level=RISK_LOW),
        )
        self.assertEqual(select_profile(hot_pink), PROFILE_ELITE)
        self.assertEqual(select_profile(SignalSnapshot(market=MarketSnapshot(state=MARKET_WARM))), PROFILE_MODERATE)

    def test_profile_follows_the_market(self):
        m, clock = _manager(smart_mode=True)
        self.assertEqual(m.bankroll.tactic_weights["purple_pressure"], 75)

        cold = SignalSnapshot(market=MarketSnapshot(state=MARKET_COLD))
        out = m.on_round(clock.round(3.0), cold)
        self.assertEqual(out.events, (ProfileChangeEvent(
            previous=PROFILE_MODERATE,
            profile=PROFILE_CONSERVATIVE,
            message='Market changed. Profile adjusted to "Conservador".',
        ),))
        self.assertEqual(m.bankroll.profile_mode, PROFILE_CONSERVATIVE)

        # same market again: no repeated notification
        self.assertEqual(m.on_round(clock.round(3.0), cold).events, ())

        hot_pink = SignalSnapshot(
            market=MarketSnapshot(state=MARKET_VERY_HOT),
            pink_pressure=PressureSnapshot(level=PINK_CRITICAL, percentage=95),
            pause_risk=PressureSnapshot(level=RISK_LOW),
        )
        out = m.on_round(clock.round(3.0), hot_pink)
        self.assertEqual(out.events[0].profile, PROFILE_ELITE)
        self.assertEqual(out.status, BETTING)

        warm = SignalSnapshot(market=MarketSnapshot(state=MARKET_WARM))
        out = m.on_round(clock.round(3.0), warm)
        self.assertEqual(out.events[0].profile, PROFILE_MODERATE)
        self.assertEqual(len(m.session_events), 3)

    def test_manual_profile_untouched_without_smart_mode(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), SignalSnapshot(market=MarketSnapshot(state=MARKET_COLD)))
        self.assertEqual(m.bankroll.profile_mode, PROFILE_MODERATE)


class TestPersistence(unittest.TestCase):
    def test_export_import(self):
        m, clock = _manager()
        m.on_round(clock.round(3.0), VERY_HOT)
        m.on_round(clock.round(1.5), VERY_HOT)

        copy = SessionManager()
        copy.import_state(m.export_state())
        self.assertEqual(copy.settings, m.settings)
        self.assertEqual(copy.bankroll, m.bankroll)
        self.assertEqual(copy.history, m.history)
        self.assertEqual(copy.status, m.status)
        self.assertEqual(copy.plan, m.plan)
        self.assertEqual(copy.lifetime, m.lifetime)
        self.assertEqual(copy.transactions, m.transactions)

    def test_import_ignores_garbage(self):
        m = SessionManager()
        m.import_state("nope")
        self.assertEqual(m.status, INACTIVE)
        m.import_state({"history": [{"multiplier": 0.5}, {"multiplier": 2.0}]})
        self.assertEqual(len(m.history), 1)


if __name__ == "__main__":
    unittest.main()
