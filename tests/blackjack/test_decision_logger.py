"""
Tests for the advisor's decision log.
"""

import json
import logging
from datetime import datetime

import pytest

from noirjack.common.card import Card, Rank, Suit
from noirjack.blackjack.action import Action
from noirjack.blackjack.decision_logger import DecisionLogger, DecisionRecord


def record(game_id="g1", chosen=Action.HIT, ideal=Action.HIT, kind="hard"):
    return DecisionRecord(
        timestamp=datetime(2024, 1, 1, 12, 0, 0),
        game_id=game_id,
        seat_index=0,
        hand_id="hand-0-1",
        hand_cards=[Card(Rank.NINE, Suit.SPADES), Card(Rank.SEVEN, Suit.HEARTS)],
        hand_kind=kind,
        dealer_upcard=Card(Rank.ACE, Suit.CLUBS),
        legal_actions=[Action.HIT, Action.STAND],
        ideal_action=ideal,
        chosen_action=chosen,
        reasoning="Hard 16 vs A → Hit (6D-S17-No-Surr-DAS)",
        table_ref="6D-S17-No-Surr-DAS",
    )


@pytest.fixture
def log():
    return DecisionLogger()


def test_record_to_dict():
    data = record().to_dict()
    assert data["cards"] == ["9♠", "7♥"]
    assert data["dealer_up"] == "A♣"
    assert data["legal_actions"] == ["hit", "stand"]
    assert data["chosen"] == "hit"
    assert data["timestamp"] == "2024-01-01T12:00:00"


def test_summary(log):
    log.log_recommendation(record())
    log.log_recommendation(record(chosen=Action.HIT, ideal=Action.SURRENDER))
    log.log_recommendation(
        record(game_id="g2", chosen=Action.STAND, ideal=Action.STAND, kind="soft")
    )

    summary = log.get_decision_summary()
    assert summary["total_decisions"] == 3
    assert summary["by_action"] == {"hit": 2, "stand": 1}
    assert summary["by_kind"] == {"hard": 2, "soft": 1}
    assert summary["fallback_count"] == 1

    assert log.get_decision_summary("g2")["total_decisions"] == 1


def test_history_is_bounded():
    log = DecisionLogger(max_history=3)
    for n in range(5):
        log.log_recommendation(record(game_id=f"g{n}"))
    assert [r.game_id for r in log.decision_history] == ["g2", "g3", "g4"]
    assert log.get_decision_summary()["total_decisions"] == 3


def test_clear(log):
    log.log_recommendation(record())
    log.clear()
    assert log.get_decision_summary()["total_decisions"] == 0


def test_export(log, tmp_path):
    log.log_recommendation(record())
    target = tmp_path / "decisions.json"
    log.export_decisions(str(target))
    data = json.loads(target.read_text(encoding="utf-8"))
    assert len(data["decisions"]) == 1
    assert data["summary"]["total_decisions"] == 1


def test_strategy_lookup_logging(log, caplog):
    with caplog.at_level(logging.DEBUG, logger="noirjack.strategy.decisions"):
        log.log_strategy_lookup("Hard 16", "A", "Rh -> hit", fallback_used=True)
    assert "Hard 16 vs A -> Rh -> hit (using fallback)" in caplog.text


def test_disable_logging_env(monkeypatch):
    monkeypatch.setenv("NOIRJACK_DISABLE_LOGGING", "1")
    quiet = DecisionLogger()
    assert quiet.logger.level == logging.ERROR
    quiet.set_level(logging.DEBUG)
    assert quiet.logger.level == logging.DEBUG
