"""
Pytest configuration shared by every test package.

Provides the event bus reset, a deterministic byte source, helpers to build
cards from short strings and to stack a known card order into a table's shoe.
"""

import random
from dataclasses import replace
from typing import Iterable, List, Union

import pytest

from noirjack.common.card import Card, Rank, Suit
from noirjack.common.shoe import build_cards
from noirjack.events import EventBus
from noirjack.state.models import GameState
from noirjack.state.transitions import init_game, set_bet, sit

SUIT_SYMBOLS = {suit.value for suit in Suit}


def make_cards(spec: Union[str, Iterable[Union[str, Card]]]) -> List[Card]:
    """
    Build cards from short forms.

    ``"A K 7"`` gives three spades; suits may be given explicitly (``"A♥ K♦"``).
    """
    tokens = spec.split() if isinstance(spec, str) else list(spec)
    result = []
    for token in tokens:
        if isinstance(token, Card):
            result.append(token)
        elif token[-1] in SUIT_SYMBOLS:
            result.append(Card.parse(token))
        else:
            result.append(Card(Rank.from_str(token), Suit.SPADES))
    return result


def stack_shoe(state: GameState, deal_order, filler: bool = True) -> GameState:
    """
    Put ``deal_order`` on top of the shoe so it is dealt exactly in that order.

    The cut card is moved to the very back so the stacked shoe is never
    reshuffled; with ``filler`` a full deck sits underneath the stacked cards.
    """
    top = make_cards(deal_order)
    bottom = tuple(build_cards(1)) if filler else ()
    shoe = replace(
        state.shoe,
        cards=bottom + tuple(reversed(top)),
        discard=(),
        cut_index=0,
    )
    return replace(state, shoe=shoe, pending_reshuffle=False)


@pytest.fixture(scope="function", autouse=True)
def reset_event_bus():
    """Reset the event bus singleton before each test."""
    EventBus._instance = None
    yield
    EventBus._instance = None


@pytest.fixture
def cards():
    return make_cards


@pytest.fixture
def stack():
    return stack_shoe


@pytest.fixture
def random_bytes():
    """Deterministic stand-in for the CSPRNG."""
    return random.Random(20240601).randbytes


@pytest.fixture
def events():
    """Every event published during the test, as ``(type_name, data)``."""
    received = []
    EventBus.get_instance().on_any(received.append)
    return received


@pytest.fixture
def table(random_bytes):
    """Default table with seat 0 occupied and a bet of 10."""
    state = init_game(random_bytes=random_bytes)
    state = sit(state, 0)
    return set_bet(state, 0, 10)
