"""Tests for deck construction, shuffling and dealing."""

from collections import Counter

import numpy as np
import pytest
from pydantic import ValidationError

from conftest import card, make_player
from thola_server.domain.cards import ACE_OF_SPADES, build_deck, deal, shuffle, starting_player
from thola_server.models.dc_models import Card


def test_build_deck_has_each_card_once():
    deck = build_deck()
    assert len(deck) == 52
    assert len({(c.suit, c.rank) for c in deck}) == 52
    assert min(c.value for c in deck) == 2
    assert max(c.value for c in deck) == 14


def test_card_value_follows_rank():
    assert card("AS").value == 14
    assert card("10D").value == 10
    assert card("2C").value == 2
    assert Card.model_validate({"suit": "H", "rank": "K", "value": 13}) == card("KH")
    with pytest.raises(ValidationError):
        Card.model_validate({"suit": "H", "rank": "K", "value": 5})
    with pytest.raises(ValidationError):
        Card.model_validate({"suit": "X", "rank": "K"})


def test_shuffle_is_a_permutation_and_leaves_input_alone():
    deck = build_deck()
    shuffled = shuffle(deck, np.random.default_rng(1))
    assert shuffled is not deck
    assert deck == build_deck()
    assert Counter(shuffled) == Counter(deck)
    assert shuffled != deck


def test_shuffle_without_generator_uses_fresh_randomness():
    deck = build_deck()
    orders = {tuple(str(c) for c in shuffle(deck)) for _ in range(5)}
    assert len(orders) > 1


@pytest.mark.parametrize("count", [2, 3, 5, 7, 8])
def test_deal_covers_the_deck_exactly_once(count):
    players = [make_player(f"p{i}", [], is_out=True) for i in range(count)]
    dealt = deal(players, np.random.default_rng(count))

    all_cards = [c for p in dealt for c in p.hand]
    assert Counter(all_cards) == Counter(build_deck())
    sizes = [len(p.hand) for p in dealt]
    assert max(sizes) - min(sizes) <= 1
    # seat 0 gets the first card, so it never has fewer than the others
    assert sizes[0] == max(sizes)
    assert all(not p.is_out for p in dealt)
    assert [p.id for p in dealt] == [p.id for p in players]
    # originals are untouched
    assert all(not p.hand for p in players)


def test_deal_keeps_thola_counter():
    players = [make_player("a", [], thola_received_this_game=3), make_player("b", [])]
    dealt = deal(players, np.random.default_rng(0))
    assert dealt[0].thola_received_this_game == 3
    assert dealt[1].thola_received_this_game == 0


def test_starting_player_holds_ace_of_spades():
    players = [make_player("a", ["2H"]), make_player("b", ["KD", "AS"])]
    assert starting_player(players) == "b"
    assert ACE_OF_SPADES == card("AS")


def test_starting_player_falls_back_to_seat_zero():
    players = [make_player("a", ["2H"]), make_player("b", ["KD"])]
    assert starting_player(players) == "a"
