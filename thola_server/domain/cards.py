"""Deck construction, shuffling and dealing."""

from typing import List, Optional

import numpy as np

from thola_server.models.dc_models import Card, Player, Rank, Suit

ACE_OF_SPADES = Card(suit=Suit.spades, rank=Rank.ace)


def build_deck() -> List[Card]:
    """Return the 52 cards of a standard deck, one per (suit, rank)."""
    return [Card(suit=suit, rank=rank) for suit in Suit for rank in Rank]


def shuffle(deck: List[Card], rng: Optional[np.random.Generator] = None) -> List[Card]:
    """Fisher-Yates shuffle on a copy of the deck.

    A fresh generator is created on every call unless one is injected.
    """
    if rng is None:
        rng = np.random.default_rng()
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def deal(players: List[Player], rng: Optional[np.random.Generator] = None) -> List[Player]:
    """Deal a shuffled deck round-robin starting at seat 0.

    Args:
        players (List[Player]): Players in seating order
        rng (np.random.Generator, optional): Source of randomness for the shuffle

    Returns:
        List[Player]: New player objects with fresh hands and is_out reset
    """
    dealt = [
        player.model_copy(update={"hand": [], "is_out": False})
        for player in players
    ]
    if not dealt:
        return dealt
    for index, card in enumerate(shuffle(build_deck(), rng)):
        dealt[index % len(dealt)].hand.append(card)
    return dealt


def starting_player(players: List[Player]) -> str:
    """Traditional Bhabi Thola starts with the holder of the Ace of Spades."""
    for player in players:
        if any(card.same_card(ACE_OF_SPADES) for card in player.hand):
            return player.id
    return players[0].id if players else ""
