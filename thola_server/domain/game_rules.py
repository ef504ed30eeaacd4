"""Bhabi Thola rules that are independent from HTTP, DB and timers.

Rule of thumb:
- OK: legality checks, trick evaluation, turn rotation, win detection on a GameState.
- Not OK: touching the session store, broadcasting, scheduling, datetime.now().
"""

from typing import Collection, List, Optional

from thola_server.models.dc_models import (
    Card,
    GameResult,
    GameState,
    GameStatus,
    Player,
    PlayerResult,
    Suit,
    TableCard,
)

MIN_PLAYERS = 2


def is_legal_move(hand: List[Card], card: Card, led_suit: Optional[Suit]) -> bool:
    """Must follow suit when able; otherwise any card may be discarded (Thola)."""
    if led_suit is None:
        return True
    if card.suit == led_suit:
        return True
    return not any(c.suit == led_suit for c in hand)


def trick_highest_of(led_suit: Optional[Suit], table_cards: List[TableCard]) -> Optional[TableCard]:
    """Return the highest card of the led suit on the table.

    The same card decides both the trick winner (everyone followed suit)
    and the Thola recipient (someone discarded off-suit).
    """
    highest: Optional[TableCard] = None
    for table_card in table_cards:
        if table_card.card.suit != led_suit:
            continue
        if highest is None or table_card.card.value > highest.card.value:
            highest = table_card
    return highest


def is_active(player: Player) -> bool:
    return not player.is_out and player.is_connected


def active_players(players: List[Player]) -> List[Player]:
    """Connected players that still hold cards, in seating order."""
    return [player for player in players if is_active(player)]


def next_active_player(players: List[Player], player_id: str, exclude: Collection[str] = ()) -> str:
    """Walk seating order after player_id, skipping out or disconnected players
    and the ids in exclude.

    Unknown ids start the walk from seat 0. Returns "" when nobody is eligible.
    """
    count = len(players)
    if count == 0:
        return ""
    start = next((i for i, p in enumerate(players) if p.id == player_id), -1)
    for step in range(1, count + 1):
        candidate = players[(start + step) % count]
        if is_active(candidate) and candidate.id not in exclude:
            return candidate.id
    return ""


def next_to_play(state: GameState, player_id: str) -> str:
    """Next active player after player_id who has no card in the current trick."""
    played = {table_card.player_id for table_card in state.table_cards}
    return next_active_player(state.players, player_id, exclude=played)


def trick_is_complete(state: GameState) -> bool:
    """Every connected player still holding cards has a card on the table."""
    if not state.table_cards:
        return False
    played = {table_card.player_id for table_card in state.table_cards}
    return all(player.id in played for player in active_players(state.players))


def check_winners(state: GameState) -> Optional[Player]:
    """Mark players who emptied their hand as out and detect the end of the game.

    Returns:
        Optional[Player]: The Bhabi when this call finished the game, otherwise None
    """
    for player in state.players:
        if not player.is_out and not player.hand:
            player.is_out = True
            if player.id not in state.winner_order:
                state.winner_order.append(player.id)
            state.message = f"{player.name} cleared all cards!"

    remaining = [player for player in state.players if not player.is_out]
    if state.status == GameStatus.playing and len(remaining) == 1:
        bhabi = remaining[0]
        state.status = GameStatus.finished
        state.current_turn = ""
        state.message = f"GAME OVER! {bhabi.name} is the BHABI!"
        return bhabi
    return None


def build_game_result(state: GameState, bhabi: Player) -> GameResult:
    """Collect per-player outcomes for players with a durable identity."""
    players = [
        PlayerResult(
            stable_id=player.stable_id,
            name=player.name,
            won=player.is_out,
            lost=player.id == bhabi.id,
            thola_received=player.thola_received_this_game,
        )
        for player in state.players
        if player.stable_id
    ]
    return GameResult(bhabi_name=bhabi.name, players=players)
