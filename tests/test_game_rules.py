from conftest import card, make_player, playing_state
from thola_server.domain.game_rules import (
    build_game_result,
    check_winners,
    is_legal_move,
    next_active_player,
    next_to_play,
    trick_highest_of,
    trick_is_complete,
)
from thola_server.models.dc_models import GameStatus, Suit, TableCard


def test_any_card_is_legal_when_nothing_is_led():
    hand = [card("5H"), card("2C")]
    assert is_legal_move(hand, card("2C"), None)


def test_following_suit_is_always_legal():
    hand = [card("5H"), card("2C")]
    assert is_legal_move(hand, card("5H"), Suit.hearts)


def test_off_suit_is_legal_only_without_the_led_suit():
    assert not is_legal_move([card("5H"), card("2C")], card("2C"), Suit.hearts)
    assert is_legal_move([card("3D"), card("2C")], card("2C"), Suit.hearts)


def test_trick_highest_of_ignores_other_suits():
    table = [
        TableCard(player_id="a", card=card("KS")),
        TableCard(player_id="b", card=card("AS")),
        TableCard(player_id="c", card=card("AH")),
    ]
    assert trick_highest_of(Suit.spades, table).player_id == "b"
    # deterministic and side-effect free
    assert trick_highest_of(Suit.spades, table).player_id == "b"
    assert [tc.player_id for tc in table] == ["a", "b", "c"]
    assert trick_highest_of(Suit.diamonds, table) is None


def test_next_active_player_skips_out_and_disconnected_and_wraps():
    players = [
        make_player("a", [], is_out=True),
        make_player("b", ["2H"]),
        make_player("c", ["3H"], is_connected=False),
        make_player("d", ["4H"]),
    ]
    assert next_active_player(players, "b") == "d"
    assert next_active_player(players, "d") == "b"


def test_next_active_player_returns_empty_when_nobody_is_eligible():
    players = [make_player("a", [], is_out=True), make_player("b", ["2H"], is_connected=False)]
    assert next_active_player(players, "a") == ""
    assert next_active_player([], "a") == ""


def test_next_to_play_skips_players_already_in_the_trick():
    players = [make_player("a", ["2H"]), make_player("b", ["3H"]), make_player("c", ["4H"])]
    state = playing_state(players, "c", table=[("a", "5H"), ("c", "7H")])
    assert next_active_player(players, "c") == "a"
    assert next_to_play(state, "c") == "b"
    assert next_active_player(players, "a", exclude={"a", "b", "c"}) == ""


def test_trick_is_complete_when_every_active_player_has_played():
    players = [make_player("a", ["2H"]), make_player("b", ["3H"]), make_player("c", [], is_out=True)]
    state = playing_state(players, "b", table=[("a", "5H")])
    assert not trick_is_complete(state)
    state.table_cards.append(TableCard(player_id="b", card=card("9H")))
    assert trick_is_complete(state)


def test_check_winners_marks_empty_hands_once():
    players = [make_player("a", []), make_player("b", ["2H"]), make_player("c", ["3H"])]
    state = playing_state(players, "b")
    assert check_winners(state) is None
    assert check_winners(state) is None
    assert state.winner_order == ["a"]
    assert state.players[0].is_out
    assert state.status == GameStatus.playing


def test_check_winners_finishes_with_one_player_left():
    players = [make_player("a", [], is_out=True), make_player("b", []), make_player("c", ["3H"])]
    state = playing_state(players, "c")
    state.winner_order = ["a"]
    bhabi = check_winners(state)
    assert bhabi.id == "c"
    assert state.status == GameStatus.finished
    assert state.winner_order == ["a", "b"]
    assert "C" in state.message
    assert state.current_turn == ""


def test_build_game_result_only_counts_stable_identities():
    players = [
        make_player("a", [], is_out=True, stable_id="u1", thola_received_this_game=2),
        make_player("b", ["2H"], stable_id="u2"),
        make_player("c", [], is_out=True),
    ]
    state = playing_state(players, "")
    result = build_game_result(state, state.players[1])
    assert result.bhabi_name == "B"
    assert [(p.stable_id, p.won, p.lost, p.thola_received) for p in result.players] == [
        ("u1", True, False, 2),
        ("u2", False, True, 0),
    ]
