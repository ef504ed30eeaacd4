"""Turn engine and membership manager of the shared game session.

Every player action runs as one read-modify-write transaction:
load the snapshot, apply the rules, save it back with compare-and-swap,
then publish the new snapshot. Publishing, stats recording and delayed
trick/Thola settlement are detached from the caller. Events are handed to a
single publisher task so observers receive snapshots in commit order.

The settlement of a finished trick or a Thola is scheduled with a resolution
token stored in the snapshot. When the job fires it re-reads the session and
does nothing unless the stored token still matches.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, List, Optional, Set

import numpy as np
from apscheduler.schedulers.base import BaseScheduler
from uuid6 import uuid7

from thola_server.converter import DataConverter
from thola_server.domain.cards import deal, starting_player
from thola_server.domain.game_rules import (
    MIN_PLAYERS,
    build_game_result,
    check_winners,
    is_active,
    is_legal_move,
    next_active_player,
    next_to_play,
    trick_highest_of,
    trick_is_complete,
)
from thola_server.exceptions import (
    GameAlreadyStarted,
    GameError,
    GameInProgress,
    IllegalMove,
    NotEnoughPlayers,
    NotHost,
    NotYourTurn,
    PersistenceFailure,
    PlayerNotFound,
    RoomFull,
    StaleResolution,
    VersionConflict,
)
from thola_server.models.dc_models import (
    ActionResult,
    Card,
    ChatMessage,
    EmojiReaction,
    GameResult,
    GameState,
    GameStatus,
    PendingResolution,
    Player,
    ResolutionKind,
    TableCard,
)
from thola_server.services.broadcaster import (
    CHAT_MESSAGE_EVENT,
    EMOJI_REACTION_EVENT,
    GAME_STATE_EVENT,
    Broadcaster,
)
from thola_server.services.session_store import SessionStore
from thola_server.services.stats_recorder import StatsRecorder

DEFAULT_SETTLE_DELAY = 2.0
DEFAULT_MAX_PLAYERS = 8
MAX_TRANSACTION_ATTEMPTS = 5

Followups = List[Callable[[], None]]

data_converter = DataConverter()


def reset_state(state: GameState, message: str) -> None:
    """Return the session to an empty lobby, in place."""
    fresh = GameState(message=message)
    for field in GameState.model_fields:
        setattr(state, field, getattr(fresh, field))


class GameEngine:
    def __init__(
        self,
        store: SessionStore,
        broadcaster: Broadcaster,
        scheduler: BaseScheduler,
        stats_recorder: Optional[StatsRecorder] = None,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        max_players: int = DEFAULT_MAX_PLAYERS,
        rng: Optional[np.random.Generator] = None,
    ):
        self.store: SessionStore = store
        self.broadcaster: Broadcaster = broadcaster
        self.scheduler: BaseScheduler = scheduler
        self.stats_recorder: Optional[StatsRecorder] = stats_recorder
        self.settle_delay: float = settle_delay
        self.max_players: int = max_players
        self.rng: Optional[np.random.Generator] = rng
        self._lock = asyncio.Lock()
        self._background_tasks: Set[asyncio.Task] = set()
        self._publish_queue: asyncio.Queue = asyncio.Queue()
        self._publisher: Optional[asyncio.Task] = None

    # ==== Player actions ====================================================

    async def join(self, player_id: str, name: str, stable_id: Optional[str] = None) -> ActionResult:
        return await self._run(
            partial(self._apply_join, player_id=player_id, name=name, stable_id=stable_id)
        )

    async def start_game(self, player_id: str) -> ActionResult:
        return await self._run(partial(self._apply_start, player_id=player_id))

    async def play_card(self, player_id: str, card: Card) -> ActionResult:
        return await self._run(partial(self._apply_play, player_id=player_id, card=card))

    async def leave(self, player_id: str) -> ActionResult:
        return await self._run(partial(self._apply_leave, player_id=player_id))

    async def disconnect(self, player_id: str) -> ActionResult:
        return await self._run(partial(self._apply_disconnect, player_id=player_id))

    async def terminate(self, player_id: str) -> ActionResult:
        return await self._run(partial(self._apply_terminate, player_id=player_id))

    async def chat(self, player_id: str, text: str) -> ActionResult:
        state = await self.get_state()
        player = state.find_player(player_id)
        if player is None:
            return self._rejected(PlayerNotFound())
        message = ChatMessage(
            id=str(uuid7()),
            sender=player.name,
            sender_id=player_id,
            text=text,
            timestamp=datetime.now().strftime("%H:%M:%S"),
        )
        self._enqueue_publish(CHAT_MESSAGE_EVENT, data_converter.convert_chat_to_payload(message))
        return ActionResult(success=True)

    async def emoji(self, player_id: str, emoji: str) -> ActionResult:
        state = await self.get_state()
        if state.find_player(player_id) is None:
            return self._rejected(PlayerNotFound())
        reaction = EmojiReaction(sender_id=player_id, emoji=emoji)
        self._enqueue_publish(EMOJI_REACTION_EVENT, data_converter.convert_chat_to_payload(reaction))
        return ActionResult(success=True)

    async def get_state(self) -> GameState:
        state, _ = await self.store.load()
        return state

    async def settle(self, token: str) -> bool:
        """Scheduled job: apply the trick or Thola settlement identified by token.

        Returns:
            bool: False when the session moved on and the job was skipped
        """
        try:
            await self._transact(partial(self._apply_settlement, token=token))
        except StaleResolution as e:
            logging.info(f"Skipping stale settlement {token}: {e}")
            return False
        except PersistenceFailure as e:
            logging.error(f"Failed to settle {token}: {e}")
            return False
        return True

    async def drain(self) -> None:
        """Wait for detached publish/stats tasks (used on shutdown and in tests)."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    # ==== Transactions ======================================================

    async def _run(self, mutate: Callable[[GameState, Followups], None]) -> ActionResult:
        try:
            await self._transact(mutate)
        except GameError as e:
            return self._rejected(e)
        return ActionResult(success=True)

    def _rejected(self, error: GameError) -> ActionResult:
        logging.info(f"Rejected action: {error.message}")
        return ActionResult(success=False, error=error.message, code=error.code)

    async def _transact(self, mutate: Callable[[GameState, Followups], None]) -> GameState:
        async with self._lock:
            for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
                state, version = await self.store.load()
                followups: Followups = []
                mutate(state, followups)
                try:
                    await self.store.save(state, version)
                except VersionConflict as e:
                    logging.warning(f"Game session changed concurrently (attempt {attempt}): {e}")
                    continue
                break
            else:
                raise PersistenceFailure(
                    f"Gave up after {MAX_TRANSACTION_ATTEMPTS} conflicting writes"
                )
            # Queued under the lock so snapshots go out in commit order
            self._enqueue_publish(GAME_STATE_EVENT, data_converter.convert_state_to_payload(state))

        for followup in followups:
            followup()
        return state

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _enqueue_publish(self, event: str, payload: dict) -> None:
        """Queue an event for the single publisher task, starting it when idle."""
        self._publish_queue.put_nowait((event, payload))
        if self._publisher is None or self._publisher.done():
            self._publisher = asyncio.get_running_loop().create_task(self._publish_pending())
            self._background_tasks.add(self._publisher)
            self._publisher.add_done_callback(self._background_tasks.discard)

    async def _publish_pending(self) -> None:
        # Exits once the queue is empty; the next enqueue starts a new task
        while not self._publish_queue.empty():
            event, payload = self._publish_queue.get_nowait()
            await self._safe_publish(event, payload)

    async def _safe_publish(self, event: str, payload: dict) -> None:
        try:
            await self.broadcaster.publish(event, payload)
        except Exception as e:
            logging.error(f"Error broadcasting {event}: {e}")

    async def _safe_record(self, result: GameResult) -> None:
        try:
            await self.stats_recorder.record_game_result(result)
        except Exception as e:
            logging.error(f"Failed to update stats: {e}")

    def _schedule_settlement(self, token: str) -> None:
        run_date = datetime.now() + timedelta(seconds=self.settle_delay)
        self.scheduler.add_job(
            self.settle,
            "date",
            run_date=run_date,
            args=[token],
            id=f"settle-{token}",
            misfire_grace_time=None,
        )
        logging.debug(f"Scheduled settlement {token} at {run_date}")

    def _record_result(self, result: GameResult) -> None:
        if self.stats_recorder is None:
            return
        self._spawn(self._safe_record(result))

    # ==== Membership ========================================================

    def _apply_join(
        self,
        state: GameState,
        followups: Followups,
        player_id: str,
        name: str,
        stable_id: Optional[str],
    ) -> None:
        existing = next(
            (
                p
                for p in state.players
                if (stable_id and p.stable_id == stable_id) or (not stable_id and p.name == name)
            ),
            None,
        )
        if existing is not None:
            old_id = existing.id
            self._rebind(state, old_id, player_id)
            existing.is_connected = True
            if old_id == player_id:
                state.message = f"{existing.name} is ready!"
            else:
                state.message = f"{existing.name} reconnected!"
            # Nobody could take the turn while everyone else was away
            if (
                state.status == GameStatus.playing
                and not state.current_turn
                and state.pending_resolution is None
                and is_active(existing)
            ):
                state.current_turn = existing.id
            logging.info(f"{existing.name} rebound from {old_id} to {player_id}")
            return

        if state.status != GameStatus.lobby:
            raise GameInProgress()
        if len(state.players) >= self.max_players:
            raise RoomFull(f"Game is full! Maximum {self.max_players} players allowed.")

        state.players.append(
            Player(
                id=player_id,
                stable_id=stable_id,
                name=name,
                is_connected=True,
                join_order=len(state.players),
            )
        )
        state.message = f"{name} joined!"
        logging.info(f"{name} joined as seat {len(state.players) - 1}")

    def _rebind(self, state: GameState, old_id: str, new_id: str) -> None:
        if old_id == new_id:
            return
        player = state.find_player(old_id)
        player.id = new_id
        if state.current_turn == old_id:
            state.current_turn = new_id
        for table_card in state.table_cards:
            if table_card.player_id == old_id:
                table_card.player_id = new_id
        state.winner_order = [new_id if pid == old_id else pid for pid in state.winner_order]
        if state.last_thola_by == old_id:
            state.last_thola_by = new_id

    def _apply_start(self, state: GameState, followups: Followups, player_id: str) -> None:
        if state.status == GameStatus.playing:
            raise GameAlreadyStarted()
        if len(state.players) < MIN_PLAYERS:
            raise NotEnoughPlayers()
        if state.players[0].id != player_id:
            raise NotHost()

        for player in state.players:
            player.thola_received_this_game = 0
        state.players = deal(state.players, self.rng)
        state.status = GameStatus.playing
        first = starting_player(state.players)
        if not is_active(state.find_player(first)):
            first = next_active_player(state.players, first)
        state.current_turn = first
        state.current_suit = None
        state.table_cards = []
        state.winner_order = []
        state.last_thola_by = None
        state.pending_resolution = None
        state.message = "Game Started! ACE of SPADES starts."
        logging.info(f"Game started with {len(state.players)} players")

    def _apply_leave(self, state: GameState, followups: Followups, player_id: str) -> None:
        leaving = state.find_player(player_id)
        if leaving is None:
            raise PlayerNotFound()

        # Players who already have a card in the trick do not get the turn again
        played = {tc.player_id for tc in state.table_cards if tc.player_id != player_id}
        successor = next_active_player(state.players, player_id, exclude=played | {player_id})
        was_turn = state.current_turn == player_id

        state.players = [p for p in state.players if p.id != player_id]
        state.table_cards = [tc for tc in state.table_cards if tc.player_id != player_id]
        state.winner_order = [pid for pid in state.winner_order if pid != player_id]
        logging.info(f"{leaving.name} left the game")

        if not state.players:
            reset_state(state, "Waiting for players...")
            return

        if state.status == GameStatus.playing and len(state.players) < MIN_PLAYERS:
            state.status = GameStatus.lobby
            state.current_turn = ""
            state.current_suit = None
            state.table_cards = []
            state.pending_resolution = None
            state.message = f"{leaving.name} left. Waiting for players..."
            return

        state.message = f"{leaving.name} left the game."
        if state.status != GameStatus.playing:
            return

        if was_turn:
            state.current_turn = successor
        if not state.table_cards:
            state.current_suit = None
            if state.pending_resolution is not None:
                # Nothing left to settle
                state.pending_resolution = None
                state.current_turn = successor

        bhabi = check_winners(state)
        if bhabi is not None:
            self._finish(state, followups, bhabi)
            return
        self._resolve_if_trick_complete(state, followups)

    def _apply_disconnect(self, state: GameState, followups: Followups, player_id: str) -> None:
        player = state.find_player(player_id)
        if player is None:
            raise PlayerNotFound()

        player.is_connected = False
        was_turn = state.current_turn == player_id
        logging.info(f"{player.name} disconnected")

        if state.status == GameStatus.lobby:
            state.players = [p for p in state.players if p.id != player_id]

        if all(not p.is_connected for p in state.players):
            reset_state(state, "Waiting for players...")
            return

        state.message = f"{player.name} disconnected."
        if state.status == GameStatus.playing:
            if was_turn:
                state.current_turn = next_to_play(state, player_id)
            self._resolve_if_trick_complete(state, followups)

    def _apply_terminate(self, state: GameState, followups: Followups, player_id: str) -> None:
        player = state.find_player(player_id)
        if player is None:
            raise PlayerNotFound()
        reset_state(state, "Room terminated. Waiting for players...")
        logging.info(f"Room terminated by {player.name}. All players removed.")

    # ==== Turn engine =======================================================

    def _apply_play(self, state: GameState, followups: Followups, player_id: str, card: Card) -> None:
        player = state.find_player(player_id)
        if player is None:
            raise PlayerNotFound()
        if state.status != GameStatus.playing or state.current_turn != player_id:
            raise NotYourTurn()
        held = next((c for c in player.hand if c.same_card(card)), None)
        if held is None:
            raise IllegalMove(f"You do not hold {card}")
        if not is_legal_move(player.hand, held, state.current_suit):
            raise IllegalMove()

        player.hand = [c for c in player.hand if not c.same_card(held)]
        state.table_cards.append(TableCard(player_id=player_id, card=held))
        if state.current_suit is None:
            state.current_suit = held.suit

        if held.suit != state.current_suit:
            highest = trick_highest_of(state.current_suit, state.table_cards)
            recipient = state.find_player(highest.player_id) if highest else None
            recipient_name = recipient.name if recipient else "the table"
            state.message = f"{player.name} gave THOLA to {recipient_name}!"
            state.last_thola_by = player_id
            self._begin_resolution(state, followups, ResolutionKind.thola)
            return

        if trick_is_complete(state):
            self._announce_trick(state, followups)
            return

        state.current_turn = next_to_play(state, player_id)
        bhabi = check_winners(state)
        if bhabi is not None:
            self._finish(state, followups, bhabi)

    def _announce_trick(self, state: GameState, followups: Followups) -> None:
        highest = trick_highest_of(state.current_suit, state.table_cards)
        winner = state.find_player(highest.player_id) if highest else None
        winner_name = winner.name if winner else "Unknown"
        state.message = f"{winner_name} won the trick."
        self._begin_resolution(state, followups, ResolutionKind.trick)

    def _resolve_if_trick_complete(self, state: GameState, followups: Followups) -> None:
        if (
            state.status == GameStatus.playing
            and state.pending_resolution is None
            and state.table_cards
            and trick_is_complete(state)
        ):
            self._announce_trick(state, followups)

    def _begin_resolution(self, state: GameState, followups: Followups, kind: ResolutionKind) -> None:
        token = str(uuid7())
        state.pending_resolution = PendingResolution(token=token, kind=kind)
        # No one plays while the table is settling
        state.current_turn = ""
        followups.append(partial(self._schedule_settlement, token))

    def _apply_settlement(self, state: GameState, followups: Followups, token: str) -> None:
        pending = state.pending_resolution
        if pending is None or pending.token != token:
            raise StaleResolution("resolution token no longer current")
        if state.status != GameStatus.playing or not state.table_cards:
            raise StaleResolution("table already cleared")

        highest = trick_highest_of(state.current_suit, state.table_cards)
        recipient = state.find_player(highest.player_id) if highest else None
        anchor_id = recipient.id if recipient else state.table_cards[0].player_id
        cards = [table_card.card for table_card in state.table_cards]

        if pending.kind == ResolutionKind.thola and recipient is not None:
            recipient.hand.extend(cards)
            recipient.thola_received_this_game += 1
            if recipient.is_out:
                recipient.is_out = False
                state.winner_order = [pid for pid in state.winner_order if pid != recipient.id]
            message = f"{recipient.name} received {len(cards)} card(s)!"
        else:
            message = None

        state.table_cards = []
        state.current_suit = None
        state.pending_resolution = None

        out_before = len(state.winner_order)
        bhabi = check_winners(state)
        if bhabi is not None:
            self._finish(state, followups, bhabi)
            return
        cleared = state.message if len(state.winner_order) > out_before else None

        if recipient is not None and is_active(recipient):
            state.current_turn = recipient.id
        else:
            state.current_turn = next_active_player(state.players, anchor_id)
        if message is None:
            next_player = state.find_player(state.current_turn)
            message = f"{next_player.name}'s turn" if next_player else "Trick cleared."
        # Keep the "cleared all cards" announcement in front
        state.message = f"{cleared} {message}" if cleared else message

    def _finish(self, state: GameState, followups: Followups, bhabi: Player) -> None:
        logging.info(f"Game over, {bhabi.name} is the Bhabi")
        result = build_game_result(state, bhabi)
        followups.append(partial(self._record_result, result))
