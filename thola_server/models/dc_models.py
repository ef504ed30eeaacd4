from pydantic import BaseModel, Field, model_validator
from enum import Enum
from typing import Optional, List


class Suit(str, Enum):
    spades = "S"
    hearts = "H"
    diamonds = "D"
    clubs = "C"


class Rank(str, Enum):
    two = "2"
    three = "3"
    four = "4"
    five = "5"
    six = "6"
    seven = "7"
    eight = "8"
    nine = "9"
    ten = "10"
    jack = "J"
    queen = "Q"
    king = "K"
    ace = "A"


# 2 is the lowest, A is the highest (14)
RANK_VALUES = {rank: index + 2 for index, rank in enumerate(Rank)}


class GameStatus(str, Enum):
    lobby = "LOBBY"
    playing = "PLAYING"
    finished = "FINISHED"


class ResolutionKind(str, Enum):
    thola = "thola"
    trick = "trick"


class Card(BaseModel):
    suit: Suit
    rank: Rank
    value: int = 0

    class Config:
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def fill_value(cls, data):
        if isinstance(data, dict) and not data.get("value") and "rank" in data:
            data = {**data, "value": RANK_VALUES[Rank(data["rank"])]}
        return data

    @model_validator(mode="after")
    def check_value(self) -> "Card":
        expected = RANK_VALUES[self.rank]
        if self.value != expected:
            raise ValueError(f"value {self.value} does not match rank {self.rank.value}")
        return self

    @classmethod
    def of(cls, suit: str, rank: str) -> "Card":
        return cls(suit=Suit(suit), rank=Rank(rank))

    def same_card(self, other: "Card") -> bool:
        return self.suit == other.suit and self.rank == other.rank

    def __str__(self) -> str:
        return f"{self.rank.value}{self.suit.value}"


class Player(BaseModel):
    id: str
    stable_id: Optional[str] = None
    name: str
    hand: List[Card] = Field(default_factory=list)
    is_out: bool = False
    is_connected: bool = True
    join_order: int = 0
    thola_received_this_game: int = 0


class TableCard(BaseModel):
    player_id: str
    card: Card


class PendingResolution(BaseModel):
    token: str
    kind: ResolutionKind


class GameState(BaseModel):
    """The single shared game session. Persisted and broadcast as a whole."""

    players: List[Player] = Field(default_factory=list)
    current_turn: str = ""
    current_suit: Optional[Suit] = None
    table_cards: List[TableCard] = Field(default_factory=list)
    status: GameStatus = GameStatus.lobby
    winner_order: List[str] = Field(default_factory=list)
    message: str = "Waiting for players..."
    last_thola_by: Optional[str] = None
    pending_resolution: Optional[PendingResolution] = None

    def find_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None


class ChatMessage(BaseModel):
    id: str
    sender: str
    sender_id: str
    text: str
    timestamp: str

    class Config:
        frozen = True


class EmojiReaction(BaseModel):
    sender_id: str
    emoji: str

    class Config:
        frozen = True


class PlayerResult(BaseModel):
    stable_id: str
    name: str
    won: bool
    lost: bool
    thola_received: int = 0


class GameResult(BaseModel):
    bhabi_name: str
    players: List[PlayerResult] = Field(default_factory=list)


class ActionResult(BaseModel):
    success: bool
    error: Optional[str] = None
    code: Optional[str] = None


class JoinModel(BaseModel):
    player_id: str
    name: str
    stable_id: Optional[str] = None


class PlayerActionModel(BaseModel):
    player_id: str


class PlayCardModel(BaseModel):
    player_id: str
    card: Card


class ChatModel(BaseModel):
    player_id: str
    text: str = Field(min_length=1, max_length=500)


class EmojiModel(BaseModel):
    player_id: str
    emoji: str = Field(min_length=1, max_length=32)
