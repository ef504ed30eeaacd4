class GameError(Exception):
    """Base class for rejected game actions. Nothing is persisted when raised."""

    code = "game_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionFailure(GameError):
    code = "precondition_failure"


class PlayerNotFound(PreconditionFailure):
    code = "player_not_found"

    def __init__(self, message: str = "Player not found"):
        super().__init__(message)


class NotYourTurn(PreconditionFailure):
    code = "not_your_turn"

    def __init__(self, message: str = "Not your turn or game not in progress"):
        super().__init__(message)


class GameInProgress(PreconditionFailure):
    code = "game_in_progress"

    def __init__(self, message: str = "Game in progress"):
        super().__init__(message)


class RoomFull(PreconditionFailure):
    code = "room_full"


class GameAlreadyStarted(PreconditionFailure):
    code = "game_already_started"

    def __init__(self, message: str = "Game already started"):
        super().__init__(message)


class NotEnoughPlayers(PreconditionFailure):
    code = "not_enough_players"

    def __init__(self, message: str = "Need at least 2 players"):
        super().__init__(message)


class NotHost(PreconditionFailure):
    code = "not_host"

    def __init__(self, message: str = "Only the first player can start the game"):
        super().__init__(message)


class IllegalMove(GameError):
    code = "illegal_move"

    def __init__(self, message: str = "Invalid move! You must follow suit when able."):
        super().__init__(message)


class StaleResolution(Exception):
    """A delayed settlement found the session already moved on."""


class VersionConflict(Exception):
    """The stored snapshot changed between read and write."""


class PersistenceFailure(Exception):
    """The state store could not be read or written."""
