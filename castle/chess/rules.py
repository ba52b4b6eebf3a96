"""
The rules oracle.

Thin wrapper around python-chess: every question about legality, notation or the end of the game is answered by the library.
Nothing in this package builds or edits a position by hand; positions only come out of `start` or `apply_move`.
"""

import io
from dataclasses import dataclass
from typing import Optional, Self, Union

import chess
import chess.pgn

from castle.core.exceptions import GameError, InvalidFENError
from castle.core.models import STARTING_FEN
from castle.core.shared_types import Color, Termination

PROMOTION_PIECES = {"q": chess.QUEEN, "r": chess.ROOK, "b": chess.BISHOP, "n": chess.KNIGHT}
SAN_ANNOTATIONS = "+#!?"

TERMINATIONS: dict[chess.Termination, Termination] = {
    chess.Termination.CHECKMATE: Termination.CHECKMATE,
    chess.Termination.STALEMATE: Termination.STALEMATE,
    chess.Termination.INSUFFICIENT_MATERIAL: Termination.INSUFFICIENT_MATERIAL,
    chess.Termination.THREEFOLD_REPETITION: Termination.THREEFOLD_REPETITION,
    chess.Termination.FIVEFOLD_REPETITION: Termination.THREEFOLD_REPETITION,
    chess.Termination.FIFTY_MOVES: Termination.FIFTY_MOVES,
    chess.Termination.SEVENTYFIVE_MOVES: Termination.FIFTY_MOVES,
}


@dataclass(frozen=True)
class SquareMove:
    """A move as the board UI reports it: drag from one square to another."""

    from_square: str
    to_square: str
    promotion: Optional[str] = None

    def to_uci(self) -> str:
        return f"{self.from_square}{self.to_square}{(self.promotion or '').lower()}".lower()


# A candidate move is either dragged squares or a SAN string ("Nf3").
CandidateMove = Union[SquareMove, str]


@dataclass(frozen=True)
class Position:
    """
    Board state as produced by the oracle.

    `fen` is the portable form. `start_fen` + `moves` (SAN) are kept so repetition can be detected, which a FEN alone cannot tell.
    """

    start_fen: str
    fen: str
    moves: tuple[str, ...] = ()

    @property
    def ply(self) -> int:
        return len(self.moves)

    @property
    def side_to_move(self) -> Color:
        return Color.WHITE if self.fen.split(" ")[1] == "w" else Color.BLACK

    @classmethod
    def from_fen(cls, fen: str) -> Self:
        """A position without known history (puzzles, or a checkpoint whose PGN could not be replayed)."""
        board = _board_from_fen(fen)
        return cls(start_fen=board.fen(), fen=board.fen())


@dataclass(frozen=True)
class MoveApplication:
    """Result of a legal move: new position plus what the oracle says about it."""

    position: Position
    san: str
    uci: str
    from_square: str
    to_square: str
    color: Color
    is_check: bool
    termination: Optional[Termination]

    @property
    def is_terminal(self) -> bool:
        return self.termination is not None

    @property
    def is_checkmate(self) -> bool:
        return self.termination == Termination.CHECKMATE

    def describe(self) -> str:
        """Line shown in the move history panel."""
        side = "White" if self.color == Color.WHITE else "Black"
        return f"{side} moved from {self.from_square} to {self.to_square}"


def normalize_san(san: str) -> str:
    """Drop check/mate marks and annotation glyphs, so 'Qh4#' and 'Qh4' compare equal."""
    return san.strip().rstrip(SAN_ANNOTATIONS)


class RulesOracle:
    """Chess legality and game-termination authority."""

    def start(self, fen: Optional[str] = None) -> Position:
        return Position.from_fen(fen or STARTING_FEN)

    def legal_moves(self, position: Position) -> list[str]:
        board = self._board(position)
        return [board.san(move) for move in board.legal_moves]

    def apply_move(
        self, position: Position, candidate: CandidateMove
    ) -> Optional[MoveApplication]:
        """Return the application of the move, or None when the move is not legal in this position."""
        board = self._board(position)
        move = self._parse(board, candidate)
        if move is None:
            return None

        color = Color.WHITE if board.turn == chess.WHITE else Color.BLACK
        san = board.san(move)
        board.push(move)
        new_position = Position(
            start_fen=position.start_fen,
            fen=board.fen(),
            moves=position.moves + (san,),
        )
        return MoveApplication(
            position=new_position,
            san=san,
            uci=move.uci(),
            from_square=chess.square_name(move.from_square),
            to_square=chess.square_name(move.to_square),
            color=color,
            is_check=board.is_check(),
            termination=self._termination(board),
        )

    def termination(self, position: Position) -> Optional[Termination]:
        return self._termination(self._board(position))

    def same_move(self, position: Position, first: CandidateMove, second: CandidateMove) -> bool:
        """True when both candidates denote the same legal move in this position."""
        board = self._board(position)
        first_move = self._parse(board, first)
        return first_move is not None and first_move == self._parse(board, second)

    # -- PGN ---
    def to_pgn(self, position: Position) -> str:
        board = self._board(position)
        game = chess.pgn.Game.from_board(board)
        exporter = chess.pgn.StringExporter(headers=True, variations=False, comments=False)
        return game.accept(exporter)

    def from_pgn(self, pgn: str) -> Position:
        """Replay a full game record. Raises GameError when the record cannot be replayed."""
        game = chess.pgn.read_game(io.StringIO(pgn))
        if game is None:
            raise GameError("PGN does not contain a game.")
        if game.errors:
            raise GameError(f"PGN could not be replayed: {game.errors[0]}")

        board = game.board()
        start_fen = board.fen()
        moves: list[str] = []
        for move in game.mainline_moves():
            moves.append(board.san(move))
            board.push(move)
        return Position(start_fen=start_fen, fen=board.fen(), moves=tuple(moves))

    # -- PRIVATE HELPERS ---
    def _board(self, position: Position) -> chess.Board:
        board = _board_from_fen(position.start_fen)
        for san in position.moves:
            board.push_san(san)
        return board

    def _parse(self, board: chess.Board, candidate: CandidateMove) -> Optional[chess.Move]:
        if isinstance(candidate, SquareMove):
            return self._parse_squares(board, candidate)
        try:
            return board.parse_san(normalize_san(candidate))
        except ValueError:
            return None

    def _parse_squares(self, board: chess.Board, candidate: SquareMove) -> Optional[chess.Move]:
        """Dragged squares. A pawn dropped on the last rank without a choice promotes to a queen."""
        if candidate.promotion and candidate.promotion.lower() not in PROMOTION_PIECES:
            return None
        try:
            move = chess.Move.from_uci(candidate.to_uci())
        except ValueError:
            return None

        # A promotion letter sent along with an ordinary move is ignored, as the board UI always sends one.
        options = [
            move,
            chess.Move(move.from_square, move.to_square),
            chess.Move(move.from_square, move.to_square, promotion=chess.QUEEN),
        ]
        return next((option for option in options if option in board.legal_moves), None)

    def _termination(self, board: chess.Board) -> Optional[Termination]:
        """Mate, stalemate and dead positions end the game; so do threefold repetition and the fifty-move rule."""
        outcome = board.outcome()
        if outcome is not None:
            return TERMINATIONS.get(outcome.termination, Termination.DRAW)
        if board.is_repetition(3):
            return Termination.THREEFOLD_REPETITION
        if board.is_fifty_moves():
            return Termination.FIFTY_MOVES
        return None


def _board_from_fen(fen: str) -> chess.Board:
    try:
        board = chess.Board(fen)
    except ValueError as exc:
        raise InvalidFENError(f"Cannot read position: {fen!r}") from exc
    if not board.is_valid():
        raise InvalidFENError(f"Position is not playable: {fen!r}")
    return board
