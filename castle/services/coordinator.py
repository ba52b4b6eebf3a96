"""
The session coordinator.

Owns one GameSession and sequences everything that happens to it: human input, rules checks, opponent requests,
the opening-lesson script, and checkpoints to the persistence service.

States: uninitialized -> loading -> awaiting-human <-> awaiting-opponent -> terminal

Only one coroutine mutates the session at a time: the coordinator refuses human moves while an opponent request is
outstanding, and every reply is tagged with the session generation it was asked for. Start, reset, resign, load,
quick-load and close all bump the generation, so a late reply for an abandoned game is dropped.
"""

import asyncio
import logging
from typing import Optional
from uuid import UUID

from castle.chess.lesson import LessonScript
from castle.chess.rules import CandidateMove, MoveApplication, Position, RulesOracle
from castle.chess.session import (
    GameSession,
    LessonProgress,
    MoveOutcome,
    QuickSaveSnapshot,
    SessionConfig,
)
from castle.core.exceptions import (
    AuthenticationError,
    CastleError,
    GameError,
    GameStateError,
    LessonScriptError,
)
from castle.core.models import SavedGameModel
from castle.core.shared_types import (
    Color,
    Difficulty,
    Phase,
    Rejection,
    SessionState,
    Termination,
    Variant,
)
from castle.services.move_source import Directive, MoveSource, RandomFallbackMoveSource
from castle.services.notifications import (
    Action,
    AlwaysConfirm,
    ChatMessage,
    Confirmation,
    Notification,
    NotificationLog,
    Notifier,
)
from castle.services.persistence import GameStateStore, OpeningSource
from castle.services.tutor import Tutor

logger = logging.getLogger(__name__)

REJECTION_NOTICES: dict[Rejection, Notification] = {
    Rejection.NOT_STARTED: Notification(
        "Game not started", "Please click the Start button to begin the game.", Variant.DESTRUCTIVE
    ),
    Rejection.GAME_OVER: Notification(
        "Game over", "The game is over. Please start a new game.", Variant.DESTRUCTIVE
    ),
    Rejection.NOT_YOUR_TURN: Notification(
        "Not your turn", "Please wait for your opponent's move.", Variant.DESTRUCTIVE
    ),
    Rejection.OPPONENT_THINKING: Notification(
        "Not your turn", "Please wait for your opponent's move.", Variant.DESTRUCTIVE
    ),
    Rejection.ILLEGAL_MOVE: Notification(
        "Invalid move", "Please try a different move.", Variant.DESTRUCTIVE
    ),
    Rejection.LESSON_MISMATCH: Notification(
        "Incorrect move", "Please make the suggested move to continue", Variant.DESTRUCTIVE
    ),
    Rejection.LESSON_COMPLETE: Notification(
        "Lesson complete", "Start the practice phase to keep playing.", Variant.DEFAULT
    ),
}
AUTH_NOTICE = Notification(
    "Authentication Error", "Your session has expired. Please log in again.", Variant.DESTRUCTIVE
)


class SessionCoordinator:
    """Coordinates one game session between the player, the rules oracle, the move source and the store."""

    def __init__(
        self,
        oracle: RulesOracle,
        move_source: MoveSource,
        store: Optional[GameStateStore] = None,
        user_id: Optional[UUID] = None,
        *,
        tutor: Optional[Tutor] = None,
        notifier: Optional[Notifier] = None,
        confirmation: Optional[Confirmation] = None,
        openings: Optional[OpeningSource] = None,
    ) -> None:
        self.oracle = oracle
        self.move_source = (
            move_source
            if isinstance(move_source, RandomFallbackMoveSource)
            else RandomFallbackMoveSource(move_source)
        )
        self.store = store
        self.user_id = user_id
        self.tutor = tutor
        self.notifier: Notifier = notifier or NotificationLog()
        self.confirmation: Confirmation = confirmation or AlwaysConfirm()
        self.openings = openings

        self.messages: list[ChatMessage] = []
        self.username = ""
        self.requires_login = False

        self._session: Optional[GameSession] = None
        self._lesson: Optional[LessonProgress] = None
        self._snapshot: Optional[QuickSaveSnapshot] = None
        self._generation = 0
        self._loading = False
        self._requesting = False
        self._opponent_task: Optional[asyncio.Task] = None

    # --- READ-ONLY VIEW FOR THE PRESENTATION LAYER ---
    @property
    def session(self) -> Optional[GameSession]:
        return self._session

    @property
    def lesson(self) -> Optional[LessonProgress]:
        return self._lesson

    @property
    def current_lesson_step(self) -> int:
        return self._lesson.step if self._lesson else 0

    @property
    def suggested_moves(self) -> list[str]:
        return list(self._lesson.suggestions) if self._lesson else []

    @property
    def is_opponent_thinking(self) -> bool:
        pending = self._opponent_task is not None and not self._opponent_task.done()
        return self._requesting or pending

    @property
    def state(self) -> SessionState:
        session = self._session
        if session is None:
            return SessionState.LOADING if self._loading else SessionState.UNINITIALIZED
        if session.is_terminal:
            return SessionState.TERMINAL
        if not session.started:
            return SessionState.UNINITIALIZED
        if self.is_opponent_thinking or not session.is_human_turn:
            return SessionState.AWAITING_OPPONENT
        return SessionState.AWAITING_HUMAN

    @property
    def can_quick_save(self) -> bool:
        session = self._session
        return (
            session is not None
            and session.is_live
            and session.ply > 1
            and session.is_human_turn
            and not self.is_opponent_thinking
        )

    @property
    def can_quick_load(self) -> bool:
        return self._snapshot is not None and self._session is not None

    # --- LIFECYCLE ---
    async def start_session(self, config: SessionConfig = SessionConfig()) -> GameSession:
        """
        New game from the initial position (or a puzzle position).
        ----

        History, quick save and lesson are cleared. The fresh game is checkpointed, and if the opponent owns the
        first turn it is asked for a move straight away.
        """
        position = self.oracle.start(config.start_fen)
        session = self._replace_session(GameSession.new(position, config, self._next_generation()))
        session.started = True
        session.termination = self.oracle.termination(position)
        logger.info(
            "Session %s started: human=%s opponent=%s difficulty=%s phase=%s",
            session.generation,
            session.human_color,
            session.opponent,
            session.difficulty,
            session.phase,
        )

        await self._checkpoint(session)
        if self._is_current(session) and session.is_live and not session.is_human_turn:
            self._schedule_opponent_move()
        return session

    async def start_puzzle(self, fen: str) -> GameSession:
        """The player solves for whichever side is to move in the puzzle position."""
        side = Position.from_fen(fen).side_to_move
        session = await self.start_session(
            SessionConfig(start_fen=fen, human_color=side, commentary=True)
        )
        self._add_message(f"Welcome {self.username}! You'll be playing as {side} in this puzzle.")
        return session

    async def identify(self) -> Optional[str]:
        """Fetch the display name of the signed-in user."""
        if self.store is None or self.user_id is None:
            return None
        try:
            profile = await self.store.get_profile(self.user_id)
        except AuthenticationError:
            self._require_login()
            return None
        except CastleError as exc:
            logger.warning("Failed to fetch user data: %s", exc)
            self._notify(Notification("Error", "Failed to load user data", Variant.DESTRUCTIVE))
            return None
        self.username = profile.display_name
        return self.username

    async def load_saved_game(self) -> bool:
        """
        Rebuild the session from the last checkpoint.
        ----

        The PGN is replayed when possible; if it cannot be, the bare FEN is used and the stored history kept as is.
        A started game where the opponent is to move asks the opponent right away.
        """
        if self.store is None or self.user_id is None:
            return False

        self._loading = True
        try:
            saved = await self.store.load(self.user_id)
        except AuthenticationError:
            self._require_login()
            return False
        except CastleError as exc:
            logger.warning("Error loading saved game: %s", exc)
            self._notify(Notification("Error", "Failed to load saved game", Variant.DESTRUCTIVE))
            return False
        finally:
            self._loading = False

        if saved is None:
            return False

        try:
            session = self._restore(saved)
        except GameError as exc:
            logger.warning("Saved game could not be restored: %s", exc)
            self._notify(Notification("Error", "Failed to load saved game", Variant.DESTRUCTIVE))
            return False

        self._notify(Notification("Game restored"))
        if session.is_live and not session.is_human_turn:
            self._schedule_opponent_move()
        return True

    async def save(self) -> bool:
        """Explicit checkpoint (the save button)."""
        session = self._require_session()
        saved = await self._checkpoint(session)
        if saved:
            self._notify(Notification("Game saved"))
        return saved

    async def resign(self) -> bool:
        """Give up the current game. The stored checkpoint is cleared."""
        if not self.confirmation.confirm(Action.RESIGN):
            return False
        session = self._require_session()
        session.termination = Termination.RESIGNED
        session.generation = self._next_generation()
        logger.info("Session %s resigned", session.generation)
        await self._checkpoint(session, self._cleared_checkpoint(session))
        return True

    async def reset(self) -> bool:
        """
        Throw the game away and start over with the same settings.

        A lesson restarts from its first move; any other game goes back to the not-started state.
        """
        if not self.confirmation.confirm(Action.RESET):
            return False
        session = self._require_session()
        lesson = self._lesson
        if lesson is not None and session.phase == Phase.OPENING_LESSON:
            await self.start_lesson(lesson.script)
            return True

        config = SessionConfig(
            human_color=session.human_color,
            opponent=session.opponent,
            difficulty=session.difficulty,
            phase=session.phase,
        )
        fresh = self._replace_session(
            GameSession.new(self.oracle.start(), config, self._next_generation())
        )
        saved = await self._checkpoint(fresh, self._cleared_checkpoint(fresh))
        if saved:
            self._notify(Notification("Game reset"))
        return True

    async def exit_game(self, save: bool = True) -> bool:
        """Leave the board. Saving keeps the game for later; otherwise a cleared game is stored."""
        if not self.confirmation.confirm(Action.EXIT):
            return False
        session = self._session
        if session is not None and session.started:
            state = session.to_checkpoint(self.oracle) if save else self._cleared_checkpoint(session)
            await self._checkpoint(session, state)
        self.close()
        return True

    def close(self) -> None:
        """Teardown: drop the session and ignore whatever is still in flight."""
        self._next_generation()
        task = self._opponent_task
        if task is not None and not task.done() and task is not _running_task():
            task.cancel()
        self._opponent_task = None
        self._session = None
        self._lesson = None
        self._snapshot = None

    # --- MOVES ---
    async def apply_human_move(self, candidate: CandidateMove) -> MoveOutcome:
        """
        Move attempt from the board.
        ----

        Rejected, without touching the session, when the game is not running, it is not the player's turn, the
        lesson expects another move, or the oracle finds the move illegal.
        On success the move is recorded and checkpointed, then the opponent (or the lesson script) replies.
        """
        session = self._session
        rejection = self._check_human_turn(session)
        if rejection is None and self._in_lesson():
            rejection = self._check_lesson_move(candidate)
        if rejection is not None:
            return self._reject(rejection)
        assert session is not None

        outcome = await self._apply_move(session, candidate, by_opponent=False)
        if not outcome.accepted:
            return self._reject(Rejection.ILLEGAL_MOVE)

        if self._in_lesson():
            assert self._lesson is not None
            self._lesson.step += 1
            self._lesson.suggestions = []
            await self._run_lesson()
        elif self._is_current(session) and session.is_live and not session.is_human_turn:
            self._schedule_opponent_move()

        if session.commentary and self.tutor is not None and outcome.san:
            self._add_message(await self.tutor.move_feedback(outcome.san))
        return outcome

    async def request_opponent_move(self) -> Optional[MoveOutcome]:
        """
        Ask the move source for the opponent's reply and play it.
        ----

        The reply is checked against the legal moves computed right before the request; anything else (garbage,
        silence, errors) is replaced by a random legal move. A reply for a session that was reset or reloaded in
        the meantime is dropped.
        """
        session = self._session
        if session is None or not session.is_live or session.is_human_turn:
            return None

        generation = session.generation
        legal_moves = self.oracle.legal_moves(session.position)
        directive = Directive(
            color=session.opponent_color, opponent=session.opponent, difficulty=session.difficulty
        )
        self._requesting = True
        try:
            move = await self.move_source.suggest_move(session.position, legal_moves, directive)
        finally:
            self._requesting = False

        if not self._is_current(session) or session.generation != generation:
            logger.warning("Discarding opponent move %r for stale session %s", move, generation)
            return None

        outcome = await self._apply_move(session, move, by_opponent=True)
        if not outcome.accepted:
            # the fallback only hands out members of legal_moves, computed on this very position
            raise GameStateError(f"Opponent move {move!r} was refused by the rules oracle.")
        return outcome

    async def wait_for_opponent(self) -> Optional[MoveOutcome]:
        """Await the scheduled opponent reply, if one is in flight."""
        task = self._opponent_task
        if task is None:
            return None
        return await task

    # --- OPENING LESSON ---
    async def start_lesson(self, script: LessonScript) -> GameSession:
        """
        Replay an opening move by move. The student plays the side that makes the first scripted move;
        the other side's moves are played from the script.
        """
        script.validate(self.oracle)
        color = script.student_color(self.oracle)
        config = SessionConfig(
            start_fen=script.start_fen,
            human_color=color,
            difficulty=Difficulty.EASY,
            phase=Phase.OPENING_LESSON,
        )
        position = self.oracle.start(script.start_fen)
        session = self._replace_session(GameSession.new(position, config, self._next_generation()))
        session.started = True
        self._lesson = LessonProgress(script=script)
        self.messages = []

        self._add_message(f"Welcome {self.username}! Let's learn the {script.name}.")
        self._add_message(f"You'll be playing as {color} in this opening.")
        if self.tutor is not None:
            self._add_message(await self.tutor.opening_advantage(script.name))

        await self._run_lesson()
        return session

    async def start_opening_lesson(self, opening_id: UUID) -> Optional[GameSession]:
        """Fetch an opening from the catalog and start its lesson."""
        if self.openings is None:
            raise GameStateError("No opening catalog configured.")
        try:
            opening = await self.openings.get_opening(opening_id)
        except AuthenticationError:
            self._require_login()
            return None
        except CastleError as exc:
            logger.warning("Error fetching opening %s: %s", opening_id, exc)
            self._notify(Notification("Error", "Failed to load opening", Variant.DESTRUCTIVE))
            return None
        return await self.start_lesson(LessonScript.from_opening(opening))

    async def advance_lesson_step(self) -> Optional[str]:
        """
        Process the current lesson ply.
        ----

        * student's turn: expose the expected move as the only suggestion (nothing is applied);
        * opponent's turn: play the scripted move directly, bypassing the move source;
        * script exhausted: mark the lesson complete.

        Returns the move suggested to or played against the student, None when the lesson is complete.
        """
        session = self._require_session()
        lesson = self._lesson
        if lesson is None or session.phase != Phase.OPENING_LESSON:
            raise GameStateError("No opening lesson in progress.")

        expected = lesson.expected
        if expected is None or session.is_terminal:
            if not lesson.completed:
                lesson.completed = True
                lesson.suggestions = []
                self._add_message("Excellent! You've completed the opening sequence!")
            return None

        if session.is_human_turn:
            lesson.suggestions = [expected]
            if lesson.explained_step != lesson.step:
                lesson.explained_step = lesson.step
                explanation = await self._explain(lesson)
                if explanation:
                    self._add_message(explanation)
            return expected

        self._add_message(f"I'll make the move {expected}")
        outcome = await self._apply_move(session, expected, by_opponent=True)
        if not outcome.accepted:
            self._notify(Notification("Error", "Failed to make AI move", Variant.DESTRUCTIVE))
            raise LessonScriptError(f"Scripted move {expected!r} is not legal here.")
        lesson.step += 1
        return expected

    async def begin_practice(self) -> None:
        """After the lesson: play on against the move source in easy mode."""
        session = self._require_session()
        if self._lesson is None or not self._lesson.completed:
            raise GameStateError("The opening lesson is not complete yet.")

        session.phase = Phase.PRACTICE
        session.difficulty = Difficulty.EASY
        self._lesson.suggestions = []
        self._add_message(
            "Now you can play the rest of the game. I'll play as your opponent in easy mode."
        )
        if session.is_live and not session.is_human_turn:
            self._schedule_opponent_move()

    async def hint(self) -> str:
        """A coaching hint for the current position (puzzles)."""
        session = self._require_session()
        if self.tutor is None:
            raise GameStateError("No tutor available for hints.")
        text = await self.tutor.hint(session.position.fen)
        self._add_message(text)
        return text

    # --- QUICK SAVE ---
    def quick_save(self) -> bool:
        """Remember the current position. Replaces any earlier quick save. Only on the player's turn."""
        if not self.can_quick_save:
            return False
        session = self._require_session()
        self._snapshot = QuickSaveSnapshot(position=session.position, ply=session.ply)
        return True

    async def quick_load(self) -> bool:
        """
        Go back to the quick save: position and history return to what they were when it was taken.
        No-op without a quick save.
        """
        if not self.can_quick_load:
            return False
        assert self._session is not None and self._snapshot is not None
        session = self._session

        keep = self._snapshot.ply
        session.history = session.history[:keep]
        session.descriptions = session.descriptions[:keep]
        session.position = self._snapshot.position
        session.termination = self.oracle.termination(session.position)
        session.generation = self._next_generation()

        if session.is_live and not session.is_human_turn:
            self._schedule_opponent_move()
        return True

    # -- PRIVATE HELPERS ---
    async def _apply_move(
        self, session: GameSession, candidate: CandidateMove, by_opponent: bool
    ) -> MoveOutcome:
        """Shared path for every move, whoever made it: oracle, record, end-of-game check, checkpoint."""
        application = self.oracle.apply_move(session.position, candidate)
        if application is None:
            return MoveOutcome.reject(Rejection.ILLEGAL_MOVE)

        session.record(application)
        logger.debug(
            "Session %s ply %s: %s by %s",
            session.generation,
            session.ply,
            application.san,
            "opponent" if by_opponent else "human",
        )
        if application.is_terminal:
            self._announce_end(session, application)

        await self._checkpoint(session)
        return MoveOutcome.accept(application)

    async def _run_lesson(self) -> None:
        """Play scripted replies until it is the student's turn again or the script runs out."""
        while self._in_lesson():
            assert self._session is not None
            human_turn = self._session.is_human_turn
            played = await self.advance_lesson_step()
            if played is None or human_turn:
                return

    async def _explain(self, lesson: LessonProgress) -> Optional[str]:
        scripted = lesson.script.explanation(lesson.step)
        if scripted or self.tutor is None:
            return scripted
        expected = lesson.expected
        assert expected is not None
        return await self.tutor.explain_move(
            lesson.script.name, lesson.script.moves[: lesson.step], expected
        )

    def _check_human_turn(self, session: Optional[GameSession]) -> Optional[Rejection]:
        if session is None or not session.started:
            return Rejection.NOT_STARTED
        if session.is_terminal:
            return Rejection.GAME_OVER
        if self.is_opponent_thinking:
            return Rejection.OPPONENT_THINKING
        if not session.is_human_turn:
            return Rejection.NOT_YOUR_TURN
        return None

    def _check_lesson_move(self, candidate: CandidateMove) -> Optional[Rejection]:
        assert self._lesson is not None and self._session is not None
        if self._lesson.completed:
            return Rejection.LESSON_COMPLETE
        expected = self._lesson.expected
        if expected is None or not self.oracle.same_move(self._session.position, candidate, expected):
            return Rejection.LESSON_MISMATCH
        return None

    def _in_lesson(self) -> bool:
        return (
            self._lesson is not None
            and self._session is not None
            and self._session.phase == Phase.OPENING_LESSON
        )

    def _schedule_opponent_move(self) -> None:
        self._opponent_task = asyncio.create_task(self.request_opponent_move())

    def _restore(self, saved: SavedGameModel) -> GameSession:
        """Checkpoint --> session. Prefer replaying the game record; fall back to the bare position."""
        descriptions: list[str] = []
        try:
            position = self.oracle.from_pgn(saved.pgn)
            history = list(position.moves)
            descriptions = self._describe(position)
        except GameError as exc:
            logger.warning("PGN load failed, falling back to FEN: %s", exc)
            position = Position.from_fen(saved.fen)
            history = list(saved.move_history)

        # lesson scripts are not stored, a restored lesson carries on as practice
        phase = Phase.PRACTICE if saved.phase == Phase.OPENING_LESSON else saved.phase
        session = GameSession(
            position=position,
            human_color=saved.user_color,
            opponent=saved.opponent,
            difficulty=saved.mode,
            phase=phase,
            history=history,
            descriptions=descriptions,
            started=saved.game_started,
            termination=self.oracle.termination(position),
            generation=self._next_generation(),
        )
        return self._replace_session(session)

    def _describe(self, position: Position) -> list[str]:
        """Rebuild the readable history lines by replaying the moves."""
        lines: list[str] = []
        replay = self.oracle.start(position.start_fen)
        for san in position.moves:
            application = self.oracle.apply_move(replay, san)
            assert application is not None
            lines.append(application.describe())
            replay = application.position
        return lines

    def _replace_session(self, session: GameSession) -> GameSession:
        self._session = session
        self._lesson = None
        self._snapshot = None
        return session

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, session: GameSession) -> bool:
        return self._session is session

    def _cleared_checkpoint(self, session: GameSession) -> SavedGameModel:
        """What gets stored after resigning/resetting: a fresh, not started game with the same settings."""
        fresh = self.oracle.start()
        return SavedGameModel(
            fen=fresh.fen,
            pgn=self.oracle.to_pgn(fresh),
            move_history=[],
            user_color=session.human_color,
            opponent=session.opponent,
            mode=session.difficulty,
            game_started=False,
            phase=session.phase,
        )

    async def _checkpoint(
        self, session: GameSession, state: Optional[SavedGameModel] = None
    ) -> bool:
        """
        Store the session. Failures never undo anything: they are logged and shown as a notification.
        An authentication failure ends the session (the player has to log in again).
        """
        if self.store is None or self.user_id is None:
            return False
        state = state or session.to_checkpoint(self.oracle)
        try:
            await self.store.save(self.user_id, state)
        except AuthenticationError:
            self._require_login()
            return False
        except CastleError as exc:
            logger.warning("Error saving game for user %s: %s", self.user_id, exc)
            self._notify(Notification("Error", "Failed to save game state", Variant.DESTRUCTIVE))
            return False
        return True

    def _require_login(self) -> None:
        logger.warning("Authentication failed for user %s, session dropped", self.user_id)
        self.requires_login = True
        self._notify(AUTH_NOTICE)
        self.close()

    def _require_session(self) -> GameSession:
        if self._session is None:
            raise GameStateError("No game session. Start or load a game first.")
        return self._session

    def _announce_end(self, session: GameSession, application: MoveApplication) -> None:
        if application.is_checkmate:
            winner = "White" if session.winner == Color.WHITE else "Black"
            self._notify(Notification("Checkmate!", f"{winner} wins."))
        else:
            self._notify(Notification("Game over", f"Draw by {application.termination}."))
        logger.info("Session %s ended: %s", session.generation, application.termination)

    def _reject(self, rejection: Rejection) -> MoveOutcome:
        self._notify(REJECTION_NOTICES[rejection])
        return MoveOutcome.reject(rejection)

    def _notify(self, notification: Notification) -> None:
        self.notifier.notify(notification)

    def _add_message(self, content: str, role: str = "assistant") -> None:
        self.messages.append(ChatMessage(content=content, role=role))


def _running_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:  # no event loop running
        return None
