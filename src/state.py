"""
UserState: Single source of truth for everything the assistant remembers about a user.

Inspired by Inspect AI's TaskState pattern - explicit state container passed
through all step functions, replacing a process-wide "current user" record.

Design:
- UserState is frozen (immutable) to prevent accidental mutation
- All updates create new instances via apply_update()
- The stored JSON shape is normalized exactly once, in UserState.from_dict()
- lastSession is a reference (by id) into sessions, never a second copy
"""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, TypedDict

from logging_utils import get_logger

logger = get_logger(__name__)


class Action(str, Enum):
    """What the assistant decided to do with a message."""
    ANALYZE_PATTERN = "analyze_pattern"
    LOG_OUTCOME = "log_outcome"
    CREATE_PLAN = "create_plan"
    REVISE_PLAN = "revise_plan"
    DIRECT_ANSWER = "direct_answer"
    GENERAL_CHAT = "general_chat"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Profile:
    """Long-lived study preferences."""
    prefers_short_sentences: bool = True
    weak_areas: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "prefersShortSentences": self.prefers_short_sentences,
            "weakAreas": list(self.weak_areas),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        if not isinstance(data, dict):
            return cls()
        prefers = data.get("prefersShortSentences")
        weak = data.get("weakAreas")
        return cls(
            prefers_short_sentences=prefers if isinstance(prefers, bool) else True,
            weak_areas=[w for w in weak if isinstance(w, str)] if isinstance(weak, list) else [],
        )


@dataclass(frozen=True)
class Turn:
    """One message of the conversation."""
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: Any) -> "Turn | None":
        """Parse a stored turn, or None if it is unusable."""
        if not isinstance(data, dict):
            return None
        role = data.get("role")
        content = data.get("content")
        if role not in (Role.USER.value, Role.ASSISTANT.value) or not isinstance(content, str):
            return None
        return cls(role=Role(role), content=content)


@dataclass(frozen=True)
class Session:
    """One generated study plan and, eventually, how it went."""
    id: str
    timestamp: int
    goal: str
    action: Action
    plan: str
    outcome_note: str | None = None

    def with_outcome(self, note: str) -> "Session":
        return replace(self, outcome_note=note)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "goal": self.goal,
            "action": self.action.value,
            "plan": self.plan,
            "outcomeNote": self.outcome_note,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """
        Build a Session from a stored record, defaulting each bad field.

        Records written by older versions may carry action "log_outcome"
        and a null plan; both are accepted.
        """
        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            timestamp = 0
        elif not math.isfinite(timestamp):
            timestamp = 0  # json.loads accepts NaN and Infinity
        timestamp = int(timestamp)

        raw_id = data.get("id")
        if isinstance(raw_id, str) and raw_id:
            session_id = raw_id
        elif isinstance(raw_id, int) and not isinstance(raw_id, bool):
            session_id = str(raw_id)
        else:
            session_id = str(timestamp)

        try:
            action = Action(data.get("action"))
        except ValueError:
            action = Action.CREATE_PLAN

        goal = data.get("goal")
        plan = data.get("plan")
        note = data.get("outcomeNote")

        return cls(
            id=session_id,
            timestamp=timestamp,
            goal=goal if isinstance(goal, str) else "",
            action=action,
            plan=plan if isinstance(plan, str) else "",
            outcome_note=note if isinstance(note, str) else None,
        )


class StateUpdate(TypedDict, total=False):
    """
    Partial state update built by step functions.

    Step functions describe what changed rather than mutating the record.
    """
    profile: Profile
    recent_history: list[Turn]
    sessions: list[Session]
    last_session_id: str | None
    last_analysis: str | None


@dataclass(frozen=True)
class UserState:
    """
    Immutable per-user state aggregate.

    Invariants:
    - last_session_id, when set, names an element of sessions (the newest one
      in normal operation)
    - sessions is append-only and in chronological order
    - recent_history holds the newest turns, oldest first
    """

    profile: Profile = field(default_factory=Profile)
    recent_history: list[Turn] = field(default_factory=list)
    sessions: list[Session] = field(default_factory=list)
    last_session_id: str | None = None
    last_analysis: str | None = None

    @classmethod
    def default(cls) -> "UserState":
        """State of a user the assistant has never seen."""
        return cls()

    @property
    def last_session(self) -> Session | None:
        """The current plan, resolved from the session log."""
        if self.last_session_id is None:
            return None
        for session in reversed(self.sessions):
            if session.id == self.last_session_id:
                return session
        return None

    def apply_update(self, update: StateUpdate) -> "UserState":
        """
        Apply a partial update to the state.

        Creates a new UserState instance with updated values.

        Args:
            update: Dictionary of field names to new values.

        Returns:
            New UserState with updates applied.

        Raises:
            KeyError: The update names a field UserState does not have.
        """
        unknown = [key for key in update if key not in self.__dataclass_fields__]
        if unknown:
            raise KeyError(f"Unknown state fields: {', '.join(unknown)}")
        return replace(self, **update) if update else self

    def with_session(self, session: Session) -> "UserState":
        """Append a session to the log and make it the current plan."""
        return self.apply_update({
            "sessions": [*self.sessions, session],
            "last_session_id": session.id,
        })

    def with_exchange(self, message: str, reply: str, limit: int) -> "UserState":
        """Append a user/assistant exchange, keeping only the newest `limit` turns."""
        history = [
            *self.recent_history,
            Turn(role=Role.USER, content=message),
            Turn(role=Role.ASSISTANT, content=reply),
        ]
        return self.apply_update({"recent_history": history[-limit:] if limit > 0 else []})

    def next_session_stamp(self, now_ms: int) -> tuple[str, int]:
        """
        Pick (id, timestamp) for a new session created at now_ms.

        Ids are millisecond timestamps; a clash with an existing session is
        resolved by moving forward one millisecond at a time.
        """
        taken = {s.id for s in self.sessions}
        latest = max((s.timestamp for s in self.sessions), default=0)
        stamp = max(int(now_ms), latest + 1) if self.sessions else int(now_ms)
        while str(stamp) in taken:
            stamp += 1
        return str(stamp), stamp

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Stored JSON shape of the state."""
        last = self.last_session
        return {
            "profile": self.profile.to_dict(),
            "recentHistory": [turn.to_dict() for turn in self.recent_history],
            "lastSession": last.to_dict() if last else None,
            "sessions": [session.to_dict() for session in self.sessions],
            "lastAnalysis": self.last_analysis,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "UserState":
        """
        Normalize a stored record into a fully populated UserState.

        Every field is defaulted independently, so records written before a
        field existed (or damaged ones) still load.
        """
        if not isinstance(data, dict):
            if data is not None:
                logger.warning(f"Stored state is {type(data).__name__}, not an object; using defaults")
            return cls.default()

        raw_history = data.get("recentHistory")
        history = []
        if isinstance(raw_history, list):
            for item in raw_history:
                turn = Turn.from_dict(item)
                if turn is None:
                    logger.warning("Dropping malformed history turn")
                    continue
                history.append(turn)

        raw_sessions = data.get("sessions")
        sessions = []
        if isinstance(raw_sessions, list):
            for item in raw_sessions:
                if not isinstance(item, dict):
                    logger.warning("Dropping malformed session entry")
                    continue
                sessions.append(Session.from_dict(item))

        last_session_id = None
        raw_last = data.get("lastSession")
        if isinstance(raw_last, dict):
            last = Session.from_dict(raw_last)
            if any(s.id == last.id for s in sessions):
                last_session_id = last.id
            else:
                logger.warning(f"lastSession {last.id} missing from session log; re-attaching it")
                sessions.append(last)
                last_session_id = last.id

        analysis = data.get("lastAnalysis")

        return cls(
            profile=Profile.from_dict(data.get("profile")),
            recent_history=history,
            sessions=sessions,
            last_session_id=last_session_id,
            last_analysis=analysis if isinstance(analysis, str) else None,
        )
