# src/tradearena/exceptions.py

"""Custom exception hierarchy for TradeArena.

This module provides a structured exception hierarchy that enables:
1. Proper HTTP status code mapping in API endpoints
2. Detailed error context for logging and debugging
3. Clear distinction between caller mistakes and server faults
"""

from __future__ import annotations


class TradeArenaError(Exception):
    """Base exception for all TradeArena errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional context for logging/debugging
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Resource Not Found Errors (HTTP 404)
# =============================================================================


class ResourceNotFoundError(TradeArenaError):
    """Base class for resource not found errors."""

    pass


class SessionNotFoundError(ResourceNotFoundError):
    """Raised when a battle session ID does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Battle session {session_id} not found",
            details={"session_id": session_id},
        )


class ChallengeNotFoundError(ResourceNotFoundError):
    """Raised when a friend challenge ID does not exist."""

    def __init__(self, challenge_id: str) -> None:
        super().__init__(
            message=f"Challenge {challenge_id} not found",
            details={"challenge_id": challenge_id},
        )


# =============================================================================
# Validation Errors (HTTP 422)
# =============================================================================


class ValidationError(TradeArenaError):
    """Base class for validation errors."""

    pass


class DuplicateParticipantError(ValidationError):
    """Raised when both sides of a battle are the same user."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message=f"A battle needs two distinct players, got {user_id} twice",
            details={"user_id": user_id},
        )


class SelfChallengeError(ValidationError):
    """Raised when a user tries to challenge themselves."""

    def __init__(self, user_id: str) -> None:
        super().__init__(
            message="Players cannot challenge themselves",
            details={"user_id": user_id},
        )


class InvalidTradeError(ValidationError):
    """Raised when a trade cannot be executed against the participant's portfolio."""

    def __init__(self, user_id: str, reason: str) -> None:
        super().__init__(
            message=f"Invalid trade for user {user_id}: {reason}",
            details={"user_id": user_id, "reason": reason},
        )


# =============================================================================
# Permission Errors (HTTP 403)
# =============================================================================


class PermissionDeniedError(TradeArenaError):
    """Base class for actions the caller is not allowed to perform."""

    pass


class NotAParticipantError(PermissionDeniedError):
    """Raised when a user acts on a battle they are not part of."""

    def __init__(self, session_id: str, user_id: str) -> None:
        super().__init__(
            message=f"User {user_id} is not a participant in {session_id}",
            details={"session_id": session_id, "user_id": user_id},
        )


class NotChallengedUserError(PermissionDeniedError):
    """Raised when someone other than the challenged user answers a challenge."""

    def __init__(self, challenge_id: str, user_id: str) -> None:
        super().__init__(
            message=f"User {user_id} cannot respond to challenge {challenge_id}",
            details={"challenge_id": challenge_id, "user_id": user_id},
        )


# =============================================================================
# Conflict Errors (HTTP 409)
# =============================================================================


class ConflictError(TradeArenaError):
    """Base class for requests that clash with the current resource state."""

    pass


class AlreadyQueuedError(ConflictError):
    """Raised when a user who is already searching tries to enqueue again.

    The existing entry is attached so callers can treat the retry as a no-op.
    """

    def __init__(self, user_id: str, entry: object | None = None) -> None:
        self.entry = entry
        super().__init__(
            message=f"User {user_id} is already in the matchmaking queue",
            details={"user_id": user_id},
        )


class SessionStateError(ConflictError):
    """Raised when a battle is not in a state that allows the operation."""

    def __init__(self, session_id: str, status: str, action: str) -> None:
        super().__init__(
            message=f"Cannot {action} battle {session_id} while it is {status}",
            details={"session_id": session_id, "status": status, "action": action},
        )


class ChallengeStateError(ConflictError):
    """Raised when a challenge is no longer pending."""

    def __init__(self, challenge_id: str, status: str) -> None:
        super().__init__(
            message=f"Challenge {challenge_id} is no longer available ({status})",
            details={"challenge_id": challenge_id, "status": status},
        )


# =============================================================================
# Rating Engine Errors (HTTP 500)
# =============================================================================


class RatingEngineError(TradeArenaError):
    """Base class for rating calculation errors."""

    pass


class RatingCalculationError(RatingEngineError):
    """Raised when rating calculation fails due to invalid data."""

    def __init__(self, message: str, session_id: str | None = None) -> None:
        details = {"session_id": session_id} if session_id else {}
        super().__init__(message=message, details=details)
