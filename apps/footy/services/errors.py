"""
Typed failures raised by the roster, reputation, sanction and player-request services.

Every precondition kind subclasses ValueError so callers that only care about
"bad request" can keep catching ValueError. ``kind`` is a stable identifier that
HTTP adapters pass through to clients.
"""


class FootyError(Exception):
    """Base class for all service failures."""

    default_message = "Operation failed"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def message(self) -> str:
        return str(self)


# --- Precondition violations ---


class PreconditionError(FootyError, ValueError):
    """Business rule rejected the operation. Not retryable as-is."""


class MatchNotOpen(PreconditionError):
    default_message = "Match is full or not accepting players"


class AlreadyRostered(PreconditionError):
    default_message = "Player is already in this match"


class IsOrganizer(PreconditionError):
    default_message = "Organizer cannot join as player"


class DeadlinePassed(PreconditionError):
    default_message = "Join deadline has passed"


class SkillLevelTooLow(PreconditionError):
    default_message = "Player skill level is below the match requirement"


class PlayerSuspended(PreconditionError):
    default_message = "Player is suspended"


class NotRostered(PreconditionError):
    default_message = "Player is not in this match"


class MatchLocked(PreconditionError):
    default_message = "Cannot leave a match that has already started or completed"


class InvalidState(PreconditionError):
    default_message = "Operation not allowed in the current status"


class InsufficientPlayers(PreconditionError):
    default_message = "Not enough players on each team to start the match"


class SelfRating(PreconditionError):
    default_message = "Cannot rate yourself"


class SelfReport(PreconditionError):
    default_message = "Cannot report yourself"


class MatchNotCompleted(PreconditionError):
    default_message = "Can only rate players after match completion"


class NotParticipant(PreconditionError):
    default_message = "Both players must have participated in the match"


class DuplicateRating(PreconditionError):
    default_message = "You have already rated this player for this match"


class RequestNotActive(PreconditionError):
    default_message = "Request is no longer active"


class NotContacted(PreconditionError):
    default_message = "You were not contacted for this request"


class NotAuthorized(PreconditionError):
    default_message = "Not authorized to perform this action"


class InvalidInput(PreconditionError):
    default_message = "Invalid input"


# --- Not found ---


class NotFoundError(FootyError, LookupError):
    default_message = "Not found"


class MatchNotFound(NotFoundError):
    default_message = "Match not found"


class PlayerNotFound(NotFoundError):
    default_message = "Player not found"


class ReportNotFound(NotFoundError):
    default_message = "Report not found"


class RequestNotFound(NotFoundError):
    default_message = "Request not found"


class NotificationNotFound(NotFoundError):
    default_message = "Notification not found"


# --- Consistency / integrity ---


class ConflictError(FootyError):
    """A store-level race or an integrity violation. Fatal to the operation."""

    default_message = "Conflicting concurrent update"
