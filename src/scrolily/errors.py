"""Domain error taxonomy for the progression and competition engine.

Idempotent repeats (chapter already completed, achievement already
unlocked) are normal results, not errors, and have no exception here.
"""

from __future__ import annotations


class NotAuthenticated(Exception):
    """No caller identity was supplied or it could not be verified."""

    def __init__(self, reason: str = "Not authenticated") -> None:
        super().__init__(reason)


class NotFound(LookupError):
    """Base class for missing entities."""

    entity = "Resource"

    def __init__(self, identifier: object | None = None) -> None:
        self.identifier = identifier
        if identifier is None:
            super().__init__(f"{self.entity} not found")
        else:
            super().__init__(f"{self.entity} {identifier} not found")


class UserNotFound(NotFound):
    entity = "User"


class GroupNotFound(NotFound):
    entity = "Group"


class ChallengeNotFound(NotFound):
    entity = "Challenge"


class ItemNotFound(NotFound):
    entity = "Avatar item"


class InvalidTransition(ValueError):
    """A state change the caller is not allowed to make (wrong state or wrong role)."""
