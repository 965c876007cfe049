"""Exception types raised by the staging engine."""


class StageError(Exception):
    """Base class for staging engine errors."""

    pass


class MappingValidationError(StageError):
    """Raised when an edit breaks a structural rule.

    Carries every violation found, not just the first, so callers can show
    all problems at once.

    Example:
        >>> err = MappingValidationError(["Service name is required"])
        >>> err.errors
        ['Service name is required']
    """

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class EntityNotFoundError(StageError):
    """Raised when a mutator targets an id that is not (or no longer) present."""

    def __init__(self, kind: str, entity_id: int) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} {entity_id} not found")


class CascadeError(StageError):
    """Raised when a cascading delete fails partway through.

    Every step listed in ``completed`` was already written; the store is
    left partially cascaded.
    """

    def __init__(
        self,
        kind: str,
        entity_id: int,
        completed: list[str],
        cause: Exception,
    ) -> None:
        self.kind = kind
        self.entity_id = entity_id
        self.completed = list(completed)
        super().__init__(
            f"Cascading delete of {kind} {entity_id} failed after "
            f"{len(self.completed)} step(s): {cause}"
        )


class StageBusyError(StageError):
    """Raised when an edit is attempted while the store is being reloaded."""

    pass


class ProfileNotFoundError(StageError):
    """Raised when no server profile is configured."""

    pass
