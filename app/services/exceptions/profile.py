from uuid import UUID


class UserNotFoundError(KeyError):
    def __init__(self, id: UUID, message: str | None = None) -> None:
        if message is None:
            message = f"User with ID {id} does not exist."
        super().__init__(message)
        self.id = id

    def __str__(self) -> str:
        return str(self.args[0])


class StaleProfileError(Exception):
    """Raised when the stored profile moved past the version being saved."""

    def __init__(self, id: UUID, version: int) -> None:
        super().__init__(f"Profile of user {id} is already at or past version {version}.")
        self.id = id
        self.version = version
