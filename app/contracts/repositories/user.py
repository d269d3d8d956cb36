from abc import ABC, abstractmethod
from uuid import UUID

from app.domains.profile import UserProfile


class UserRepository(ABC):
    @abstractmethod
    async def get(self, user_id: UUID) -> UserProfile | None: ...

    @abstractmethod
    async def get_for_update(self, user_id: UUID) -> UserProfile | None:
        """
        Retrieve the **current persistent snapshot** of a ``UserProfile``
        and **reserve it for exclusive write-access** for the remainder of the
        caller's transactional context.
        """

    @abstractmethod
    async def save(self, profile: UserProfile) -> bool:
        """
        Persist the *current* state of a ``UserProfile``.

        * **Update** – if the stored *version* is *older* than
          ``profile.version``.
        * **No-op** – if the row is already stored with the *same* or a
          *newer* version. In this case the method must **leave the row
          untouched** and return *False*.
        """
