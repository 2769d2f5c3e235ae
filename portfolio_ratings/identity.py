"""
Identity provider: a stable, pseudo-anonymous id for this visitor.

Generated once, saved in local storage, reused on every later run.
If storage can't be opened the id lives in memory for this process only.
"""

import logging
import secrets
import sqlite3
import string
from typing import Optional

from portfolio_ratings.config import USER_ID_KEY
from portfolio_ratings.storage import LocalStorage

logger = logging.getLogger(__name__)

_ALPHABET = string.digits + string.ascii_lowercase


def generate_user_id() -> str:
    """e.g. "user_k3f9x0a". Short and random, no coordination needed."""
    return "user_" + "".join(secrets.choice(_ALPHABET) for _ in range(7))


class IdentityProvider:

    def __init__(self, storage: Optional[LocalStorage], key: str = USER_ID_KEY):
        self.storage = storage
        self.key = key
        self._user_id: Optional[str] = None

    def get_or_create_user_id(self) -> str:
        if self._user_id:
            return self._user_id

        saved = None
        if self.storage is not None:
            try:
                saved = self.storage.get(self.key)
            except (sqlite3.Error, OSError) as e:
                logger.warning(f"Local storage unavailable, using a session-only user id: {e}")
                self.storage = None

        if saved:
            self._user_id = saved
            return saved

        user_id = generate_user_id()
        if self.storage is not None:
            try:
                self.storage.set(self.key, user_id)
            except (sqlite3.Error, OSError) as e:
                logger.warning(f"Could not persist user id, it will not survive a restart: {e}")
        self._user_id = user_id
        logger.info(f"User ID initialized: {user_id}")
        return user_id
