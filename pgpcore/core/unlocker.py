"""Private key unlocking.

Unlocking is delegated to an injected async callback (passphrase prompt,
hardware token, test double). It is the only place where an operation waits
on external interaction.
"""

import dataclasses
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from pgpcore.core.exceptions import UnlockError
from pgpcore.core.keys import KeyHandle

logger = logging.getLogger(__name__)

UnlockCallback = Callable[[KeyHandle], Awaitable[KeyHandle]]


def passphrase_callback(passphrase: str) -> UnlockCallback:
    """Build a callback that unlocks every key with a fixed passphrase."""

    async def unlock_key(key: KeyHandle) -> KeyHandle:
        return dataclasses.replace(key, locked=False, secret=passphrase)

    return unlock_key


class KeyUnlocker:
    """Obtains usable private keys through the unlock callback."""

    def __init__(self, unlock_key: UnlockCallback):
        self.unlock_key = unlock_key

    async def unlock(self, key: KeyHandle) -> KeyHandle:
        """Unlock a private key.

        UserCancelledError and WrongPassphraseError raised by the callback
        propagate unchanged.
        """
        if not key.is_private:
            raise UnlockError(f"Key {key.key_id} is not a private key")

        logger.debug("Unlocking key %s", key.key_id)
        unlocked = await self.unlock_key(key)

        if unlocked is None or not unlocked.is_unlocked:
            raise UnlockError(f"Key {key.key_id} was not unlocked")
        return unlocked

    @asynccontextmanager
    async def unlocked(self, key: KeyHandle) -> AsyncIterator[KeyHandle]:
        """Unlock a key for the duration of one operation."""
        handle = await self.unlock(key)
        try:
            yield handle
        finally:
            handle.secret = None
            handle.locked = True
