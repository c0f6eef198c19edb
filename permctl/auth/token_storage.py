"""
Secure Token Storage for permctl.

This module persists API tokens in the OS keyring, or in an encrypted file
when the OS offers no keyring. Each stored item is keyed by permissions
system name, holds the secret part of the token as its data and packs the
token prefix and endpoint into its label.
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional

from permctl.auth.codec import decode_label, encode_label, split_api_token
from permctl.auth.keyrings import (
    KEYRING_FILENAME, Keyring, KeyringItem, KeyringKeyNotFoundError, open_keyring,
)
from permctl.shared.exceptions import TokenNotFoundError
from permctl.shared.interfaces import ITokenStore
from permctl.shared.models import Token

logger = logging.getLogger(__name__)


class KeyringTokenStore(ITokenStore):
    """
    Token store on top of a keyring.

    A new keyring handle is opened for every operation and closed when the
    operation ends, so no password or decrypted state outlives a call.
    """

    def __init__(self, keyring_opener: Callable[[], Keyring]):
        self._open_keyring = keyring_opener

    @classmethod
    def from_configuration(cls, config) -> "KeyringTokenStore":
        """Build a store whose keyring follows the given PermctlConfiguration."""
        def opener() -> Keyring:
            return open_keyring(
                file_path=Path(config.get_config_dir()) / KEYRING_FILENAME,
                service_name=config.get_keyring_service_name(),
                backend_name=config.get_keyring_backend(),
            )
        return cls(opener)

    def list_tokens(self, reveal_tokens: bool = False) -> List[Token]:
        """
        Return all of the tokens in the keyring.

        Args:
            reveal_tokens: Include the real secrets instead of the placeholder

        Returns:
            Tokens in the order the keyring reports its keys
        """
        tokens = []
        with self._open_keyring() as ring:
            for key in ring.keys():
                item = ring.get(key)
                prefix, endpoint = decode_label(item.label)
                token = Token(system=item.key, endpoint=endpoint, prefix=prefix, secret=item.data)
                tokens.append(token if reveal_tokens else token.redacted())

        logger.debug(f"Listed {len(tokens)} stored tokens")
        return tokens

    def get(self, system: str) -> Token:
        """
        Fetch the token stored for a system.

        Raises:
            TokenNotFoundError: If nothing is stored under the system name
        """
        with self._open_keyring() as ring:
            try:
                item = ring.get(system)
            except KeyringKeyNotFoundError as e:
                raise TokenNotFoundError(system) from e

        logger.debug(f"Loaded keyring item {item!r}")
        prefix, endpoint = decode_label(item.label)
        return Token(system=item.key, endpoint=endpoint, prefix=prefix, secret=item.data)

    def put(self, system: str, endpoint: str, secret: str) -> None:
        """Store a token for a system, overwriting any existing one."""
        prefix, secret = split_api_token(secret)

        with self._open_keyring() as ring:
            ring.set(KeyringItem(
                key=system,
                data=secret,
                label=encode_label(prefix, endpoint),
            ))

        logger.info(f"Token stored for system {system}")

    def delete(self, system: str) -> None:
        """
        Remove the token stored for a system.

        A missing entry surfaces as the keyring's own KeyringKeyNotFoundError,
        not TokenNotFoundError.
        """
        with self._open_keyring() as ring:
            ring.remove(system)

        logger.info(f"Token removed for system {system}")
