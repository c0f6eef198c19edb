"""
Resolution of the effective token for an invocation.

Explicit values passed by the caller win; anything left empty is filled in
from the token saved for the current context.
"""

import logging

from permctl.shared.exceptions import ConfigNotFoundError, ContextNotConfiguredError
from permctl.shared.interfaces import IConfigStore, ITokenStore
from permctl.shared.models import Token

logger = logging.getLogger(__name__)

SETUP_INSTRUCTION = "must first save a token: see `permctl context set --help`"


def current_token(config_store: IConfigStore, token_store: ITokenStore) -> Token:
    """Return the stored token for the current context."""
    system = config_store.get_current_context()
    return token_store.get(system)


class ContextResolver:
    """Merges per-invocation overrides with the current context."""

    def __init__(self, config_store: IConfigStore, token_store: ITokenStore):
        self.config_store = config_store
        self.token_store = token_store

    def resolve(self, system: str = "", endpoint: str = "", secret: str = "") -> Token:
        """
        Build the token to use for a call.

        When system, endpoint and secret are all given the token is built from
        them alone and neither store is touched. Otherwise the current
        context's stored token supplies whatever was left empty; its prefix is
        always kept.

        Raises:
            ContextNotConfiguredError: If a stored value is needed and no
                current context has been set
            TokenNotFoundError: If the current context has no stored token
        """
        if system and endpoint and secret:
            return Token(system=system, endpoint=endpoint, prefix="", secret=secret)

        try:
            stored = current_token(self.config_store, self.token_store)
        except ConfigNotFoundError as e:
            raise ContextNotConfiguredError(SETUP_INSTRUCTION) from e

        logger.debug(f"Filling unset connection values from context {stored.system}")
        return Token(
            system=system or stored.system,
            endpoint=endpoint or stored.endpoint,
            prefix=stored.prefix,
            secret=secret or stored.secret,
        )
