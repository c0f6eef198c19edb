"""
Label packing and API token splitting.

Each stored item carries a label of the form ``prefix@endpoint``. Labels
written by other tools may not follow that form, so decoding falls back to
treating the whole label as the endpoint.
"""

from typing import Tuple

LABEL_DELIMITER = "@"
TOKEN_PREFIX_DELIMITER = "_"


def encode_label(prefix: str, endpoint: str) -> str:
    """Pack a token prefix and endpoint into a single label."""
    return LABEL_DELIMITER.join([prefix, endpoint])


def decode_label(label: str) -> Tuple[str, str]:
    """
    Unpack a label into ``(prefix, endpoint)``.

    Anything other than exactly one delimiter yields ``("", label)``.
    """
    parts = label.split(LABEL_DELIMITER)
    if len(parts) != 2:
        return "", label
    prefix, endpoint = parts
    return prefix, endpoint


def split_api_token(token: str) -> Tuple[str, str]:
    """
    Split an API token into ``(prefix, secret)`` on its last underscore.

    ``"tc_test_abc123"`` becomes ``("tc_test", "abc123")``; a token without an
    underscore has an empty prefix.
    """
    prefix, _, secret = token.rpartition(TOKEN_PREFIX_DELIMITER)
    return prefix, secret
