"""
permctl - tokens and contexts for a permissions service command line client.

Tokens are kept in the OS keyring (or an encrypted file when there is none),
keyed by permissions system name. The current context selects which saved
token a call uses when its connection flags are left empty.
"""

__version__ = "0.1.0"
