"""
Authentication package for permctl.

This package contains secure token storage on top of the OS keyring (with an
encrypted file fallback) and resolution of the effective token for a call.
"""
