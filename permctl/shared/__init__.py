"""
Shared models, interfaces, exceptions and logging setup for permctl.
"""
