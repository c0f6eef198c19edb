"""
Shared fixtures and in-memory fakes for permctl tests.
"""

import logging
from typing import Dict, List

import pytest
from keyring.errors import PasswordDeleteError

from permctl.auth.keyrings import Keyring, KeyringItem, KeyringKeyNotFoundError
from permctl.auth.token_storage import KeyringTokenStore
from permctl.shared.exceptions import ConfigNotFoundError
from permctl.shared.interfaces import IConfigStore

TEST_PASSWORD = "correct horse battery staple"


class FakeKeyringBackend:
    """Stands in for a keyring library backend (get/set/delete_password)."""

    def __init__(self):
        self.passwords: Dict[tuple, str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        if (service, username) not in self.passwords:
            raise PasswordDeleteError("Password not found")
        del self.passwords[(service, username)]


class MemoryKeyring(Keyring):
    """Keyring handle over a shared dict, recording how it is used."""

    def __init__(self, items: Dict[str, KeyringItem], events: List[str]):
        self._items = items
        self._events = events
        self.closed = False
        self._events.append("open")

    def keys(self):
        return list(self._items.keys())

    def get(self, key):
        if key not in self._items:
            raise KeyringKeyNotFoundError(key)
        return self._items[key]

    def set(self, item):
        self._items[item.key] = item

    def remove(self, key):
        if key not in self._items:
            raise KeyringKeyNotFoundError(key)
        del self._items[key]

    def close(self):
        self.closed = True
        self._events.append("close")


class MemoryConfigStore(IConfigStore):
    """Config store holding the current context in memory."""

    def __init__(self, current=None):
        self.current = current
        self.calls = 0

    def get_current_context(self):
        self.calls += 1
        if not self.current:
            raise ConfigNotFoundError()
        return self.current

    def set_current_context(self, system):
        self.calls += 1
        self.current = system

    def clear_current_context(self):
        self.calls += 1
        self.current = None


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep tests away from the real configuration directory and keyring settings."""
    for name in (
        'PERMCTL_CONFIG_DIR', 'PERMCTL_KEYRING_BACKEND', 'PERMCTL_KEYRING_SERVICE',
        'PERMCTL_KEYRING_PASSWORD', 'PERMCTL_LOG_LEVEL', 'PERMCTL_LOG_FORMAT',
        'PERMCTL_LOG_FILE',
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path / 'xdg'))


@pytest.fixture
def keyring_items():
    return {}


@pytest.fixture
def keyring_events():
    return []


@pytest.fixture
def token_store(keyring_items, keyring_events):
    return KeyringTokenStore(lambda: MemoryKeyring(keyring_items, keyring_events))


@pytest.fixture
def config_store():
    return MemoryConfigStore()


@pytest.fixture
def fake_backend():
    return FakeKeyringBackend()


@pytest.fixture
def password_func():
    prompts = []

    def prompt(message):
        prompts.append(message)
        return TEST_PASSWORD

    prompt.prompts = prompts
    return prompt


@pytest.fixture
def restore_root_logger():
    """Undo handler changes made by setup_logging."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
