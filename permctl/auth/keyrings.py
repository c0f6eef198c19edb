"""
Keyring handles for the token store.

Items are kept in the OS keyring when one is available, falling back to an
encrypted file in the local configuration directory. A handle is meant to be
opened for a single operation and used as a context manager: anything it
caches (file password, decrypted contents) is dropped when it is closed.

Errors raised here are backend errors. They are not part of the permctl
domain exception hierarchy and callers may let them propagate unchanged.
"""

import base64
import getpass
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import keyring
from keyring.backends import fail, null
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from permctl.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SERVICE_NAME = "permctl tokens"
KEYRING_FILENAME = "keyring.enc"
PASSWORD_ENV_VAR = "PERMCTL_KEYRING_PASSWORD"

BACKEND_AUTO = "auto"
BACKEND_SYSTEM = "system"
BACKEND_FILE = "file"
BACKEND_NAMES = (BACKEND_AUTO, BACKEND_SYSTEM, BACKEND_FILE)

FILE_FORMAT_VERSION = 1
KDF_NAME = "pbkdf2-sha256"
KDF_ITERATIONS = 390000
SALT_SIZE = 16


class KeyringError(Exception):
    """Base exception for keyring backend errors."""
    pass


class KeyringKeyNotFoundError(KeyringError):
    """The requested key is not in the keyring."""

    def __init__(self, key: str):
        super().__init__(f"The specified item could not be found in the keyring: {key}")
        self.key = key


class KeyringDecryptError(KeyringError):
    """The encrypted keyring file could not be decrypted."""
    pass


class KeyringFormatError(KeyringError):
    """The encrypted keyring file is not in a readable format."""
    pass


@dataclass
class KeyringItem:
    """A single keyring entry: secret data plus a free-form label."""
    key: str
    data: str
    label: str = ""

    def __repr__(self) -> str:
        return f"KeyringItem(key={self.key!r}, label={self.label!r})"


class Keyring(ABC):
    """A handle onto a keyring, valid until closed."""

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    @abstractmethod
    def get(self, key: str) -> KeyringItem:
        """Return the item stored under key, raising KeyringKeyNotFoundError."""
        pass

    @abstractmethod
    def set(self, item: KeyringItem) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove the item stored under key, raising KeyringKeyNotFoundError."""
        pass

    def close(self) -> None:
        pass

    def __enter__(self) -> "Keyring":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()


def system_keyring_available(backend=None) -> bool:
    """Check whether the keyring library found a usable OS backend."""
    backend = backend if backend is not None else keyring.get_keyring()
    available = not isinstance(backend, (fail.Keyring, null.Keyring))
    logger.debug(f"System keyring backend {type(backend).__name__} (available: {available})")
    return available


class SystemKeyring(Keyring):
    """
    Keyring backed by the OS secure storage through the keyring library.

    The keyring library cannot enumerate entries, so the list of keys is
    kept as a separate index entry next to the items.
    """

    INDEX_USERNAME = "keys"

    def __init__(self, service_name: str = SERVICE_NAME, backend=None):
        self.service_name = service_name
        self.index_service_name = f"{service_name} index"
        self._backend = backend if backend is not None else keyring.get_keyring()

    def keys(self) -> List[str]:
        raw = self._backend.get_password(self.index_service_name, self.INDEX_USERNAME)
        if not raw:
            return []
        try:
            keys = json.loads(raw)
        except json.JSONDecodeError as e:
            raise KeyringFormatError(f"Keyring index is corrupted: {e}") from e
        if not isinstance(keys, list):
            raise KeyringFormatError("Keyring index is corrupted: expected a list")
        return [str(key) for key in keys]

    def _write_index(self, keys: List[str]) -> None:
        if keys:
            self._backend.set_password(self.index_service_name, self.INDEX_USERNAME, json.dumps(keys))
        elif self._backend.get_password(self.index_service_name, self.INDEX_USERNAME) is not None:
            self._backend.delete_password(self.index_service_name, self.INDEX_USERNAME)

    def get(self, key: str) -> KeyringItem:
        raw = self._backend.get_password(self.service_name, key)
        if raw is None:
            raise KeyringKeyNotFoundError(key)

        try:
            stored = json.loads(raw)
        except json.JSONDecodeError:
            stored = None
        if not isinstance(stored, dict) or 'data' not in stored:
            # Written by another tool: no label to recover
            return KeyringItem(key=key, data=raw)

        return KeyringItem(key=key, data=str(stored['data']), label=str(stored.get('label', '')))

    def set(self, item: KeyringItem) -> None:
        value = json.dumps({'label': item.label, 'data': item.data})
        self._backend.set_password(self.service_name, item.key, value)

        keys = self.keys()
        if item.key not in keys:
            keys.append(item.key)
            self._write_index(keys)

    def remove(self, key: str) -> None:
        keys = self.keys()
        if self._backend.get_password(self.service_name, key) is None:
            if key in keys:
                keys.remove(key)
                self._write_index(keys)
            raise KeyringKeyNotFoundError(key)

        self._backend.delete_password(self.service_name, key)
        if key in keys:
            keys.remove(key)
            self._write_index(keys)


def terminal_password_prompt(prompt: str) -> str:
    """
    Resolve the keyring file password.

    The PERMCTL_KEYRING_PASSWORD environment variable wins when it is set,
    even to an empty string. Otherwise the password is read from the
    controlling terminal without echo.
    """
    password = os.environ.get(PASSWORD_ENV_VAR)
    if password is not None:
        return password
    return getpass.getpass(f"{prompt}: ")


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    """Derive a Fernet key from a password."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(password.encode('utf-8')))


class EncryptedFileKeyring(Keyring):
    """
    Keyring stored as a single password-encrypted file.

    The file is a small JSON envelope holding the KDF parameters and a Fernet
    token; the token decrypts to a JSON object of items keyed by name.
    """

    def __init__(
        self,
        path: Path,
        password_func: Callable[[str], str] = terminal_password_prompt,
        iterations: int = KDF_ITERATIONS,
    ):
        self.path = Path(path)
        self._password_func = password_func
        self._iterations = iterations
        self._password: Optional[str] = None
        self._salt: Optional[bytes] = None
        self._items: Optional[Dict[str, Dict[str, str]]] = None

    def _get_password(self) -> str:
        if self._password is None:
            self._password = self._password_func(f'Enter passphrase to unlock "{self.path}"')
        return self._password

    def _load(self) -> Dict[str, Dict[str, str]]:
        if self._items is not None:
            return self._items

        if not self.path.exists():
            self._items = {}
            return self._items

        try:
            envelope = json.loads(self.path.read_text(encoding='utf-8'))
            salt = base64.b64decode(envelope['salt'])
            iterations = int(envelope['iterations'])
            payload = envelope['payload'].encode('ascii')
        except (ValueError, KeyError, TypeError) as e:
            raise KeyringFormatError(f"Unreadable keyring file {self.path}: {e}") from e

        fernet = Fernet(derive_key(self._get_password(), salt, iterations))
        try:
            decrypted = fernet.decrypt(payload)
        except InvalidToken as e:
            raise KeyringDecryptError(f"Failed to decrypt keyring file {self.path}: wrong password?") from e

        try:
            items = json.loads(decrypted.decode('utf-8'))
        except ValueError as e:
            raise KeyringFormatError(f"Unreadable keyring contents in {self.path}: {e}") from e

        self._salt = salt
        self._iterations = iterations
        self._items = items
        return items

    def _save(self, items: Dict[str, Dict[str, str]]) -> None:
        if not items:
            if self.path.exists():
                self.path.unlink()
                logger.debug(f"Removed empty keyring file {self.path}")
            return

        if self._salt is None:
            self._salt = os.urandom(SALT_SIZE)

        fernet = Fernet(derive_key(self._get_password(), self._salt, self._iterations))
        envelope = {
            'version': FILE_FORMAT_VERSION,
            'kdf': KDF_NAME,
            'iterations': self._iterations,
            'salt': base64.b64encode(self._salt).decode('ascii'),
            'payload': fernet.encrypt(json.dumps(items).encode('utf-8')).decode('ascii'),
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(envelope, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def keys(self) -> List[str]:
        return list(self._load().keys())

    def get(self, key: str) -> KeyringItem:
        items = self._load()
        if key not in items:
            raise KeyringKeyNotFoundError(key)
        stored = items[key]
        return KeyringItem(key=key, data=stored.get('data', ''), label=stored.get('label', ''))

    def set(self, item: KeyringItem) -> None:
        items = dict(self._load())
        items[item.key] = {'label': item.label, 'data': item.data}
        self._save(items)
        self._items = items

    def remove(self, key: str) -> None:
        items = dict(self._load())
        if key not in items:
            raise KeyringKeyNotFoundError(key)
        del items[key]
        self._save(items)
        self._items = items

    def close(self) -> None:
        self._password = None
        self._items = None
        self._salt = None


def open_keyring(
    file_path: Path,
    service_name: str = SERVICE_NAME,
    backend_name: str = BACKEND_AUTO,
    password_func: Callable[[str], str] = terminal_password_prompt,
    system_backend=None,
) -> Keyring:
    """
    Open a keyring handle.

    Args:
        file_path: Location of the encrypted fallback file
        service_name: Service name the OS keyring entries are stored under
        backend_name: "auto" picks the OS keyring when available, "system"
            and "file" force one or the other
        password_func: Resolves the fallback file password
        system_backend: keyring library backend to use instead of the default

    Returns:
        A fresh keyring handle
    """
    if backend_name not in BACKEND_NAMES:
        raise ConfigurationError(
            f"Unknown keyring backend: {backend_name} (expected one of {', '.join(BACKEND_NAMES)})",
            config_key='keyring.backend'
        )

    if backend_name == BACKEND_SYSTEM or (
        backend_name == BACKEND_AUTO and system_keyring_available(system_backend)
    ):
        return SystemKeyring(service_name, backend=system_backend)

    logger.debug(f"Using encrypted keyring file {file_path}")
    return EncryptedFileKeyring(file_path, password_func=password_func)
