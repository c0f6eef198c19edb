"""
Tests for the OS keyring handle and the encrypted file fallback.
"""

import json
import os
import stat

import pytest
from keyring.backends import fail

from permctl.auth.keyrings import (
    EncryptedFileKeyring, KeyringDecryptError, KeyringFormatError, KeyringItem,
    KeyringKeyNotFoundError, PASSWORD_ENV_VAR, SystemKeyring, open_keyring,
    system_keyring_available, terminal_password_prompt,
)
from permctl.shared.exceptions import ConfigurationError

TEST_PASSWORD = "correct horse battery staple"
TEST_ITERATIONS = 1000


class TestSystemKeyring:
    """Test the keyring library backed handle."""

    def test_set_and_get(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="secX", label="pfx@ep1"))

        item = ring.get("sysA")
        assert item.key == "sysA"
        assert item.data == "secX"
        assert item.label == "pfx@ep1"

    def test_keys_tracks_index(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="a"))
        ring.set(KeyringItem(key="sysB", data="b"))
        ring.set(KeyringItem(key="sysA", data="a2"))

        assert ring.keys() == ["sysA", "sysB"]
        assert ring.get("sysA").data == "a2"

    def test_keys_empty(self, fake_backend):
        assert SystemKeyring("test service", backend=fake_backend).keys() == []

    def test_get_missing_raises_not_found(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)

        with pytest.raises(KeyringKeyNotFoundError) as exc_info:
            ring.get("missing")
        assert exc_info.value.key == "missing"

    def test_remove(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="a"))
        ring.set(KeyringItem(key="sysB", data="b"))

        ring.remove("sysA")

        assert ring.keys() == ["sysB"]
        with pytest.raises(KeyringKeyNotFoundError):
            ring.get("sysA")

    def test_removing_last_key_drops_index(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="a"))
        ring.remove("sysA")

        assert fake_backend.passwords == {}

    def test_remove_missing_raises_not_found(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)

        with pytest.raises(KeyringKeyNotFoundError):
            ring.remove("missing")

    def test_remove_prunes_stale_index_entry(self, fake_backend):
        ring = SystemKeyring("test service", backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="a"))
        del fake_backend.passwords[("test service", "sysA")]

        with pytest.raises(KeyringKeyNotFoundError):
            ring.remove("sysA")
        assert ring.keys() == []

    def test_foreign_entry_has_no_label(self, fake_backend):
        fake_backend.set_password("test service", "sysA", "raw-secret")
        ring = SystemKeyring("test service", backend=fake_backend)

        item = ring.get("sysA")
        assert item.data == "raw-secret"
        assert item.label == ""

    def test_corrupted_index(self, fake_backend):
        fake_backend.set_password("test service index", "keys", "{not json")
        ring = SystemKeyring("test service", backend=fake_backend)

        with pytest.raises(KeyringFormatError):
            ring.keys()

    def test_item_repr_hides_data(self):
        assert "secX" not in repr(KeyringItem(key="sysA", data="secX", label="pfx@ep1"))


class TestEncryptedFileKeyring:
    """Test the encrypted file fallback."""

    def _open(self, path, password_func):
        return EncryptedFileKeyring(path, password_func=password_func, iterations=TEST_ITERATIONS)

    def test_roundtrip_across_handles(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="secX", label="pfx@ep1"))
            ring.set(KeyringItem(key="sysB", data="secY", label="@ep2"))

        with self._open(path, password_func) as ring:
            assert sorted(ring.keys()) == ["sysA", "sysB"]
            item = ring.get("sysA")

        assert item.data == "secX"
        assert item.label == "pfx@ep1"

    def test_file_does_not_contain_plaintext(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="very-secret-value", label="pfx@grpc.example.com"))

        contents = path.read_text()
        assert "very-secret-value" not in contents
        assert "grpc.example.com" not in contents
        envelope = json.loads(contents)
        assert envelope['version'] == 1
        assert envelope['iterations'] == TEST_ITERATIONS

    def test_file_permissions(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="secX"))

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_creates_parent_directory(self, tmp_path, password_func):
        path = tmp_path / "nested" / "dir" / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="secX"))

        assert path.exists()

    def test_wrong_password(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"
        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="secX"))

        with self._open(path, lambda prompt: "wrong password") as ring:
            with pytest.raises(KeyringDecryptError):
                ring.get("sysA")

    def test_missing_file_needs_no_password(self, tmp_path):
        def refuse(prompt):
            raise AssertionError("password should not be requested")

        with self._open(tmp_path / "keyring.enc", refuse) as ring:
            assert ring.keys() == []
            with pytest.raises(KeyringKeyNotFoundError):
                ring.get("sysA")
            with pytest.raises(KeyringKeyNotFoundError):
                ring.remove("sysA")

    def test_password_requested_once_per_handle(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="a"))
            ring.set(KeyringItem(key="sysB", data="b"))
        assert len(password_func.prompts) == 1

        with self._open(path, password_func) as ring:
            ring.keys()
            ring.get("sysA")
        assert len(password_func.prompts) == 2
        assert str(path) in password_func.prompts[0]

    def test_close_forgets_password_and_contents(self, tmp_path, password_func):
        ring = self._open(tmp_path / "keyring.enc", password_func)
        ring.set(KeyringItem(key="sysA", data="secX"))
        ring.close()

        assert ring._password is None
        assert ring._items is None

    def test_overwrite_existing_key(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="old", label="@ep1"))
        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="new", label="@ep2"))
        with self._open(path, password_func) as ring:
            assert ring.keys() == ["sysA"]
            assert ring.get("sysA").data == "new"

    def test_removing_last_item_deletes_file(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"

        with self._open(path, password_func) as ring:
            ring.set(KeyringItem(key="sysA", data="a"))
            ring.set(KeyringItem(key="sysB", data="b"))
        with self._open(path, password_func) as ring:
            ring.remove("sysA")
        assert path.exists()

        with self._open(path, password_func) as ring:
            ring.remove("sysB")
        assert not path.exists()

    def test_unreadable_file(self, tmp_path, password_func):
        path = tmp_path / "keyring.enc"
        path.write_text("this is not a keyring")

        with self._open(path, password_func) as ring:
            with pytest.raises(KeyringFormatError):
                ring.keys()


class TestPasswordPrompt:
    """Test resolution of the fallback file password."""

    def test_environment_variable_wins(self, monkeypatch):
        monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")
        monkeypatch.setattr("getpass.getpass", lambda prompt: pytest.fail("prompted"))

        assert terminal_password_prompt("Enter passphrase") == "from-env"

    def test_empty_environment_variable_counts_as_set(self, monkeypatch):
        monkeypatch.setenv(PASSWORD_ENV_VAR, "")
        monkeypatch.setattr("getpass.getpass", lambda prompt: pytest.fail("prompted"))

        assert terminal_password_prompt("Enter passphrase") == ""

    def test_prompts_on_terminal(self, monkeypatch):
        prompts = []

        def fake_getpass(prompt):
            prompts.append(prompt)
            return TEST_PASSWORD

        monkeypatch.setattr("getpass.getpass", fake_getpass)

        assert terminal_password_prompt("Enter passphrase") == TEST_PASSWORD
        assert prompts == ["Enter passphrase: "]

    def test_prompt_eof_propagates(self, monkeypatch):
        def eof(prompt):
            raise EOFError()

        monkeypatch.setattr("getpass.getpass", eof)

        with pytest.raises(EOFError):
            terminal_password_prompt("Enter passphrase")


class TestOpenKeyring:
    """Test backend selection."""

    def test_fail_backend_is_unavailable(self):
        assert system_keyring_available(fail.Keyring()) is False

    def test_real_backend_is_available(self, fake_backend):
        assert system_keyring_available(fake_backend) is True

    def test_auto_prefers_system_keyring(self, tmp_path, fake_backend):
        ring = open_keyring(tmp_path / "keyring.enc", system_backend=fake_backend)

        assert isinstance(ring, SystemKeyring)

    def test_auto_falls_back_to_file(self, tmp_path):
        ring = open_keyring(tmp_path / "keyring.enc", system_backend=fail.Keyring())

        assert isinstance(ring, EncryptedFileKeyring)
        assert ring.path == tmp_path / "keyring.enc"

    def test_file_backend_forced(self, tmp_path, fake_backend):
        ring = open_keyring(tmp_path / "keyring.enc", backend_name="file", system_backend=fake_backend)

        assert isinstance(ring, EncryptedFileKeyring)

    def test_system_backend_forced(self, tmp_path):
        ring = open_keyring(tmp_path / "keyring.enc", backend_name="system", system_backend=fail.Keyring())

        assert isinstance(ring, SystemKeyring)

    def test_service_name_is_used(self, tmp_path, fake_backend):
        ring = open_keyring(tmp_path / "keyring.enc", service_name="other", system_backend=fake_backend)
        ring.set(KeyringItem(key="sysA", data="a"))

        assert ("other", "sysA") in fake_backend.passwords

    def test_unknown_backend(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown keyring backend"):
            open_keyring(tmp_path / "keyring.enc", backend_name="vault")
