"""Tests for the encrypted credential store."""

import stat
import time

import pytest

from layermedia.store import CdnConfig, CredentialStore


@pytest.fixture()
def store(tmp_path):
    return CredentialStore(tmp_path / "creds")


class TestTokens:
    def test_roundtrip(self, store):
        store.set_tokens("access", "refresh", 1_900_000_000.0)
        assert store.get_access_token() == "access"
        assert store.get_refresh_token() == "refresh"
        assert store.get_expires_at() == 1_900_000_000.0

    def test_validity(self, store):
        assert not store.is_token_valid()
        store.set_tokens("a", "r", time.time() + 3600)
        assert store.is_token_valid()
        store.set_tokens("a", "r", time.time() - 1)
        assert not store.is_token_valid()

    def test_clear_keeps_cdn_config(self, store):
        store.set_tokens("a", "r", 1.0)
        store.set_cdn_config(CdnConfig("key", "zone"))
        store.clear_tokens()
        assert store.get_access_token() is None
        assert store.get_cdn_config() == CdnConfig("key", "zone")


class TestCdnConfig:
    def test_roundtrip(self, store):
        config = CdnConfig("secret-key", "artworks", "drops/2024")
        store.set_cdn_config(config)
        assert store.get_cdn_config() == config

    def test_missing(self, store):
        assert store.get_cdn_config() is None

    def test_clear(self, store):
        store.set_cdn_config(CdnConfig("k", "z"))
        store.clear_cdn_config()
        assert store.get_cdn_config() is None

    def test_survives_new_instance(self, tmp_path):
        CredentialStore(tmp_path).set_cdn_config(CdnConfig("k", "z", "p"))
        assert CredentialStore(tmp_path).get_cdn_config() == CdnConfig("k", "z", "p")


class TestStorage:
    def test_not_plaintext(self, store):
        store.set_cdn_config(CdnConfig("super-secret-key", "zone"))
        assert b"super-secret-key" not in store.path.read_bytes()

    def test_private_permissions(self, store):
        store.set_tokens("a", "r", 1.0)
        for path in (store.path, store.key_path):
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_corrupt_record_reads_empty(self, store):
        store.set_tokens("a", "r", 1.0)
        store.path.write_bytes(b"garbage")
        assert store.get_access_token() is None
        # The next write replaces it
        store.set_tokens("b", "r", 1.0)
        assert store.get_access_token() == "b"

    def test_lost_key_reads_empty(self, store):
        store.set_cdn_config(CdnConfig("k", "z"))
        store.key_path.unlink()
        assert store.get_cdn_config() is None
