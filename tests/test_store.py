"""
Tests for the credential stores and at-rest encryption.
"""

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet, InvalidToken

from database.models import CredentialEntry
from database.session import create_engine, create_session_factory, init_db
from wearables.encryption import TokenCipher
from wearables.errors import StorageError
from wearables.store import MemoryCredentialStore, SqlCredentialStore, token_key


class TestMemoryStore:
    @pytest.mark.asyncio
    async def test_batch_sets_and_deletes(self):
        store = MemoryCredentialStore()
        await store.write({"a": "1", "b": "2"})
        await store.write({"a": None, "c": "3"})

        assert await store.get("a") is None
        assert await store.get("b") == "2"
        assert store.keys() == ["b", "c"]

    @pytest.mark.asyncio
    async def test_put_and_delete_helpers(self):
        store = MemoryCredentialStore()
        await store.put("k", "v")
        await store.delete("k", "missing")
        assert store.keys() == []

    def test_lock_is_per_provider(self):
        store = MemoryCredentialStore()
        assert store.lock("oura") is store.lock("oura")
        assert store.lock("oura") is not store.lock("whoop")


class TestTokenCipher:
    def test_round_trip_with_key(self):
        cipher = TokenCipher(Fernet.generate_key().decode())
        token = cipher.encrypt("secret-value")
        assert token != "secret-value"
        assert cipher.decrypt(token) == "secret-value"
        assert cipher.enabled

    def test_passthrough_without_key(self):
        cipher = TokenCipher(None)
        assert not cipher.enabled
        assert cipher.encrypt("plain") == "plain"
        assert cipher.decrypt("plain") == "plain"

    def test_wrong_key_raises(self):
        token = TokenCipher(Fernet.generate_key()).encrypt("x")
        with pytest.raises(InvalidToken):
            TokenCipher(Fernet.generate_key()).decrypt(token)

    def test_from_settings_without_key_is_disabled(self, settings):
        assert not TokenCipher.from_settings(settings).enabled


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'nested' / 'credentials.db'}")
    yield engine
    await engine.dispose()


class TestSqlStore:
    @pytest.mark.asyncio
    async def test_values_encrypted_at_rest(self, engine):
        await init_db(engine)
        factory = create_session_factory(engine)
        store = SqlCredentialStore(factory, TokenCipher(Fernet.generate_key()))

        await store.put(token_key("oura"), '{"access_token": "at-secret"}')

        async with factory() as session:
            row = await session.get(CredentialEntry, token_key("oura"))
        assert "at-secret" not in row.value
        assert await store.get(token_key("oura")) == '{"access_token": "at-secret"}'

    @pytest.mark.asyncio
    async def test_batch_update_and_delete(self, engine):
        await init_db(engine)
        store = SqlCredentialStore(create_session_factory(engine), TokenCipher(None))

        await store.write({"a": "1", "b": "2"})
        await store.write({"a": "1b", "b": None})

        assert await store.get("a") == "1b"
        assert await store.get("b") is None

    @pytest.mark.asyncio
    async def test_persists_across_store_instances(self, engine):
        await init_db(engine)
        key = Fernet.generate_key()
        await SqlCredentialStore(create_session_factory(engine), TokenCipher(key)).put("k", "v")

        reopened = SqlCredentialStore(create_session_factory(engine), TokenCipher(key))
        assert await reopened.get("k") == "v"

    @pytest.mark.asyncio
    async def test_wrong_key_is_storage_error(self, engine):
        await init_db(engine)
        factory = create_session_factory(engine)
        await SqlCredentialStore(factory, TokenCipher(Fernet.generate_key())).put("k", "v")

        with pytest.raises(StorageError):
            await SqlCredentialStore(factory, TokenCipher(Fernet.generate_key())).get("k")

    @pytest.mark.asyncio
    async def test_missing_schema_is_storage_error(self, engine):
        store = SqlCredentialStore(create_session_factory(engine), TokenCipher(None))
        with pytest.raises(StorageError):
            await store.get("k")
        with pytest.raises(StorageError):
            await store.put("k", "v")

    def test_engine_creates_parent_directory(self, tmp_path):
        target = tmp_path / "a" / "b" / "credentials.db"
        create_engine(f"sqlite+aiosqlite:///{target}")
        assert target.parent.is_dir()
