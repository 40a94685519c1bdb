# tests/unit/secrets/test_unit_secret_stores.py — v1
"""Tests for secrets/ — bundle model, memory and dotenv stores, factory."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from conveyor.config.settings import Settings
from conveyor.secrets.base_secret_store import BaseSecretStore, SecretBundle, SecretNotFoundError
from conveyor.secrets.dotenv_store import DotenvSecretStore
from conveyor.secrets.memory_store import MemorySecretStore
from conveyor.secrets.secret_factory import create_secret_store


class TestSecretBundle:
    def test_repr_hides_values(self):
        bundle = SecretBundle(name="registry", variables={"PASSWORD": "hunter2"})
        assert "hunter2" not in repr(bundle)
        assert "hunter2" not in str(bundle)
        assert "PASSWORD" in repr(bundle)

    def test_immutable(self):
        bundle = SecretBundle(name="registry", variables={"A": "1"})
        with pytest.raises(ValidationError):
            bundle.name = "other"  # type: ignore[misc]

    def test_secret_values(self):
        bundle = SecretBundle(name="b", variables={"A": "1", "B": "2"})
        assert sorted(bundle.secret_values) == ["1", "2"]

    def test_base_is_abstract(self):
        with pytest.raises(TypeError):
            BaseSecretStore()  # type: ignore[abstract]


class TestMemorySecretStore:
    @pytest.mark.asyncio
    async def test_resolve(self, secret_store):
        bundle = await secret_store.resolve("registry")
        assert bundle.variables["REGISTRY_USER"] == "bot"

    @pytest.mark.asyncio
    async def test_unknown(self, secret_store):
        with pytest.raises(SecretNotFoundError, match="'nope'") as exc_info:
            await secret_store.resolve("nope")
        assert exc_info.value.name == "nope"

    @pytest.mark.asyncio
    async def test_from_bundles(self):
        store = MemorySecretStore([SecretBundle(name="a", variables={"X": "1"})])
        assert await store.list_bundles() == ["a"]

    @pytest.mark.asyncio
    async def test_source_mapping_copied(self):
        source = {"a": {"X": "1"}}
        store = MemorySecretStore(source)
        source["a"]["X"] = "changed"
        assert (await store.resolve("a")).variables == {"X": "1"}


class TestDotenvSecretStore:
    @pytest.mark.asyncio
    async def test_resolve(self, tmp_path):
        (tmp_path / "registry.env").write_text(
            "REGISTRY_USER=bot\nREGISTRY_PASSWORD='p@ss word'\nEMPTY=\n"
        )
        store = DotenvSecretStore(secrets_dir=tmp_path)
        bundle = await store.resolve("registry")
        assert bundle.variables == {
            "REGISTRY_USER": "bot", "REGISTRY_PASSWORD": "p@ss word", "EMPTY": "",
        }

    @pytest.mark.asyncio
    async def test_no_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOST_ONLY", "leaked")
        (tmp_path / "b.env").write_text("VALUE=${HOST_ONLY}\n")
        bundle = await DotenvSecretStore(secrets_dir=tmp_path).resolve("b")
        assert bundle.variables["VALUE"] == "${HOST_ONLY}"

    @pytest.mark.asyncio
    async def test_missing(self, tmp_path):
        with pytest.raises(SecretNotFoundError):
            await DotenvSecretStore(secrets_dir=tmp_path).resolve("absent")

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, tmp_path):
        (tmp_path / "inner").mkdir()
        (tmp_path / "outside.env").write_text("A=1\n")
        store = DotenvSecretStore(secrets_dir=tmp_path / "inner")
        with pytest.raises(SecretNotFoundError):
            await store.resolve("../outside")

    @pytest.mark.asyncio
    async def test_list_bundles(self, tmp_path):
        (tmp_path / "b.env").write_text("A=1\n")
        (tmp_path / "a.env").write_text("A=1\n")
        (tmp_path / "notes.txt").write_text("ignored")
        assert await DotenvSecretStore(secrets_dir=tmp_path).list_bundles() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_list_bundles_missing_dir(self, tmp_path):
        assert await DotenvSecretStore(secrets_dir=tmp_path / "none").list_bundles() == []


class TestCreateSecretStore:
    def test_memory(self):
        s = Settings(_env_file=None, secrets_backend="memory")
        assert isinstance(create_secret_store(s), MemorySecretStore)

    def test_dotenv(self, tmp_path):
        s = Settings(_env_file=None, secrets_dir=tmp_path)
        assert isinstance(create_secret_store(s), DotenvSecretStore)
