"""Tests for the local simulated control plane."""

import json
import stat

import pytest

from stratum.backends.local import LocalBackend
from stratum.core.errors import PermanentBackendError, TransientBackendError
from stratum.domain.models import ResourceKind
from stratum.secrets import SecretMaterial


@pytest.fixture
def backend(tmp_path):
    return LocalBackend(tmp_path, "dep1")


class TestLocalBackend:
    """Tests for LocalBackend create/delete/verify."""

    @pytest.mark.asyncio
    async def test_database_outputs_and_secret_handle(self, backend, tmp_path):
        outputs = await backend.create("db", ResourceKind.database, {"name": "pg", "port": 6432})

        assert outputs["host"] == "pg.db.local"
        assert outputs["port"] == 6432
        assert outputs["endpoint"] == "pg.db.local:6432"
        assert outputs["admin_password"] == "secret://local/db/admin_password"

        material = await backend.resolve_secret(outputs["admin_password"])
        assert isinstance(material, SecretMaterial)
        assert material.reveal()

        # Secret material never lands in the resource document
        document = (tmp_path / "dep1" / "db.json").read_text()
        assert material.reveal() not in document

        secret_file = tmp_path / "dep1" / ".secrets" / "db.admin_password"
        assert stat.S_IMODE(secret_file.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_create_is_idempotent_and_keeps_secret(self, backend):
        first = await backend.create("llm", ResourceKind.ai_service, {"model": "gpt"})
        secret = (await backend.resolve_secret(first["api_key"])).reveal()

        second = await backend.create("llm", ResourceKind.ai_service, {"model": "gpt-4o"})

        assert second["model"] == "gpt-4o"
        assert (await backend.resolve_secret(second["api_key"])).reveal() == secret

    @pytest.mark.asyncio
    async def test_secrets_survive_new_adapter_instance(self, backend, tmp_path):
        outputs = await backend.create("reg", ResourceKind.registry, {})
        original = (await backend.resolve_secret(outputs["pull_token"])).reveal()

        fresh = LocalBackend(tmp_path, "dep1")
        assert (await fresh.resolve_secret(outputs["pull_token"])).reveal() == original

    @pytest.mark.asyncio
    async def test_secret_kind_uses_declared_value(self, backend):
        outputs = await backend.create("s", ResourceKind.secret, {"value": "hunter2"})
        assert (await backend.resolve_secret(outputs["value"])).reveal() == "hunter2"

    @pytest.mark.asyncio
    async def test_kind_specific_outputs(self, backend):
        network = await backend.create("vnet", ResourceKind.network, {"address_prefix": "10.1.0.0/16"})
        cluster = await backend.create("aks", ResourceKind.compute_cluster, {})
        gateway = await backend.create("gw", ResourceKind.gateway, {})

        assert network["subnet_id"].startswith("subnet-")
        assert network["address_prefix"] == "10.1.0.0/16"
        assert cluster["api_server"] == "https://aks.k8s.local:6443"
        assert gateway["endpoint"] == f"http://{gateway['public_ip']}"

    @pytest.mark.asyncio
    async def test_delete_removes_resource_and_secrets(self, backend, tmp_path):
        outputs = await backend.create("db", ResourceKind.database, {})
        await backend.delete("db", ResourceKind.database, outputs)

        assert not (tmp_path / "dep1" / "db.json").exists()
        assert list((tmp_path / "dep1" / ".secrets").iterdir()) == []
        with pytest.raises(PermanentBackendError):
            await backend.resolve_secret(outputs["admin_password"])

    @pytest.mark.asyncio
    async def test_delete_absent_is_success(self, backend, tmp_path):
        await backend.delete("ghost", ResourceKind.network, {})
        assert not (tmp_path / "dep1" / "ghost.json").exists()

    @pytest.mark.asyncio
    async def test_verify(self, backend):
        await backend.create("vnet", ResourceKind.network, {})
        assert (await backend.verify("vnet", ResourceKind.network, {})).healthy
        missing = await backend.verify("ghost", ResourceKind.network, {})
        assert not missing.healthy
        assert missing.detail == "resource not found"

    @pytest.mark.asyncio
    async def test_verify_checks_consumed_secret_handles(self, backend):
        await backend.create("app", ResourceKind.ai_service, {"db_password": "secret://local/db/admin_password"})
        result = await backend.verify("app", ResourceKind.ai_service, {})
        assert not result.healthy
        assert "db_password" in result.detail


class TestFaultInjection:
    @pytest.mark.asyncio
    async def test_permanent(self, backend):
        with pytest.raises(PermanentBackendError, match="Simulated permanent"):
            await backend.create("db", ResourceKind.database, {"_fail": "permanent"})

    @pytest.mark.asyncio
    async def test_transient_fail_times(self, backend):
        config = {"_fail": "transient", "_fail_times": 2}
        for _ in range(2):
            with pytest.raises(TransientBackendError):
                await backend.create("db", ResourceKind.database, config)
        outputs = await backend.create("db", ResourceKind.database, config)
        assert outputs["host"] == "db.db.local"

    @pytest.mark.asyncio
    async def test_fail_on_delete(self, backend, tmp_path):
        config = {"_fail": "permanent", "_fail_on": "delete"}
        await backend.create("db", ResourceKind.database, config)
        with pytest.raises(PermanentBackendError):
            await backend.delete("db", ResourceKind.database, {})
        assert json.loads((tmp_path / "dep1" / "db.json").read_text())["id"] == "db"

    @pytest.mark.asyncio
    async def test_unhealthy(self, backend):
        await backend.create("gw", ResourceKind.gateway, {"_unhealthy": True})
        result = await backend.verify("gw", ResourceKind.gateway, {})
        assert not result.healthy
