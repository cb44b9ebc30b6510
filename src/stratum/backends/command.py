"""
Command-line backend.

Runs the cloud and cluster CLI invocations a runbook would list, one
template per operation, taken from the descriptor config:

    config:
      create: az acr create --name {name} --resource-group {resource_group} -o json
      delete: az acr delete --name {name} --resource-group {resource_group} --yes
      verify: az acr show --name {name} -o none
      secret_outputs: password

``{key}`` placeholders are filled from the (already resolved) config and
``{id}``. JSON printed on stdout by ``create`` becomes the resource
outputs. The rendered delete and verify commands are recorded as outputs
so teardown can run from recorded state alone.
"""

from __future__ import annotations

import asyncio
import json
import re
import shlex
import string
from typing import Any, Awaitable, Callable, Mapping

import structlog

from stratum.backends.base import BackendHealth, VerifyResult
from stratum.backends.registry import register_backend
from stratum.config import Settings, get_settings
from stratum.core.errors import (
    ConfigurationError,
    PermanentBackendError,
    TransientBackendError,
)
from stratum.domain.models import ResourceKind
from stratum.secrets import SecretMaterial, SecretVault

logger = structlog.get_logger()

SecretResolver = Callable[[str], Awaitable[SecretMaterial]]

TRANSIENT_PATTERN = re.compile(
    r"timed? ?out|throttl|rate.?limit|too many requests|temporarily unavailable"
    r"|connection (reset|refused)|service unavailable|\b(429|502|503|504)\b",
    re.IGNORECASE,
)
NOT_FOUND_PATTERN = re.compile(
    r"not ?found|does not exist|could not be found|no such",
    re.IGNORECASE,
)
HANDLE_PATTERN = re.compile(r"secret://[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+")

DELETE_COMMAND_OUTPUT = "delete_command"
VERIFY_COMMAND_OUTPUT = "verify_command"


class CommandBackend:
    """Backend that shells out to provisioning CLIs."""

    name = "command"

    def __init__(
        self,
        *,
        timeout: float = 600.0,
        secret_resolver: SecretResolver | None = None,
    ) -> None:
        self._timeout = timeout
        self._secret_resolver = secret_resolver
        self._vault = SecretVault(self.name)

    async def create(
        self,
        resource_id: str,
        kind: ResourceKind,
        config: Mapping[str, Any],
    ) -> dict[str, Any]:
        template = config.get("create")
        if not template:
            raise ConfigurationError(
                f"Resource '{resource_id}' uses the command backend without a 'create' command",
                details={"resource_id": resource_id},
            )

        stdout = await self._run(resource_id, "create", str(template), config)
        outputs = _parse_outputs(stdout)

        secret_names = [
            name.strip()
            for name in str(config.get("secret_outputs") or "").split(",")
            if name.strip()
        ]
        for name in secret_names:
            if name in outputs and outputs[name] is not None:
                material = SecretMaterial(str(outputs[name]))
                outputs[name] = self._vault.issue(resource_id, name, material)

        for key, output_key in (("delete", DELETE_COMMAND_OUTPUT), ("verify", VERIFY_COMMAND_OUTPUT)):
            if config.get(key):
                outputs[output_key] = render(str(config[key]), resource_id, config)
        return outputs

    async def delete(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> None:
        command = outputs.get(DELETE_COMMAND_OUTPUT)
        if not command:
            logger.warning("command_delete_missing", resource_id=resource_id)
            return
        try:
            await self._run(resource_id, "delete", str(command), outputs, rendered=True)
        except PermanentBackendError as exc:
            if NOT_FOUND_PATTERN.search(exc.details.get("stderr", "")):
                logger.info("command_delete_absent", resource_id=resource_id)
                return
            raise

    async def verify(
        self,
        resource_id: str,
        kind: ResourceKind,
        outputs: Mapping[str, Any],
    ) -> VerifyResult:
        command = outputs.get(VERIFY_COMMAND_OUTPUT)
        if not command:
            return VerifyResult(healthy=True, detail="no verify command configured")
        try:
            await self._run(resource_id, "verify", str(command), outputs, rendered=True)
        except (PermanentBackendError, TransientBackendError) as exc:
            return VerifyResult(healthy=False, detail=exc.message)
        return VerifyResult(healthy=True, detail="verify command succeeded")

    async def resolve_secret(self, handle: str) -> SecretMaterial:
        return self._vault.resolve(handle)

    async def health_check(self) -> BackendHealth:
        return BackendHealth(status="healthy")

    async def aclose(self) -> None:
        return None

    async def _run(
        self,
        resource_id: str,
        operation: str,
        template: str,
        values: Mapping[str, Any],
        *,
        rendered: bool = False,
    ) -> str:
        command = template if rendered else render(template, resource_id, values)
        argv = [await self._reveal(arg) for arg in shlex.split(command)]
        if not argv:
            raise ConfigurationError(f"Empty {operation} command for '{resource_id}'")

        # Only the template is logged; argv may carry resolved secrets.
        logger.info("command_started", resource_id=resource_id, operation=operation, program=argv[0])
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise PermanentBackendError(
                f"Command not found: {argv[0]}",
                details={"resource_id": resource_id},
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise TransientBackendError(
                f"{operation} command timed out after {self._timeout:.0f}s",
                details={"resource_id": resource_id},
            ) from exc

        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace").strip()
        if proc.returncode != 0:
            details = {"resource_id": resource_id, "exit_code": proc.returncode, "stderr": err[-500:]}
            message = f"{operation} command failed with exit code {proc.returncode}: {err[-200:]}"
            if proc.returncode == 124 or TRANSIENT_PATTERN.search(err):
                raise TransientBackendError(message, details=details)
            raise PermanentBackendError(message, details=details)
        return out

    async def _reveal(self, arg: str) -> str:
        handles = HANDLE_PATTERN.findall(arg)
        if not handles:
            return arg
        resolver = self._secret_resolver or self.resolve_secret
        for handle in handles:
            material = await resolver(handle)
            arg = arg.replace(handle, material.reveal())
        return arg


class _Template(string.Formatter):
    def get_value(self, key: Any, args: Any, kwargs: Any) -> Any:
        if isinstance(key, str) and key not in kwargs:
            raise ConfigurationError(f"Command template references unknown key '{{{key}}}'")
        return super().get_value(key, args, kwargs)


def render(template: str, resource_id: str, values: Mapping[str, Any]) -> str:
    """Fill ``{key}`` placeholders, quoting each value for the shell lexer."""
    quoted = {key: shlex.quote("" if value is None else str(value)) for key, value in values.items()}
    quoted.setdefault("id", shlex.quote(resource_id))
    return _Template().format(template, **quoted)


def _parse_outputs(stdout: str) -> dict[str, Any]:
    text = stdout.strip()
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {"stdout": text[-1000:]}
    if not isinstance(data, dict):
        return {"result": json.dumps(data)}
    outputs: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, (dict, list)):
            outputs[key] = json.dumps(value, sort_keys=True)
        else:
            outputs[key] = value
    return outputs


def _factory(
    *,
    settings: Settings | None = None,
    secret_resolver: SecretResolver | None = None,
    **_: Any,
) -> CommandBackend:
    cfg = settings or get_settings()
    return CommandBackend(timeout=cfg.command_timeout, secret_resolver=secret_resolver)


register_backend(
    CommandBackend.name,
    _factory,
    description="Runs cloud/cluster CLI command templates",
)

__all__ = ["CommandBackend", "render"]
