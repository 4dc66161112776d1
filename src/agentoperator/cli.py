"""CLI entry point for the agent operator."""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import click
import yaml

from agentoperator import __version__
from agentoperator.config import OperatorConfig
from agentoperator.discovery.client import AgentClient
from agentoperator.exceptions import AgentOperatorError, ConfigError
from agentoperator.logging_config import configure_logging
from agentoperator.model.resources import (
    Agent,
    Channel,
    ChannelRouting,
    ChannelStatus,
    Resource,
    load_resource,
)
from agentoperator.operator import create_operator
from agentoperator.reconciler.channel_routing import (
    ChannelRoutingDependentResource,
    build_channel_routing,
)
from agentoperator.runtime.store import InMemoryResourceStore
from agentoperator.settings import AppSettings

logger = logging.getLogger(__name__)

_YAML_SUFFIXES = (".yaml", ".yml")


def _load_config(config_path: Optional[str]) -> OperatorConfig:
    env = AppSettings()
    base = OperatorConfig.load(Path(config_path) if config_path else None)
    return env.to_runtime_config(base)


def load_resources(path: Path) -> List[Resource]:
    """Read every resource document from a YAML file or a directory of them."""
    files = (
        sorted(p for p in path.iterdir() if p.suffix in _YAML_SUFFIXES)
        if path.is_dir()
        else [path]
    )
    resources: List[Resource] = []
    for file in files:
        with open(file, "r") as f:
            try:
                documents = [d for d in yaml.safe_load_all(f) if d]
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {file}: {exc}", cause=exc) from exc
        for document in documents:
            try:
                resources.append(load_resource(document))
            except ValueError as exc:
                raise ConfigError(f"Invalid resource in {file}: {exc}", cause=exc) from exc
    return resources


def _dump(documents: Iterable[dict]) -> str:
    return yaml.safe_dump_all(list(documents), sort_keys=False, default_flow_style=False)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="agentoperator")
@click.option("--log-level", default=None, help="Log level (override env)")
@click.option("--log-format", default=None, type=click.Choice(["json", "text"]))
@click.option("--config", "config_path", default=None, help="Path to YAML config")
@click.pass_context
def main(
    ctx: click.Context,
    log_level: Optional[str],
    log_format: Optional[str],
    config_path: Optional[str],
) -> None:
    """Agent operator - resolve Channel capabilities against discovered Agents."""
    settings = AppSettings()
    configure_logging(log_level or settings.log_level, log_format or settings.log_format)
    try:
        ctx.obj = _load_config(config_path)
    except (AgentOperatorError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc


@main.command("resolve")
@click.argument("channel_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument(
    "agent_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path)
)
@click.option("--strict", is_flag=True, help="Exit with status 2 when the channel is unresolved")
def resolve_cmd(channel_file: Path, agent_files: Tuple[Path, ...], strict: bool) -> None:
    """Resolve one Channel against Agent resources offline and print the result."""
    try:
        channels = [r for r in load_resources(channel_file) if isinstance(r, Channel)]
        agents = [
            r for path in agent_files for r in load_resources(path) if isinstance(r, Agent)
        ]
    except AgentOperatorError as exc:
        raise click.ClickException(str(exc)) from exc
    if len(channels) != 1:
        raise click.ClickException(f"{channel_file} must contain exactly one Channel")
    channel = channels[0]

    async def _resolve():
        store = InMemoryResourceStore()
        for agent in agents:
            await store.create_or_replace(agent)
        return await ChannelRoutingDependentResource(store).resolve(channel)

    result = asyncio.run(_resolve())
    status = ChannelStatus.from_unresolved(result.unresolved)
    routing = build_channel_routing(channel, result)
    click.echo(_dump([{"status": status.to_dict()}, routing.to_manifest()]), nl=False)
    if strict and not result.is_resolved:
        sys.exit(2)


@main.command("discover")
@click.argument("url")
@click.option("--timeout", default=None, type=float, help="Request timeout in seconds")
@click.pass_obj
def discover_cmd(config: OperatorConfig, url: str, timeout: Optional[float]) -> None:
    """Fetch a capability manifest from URL and print it."""

    async def _fetch():
        async with AgentClient(timeout=timeout or config.discovery.http_timeout) as client:
            return await client.fetch_manifest(url)

    try:
        manifest = asyncio.run(_fetch())
    except AgentOperatorError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(_dump([manifest.to_dict()]), nl=False)


@main.command("run")
@click.argument(
    "manifest_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--discover/--no-discover", default=False, help="Also run workload discovery")
@click.option("--timeout", default=30.0, type=float, help="Seconds to wait for convergence")
@click.pass_obj
def run_cmd(config: OperatorConfig, manifest_dir: Path, discover: bool, timeout: float) -> None:
    """Run the controllers against resources loaded from MANIFEST_DIR until idle."""
    try:
        resources = load_resources(manifest_dir)
    except AgentOperatorError as exc:
        raise click.ClickException(str(exc)) from exc

    config = config.model_copy(
        update={"discovery": config.discovery.model_copy(update={"enabled": discover})}
    )

    async def _run():
        store = InMemoryResourceStore()
        for resource in resources:
            await store.create_or_replace(resource)
        async with create_operator(store, config) as manager:
            await manager.wait_until_idle(timeout=timeout)
            failures = [
                record for c in manager.controllers.values() for record in c.failures.values()
            ]
        channels = await store.list(Channel)
        routings = {r.key[1:]: r for r in await store.list(ChannelRouting)}
        return channels, routings, failures

    try:
        channels, routings, failures = asyncio.run(_run())
    except TimeoutError as exc:
        raise click.ClickException(str(exc)) from exc

    documents = []
    for channel in channels:
        documents.append(channel.to_manifest())
        routing = routings.get(channel.key[1:])
        if routing is not None:
            documents.append(routing.to_manifest())
    click.echo(_dump(documents), nl=False)
    for record in failures:
        click.echo(f"failed: {record.key}: {record.error.get('message')}", err=True)
    if failures:
        sys.exit(1)


if __name__ == "__main__":  # pragma: no cover
    main()
