"""CLI entry point for the mergewarn command."""

from __future__ import annotations

import click
import yaml

from mergewarn.config import DIFF_MODES, WarnConfig, load_config, serialize_config
from mergewarn.errors import ConfigError, DiffError, SnapshotDecodeError, TransportError
from mergewarn.logging import setup_logging

_CONFIG_OPTION = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True),
    help="Path to mergewarn.yaml",
)


def _transport_options(f):
    f = click.option("--uri", default=None, help="Redis URI, e.g. redis://localhost:6379/0")(f)
    f = click.option("--redispw", default=None, help="Redis password")(f)
    return f


def _repo_options(f):
    f = click.option("--dir", "repo_dir", default=None, help="Repository to track")(f)
    f = click.option("--user", default=None, help="Participant identity (default: git user.name)")(
        f
    )
    f = click.option("--base", default=None, help="Base branch to diff against")(f)
    return f


def _normalize_uri(uri: str) -> str:
    """Accept the bare ``host:port`` form as well as a full URL."""
    if "://" in uri:
        return uri
    return f"redis://{uri}"


def _read_config(config_path: str | None) -> WarnConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _default_participant(cfg: WarnConfig) -> None:
    """Use the repository's ``git config user.name`` when no participant is set."""
    from mergewarn.git.diff import git_user_name

    if not cfg.participant and cfg.resolved_repo_dir.is_dir():
        cfg.participant = git_user_name(cfg.resolved_repo_dir)


def _load(config_path: str | None, **overrides) -> WarnConfig:
    """Load config, apply CLI overrides, fill in the participant, and validate."""
    cfg = _read_config(config_path)

    if overrides.get("uri"):
        cfg.transport.url = _normalize_uri(overrides["uri"])
    if overrides.get("redispw"):
        cfg.transport.password = overrides["redispw"]
    if overrides.get("repo_dir"):
        cfg.repo_dir = overrides["repo_dir"]
    if overrides.get("user"):
        cfg.participant = overrides["user"]
    if overrides.get("base"):
        cfg.base_branch = overrides["base"]
    if overrides.get("interval") is not None:
        cfg.poll_interval = overrides["interval"]
    if overrides.get("watch"):
        cfg.watch = True
    if overrides.get("diff_mode"):
        cfg.diff_mode = overrides["diff_mode"]
    if overrides.get("test_mode"):
        cfg.test_mode = True
    if overrides.get("match_branch"):
        cfg.match_branch = True

    _default_participant(cfg)
    errors = cfg.validate()
    if errors:
        click.echo(f"Found {len(errors)} config error(s):", err=True)
        for e in errors:
            click.echo(f"  x {e}", err=True)
        raise SystemExit(1)
    return cfg


def _open_store(cfg: WarnConfig):
    from mergewarn.sync.store import RedisStore

    store = RedisStore(cfg.transport)
    try:
        store.ping()
    except TransportError as exc:
        raise click.ClickException(
            f"Cannot connect to redis at {cfg.transport.url}. Make sure it is running. ({exc})"
        ) from exc
    return store


@click.group()
@click.option(
    "--log-level",
    default=None,
    envvar="MERGEWARN_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity",
)
@click.option(
    "--log-file", default=None, envvar="MERGEWARN_LOG_FILE", type=click.Path(), help="Log to file"
)
@click.version_option(package_name="mergewarn")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, log_file: str | None) -> None:
    """MergeWarn -- find out who else is editing your lines before you merge.

    \b
    Typical use, one per developer:
        mergewarn run --uri redis.example:6379 --user alice
    """
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_file"] = log_file
    # 'run' reconfigures once the config file's own settings are known
    setup_logging(level=log_level or "WARNING", log_file=log_file)


@main.command()
@_CONFIG_OPTION
@_transport_options
@_repo_options
@click.option("--interval", type=float, default=None, help="Seconds between diff polls")
@click.option("--watch", is_flag=True, help="Also rebuild on filesystem changes")
@click.option("--diff-mode", type=click.Choice(DIFF_MODES), default=None, help="What to diff")
@click.option("--test-mode", is_flag=True, help="Single-user mode: also compare against yourself")
@click.option("--match-branch", is_flag=True, help="Only compare with peers on the same branch")
@click.pass_context
def run(ctx: click.Context, config_path: str | None, **overrides) -> None:
    """Publish your edits and report conflicting lines until interrupted."""
    from mergewarn.agent import MergeWarnAgent

    cfg = _load(config_path, **overrides)
    setup_logging(
        level=ctx.obj.get("log_level") or cfg.log_level,
        log_file=ctx.obj.get("log_file") or cfg.log_file,
    )
    store = _open_store(cfg)

    click.echo("------------------------------", err=True)
    click.echo("MergeWarn listener starting...", err=True)
    click.echo("------------------------------", err=True)

    agent = MergeWarnAgent(cfg, store)
    try:
        agent.run()
    except TransportError as exc:
        raise click.ClickException(f"Lost connection to {cfg.transport.url}: {exc}") from exc


@main.command()
@_CONFIG_OPTION
@_transport_options
@_repo_options
@click.option("--test-mode", is_flag=True, help="Also compare against your own stored edit-set")
@click.option("--match-branch", is_flag=True, help="Only compare with peers on the same branch")
@click.option("--exit-code", is_flag=True, help="Exit with status 2 when conflicts exist")
def check(config_path: str | None, exit_code: bool, **overrides) -> None:
    """Evaluate once against the shared state and print one record."""
    from mergewarn.agent import MergeWarnAgent

    cfg = _load(config_path, **overrides)
    store = _open_store(cfg)
    agent = MergeWarnAgent(cfg, store)
    try:
        records = agent.compute_conflicts()
    except (DiffError, TransportError) as exc:
        raise click.ClickException(str(exc)) from exc
    agent.reporter.report(records)
    if exit_code and records:
        raise SystemExit(2)


@main.command()
@_CONFIG_OPTION
@_transport_options
def status(config_path: str | None, uri: str | None, redispw: str | None) -> None:
    """List every participant's published edit-set."""
    from mergewarn.sync.editset import decode

    cfg = _read_config(config_path)
    if uri:
        cfg.transport.url = _normalize_uri(uri)
    if redispw:
        cfg.transport.password = redispw
    store = _open_store(cfg)
    try:
        shared = store.get_all()
    except TransportError as exc:
        raise click.ClickException(str(exc)) from exc

    if not shared:
        click.echo("No edit-sets published yet.")
        return
    for key in sorted(shared):
        try:
            es = decode(key, shared[key])
        except SnapshotDecodeError:
            click.echo(f"  {key:<20} (unreadable)")
            continue
        lines = sum(len(v) for v in es.entries.values())
        click.echo(
            f"  {key:<20} {es.branch or '-':<20} {len(es.entries)} file(s), {lines} line(s)"
        )


@main.command()
@_CONFIG_OPTION
def validate(config_path: str | None) -> None:
    """Validate the mergewarn.yaml configuration."""
    try:
        cfg = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"  x {exc}", err=True)
        raise SystemExit(1)
    _default_participant(cfg)
    errors = cfg.validate()
    if errors:
        click.echo(f"Found {len(errors)} error(s):", err=True)
        for e in errors:
            click.echo(f"  x {e}", err=True)
        raise SystemExit(1)
    click.echo(f"Config OK: {cfg.participant} -> {cfg.transport.url} (base {cfg.base_branch})")


@main.command("config")
@_CONFIG_OPTION
def show_config(config_path: str | None) -> None:
    """Print the effective configuration as YAML."""
    cfg = _read_config(config_path)
    data = serialize_config(cfg)
    if "password" in data["transport"]:
        data["transport"]["password"] = "***"
    click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False), nl=False)
