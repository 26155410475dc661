# changeportal/app/main.py
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import click

from .. import __version__
from ..adapters.http_client import StoreSession
from ..adapters.object_rest import ObjectRestAdapter
from ..adapters.storage_local import StorageLocal
from ..adapters.store_client import StoreClient
from ..domain.entities import ANNOUNCEMENT, CHANGE, ManagedObject
from ..domain.ports import UseCaseError
from ..domain.settings import PortalSettings
from ..domain.status_display import (
    category_label,
    modification_label,
    status_icon,
    status_label,
)
from ..domain.time_utils import format_timestamp
from ..usecases.action_coordinator import (
    ActionCoordinator,
    ActionHooks,
    SideEffectDetected,
    SideEffectTimedOut,
    TransitionFailed,
    TransitionSucceeded,
)
from ..usecases.consistency_watcher import WatchOptions
from ..usecases.error_mapping import AUTH_REQUIRED, map_store_error
from ..usecases.list_objects import ListManagedObjects
from ..utils import logging as logging_utils

_log = logging.getLogger(__name__)

API_KEY_ENV = "PORTAL_API_KEY"


@dataclass
class Portal:
    """Wired collaborators for one session."""

    settings: PortalSettings
    client: StoreClient
    store: ObjectRestAdapter
    coordinator: ActionCoordinator
    list_objects: ListManagedObjects


def build_portal(
    settings: PortalSettings,
    *,
    hooks: Optional[ActionHooks] = None,
    session: Optional[StoreSession] = None,
) -> Portal:
    """Wire StoreClient -> ObjectRestAdapter -> ActionCoordinator from settings."""
    client = StoreClient(
        settings.base_url,
        session=session,
        api_key=settings.api_key or None,
        request_timeout_s=settings.request_timeout_s,
        cache_ttl_s=settings.cache_ttl_s,
        max_retries=settings.max_retries,
        retry_base_s=settings.retry_base_s,
    )
    store = ObjectRestAdapter(client)
    coordinator = ActionCoordinator(
        store,
        actor_id=settings.actor_id,
        hooks=hooks,
        watch_options=WatchOptions(
            initial_interval_s=settings.watch_initial_interval_s,
            later_interval_s=settings.watch_later_interval_s,
            transition_after_s=settings.watch_transition_after_s,
            max_duration_s=settings.watch_max_duration_s,
        ),
    )
    return Portal(
        settings=settings,
        client=client,
        store=store,
        coordinator=coordinator,
        list_objects=ListManagedObjects(store),
    )


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

def _kind_label(obj: ManagedObject) -> str:
    if obj.kind == ANNOUNCEMENT:
        return f"announcement/{category_label(obj.category)}"
    return "change"


def _echo_summary(obj: ManagedObject) -> None:
    customers = ", ".join(obj.customers) or "-"
    click.echo(
        f"{status_icon(obj.status)} {obj.id:<24} {status_label(obj.status):<10} "
        f"{_kind_label(obj):<28} {customers}  {obj.title}"
    )


def _echo_details(obj: ManagedObject) -> None:
    _echo_summary(obj)
    if obj.join_url:
        click.echo(f"  Meeting: {obj.join_url}")
    elif obj.include_meeting:
        click.echo("  Meeting: requested")
    for entry in obj.modifications:
        click.echo(
            f"  {format_timestamp(entry.timestamp)}  {modification_label(entry.type):<18} {entry.actor_id}"
        )


def _echo_error(error: UseCaseError) -> None:
    click.echo(f"Error [{error.code}]: {error.message}", err=True)
    if error.code == AUTH_REQUIRED:
        click.echo("Sign in again through the portal and retry.", err=True)


def _console_hooks() -> ActionHooks:
    def succeeded(event: TransitionSucceeded) -> None:
        click.echo(
            f"{event.obj.kind} {event.obj.id}: {status_label(event.previous_status)} -> "
            f"{status_label(event.obj.status)}"
        )
        if event.watching:
            click.echo("Watching for meeting details...")

    def failed(event: TransitionFailed) -> None:
        _echo_error(UseCaseError(event.code, event.message))

    def detected(event: SideEffectDetected) -> None:
        click.echo(f"Meeting scheduled for {event.object_id}: {event.obj.join_url}")

    def timed_out(event: SideEffectTimedOut) -> None:
        click.echo(
            f"No meeting details for {event.object_id} after {event.elapsed_s:.0f}s; "
            "they may still arrive later."
        )

    return ActionHooks(
        on_succeeded=succeeded,
        on_failed=failed,
        on_side_effect_detected=detected,
        on_side_effect_timed_out=timed_out,
    )


# ---------------------------------------------------------------------------
# Async command bodies
# ---------------------------------------------------------------------------

async def _list(settings: PortalSettings, customer, status, object_type, refresh) -> int:
    portal = build_portal(settings)
    try:
        result = await portal.list_objects(
            customer=customer, status=status, object_type=object_type, skip_cache=refresh
        )
    except UseCaseError as exc:
        _echo_error(exc)
        return 1
    for obj in result.objects:
        _echo_summary(obj)
    for kind, message in result.failures.items():
        click.echo(f"Could not load {kind}s: {message}", err=True)
    return 0 if not result.failures else 1


async def _show(settings: PortalSettings, kind: str, object_id: str) -> int:
    portal = build_portal(settings)
    try:
        obj = await portal.store.get_object(kind, object_id, skip_cache=True)
    except Exception as exc:
        _echo_error(map_store_error(exc, default_code="LOAD_FAILED"))
        return 1
    _echo_details(obj)
    actions = portal.coordinator.workflow.available_actions(obj.kind, obj.status)
    click.echo(f"  Actions: {', '.join(actions) or '-'}")
    return 0


async def _transition(
    settings: PortalSettings,
    kind: str,
    object_id: str,
    action: str,
    *,
    reason: Optional[str] = None,
    watch: bool = True,
) -> int:
    portal = build_portal(settings, hooks=_console_hooks())
    try:
        obj = await portal.store.get_object(kind, object_id, skip_cache=True)
    except Exception as exc:
        _echo_error(map_store_error(exc, default_code="LOAD_FAILED"))
        return 1

    payload = {"reason": reason} if reason else {}
    outcome = await portal.coordinator.perform(obj, action, **payload)
    if isinstance(outcome, TransitionFailed):
        return 1
    if outcome.watching:
        if watch:
            await portal.coordinator.wait_for_watch(obj.id)
        else:
            portal.coordinator.cancel_all_watches()
    return 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

_KIND = click.Choice([CHANGE, ANNOUNCEMENT])


@click.group()
@click.option("--settings-dir", default=".", type=click.Path(file_okay=False),
              help="Directory holding portal_settings.json")
@click.option("--base-url", default=None, help="Portal origin, e.g. https://portal.example.com")
@click.option("--actor", default=None, help="User id recorded in audit entries")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__, prog_name="changeportal")
@click.pass_context
def cli(ctx: click.Context, settings_dir: str, base_url, actor, verbose: bool) -> None:
    """Submit, approve, and track changes and announcements."""
    logging_utils.configure_root(verbose=verbose)
    storage = StorageLocal(settings_dir)
    try:
        settings = storage.load_settings(
            base_url=base_url,
            actor_id=actor,
            api_key=os.getenv(API_KEY_ENV),
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    ctx.obj = {"settings": settings, "storage": storage}


@cli.command("config")
@click.option("--save", is_flag=True, help="Persist the effective settings")
@click.pass_context
def config_cmd(ctx: click.Context, save: bool) -> None:
    """Show (and optionally save) the effective settings."""
    settings: PortalSettings = ctx.obj["settings"]
    for key, value in settings.to_dict().items():
        if key == "api_key":
            value = "***" if value else ""
        click.echo(f"{key} = {value}")
    if save:
        ctx.obj["storage"].save_settings(settings)
        click.echo(f"Saved to {ctx.obj['storage'].settings_path}")


@cli.command("list")
@click.option("--customer", default=None, help="Only objects targeting this customer code")
@click.option("--status", default=None, help="Status filter (pending = submitted)")
@click.option("--type", "object_type", default=None, help="object_type filter, e.g. 'announcement_*'")
@click.option("--refresh", is_flag=True, help="Bypass the read cache")
@click.pass_context
def list_cmd(ctx: click.Context, customer, status, object_type, refresh: bool) -> None:
    """List changes and announcements, newest first."""
    code = asyncio.run(_list(ctx.obj["settings"], customer, status, object_type, refresh))
    ctx.exit(code)


@cli.command()
@click.argument("kind", type=_KIND)
@click.argument("object_id")
@click.pass_context
def show(ctx: click.Context, kind: str, object_id: str) -> None:
    """Show one object with its audit trail."""
    ctx.exit(asyncio.run(_show(ctx.obj["settings"], kind, object_id)))


def _transition_command(action: str, help_text: str):
    @click.argument("kind", type=_KIND)
    @click.argument("object_id")
    @click.option("--watch/--no-watch", default=True,
                  help="Wait for the meeting to be scheduled after approval")
    @click.pass_context
    def command(ctx: click.Context, kind: str, object_id: str, watch: bool) -> None:
        ctx.exit(asyncio.run(_transition(ctx.obj["settings"], kind, object_id, action, watch=watch)))

    command.__doc__ = help_text
    return cli.command(action)(command)


submit = _transition_command("submit", "Submit a draft for approval.")
approve = _transition_command("approve", "Approve a submitted object.")
complete = _transition_command("complete", "Mark an approved object as completed.")


@cli.command()
@click.argument("kind", type=_KIND)
@click.argument("object_id")
@click.option("--reason", required=True, help="Cancellation reason recorded in the audit trail")
@click.pass_context
def cancel(ctx: click.Context, kind: str, object_id: str, reason: str) -> None:
    """Cancel an object that is not yet completed."""
    ctx.exit(asyncio.run(_transition(ctx.obj["settings"], kind, object_id, "cancel", reason=reason)))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
