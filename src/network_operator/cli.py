"""Virtual network operator CLI (netop).

Usage:
    netop run                 # Run the resync loop until interrupted
    netop reconcile KEY       # Run a single reconcile pass for one manifest
    netop delete KEY          # Tear down the network of one manifest
    netop status [KEY]        # Show persisted status records
"""

from __future__ import annotations

import asyncio
import logging
import sys

import click
import yaml

from .cloud import azure_client_factory
from .config import Config, ConfigurationError
from .controller import Controller
from .main import main as operator_main
from .main import setup_logging
from .reconciler import NetworkReconciler
from .security import SecretlessViolationError
from .store import FileSpecStore, SpecStoreError


def load_config() -> Config:
    """Load configuration, turning validation errors into CLI errors."""
    try:
        return Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def echo_status(key: str, record: dict[str, str]) -> None:
    click.echo(yaml.safe_dump({key: record}, sort_keys=False).rstrip())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Reconcile declared virtual networks against Azure."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@cli.command()
def run() -> None:
    """Run the operator until SIGTERM/SIGINT."""
    sys.exit(asyncio.run(operator_main()))


@cli.command()
@click.argument("key")
def reconcile(key: str) -> None:
    """Run one reconcile pass for KEY and print the resulting status."""
    config = load_config()
    store = FileSpecStore(config.specs_dir, config.status_dir)
    try:
        controller = Controller(config, store, azure_client_factory(config))
    except SecretlessViolationError as e:
        raise click.ClickException(str(e)) from e

    try:
        result = asyncio.run(controller.reconcile_key(key))
    finally:
        controller.close()

    if result.outcome is not None:
        echo_status(key, result.outcome.status.to_record())
    elif result.skipped:
        echo_status(key, store.load_status(key).to_record())
    if not result.success:
        error = result.error or (result.outcome.error if result.outcome else None)
        raise click.ClickException(f"Reconcile failed: {error}")


@cli.command()
@click.argument("key")
@click.confirmation_option(prompt="Delete the virtual network and its subnet?")
def delete(key: str) -> None:
    """Delete the subnet and virtual network recorded for KEY.

    Marks the manifest with ``deletionRequested: true`` so the resync loop
    does not create the network again.
    """
    config = load_config()
    store = FileSpecStore(config.specs_dir, config.status_dir)
    try:
        spec, status = store.get_spec_and_status(key)
        factory = azure_client_factory(config)
    except (SpecStoreError, SecretlessViolationError) as e:
        raise click.ClickException(str(e)) from e

    reconciler = NetworkReconciler(
        factory(spec.region),
        checkpoint=lambda progress: store.update_status(key, progress),
    )
    try:
        # Recorded first so the resync loop finishes a teardown that fails here
        store.request_deletion(key)
        outcome = reconciler.delete(status)
        store.update_status(key, outcome.status)
    except SpecStoreError as e:
        raise click.ClickException(str(e)) from e

    echo_status(key, outcome.status.to_record())
    if outcome.error is not None:
        raise click.ClickException(f"Delete failed: {outcome.error}")


@cli.command()
@click.argument("key", required=False)
def status(key: str | None) -> None:
    """Show the persisted status of KEY, or of every manifest."""
    config = load_config()
    store = FileSpecStore(config.specs_dir, config.status_dir)
    keys = [key] if key else store.list_keys()
    if not keys:
        click.echo("No manifests found")
        return

    try:
        for k in keys:
            echo_status(k, store.load_status(k).to_record())
    except SpecStoreError as e:
        raise click.ClickException(str(e)) from e


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
