# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Typer CLI application root."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from elderberry.core.constants import ServiceType, TaxiiVersion
from elderberry.core.exceptions import ElderberryError

app = typer.Typer(
    name="elderberry",
    help="TAXII 1.0/1.1 client: discover services, list collections and poll content",
    no_args_is_help=True,
)
console = Console(stderr=True)

UrlOption = Annotated[
    str | None,
    typer.Option("--url", "-u", help="Discovery service URL (default: ELDERBERRY_DISCOVERY_URL)"),
]
VersionOption = Annotated[
    TaxiiVersion | None,
    typer.Option("--taxii-version", help="TAXII version (default: ELDERBERRY_TAXII_VERSION)"),
]
ProxyOption = Annotated[
    bool,
    typer.Option("--proxy", help="Connect through the http(s).proxyHost/proxyPort proxy"),
]


def _template(url: str | None, version: TaxiiVersion | None, use_proxy: bool) -> Any:
    """Build a template for the requested TAXII version from settings."""
    from elderberry.connection import TaxiiConnection
    from elderberry.core.config import get_settings
    from elderberry.core.logging import setup_logging
    from elderberry.template import Taxii10Template, Taxii11Template

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)

    overrides: dict[str, Any] = {}
    if url:
        overrides["discovery_url"] = url
    if use_proxy:
        overrides["use_proxy"] = True
    if not (url or settings.discovery_url):
        console.print("[red]Error:[/red] no discovery URL, use --url or ELDERBERRY_DISCOVERY_URL")
        raise typer.Exit(2)

    conn = TaxiiConnection(settings.connection_settings(), **overrides)
    if (version or settings.taxii_version) == TaxiiVersion.V10:
        return Taxii10Template(conn)
    return Taxii11Template(conn)


def _management_service(template: Any, service_type: ServiceType) -> Any:
    discovery = template.discover()
    if discovery is None:
        console.print("[red]Error:[/red] discovery failed")
        raise typer.Exit(1)
    service = template.find_service(discovery.service_instances, service_type)
    if service is None:
        console.print(f"[red]Error:[/red] server does not offer a {service_type} service")
        raise typer.Exit(1)
    return service


@app.command()
def discover(
    url: UrlOption = None,
    taxii_version: VersionOption = None,
    proxy: ProxyOption = False,
) -> None:
    """List the services a TAXII server exposes."""
    from elderberry.cli.formatters.console import format_services

    try:
        template = _template(url, taxii_version, proxy)
        discovery = template.discover()
    except ElderberryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if discovery is None:
        console.print("[red]Error:[/red] discovery failed")
        raise typer.Exit(1)
    format_services(discovery)


@app.command()
def collections(
    url: UrlOption = None,
    proxy: ProxyOption = False,
) -> None:
    """List the collections of a TAXII 1.1 server."""
    from elderberry.cli.formatters.console import format_collections

    try:
        template = _template(url, TaxiiVersion.V11, proxy)
        service = _management_service(template, ServiceType.COLLECTION_MANAGEMENT)
        info = template.collection_information(service)
    except ElderberryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if info is None:
        console.print("[red]Error:[/red] collection information request failed")
        raise typer.Exit(1)
    format_collections(info.collection_informations, "collection_name", "TAXII Collections")


@app.command()
def feeds(
    url: UrlOption = None,
    proxy: ProxyOption = False,
) -> None:
    """List the feeds of a TAXII 1.0 server."""
    from elderberry.cli.formatters.console import format_collections

    try:
        template = _template(url, TaxiiVersion.V10, proxy)
        service = _management_service(template, ServiceType.FEED_MANAGEMENT)
        info = template.feed_information(service)
    except ElderberryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if info is None:
        console.print("[red]Error:[/red] feed information request failed")
        raise typer.Exit(1)
    format_collections(info.feed_informations, "feed_name", "TAXII Feeds")


@app.command()
def poll(
    name: Annotated[str, typer.Argument(help="Collection (1.1) or feed (1.0) name")],
    url: UrlOption = None,
    taxii_version: VersionOption = None,
    proxy: ProxyOption = False,
    subscription_id: Annotated[
        str, typer.Option("--subscription-id", "-s", help="Subscription ID")
    ] = "",
    hours: Annotated[
        float, typer.Option("--hours", help="Poll window ending now, in hours")
    ] = 24.0,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write content blocks to this file"),
    ] = None,
) -> None:
    """Poll a collection or feed for content over the last N hours."""
    from elderberry.cli.formatters.console import block_text, format_poll_response

    end = datetime.now(UTC)
    begin = end - timedelta(hours=hours)

    try:
        template = _template(url, taxii_version, proxy)
        if template.version == TaxiiVersion.V10:
            service = _management_service(template, ServiceType.FEED_MANAGEMENT)
            info = template.feed_information(service)
            records = info.feed_informations if info else []
            record = template.find_feed(records, name)
        else:
            service = _management_service(template, ServiceType.COLLECTION_MANAGEMENT)
            info = template.collection_information(service)
            records = info.collection_informations if info else []
            record = template.find_collection(records, name)

        if record is None:
            console.print(f"[red]Error:[/red] '{name}' not found")
            raise typer.Exit(1)

        result = template.poll(record, subscription_id, begin, end)
    except ElderberryError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if result is None:
        console.print("[red]Error:[/red] poll request failed")
        raise typer.Exit(1)

    if output:
        text = "\n".join(block_text(block) for block in result.content_blocks or [])
        output.write_text(text)
        typer.echo(f"Output written to {output}")
    else:
        format_poll_response(result)
