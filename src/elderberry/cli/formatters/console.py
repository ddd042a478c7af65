# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Rich console output for TAXII responses."""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.table import Table

console = Console()

_CONTENT_PREVIEW = 80


def block_text(block: Any) -> str:
    """Content of a block as text; XML content comes back as bytes."""
    content = block.content
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    return str(content)


def _polling_addresses(record: Any) -> str:
    instances = getattr(record, "polling_service_instances", None) or []
    return "\n".join(p.poll_address for p in instances)


def format_services(discovery: Any) -> None:
    """Print the service instances of a discovery response."""
    table = Table(title="TAXII Services")
    table.add_column("Type", style="bold")
    table.add_column("Address")
    table.add_column("Protocol", style="dim")
    table.add_column("Available")

    for service in discovery.service_instances:
        available = "" if service.available is None else ("yes" if service.available else "no")
        table.add_row(
            service.service_type,
            service.service_address,
            service.protocol_binding,
            available,
        )
    console.print(table)


def format_collections(records: list[Any], name_attr: str, title: str) -> None:
    """Print collection (1.1) or feed (1.0) records."""
    table = Table(title=title)
    table.add_column("Name", style="bold")
    table.add_column("Description")
    table.add_column("Polling Services", style="dim")

    for record in records:
        table.add_row(
            getattr(record, name_attr),
            getattr(record, f"{name_attr.split('_')[0]}_description", "") or "",
            _polling_addresses(record),
        )
    console.print(table)


def format_poll_response(poll: Any) -> None:
    """Print a summary of the content blocks in a poll response."""
    blocks = poll.content_blocks or []
    console.print(f"[bold]{len(blocks)}[/bold] content block(s)")
    if not blocks:
        return

    table = Table()
    table.add_column("#", justify="right", style="dim")
    table.add_column("Binding")
    table.add_column("Timestamp")
    table.add_column("Content")

    for index, block in enumerate(blocks, start=1):
        binding = getattr(block.content_binding, "binding_id", block.content_binding)
        timestamp = block.timestamp_label.isoformat() if block.timestamp_label else ""
        content = block_text(block)
        if len(content) > _CONTENT_PREVIEW:
            content = content[:_CONTENT_PREVIEW] + "..."
        table.add_row(str(index), str(binding), timestamp, content)
    console.print(table)
