import asyncio
import argparse
import csv
import datetime
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from logic import Journey, JourneyFinder, Leg, SearchOptions
from providers import CACHE_FILE, DEFAULT_TIMEOUT_SECONDS, CachedProvider, DbRestProvider
from stations import get_station_name, load_station_graph

console = Console()


def setup_logging(debug: bool = False, debug_log: Optional[str] = None):
    """Routes log records to the console, and to a file when requested."""
    console_handler = RichHandler(console=console, show_path=False, markup=False)
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    handlers: List[logging.Handler] = [console_handler]
    if debug_log:
        file_handler = logging.FileHandler(debug_log, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        handlers.append(file_handler)
    logging.basicConfig(
        level=logging.DEBUG if (debug or debug_log) else logging.WARNING,
        format="%(message)s",
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def format_time(value: Optional[str]) -> str:
    """Formats an ISO timestamp as HH:MM, leaving anything unparsable as is."""
    if not value:
        return "?"
    try:
        return datetime.datetime.fromisoformat(value).strftime("%H:%M")
    except ValueError:
        return value


def describe_leg(leg: Leg) -> str:
    dep = format_time(leg.planned_departure or leg.departure)
    arr = format_time(leg.planned_arrival or leg.arrival)
    if leg.walking:
        line = "walk"
    else:
        line = (leg.line.name if leg.line else None) or "?"
    return (
        f"{dep} [bold]{get_station_name(leg.origin.id)}[/bold] -> "
        f"{arr} [bold]{get_station_name(leg.destination.id)}[/bold] ({line})"
    )


def sort_journeys(journeys: List[Journey]) -> List[Journey]:
    """Cheapest first; journeys without a price go last."""
    return sorted(
        journeys,
        key=lambda j: (
            j.price_amount is None,
            j.price_amount or 0.0,
            (j.legs[0].planned_departure or j.legs[0].departure or "") if j.legs else "",
        ),
    )


def export_results(journeys: List[Journey], path: str):
    """Exports results to JSON or CSV."""
    if path.endswith(".json"):
        with open(path, "w", encoding="utf-8") as f:
            json.dump([j.model_dump(by_alias=True, mode="json") for j in journeys], f, indent=2)
        console.print(f"[bold green]Exported to {path}[/bold green]")
    elif path.endswith(".csv"):
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow([
                "Option",
                "Price",
                "Old Price",
                "Saving",
                "Part",
                "Leg #",
                "Leg Origin",
                "Leg Destination",
                "Departure",
                "Arrival",
                "Line",
            ])
            for i, journey in enumerate(journeys):
                parts = [("connection", journey.legs)]
                if journey.trick:
                    parts = [("prepend", journey.trick.prepend), *parts, ("append", journey.trick.append)]
                leg_index = 0
                for part, legs in parts:
                    for leg in legs:
                        leg_index += 1
                        writer.writerow([
                            i + 1,
                            journey.price_amount if journey.price_amount is not None else "",
                            journey.trick.old_price if journey.trick else "",
                            journey.saving if journey.saving is not None else "",
                            part,
                            leg_index,
                            leg.origin.id or "",
                            leg.destination.id or "",
                            leg.planned_departure or leg.departure or "",
                            leg.planned_arrival or leg.arrival or "",
                            leg.line.name if leg.line and leg.line.name else "",
                        ])
        console.print(f"[bold green]Exported to {path}[/bold green]")
    else:
        console.print(f"[bold red]Unsupported export format: {path}[/bold red]")


async def async_main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="RailDetour CLI: cheaper train fares through longer bookings")
    parser.add_argument("--origin", default="8011160", help="Origin station (EVA number)")
    parser.add_argument("--destination", default="8000261", help="Destination station (EVA number)")
    parser.add_argument("--departure", help="Departure date/time, ISO format (default: now)")
    parser.add_argument("--arrival", help="Arrival date/time, ISO format")
    parser.add_argument("--results", type=int, help="Number of journeys per search")
    parser.add_argument("--transfers", type=int, help="Maximum number of transfers")
    parser.add_argument("--transfer-time", type=int, help="Minimum time for a single transfer in minutes")
    parser.add_argument("--accessibility", choices=["none", "partial", "complete"], help="Accessibility requirement")
    parser.add_argument("--bike", action="store_true", help="Only bike-friendly journeys")
    parser.add_argument("--exclude-products", nargs="+", help="Products to leave out (e.g. nationalExpress bus)")
    parser.add_argument("--language", help="Language of the results")
    parser.add_argument("--api-url", help="Base URL of the journeys API (default: $RAIL_DETOUR_API_URL or db-rest)")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS, help="Per-request timeout in seconds")
    parser.add_argument("--cache", action="store_true", help="Cache search responses in SQLite")
    parser.add_argument("--cache-file", default=CACHE_FILE, help="SQLite cache path")
    parser.add_argument("--station-graph", help="JSON adjacency list replacing the bundled station graph")
    parser.add_argument("--export", help="Export path (e.g. results.json or results.csv)")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logs")
    parser.add_argument("--debug-log", help="Optional path to write debug logs")

    args = parser.parse_args(argv)
    setup_logging(args.debug, args.debug_log)

    try:
        options = SearchOptions(
            departure=args.departure,
            arrival=args.arrival,
            results=args.results,
            transfers=args.transfers,
            transfer_time=args.transfer_time,
            accessibility=args.accessibility,
            bike=args.bike,
            products={p: False for p in args.exclude_products} if args.exclude_products else None,
            language=args.language,
        )
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] invalid search options\n{e}")
        return 2

    station_graph = None
    if args.station_graph:
        try:
            station_graph = load_station_graph(args.station_graph)
        except (OSError, ValueError) as e:
            console.print(f"[bold red]Error:[/bold red] could not load station graph: {e}")
            return 2

    console.print(
        Panel.fit(
            f"[bold blue]RailDetour CLI[/bold blue]\n"
            f"From: {get_station_name(args.origin)} ({args.origin})\n"
            f"To: {get_station_name(args.destination)} ({args.destination})\n"
            f"Departure: {args.departure or 'now'} | Arrival: {args.arrival or '-'}\n"
            f"Excluded products: {', '.join(args.exclude_products) if args.exclude_products else 'None'}\n"
            f"Cache: {args.cache_file if args.cache else 'Off'}",
            title="Search Configuration",
            border_style="magenta",
        )
    )

    provider = DbRestProvider(base_url=args.api_url, timeout_seconds=args.timeout)
    if args.cache:
        provider = CachedProvider(provider, cache_file=args.cache_file)

    async with provider:
        finder = JourneyFinder(provider, station_graph=station_graph)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("[cyan]Searching original and extended connections...", total=None)
            journeys = await finder.find_journeys(args.origin, args.destination, options)

    journeys = sort_journeys(journeys)
    if not journeys:
        console.print("[yellow]No journeys found with current filters.[/yellow]")
        if args.export:
            export_results([], args.export)
        return 0

    table = Table(title=f"{len(journeys)} Journeys", show_lines=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Price", justify="right", style="bold green")
    table.add_column("Connection")
    table.add_column("Book As")

    for i, journey in enumerate(journeys):
        details = "\n".join(f"* {describe_leg(leg)}" for leg in journey.legs)
        currency = (journey.price.currency if journey.price else None) or "EUR"
        price_display = f"{journey.price_amount:.2f} {currency}"
        book_as = "[dim]as searched[/dim]"
        if journey.trick:
            price_display = (
                f"[bold yellow]{price_display}[/bold yellow]\n"
                f"[strike]{journey.trick.old_price:.2f}[/strike] (-{journey.saving:.2f})"
            )
            extension = []
            if journey.trick.prepend:
                extension.append(f"Board at [bold]{get_station_name(journey.trick.prepend[0].origin.id)}[/bold]")
            if journey.trick.append:
                extension.append(f"Ticket to [bold]{get_station_name(journey.trick.append[-1].destination.id)}[/bold]")
            book_as = "\n".join(extension)
        table.add_row(str(i + 1), price_display, details, book_as)

    console.print(table)

    if args.export:
        export_results(journeys, args.export)
    return 0


def main():
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Interrupted by user. Exiting...[/bold yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
