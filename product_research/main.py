"""
Competitor Product Research - CLI Entry Point.
Client-side driver for the research pipeline using Click and Rich.
"""

import sys
import asyncio
import json
from functools import wraps
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.panel import Panel
from rich.table import Table

from product_research import __version__
from product_research.config.settings import get_settings, Settings
from product_research.extractors.copywriter import COPY_TONES, DEFAULT_TONE
from product_research.handlers.research_handler import ResearchHandler
from product_research.models.schemas import CompetitorReport
from product_research.pipeline.workflow import ResearchWorkflow
from product_research.utils.errors import AppError, PreconditionError
from product_research.utils.logger import setup_logging

# Initialize Rich Console
console = Console()

ANALYZE_RETRY_DELAY_SECONDS = 5.0

# =============================================================================
# Helper Functions
# =============================================================================

def async_command(f):
    """Decorator to run async click commands."""
    @wraps(f)
    def wrapper(*args, **kwargs):
        return asyncio.run(f(*args, **kwargs))
    return wrapper


def handle_errors(f):
    """Print pipeline errors and exit non-zero; precondition rejections exit with 2."""
    @wraps(f)
    async def wrapper(*args, **kwargs):
        try:
            return await f(*args, **kwargs)
        except PreconditionError as e:
            console.print(f"[bold yellow]Rejected ({e.code}):[/bold yellow] {e.message}")
            sys.exit(2)
        except AppError as e:
            console.print(f"[bold red]Error:[/bold red] {e.message}")
            sys.exit(1)
    return wrapper


def build_handler(settings: Settings) -> ResearchHandler:
    return ResearchHandler.from_settings(settings)


def _money(currency: str, amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    return f"{currency} {amount:,.2f}"


def print_report(report: CompetitorReport) -> None:
    """Render a finalized report as a competitor table plus findings."""
    summary = report.summary
    currency = summary.store_currency

    table = Table(title=f"Competitors ({summary.total_competitors})", header_style="bold magenta")
    table.add_column("Name")
    table.add_column("Seller")
    table.add_column("Price", justify="right")
    table.add_column("Original", justify="right")
    table.add_column("Conversion")
    table.add_column("Availability")

    for competitor in report.competitors:
        if competitor.converted_price is not None:
            price = _money(currency, competitor.converted_price)
            original = _money(currency, competitor.converted_original_price)
        else:
            price = _money(competitor.currency, competitor.current_price)
            original = _money(competitor.currency, competitor.original_price)
        table.add_row(
            competitor.name,
            competitor.seller_name or "-",
            price,
            original,
            str(competitor.conversion_status or "-"),
            competitor.availability or "-",
        )
    console.print(table)

    if summary.price_range_data:
        console.print(
            f"Lowest [green]{_money(currency, summary.lowest_price)}[/green]  "
            f"Average [cyan]{_money(currency, summary.avg_price)}[/cyan]  "
            f"Highest [red]{_money(currency, summary.highest_price)}[/red]"
        )
    if summary.common_features:
        console.print(f"Common features: {', '.join(summary.common_features)}")
    for finding in summary.key_findings:
        console.print(f"  • {finding}")

# =============================================================================
# CLI Group
# =============================================================================

@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', is_flag=True, help='Detailed logging')
def cli(verbose: bool):
    """Competitor Product Research"""
    setup_logging(level="DEBUG" if verbose else "WARNING", json_format=False)

# =============================================================================
# Commands
# =============================================================================

@cli.command()
@click.argument('subject_id')
@click.option('--force', is_flag=True, help='Ignore the cooldown since the last completed run')
@click.option('--max-competitors', type=int, default=None, help='Number of top results to analyze')
@async_command
@handle_errors
async def research(subject_id: str, force: bool, max_competitors: Optional[int]):
    """
    Run the whole pipeline for a subject without prompting.

    SUBJECT_ID: Catalog id of the product to research
    """
    console.print(Panel.fit(f"[bold blue]Competitor Research[/bold blue]\nSubject: [cyan]{subject_id}[/cyan]"))
    settings = get_settings()

    async with build_handler(settings) as handler:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console
        ) as progress:
            task = progress.add_task("[cyan]Running pipeline...", total=None)

            def update_progress(msg):
                progress.update(task, description=f"[cyan]{msg}")

            workflow = ResearchWorkflow(
                handler, max_competitors=max_competitors, progress_callback=update_progress
            )
            state = await workflow.run(subject_id, force_refresh=force)
            progress.update(task, completed=True, description="[green]Done")

    table = Table(title="Research Summary", show_header=False)
    table.add_row("Report ID", state.get("report_id", "-"))
    table.add_row("Status", state.get("status", "-"))
    table.add_row("Analyzed", str(state.get("analyzed", 0)))
    table.add_row("Skipped", str(state.get("skipped", 0)))
    console.print(table)

    for error in state.get("errors", []):
        console.print(f"[yellow]![/yellow] {error}")

    if state.get("status") == "resuming":
        console.print("[yellow]A report for this subject is already in progress.[/yellow]")
        return
    if state.get("status") != "complete":
        sys.exit(1)

    print_report(CompetitorReport.model_validate(state["result"]))
    console.print("[green]✓[/green] Research complete.")


@cli.command()
@click.argument('subject_id')
@click.option('--force', is_flag=True, help='Ignore the cooldown since the last completed run')
@async_command
@handle_errors
async def start(subject_id: str, force: bool):
    """Start research and list candidate competitor pages."""
    async with build_handler(get_settings()) as handler:
        started = await handler.start_research(subject_id, force_refresh=force)

    if started.resuming:
        console.print(
            f"[yellow]Resuming report[/yellow] [cyan]{started.report_id}[/cyan] "
            f"(status: {started.status})"
        )
        if not started.search_results:
            return

    table = Table(title=f"Results for {started.query}", header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("URL")
    table.add_column("Score", justify="right")
    for i, hit in enumerate(started.search_results, start=1):
        score = "-" if hit.score is None else f"{hit.score:.2f}"
        table.add_row(str(i), hit.title, hit.url, score)
    console.print(table)
    console.print(f"Report ID: [cyan]{started.report_id}[/cyan]")


@cli.command()
@click.argument('report_id')
@click.argument('urls', nargs=-1)
@click.option('--top', type=int, default=None, help='Select the top N search results')
@async_command
@handle_errors
async def confirm(report_id: str, urls: tuple[str, ...], top: Optional[int]):
    """
    Confirm the competitor URLs to extract.

    With no URLS, the top search results are selected.
    """
    settings = get_settings()
    async with build_handler(settings) as handler:
        selected = list(urls)
        if not selected:
            report = await handler.store.get(report_id)
            selected = [hit.url for hit in report.competitor_data][: top or settings.max_competitors]
        confirmed = await handler.confirm_urls(report_id, selected)

    console.print(f"[green]✓[/green] Extracted content from {confirmed.total_urls} pages")
    for url in confirmed.failed_urls:
        console.print(f"[yellow]![/yellow] No content: {url}")


@cli.command()
@click.argument('report_id')
@click.option('--index', 'url_index', type=int, default=None, help='Analyze a single page')
@click.option('--retry-delay', type=float, default=ANALYZE_RETRY_DELAY_SECONDS, help='Seconds before retrying a page')
@async_command
@handle_errors
async def analyze(report_id: str, url_index: Optional[int], retry_delay: float):
    """Analyze extracted pages one at a time."""
    async with build_handler(get_settings()) as handler:

        async def analyze_with_retry(i: int):
            response = await handler.analyze_url(report_id, i)
            if response.retryable:
                console.print(f"[yellow]Retrying page {i + 1}:[/yellow] {response.error}")
                await asyncio.sleep(retry_delay)
                response = await handler.analyze_url(report_id, i)
            return response

        if url_index is None:
            stored = await handler.store.get(report_id)
            indexes = range(len(stored.extracted_content))
        else:
            indexes = [url_index]

        for i in indexes:
            response = await analyze_with_retry(i)
            label = f"{response.progress.current}/{response.progress.total}"
            if response.error:
                console.print(f"[red]✗ {label}[/red] skipped: {response.error}")
            else:
                cached = " [dim](cached)[/dim]" if response.cached else ""
                console.print(f"[green]✓ {label}[/green] {response.profile.name}{cached}")


@cli.command()
@click.argument('report_id')
@async_command
@handle_errors
async def finalize(report_id: str):
    """Normalize prices, summarize and complete the report."""
    async with build_handler(get_settings()) as handler:
        finalized = await handler.finalize_report(report_id)
    print_report(finalized.report)
    console.print("[green]✓[/green] Report complete.")


@cli.command()
@click.argument('report_id')
@async_command
@handle_errors
async def cancel(report_id: str):
    """Cancel an in-progress report."""
    async with build_handler(get_settings()) as handler:
        result = await handler.cancel_report(report_id)
    console.print(f"Report [cyan]{report_id}[/cyan]: {result.status} ({result.message})")


@cli.command()
@click.argument('report_id')
@async_command
@handle_errors
async def status(report_id: str):
    """Show a report's status and progress message."""
    async with build_handler(get_settings()) as handler:
        result = await handler.get_status(report_id)
    console.print(f"[bold]{result.status}[/bold] {result.message}")


@cli.command()
@click.argument('report_id')
@click.option('--json', 'as_json', is_flag=True, help='Print the raw report as JSON')
@async_command
@handle_errors
async def report(report_id: str, as_json: bool):
    """Show a stored report."""
    async with build_handler(get_settings()) as handler:
        result = await handler.get_report(report_id)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    console.print(Panel.fit(
        f"Report [cyan]{result.report_id}[/cyan]\n"
        f"Subject: {result.subject_id}\nStatus: {result.status}\n"
        f"Created: {result.created.isoformat()}"
    ))
    if result.report is not None:
        print_report(result.report)
    if result.error_details.message:
        console.print(f"[red]Error:[/red] {result.error_details.message}")
    for url in result.error_details.failed_urls:
        console.print(f"[yellow]![/yellow] Failed: {url}")


@cli.command()
@click.argument('subject_id')
@click.option('--limit', default=10, help='Number of reports to show')
@async_command
@handle_errors
async def history(subject_id: str, limit: int):
    """List recent reports for a subject."""
    async with build_handler(get_settings()) as handler:
        reports = await handler.list_reports(subject_id, limit=limit)

    if not reports:
        console.print("[dim]No reports found.[/dim]")
        return

    table = Table(title=f"Reports for {subject_id}", header_style="bold magenta")
    table.add_column("Report ID")
    table.add_column("Status")
    table.add_column("Created")
    table.add_column("Competitors", justify="right")
    for item in reports:
        count = item.analysis_result.summary.total_competitors if item.analysis_result else 0
        table.add_row(item.id, str(item.status), item.created_at.strftime("%Y-%m-%d %H:%M"), str(count))
    console.print(table)


@cli.command()
@click.argument('report_id')
@async_command
@handle_errors
async def delete(report_id: str):
    """Delete a finished report."""
    async with build_handler(get_settings()) as handler:
        deleted = await handler.delete_report(report_id)
    if deleted:
        console.print(f"[green]✓[/green] Deleted {report_id}")
    else:
        console.print(f"[yellow]Report {report_id} was not found[/yellow]")


@cli.command()
@click.option('--days', type=int, default=None, help='Age threshold (defaults to REPORT_RETENTION_DAYS)')
@async_command
@handle_errors
async def prune(days: Optional[int]):
    """Delete finished reports older than the retention window."""
    async with build_handler(get_settings()) as handler:
        removed = await handler.prune_reports(days)
    console.print(f"[green]✓[/green] Removed {removed} reports")


@cli.command(name='copy')
@click.argument('report_id')
@click.option('--tone', type=click.Choice(COPY_TONES), default=DEFAULT_TONE, show_default=True, help='Writing style')
@click.option('--json', 'as_json', is_flag=True, help='Print the copy as JSON')
@async_command
@handle_errors
async def copy_command(report_id: str, tone: str, as_json: bool):
    """Generate listing copy from a complete report."""
    async with build_handler(get_settings()) as handler:
        result = await handler.generate_copy(report_id, tone)

    product_copy = result.product_copy
    if as_json:
        console.print_json(json.dumps(product_copy.to_dict()))
        return

    console.print(Panel(
        f"[bold]{product_copy.title}[/bold]\n\n{product_copy.short_description}",
        title=f"Product copy ({result.tone})",
    ))
    console.print(product_copy.full_description, markup=False)
    if product_copy.seo_keywords:
        console.print(f"Keywords: {', '.join(product_copy.seo_keywords)}")
    for advantage in product_copy.competitive_advantages:
        console.print(f"  • {advantage}")


@cli.group()
def bookmark():
    """Manage bookmarked competitor URLs for a subject."""


@bookmark.command(name='add')
@click.argument('subject_id')
@click.argument('url')
@async_command
@handle_errors
async def bookmark_add(subject_id: str, url: str):
    """Bookmark a competitor URL."""
    async with build_handler(get_settings()) as handler:
        result = await handler.add_bookmark(subject_id, url)
    console.print(f"[green]✓[/green] Bookmarked {result.url} ({len(result.bookmarks)} total)")


@bookmark.command(name='remove')
@click.argument('subject_id')
@click.argument('url')
@async_command
@handle_errors
async def bookmark_remove(subject_id: str, url: str):
    """Remove a bookmarked competitor URL."""
    async with build_handler(get_settings()) as handler:
        result = await handler.remove_bookmark(subject_id, url)
    console.print(f"[green]✓[/green] Removed {result.url} ({len(result.bookmarks)} left)")


@bookmark.command(name='list')
@click.argument('subject_id')
@async_command
@handle_errors
async def bookmark_list(subject_id: str):
    """List a subject's bookmarked competitor URLs."""
    async with build_handler(get_settings()) as handler:
        urls = await handler.list_bookmarks(subject_id)

    if not urls:
        console.print("[dim]No bookmarks.[/dim]")
        return
    for url in urls:
        console.print(url, markup=False)


if __name__ == "__main__":
    cli()
