#!/usr/bin/env python3
"""
Command Line Interface for FinQuery.
Ask questions about your expenses and investments from the terminal.

DESIGN PRINCIPLES:
- Show which provider answered (and when a fallback kicked in)
- Show the structured query before the numbers it produced
- Keep the session visible: metadata is only sent once per mode

MODES:
- Single question: python cli.py "How much did I spend on groceries?"
- Interactive (default): a prompt loop with /mode, /metadata, /reset, /quit
- Chat (--chat): free-text advice instead of structured queries
- Cards (-m cards): chat about your credit cards; --benefits looks a card up
"""
import sys
import argparse
import json
from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.syntax import Syntax
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from configs import ConfigurationError
from finquery import __version__
from finquery.models import Mode, QueryAnswer, QueryAnswerStatus
from finquery.orchestrator import ExhaustionError, FatalProviderError, FinanceAssistant, create_assistant
from finquery.utils import NotificationSink, setup_logging

console = Console()

MAX_ROWS = 20

NOTICE_STYLES = {
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


class ConsoleNotificationSink(NotificationSink):
    """Prints provider notifications inline, as they happen."""

    def notify(self, message: str, level: str = "info") -> None:
        style = NOTICE_STYLES.get(level, "white")
        console.print(f"  [{style}]{message}[/{style}]")


def print_header():
    """Print the application header."""
    header = f"""
╔═══════════════════════════════════════════════════════════════╗
║         💰 FinQuery v{__version__:<41}║
║         Natural-language questions over your finances         ║
╚═══════════════════════════════════════════════════════════════╝
    """
    console.print(header, style="bold blue")


def print_section(title: str, color: str = "cyan"):
    console.print(f"\n[bold {color}]{'═' * 70}[/bold {color}]")
    console.print(f"[bold {color}]{title}[/bold {color}]", justify="center")
    console.print(f"[bold {color}]{'═' * 70}[/bold {color}]\n")


# ============================================================
# RESULT RENDERING
# ============================================================

def _format_value(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:,.2f}"
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value:,}"
    if value is None:
        return ""
    return str(value)


def _records_table(records: List[Dict[str, Any]], title: str) -> Table:
    """Render a list of records, one column per key seen in the first rows."""
    columns: List[str] = []
    for record in records[:MAX_ROWS]:
        for key in record:
            if key not in columns:
                columns.append(key)

    table = Table(title=title, box=box.ROUNDED, show_lines=False)
    for column in columns:
        table.add_column(column, overflow="fold")
    for record in records[:MAX_ROWS]:
        table.add_row(*[_format_value(record.get(column)) for column in columns])
    return table


def print_query(answer: QueryAnswer):
    """
    Display the structured query the provider wrote.
    WHY: The filter is code; the user should see exactly what ran.
    """
    print_section("📝 STRUCTURED QUERY")

    query = answer.query
    info = Table.grid(padding=(0, 2))
    info.add_column(style="cyan", justify="right")
    info.add_column(style="white")
    info.add_row("Aggregation:", f"[bold]{query.aggregation.value}[/bold]")
    if query.aggregation_field:
        info.add_row("Field:", query.aggregation_field)
    if query.group_by:
        info.add_row("Group by:", query.group_by)
    console.print(info)

    if query.filter_expression:
        console.print()
        console.print(Syntax(query.filter_expression, "javascript", theme="monokai", line_numbers=False))
    else:
        console.print("  [dim]No filter (all records)[/dim]")


def print_result(answer: QueryAnswer):
    """Display an execution outcome according to its aggregation type."""
    outcome = answer.outcome
    print_section("⚡ RESULT", color="green")

    if not outcome.success:
        icon = "🚫" if outcome.blocked_pattern else "❌"
        console.print(Panel(
            f"{icon} {outcome.error}",
            border_style="red",
            title=f"[bold]{outcome.status.value.upper()}[/bold]",
            title_align="left",
        ))
        return

    result = outcome.result
    if result.type in ("sum", "average"):
        label = "Total" if result.type == "sum" else "Average"
        console.print(Panel(
            f"[bold green]{label} {result.field}: {_format_value(result.value)}[/bold green]\n"
            f"[dim]over {result.count} matching record(s)[/dim]",
            border_style="green",
            padding=(1, 2),
        ))
    elif result.type == "count":
        console.print(Panel(
            f"[bold green]{result.value} matching record(s)[/bold green]",
            border_style="green",
            padding=(1, 2),
        ))
    elif result.type == "group":
        table = Table(title=f"Grouped by {result.group_by}", box=box.ROUNDED)
        table.add_column("Group", style="cyan")
        table.add_column("Count", justify="right")
        table.add_column("Sum", justify="right", style="green")
        for key, bucket in result.groups.items():
            table.add_row(key, str(bucket.count), _format_value(bucket.sum))
        console.print(table)
        console.print(f"[dim]{result.count} matching record(s) in {len(result.groups)} group(s)[/dim]")
    else:
        if not result.data:
            console.print("[yellow]📭 No matching records[/yellow]")
        else:
            console.print(_records_table(result.data, f"{result.count} matching record(s)"))
            if result.count > MAX_ROWS:
                console.print(f"[dim]... {result.count - MAX_ROWS} more not shown[/dim]")

    if outcome.explanation:
        console.print(f"\n💬 {outcome.explanation}")


def print_answer(answer: QueryAnswer, verbose: bool = False):
    provider = (answer.provider or "unknown").upper()
    fallback = " [yellow](fallback)[/yellow]" if answer.fallback_used else ""
    metadata = "sent" if answer.metadata_included else "cached"
    console.print(f"[dim]Provider: {provider}{fallback} | metadata {metadata} | "
                  f"conversation {answer.conversation_id[:8]}[/dim]")

    if answer.status == QueryAnswerStatus.UNPARSED:
        console.print("[yellow]⚠️  The reply did not contain a structured query. Raw reply:[/yellow]")
        console.print(Panel(answer.raw_response, border_style="yellow", padding=(1, 2)))
        return

    print_query(answer)
    print_result(answer)

    if verbose:
        print_section("🔍 RAW REPLY", color="blue")
        console.print(answer.raw_response)


CHAT_ONLY_MODES = (Mode.GENERAL.value, Mode.CARDS.value)


def print_metadata(assistant: FinanceAssistant, mode: str):
    if mode in CHAT_ONLY_MODES:
        console.print(f"[yellow]{mode.capitalize()} mode has no metadata.[/yellow]")
        return
    metadata = assistant.metadata(mode)
    console.print(Syntax(json.dumps(metadata, indent=2, ensure_ascii=False), "json", theme="monokai"))


# ============================================================
# RUNNERS
# ============================================================

def ask(assistant: FinanceAssistant, question: str, mode: str, chat: bool, verbose: bool = False):
    """Run one question through the assistant and print the outcome."""
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True
        ) as progress:
            progress.add_task(description="Asking the provider chain...", total=None)
            if chat or mode in CHAT_ONLY_MODES:
                response = assistant.chat(question, mode)
            else:
                response = assistant.query(question, mode)

        if chat or mode in CHAT_ONLY_MODES:
            console.print(Panel(
                response.answer,
                border_style="green",
                padding=(1, 2),
                title=f"[bold]{(response.provider or 'unknown').upper()}[/bold]",
                title_align="left"
            ))
        else:
            print_answer(response, verbose=verbose)

    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        console.print("[dim]Set at least one provider key in .env (see .env.example).[/dim]")
    except ExhaustionError as e:
        console.print(f"\n[yellow]⚠️ {e}[/yellow]")
        console.print("[dim]Every provider tried was rate limited. Wait a moment and try again.[/dim]")
    except FatalProviderError as e:
        console.print(f"[bold red]Error from {e.provider}:[/bold red] {e}")


def lookup_benefits(assistant: FinanceAssistant, card_name: str):
    """Fetch a card's reward rules through the web-search providers."""
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True
        ) as progress:
            progress.add_task(description=f"Searching the web for {card_name}...", total=None)
            response = assistant.lookup_card_benefits(card_name)

        console.print(Panel(
            response.answer,
            border_style="magenta",
            padding=(1, 2),
            title=f"[bold]💳 {card_name} | {(response.provider or 'unknown').upper()}[/bold]",
            title_align="left"
        ))

    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
    except ExhaustionError as e:
        console.print(f"\n[yellow]⚠️ {e}[/yellow]")
    except FatalProviderError as e:
        console.print(f"[bold red]Error from {e.provider}:[/bold red] {e}")


def interactive_mode(assistant: FinanceAssistant, mode: str, chat: bool, verbose: bool = False):
    """
    Prompt loop.
    WHY: The session (and its cached metadata) lives as long as the loop.
    """
    print_header()
    console.print(f"[bold]Interactive Mode | {mode}{' (chat)' if chat else ''}[/bold]")
    console.print("[dim]Commands: /mode <general|expenses|investments|cards>, /chat, /benefits <card>, /metadata, /reset, /quit[/dim]\n")

    while True:
        try:
            console.print("[bold cyan]" + "─" * 70 + "[/bold cyan]")
            line = console.input(f"[bold yellow]{mode}> [/bold yellow]").strip()
        except (KeyboardInterrupt, EOFError):
            console.print("\n\n[bold green]Goodbye! 👋[/bold green]")
            break

        if not line:
            continue

        if line.lower() in ("/quit", "/exit", "exit", "quit", "q"):
            console.print("\n[bold green]Goodbye! 👋[/bold green]")
            break

        if line.startswith("/mode"):
            parts = line.split()
            if len(parts) != 2 or parts[1] not in [m.value for m in Mode]:
                console.print("[yellow]Usage: /mode general|expenses|investments|cards[/yellow]")
                continue
            mode = parts[1]
            console.print(f"[green]Mode set to {mode}[/green]")
            continue

        if line == "/chat":
            chat = not chat
            console.print(f"[green]Chat {'on' if chat else 'off'}[/green]")
            continue

        if line == "/metadata":
            print_metadata(assistant, mode)
            continue

        if line.startswith("/benefits"):
            card_name = line[len("/benefits"):].strip()
            if not card_name:
                console.print("[yellow]Usage: /benefits <card name>[/yellow]")
            else:
                lookup_benefits(assistant, card_name)
            continue

        if line == "/reset":
            assistant.reset_session()
            console.print("[green]Session reset; metadata will be sent with the next query.[/green]")
            continue

        ask(assistant, line, mode, chat, verbose=verbose)


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="FinQuery - natural-language questions over expenses and investments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py                                          # Interactive mode (expenses)
  python cli.py "How much did I spend on groceries?"     # Single question
  python cli.py -m investments "Total invested per type"
  python cli.py --chat "How can I cut my travel spend?"  # Free-text advice
  python cli.py -m expenses --metadata                   # Print the metadata descriptor
  python cli.py --benefits "HDFC Regalia Gold"             # Card rewards via web search
  python cli.py --providers groq,gemini "..."            # Override provider order
        """
    )

    parser.add_argument("question", nargs="?", help="Ask a single question and exit")
    parser.add_argument(
        "-m", "--mode",
        choices=[m.value for m in Mode],
        default=Mode.EXPENSES.value,
        help="Dataset to ask about (default: expenses)"
    )
    parser.add_argument("--chat", action="store_true", help="Free-text answer instead of a structured query")
    parser.add_argument("--data", type=str, help="Path to the finance JSON dataset")
    parser.add_argument("--providers", type=str, help="Comma-separated provider priority order")
    parser.add_argument("--metadata", action="store_true", help="Print the metadata descriptor for --mode and exit")
    parser.add_argument("--benefits", metavar="CARD", help="Look up a credit card's reward rules via web search and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and raw provider replies")

    args = parser.parse_args()
    setup_logging("DEBUG" if args.verbose else "WARNING")

    try:
        with create_assistant(dataset_path=args.data, notifier=ConsoleNotificationSink()) as assistant:
            if args.providers:
                assistant.settings.set_priority_order([p.strip() for p in args.providers.split(",") if p.strip()])

            if args.metadata:
                print_metadata(assistant, args.mode)
            elif args.benefits:
                print_header()
                lookup_benefits(assistant, args.benefits)
            elif args.question:
                print_header()
                ask(assistant, args.question, args.mode, args.chat, verbose=args.verbose)
            else:
                interactive_mode(assistant, args.mode, args.chat, verbose=args.verbose)

    except Exception as e:
        console.print(f"[bold red]Fatal error: {str(e)}[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
