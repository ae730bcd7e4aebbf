"""Interactive CLI for browsing a GoCardless merchant account.

Lists customers, payments, mandates and events, shows their details and
runs a few common actions. Uses rich for output and questionary for
interactive prompts.
"""

from typing import Any, Callable, List, Optional
import os
import sys
import argparse
import logging

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.table import Table
from rich import box
import questionary

from .client import GoCardlessClient
from .config import ClientConfig, Environment, load_dotenv
from .errors import GoCardlessError
from .mock_client import MockGoCardlessClient
from .models import ApiModel, Customer, Event, Mandate, Payment

__all__ = ["CLI", "main"]

PAGE_SIZE = 20


def format_amount(amount: Optional[int], currency: Optional[str]) -> str:
    """Format an amount in minor units, e.g. ``2500, "GBP"`` -> ``25.00 GBP``."""
    if amount is None:
        return "N/A"
    return f"{amount / 100:,.2f} {currency or ''}".strip()


def _status_style(status: Optional[str]) -> str:
    if status in ("paid_out", "confirmed", "active", "paid"):
        return f"[green]{status}[/green]"
    if status in ("failed", "cancelled", "charged_back", "expired", "disabled"):
        return f"[red]{status}[/red]"
    return f"[yellow]{status or 'unknown'}[/yellow]"


class CLI:
    """Interactive CLI for browsing a GoCardless merchant account."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        environment: Optional[str] = None,
        mock: bool = False,
        env_file: Optional[str] = None,
    ):
        self.console = Console()
        self.mock = mock

        if env_file:
            load_dotenv(env_file)

        self.access_token = access_token or os.getenv("GOCARDLESS_ACCESS_TOKEN")
        self.environment = environment or os.getenv("GOCARDLESS_ENVIRONMENT")
        self._init_client()

    def _init_client(self) -> None:
        """Initialize the GoCardless client (real or mock)."""
        if self.mock:
            self.console.print("[dim]Using mock client[/dim]")
            self.client: GoCardlessClient = MockGoCardlessClient()
            return

        if not self.access_token:
            self.console.print(
                "[red]Error: An access token is required[/red]\n"
                "Set the GOCARDLESS_ACCESS_TOKEN environment variable\n"
                "or pass the --access-token argument."
            )
            sys.exit(1)
        config = ClientConfig.from_env(
            access_token=self.access_token,
            environment=self.environment.lower() if self.environment else None,
        )
        self.client = GoCardlessClient(config=config)

    def _print_header(self, title: str) -> None:
        """Print a styled header."""
        self.console.print()
        self.console.print(
            Panel(
                Text(title, style="bold"),
                box=box.ROUNDED,
                border_style="blue",
            )
        )
        self.console.print()

    def _print_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def _print_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def _print_info(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def _details_table(self, rows: List[tuple]) -> Table:
        table = Table(box=box.ROUNDED, show_header=False, border_style="blue")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        for name, value in rows:
            table.add_row(name, "N/A" if value in (None, "") else str(value))
        return table

    def run(self) -> None:
        """Main entry point for the interactive CLI."""
        title = "GoCardless Payments"
        if self.mock:
            title += " (mock)"
        elif self.client.config.environment is Environment.SANDBOX:
            title += " (sandbox)"
        self._print_header(title)

        while True:
            action = questionary.select(
                "What would you like to do?",
                choices=[
                    questionary.Choice("List customers", value="customers"),
                    questionary.Choice("List payments", value="payments"),
                    questionary.Choice("List mandates", value="mandates"),
                    questionary.Choice("Recent events", value="events"),
                    questionary.Choice("Exit", value="exit"),
                ],
                pointer=">",
            ).ask()

            if action is None or action == "exit":
                self.console.print("\n[dim]Goodbye![/dim]")
                break

            try:
                if action == "customers":
                    self.list_customers_interactive()
                elif action == "payments":
                    self.list_payments_interactive()
                elif action == "mandates":
                    self.list_mandates_interactive()
                elif action == "events":
                    self.list_events()
            except KeyboardInterrupt:
                self.console.print("\n[dim]Cancelled[/dim]")
                continue
            except GoCardlessError as e:
                self._print_error(f"Error: {e}")
                continue

            self.console.print()
            continue_choice = questionary.select(
                "What next?",
                choices=[
                    questionary.Choice("Continue", value="continue"),
                    questionary.Choice("Exit", value="exit"),
                ],
                default="continue",
                pointer=">",
            ).ask()

            if continue_choice == "exit":
                self.console.print("\n[dim]Goodbye![/dim]")
                break

    def _pick(
        self,
        prompt: str,
        items: List[ApiModel],
        describe: Callable[[Any], str],
    ) -> Optional[ApiModel]:
        choices = [questionary.Choice(describe(item), value=item) for item in items]
        choices.append(questionary.Choice("← Back", value=None))
        return questionary.select(prompt, choices=choices, pointer=">").ask()

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def list_customers_interactive(self) -> None:
        """List customers and show the details of the selected one."""
        self._print_header("Customers")
        page = self.client.customers.list({"limit": PAGE_SIZE})
        if not page.items:
            self._print_info("No customers found.")
            return

        selected = self._pick(
            "Select a customer:",
            page.items,
            lambda c: f"{c.display_name} <{c.email or 'no-email'}> ({c.id})",
        )
        if selected is None:
            return
        self._show_customer(selected)

    def _show_customer(self, customer: Customer) -> None:
        self.console.print()
        self.console.print(
            self._details_table(
                [
                    ("ID", customer.id),
                    ("Name", customer.display_name),
                    ("Email", customer.email),
                    ("Country", customer.country_code),
                    ("Language", customer.language),
                    ("Created", customer.created_at),
                ]
            )
        )
        mandates = self.client.mandates.list({"customer": customer.id})
        if mandates.items:
            self._mandates_table(mandates.items)
        else:
            self._print_info("No mandates for this customer.")

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def list_payments_interactive(self) -> None:
        """List payments and offer actions on the selected one."""
        self._print_header("Payments")
        page = self.client.payments.list({"limit": PAGE_SIZE})
        if not page.items:
            self._print_info("No payments found.")
            return

        table = Table(box=box.ROUNDED, border_style="green")
        table.add_column("ID", style="cyan")
        table.add_column("Charge date")
        table.add_column("Amount", justify="right")
        table.add_column("Status")
        table.add_column("Description")
        for payment in page.items:
            table.add_row(
                payment.id,
                str(payment.charge_date or ""),
                format_amount(payment.amount, payment.currency),
                _status_style(payment.status),
                payment.description or "",
            )
        self.console.print(table)
        self.console.print()

        selected = self._pick(
            "Select a payment:",
            page.items,
            lambda p: f"{p.id} - {format_amount(p.amount, p.currency)} [{p.status}]",
        )
        if selected is None:
            return
        self._show_payment_menu(selected)

    def _show_payment_menu(self, payment: Payment) -> None:
        self.console.print()
        self.console.print(
            self._details_table(
                [
                    ("ID", payment.id),
                    ("Amount", format_amount(payment.amount, payment.currency)),
                    (
                        "Refunded",
                        format_amount(payment.amount_refunded, payment.currency),
                    ),
                    ("Charge date", payment.charge_date),
                    ("Status", payment.status),
                    ("Reference", payment.reference),
                    ("Mandate", payment.links.get("mandate")),
                ]
            )
        )
        self.console.print()

        choices = []
        if payment.status in ("pending_submission", "pending_customer_approval"):
            choices.append(questionary.Choice("Cancel payment", value="cancel"))
        if payment.status == "failed":
            choices.append(questionary.Choice("Retry payment", value="retry"))
        choices.append(questionary.Choice("← Back", value="back"))

        action = questionary.select(
            "Choose an action:",
            choices=choices,
            pointer=">",
        ).ask()

        if action in ("cancel", "retry"):
            self._run_action(self.client.payments, action, payment.id)

    # ------------------------------------------------------------------
    # Mandates
    # ------------------------------------------------------------------

    def _mandates_table(self, mandates: List[Mandate]) -> None:
        table = Table(title="Mandates", box=box.ROUNDED, border_style="green")
        table.add_column("ID", style="cyan")
        table.add_column("Reference")
        table.add_column("Scheme")
        table.add_column("Status")
        for mandate in mandates:
            table.add_row(
                mandate.id,
                mandate.reference or "",
                mandate.scheme or "",
                _status_style(mandate.status),
            )
        self.console.print(table)

    def list_mandates_interactive(self) -> None:
        """List mandates and offer actions on the selected one."""
        self._print_header("Mandates")
        page = self.client.mandates.list({"limit": PAGE_SIZE})
        if not page.items:
            self._print_info("No mandates found.")
            return

        self._mandates_table(page.items)
        self.console.print()
        selected = self._pick(
            "Select a mandate:",
            page.items,
            lambda m: f"{m.id} - {m.reference or 'no-ref'} [{m.status}]",
        )
        if selected is None:
            return

        choices = []
        if selected.status == "cancelled":
            choices.append(questionary.Choice("Reinstate mandate", value="reinstate"))
        else:
            choices.append(questionary.Choice("Cancel mandate", value="cancel"))
        choices.append(questionary.Choice("← Back", value="back"))

        action = questionary.select(
            "Choose an action:",
            choices=choices,
            pointer=">",
        ).ask()
        if action in ("cancel", "reinstate"):
            self._run_action(self.client.mandates, action, selected.id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def list_events(self) -> None:
        """Show the most recent events."""
        self._print_header("Recent Events")
        page = self.client.events.list({"limit": PAGE_SIZE})
        if not page.items:
            self._print_info("No events found.")
            return
        self._events_table(page.items)

    def _events_table(self, events: List[Event]) -> None:
        table = Table(box=box.ROUNDED, border_style="green")
        table.add_column("Created", style="dim")
        table.add_column("Resource")
        table.add_column("Action", style="cyan")
        table.add_column("Cause")
        table.add_column("Description")
        for event in events:
            created = event.created_at.strftime("%Y-%m-%d %H:%M") if event.created_at else ""
            linked = ", ".join(event.links.values()) if event.links else ""
            table.add_row(
                created,
                f"{event.resource_type} {linked}".strip(),
                event.action or "",
                event.details.get("cause", ""),
                event.details.get("description", ""),
            )
        self.console.print(table)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _run_action(self, service: Any, action: str, identity: str) -> None:
        """Confirm, then run a resource action such as cancelling a payment."""
        if self.mock:
            self._print_info("Mock mode: changes are only kept in memory")

        confirm = questionary.confirm(
            f"Are you sure you want to {action} {identity}?",
            default=False,
        ).ask()

        if not confirm:
            self._print_info(f"{action.capitalize()} cancelled")
            return

        try:
            result = service.action(action, identity)
            self._print_success(f"{identity} is now {result.status}")
        except GoCardlessError as e:
            self._print_error(f"Could not {action} {identity}: {e}")


def main():
    """Entry point for the interactive CLI."""
    parser = argparse.ArgumentParser(
        description="Interactive CLI for the GoCardless payments API",
    )
    parser.add_argument(
        "--access-token",
        default=os.getenv("GOCARDLESS_ACCESS_TOKEN"),
        help="API access token (defaults to env var GOCARDLESS_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--environment",
        choices=[e.value for e in Environment],
        default=None,
        help="API environment (defaults to env var GOCARDLESS_ENVIRONMENT, then live)",
    )
    parser.add_argument(
        "--sandbox",
        action="store_const",
        const=Environment.SANDBOX.value,
        dest="environment",
        help="Shortcut for --environment sandbox",
    )
    parser.add_argument(
        "--mock",
        action="store_true",
        help="Use mock client with demo data (no network access)",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file to load environment variables from",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log requests and retries to stderr",
    )

    args = parser.parse_args()
    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )

    cli = CLI(
        access_token=args.access_token,
        environment=args.environment,
        mock=args.mock,
        env_file=args.env_file,
    )
    cli.run()


if __name__ == "__main__":
    main()
