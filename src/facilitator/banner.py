"""
Startup banner listing endpoints and per-network settlement readiness
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.config import FacilitatorConfig
from src.payments.processor import PaymentProcessor

console = Console()

ENDPOINTS = [
    ("GET", "/health", "Health check"),
    ("GET", "/supported", "List supported networks"),
    ("POST", "/verify", "Verify a payment signature"),
    ("POST", "/settle", "Settle a payment"),
    ("GET", "/discovery/resources", "Bazaar discovery (list APIs)"),
    ("GET", "/discovery/stats", "Discovery stats"),
]


def _shorten(address: str) -> str:
    return f"{address[:10]}...{address[-8:]}"


def render_banner(config: FacilitatorConfig, processor: PaymentProcessor) -> Panel:
    endpoints = Table(show_header=True, header_style="bold magenta", box=None)
    endpoints.add_column("Method")
    endpoints.add_column("Path")
    endpoints.add_column("Description")
    for method, path, description in ENDPOINTS:
        endpoints.add_row(method, path, description)

    networks = Table(show_header=True, header_style="bold magenta", box=None)
    networks.add_column("Family")
    networks.add_column("Signer")
    networks.add_column("Status")
    for family, signers in processor.supported().signers.items():
        if signers:
            networks.add_row(family, _shorten(signers[0]), "[green]Ready[/green]")
        else:
            networks.add_row(family, "-", "[yellow]Verify only[/yellow]")

    body = Table.grid(padding=(1, 0))
    body.add_row(f"Server: [cyan]http://localhost:{config.port}[/cyan]")
    body.add_row(endpoints)
    body.add_row(networks)
    return Panel(body, title="x402 Facilitator", expand=False)


def print_banner(config: FacilitatorConfig, processor: PaymentProcessor) -> None:
    console.print(render_banner(config, processor))
