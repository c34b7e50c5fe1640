"""Typer CLI for Compliance-Engine."""

from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="compliance", help="Compliance-Engine: delivery compliance verification")
console = Console()


def _load_registry():
    from compliance_engine.common.config import get_settings
    from compliance_engine.policy.registry import CheckDefinitionRegistry

    settings = get_settings()
    if settings.policy_file:
        return CheckDefinitionRegistry.from_file(settings.policy_file)
    return CheckDefinitionRegistry()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Compliance-Engine API server."""
    import uvicorn
    from compliance_engine.app import create_app

    console.print(f"[bold green]Starting Compliance-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def policies():
    """List policy scopes and the checks each one requires."""
    registry = _load_registry()

    table = Table(title="Policy scopes")
    table.add_column("Scope", style="bold")
    table.add_column("Checks")
    table.add_column("Min age", justify="right")
    table.add_column("Window")
    table.add_column("Limits")
    for name in registry.scopes():
        scope = registry.get_scope(name)
        s = scope.settings
        checks = ", ".join(
            d.check_type.value if d.blocks_delivery else f"{d.check_type.value} [dim](advisory)[/dim]"
            for d in scope.checks
        )
        table.add_row(
            name,
            checks,
            str(s.minimum_age),
            f"{s.delivery_start_time:%H:%M}-{s.delivery_end_time:%H:%M}",
            f"{s.max_thc_mg_per_order:g}mg THC / {s.max_weight_g_per_order:g}g",
        )
    console.print(table)


@dataclass
class _Row:
    check_type: str
    blocks_delivery: bool
    status: str


@app.command()
def evaluate(
    context_file: Path = typer.Argument(..., help="JSON file with the evaluation context"),
    scope: str = typer.Option("default", help="Policy scope to evaluate against"),
):
    """Evaluate a context offline against a scope (no DB, nothing recorded)."""
    from compliance_engine.checks import gate
    from compliance_engine.checks.payloads import EvaluationContext, build_check_data
    from compliance_engine.checks.states import CheckStatus
    from compliance_engine.common.exceptions import ComplianceError
    from compliance_engine.rules.evaluators import evaluate as run_rule, has_evaluator

    try:
        context = EvaluationContext.model_validate_json(context_file.read_text())
    except OSError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(2)
    except ValueError as e:
        console.print(f"[bold red]Invalid context:[/bold red] {e}")
        raise typer.Exit(2)

    try:
        registry = _load_registry()
        definitions = registry.required_checks(scope)
        policy = registry.get_policy(scope)
    except ComplianceError as e:
        console.print(f"[bold red]{e.code}[/bold red] — {e.message}")
        raise typer.Exit(2)

    table = Table(title=f"Scope: {scope}")
    table.add_column("Check", style="bold")
    table.add_column("Blocks")
    table.add_column("Result")
    table.add_column("Reason")

    rows = []
    for definition in definitions:
        payload = build_check_data(definition.check_type, policy, context)
        if has_evaluator(definition.check_type):
            verdict = run_rule(definition.check_type, payload)
            status = CheckStatus.PASSED if verdict.passed else CheckStatus.FAILED
            reason = verdict.reason or ""
        else:
            status = CheckStatus.PENDING
            reason = "Requires manual verification"
        rows.append(_Row(definition.check_type.value, definition.blocks_delivery, status.value))
        colour = {"passed": "green", "failed": "red"}.get(status.value, "yellow")
        table.add_row(
            definition.check_type.value,
            "yes" if definition.blocks_delivery else "no",
            f"[{colour}]{status.value}[/{colour}]",
            reason,
        )
    console.print(table)

    result = gate.evaluate(rows)
    if result.can_complete:
        console.print("[bold green]Delivery may complete[/bold green]")
    else:
        blocking = ", ".join(r.check_type for r in result.blocking_checks)
        console.print(f"[bold red]Blocked by:[/bold red] {blocking}")

    if any(r.status == CheckStatus.FAILED.value for r in rows):
        raise typer.Exit(1)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Compliance-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
