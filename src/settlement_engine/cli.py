"""Settlement Command Line Interface.

Provides tools for:
- Computing a period's settlements from a snapshot file
- Drilling into one worker's settlement
- Serving the HTTP API

Usage:
    python -m settlement_engine.cli compute --snapshot data.json --period 2024-03
    python -m settlement_engine.cli drill-down --snapshot data.json --period 2024-03 --worker-id w1
    python -m settlement_engine.cli serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal
from typing import Any, Callable

import uvicorn

from settlement_engine.calculators.types import ALL_ROLES, Period
from settlement_engine.config import get_settings
from settlement_engine.services.drill_down import DrillDown
from settlement_engine.services.settlement_service import SettlementPass, SettlementService
from settlement_engine.services.store import MemorySettlementStore
from settlement_engine.sources import load_snapshot_source


def parse_period(s: str) -> Period:
    """Parse a YYYY-MM period key."""
    try:
        return Period.parse(s)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class SettlementCli:
    """Settlement Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m settlement_engine.cli",
            description="Settlement computation tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # compute command
        compute = subparsers.add_parser(
            "compute",
            help="Compute settlements for a period",
        )
        compute.add_argument(
            "--snapshot",
            type=str,
            required=True,
            help="Path to a JSON snapshot of workers, work items, projects and rules",
        )
        compute.add_argument(
            "--period",
            type=parse_period,
            required=True,
            help="Period to compute (YYYY-MM)",
        )
        compute.add_argument(
            "--role",
            type=str,
            default=ALL_ROLES,
            help="Job title to filter by (default: all)",
        )
        compute.add_argument(
            "--json",
            action="store_true",
            help="Output as JSON",
        )

        # drill-down command
        drill = subparsers.add_parser(
            "drill-down",
            help="Show the itemized breakdown of one settlement",
        )
        drill.add_argument("--snapshot", type=str, required=True, help="Path to a JSON snapshot")
        drill.add_argument("--period", type=parse_period, required=True, help="Period (YYYY-MM)")
        drill.add_argument("--worker-id", type=str, required=True, help="Worker ID")
        drill.add_argument("--json", action="store_true", help="Output as JSON")

        # serve command
        serve = subparsers.add_parser(
            "serve",
            help="Run the HTTP API",
        )
        serve.add_argument("--host", type=str, help="Bind address (default: HOST)")
        serve.add_argument("--port", type=int, help="Port (default: PORT)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(
            level=get_settings().log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "compute": self._cmd_compute,
            "drill-down": self._cmd_drill_down,
            "serve": self._cmd_serve,
        }

        handler = handlers.get(parsed.command)
        if handler:
            return handler(parsed)

        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return 1

    def _service(self, snapshot_path: str) -> SettlementService:
        source = load_snapshot_source(snapshot_path)
        return SettlementService(source, MemorySettlementStore(), settings=get_settings())

    def _cmd_compute(self, args: argparse.Namespace) -> int:
        """Compute and print every settlement of a period."""
        service = self._service(args.snapshot)
        result = asyncio.run(self._compute(service, args.period, args.role))

        if args.json:
            print(json.dumps(self._pass_to_dict(result), indent=2, default=_json_default))
            return 0 if not result.failures else 2

        print(f"Settlements for {result.period_key} ({result.role_filter})")
        print("=" * 72)
        print(f"{'Worker':<24}{'Fixed':>12}{'KPI':>12}{'Total':>12}  Status")
        print("-" * 72)
        for row in result.rows:
            marker = " (unavailable)" if row.unavailable else ""
            print(
                f"{row.worker.name:<24}{row.record.fix_salary:>12}"
                f"{row.record.calculated_kpi:>12}{row.total:>12}  {row.record.status}{marker}"
            )
        print("-" * 72)
        print(f"{'Total':<48}{result.total:>12}")

        if result.failures:
            print(f"\n{len(result.failures)} worker(s) could not be computed:")
            for worker_id, error in result.failures.items():
                print(f"  - {worker_id}: {error}")
            return 2
        return 0

    async def _compute(self, service: SettlementService, period: Period, role: str) -> SettlementPass:
        try:
            return await service.select(period, role)
        finally:
            await service.close()

    def _cmd_drill_down(self, args: argparse.Namespace) -> int:
        """Print the itemized breakdown of one settlement."""
        service = self._service(args.snapshot)
        try:
            breakdown = asyncio.run(self._drill_down(service, args.worker_id, args.period))
        except LookupError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        if args.json:
            print(json.dumps(self._drill_down_to_dict(breakdown), indent=2, default=_json_default))
            return 0

        print(f"Drill-down for {breakdown.worker_id} in {breakdown.period_key}")
        print("\nTasks:")
        for task in breakdown.task_details:
            print(
                f"  {task.task_type:<20} {task.count:>3} items {task.hours:>8} h "
                f"x {task.rate:>8} = {task.total:>10}"
            )
        print(f"  {'Subtotal':<51}{breakdown.task_total:>10}")

        print("\nContent:")
        for item in breakdown.content_details:
            print(
                f"  {item.project_name:<16} {item.content_type:<10} "
                f"{item.attributed_quantity:>8} of {item.quantity:<6} ({item.share_percentage}%) "
                f"x {item.rate:>8} = {item.total:>10}"
            )
        print(f"  {'Subtotal':<51}{breakdown.content_total:>10}")

        print("\nBonuses:")
        for bonus in breakdown.bonus_details:
            mark = "met" if bonus.condition_met else "not met"
            print(f"  {bonus.rule_name:<28} {bonus.base_value:>10} {mark:<8} {bonus.reward_amount:>10}")
        print(f"  {'Subtotal':<51}{breakdown.bonus_total:>10}")

        print(f"\nKPI total: {breakdown.kpi_total}")
        for error in breakdown.errors:
            print(f"Error: {error}", file=sys.stderr)
        return 0

    async def _drill_down(self, service: SettlementService, worker_id: str, period: Period) -> DrillDown:
        workers = {w.id: w for w in await service.source.workers(ALL_ROLES)}
        worker = workers.get(worker_id)
        if worker is None:
            raise LookupError(f"Unknown worker: {worker_id}")
        return await service.drill_down(worker, period)

    def _cmd_serve(self, args: argparse.Namespace) -> int:
        """Run the HTTP API with uvicorn."""
        settings = get_settings()
        uvicorn.run(
            "settlement_engine.api.app:app",
            host=args.host or settings.HOST,
            port=args.port or settings.PORT,
            reload=settings.DEBUG,
        )
        return 0

    def _pass_to_dict(self, result: SettlementPass) -> dict[str, Any]:
        return {
            "period": result.period_key,
            "role": result.role_filter,
            "total": result.total,
            "failures": result.failures,
            "rows": [
                {
                    "worker_id": row.worker.id,
                    "worker_name": row.worker.name,
                    "fix_salary": row.record.fix_salary,
                    "calculated_kpi": row.record.calculated_kpi,
                    **row.record.manual_values(),
                    "total": row.total,
                    "status": row.record.status,
                    "unavailable": row.unavailable,
                }
                for row in result.rows
            ],
        }

    def _drill_down_to_dict(self, breakdown: DrillDown) -> dict[str, Any]:
        return {
            "worker_id": breakdown.worker_id,
            "period": breakdown.period_key,
            "tasks": [vars(d) for d in breakdown.task_details],
            "content": [vars(d) for d in breakdown.content_details],
            "bonuses": [vars(d) for d in breakdown.bonus_details],
            "kpi_total": breakdown.kpi_total,
            "errors": list(breakdown.errors),
        }


def main() -> int:
    """CLI entry point."""
    cli = SettlementCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
