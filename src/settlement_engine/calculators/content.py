"""Attribution of project content output to contributors."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from settlement_engine.calculators.rate_resolver import to_amount
from settlement_engine.calculators.types import (
    ZERO,
    ContentDetail,
    Period,
    Project,
    WorkItem,
    Worker,
    round_to_cents,
)

SHARE_PRECISION = Decimal("0.01")

# Metric key fragment -> canonical content type
CONTENT_TYPE_ALIASES: tuple[tuple[str, str], ...] = (
    ("post", "Post"),
    ("reel", "Reels"),
    ("stor", "Stories"),
    ("carousel", "Carousel"),
    ("video", "Video"),
)


def normalize_content_type(metric_key: str) -> str:
    """Map a project metric key onto the content type used in rate tables."""
    key = metric_key.strip().lower()
    for fragment, content_type in CONTENT_TYPE_ALIASES:
        if fragment in key:
            return content_type
    return metric_key


@dataclass(frozen=True)
class ContentAttribution:
    """Content earnings attributed to one worker."""

    total: Decimal
    units: Decimal
    details: tuple[ContentDetail, ...]


def attribution_share(project: Project, worker_id: str) -> Decimal:
    """Fraction of a project's output credited to a worker (0..1)."""
    weights = {
        contributor: to_amount(weight)
        for contributor, weight in project.attribution_weights().items()
    }
    own = weights.get(worker_id, ZERO)
    total = sum(weights.values(), ZERO)
    if own <= 0 or total <= 0:
        return ZERO
    return own / total


def eligible_projects(
    worker: Worker,
    projects: Sequence[Project],
    completed_items: Iterable[WorkItem],
    period: Period,
) -> list[Project]:
    """Projects whose content counts towards the worker in this period.

    A project qualifies when the worker is a contributor and either the
    project's window overlaps the period or the worker completed a work
    item on it during the period. Work items pointing at projects that no
    longer exist are ignored.
    """
    worked_on = {item.project_id for item in completed_items if item.project_id}
    eligible = []
    for project in projects:
        if worker.id not in project.attribution_weights():
            continue
        in_window = (
            project.start_date is not None
            and project.end_date is not None
            and period.overlaps(project.start_date, project.end_date)
        )
        if in_window or project.id in worked_on:
            eligible.append(project)
    return sorted(eligible, key=lambda p: p.id)


def attribute_content(
    worker: Worker,
    projects: Sequence[Project],
    completed_items: Iterable[WorkItem],
    rates: dict[str, Decimal],
    period: Period,
) -> ContentAttribution:
    """Compute the worker's share of project content earnings."""
    details: list[ContentDetail] = []
    total = ZERO
    units = ZERO

    for project in eligible_projects(worker, projects, completed_items, period):
        share = attribution_share(project, worker.id)
        if share <= 0:
            continue

        for metric_key in sorted(project.content_metrics):
            fact = to_amount(project.content_metrics[metric_key].fact)
            if fact == 0:
                continue

            content_type = normalize_content_type(metric_key)
            rate = rates.get(content_type)
            if rate is None:
                continue

            attributed = fact * share
            subtotal = round_to_cents(attributed * rate)
            details.append(
                ContentDetail(
                    project_id=project.id,
                    project_name=project.name,
                    content_type=content_type,
                    quantity=fact,
                    attributed_quantity=attributed.quantize(Decimal("0.0001")),
                    rate=rate,
                    share_percentage=(share * 100).quantize(SHARE_PRECISION),
                    total=subtotal,
                )
            )
            total += subtotal
            units += attributed

    return ContentAttribution(total=total, units=units, details=tuple(details))
