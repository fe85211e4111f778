from __future__ import annotations

from typing import Callable, Iterable

from .models import CronJobTemplate, Workload

MANAGED_BY_LABEL = "managed-by-deployment"
MANAGED_BY_ANNOTATION = "controller.example.com/managed-by-deployment"

Rule = Callable[[Workload, CronJobTemplate], bool]


def matches_by_label(workload: Workload, candidate: CronJobTemplate) -> bool:
    return candidate.labels.get(MANAGED_BY_LABEL) == workload.name


def matches_by_annotation(workload: Workload, candidate: CronJobTemplate) -> bool:
    return candidate.annotations.get(MANAGED_BY_ANNOTATION) == f"{workload.namespace}/{workload.name}"


def matches_by_image(workload: Workload, candidate: CronJobTemplate) -> bool:
    """Fallback heuristic: any image in common.

    Two unrelated objects built on the same base image will match as well.
    """
    return bool(workload.images() & candidate.images())


def default_rules(match_by_image: bool = True) -> tuple[Rule, ...]:
    rules: list[Rule] = [matches_by_label, matches_by_annotation]
    if match_by_image:
        rules.append(matches_by_image)
    return tuple(rules)


def is_related(workload: Workload, candidate: CronJobTemplate, rules: Iterable[Rule] | None = None) -> bool:
    rules = default_rules() if rules is None else rules
    return any(rule(workload, candidate) for rule in rules)


def find_matches(
    workload: Workload,
    candidates: Iterable[CronJobTemplate],
    rules: Iterable[Rule] | None = None,
) -> list[CronJobTemplate]:
    """Return the candidates related to ``workload``, in list order, each at most once."""
    rules = tuple(default_rules() if rules is None else rules)
    out: list[CronJobTemplate] = []
    seen: set[tuple[str, str, str]] = set()
    for cj in candidates:
        if cj.namespace != workload.namespace:
            continue
        ident = (cj.namespace, cj.name, cj.uid)
        if ident in seen:
            continue
        if is_related(workload, cj, rules):
            seen.add(ident)
            out.append(cj)
    return out
