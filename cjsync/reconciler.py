from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .images import sync_images
from .invalidator import JobInvalidator
from .matcher import Rule, default_rules, find_matches
from .models import ObjectKey
from .reporter import CRONJOBS_UPDATED, ERRORS, NORMAL, RECONCILES, WARNING, EventTarget, Reporter
from .store import NotFoundError, Store

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    key: ObjectKey
    found: bool = True
    matched: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted_jobs: list[str] = field(default_factory=list)

    @property
    def outcome(self) -> str:
        return "synced" if self.found else "skipped"


class Reconciler:
    """Brings the CronJobs related to one Deployment in line with its images.

    A pass stops at the first CronJob whose update or Job cleanup fails; CronJobs
    already written earlier in the pass stay written and are seen as in sync next time.
    """

    def __init__(self, store: Store, reporter: Reporter, rules: tuple[Rule, ...] | None = None):
        self.store = store
        self.reporter = reporter
        self.rules = default_rules() if rules is None else rules
        self.invalidator = JobInvalidator(store, reporter)

    def reconcile(self, key: ObjectKey) -> ReconcileResult:
        try:
            workload = self.store.get_deployment(key)
        except NotFoundError:
            logger.info("deployment %s not found, nothing to do", key)
            return ReconcileResult(key=key, found=False)

        logger.info("reconciling deployment %s", key)
        self.reporter.increment_counter(RECONCILES, workload.namespace, workload.name)
        result = ReconcileResult(key=key)

        cronjobs = find_matches(workload, self.store.list_cronjobs(workload.namespace), self.rules)
        result.matched = [cj.name for cj in cronjobs]

        for cj in cronjobs:
            containers, mutated = sync_images(workload.containers, cj.containers)
            if not mutated:
                logger.info("cronjob %s already up-to-date", cj.key)
                continue

            try:
                persisted = self.store.update_cronjob(cj.with_containers(containers))
            except Exception as e:
                logger.error("failed to update cronjob %s: %s", cj.key, e)
                self.reporter.increment_counter(ERRORS, workload.namespace, workload.name)
                self.reporter.record_event(
                    EventTarget.for_workload(workload),
                    WARNING,
                    "UpdateFailed",
                    f"failed to update CronJob {cj.name}: {e}",
                )
                raise
            self.reporter.increment_counter(CRONJOBS_UPDATED, cj.namespace, cj.name)
            self.reporter.record_event(
                EventTarget.for_cronjob(cj),
                NORMAL,
                "CronJobUpdated",
                f"Updated job template images from Deployment {workload.namespace}/{workload.name}",
            )
            result.updated.append(cj.name)

            # NOTE: a crash between the update above and the cleanup below leaves the old
            # Jobs in place; the next pass sees the template in sync and skips cleanup.
            try:
                deleted = self.invalidator.invalidate(persisted)
            except Exception as e:
                logger.error("failed to delete jobs for cronjob %s: %s", cj.key, e)
                self.reporter.increment_counter(ERRORS, workload.namespace, workload.name)
                self.reporter.record_event(
                    EventTarget.for_cronjob(cj),
                    WARNING,
                    "DeleteJobsFailed",
                    f"failed to delete Jobs for CronJob {cj.name}: {e}",
                )
                raise
            result.deleted_jobs.extend(j.name for j in deleted)
            logger.info("updated cronjob %s image and deleted %d related jobs", cj.key, len(deleted))

        return result
