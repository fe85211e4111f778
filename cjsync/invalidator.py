from __future__ import annotations

import logging

from .models import JOB_NAME_LABEL, CronJobTemplate, DerivedJob
from .reporter import JOBS_DELETED, NORMAL, EventTarget, Reporter
from .store import FOREGROUND, Store

logger = logging.getLogger(__name__)


class JobInvalidator:
    """Deletes the Jobs a CronJob has already spawned, and their pods.

    Ownership is an exact (kind, name, uid) match on the Job's owner references,
    so Jobs left behind by an earlier CronJob of the same name are not touched.
    """

    def __init__(self, store: Store, reporter: Reporter):
        self.store = store
        self.reporter = reporter

    def owned_jobs(self, template: CronJobTemplate) -> list[DerivedJob]:
        return [j for j in self.store.list_jobs(template.namespace) if j.is_owned_by(template)]

    def invalidate(self, template: CronJobTemplate) -> list[DerivedJob]:
        """Delete every Job owned by ``template``. Stops at the first store error."""
        deleted: list[DerivedJob] = []
        for job in self.owned_jobs(template):
            self.store.delete_job(job, propagation=FOREGROUND)
            # Pods the cascade has not collected yet would keep running the old image.
            self.store.delete_pods(template.namespace, f"{JOB_NAME_LABEL}={job.name}")

            self.reporter.increment_counter(JOBS_DELETED, template.namespace, template.name)
            self.reporter.record_event(
                EventTarget.for_cronjob(template),
                NORMAL,
                "JobDeleted",
                f"Deleted Job {job.name} and its Pods for CronJob {template.name} to allow new runs with updated image",
            )
            logger.info("deleted job %s/%s owned by cronjob %s", job.namespace, job.name, template.name)
            deleted.append(job)
        return deleted
