from dataclasses import replace

import pytest

from cjsync import db
from cjsync.models import CRONJOB_KIND, Container, CronJobTemplate, DerivedJob, ObjectKey, OwnerRef, Workload
from cjsync.reporter import RecordingReporter
from cjsync.settings import settings
from cjsync.store import ConflictError, NotFoundError


def make_workload(name="web", *containers, namespace="default", uid=None):
    return Workload(
        namespace=namespace,
        name=name,
        containers=tuple(Container(n, i) for n, i in containers),
        uid=uid or f"uid-{name}",
    )


def make_cronjob(name="report", *containers, namespace="default", uid=None, labels=None, annotations=None, resource_version="1"):
    return CronJobTemplate(
        namespace=namespace,
        name=name,
        uid=uid or f"uid-{name}",
        resource_version=resource_version,
        labels=labels or {},
        annotations=annotations or {},
        containers=tuple(Container(n, i) for n, i in containers),
    )


def make_job(name, owner=None, namespace="default", owner_kind=CRONJOB_KIND, owner_uid=None):
    refs = ()
    if owner is not None:
        refs = (OwnerRef(kind=owner_kind, name=owner.name, uid=owner_uid or owner.uid),)
    return DerivedJob(namespace=namespace, name=name, owner_refs=refs, labels={"job-name": name})


class FakeStore:
    """In-memory store with the same error contract as KubeStore."""

    def __init__(self, deployments=(), cronjobs=(), jobs=(), pods=()):
        self.deployments = {ObjectKey(d.namespace, d.name): d for d in deployments}
        self.cronjobs = list(cronjobs)
        self.jobs = list(jobs)
        # (namespace, pod name, labels)
        self.pods = list(pods)
        self.updates = []
        self.job_deletes = []
        self.pod_deletes = []
        self.fail = {}

    def _maybe_fail(self, op):
        exc = self.fail.get(op)
        if exc is not None:
            raise exc

    def get_deployment(self, key):
        self._maybe_fail("get")
        try:
            return self.deployments[key]
        except KeyError:
            raise NotFoundError(f"deployment {key} not found", status=404)

    def list_cronjobs(self, namespace):
        self._maybe_fail("list_cronjobs")
        return [cj for cj in self.cronjobs if cj.namespace == namespace]

    def list_jobs(self, namespace):
        self._maybe_fail("list_jobs")
        return [j for j in self.jobs if j.namespace == namespace]

    def update_cronjob(self, template):
        self._maybe_fail("update")
        for i, current in enumerate(self.cronjobs):
            if current.key == template.key:
                if current.resource_version != template.resource_version:
                    raise ConflictError(f"cronjob {template.key} was modified", status=409)
                stored = replace(template, resource_version=str(int(current.resource_version or "0") + 1))
                self.cronjobs[i] = stored
                self.updates.append(stored)
                return stored
        raise NotFoundError(f"cronjob {template.key} not found", status=404)

    def delete_job(self, job, propagation="Foreground"):
        self._maybe_fail("delete_job")
        self.jobs = [j for j in self.jobs if not (j.namespace == job.namespace and j.name == job.name)]
        self.job_deletes.append((job.name, propagation))

    def delete_pods(self, namespace, label_selector):
        self._maybe_fail("delete_pods")
        key, _, value = label_selector.partition("=")
        self.pods = [p for p in self.pods if not (p[0] == namespace and p[2].get(key) == value)]
        self.pod_deletes.append((namespace, label_selector))

    def cronjob(self, name, namespace="default"):
        return next(cj for cj in self.cronjobs if cj.namespace == namespace and cj.name == name)


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def ledger(tmp_path, monkeypatch):
    """Point the sqlite ledger at a throwaway file."""
    monkeypatch.setattr(db, "settings", replace(settings, db_path=str(tmp_path / "ledger.db")))
    db.init_db()
    return db
