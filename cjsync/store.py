from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Protocol

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.config.config_exception import ConfigException

from .models import (
    CronJobTemplate,
    DerivedJob,
    ObjectKey,
    Workload,
    apply_images_to_cronjob,
    job_from_api,
    template_from_cronjob,
    workload_from_deployment,
)

logger = logging.getLogger(__name__)

FOREGROUND = "Foreground"
BACKGROUND = "Background"
ORPHAN = "Orphan"
PROPAGATION_POLICIES = {FOREGROUND, BACKGROUND, ORPHAN}


class StoreError(Exception):
    """Any failure talking to the cluster store."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    pass


class ConflictError(StoreError):
    """The object changed since it was read (stale resourceVersion)."""


class Store(Protocol):
    def get_deployment(self, key: ObjectKey) -> Workload: ...

    def list_cronjobs(self, namespace: str) -> list[CronJobTemplate]: ...

    def list_jobs(self, namespace: str) -> list[DerivedJob]: ...

    def update_cronjob(self, template: CronJobTemplate) -> CronJobTemplate: ...

    def delete_job(self, job: DerivedJob, propagation: str = FOREGROUND) -> None: ...

    def delete_pods(self, namespace: str, label_selector: str) -> None: ...


@contextmanager
def translate_api_errors(action: str) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        msg = f"{action} failed: HTTP {e.status} {e.reason}"
        if e.status == 404:
            raise NotFoundError(msg, status=e.status) from e
        if e.status == 409:
            raise ConflictError(msg, status=e.status) from e
        raise StoreError(msg, status=e.status) from e


def load_kube_config(mode: str = "auto") -> None:
    """Load credentials: in-cluster service account, kubeconfig, or whichever works."""
    if mode == "true":
        config.load_incluster_config()
        return
    if mode == "false":
        config.load_kube_config()
        return
    try:
        config.load_incluster_config()
    except ConfigException:
        config.load_kube_config()


class KubeStore:
    """Store backed by the Kubernetes API."""

    def __init__(
        self,
        apps_api: client.AppsV1Api | None = None,
        batch_api: client.BatchV1Api | None = None,
        core_api: client.CoreV1Api | None = None,
    ):
        self.apps_api = apps_api or client.AppsV1Api()
        self.batch_api = batch_api or client.BatchV1Api()
        self.core_api = core_api or client.CoreV1Api()

    def get_deployment(self, key: ObjectKey) -> Workload:
        with translate_api_errors(f"get deployment {key}"):
            obj = self.apps_api.read_namespaced_deployment(name=key.name, namespace=key.namespace)
        return workload_from_deployment(obj)

    def list_cronjobs(self, namespace: str) -> list[CronJobTemplate]:
        with translate_api_errors(f"list cronjobs in {namespace}"):
            res = self.batch_api.list_namespaced_cron_job(namespace=namespace)
        return [template_from_cronjob(x) for x in (res.items or [])]

    def list_jobs(self, namespace: str) -> list[DerivedJob]:
        with translate_api_errors(f"list jobs in {namespace}"):
            res = self.batch_api.list_namespaced_job(namespace=namespace)
        return [job_from_api(x) for x in (res.items or [])]

    def update_cronjob(self, template: CronJobTemplate) -> CronJobTemplate:
        if template.raw is None:
            raise StoreError(f"CronJob {template.key} was not read from the API; cannot replace it.")
        # The raw object still carries the resourceVersion it was read with, so the
        # API server rejects the replace with 409 if someone else wrote in between.
        body = apply_images_to_cronjob(template.raw, template.containers)
        with translate_api_errors(f"update cronjob {template.key}"):
            obj = self.batch_api.replace_namespaced_cron_job(
                name=template.name, namespace=template.namespace, body=body
            )
        return template_from_cronjob(obj)

    def delete_job(self, job: DerivedJob, propagation: str = FOREGROUND) -> None:
        if propagation not in PROPAGATION_POLICIES:
            raise ValueError(f"Unknown propagation policy {propagation!r}.")
        with translate_api_errors(f"delete job {job.namespace}/{job.name}"):
            self.batch_api.delete_namespaced_job(
                name=job.name,
                namespace=job.namespace,
                body=client.V1DeleteOptions(propagation_policy=propagation),
            )

    def delete_pods(self, namespace: str, label_selector: str) -> None:
        with translate_api_errors(f"delete pods {label_selector} in {namespace}"):
            self.core_api.delete_collection_namespaced_pod(namespace=namespace, label_selector=label_selector)
