from __future__ import annotations

import logging
from collections import Counter as _Tally
from dataclasses import dataclass
from datetime import datetime, timezone

from kubernetes import client
from kubernetes.client import ApiException
from prometheus_client import CollectorRegistry, Counter
from urllib3.exceptions import HTTPError

from . import db
from .alerts import send_event_alert
from .models import CRONJOB_KIND, CronJobTemplate, Workload

logger = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"

RECONCILES = "reconciles"
CRONJOBS_UPDATED = "cronjobs_updated"
JOBS_DELETED = "jobs_deleted"
ERRORS = "errors"

_API_VERSIONS = {"Deployment": "apps/v1", CRONJOB_KIND: "batch/v1", "Job": "batch/v1"}

_METRIC_NAMES = {
    RECONCILES: ("cronjob_image_sync_reconciles", ("namespace", "deployment")),
    CRONJOBS_UPDATED: ("cronjob_image_sync_cronjobs_updated", ("namespace", "cronjob")),
    JOBS_DELETED: ("cronjob_image_sync_jobs_deleted", ("namespace", "cronjob")),
    ERRORS: ("cronjob_image_sync_errors", ("namespace", "deployment")),
}
_METRIC_HELP = {
    RECONCILES: "Total number of reconciles for deployments",
    CRONJOBS_UPDATED: "Total number of cronjobs updated",
    JOBS_DELETED: "Total number of jobs deleted by the controller",
    ERRORS: "Total number of errors during reconcile",
}


@dataclass(frozen=True)
class EventTarget:
    kind: str
    namespace: str
    name: str
    uid: str | None = None

    @property
    def api_version(self) -> str:
        return _API_VERSIONS.get(self.kind, "v1")

    @classmethod
    def for_workload(cls, w: Workload) -> "EventTarget":
        return cls(kind="Deployment", namespace=w.namespace, name=w.name, uid=w.uid or None)

    @classmethod
    def for_cronjob(cls, cj: CronJobTemplate) -> "EventTarget":
        return cls(kind=CRONJOB_KIND, namespace=cj.namespace, name=cj.name, uid=cj.uid or None)


@dataclass(frozen=True)
class RecordedEvent:
    target: EventTarget
    severity: str
    reason: str
    message: str


class Reporter:
    """Sink for counters and events emitted by a reconcile.

    Subclasses override what they care about. ``record_event`` must not raise.
    """

    def increment_counter(self, name: str, namespace: str, object_name: str) -> None:
        return None

    def record_event(self, target: EventTarget, severity: str, reason: str, message: str) -> None:
        return None


class RecordingReporter(Reporter):
    """Keeps everything in memory. Used for dry runs and tests."""

    def __init__(self) -> None:
        self.counters: _Tally[tuple[str, str, str]] = _Tally()
        self.events: list[RecordedEvent] = []

    def increment_counter(self, name: str, namespace: str, object_name: str) -> None:
        self.counters[(name, namespace, object_name)] += 1

    def record_event(self, target: EventTarget, severity: str, reason: str, message: str) -> None:
        self.events.append(RecordedEvent(target, severity, reason, message))

    def total(self, name: str) -> int:
        return sum(v for (n, _, _), v in self.counters.items() if n == name)

    def reasons(self) -> list[str]:
        return [e.reason for e in self.events]


class MetricsReporter(Reporter):
    """Prometheus counters, one per counter name."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self._counters = {
            name: Counter(metric_name, _METRIC_HELP[name], list(label_names), registry=self.registry)
            for name, (metric_name, label_names) in _METRIC_NAMES.items()
        }

    def increment_counter(self, name: str, namespace: str, object_name: str) -> None:
        counter = self._counters.get(name)
        if counter is None:
            raise KeyError(f"unknown counter {name!r}")
        counter.labels(namespace, object_name).inc()

    def value(self, name: str, namespace: str, object_name: str) -> float:
        metric_name, label_names = _METRIC_NAMES[name]
        sample = self.registry.get_sample_value(
            f"{metric_name}_total", dict(zip(label_names, (namespace, object_name)))
        )
        return sample or 0.0


class KubeEventRecorder(Reporter):
    """Posts core/v1 Events on the target object, best effort."""

    def __init__(self, core_api: client.CoreV1Api | None = None, component: str = "cronjob-controller"):
        self.core_api = core_api or client.CoreV1Api()
        self.component = component

    def record_event(self, target: EventTarget, severity: str, reason: str, message: str) -> None:
        now = datetime.now(timezone.utc)
        body = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{target.name}.", namespace=target.namespace),
            involved_object=client.V1ObjectReference(
                api_version=target.api_version,
                kind=target.kind,
                name=target.name,
                namespace=target.namespace,
                uid=target.uid,
            ),
            reason=reason,
            message=message,
            type=severity,
            source=client.V1EventSource(component=self.component),
            reporting_component=self.component,
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            self.core_api.create_namespaced_event(namespace=target.namespace, body=body)
        except ApiException as e:
            logger.warning("Could not record event %s on %s %s/%s: HTTP %s", reason, target.kind, target.namespace, target.name, e.status)
        except HTTPError as e:
            logger.warning("Could not record event %s on %s %s/%s: %s", reason, target.kind, target.namespace, target.name, e)


class LedgerReporter(Reporter):
    """Mirrors events into the local sqlite ledger and emails Warning events."""

    def __init__(self, email_warnings: bool = True):
        self.email_warnings = email_warnings

    def record_event(self, target: EventTarget, severity: str, reason: str, message: str) -> None:
        level = "WARN" if severity == WARNING else "INFO"
        try:
            db.log_event(
                level,
                message,
                namespace=target.namespace,
                object_kind=target.kind,
                object_name=target.name,
                reason=reason,
            )
        except Exception:
            logger.exception("Could not write event %s to the ledger", reason)
        if self.email_warnings and severity == WARNING:
            send_event_alert(target, reason, message)


class CompositeReporter(Reporter):
    def __init__(self, *reporters: Reporter):
        self.reporters = list(reporters)

    def increment_counter(self, name: str, namespace: str, object_name: str) -> None:
        for r in self.reporters:
            r.increment_counter(name, namespace, object_name)

    def record_event(self, target: EventTarget, severity: str, reason: str, message: str) -> None:
        for r in self.reporters:
            try:
                r.record_event(target, severity, reason, message)
            except Exception:
                logger.exception("Reporter %s failed to record event %s", type(r).__name__, reason)
