from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any

CRONJOB_KIND = "CronJob"
JOB_NAME_LABEL = "job-name"


@dataclass(frozen=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, raw: str) -> "ObjectKey":
        namespace, sep, name = raw.partition("/")
        if not sep or not namespace or not name:
            raise ValueError(f"Invalid key {raw!r}, expected '<namespace>/<name>'.")
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class Container:
    name: str
    image: str


@dataclass(frozen=True)
class Workload:
    """A Deployment, reduced to what the sync needs. Never written back."""

    namespace: str
    name: str
    containers: tuple[Container, ...] = ()
    uid: str = ""

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    def images(self) -> set[str]:
        return {c.image for c in self.containers}


@dataclass(frozen=True)
class CronJobTemplate:
    """A CronJob whose job template containers follow a Workload.

    ``raw`` keeps the API object the template was read from so the store can
    write the full object back; it does not take part in equality.
    """

    namespace: str
    name: str
    uid: str
    resource_version: str | None = None
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    containers: tuple[Container, ...] = ()
    raw: Any = field(default=None, compare=False, repr=False)

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    def images(self) -> set[str]:
        return {c.image for c in self.containers}

    def with_containers(self, containers: list[Container] | tuple[Container, ...]) -> "CronJobTemplate":
        return replace(self, containers=tuple(containers))


@dataclass(frozen=True)
class OwnerRef:
    kind: str
    name: str
    uid: str


@dataclass(frozen=True)
class DerivedJob:
    namespace: str
    name: str
    owner_refs: tuple[OwnerRef, ...] = ()
    labels: dict[str, str] = field(default_factory=dict, compare=False)
    raw: Any = field(default=None, compare=False, repr=False)

    def is_owned_by(self, template: CronJobTemplate) -> bool:
        wanted = OwnerRef(kind=CRONJOB_KIND, name=template.name, uid=template.uid)
        return wanted in self.owner_refs


# --- conversion from kubernetes client objects ---------------------------------


def _containers(pod_spec: Any) -> tuple[Container, ...]:
    items = getattr(pod_spec, "containers", None) or []
    return tuple(Container(name=c.name, image=c.image or "") for c in items)


def workload_from_deployment(obj: Any) -> Workload:
    pod_spec = obj.spec.template.spec if obj.spec and obj.spec.template else None
    return Workload(
        namespace=obj.metadata.namespace,
        name=obj.metadata.name,
        containers=_containers(pod_spec),
        uid=obj.metadata.uid or "",
    )


def _cronjob_pod_spec(obj: Any) -> Any:
    try:
        return obj.spec.job_template.spec.template.spec
    except AttributeError:
        return None


def template_from_cronjob(obj: Any) -> CronJobTemplate:
    meta = obj.metadata
    return CronJobTemplate(
        namespace=meta.namespace,
        name=meta.name,
        uid=meta.uid or "",
        resource_version=meta.resource_version,
        labels=dict(meta.labels or {}),
        annotations=dict(meta.annotations or {}),
        containers=_containers(_cronjob_pod_spec(obj)),
        raw=obj,
    )


def job_from_api(obj: Any) -> DerivedJob:
    meta = obj.metadata
    refs = tuple(
        OwnerRef(kind=r.kind, name=r.name, uid=r.uid) for r in (meta.owner_references or [])
    )
    return DerivedJob(
        namespace=meta.namespace,
        name=meta.name,
        owner_refs=refs,
        labels=dict(meta.labels or {}),
        raw=obj,
    )


def apply_images_to_cronjob(obj: Any, containers: tuple[Container, ...]) -> Any:
    """Copy container images onto the raw CronJob object, by position.

    Only ``image`` is written; every other field of the object stays as read.
    """
    pod_spec = _cronjob_pod_spec(obj)
    current = getattr(pod_spec, "containers", None) or []
    if len(current) != len(containers):
        raise ValueError(
            f"CronJob {obj.metadata.namespace}/{obj.metadata.name} has {len(current)} containers, "
            f"got {len(containers)} to apply."
        )
    for api_container, synced in zip(current, containers):
        api_container.image = synced.image
    return obj


# DNS-1123 subdomain
OBJECT_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9.]{0,251}[a-z0-9])?$")


def validate_object_name(value: str, what: str = "name") -> None:
    if not OBJECT_NAME_RE.match(value):
        raise ValueError(
            f"Invalid {what} {value!r}. Use lowercase letters, digits, '-' and '.', "
            "starting and ending with a letter or digit (max 253 chars)."
        )
