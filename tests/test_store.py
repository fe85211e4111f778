from unittest import mock

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from cjsync.models import Container, DerivedJob, ObjectKey
from cjsync.store import ConflictError, KubeStore, NotFoundError, StoreError


def _pod_template(*containers):
    return client.V1PodTemplateSpec(
        spec=client.V1PodSpec(containers=[client.V1Container(name=n, image=i) for n, i in containers])
    )


def _deployment(name, *containers, namespace="default", uid="dep-uid"):
    return client.V1Deployment(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, uid=uid),
        spec=client.V1DeploymentSpec(
            selector=client.V1LabelSelector(match_labels={"app": name}),
            template=_pod_template(*containers),
        ),
    )


def _cronjob(name, *containers, namespace="default", uid="cj-uid", rv="11", labels=None):
    return client.V1CronJob(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, uid=uid, resource_version=rv, labels=labels),
        spec=client.V1CronJobSpec(
            schedule="*/5 * * * *",
            job_template=client.V1JobTemplateSpec(spec=client.V1JobSpec(template=_pod_template(*containers))),
        ),
    )


def _job(name, owner_name, owner_uid, namespace="default"):
    return client.V1Job(
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels={"job-name": name},
            owner_references=[
                client.V1OwnerReference(api_version="batch/v1", kind="CronJob", name=owner_name, uid=owner_uid)
            ],
        )
    )


@pytest.fixture
def apis():
    return mock.Mock(spec=client.AppsV1Api), mock.Mock(spec=client.BatchV1Api), mock.Mock(spec=client.CoreV1Api)


@pytest.fixture
def store(apis):
    apps, batch, core = apis
    return KubeStore(apps_api=apps, batch_api=batch, core_api=core)


def test_get_deployment_reads_containers_in_order(store, apis):
    apps, _, _ = apis
    apps.read_namespaced_deployment.return_value = _deployment("web", ("nginx", "nginx:1.22"), ("log", "fluentbit:2"))

    w = store.get_deployment(ObjectKey("default", "web"))

    apps.read_namespaced_deployment.assert_called_once_with(name="web", namespace="default")
    assert w.containers == (Container("nginx", "nginx:1.22"), Container("log", "fluentbit:2"))
    assert w.uid == "dep-uid"


def test_api_errors_are_translated(store, apis):
    apps, batch, _ = apis
    apps.read_namespaced_deployment.side_effect = ApiException(status=404, reason="Not Found")
    with pytest.raises(NotFoundError):
        store.get_deployment(ObjectKey("default", "gone"))

    batch.list_namespaced_cron_job.side_effect = ApiException(status=403, reason="Forbidden")
    with pytest.raises(StoreError) as exc:
        store.list_cronjobs("default")
    assert exc.value.status == 403
    assert not isinstance(exc.value, (NotFoundError, ConflictError))


def test_list_cronjobs_and_jobs(store, apis):
    _, batch, _ = apis
    batch.list_namespaced_cron_job.return_value = client.V1CronJobList(
        items=[_cronjob("report", ("nginx", "nginx:1.21"), labels={"managed-by-deployment": "web"})]
    )
    batch.list_namespaced_job.return_value = client.V1JobList(items=[_job("report-1", "report", "cj-uid")])

    [cj] = store.list_cronjobs("default")
    [job] = store.list_jobs("default")

    assert cj.uid == "cj-uid" and cj.resource_version == "11"
    assert cj.labels == {"managed-by-deployment": "web"}
    assert cj.containers == (Container("nginx", "nginx:1.21"),)
    assert job.is_owned_by(cj)


def test_update_replaces_with_original_resource_version(store, apis):
    _, batch, _ = apis
    raw = _cronjob("report", ("nginx", "nginx:1.21"))
    batch.list_namespaced_cron_job.return_value = client.V1CronJobList(items=[raw])
    batch.replace_namespaced_cron_job.side_effect = lambda name, namespace, body: body

    [cj] = store.list_cronjobs("default")
    updated = store.update_cronjob(cj.with_containers([Container("nginx", "nginx:1.22")]))

    _, kwargs = batch.replace_namespaced_cron_job.call_args
    body = kwargs["body"]
    assert kwargs["name"] == "report" and kwargs["namespace"] == "default"
    assert body.metadata.resource_version == "11"
    assert body.spec.schedule == "*/5 * * * *"
    assert body.spec.job_template.spec.template.spec.containers[0].image == "nginx:1.22"
    assert updated.containers == (Container("nginx", "nginx:1.22"),)


def test_update_conflict(store, apis):
    _, batch, _ = apis
    batch.list_namespaced_cron_job.return_value = client.V1CronJobList(items=[_cronjob("report", ("nginx", "nginx:1.21"))])
    batch.replace_namespaced_cron_job.side_effect = ApiException(status=409, reason="Conflict")

    [cj] = store.list_cronjobs("default")
    with pytest.raises(ConflictError):
        store.update_cronjob(cj.with_containers([Container("nginx", "nginx:1.22")]))


def test_delete_job_uses_foreground_propagation(store, apis):
    _, batch, core = apis
    batch.list_namespaced_job.return_value = client.V1JobList(items=[_job("report-1", "report", "cj-uid")])
    [job] = store.list_jobs("default")

    store.delete_job(job)
    store.delete_pods("default", "job-name=report-1")

    _, kwargs = batch.delete_namespaced_job.call_args
    assert kwargs["name"] == "report-1"
    assert kwargs["body"].propagation_policy == "Foreground"
    core.delete_collection_namespaced_pod.assert_called_once_with(namespace="default", label_selector="job-name=report-1")


def test_delete_job_rejects_unknown_policy(store):
    with pytest.raises(ValueError):
        store.delete_job(DerivedJob(namespace="default", name="x"), propagation="Eventually")
