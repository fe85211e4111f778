from __future__ import annotations

from dataclasses import dataclass

from .controller import Controller
from .matcher import default_rules
from .reconciler import Reconciler
from .reporter import CompositeReporter, KubeEventRecorder, LedgerReporter, MetricsReporter
from .settings import Settings
from .store import KubeStore, load_kube_config
from .workqueue import WorkQueue


@dataclass
class ControllerRuntime:
    """Everything a running process holds on to: the reconciler, its queue and metrics."""

    reconciler: Reconciler
    controller: Controller
    metrics: MetricsReporter


def build_runtime(settings: Settings) -> ControllerRuntime:
    """Wire the Kubernetes-backed store and reporters into a controller."""
    load_kube_config(settings.in_cluster)
    store = KubeStore()
    metrics = MetricsReporter()
    reporter = CompositeReporter(
        metrics,
        KubeEventRecorder(store.core_api, component=settings.component),
        LedgerReporter(email_warnings=settings.enable_email),
    )
    reconciler = Reconciler(store, reporter, default_rules(settings.match_by_image))
    queue = WorkQueue(base_delay=settings.retry_base_s, max_delay=settings.retry_max_s)
    controller = Controller(
        reconciler,
        queue,
        apps_api=store.apps_api,
        namespace=settings.watch_namespace,
        workers=settings.max_concurrent_reconciles,
    )
    return ControllerRuntime(reconciler=reconciler, controller=controller, metrics=metrics)
