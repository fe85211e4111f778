from __future__ import annotations

import logging
import random
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from kubernetes import watch
from kubernetes.client import ApiException, AppsV1Api

from . import db
from .models import ObjectKey
from .reconciler import ReconcileResult, Reconciler
from .workqueue import WorkQueue

logger = logging.getLogger(__name__)

TRIGGER_EVENTS = {"ADDED", "MODIFIED"}


class Controller:
    """Feeds Deployment keys from a watch into a queue drained by a small worker pool.

    The queue never hands the same key to two workers at once, so reconciles of one
    Deployment are strictly sequential while different Deployments run in parallel.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        queue: WorkQueue | None = None,
        apps_api: AppsV1Api | None = None,
        namespace: str = "",
        workers: int = 2,
        record_ledger: bool = True,
    ):
        self.reconciler = reconciler
        self.queue = queue if queue is not None else WorkQueue()
        self.apps_api = apps_api
        self.namespace = namespace
        self.workers = max(1, int(workers))
        self.record_ledger = record_ledger
        self.ready = threading.Event()
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []
        self._active_watcher: watch.Watch | None = None
        self._watcher_lock = threading.Lock()
        # Manual reconciles over HTTP bypass the queue; these keep them from
        # overlapping a worker on the same key. Entries are [lock, holders] and
        # are dropped once nobody holds or waits on them.
        self._key_locks: dict[ObjectKey, list] = {}
        self._key_locks_guard = threading.Lock()

    # --- lifecycle ---

    def start(self) -> None:
        if any(t.is_alive() for t in self._threads):
            return
        if self.queue.shutting_down:
            raise RuntimeError("Controller was stopped; build a new one to start again.")
        self._stop.clear()
        self._threads = []
        if self.apps_api is not None:
            self._threads.append(threading.Thread(target=self._watch_loop, name="cjsync-watch", daemon=True))
        else:
            self.ready.set()
        for i in range(self.workers):
            self._threads.append(threading.Thread(target=self._worker, name=f"cjsync-worker-{i}", daemon=True))
        for t in self._threads:
            t.start()
        self._ledger("INFO", f"Controller started with {self.workers} workers")

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the watch and the workers. Final: the queue is shut down for good."""
        self._stop.set()
        self.queue.shutdown()
        with self._watcher_lock:
            active = self._active_watcher
        if active is not None:
            active.stop()
        for t in self._threads:
            t.join(timeout=timeout)
        self.ready.clear()

    # --- work ---

    def enqueue(self, key: ObjectKey) -> None:
        self.queue.add(key)

    def run_once(self, key: ObjectKey) -> ReconcileResult:
        """Reconcile one key now and write the outcome to the ledger."""
        with self._key_lock(key):
            try:
                result = self.reconciler.reconcile(key)
            except Exception as e:
                self._record(key, "failed", error=f"{type(e).__name__}: {e}")
                self._ledger("ERROR", f"Reconcile of {key} failed: {type(e).__name__}: {e}", key)
                raise
        self._record(key, result.outcome, updated=len(result.updated), deleted=len(result.deleted_jobs))
        return result

    @contextmanager
    def _key_lock(self, key: ObjectKey) -> Iterator[None]:
        with self._key_locks_guard:
            entry = self._key_locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._key_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[key]

    def process_next(self, timeout: float | None = None) -> bool:
        """Handle one queued key. Returns False when nothing was handled."""
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        try:
            self.run_once(key)
            self.queue.forget(key)
        except Exception:
            delay = self.queue.add_rate_limited(key)
            logger.exception("reconcile of %s failed; retrying in %.1fs", key, delay)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while not self._stop.is_set():
            handled = self.process_next(timeout=1.0)
            if not handled and self.queue.shutting_down:
                return

    # --- trigger stream ---

    def handle_event(self, event_type: str, obj: Any) -> ObjectKey | None:
        if event_type not in TRIGGER_EVENTS:
            return None
        meta = getattr(obj, "metadata", None)
        if meta is None or not meta.namespace or not meta.name:
            return None
        key = ObjectKey(meta.namespace, meta.name)
        self.enqueue(key)
        return key

    def _list_func(self) -> Any:
        if self.namespace:
            return self.apps_api.list_namespaced_deployment
        return self.apps_api.list_deployment_for_all_namespaces

    def _list_kwargs(self) -> dict[str, Any]:
        return {"namespace": self.namespace} if self.namespace else {}

    def _relist(self) -> str | None:
        res = self._list_func()(**self._list_kwargs())
        for item in res.items or []:
            self.handle_event("ADDED", item)
        return getattr(getattr(res, "metadata", None), "resource_version", None)

    def _watch_loop(self) -> None:
        """List, then watch from the list's resourceVersion until stopped.

        410 Gone re-lists; 401/403 end the loop; anything else backs off with jitter.
        """
        resource_version: str | None = None
        backoff_s = 1
        while not self._stop.is_set():
            try:
                if resource_version is None:
                    resource_version = self._relist()
                    self.ready.set()
                    logger.info("watching deployments from resourceVersion %s", resource_version)

                watcher = watch.Watch()
                with self._watcher_lock:
                    self._active_watcher = watcher
                try:
                    for event in watcher.stream(
                        self._list_func(),
                        resource_version=resource_version,
                        timeout_seconds=30,
                        **self._list_kwargs(),
                    ):
                        if self._stop.is_set():
                            break
                        obj = event.get("object")
                        meta = getattr(obj, "metadata", None)
                        if meta is not None and meta.resource_version:
                            resource_version = meta.resource_version
                        self.handle_event(str(event.get("type", "")), obj)
                finally:
                    watcher.stop()
                    with self._watcher_lock:
                        if self._active_watcher is watcher:
                            self._active_watcher = None
                backoff_s = 1
            except ApiException as e:
                if e.status == 410:
                    logger.warning("watch resourceVersion expired, re-listing")
                    resource_version = None
                    continue
                if e.status in {401, 403}:
                    logger.error("Kubernetes API denied the deployment watch (HTTP %s); check RBAC", e.status)
                    self._ledger("ERROR", f"Deployment watch denied (HTTP {e.status})")
                    self.ready.clear()
                    return
                logger.exception("deployment watch failed")
                self._stop.wait(backoff_s * (0.5 + random.random()))
                backoff_s = min(backoff_s * 2, 30)
            except Exception:
                logger.exception("unexpected deployment watch error")
                self._stop.wait(backoff_s * (0.5 + random.random()))
                backoff_s = min(backoff_s * 2, 30)

    # --- ledger ---

    def _record(self, key: ObjectKey, outcome: str, updated: int = 0, deleted: int = 0, error: str | None = None) -> None:
        if not self.record_ledger:
            return
        try:
            db.record_reconcile(key.namespace, key.name, outcome, updated=updated, deleted=deleted, error=error)
        except Exception:
            logger.exception("could not record reconcile of %s", key)

    def _ledger(self, level: str, message: str, key: ObjectKey | None = None) -> None:
        if not self.record_ledger:
            return
        try:
            db.log_event(
                level,
                message,
                namespace=key.namespace if key else None,
                object_kind="Deployment" if key else None,
                object_name=key.name if key else None,
            )
        except Exception:
            logger.exception("could not write ledger event")
