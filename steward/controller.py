"""Reconcile loops fed by transport messages."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set, Tuple

from .apis import KINDS, ResourceKey, Tenant, WebhookTrigger, WorkflowRun
from .config import StewardConfig, load_config
from .contracts import ReconcileRequest, topic_for
from .execution import ExecutionStatusFeed
from .reconciler import (
    Reconciler,
    TenantReconciler,
    WebhookTriggerReconciler,
    WorkflowRunReconciler,
)
from .store import EnqueueingStore, ObjectStore, get_store
from .transports import BaseTransport, get_transport
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)


class Controller:
    """Runs one reconciler for every request published on its kind's topic.

    At most ``workers`` reconciles run at once and a key is never reconciled
    twice concurrently: a request arriving while its key is in flight is held
    back and processed once the running reconcile finishes. Failed reconciles
    are republished after an exponential backoff until ``max_attempts``.
    """

    def __init__(
        self,
        transport: BaseTransport,
        reconciler: Reconciler,
        *,
        workers: int = 1,
        max_attempts: int = 10,
        backoff_base: float = 1.5,
    ) -> None:
        self._transport = transport
        self._reconciler = reconciler
        self._semaphore = asyncio.Semaphore(workers)
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._in_flight: Set[ResourceKey] = set()
        self._dirty: Dict[ResourceKey, ReconcileRequest] = {}
        self._workers: Set[asyncio.Task] = set()
        self._timers: Set[asyncio.Task] = set()

    @property
    def kind(self) -> str:
        return self._reconciler.kind

    @property
    def topic(self) -> str:
        return topic_for(self.kind)

    async def enqueue(self, key: ResourceKey) -> None:
        await self._transport.request_reconcile(self.kind, key)

    async def resync(self, store: ObjectStore) -> int:
        """Enqueue every stored object of this controller's kind."""
        objects = await store.list(KINDS[self.kind])
        for obj in objects:
            await self.enqueue(obj.key)
        logger.info(f"Enqueued {len(objects)} {self.kind} objects for resync")
        return len(objects)

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Consume requests until ``lifespan`` expires, then drain."""
        logger.info(f"{self.kind} controller listening on {self.topic}")
        try:
            async for raw_message, request in self._transport.subscribe(
                self.topic, lifespan=lifespan
            ):
                if request.kind != self.kind:
                    logger.warning(
                        f"Dropping {request.kind} request for {request.key} on {self.topic}"
                    )
                    await self._transport.nack(raw_message, requeue=False)
                    continue
                self.dispatch(request)
                await self._transport.ack(raw_message)
        finally:
            await self.stop()

    def dispatch(self, request: ReconcileRequest) -> None:
        key = request.key
        if key in self._in_flight:
            logger.debug(f"{self.kind} {key} is in flight; reconciling again afterwards")
            self._dirty[key] = request
            return
        self._in_flight.add(key)
        task = asyncio.create_task(self._work(request))
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def stop(self) -> None:
        """Wait for running reconciles and drop pending retries."""
        if self._workers:
            await asyncio.gather(*list(self._workers), return_exceptions=True)
        for timer in list(self._timers):
            timer.cancel()
        if self._timers:
            await asyncio.gather(*list(self._timers), return_exceptions=True)

    async def _work(self, request: ReconcileRequest) -> None:
        key = request.key
        pending: Optional[ReconcileRequest] = request
        try:
            while pending is not None:
                async with self._semaphore:
                    await self.process(pending)
                pending = self._dirty.pop(key, None)
        finally:
            self._in_flight.discard(key)

    async def process(self, request: ReconcileRequest) -> None:
        """Reconcile the key of ``request`` once, scheduling a retry on failure."""
        try:
            requeue = await self._reconciler.reconcile(request.key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._requeue(request, e)
            return
        if requeue:
            self._requeue(request, None)

    def _requeue(self, request: ReconcileRequest, error: Optional[BaseException]) -> None:
        attempts = request.attempt + 1
        if error is not None and attempts >= self._max_attempts:
            logger.error(
                f"Giving up on {self.kind} {request.key} after {attempts} attempts: {error}"
            )
            return

        delay = compute_backoff(request.attempt, base=self._backoff_base)
        if error is not None:
            logger.warning(
                f"Reconcile of {self.kind} {request.key} failed (attempt {attempts}): "
                f"{error}; retrying in {delay:.1f}s"
            )
            retry = request.retried()
        else:
            retry = ReconcileRequest(
                kind=request.kind, namespace=request.namespace, name=request.name
            )
        timer = asyncio.create_task(self._publish_later(retry, delay))
        self._timers.add(timer)
        timer.add_done_callback(self._timers.discard)

    async def _publish_later(self, request: ReconcileRequest, delay: float) -> None:
        await asyncio.sleep(delay)
        await self._transport.publish(self.topic, request)


# ----------------------------------------------------------------------
# Wiring


class ControllerManager:
    """The three controllers sharing one change-notifying store."""

    def __init__(
        self,
        store: ObjectStore,
        transport: BaseTransport,
        config: Optional[StewardConfig] = None,
        feed: Optional[ExecutionStatusFeed] = None,
    ) -> None:
        config = config or load_config()
        settings = config.controller
        kinds = [Tenant.KIND, WebhookTrigger.KIND, WorkflowRun.KIND]

        self.transport = transport
        self.store = EnqueueingStore(store, transport, kinds)

        reconcilers: List[Tuple[Reconciler, int]] = [
            (TenantReconciler(self.store), settings.tenant_workers),
            (WebhookTriggerReconciler(self.store), settings.trigger_workers),
            (
                WorkflowRunReconciler(
                    self.store,
                    feed,
                    image_pull_secret=config.image_pull_secret_key(),
                ),
                settings.run_workers,
            ),
        ]
        self.controllers = [
            Controller(
                transport,
                reconciler,
                workers=workers,
                max_attempts=settings.max_attempts,
                backoff_base=settings.backoff_base,
            )
            for reconciler, workers in reconcilers
        ]

    def controller(self, kind: str) -> Controller:
        for controller in self.controllers:
            if controller.kind == kind:
                return controller
        raise KeyError(kind)

    async def start(self, lifespan: Optional[float] = None, resync: bool = True) -> None:
        await self.transport.connect()
        try:
            if resync:
                for controller in self.controllers:
                    await controller.resync(self.store)
            await asyncio.gather(
                *(controller.start(lifespan=lifespan) for controller in self.controllers)
            )
        finally:
            await self.transport.disconnect()


def build_manager(config: Optional[StewardConfig] = None) -> ControllerManager:
    """Create a manager from configuration, using the configured store and transport."""
    config = config or load_config()
    return ControllerManager(get_store(config=config), get_transport(config=config), config)
