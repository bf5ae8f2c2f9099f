# src/trigger_pipeline/workers.py

import logging
import os
import threading
import time

from . import config
from .console_logger import log_debug
from .queues import dead_letter_name
from .router import CanSignalStage, DefaultStage, NegativeTriggerStage, WriteDbStage
from .thresholds import load_threshold_config

logger = logging.getLogger(__name__)


class QueueWorker(threading.Thread):
    """
    Pops payloads from one queue and hands them to 'transform'. A failing
    transform is logged and its payload moved to the dead-letter queue; the
    worker then carries on with the next item.
    """

    def __init__(self, queues, queue_name, transform, shutdown_flag, pop_timeout=config.POP_TIMEOUT_S, name=None):
        super().__init__(name=name or f"{queue_name}-worker", daemon=True)
        self.queues = queues
        self.queue_name = queue_name
        self.transform = transform
        self.shutdown_flag = shutdown_flag
        self.pop_timeout = pop_timeout
        self.processed = 0
        self.failed = 0

    def run(self):
        logger.debug(f"{self.name} started")
        while not self.shutdown_flag.is_set():
            try:
                payload = self.queues.pop(self.queue_name, timeout=self.pop_timeout)
            except Exception as e:
                logger.error(f"{self.name}: pop from {self.queue_name} failed: {e}")
                self.shutdown_flag.wait(self.pop_timeout)
                continue
            if payload is None:
                continue

            log_debug(logger, f"{self.name} popped: {payload}", 'log_queue_payloads')
            try:
                self.transform(payload)
                self.processed += 1
            except Exception as e:
                self.failed += 1
                logger.error(f"{self.name}: transform failed: {e}", exc_info=True)
                self._dead_letter(payload)
        logger.debug(f"{self.name} stopped")

    def _dead_letter(self, payload):
        target = dead_letter_name(self.queue_name)
        try:
            self.queues.push(target, payload)
            logger.warning(f"{self.name}: payload moved to {target}")
        except Exception as e:
            logger.error(f"{self.name}: dropping payload, dead-letter push to {target} failed: {e}")


class WorkerPool:
    def __init__(self, queue_name, size, transform):
        if size <= 0:
            raise ValueError(f"Pool for '{queue_name}' needs at least one worker, got {size}")
        self.queue_name = queue_name
        self.size = size
        self.transform = transform
        self.workers = []

    def start(self, queues, shutdown_flag, pop_timeout=config.POP_TIMEOUT_S):
        self.workers = [
            QueueWorker(queues, self.queue_name, self.transform, shutdown_flag, pop_timeout,
                        name=f"{self.queue_name}-{i}")
            for i in range(self.size)
        ]
        for worker in self.workers:
            worker.start()

    def alive_workers(self):
        return [w for w in self.workers if w.is_alive()]


class PipelineHarness:
    """Owns the worker pools and the single shutdown flag they all watch."""

    def __init__(self, ctx):
        self.ctx = ctx
        self.pools = {}

    def add_pool(self, queue_name, transform, size=None):
        if queue_name in self.pools:
            raise ValueError(f"A pool for '{queue_name}' is already registered")
        if size is None:
            size = self.ctx.settings.workers_per_queue.get(queue_name, 1)
        self.pools[queue_name] = WorkerPool(queue_name, size, transform)
        return self.pools[queue_name]

    def start(self):
        for pool in self.pools.values():
            pool.start(self.ctx.queues, self.ctx.shutdown_flag, self.ctx.settings.pop_timeout)
            logger.info(f"Started {pool.size} workers on {pool.queue_name}")

    def stop(self, grace=None):
        """
        Signals every worker to stop and waits up to 'grace' seconds overall.
        Returns False, after logging a warning, if any worker is still running.
        """
        grace = self.ctx.settings.shutdown_grace if grace is None else grace
        self.ctx.shutdown_flag.set()
        deadline = time.monotonic() + grace

        for pool in self.pools.values():
            for worker in pool.workers:
                worker.join(max(0.0, deadline - time.monotonic()))

        stuck = [w.name for pool in self.pools.values() for w in pool.alive_workers()]
        if stuck:
            logger.warning(f"{len(stuck)} workers still running after {grace}s: {', '.join(stuck)}")
            return False
        logger.info("All workers stopped")
        return True

    def stats(self):
        return {
            name: {
                "workers": pool.size,
                "alive": len(pool.alive_workers()),
                "processed": sum(w.processed for w in pool.workers),
                "failed": sum(w.failed for w in pool.workers),
                "depth": self.ctx.queues.length(name),
            }
            for name, pool in self.pools.items()
        }


def build_pipeline(ctx, dictionary):
    """Registers the standard pools: default, one per usage queue, write-db and negative triggers."""
    harness = PipelineHarness(ctx)
    harness.add_pool(config.DEFAULT_QUEUE, DefaultStage(ctx))

    for queue_name in dict.fromkeys(config.USAGE_TYPE_QUEUES.values()):
        path = ctx.settings.threshold_path(queue_name)
        if not os.path.exists(path):
            logger.warning(f"No threshold file for {queue_name} at '{path}', nothing will exceed")
            thresholds = []
        else:
            thresholds = load_threshold_config(path)
        harness.add_pool(queue_name, CanSignalStage(ctx, queue_name, thresholds, dictionary))

    harness.add_pool(config.WRITE_DB_QUEUE, WriteDbStage(ctx))
    harness.add_pool(config.NEGATIVE_TRIGGER_QUEUE, NegativeTriggerStage(ctx))
    return harness
