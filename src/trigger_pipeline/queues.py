# src/trigger_pipeline/queues.py

import logging
import queue

from . import config
from .retry import NonRetryableError

logger = logging.getLogger(__name__)


class UnknownQueueError(NonRetryableError):
    pass


def dead_letter_name(queue_name):
    return f"{queue_name}{config.DEAD_LETTER_SUFFIX}"


def standard_queue_names():
    """Every queue name the pipeline may push to, in a stable order."""
    names = [
        config.DEFAULT_QUEUE,
        *config.USAGE_TYPE_QUEUES.values(),
        config.WRITE_DB_QUEUE,
        config.FUSION_CAR_QUEUE,
        config.NEGATIVE_TRIGGER_QUEUE,
        *config.VEHICLE_TYPE_QUEUE_MAP.values(),
        config.VEHICLE_TYPE_DEFAULT_QUEUE,
    ]
    return list(dict.fromkeys(names))


class QueueStore:
    """
    Named FIFO queues over a fixed namespace. A dead-letter twin is created for
    every name. The underlying queue objects provide the atomicity, so a pop
    hands an item to exactly one consumer.
    """

    def __init__(self, names, factory=queue.Queue):
        self._queues = {}
        for name in names:
            for qname in (name, dead_letter_name(name)):
                if qname not in self._queues:
                    self._queues[qname] = factory()

    @classmethod
    def from_manager(cls, manager, names):
        """Backs every queue with a multiprocessing.Manager queue."""
        return cls(names, factory=manager.Queue)

    def _get(self, name):
        try:
            return self._queues[name]
        except KeyError:
            raise UnknownQueueError(f"Unknown queue '{name}'") from None

    def push(self, name, payload):
        self._get(name).put(payload)

    def pop(self, name, timeout=config.POP_TIMEOUT_S):
        """Returns the next payload, or None if nothing arrived within 'timeout'."""
        q = self._get(name)
        try:
            return q.get(timeout=timeout)
        except queue.Empty:
            return None

    def length(self, name):
        return self._get(name).qsize()

    def names(self):
        return list(self._queues)

    def __contains__(self, name):
        return name in self._queues
