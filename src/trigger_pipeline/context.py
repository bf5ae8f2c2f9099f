# src/trigger_pipeline/context.py

import multiprocessing
import os
import threading
from dataclasses import dataclass, field

from . import config
from .clients import AlertClient, FileRetrievalClient, TriggerApiClient
from .queues import QueueStore, standard_queue_names
from .retry import RetryConfig
from .sink import AuditSink


@dataclass(frozen=True)
class PipelineSettings:
    input_directory: str = config.INPUT_DIRECTORY
    output_directory: str = config.OUTPUT_DIRECTORY
    download_directory: str = config.DOWNLOAD_DIRECTORY
    dbc_file: str = config.DBC_FILE
    threshold_file_template: str = config.THRESHOLD_FILE_TEMPLATE
    workers_per_queue: dict = field(default_factory=lambda: dict(config.WORKERS_PER_QUEUE))
    pop_timeout: float = config.POP_TIMEOUT_S
    shutdown_grace: float = config.SHUTDOWN_GRACE_S
    use_manager_queues: bool = config.USE_MANAGER_QUEUES
    trigger_ids: tuple = tuple(config.TRIGGER_ID_LIST)
    trigger_use_type: str = config.TRIGGER_USE_TYPE
    trigger_fetch_interval: float = config.TRIGGER_FETCH_INTERVAL_S
    queue_monitor_interval: float = config.QUEUE_MONITOR_INTERVAL_S
    queue_depth_alerts: tuple = tuple(config.QUEUE_DEPTH_ALERTS)

    @classmethod
    def from_config(cls, **overrides):
        """Snapshots the config module. Keyword arguments replace single values."""
        return cls(**overrides)

    @property
    def dbc_path(self):
        return os.path.join(self.input_directory, self.dbc_file)

    def threshold_path(self, queue_name):
        return os.path.join(self.input_directory, self.threshold_file_template.format(queue=queue_name))


class AppContext:
    """
    Everything the pipeline components share, built once at start-up and
    handed to each component. Tests build one with fakes in place of the
    store, the sink or the HTTP clients.
    """

    def __init__(self, settings=None, queues=None, sink=None, retry_config=None,
                 shutdown_flag=None, file_client=None, trigger_client=None, alert_client=None):
        self.settings = settings or PipelineSettings.from_config()
        self.queues = queues or QueueStore(standard_queue_names())
        self.sink = sink or AuditSink()
        self.retry_config = retry_config or RetryConfig()
        self.shutdown_flag = shutdown_flag or threading.Event()
        self.file_client = file_client
        self.trigger_client = trigger_client
        self.alert_client = alert_client
        self.manager = None

    @classmethod
    def create(cls, settings=None, journal=True):
        """Builds a production context with real HTTP clients."""
        settings = settings or PipelineSettings.from_config()
        journal_dir = settings.output_directory if journal else None
        manager = queues = None
        if settings.use_manager_queues:
            manager = multiprocessing.Manager()
            queues = QueueStore.from_manager(manager, standard_queue_names())
        ctx = cls(
            settings=settings,
            queues=queues,
            sink=AuditSink(journal_dir=journal_dir),
            file_client=FileRetrievalClient(),
            trigger_client=TriggerApiClient(),
            alert_client=AlertClient(),
        )
        ctx.manager = manager
        return ctx

    def close(self):
        for client in (self.file_client, self.trigger_client, self.alert_client):
            if client is not None:
                client.close()
        if self.manager is not None:
            self.manager.shutdown()
            self.manager = None
