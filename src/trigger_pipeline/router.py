# src/trigger_pipeline/router.py

import logging
import os
import threading

from can_decoder.errors import NoSignalDataError
from can_decoder.log_scanner import scan

from . import config
from .console_logger import log_debug
from .models import TriggerRecord, UsageType
from .retry import run_with_retry
from .thresholds import NOT_EXCEEDED, evaluate_thresholds

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "Completed"
MARKER_DB_WRITE = "DB Write Success"


class RoutingError(Exception):
    """A record could not be pushed to its next queue."""


def route_usage_type(usage_type):
    """Maps a usage type to its queue. Unknown or empty values go to the production queue."""
    queue_name = config.USAGE_TYPE_QUEUES.get(usage_type)
    if queue_name is None:
        logger.info(f"Usage type '{usage_type}' not recognised, routing to {config.USAGE_FALLBACK_QUEUE}")
        return config.USAGE_FALLBACK_QUEUE
    return queue_name


def resolve_vehicle_queue(car_type, usage_type, table=None, default=None):
    table = config.VEHICLE_TYPE_QUEUE_MAP if table is None else table
    default = config.VEHICLE_TYPE_DEFAULT_QUEUE if default is None else default
    return table.get(f"{car_type}_{usage_type}", default)


def _update_audit(ctx, record, status, marker):
    if record.log_id is None:
        logger.warning(f"Record {record.vin}@{record.timestamp} has no audit entry, skipping audit update")
        return False
    try:
        run_with_retry(
            lambda: ctx.sink.update_audit_entry(record.log_id, {"process_status": status}),
            ctx.retry_config, ctx.shutdown_flag, f"audit status {record.log_id}",
        )
        run_with_retry(
            lambda: ctx.sink.append_audit_log(record.log_id, marker),
            ctx.retry_config, ctx.shutdown_flag, f"audit marker {record.log_id}",
        )
    except Exception as e:
        # The audit gap is reported on its own; routing still goes ahead.
        logger.error(f"Audit update failed for entry {record.log_id} ({marker}): {e}")
        return False
    log_debug(logger, f"Audit {record.log_id}: {status} / {marker}", 'log_audit_transitions')
    return True


def _push(ctx, record, target_queue):
    payload = record.to_json()
    try:
        run_with_retry(
            lambda: ctx.queues.push(target_queue, payload),
            ctx.retry_config, ctx.shutdown_flag, f"push to {target_queue}",
        )
    except Exception as e:
        raise RoutingError(f"Failed to route {record.vin}@{record.timestamp} to {target_queue}: {e}") from e


def enqueue_new_trigger(ctx, record, queue_name=config.DEFAULT_QUEUE):
    """
    Entry point for new triggers. The audit entry is created only once per
    record; a record that already carries a log_id is just pushed.
    """
    if record.log_id is None:
        record.log_id = run_with_retry(
            lambda: ctx.sink.create_audit_entry(record),
            ctx.retry_config, ctx.shutdown_flag, f"create audit for {record.vin}",
        )
    _update_audit(ctx, record, f"{queue_name}_start", queue_name)
    _push(ctx, record, queue_name)
    return record.log_id


def advance(ctx, record, target_queue):
    # Audit first: the next stage may pop the record as soon as it is pushed.
    _update_audit(ctx, record, f"{target_queue}_start", target_queue)
    _push(ctx, record, target_queue)
    logger.info(f"Routed {record.vin}@{record.timestamp} to {target_queue}")


# --- Stages ---
# Each stage takes the raw JSON payload popped from its queue.

class DefaultStage:
    def __init__(self, ctx):
        self.ctx = ctx

    def __call__(self, payload):
        record = TriggerRecord.from_json(payload)
        advance(self.ctx, record, route_usage_type(record.usage_type))


class CanSignalStage:
    """
    Threshold check for one vehicle-usage queue: fetch the CAN segment for
    the trigger, scan the configured signals, and route on the verdict.
    """

    def __init__(self, ctx, queue_name, thresholds, dictionary):
        self.ctx = ctx
        self.queue_name = queue_name
        self.thresholds = list(thresholds)
        self.dictionary = dictionary
        self.signal_names = [t.signal_name for t in self.thresholds]

    def _download_path(self, record):
        filename = f"{record.vin}_{record.timestamp}_{threading.get_ident()}.can"
        return os.path.join(self.ctx.settings.download_directory, filename)

    def evaluate(self, record):
        path = self._download_path(record)
        run_with_retry(
            lambda: self.ctx.file_client.download_segment(record.vin, record.timestamp, path),
            self.ctx.retry_config, self.ctx.shutdown_flag, f"download {record.vin}@{record.timestamp}",
        )
        try:
            table = scan(path, self.dictionary, self.signal_names)
        except NoSignalDataError as e:
            logger.info(f"{record.vin}@{record.timestamp}: {e}")
            return NOT_EXCEEDED
        finally:
            if os.path.exists(path):
                os.remove(path)
        return evaluate_thresholds(table, self.thresholds)

    def __call__(self, payload):
        record = TriggerRecord.from_json(payload)
        result = self.evaluate(record)
        record.is_crash = result.index if result.exceeded else 0
        record.threshold_log = result.reason
        log_debug(logger, f"[{self.queue_name}] {record.vin}@{record.timestamp}: {result.reason}",
                  'log_threshold_results')

        target = config.WRITE_DB_QUEUE if result.exceeded else config.FUSION_CAR_QUEUE
        advance(self.ctx, record, target)


class WriteDbStage:
    def __init__(self, ctx):
        self.ctx = ctx

    def __call__(self, payload):
        record = TriggerRecord.from_json(payload)
        record.status = STATUS_COMPLETED
        run_with_retry(
            lambda: self.ctx.sink.persist_final(record),
            self.ctx.retry_config, self.ctx.shutdown_flag, f"persist {record.vin}@{record.timestamp}",
        )
        logger.info(f"Persisted {record.vin}@{record.timestamp} (trigger {record.trigger_id})")
        _update_audit(self.ctx, record, STATUS_COMPLETED, MARKER_DB_WRITE)


class NegativeTriggerStage:
    def __init__(self, ctx, table=None, default=None):
        self.ctx = ctx
        self.table = table
        self.default = default

    def __call__(self, payload):
        record = TriggerRecord.from_json(payload)
        usage_type = record.usage_type or UsageType.NONE.value
        advance(self.ctx, record, resolve_vehicle_queue(record.car_type, usage_type, self.table, self.default))
