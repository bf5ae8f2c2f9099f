# src/trigger_pipeline/jobs.py

import logging

from . import config
from .models import TriggerRecord, UsageType
from .retry import run_with_retry
from .router import enqueue_new_trigger

logger = logging.getLogger(__name__)


def first_match(candidates, allowed):
    """Returns (value, True) for the first candidate found in 'allowed', else (None, False)."""
    allowed = set(allowed)
    for candidate in candidates:
        if candidate in allowed:
            return candidate, True
    return None, False


class TriggerFetchJob:
    """Pulls new triggers from the trigger API into the default queue."""

    def __init__(self, ctx):
        self.ctx = ctx

    def _to_record(self, row):
        vin = row.get("vin")
        try:
            timestamp = int(row.get("timestamp"))
        except (TypeError, ValueError):
            logger.warning(f"Invalid timestamp '{row.get('timestamp')}' for VIN {vin}, skipping")
            return None

        trigger_ids = [info.get("trigger_id") for info in row.get("trigger_info") or []]
        trigger_id, found = first_match(trigger_ids, self.ctx.settings.trigger_ids)
        if not found:
            logger.warning(f"VIN {vin} has no configured trigger id, skipping")
            return None

        return TriggerRecord(
            vin=vin,
            timestamp=timestamp,
            car_type=row.get("car_type") or "",
            usage_type=row.get("usage_type") or UsageType.NONE.value,
            trigger_id=trigger_id,
        )

    def __call__(self, cancel_event=None):
        settings = self.ctx.settings
        rows = run_with_retry(
            lambda: self.ctx.trigger_client.fetch_triggers(settings.trigger_use_type, settings.trigger_ids),
            self.ctx.retry_config, cancel_event or self.ctx.shutdown_flag, "fetch triggers",
        )
        enqueued = 0
        for row in rows:
            if cancel_event is not None and cancel_event.is_set():
                break
            record = self._to_record(row)
            if record is None:
                continue
            try:
                enqueue_new_trigger(self.ctx, record, config.DEFAULT_QUEUE)
                enqueued += 1
            except Exception as e:
                logger.error(f"Failed to enqueue trigger for VIN {record.vin}: {e}")
        logger.info(f"Trigger fetch: {enqueued}/{len(rows)} rows enqueued")
        return enqueued


class QueueDepthMonitor:
    """Alerts when a watched queue holds at least its threshold of items."""

    def __init__(self, ctx, watched=None):
        self.ctx = ctx
        self.watched = list(watched if watched is not None else ctx.settings.queue_depth_alerts)

    def check(self):
        alerts = []
        for queue_name, threshold in self.watched:
            try:
                depth = self.ctx.queues.length(queue_name)
            except Exception as e:
                logger.error(f"Could not read depth of {queue_name}: {e}")
                continue
            if depth >= threshold:
                alerts.append(f"Queue {queue_name} holds {depth} items (threshold {threshold})")
        return alerts

    def __call__(self, cancel_event=None):
        alerts = self.check()
        for text in alerts:
            if self.ctx.alert_client is None:
                logger.warning(f"ALERT: {text}")
                continue
            try:
                run_with_retry(
                    lambda: self.ctx.alert_client.send(text),
                    self.ctx.retry_config, cancel_event or self.ctx.shutdown_flag, "send alert",
                )
            except Exception as e:
                logger.error(f"Failed to send alert '{text}': {e}")
        return alerts
