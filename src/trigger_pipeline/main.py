# src/trigger_pipeline/main.py

import argparse
import json
import logging
import signal
import sys

from can_decoder.capture import parse_capture
from can_decoder.dbc import load_file
from can_decoder.errors import CanDecoderError
from can_decoder.log_scanner import scan

from .console_logger import setup_logging
from .context import AppContext, PipelineSettings
from .jobs import QueueDepthMonitor, TriggerFetchJob
from .tasks import TaskRunner
from .workers import build_pipeline

logger = logging.getLogger(__name__)


def run_pipeline(args):
    settings = PipelineSettings.from_config()
    listener = setup_logging(settings.output_directory)
    ctx = AppContext.create(settings)

    def signal_handler(signum, frame):
        logger.info(f"Signal {signum} received, shutting down gracefully...")
        ctx.shutdown_flag.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        logger.info("--- CAN Trigger Pipeline ---")
        dictionary = load_file(args.dbc or settings.dbc_path)
        harness = build_pipeline(ctx, dictionary)

        runner = TaskRunner(ctx.shutdown_flag)
        runner.add_task('trigger_fetch', "Trigger fetch", settings.trigger_fetch_interval, TriggerFetchJob(ctx))
        runner.add_task('queue_monitor', "Queue depth monitor", settings.queue_monitor_interval,
                        QueueDepthMonitor(ctx), start_delay=settings.queue_monitor_interval)

        harness.start()
        started, last_error = runner.start_all()
        if last_error is not None:
            logger.warning(f"Only {started} scheduled tasks started: {last_error}")

        while not ctx.shutdown_flag.wait(1.0):
            pass

        runner.stop_all(timeout=settings.shutdown_grace)
        clean = harness.stop(settings.shutdown_grace)
        logger.info(f"Pipeline stopped. Stats: {harness.stats()}")
        return 0 if clean else 1
    except CanDecoderError as e:
        logger.error(f"Failed to start pipeline: {e}")
        return 1
    finally:
        ctx.close()
        listener.stop()


def run_scan(args):
    dictionary = load_file(args.dbc)
    signal_names = [s.strip() for s in args.signals.split(',') if s.strip()]
    table = scan(args.log, dictionary, signal_names)
    print("timestamp," + ",".join(signal_names))
    for ts in table.timestamps:
        row = [table.get(ts, name) for name in signal_names]
        print(f"{ts}," + ",".join("" if v is None else f"{v:g}" for v in row))
    return 0


def run_parse(args):
    dictionary = load_file(args.dbc)
    rows = parse_capture(args.capture, args.vehicle_id, args.vehicle_type, dictionary)
    json.dump([row.to_dict() for row in rows], sys.stdout, indent=2)
    print()
    return 0


def build_parser():
    settings = PipelineSettings.from_config()
    parser = argparse.ArgumentParser(prog="trigger-pipeline", description="CAN trigger triage pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Start the worker pools and scheduled jobs")
    run_parser.add_argument("--dbc", default=None, help="DBC file (default: input directory)")
    run_parser.set_defaults(func=run_pipeline)

    scan_parser = subparsers.add_parser("scan", help="Print signal values found in a candump log")
    scan_parser.add_argument("log")
    scan_parser.add_argument("--signals", required=True, help="Comma-separated signal names")
    scan_parser.add_argument("--dbc", default=settings.dbc_path)
    scan_parser.set_defaults(func=run_scan)

    parse_parser = subparsers.add_parser("parse", help="Decode a CAN capture to JSON")
    parse_parser.add_argument("capture")
    parse_parser.add_argument("--vehicle-id", required=True)
    parse_parser.add_argument("--vehicle-type", required=True)
    parse_parser.add_argument("--dbc", default=settings.dbc_path)
    parse_parser.set_defaults(func=run_parse)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.command != "run":
        logging.basicConfig(level=logging.WARNING, format='%(levelname)s: %(message)s')
    try:
        return args.func(args)
    except CanDecoderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
