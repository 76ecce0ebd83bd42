import argparse
import sys

import yaml

from flowstats.config import load_config
from flowstats.consolidator import ConsolidatorWorker
from flowstats.daemon import run_from_config
from flowstats.errors import ConfigError, TransientStoreError
from flowstats.exporter import export_report
from flowstats.summarizer import SummarizeWorker
from flowstats.transport import Transport
from flowstats.upload import upload_file

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_CONFIG = 3

UPLOAD_USAGE = "usage: flowstats-upload <path-to-csv>"


def _transport(args) -> Transport:
    return Transport(load_config(getattr(args, "config", None)))


def upload(args):
    with _transport(args) as transport:
        config = transport.config
        config.require("bucket.raw")
        # only the local backends need a direct nudge; S3 notifies the queue itself
        notify = None
        if config.backend != "aws":
            notify = transport.summarize_queue
        print(f"Uploading {args.path} to {config.bucket_raw}...")
        try:
            key = upload_file(args.path, transport.store, config.bucket_raw, notify_queue=notify)
        except (OSError, TransientStoreError) as e:
            print(f"Upload failed: {e}", file=sys.stderr)
            return EXIT_USAGE
        print(f"Success! File uploaded as: {key}")
        return EXIT_OK


def summarize(args):
    with _transport(args) as transport:
        worker = SummarizeWorker.from_transport(transport)
        run_from_config("summarizer", worker.source_queue, worker.handle, transport.config,
                        max_cycles=args.max_cycles)
    return EXIT_OK


def consolidate(args):
    with _transport(args) as transport:
        worker = ConsolidatorWorker.from_transport(transport)
        run_from_config("consolidator", worker.queue, worker.handle, transport.config,
                        max_cycles=args.max_cycles)
    return EXIT_OK


def export(args):
    with _transport(args) as transport:
        config = transport.config
        config.require("bucket.state")
        out = args.out or config.report_path
        try:
            export_report(transport.store, config.bucket_state, out_path=out,
                          sort=not args.no_sort, report_date=args.date)
        except (OSError, TransientStoreError) as e:
            print(f"export failed: {e}", file=sys.stderr)
            return EXIT_USAGE
    return EXIT_OK


def config_show(args):
    config = load_config(getattr(args, "config", None))
    payload = {
        "source": config.source_path,
        "backend": config.backend,
        "data_dir": config.data_dir,
        "aws": {"region": config.aws_region},
        "bucket": {"raw": config.bucket_raw, "interim": config.bucket_interim, "state": config.bucket_state},
        "queue": {"summarize": config.queue_summarize, "consolidate": config.queue_consolidate},
        "worker": {
            "wait_seconds": config.wait_seconds,
            "error_backoff_sec": config.error_backoff_sec,
            "visibility_timeout_sec": config.visibility_timeout_sec,
            "idempotent_updates": config.idempotent_updates,
            "metrics_file": config.metrics_file,
        },
        "report": {"path": config.report_path},
    }
    print(yaml.safe_dump(payload, sort_keys=False), end="")
    return EXIT_OK


def build_parser():
    parser = argparse.ArgumentParser(prog="flowstats", description="network flow statistics pipeline")
    parser.add_argument("--config", help="YAML config file (default: $FLOWSTATS_CONFIG)")
    subparsers = parser.add_subparsers(dest="command")

    upload_parser = subparsers.add_parser("upload", help="upload a CSV export to the raw bucket")
    upload_parser.add_argument("path")
    upload_parser.set_defaults(func=upload)

    summarize_parser = subparsers.add_parser("summarize", help="run the summarize worker")
    summarize_parser.add_argument("--max-cycles", type=int, default=None, help="stop after N polls")
    summarize_parser.set_defaults(func=summarize)

    consolidate_parser = subparsers.add_parser("consolidate", help="run the consolidator worker")
    consolidate_parser.add_argument("--max-cycles", type=int, default=None, help="stop after N polls")
    consolidate_parser.set_defaults(func=consolidate)

    export_parser = subparsers.add_parser("export", help="write the per-pair statistics report")
    export_parser.add_argument("--out", help="output CSV path, '-' for stdout (default: report.path)")
    export_parser.add_argument("--no-sort", action="store_true", help="keep storage listing order")
    export_parser.add_argument("--date", help="value of the Date column (default: today, UTC)")
    export_parser.set_defaults(func=export)

    config_parser = subparsers.add_parser("config", help="print the resolved configuration")
    config_parser.set_defaults(func=config_show)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return EXIT_USAGE
    try:
        return args.func(args)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return EXIT_CONFIG


def upload_main(argv=None):
    """flowstats-upload <path>: exits 1 with a usage line when the path is missing."""
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 1:
        print(UPLOAD_USAGE)
        return EXIT_USAGE
    return main(["upload", argv[0]])


def export_main(argv=None):
    """flowstats-export: no arguments; writes report.path (or $REPORT_PATH)."""
    return main(["export"])


def run():
    sys.exit(main())


def run_upload():
    sys.exit(upload_main())


def run_export():
    sys.exit(export_main())


if __name__ == "__main__":
    run()
