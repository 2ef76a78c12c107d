"""Entry point for downloading an htsget resource: python -m htsgetreader."""

from __future__ import annotations

import argparse
import hashlib
import logging
import shutil
import sys
from concurrent.futures import ThreadPoolExecutor

from .client import HtsgetClient
from .config import HtsgetConfig
from .constants import READER_THREAD_NAME_PREFIX, STREAM_CHUNK_SIZE, VALID_LOG_LEVELS
from .errors import HtsgetError
from .request import HtsgetClass, HtsgetField, HtsgetFormat, Interval, RequestDescription

logger = logging.getLogger("htsgetreader")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="htsget-reader",
        description="Download a file using htsget",
    )
    parser.add_argument("--url", required=True, help="URL of htsget endpoint.")
    parser.add_argument("--id", required=True, help="ID of record to request.")
    parser.add_argument("-O", "--output", required=True, help="Output file.")
    parser.add_argument(
        "--format",
        choices=[f.value for f in HtsgetFormat],
        help="Format to request record data in.",
    )
    parser.add_argument(
        "--class",
        dest="data_class",
        choices=[c.value for c in HtsgetClass],
        help="Class of data to request.",
    )
    parser.add_argument(
        "-L",
        "--intervals",
        dest="interval",
        help="The interval and reference sequence to request, e.g. chr1:1000-2000.",
    )
    parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        default=[],
        choices=[f.value for f in HtsgetField],
        help="A field to include, default: all. May be repeated.",
    )
    parser.add_argument(
        "--tag", dest="tags", action="append", default=[], help="A tag which should be included."
    )
    parser.add_argument(
        "--notag",
        dest="notags",
        action="append",
        default=[],
        help="A tag which should be excluded.",
    )
    parser.add_argument(
        "--reader-threads",
        type=int,
        default=None,
        help="How many simultaneous threads to use when reading data from an htsget "
        "response; higher values may improve performance when network latency is an issue.",
    )
    parser.add_argument(
        "--check-md5",
        action="store_true",
        help="Calculate the md5 digest of the assembled file and compare it against the "
        "md5 provided by the server, if any.",
    )
    parser.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds.")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=VALID_LOG_LEVELS,
        default=None,
        help="Logging level.",
    )
    return parser


def _config_from_args(args: argparse.Namespace) -> HtsgetConfig:
    """Environment settings, overridden by any explicit arguments."""
    config = HtsgetConfig.from_env()
    return HtsgetConfig(
        timeout=args.timeout if args.timeout is not None else config.timeout,
        user_agent=config.user_agent,
        reader_threads=(
            args.reader_threads if args.reader_threads is not None else config.reader_threads
        ),
        log_level=args.log_level or config.log_level,
        temp_dir=config.temp_dir,
    )


def _request_from_args(args: argparse.Namespace) -> RequestDescription:
    return RequestDescription(
        endpoint=args.url,
        id=args.id,
        format=args.format,
        data_class=args.data_class,
        interval=Interval.parse(args.interval) if args.interval else None,
        fields=tuple(args.fields),
        tags=tuple(args.tags),
        notags=tuple(args.notags),
    )


def download(
    request: RequestDescription,
    output: str,
    config: HtsgetConfig,
    check_md5: bool = False,
) -> int:
    """Download an htsget resource to ``output``; return the bytes written.

    Creates and shuts down the worker pool when more than one reader thread
    is configured.
    """
    executor: ThreadPoolExecutor | None = None
    if config.reader_threads > 1:
        logger.info("Initializing with %d threads", config.reader_threads)
        executor = ThreadPoolExecutor(
            max_workers=config.reader_threads,
            thread_name_prefix=READER_THREAD_NAME_PREFIX,
        )

    digest = hashlib.md5()  # noqa: S324
    written = 0
    try:
        with HtsgetClient(config=config, submitter=executor) as client:
            with client.execute(request) as stream, open(output, "wb") as out:
                expected_md5 = stream.md5
                if not check_md5:
                    shutil.copyfileobj(stream, out, STREAM_CHUNK_SIZE)
                    written = out.tell()
                else:
                    while chunk := stream.read(STREAM_CHUNK_SIZE):
                        digest.update(chunk)
                        out.write(chunk)
                        written += len(chunk)
    finally:
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)

    logger.info("Wrote %d bytes to %s", written, output)

    if check_md5:
        actual = digest.hexdigest()
        if expected_md5 is None:
            logger.warning("No md5 checksum received; computed md5 is %s", actual)
        elif actual.lower() == expected_md5.lower():
            logger.info("md5 checksum matches: %s", actual)
        else:
            logger.warning("md5 checksum mismatch: expected %s, computed %s", expected_md5, actual)

    return written


def main(argv: list[str] | None = None) -> int:
    """Run the htsget reader."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = _config_from_args(args)
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        request = _request_from_args(args)
        download(request, args.output, config, check_md5=args.check_md5)
    except HtsgetError as e:
        print(f"htsget-reader: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"htsget-reader: Could not create output file: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
