"""
Command line entry point: ``pat-download EP1000000A1 "US Pat. No. 7,123,456"``.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Sequence

from pat_download.core.config import PatDownloadConfig, get_config
from pat_download.core.identifiers import IdentifierParseError
from pat_download.core.logging_config import configure_logging
from pat_download.services.download import download_citation
from pat_download.tools.instances import InstanceListing
from pat_download.tools.ops_session import (
    OPSAPIError,
    OPSAuthenticationError,
    OPSNotFoundError,
    OPSSession,
)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_AUTH = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pat-download",
        description="Download patent documents as PDF from EPO Open Patent Services.",
    )
    parser.add_argument("citations", nargs="*", help="Patent document numbers or citations")
    parser.add_argument("--consumer-key", default=None, help="Consumer Key from EPO OPS")
    parser.add_argument("--secret-key", default=None, help="Secret Key from EPO OPS")
    parser.add_argument(
        "--strict",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Limit retrieved documents to the exact input identifier",
    )
    parser.add_argument("--output-dir", type=Path, default=None, help="Directory for the PDFs")
    parser.add_argument("--debug", action="store_true", help="Display debugging messages")
    return parser


def _print_progress(total: int, current: int) -> None:
    print(f"[{current}/{total}] ", end="", flush=True)
    if current == total:
        print("Success!")


def _announce(listing: InstanceListing) -> None:
    print(f"Downloading {listing.identifier.compact}: ", end="", flush=True)


async def _run(args: argparse.Namespace, config: PatDownloadConfig) -> int:
    session = OPSSession(args.consumer_key, args.secret_key, config=config)
    status = EXIT_OK

    for citation in args.citations:
        try:
            written = await download_citation(
                citation,
                session=session,
                strict=args.strict,
                output_dir=args.output_dir,
                config=config,
                progress=_print_progress,
                on_instance=_announce,
            )
        except IdentifierParseError as exc:
            print(f"Input format error: {exc}")
            status = EXIT_FAILED
            continue
        except OPSAuthenticationError as exc:
            print(f"Authentication failed: {exc}", file=sys.stderr)
            return EXIT_AUTH
        except OPSNotFoundError:
            print("Not Found")
            status = EXIT_FAILED
            continue
        except OPSAPIError as exc:
            print(f"Download failed for {citation}: {exc}", file=sys.stderr)
            status = EXIT_FAILED
            continue

        if not written:
            print(f"No downloadable documents for {citation}")

    return status


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging("DEBUG" if args.debug else config.log_level)

    if not args.citations:
        print("You must enter at least one patent document number.")
        return EXIT_FAILED

    return asyncio.run(_run(args, config))


if __name__ == "__main__":
    sys.exit(main())
