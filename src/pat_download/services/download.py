"""
Citation download service.

Turns one patent citation into merged PDF files on disk:
parse → list instances through OPS → download and merge each instance.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from pat_download.core.config import PatDownloadConfig, get_config
from pat_download.core.identifiers import parse_identifier
from pat_download.tools.instances import InstanceListing
from pat_download.tools.ops_session import OPSSession, PageProgress, silent_progress

logger = logging.getLogger("DownloadService")

InstanceCallback = Callable[[InstanceListing], None]


async def download_citation(
    raw: str,
    *,
    session: Optional[OPSSession] = None,
    strict: Optional[bool] = None,
    output_dir: Optional[Path] = None,
    config: Optional[PatDownloadConfig] = None,
    progress: PageProgress = silent_progress,
    on_instance: Optional[InstanceCallback] = None,
) -> List[Path]:
    """
    Download every relevant document instance for a citation.

    Args:
        raw: Patent citation in any notation `parse_identifier` accepts.
        session: OPS session to reuse; a new one is created when omitted.
            Reuse one session for all citations of a run so the token and
            quota state carry over.
        strict: Only download instances matching the citation exactly.
            Defaults to the configured `strict_match`.
        output_dir: Where merged PDFs are written. Defaults to the configured
            output directory.
        config: Settings to use instead of the global configuration.
        progress: Page progress callback, see `OPSSession.download_instance`.
        on_instance: Called before each instance download starts.

    Returns:
        Paths of the written PDFs, in download order.

    Raises:
        IdentifierParseError: If the citation cannot be parsed.
        OPSAuthenticationError: If OPS credentials are rejected.
        OPSNotFoundError: If OPS does not know the publication.
        OPSAPIError: On other OPS failures.
    """
    config = config or get_config()
    identifier = parse_identifier(raw)

    if strict is None:
        strict = config.strict_match
    if output_dir is None:
        output_dir = config.ensure_output_directory()
    if session is None:
        session = OPSSession(config=config)

    instances = await session.get_instances(strict, identifier)
    if not instances:
        logger.warning(f"No downloadable document instances found for {identifier}")
        return []

    written: List[Path] = []
    for listing in instances:
        if on_instance is not None:
            on_instance(listing)
        written.append(await session.download_instance(listing, Path(output_dir), progress))
    return written
