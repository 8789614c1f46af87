"""Core module for pat-download."""

from pat_download.core.config import get_config, reload_config, PatDownloadConfig
from pat_download.core.identifiers import IdentifierParseError, PatentIdentifier, parse_identifier

__all__ = [
    "get_config",
    "reload_config",
    "PatDownloadConfig",
    "IdentifierParseError",
    "PatentIdentifier",
    "parse_identifier",
]
