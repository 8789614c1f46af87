"""
Document instance discovery for OPS image retrieval.

The OPS ``images`` inquiry lists every scanned instance of a publication
(full document, drawings, first page...) together with its page count and the
image link to fetch it from. Only ``FullDocument`` instances are downloaded.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional
from xml.etree import ElementTree as ET

from pat_download.core.identifiers import PatentIdentifier

logger = logging.getLogger("InstanceFilter")

FULL_DOCUMENT_DESC = "FullDocument"

# Kinds that are supplementary to the main EP publication: A3 carries the
# search report, A4 the supplementary search report.
SUPPLEMENTARY_KINDS = (("EP", "A3"), ("EP", "A4"))

_IMAGE_LINK_RE = re.compile(
    r"published-data/images/(?P<country>[A-Za-z]{2})/(?P<serial>\d+)/(?P<kind>[A-Za-z0-9]+)"
)


@dataclass(frozen=True)
class InstanceListing:
    """One downloadable document instance."""
    page_count: int
    identifier: PatentIdentifier


def parse_image_link(link: str) -> Optional[PatentIdentifier]:
    """Identifier encoded in an OPS image link, or None if it is not one."""
    match = _IMAGE_LINK_RE.match(link or "")
    if not match:
        return None
    return PatentIdentifier(match.group("country"), match.group("serial"), match.group("kind"))


def _parse_page_count(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def extract_instance_listings(root: ET.Element) -> List[InstanceListing]:
    """
    Collect full-document instances from an OPS ``images`` inquiry response.

    Instances without a usable image link or page count are skipped.
    """
    listings: List[InstanceListing] = []
    for node in root.findall(".//{*}document-instance"):
        if node.attrib.get("desc") != FULL_DOCUMENT_DESC:
            continue
        identifier = parse_image_link(node.attrib.get("link", ""))
        page_count = _parse_page_count(node.attrib.get("number-of-pages"))
        if identifier is None or page_count is None:
            logger.debug(
                "Skipping document instance link=%r pages=%r",
                node.attrib.get("link"),
                node.attrib.get("number-of-pages"),
            )
            continue
        listings.append(InstanceListing(page_count, identifier))
    return listings


def is_equivalent(candidate: PatentIdentifier, requested: PatentIdentifier) -> bool:
    """
    Whether `candidate` is the publication that was asked for.

    Country and serial must agree; a requested identifier without a kind
    accepts any kind.
    """
    if candidate.country_code != requested.country_code or candidate.serial != requested.serial:
        return False
    return requested.kind is None or candidate.kind == requested.kind


def _is_unwanted_supplement(candidate: PatentIdentifier, requested: PatentIdentifier) -> bool:
    for country, kind in SUPPLEMENTARY_KINDS:
        if candidate.country_code == country and candidate.kind == kind and requested.kind != kind:
            return True
    return False


def filter_instances(
    strict: bool,
    requested: PatentIdentifier,
    listings: Iterable[InstanceListing],
) -> List[InstanceListing]:
    """
    Select the instances worth downloading for `requested`.

    Args:
        strict: Only keep instances equivalent to the requested identifier.
        requested: The identifier the user asked for.
        listings: Candidate instances, in OPS order.

    Returns:
        Kept instances in their original order.
    """
    kept: List[InstanceListing] = []
    for listing in listings:
        if listing.page_count <= 1:
            continue
        if strict and not is_equivalent(listing.identifier, requested):
            continue
        if _is_unwanted_supplement(listing.identifier, requested):
            continue
        kept.append(listing)
    return kept
