"""
Merge single-page PDFs downloaded from OPS into one document.
"""

import logging
from pathlib import Path
from typing import Sequence

from pypdf import PdfReader, PdfWriter

logger = logging.getLogger("PdfMerge")


def merge_pdf_pages(pages: Sequence[Path], output: Path) -> Path:
    """
    Concatenate `pages` in the given order and write them to `output`.

    Args:
        pages: Paths of the per-page PDF files.
        output: Destination file; parent directories are created.

    Returns:
        The output path.

    Raises:
        ValueError: If no pages are given.
    """
    if not pages:
        raise ValueError("No pages to merge")

    writer = PdfWriter()
    for page_path in pages:
        reader = PdfReader(str(page_path))
        for page in reader.pages:
            writer.add_page(page)

    output.parent.mkdir(parents=True, exist_ok=True)
    with output.open("wb") as handle:
        writer.write(handle)

    logger.debug(f"Merged {len(pages)} page files into {output}")
    return output
