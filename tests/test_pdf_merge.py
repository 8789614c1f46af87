import pytest
from pypdf import PdfReader, PdfWriter

from conftest import pdf_page_bytes
from pat_download.utils.pdf_merge import merge_pdf_pages


def test_merge_keeps_page_order(tmp_path):
    pages = []
    for index, width in enumerate((100, 200, 300), start=1):
        writer = PdfWriter()
        writer.add_blank_page(width=width, height=50)
        path = tmp_path / f"page-{index:04d}.pdf"
        with path.open("wb") as handle:
            writer.write(handle)
        pages.append(path)

    output = merge_pdf_pages(pages, tmp_path / "nested" / "merged.pdf")

    widths = [float(page.mediabox.width) for page in PdfReader(str(output)).pages]
    assert widths == [100.0, 200.0, 300.0]


def test_merge_single_page_file(tmp_path):
    page = tmp_path / "page.pdf"
    page.write_bytes(pdf_page_bytes())

    output = merge_pdf_pages([page], tmp_path / "out.pdf")

    assert len(PdfReader(str(output)).pages) == 1


def test_merge_requires_pages(tmp_path):
    with pytest.raises(ValueError):
        merge_pdf_pages([], tmp_path / "out.pdf")
