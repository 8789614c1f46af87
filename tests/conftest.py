from __future__ import annotations

import io
from typing import Callable, Dict, List

import httpx
import pytest
from pypdf import PdfWriter

from pat_download.core.config import PatDownloadConfig

AUTH_URL = "https://ops.test/3.2/auth/accesstoken"
BASE_URL = "https://ops.test/3.2/rest-services"

IDLE_HEADER = (
    "idle (images=green:200, inpadoc=green:60, other=green:1000, "
    "retrieval=green:200, search=green:30)"
)

IMAGES_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<ops:world-patent-data xmlns="http://www.epo.org/exchange" xmlns:ops="http://ops.epo.org">
  <ops:document-inquiry>
    <ops:inquiry-result>
      <ops:document-instance system="ops.epo.org" number-of-pages="3" desc="FullDocument"
          link="published-data/images/EP/1000000/A1/fullimage">
        <ops:document-format-options>
          <ops:document-format>application/pdf</ops:document-format>
        </ops:document-format-options>
      </ops:document-instance>
      <ops:document-instance system="ops.epo.org" number-of-pages="2" desc="Drawing"
          link="published-data/images/EP/1000000/A1/thumbnail"/>
      <ops:document-instance system="ops.epo.org" number-of-pages="4" desc="FullDocument"
          link="published-data/images/EP/1000000/A3/fullimage"/>
      <ops:document-instance system="ops.epo.org" number-of-pages="1" desc="FullDocument"
          link="published-data/images/EP/1000000/B1/fullimage"/>
      <ops:document-instance system="ops.epo.org" number-of-pages="many" desc="FullDocument"
          link="published-data/images/EP/1000000/B2/fullimage"/>
    </ops:inquiry-result>
  </ops:document-inquiry>
</ops:world-patent-data>
"""


@pytest.fixture
def config(tmp_path) -> PatDownloadConfig:
    return PatDownloadConfig(
        EPO_CONSUMER_KEY="key",
        EPO_CONSUMER_SECRET="secret",
        EPO_OPS_BASE_URL=BASE_URL,
        EPO_OPS_AUTH_URL=AUTH_URL,
        OUTPUT_DIR=tmp_path / "out",
        _env_file=None,
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]) -> Callable:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


def pdf_page_bytes() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class FakeOPS:
    """Minimal OPS stand-in: token endpoint, publication data and page images."""

    def __init__(self, images_xml: bytes = IMAGES_XML, header: str = IDLE_HEADER) -> None:
        self.images_xml = images_xml
        self.header = header
        self.requests: List[httpx.Request] = []
        self.token_requests = 0
        self.missing: set[str] = set()
        self.page = pdf_page_bytes()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        headers: Dict[str, str] = {"X-Throttling-Control": self.header}

        if str(request.url) == AUTH_URL:
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "token-123", "expires_in": 1200})

        path = request.url.path
        if any(item in path for item in self.missing):
            return httpx.Response(404, headers=headers, text="not found")
        if path.endswith("/images"):
            return httpx.Response(200, headers=headers, content=self.images_xml)
        if path.endswith("/fullimage.pdf"):
            return httpx.Response(200, headers=headers, content=self.page)
        return httpx.Response(200, headers=headers, content=b"<empty/>")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_ops() -> FakeOPS:
    return FakeOPS()
