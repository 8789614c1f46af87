import asyncio
import logging

import pytest

from pat_download.core.identifiers import IdentifierParseError, PatentIdentifier
from pat_download.services.download import download_citation
from pat_download.tools.ops_session import OPSSession

_NO_INSTANCES_XML = b"""<ops:world-patent-data xmlns:ops="http://ops.epo.org">
  <ops:document-inquiry><ops:inquiry-result/></ops:document-inquiry>
</ops:world-patent-data>"""


def _session(config, fake_ops, fake_sleep):
    return OPSSession(config=config, transport=fake_ops.transport, sleep=fake_sleep)


def test_download_citation_writes_merged_pdf(config, fake_ops, fake_sleep, tmp_path):
    announced = []

    written = asyncio.run(
        download_citation(
            "EP1000000A1",
            session=_session(config, fake_ops, fake_sleep),
            output_dir=tmp_path,
            config=config,
            on_instance=announced.append,
        )
    )

    assert written == [tmp_path / "EP1000000A1.pdf"]
    assert written[0].exists()
    assert [listing.identifier for listing in announced] == [PatentIdentifier("EP", "1000000", "A1")]


def test_download_citation_uses_configured_output_dir(config, fake_ops, fake_sleep):
    written = asyncio.run(
        download_citation("EP1000000A1", session=_session(config, fake_ops, fake_sleep), config=config)
    )

    assert written == [config.output_dir / "EP1000000A1.pdf"]


def test_strict_defaults_to_configuration(config, fake_ops, fake_sleep, tmp_path):
    config.strict_match = False
    fake_ops.images_xml = fake_ops.images_xml.replace(
        b"EP/1000000/A1/fullimage", b"EP/1000001/A1/fullimage"
    )

    written = asyncio.run(
        download_citation(
            "EP1000000A1",
            session=_session(config, fake_ops, fake_sleep),
            output_dir=tmp_path,
            config=config,
        )
    )

    assert written == [tmp_path / "EP1000001A1.pdf"]


def test_parse_failure_happens_before_any_request(config, fake_ops, fake_sleep):
    with pytest.raises(IdentifierParseError):
        asyncio.run(
            download_citation("not-a-patent", session=_session(config, fake_ops, fake_sleep), config=config)
        )

    assert fake_ops.requests == []


def test_no_instances_returns_empty_list(config, fake_ops, fake_sleep, tmp_path, caplog):
    fake_ops.images_xml = _NO_INSTANCES_XML

    with caplog.at_level(logging.WARNING, logger="DownloadService"):
        written = asyncio.run(
            download_citation(
                "EP1000000A1",
                session=_session(config, fake_ops, fake_sleep),
                output_dir=tmp_path,
                config=config,
            )
        )

    assert written == []
    assert "No downloadable document instances found for EP1000000A1" in caplog.text
