import gzip
import logging
import os

import pytest

from blocklists.errors import DownloadFailure
from blocklists.iblocklist import code as iblocklist

from conftest import FakeSession, gzip_text, ibl_sources, make_config

LEVEL1 = "# level1\nBogon:10.0.0.0-10.255.255.255\nBad host:2.0.0.1-2.0.0.1\n"
LEVEL2 = "\nBad host:2.0.0.1-2.0.0.1\nAds:1.255.0.0-1.255.255.255\n"


def make_session():
    return FakeSession({
        "https://ibl.test/?list=aaa": gzip_text(LEVEL1),
        "https://ibl.test/?list=bbb": gzip_text(LEVEL2),
    })


def test_fetch_list_decompresses(workdir):
    config = make_config(iblocklist_lists=ibl_sources(level1="aaa"))

    result = iblocklist.fetch_list(config.iblocklist_lists[0], workdir, make_session(), config)

    assert result.name == "level1"
    assert result.path == os.path.join(workdir, "iblocklist-level1.p2p")
    assert result.line_count == 3
    with open(result.path, encoding="utf-8") as f:
        assert f.read() == LEVEL1


def test_fetch_lists_keeps_configuration_order(workdir):
    config = make_config(iblocklist_lists=ibl_sources(level2="bbb", level1="aaa"))

    results = iblocklist.fetch_lists(config, workdir, make_session())

    assert [r.name for r in results] == ["level2", "level1"]


def test_build_group_merges_lists(workdir, caplog):
    config = make_config(iblocklist_lists=ibl_sources(level1="aaa", level2="bbb"))

    with caplog.at_level(logging.INFO):
        dest = iblocklist.build_group(config, workdir, make_session())

    with open(dest, encoding="utf-8") as f:
        assert f.read().splitlines() == [
            "Ads:1.255.0.0-1.255.255.255",
            "Bad host:2.0.0.1-2.0.0.1",
            "Bogon:10.0.0.0-10.255.255.255",
        ]
    assert "[level1] collected 3 lines" in caplog.text


def test_build_group_without_lists_is_empty(workdir):
    session = FakeSession()

    dest = iblocklist.build_group(make_config(), workdir, session)

    assert dest == os.path.join(workdir, iblocklist.IBL_FOUT)
    assert os.path.getsize(dest) == 0
    assert session.requested == []


def test_download_failure_is_fatal(workdir, caplog):
    config = make_config(iblocklist_lists=ibl_sources(level1="aaa", missing="zzz"))

    with caplog.at_level(logging.ERROR), pytest.raises(DownloadFailure):
        iblocklist.build_group(config, workdir, make_session())

    assert "[missing] collection failed" in caplog.text


def test_corrupt_archive_is_a_download_failure(workdir):
    config = make_config(iblocklist_lists=ibl_sources(level1="aaa"))
    session = FakeSession({"https://ibl.test/?list=aaa": b"<html>rate limited</html>"})

    with pytest.raises(DownloadFailure):
        iblocklist.build_group(config, workdir, session)


def test_non_utf8_labels_pass_through_unchanged(workdir):
    config = make_config(iblocklist_lists=ibl_sources(level1="aaa"))
    body = b"Caf\xe9 Ltd:1.2.3.4-1.2.3.5\n"
    session = FakeSession({"https://ibl.test/?list=aaa": gzip.compress(body)})

    dest = iblocklist.build_group(config, workdir, session)

    with open(dest, "rb") as f:
        assert f.read() == body


def test_failure_stops_remaining_downloads(workdir):
    config = make_config(iblocklist_lists=ibl_sources(gone="zzz", level1="aaa", level2="bbb"),
                         max_workers=1)
    session = make_session()

    with pytest.raises(DownloadFailure):
        iblocklist.build_group(config, workdir, session)

    assert session.requested == ["https://ibl.test/?list=zzz"]
