import gzip
import io
import zipfile

import pytest
import requests

from blocklists.downloader import RetryPolicy
from config_loader import FilterConfig, IBlockListSource

LOCATIONS_HEADER = ("geoname_id,locale_code,continent_code,continent_name,"
                    "country_iso_code,country_name,is_in_european_union")
BLOCKS_HEADER = ("network,geoname_id,registered_country_geoname_id,"
                 "represented_country_geoname_id,is_anonymous_proxy,is_satellite_provider")


class FakeResponse:
    def __init__(self, url, body=b"", status_code=200):
        self.url = url
        self.body = body
        self.status_code = status_code

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]


class FakeSession:
    """Serves canned bodies by URL; unknown URLs fail like a dead host"""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.requested = []
        self.closed = False

    def close(self):
        self.closed = True

    def get(self, url, stream=False, timeout=None):
        self.requested.append(url)
        if url not in self.routes:
            raise requests.ConnectionError(f"Max retries exceeded with url: {url}")
        body = self.routes[url]
        if isinstance(body, int):
            return FakeResponse(url, b"", status_code=body)
        return FakeResponse(url, body)


def gzip_text(text):
    return gzip.compress(text.encode("utf-8"))


def zip_tables(tables, prefix="GeoLite2-Country-CSV_20240102/"):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr(prefix, "")
        for name, text in tables.items():
            zf.writestr(prefix + name, text)
    return buf.getvalue()


def locations_csv(*rows):
    return "\n".join((LOCATIONS_HEADER,) + rows) + "\n"


def blocks_csv(*rows):
    return "\n".join((BLOCKS_HEADER,) + rows) + "\n"


GERMANY = '2921044,en,EU,Europe,DE,Germany,1'
FRANCE = '3017382,en,EU,Europe,FR,France,1'
ANTARCTICA = '6255152,en,AN,Antarctica,,,0'
KOREA = '1835841,en,AS,Asia,KR,"Korea, Republic of",0'


def make_config(**overrides):
    values = dict(
        iblocklist_url="https://ibl.test/?list=%s",
        geolite2_url="https://gl2.test/?license_key=%s",
        retry=RetryPolicy(max_attempts=1, connect_timeout=1, read_timeout=1, backoff_factor=0),
        max_workers=2,
    )
    values.update(overrides)
    return FilterConfig(**values)


def ibl_sources(**lists):
    return tuple(IBlockListSource(name, list_id) for name, list_id in lists.items())


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return str(path)
