"""Tests for streamed HTTP downloads."""

import pytest
import requests
import responses
from lidaraccess.download import download_file, download_files, filename_from_url

BASE_URL = "https://usgslidareuwest.blob.core.windows.net/usgs-3dep-copc/usgs-copc"
EUGENE_URL = f"{BASE_URL}/OR_Eugene_2009/000017.copc.laz"
MCKENZIE_URL = f"{BASE_URL}/OR_McKenzieRiver_2021/000142.copc.laz"


@pytest.fixture
def no_retry_wait(monkeypatch):
    """Skip tenacity's backoff between download attempts."""
    monkeypatch.setattr(download_file.retry, "sleep", lambda seconds: None)


class TestFilenameFromUrl:
    def test_last_path_segment(self):
        assert filename_from_url(EUGENE_URL) == "000017.copc.laz"

    def test_query_string_is_ignored(self):
        assert filename_from_url(f"{EUGENE_URL}?sv=2021&sig=abc") == "000017.copc.laz"


class TestDownloadFile:
    @responses.activate
    def test_writes_file(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, body=b"LASF-copc-bytes")

        path = download_file(EUGENE_URL, tmp_path, requests.Session())

        assert path == tmp_path / "000017.copc.laz"
        assert path.read_bytes() == b"LASF-copc-bytes"
        assert not (tmp_path / "000017.copc.laz.part").exists()

    @responses.activate
    def test_custom_filename_and_signed_url(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, body=b"data")

        path = download_file(
            f"{EUGENE_URL}?sv=2021&sig=abc",
            tmp_path,
            requests.Session(),
            filename="OR_Eugene_2009.copc.laz",
        )

        assert path.name == "OR_Eugene_2009.copc.laz"
        assert "sig=abc" in responses.calls[0].request.url

    @responses.activate
    def test_small_chunks(self, tmp_path):
        body = bytes(range(256)) * 10
        responses.add(responses.GET, EUGENE_URL, body=body)

        path = download_file(EUGENE_URL, tmp_path, requests.Session(), chunk_size=7)

        assert path.read_bytes() == body

    @responses.activate
    def test_existing_file_is_not_fetched(self, tmp_path, caplog):
        (tmp_path / "000017.copc.laz").write_bytes(b"already here")

        with caplog.at_level("INFO"):
            path = download_file(EUGENE_URL, tmp_path, requests.Session())

        assert path.read_bytes() == b"already here"
        assert len(responses.calls) == 0
        assert "already downloaded" in caplog.text

    @responses.activate
    def test_http_error_raised_without_retry(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, status=403)

        with pytest.raises(requests.HTTPError):
            download_file(EUGENE_URL, tmp_path, requests.Session())

        assert len(responses.calls) == 1
        assert list(tmp_path.iterdir()) == []

    @responses.activate
    def test_connection_errors_are_retried(self, tmp_path, no_retry_wait):
        responses.add(
            responses.GET, EUGENE_URL, body=requests.ConnectionError("reset")
        )
        responses.add(responses.GET, EUGENE_URL, body=b"data")

        path = download_file(EUGENE_URL, tmp_path, requests.Session())

        assert path.read_bytes() == b"data"
        assert len(responses.calls) == 2

    @responses.activate
    def test_persistent_connection_error(self, tmp_path, no_retry_wait):
        responses.add(
            responses.GET, EUGENE_URL, body=requests.ConnectionError("offline")
        )

        with pytest.raises(requests.ConnectionError):
            download_file(EUGENE_URL, tmp_path, requests.Session())

        assert len(responses.calls) == 3


class TestDownloadFiles:
    @responses.activate
    def test_downloads_in_order(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, body=b"eugene")
        responses.add(responses.GET, MCKENZIE_URL, body=b"mckenzie")
        target = tmp_path / "nested" / "lidar"

        paths = download_files(
            [(EUGENE_URL, "eugene.copc.laz"), (MCKENZIE_URL, "mckenzie.copc.laz")],
            target,
            max_workers=2,
        )

        assert paths == [target / "eugene.copc.laz", target / "mckenzie.copc.laz"]
        assert paths[1].read_bytes() == b"mckenzie"

    @responses.activate
    def test_accepts_string_directory(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, body=b"eugene")

        paths = download_files([(EUGENE_URL, "a.copc.laz")], str(tmp_path))

        assert paths == [tmp_path / "a.copc.laz"]

    def test_empty(self, tmp_path):
        target = tmp_path / "unused"

        assert download_files([], target) == []
        assert not target.exists()

    @responses.activate
    def test_failure_propagates(self, tmp_path):
        responses.add(responses.GET, EUGENE_URL, body=b"eugene")
        responses.add(responses.GET, MCKENZIE_URL, status=404)

        with pytest.raises(requests.HTTPError):
            download_files(
                [(EUGENE_URL, "a.copc.laz"), (MCKENZIE_URL, "b.copc.laz")], tmp_path
            )
