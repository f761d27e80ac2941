"""Tests for symbol server retrieval and atomic cache writes."""
import pytest
import requests

from trace_symbolicator.exceptions import SymbolFetchError
from trace_symbolicator.symbol_fetcher import IN_PROGRESS_DIR, FetchCoordinator, build_session


SERVERS = ["https://first.example.com/symbols", "https://second.example.com/"]
FIRST_URL = "https://first.example.com/symbols/foo.dll.pdb/0123ABCD1/foo.dll.sym"
SECOND_URL = "https://second.example.com/foo.dll.pdb/0123ABCD1/foo.dll.sym"


def _dest(tmp_path):
    return tmp_path / "foo.dll.pdb" / "0123ABCD1" / "foo.dll.sym"


def test_build_url_encodes_path_components():
    url = FetchCoordinator.build_url("https://symbols.example.com/", "my lib#1.pdb", "ABC1", "my lib#1.sym")
    assert url == "https://symbols.example.com/my%20lib%231.pdb/ABC1/my%20lib%231.sym"


def test_build_url_escapes_slashes_in_module_names():
    url = FetchCoordinator.build_url("https://s.example.com", "usr/lib/libc.so", "AB", "usr/lib/libc.so.sym")
    assert url == "https://s.example.com/usr%2Flib%2Flibc.so/AB/usr%2Flib%2Flibc.so.sym"


def test_first_server_hit(tmp_path, mock_session_factory, ok_response, sample_sym):
    session = mock_session_factory({FIRST_URL: ok_response()})
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    assert fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))
    assert _dest(tmp_path).read_text(encoding="utf-8") == sample_sym
    assert session.requested == [FIRST_URL]


def test_404_falls_back_in_priority_order(tmp_path, mock_session_factory, ok_response, sample_sym):
    session = mock_session_factory({SECOND_URL: ok_response()})
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    assert fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))
    assert session.requested == [FIRST_URL, SECOND_URL]
    assert _dest(tmp_path).read_text(encoding="utf-8") == sample_sym


def test_not_found_anywhere(tmp_path, mock_session_factory):
    session = mock_session_factory()
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    assert fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path)) is False
    assert session.requested == [FIRST_URL, SECOND_URL]
    assert not _dest(tmp_path).exists()


def test_server_error_is_fatal(tmp_path, mock_session_factory, mock_response, ok_response):
    session = mock_session_factory({
        FIRST_URL: mock_response(500),
        SECOND_URL: ok_response(),
    })
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    with pytest.raises(SymbolFetchError) as excinfo:
        fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))

    assert excinfo.value.status_code == 500
    assert excinfo.value.url == FIRST_URL
    # The second server is never consulted
    assert session.requested == [FIRST_URL]
    assert not _dest(tmp_path).exists()


def test_transport_error_is_fatal(tmp_path, mock_session_factory):
    session = mock_session_factory({FIRST_URL: requests.exceptions.ConnectionError("connection refused")})
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    with pytest.raises(SymbolFetchError) as excinfo:
        fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))
    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)


def test_interrupted_download_leaves_no_file(tmp_path, mock_session_factory, mock_response, sample_sym):
    broken = mock_response(200, sample_sym.encode("utf-8"), chunk_size=8, fail_after_chunks=2)
    session = mock_session_factory({FIRST_URL: broken})
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    with pytest.raises(SymbolFetchError):
        fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))

    assert not _dest(tmp_path).exists()
    assert list((tmp_path / IN_PROGRESS_DIR).iterdir()) == []
    assert broken.closed


def test_staging_directory_is_empty_after_success(tmp_path, mock_session_factory, ok_response):
    session = mock_session_factory({FIRST_URL: ok_response()})
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=session)

    fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))
    assert list((tmp_path / IN_PROGRESS_DIR).iterdir()) == []


def test_existing_file_is_replaced(tmp_path, mock_session_factory, ok_response, sample_sym):
    dest = _dest(tmp_path)
    dest.parent.mkdir(parents=True)
    dest.write_text("stale", encoding="utf-8")
    session = mock_session_factory({FIRST_URL: ok_response()})

    FetchCoordinator(tmp_path, SERVERS, session=session).fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", dest)
    assert dest.read_text(encoding="utf-8") == sample_sym


def test_on_fetch_hook_sees_every_attempt(tmp_path, mock_session_factory):
    seen = []
    fetcher = FetchCoordinator(tmp_path, SERVERS, session=mock_session_factory(), on_fetch=seen.append)
    fetcher.fetch("foo.dll.pdb", "0123ABCD1", "foo.dll.sym", _dest(tmp_path))
    assert seen == [FIRST_URL, SECOND_URL]


def test_build_session_mounts_retrying_adapter():
    session = build_session(retries=5)
    adapter = session.get_adapter("https://symbols.example.com/")
    assert adapter.max_retries.total == 5
    assert 503 in adapter.max_retries.status_forcelist
    assert session.headers["User-Agent"].startswith("trace-symbolicator/")
