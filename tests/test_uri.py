"""Tests for the path to key/URL translation."""

from pathlib import PurePosixPath

import pytest

from bucketfs.errors import ErrorKind, StorageError
from bucketfs.uri import HttpUri, percent_encode

BASE = "http://localhost:8088"
OBJECTS = f"{BASE}/v1/b/anfang/o"


@pytest.fixture
def uris():
    return HttpUri(BASE, "anfang")


@pytest.fixture
def rooted():
    return HttpUri(BASE, "anfang", root="the-root")


def test_percent_encode_keeps_only_ascii_alphanumerics() -> None:
    assert percent_encode("abcXYZ019") == "abcXYZ019"
    assert percent_encode("a-b_c.d~e/f") == "a%2Db%5Fc%2Ed%7Ee%2Ff"
    assert percent_encode("é") == "%C3%A9"


@pytest.mark.parametrize("path", ["a", "a/b.txt", "the-sub-folder/", "", "x y/z"])
def test_leading_separator_is_insignificant(uris, rooted, path) -> None:
    assert uris.resolve_key(path) == uris.resolve_key("/" + path)
    assert rooted.resolve_key(path) == rooted.resolve_key("/" + path)


def test_resolve_key_joins_root(rooted) -> None:
    assert rooted.resolve_key("/docs/a.txt") == "the%2Droot%2Fdocs%2Fa%2Etxt"
    assert rooted.resolve_key("") == "the%2Droot"
    assert rooted.resolve_key("/") == "the%2Droot"


def test_resolve_key_accepts_bytes_and_paths(uris) -> None:
    assert uris.resolve_key(b"/docs/a") == "docs%2Fa"
    assert uris.resolve_key(PurePosixPath("/docs/a")) == "docs%2Fa"


def test_undecodable_path_is_rejected(uris) -> None:
    with pytest.raises(StorageError) as exc_info:
        uris.resolve_key(b"/bad-\xff")
    assert exc_info.value.kind == ErrorKind.NAME_REJECTED


def test_unencodable_path_is_rejected(uris) -> None:
    with pytest.raises(StorageError) as exc_info:
        uris.resolve_key("bad-\udcff")
    assert exc_info.value.kind == ErrorKind.NAME_REJECTED


def test_list_url_for_sub_folder(uris) -> None:
    assert uris.list_url("the-sub-folder") == f"{OBJECTS}?prefix=the%2Dsub%2Dfolder%2F"


@pytest.mark.parametrize(
    "sub",
    ["/", "", "/the-sub-folder", "the-sub-folder", "the-sub-folder/", "/the-sub-folder/"],
)
def test_list_url_under_root(rooted, sub) -> None:
    expected = "the%2Droot%2F"
    if sub.strip("/"):
        expected += "the%2Dsub%2Dfolder%2F"
    assert rooted.list_url(sub) == f"{OBJECTS}?prefix={expected}"


@pytest.mark.parametrize("path", ["a", "a/", "a/b", "a/b/", "/a/b/"])
def test_list_url_ends_with_single_delimiter(uris, path) -> None:
    url = uris.list_url(path)
    assert url.endswith("%2F")
    assert not url.endswith("%2F%2F")


def test_list_url_for_bucket_root(uris) -> None:
    assert uris.list_url("") == f"{OBJECTS}?prefix="
    assert uris.list_url("/") == f"{OBJECTS}?prefix="


def test_object_urls(uris) -> None:
    assert uris.metadata_url("/reports/a.csv") == f"{OBJECTS}/reports%2Fa%2Ecsv"
    assert uris.get_url("/reports/a.csv") == f"{OBJECTS}/reports%2Fa%2Ecsv?alt=media"
    assert uris.delete_url("reports/a.csv") == f"{OBJECTS}/reports%2Fa%2Ecsv"


def test_put_url_trims_trailing_delimiter(uris) -> None:
    assert uris.put_url("/reports/a.csv") == f"{OBJECTS}?name=reports%2Fa%2Ecsv"
    assert uris.put_url("/reports/") == f"{OBJECTS}?name=reports"


def test_mkd_url_is_delimiter_terminated(uris) -> None:
    assert uris.mkd_url("/reports") == f"{OBJECTS}?name=reports%2F"
    assert uris.mkd_url("/reports/") == f"{OBJECTS}?name=reports%2F"


def test_directory_marker_and_copy_urls(uris) -> None:
    assert uris.directory_marker_url("/reports") == f"{OBJECTS}/reports%2F"
    assert uris.copy_url("/a.txt", "/b/c.txt") == f"{OBJECTS}/a%2Etxt/copyTo/b/anfang/o/b%2Fc%2Etxt"


@pytest.mark.parametrize("base", ["localhost:8088", "ftp://localhost", "http://", "not a url"])
def test_bad_base_url_is_rejected(base) -> None:
    with pytest.raises(StorageError) as exc_info:
        HttpUri(base, "anfang").metadata_url("a")
    assert exc_info.value.kind == ErrorKind.NAME_REJECTED
