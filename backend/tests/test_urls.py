from __future__ import annotations

from cdnmirror.core.urls import (
    cdn_url_for,
    fingerprint,
    is_merged_bundle,
    normalize_asset_url,
    path_extension,
    split_root,
)


def test_normalize_strips_host_and_query_for_own_site() -> None:
    assert normalize_asset_url("https://site.example/static/a.js?v=2", "https://site.example/") == "/static/a.js"


def test_normalize_rejects_foreign_host_when_base_known() -> None:
    assert normalize_asset_url("https://other.example/static/a.js", "https://site.example") == ""


def test_normalize_accepts_any_host_without_base() -> None:
    assert normalize_asset_url("https://other.example/media/x.png") == "/media/x.png"


def test_normalize_rejects_data_uri_and_unknown_roots() -> None:
    assert normalize_asset_url("data:image/png;base64,AAAA") == ""
    assert normalize_asset_url("/checkout/cart.js") == ""
    assert normalize_asset_url("") == ""
    assert normalize_asset_url(None) == ""


def test_normalize_prepends_slash_and_drops_fragment() -> None:
    assert normalize_asset_url("static/frontend/icons.svg#cart") == "/static/frontend/icons.svg"


def test_normalize_protocol_relative_url() -> None:
    assert normalize_asset_url("//site.example/static/b.css", "https://site.example") == "/static/b.css"


def test_normalize_is_idempotent() -> None:
    for raw in (
        "https://site.example/static/a.js?v=2",
        "/media/catalog/product/x.jpg",
        "static/_cache/merged/abc.min.css?x",
    ):
        once = normalize_asset_url(raw, "https://site.example")
        assert normalize_asset_url(once, "https://site.example") == once


def test_cdn_url_for_avoids_double_slashes() -> None:
    base = "https://cdn.example/gh/acme/repo@main/"
    assert cdn_url_for("/static/frontend/css/styles.css", base) == (
        "https://cdn.example/gh/acme/repo@main/frontend/css/styles.css"
    )
    assert cdn_url_for("/media/x.png", base.rstrip("/")) == "https://cdn.example/gh/acme/repo@main/x.png"
    assert cdn_url_for("/other/x.png", base) == ""


def test_split_root_and_helpers() -> None:
    assert split_root("/static/a/b.css") == ("static", "a/b.css")
    assert split_root("/media/c.jpg") == ("media", "c.jpg")
    assert split_root("/nope/c.jpg") == ("", "")
    assert path_extension("/static/a/b.MIN.JS?v=1") == "js"
    assert is_merged_bundle("/static/_cache/merged/0a1b.css")
    assert fingerprint("/static/a.js") == fingerprint("/static/a.js")
    assert fingerprint("/static/a.js") != fingerprint("/static/b.js")


def test_normalize_rejects_malformed_absolute_url() -> None:
    assert normalize_asset_url("http://[broken.png", "https://site.example/") == ""
    assert normalize_asset_url("//[oops/static/a.js") == ""
    assert path_extension("http://[broken.png") == ""
