from __future__ import annotations

from cdnmirror.core.fonts import FontResolver, plain_font_name
from cdnmirror.core.local_files import LocalTree


def _resolver(site_tree) -> FontResolver:
    static_dir, media_dir = site_tree
    return FontResolver(LocalTree(static_dir, media_dir), "https://shop.example/")


def test_plain_font_name_strips_versions_and_hashes() -> None:
    assert plain_font_name("icon-abc12345.woff2") == "icon"
    assert plain_font_name("roboto-v20.ttf") == "roboto"
    assert plain_font_name("opensans-700.woff") == "opensans"
    assert plain_font_name("Luma-Icons.1f2e3d4c5b.eot") == "Luma-Icons"


def test_non_font_is_skipped(site_tree) -> None:
    assert _resolver(site_tree).resolve("/static/frontend/css/styles.css").status == "skipped"


def test_unresolvable_font_is_error(site_tree) -> None:
    assert _resolver(site_tree).resolve("/fonts/outside.woff2").status == "error"


def test_missing_font_recovers_similar_sibling(site_tree, write_file) -> None:
    static_dir, _ = site_tree
    sibling = write_file(static_dir, "frontend/fonts/icon-def67890.woff2")
    write_file(static_dir, "frontend/fonts/roboto-v20.woff2")
    write_file(static_dir, "frontend/fonts/icon-notes.txt")

    result = _resolver(site_tree).resolve("/static/frontend/fonts/icon-abc12345.woff2")

    assert result.status == "corrected"
    assert result.alternatives == [sibling.resolve()]


def test_missing_font_without_alternatives_is_error(site_tree, write_file) -> None:
    static_dir, _ = site_tree
    write_file(static_dir, "frontend/fonts/roboto-v20.woff2")
    result = _resolver(site_tree).resolve("/static/frontend/fonts/icon-abc12345.woff2")
    assert result.status == "error"
    assert result.alternatives == []


def test_health_checks(site_tree, write_file) -> None:
    static_dir, _ = site_tree
    write_file(static_dir, "fonts/empty.woff", b"")
    write_file(static_dir, "fonts/big.ttf", b"0" * (1024 * 1024 + 1))
    write_file(static_dir, "fonts/ok.woff2", b"wOF2")
    resolver = _resolver(site_tree)
    assert resolver.resolve("/static/fonts/empty.woff").status == "error_empty_file"
    assert resolver.resolve("/static/fonts/big.ttf").status == "warning_large_file"
    assert resolver.resolve("https://shop.example/static/fonts/ok.woff2?v=2").status == "healthy"


def test_scan_css_resolves_relative_references(site_tree) -> None:
    css = """
    @font-face { font-family: icons; src: url('../fonts/icons.woff2?v=1') format('woff2'),
        url("/static/frontend/fonts/icons.woff") format('woff'); }
    .a { background: url(../images/bg.png); }
    @font-face { src: url(https://fonts.other.example/static/x.ttf); }
    """
    fonts = _resolver(site_tree).scan_css(css, "/static/frontend/css/styles.css")
    assert fonts == ["/static/frontend/fonts/icons.woff2", "/static/frontend/fonts/icons.woff"]


def test_check_stylesheet_reports_missing_fonts(site_tree, write_file) -> None:
    static_dir, _ = site_tree
    write_file(
        static_dir,
        "frontend/css/styles.css",
        b"@font-face{src:url('../fonts/icon-abc12345.woff2')} @font-face{src:url('../fonts/ok.woff')}",
    )
    write_file(static_dir, "frontend/fonts/icon-def67890.woff2")
    write_file(static_dir, "frontend/fonts/ok.woff")

    refs = _resolver(site_tree).check_stylesheet("/static/frontend/css/styles.css")

    assert [(r.url, r.exists) for r in refs] == [
        ("/static/frontend/fonts/icon-abc12345.woff2", False),
        ("/static/frontend/fonts/ok.woff", True),
    ]
    assert [p.name for p in refs[0].alternatives] == ["icon-def67890.woff2"]
