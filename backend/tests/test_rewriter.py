from __future__ import annotations

from cdnmirror.core.rewriter import HtmlRewriter, RewriteCache, RewriteReport, rewrite_html

CDN = "https://cdn.example/gh/acme/repo@main/"
ORIGIN = "http://shop.example"
SECURE = "https://shop.example"


def _rewriter(**kwargs) -> HtmlRewriter:
    return HtmlRewriter(CDN, ORIGIN, SECURE, **kwargs)


def test_stylesheet_link_points_at_cdn() -> None:
    html = '<link href="/static/frontend/css/styles.css">'
    assert rewrite_html(html, [], CDN) == '<link href="https://cdn.example/gh/acme/repo@main/frontend/css/styles.css">'


def test_rewrite_is_idempotent_with_retained_cache() -> None:
    html = (
        '<link rel="stylesheet" href="/static/a.css"><script src="/static/b.js"></script>'
        '<script src="/static/frontend/requirejs-config.js"></script>'
        '<div style="background:url(/media/hero.jpg)"></div>'
        "<script>var tpl = '/static/dyn/widget.js';</script>"
    )
    cache = RewriteCache()
    rewriter = _rewriter()
    once = rewriter.rewrite(html, ["/media/hero.jpg"], cache)
    report = RewriteReport()
    twice = rewriter.rewrite(once, ["/media/hero.jpg"], cache, report)

    assert twice == once
    assert report.replacements == 0
    assert f"url({CDN}hero.jpg)" in once
    assert f"'{CDN}dyn/widget.js'" in once


def test_critical_files_are_never_rewritten() -> None:
    html = (
        '<script src="/static/frontend/Acme/theme/en_US/requirejs-config.js"></script>'
        '<script src="/static/frontend/Acme/theme/en_US/mage/polyfill.js"></script>'
    )
    urls = ["/static/frontend/Acme/theme/en_US/requirejs-config.js"]
    cache = RewriteCache()
    assert _rewriter().rewrite(html, urls, cache) == html
    assert len(cache.skipped) == 2


def test_duplicate_identical_urls_are_each_rewritten() -> None:
    html = '<script src="/static/x.js"></script><p>hi</p><script src="/static/x.js"></script>'
    out = rewrite_html(html, [], CDN)
    assert out.count(f'src="{CDN}x.js"') == 2
    assert "/static/x.js" not in out


def test_query_string_is_dropped_on_rewrite() -> None:
    out = rewrite_html('<link href="/static/a.css?v=12" rel="stylesheet">', [], CDN)
    assert out == f'<link href="{CDN}a.css" rel="stylesheet">'


def test_declared_urls_cover_absolute_and_attribute_forms() -> None:
    html = (
        '<img src="/media/catalog/p.jpg">'
        '<img src="https://shop.example/media/catalog/p.jpg">'
        '<a href="http://shop.example/media/catalog/p.jpg">zoom</a>'
    )
    out = _rewriter().rewrite(html, ["https://shop.example/media/catalog/p.jpg"])
    assert out.count(f"{CDN}catalog/p.jpg") == 3
    assert "shop.example" not in out


def test_unsafe_extension_is_skipped_unless_merged_bucket() -> None:
    html = '<a href="/media/manual.pdf">pdf</a><link href="/static/_cache/merged/abc.bundle">'
    cache = RewriteCache()
    out = _rewriter().rewrite(html, ["/media/manual.pdf", "/static/_cache/merged/abc.bundle"], cache)
    assert 'href="/media/manual.pdf"' in out
    assert f'href="{CDN}_cache/merged/abc.bundle"' in out


def test_deferrable_scripts_gain_defer_once() -> None:
    html = (
        '<script type="text/javascript" src="/static/Magento_Ui/js/grid/columns.js"></script>'
        '<script src="/static/Magento_Review/js/process.js" async></script>'
        '<script src="/static/app/main.js"></script>'
    )
    out = rewrite_html(html, [], CDN)
    assert f'src="{CDN}Magento_Ui/js/grid/columns.js" defer></script>' in out
    assert f'src="{CDN}Magento_Review/js/process.js" async></script>' in out
    assert f'src="{CDN}app/main.js"></script>' in out
    assert out.count("defer") == 1


def test_excluded_paths_are_left_alone() -> None:
    html = '<link href="/static/vendor/legacy.css"><link href="/static/new.css">'
    out = _rewriter(excluded_paths=["vendor/legacy"]).rewrite(html, [])
    assert 'href="/static/vendor/legacy.css"' in out
    assert f'href="{CDN}new.css"' in out


def test_quoted_catch_all_requires_matching_quotes() -> None:
    html = """<script>load("/static/lib/chart.js"); var s = '/static/lib/style.css';</script>"""
    out = rewrite_html(html, [], CDN)
    assert f'"{CDN}lib/chart.js"' in out
    assert f"'{CDN}lib/style.css'" in out


def test_untouched_markup_is_byte_identical() -> None:
    html = "<html>\n  <body data-x='1'>  <p>Ünïcode &amp; stuff</p>\r\n</body></html>"
    assert rewrite_html(html, ["/static/a.css"], CDN) == html


def test_empty_cdn_base_is_noop() -> None:
    html = '<link href="/static/a.css">'
    assert rewrite_html(html, [], "") == html


def test_absolute_url_replacement_stops_at_path_boundary() -> None:
    html = (
        '<a href="https://shop.example/static/a.json">data</a>'
        '<a href="https://shop.example/static/a.js?v=3">script</a>'
        '<p>see http://shop.example/static/a.js</p>'
    )
    out = _rewriter().rewrite(html, ["/static/a.js"])
    assert 'href="https://shop.example/static/a.json"' in out
    assert f'href="{CDN}a.js?v=3"' in out
    assert f"see {CDN}a.js</p>" in out
