from __future__ import annotations

from postforge.styles import SEED_WHITELIST, matchable, prune_css, stylesheet_selectors, used_selectors

CSS = """
.site-header { color: #c33; }
.post-card, .unused-card { margin: 0; }
.post-tags a:hover { color: #c33; }
ul > li::before { content: "-"; }
.unused-widget { display: none; }
@media (max-width: 600px) {
  .post-card { margin: 4px; }
  .unused-mobile { color: red; }
}
@font-face { font-family: "Body"; src: url(body.woff2); }
"""

HTML = """<header class="site-header"></header>
<div class="post-card"><div class="post-tags"><ul><li><a href="#">go</a></li></ul></div></div>
"""


def test_stylesheet_selectors_flatten_groups_and_media():
    assert stylesheet_selectors(CSS) == (
        ".site-header",
        ".post-card",
        ".unused-card",
        ".post-tags a:hover",
        "ul > li::before",
        ".unused-widget",
        ".unused-mobile",
    )


def test_matchable_strips_interaction_state():
    assert matchable(".post-tags a:hover") == ".post-tags a"
    assert matchable("ul > li::before") == "ul > li"
    assert matchable("a:focus-visible") == "a"
    assert matchable(":hover") == "*"
    assert matchable("li:first-child") == "li:first-child"


def test_used_selectors_matches_rendered_html():
    used = used_selectors(CSS, HTML)
    assert used == {".site-header", ".post-card", ".post-tags a:hover", "ul > li::before"}


def test_used_selectors_keeps_selectors_it_cannot_evaluate():
    assert used_selectors(".a:unknown-pseudo(x) { color: red; }", "<p></p>") == {".a:unknown-pseudo(x)"}


def test_prune_css_keeps_only_whitelisted_selectors():
    pruned = prune_css(CSS, {".site-header", ".post-card"})

    assert ".site-header" in pruned
    assert ".post-card {" in pruned
    assert ".unused-card" not in pruned
    assert ".unused-widget" not in pruned
    assert ".unused-mobile" not in pruned
    assert "@media (max-width: 600px)" in pruned
    assert "@font-face" in pruned


def test_prune_css_drops_empty_media_blocks():
    assert "@media" not in prune_css(CSS, {".site-header"})


def test_seed_whitelist_survives_pruning():
    css = ".post-tags { display: flex; } .mt-30 { margin-top: 30px; } .gone { color: red; }"
    pruned = prune_css(css, set(SEED_WHITELIST))

    assert ".post-tags" in pruned
    assert ".mt-30" in pruned
    assert ".gone" not in pruned
