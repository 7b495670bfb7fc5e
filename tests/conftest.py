from __future__ import annotations

from pathlib import Path

import pytest

from postforge.config import SiteConfig

SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Example Blog</title>
  <meta class="metaTitle" property="og:title">
  <meta class="metaDescription" name="description">
  <meta class="metaUrl" property="og:url">
  <meta class="metaImage" property="og:image">
  <meta class="metaPublishedTime" property="article:published_time">
  <meta class="metaModifiedTime" property="article:modified_time">
  <meta class="metaTag" property="article:tag">
  <link rel="stylesheet" href="/css/style.min.css">
</head>
<body>
  <header class="site-header"><a href="/">Example Blog</a></header>
  <main id="mainContent"></main>
  <script src="/js/bundle.min.js"></script>
</body>
</html>
"""

POST_TEMPLATE = """<div id="post-thumbnail"></div>
<div id="post-inner" class="post-body"></div>
"""

POST_LOOP = """<div class="post-card">
  <div class="post-thumbnail"></div>
  <a class="post-link"><h2 class="post-title"></h2></a>
  <span class="post-date"></span> by <span class="post-author"></span>
  <p class="post-excerpt"></p>
</div>
"""

INDEX = """<section class="feed"><div id="post-container"></div></section>
"""

NOT_FOUND = """<div class="not-found"><h1>Page not found</h1></div>
"""

EMPTY_POST = """<div id="post-meta" hidden>
  <span data-meta="title">==title==</span>
  <span data-meta="excerpt">==excerpt==</span>
  <span data-meta="tags">==tags==</span>
  <a data-meta="author" href="==author-url==">==author-name==</a>
  <time data-meta="post-date" datetime="==raw-post-date==">==formatted-date==</time>
  <picture data-meta="thumbnail"><img src="==thumbnail==" alt=""></picture>
</div>
<article>
==body==
</article>
"""

STYLE = """$accent: #c33;

.site-header { color: $accent; }
.post-card { margin: 0; }
.post-body p { line-height: 1.6; }
.not-found h1 { font-size: 2em; }
.post-tags a:hover { color: $accent; }
.mt-30 { margin-top: 30px; }
.unused-widget { display: none; }

@media (max-width: 600px) {
  .post-card { margin: 4px; }
  .unused-mobile { color: red; }
}
"""

APP_JS = """const postLoop = `[POSTLOOP]`;
function renderResults(results) {
  return results.map(function () { return postLoop; }).join("");
}
"""


def fragment(title: str, body: str, post_date: str = "", tags: str = "", excerpt: str = "", thumbnail: str = "") -> str:
    picture = ""
    if thumbnail:
        picture = (
            '<picture data-meta="thumbnail">'
            f'<source srcset="{thumbnail}-sm.jpg" media="(max-width: 600px)">'
            f'<source srcset="{thumbnail}-md.jpg" media="(max-width: 900px)">'
            f'<source srcset="{thumbnail}-lg.jpg" media="(max-width: 1200px)">'
            f'<source srcset="{thumbnail}-xl.jpg">'
            f'<img src="{thumbnail}-xl.jpg" alt="">'
            "</picture>"
        )
    return f"""<div id="post-meta" hidden>
  <span data-meta="title">{title}</span>
  <span data-meta="excerpt">{excerpt}</span>
  <span data-meta="tags">{tags}</span>
  <a data-meta="author" href="https://example.com/jo">Jo Writer</a>
  <time data-meta="post-date" datetime="{post_date}"></time>
  {picture}
</div>
<article>
{body}
</article>
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    write(src / "templates" / "shell.html", SHELL)
    write(src / "templates" / "post-template.html", POST_TEMPLATE)
    write(src / "templates" / "post-loop.html", POST_LOOP)
    write(src / "templates" / "index.html", INDEX)
    write(src / "templates" / "404.html", NOT_FOUND)
    write(src / "templates" / "empty-post.html", EMPTY_POST)
    write(src / "styles" / "style.scss", STYLE)
    write(src / "js" / "app.js", APP_JS)
    write(src / "copy" / "robots.txt", "User-agent: *\n")
    write(
        src / "partials" / "alpha.html",
        fragment(
            "Alpha Post",
            "<p>Hello, world! Testing the builder.</p>",
            post_date="2023-06-01T10:00:00Z",
            tags="go, cli",
            excerpt="First post",
            thumbnail="img/alpha/thumb",
        ),
    )
    write(
        src / "partials" / "beta.html",
        fragment("Beta Post", "<p>Second post body.</p>", post_date="2023-07-15T08:30:00Z"),
    )
    write(
        tmp_path / "site.toml",
        '\n'.join(
            [
                'source = "src"',
                "",
                "[output]",
                'main = "docs"',
                'posts = "posts"',
                "",
                "[site]",
                'root = "https://blog.example.com"',
                "",
                "[server]",
                "port = 8080",
            ]
        )
        + "\n",
    )
    return tmp_path


@pytest.fixture
def config(site_root: Path) -> SiteConfig:
    return SiteConfig.load(site_root / "site.toml")
