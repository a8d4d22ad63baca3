"""Website asset policy -- force every image reference onto placeholders.

Generated sites must not hot-link arbitrary hosts or point at image files
that were never generated.  After codegen, every ``<img src>``,
``<img srcset>``, ``<source srcset>`` and CSS ``background`` /
``background-image`` ``url()`` whose target is neither a ``data:`` URI nor
on :data:`APPROVED_PLACEHOLDER_HOST` is replaced by a placeholder picked
from the surrounding markup.  Approved references are left byte-identical.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

from app.services.jobs.models import GeneratedFile

PlaceholderKind = Literal["hero", "card", "avatar", "logo", "generic"]

APPROVED_PLACEHOLDER_HOST = "placehold.it"

PLACEHOLDERS: dict[PlaceholderKind, str] = {
    "hero": "https://placehold.it/1400x600/1f2937/ffffff?text=Hero",
    "card": "https://placehold.it/600x400/111827/ffffff?text=Card",
    "avatar": "https://placehold.it/96x96/6366f1/ffffff?text=AB",
    "logo": "https://placehold.it/180x48?text=LOGO",
    "generic": "https://placehold.it/600x400/0f172a/ffffff?text=Image",
}

# Checked in order; first hit wins.
_CONTEXT_RULES: tuple[tuple[re.Pattern[str], PlaceholderKind], ...] = (
    (re.compile(r"hero|banner|cover|header", re.I), "hero"),
    (re.compile(r"card|tile|feature|panel", re.I), "card"),
    (re.compile(r"avatar|testimonial|profile|author|team", re.I), "avatar"),
    (re.compile(r"logo|brand", re.I), "logo"),
    (re.compile(r"icon", re.I), "card"),
)

_MARKUP_SUFFIXES = (".html", ".htm", ".tsx", ".jsx", ".vue")
_CSS_SUFFIXES = (".css", ".scss")

_IMG_TAG_RE = re.compile(r"<img\b[^>]*>", re.I)
_SOURCE_TAG_RE = re.compile(r"<source\b[^>]*>", re.I)
# Quoted (groups 2 and 3) or bare (group 4) attribute values
_SRC_ATTR_RE = re.compile(r"""((?<![\w-])src\s*=\s*)(?:(["'])(.*?)\2|([^\s"'>]+))""", re.I | re.S)
_SRCSET_ATTR_RE = re.compile(r"""((?<![\w-])srcset\s*=\s*)(?:(["'])(.*?)\2|([^\s"'>]+))""", re.I | re.S)
# A background declaration's value may hold several layers; a url() body
# may itself contain ";" (data URIs)
_CSS_BACKGROUND_DECL_RE = re.compile(
    r"(background(?:-image)?\s*:)((?:url\([^)]*\)|[^;{}])*)",
    re.I,
)
_CSS_URL_RE = re.compile(r"""(url\(\s*)(["']?)([^"')]*)\2(\s*\))""", re.I)

# How far back (chars) to look for the selector of a CSS declaration.
_CSS_CONTEXT_WINDOW = 300


def pick_placeholder(context: str) -> str:
    """Placeholder URL for the category the *context* text suggests."""
    for pattern, kind in _CONTEXT_RULES:
        if pattern.search(context):
            return PLACEHOLDERS[kind]
    return PLACEHOLDERS["generic"]


def is_allowed_image_url(url: str) -> bool:
    """``data:`` URIs and URLs on the approved placeholder host."""
    cleaned = url.strip()
    if cleaned.lower().startswith("data:"):
        return True
    try:
        host = urlparse(cleaned).hostname
    except ValueError:
        return False
    return host is not None and (
        host == APPROVED_PLACEHOLDER_HOST or host.endswith("." + APPROVED_PLACEHOLDER_HOST)
    )


def _srcset_allowed(value: str) -> bool:
    stripped = value.strip()
    if stripped.lower().startswith("data:"):
        return True
    candidates = [part.split()[0] for part in stripped.split(",") if part.strip()]
    return bool(candidates) and all(is_allowed_image_url(c) for c in candidates)


class AssetRewriter:
    """Stateful rewriter that counts how many references it replaced."""

    def __init__(self) -> None:
        self.rewritten = 0

    # -- markup -------------------------------------------------------------

    def _replace_attr(self, m: re.Match[str], tag: str, allowed: Callable[[str], bool]) -> str:
        quote = m.group(2)
        value = m.group(3) if quote else m.group(4)
        if allowed(value):
            return m.group(0)
        self.rewritten += 1
        quote = quote or '"'
        return f"{m.group(1)}{quote}{pick_placeholder(tag)}{quote}"

    def _rewrite_tag(self, tag: str) -> str:
        tag_out = _SRC_ATTR_RE.sub(lambda m: self._replace_attr(m, tag, is_allowed_image_url), tag)
        return _SRCSET_ATTR_RE.sub(lambda m: self._replace_attr(m, tag, _srcset_allowed), tag_out)

    def rewrite_markup(self, content: str) -> str:
        """Rewrite ``<img>`` / ``<source>`` tags; the whole tag is the context."""
        content = _IMG_TAG_RE.sub(lambda m: self._rewrite_tag(m.group(0)), content)
        return _SOURCE_TAG_RE.sub(lambda m: self._rewrite_tag(m.group(0)), content)

    # -- css ----------------------------------------------------------------

    def rewrite_css(self, content: str) -> str:
        """Rewrite every ``url()`` layer of background declarations.

        The context is the enclosing rule up to the end of the declaration.
        """

        def _declaration(decl: re.Match[str]) -> str:
            window_start = max(0, decl.start() - _CSS_CONTEXT_WINDOW)
            rule_start = content.rfind("}", window_start, decl.start()) + 1
            placeholder = pick_placeholder(content[max(window_start, rule_start):decl.end()])

            def _url(m: re.Match[str]) -> str:
                if is_allowed_image_url(m.group(3)):
                    return m.group(0)
                self.rewritten += 1
                quote = m.group(2) or "'"
                return f"{m.group(1)}{quote}{placeholder}{quote}{m.group(4)}"

            return decl.group(1) + _CSS_URL_RE.sub(_url, decl.group(2))

        return _CSS_BACKGROUND_DECL_RE.sub(_declaration, content)


    # -- files --------------------------------------------------------------

    def rewrite_file(self, file: GeneratedFile) -> GeneratedFile:
        lower = file.path.lower()
        content = file.content
        if lower.endswith(_MARKUP_SUFFIXES):
            content = self.rewrite_css(self.rewrite_markup(content))
        elif lower.endswith(_CSS_SUFFIXES):
            content = self.rewrite_css(content)
        if content == file.content:
            return file
        return GeneratedFile(path=file.path, content=content)


@dataclass
class AssetEnforcement:
    files: list[GeneratedFile]
    rewritten: int


def enforce_website_assets(files: list[GeneratedFile]) -> AssetEnforcement:
    """Apply the asset policy to every markup / stylesheet file."""
    rewriter = AssetRewriter()
    out = [rewriter.rewrite_file(f) for f in files]
    return AssetEnforcement(files=out, rewritten=rewriter.rewritten)
