"""
Content Block Renderer

Turns a lesson's block list into renderable embeds, one per block, in
ascending ``order``. Blocks missing the field their type requires are
skipped rather than reported.

IFRAME blocks pointing at a trusted asset-store document are rewritten to
go through the iframe proxy, which serves a transformed copy from our own
origin. Every IFRAME embed is sandboxed with IFRAME_SANDBOX. The
permission set is broad because legacy documents rely on scripts, forms,
popups and downloads; the allowlist decides which documents get proxied.
"""

import logging
import re
from html import escape
from typing import Callable, Dict, List, Literal, Optional, Sequence, Union
from urllib.parse import quote, urlsplit, parse_qs

from pydantic import BaseModel

from iframe_proxy.security import UrlAllowlist
from .blocks import sort_blocks
from .models import (
    BlockType,
    ContentBlock,
    CodeSettings,
    FileSettings,
    IframeSettings,
    ImageSettings,
    VideoSettings,
)

logger = logging.getLogger(__name__)

IFRAME_SANDBOX = (
    "allow-scripts allow-same-origin allow-forms allow-popups "
    "allow-popups-to-escape-sandbox allow-modals allow-downloads "
    "allow-top-navigation-by-user-activation"
)
VIDEO_PLAYER_ALLOW = (
    "accelerometer; autoplay; clipboard-write; encrypted-media; gyroscope; picture-in-picture"
)

DEFAULT_IMAGE_ALT = "Lesson image"
DEFAULT_FILE_NAME = "Downloadable file"
DEFAULT_FILE_SIZE = "Download"
QUIZ_NOTICE = "Interactive quiz - it will appear here once configured"
EMPTY_LESSON_NOTICE = "This lesson has no content yet"


# ============================================
# Video hosts
# ============================================

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "youtube-nocookie.com",
                 "www.youtube-nocookie.com"}
VIMEO_HOSTS = {"vimeo.com", "www.vimeo.com"}
YOUTUBE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{6,}$")
VIMEO_ID_RE = re.compile(r"^/(\d+)(?:/|$)")


def _youtube_embed(video_id: str) -> Optional[str]:
    if video_id and YOUTUBE_ID_RE.match(video_id):
        return f"https://www.youtube.com/embed/{video_id}"
    return None


def to_embed_url(url: str) -> Optional[str]:
    """
    Player URL for known video hosts, None for anything else.

    Handles youtube.com/watch?v=ID, youtu.be/ID, youtube.com/shorts/ID,
    vimeo.com/ID and URLs that are already embeddable.
    """
    try:
        parts = urlsplit(url.strip())
        host = (parts.hostname or "").lower()
    except ValueError:
        return None

    if host in YOUTUBE_HOSTS:
        if parts.path.startswith("/embed/"):
            return url
        if parts.path == "/watch":
            return _youtube_embed(parse_qs(parts.query).get("v", [""])[0])
        if parts.path.startswith("/shorts/"):
            return _youtube_embed(parts.path.split("/")[2])
        return None

    if host == "youtu.be":
        return _youtube_embed(parts.path.lstrip("/").split("/")[0])

    if host == "player.vimeo.com":
        return url

    if host in VIMEO_HOSTS:
        match = VIMEO_ID_RE.match(parts.path)
        if match:
            return f"https://player.vimeo.com/video/{match.group(1)}"

    return None


def _attr(value: str) -> str:
    return escape(value, quote=True)


# ============================================
# Embeds
# ============================================

class TextEmbed(BaseModel):
    kind: Literal["TEXT"] = "TEXT"
    order: int
    html: str                        # Trusted rich markup

    def to_html(self) -> str:
        return f'<div class="content-block text-block">{self.html}</div>'


class CodeEmbed(BaseModel):
    kind: Literal["CODE"] = "CODE"
    order: int
    code: str
    language: Optional[str] = None

    def to_html(self) -> str:
        label = ""
        if self.language:
            label = f'<span class="code-language">{escape(self.language)}</span>'
        return (
            f'<div class="content-block code-block">{label}'
            f"<pre><code>{escape(self.code)}</code></pre></div>"
        )


class ImageEmbed(BaseModel):
    kind: Literal["IMAGE"] = "IMAGE"
    order: int
    src: str
    alt: str
    caption: Optional[str] = None

    def to_html(self) -> str:
        caption = ""
        if self.caption:
            caption = f"<figcaption>{escape(self.caption)}</figcaption>"
        return (
            f'<figure class="content-block image-block">'
            f'<img src="{_attr(self.src)}" alt="{_attr(self.alt)}">{caption}</figure>'
        )


class FileEmbed(BaseModel):
    kind: Literal["FILE"] = "FILE"
    order: int
    href: str
    file_name: str
    file_size: str

    def to_html(self) -> str:
        return (
            f'<a class="content-block file-block" href="{_attr(self.href)}" download '
            f'target="_blank" rel="noopener noreferrer">'
            f'<span class="file-name">{escape(self.file_name)}</span>'
            f'<span class="file-size">{escape(self.file_size)}</span></a>'
        )


class VideoEmbed(BaseModel):
    kind: Literal["VIDEO"] = "VIDEO"
    order: int
    src: str
    player: Literal["iframe", "video"]
    auto_play: bool = False
    allow_full_screen: bool = True

    def to_html(self) -> str:
        if self.player == "iframe":
            full_screen = " allowfullscreen" if self.allow_full_screen else ""
            return (
                f'<div class="content-block video-block">'
                f'<iframe src="{_attr(self.src)}" allow="{VIDEO_PLAYER_ALLOW}"{full_screen}>'
                f"</iframe></div>"
            )
        autoplay = " autoplay" if self.auto_play else ""
        return (
            f'<div class="content-block video-block">'
            f'<video src="{_attr(self.src)}" controls{autoplay}></video></div>'
        )


class IframeEmbed(BaseModel):
    kind: Literal["IFRAME"] = "IFRAME"
    order: int
    src: str                         # Effective source, proxied when trusted
    original_src: str
    proxied: bool
    height: str = "800px"
    allow_full_screen: bool = True
    sandbox: str = IFRAME_SANDBOX

    def to_html(self) -> str:
        full_screen = " allowfullscreen" if self.allow_full_screen else ""
        height = _attr(self.height)
        return (
            f'<div class="content-block iframe-block">'
            f'<iframe src="{_attr(self.src)}" sandbox="{self.sandbox}" '
            f'style="min-height: {height}; height: {height}; width: 100%; border: 0"{full_screen}>'
            f"</iframe>"
            f'<a href="{_attr(self.src)}" target="_blank" rel="noopener noreferrer" '
            f'title="Open in new tab">Open in new tab</a></div>'
        )


class QuizEmbed(BaseModel):
    kind: Literal["QUIZ"] = "QUIZ"
    order: int
    notice: str = QUIZ_NOTICE

    def to_html(self) -> str:
        return f'<div class="content-block quiz-block"><p>{escape(self.notice)}</p></div>'


Embed = Union[TextEmbed, CodeEmbed, ImageEmbed, FileEmbed, VideoEmbed, IframeEmbed, QuizEmbed]


# ============================================
# Renderer
# ============================================

class ContentBlockRenderer:
    """
    Maps each block type to its embedding strategy.

    Usage:
        renderer = ContentBlockRenderer(allowlist)
        embeds = renderer.render(lesson.content_blocks)
    """

    def __init__(self, allowlist: UrlAllowlist, proxy_path: str = "/api/iframe-proxy"):
        self.allowlist = allowlist
        self.proxy_path = proxy_path
        self._dispatch: Dict[BlockType, Callable[[ContentBlock], Optional[Embed]]] = {
            BlockType.TEXT: self._render_text,
            BlockType.CODE: self._render_code,
            BlockType.IMAGE: self._render_image,
            BlockType.FILE: self._render_file,
            BlockType.VIDEO: self._render_video,
            BlockType.IFRAME: self._render_iframe,
            BlockType.QUIZ: self._render_quiz,
        }

    def render(self, blocks: Sequence[ContentBlock]) -> List[Embed]:
        """One embed per renderable block, by ascending order."""
        embeds = []
        for block in sort_blocks(blocks):
            embed = self._dispatch[block.type](block)
            if embed is None:
                logger.debug(
                    f"[Renderer] Skipped {block.type.value} block #{block.order}: missing payload"
                )
                continue
            embeds.append(embed)
        return embeds

    def render_html(self, blocks: Sequence[ContentBlock]) -> str:
        """HTML fragment for the whole lesson."""
        embeds = self.render(blocks)
        if not embeds:
            return f'<div class="lesson-empty"><p>{EMPTY_LESSON_NOTICE}</p></div>'
        body = "\n".join(embed.to_html() for embed in embeds)
        return f'<div class="lesson-content">\n{body}\n</div>'

    def resolve_iframe_src(self, src: str) -> str:
        """Route trusted asset-store documents through the proxy."""
        if self.allowlist.is_proxyable(src):
            return f"{self.proxy_path}?url={quote(src, safe='')}"
        return src

    # ---------- per-type strategies ----------

    def _render_text(self, block: ContentBlock) -> Optional[TextEmbed]:
        if not block.content:
            return None
        return TextEmbed(order=block.order, html=block.content)

    def _render_code(self, block: ContentBlock) -> Optional[CodeEmbed]:
        if not block.content:
            return None
        settings: CodeSettings = block.typed_settings()
        return CodeEmbed(order=block.order, code=block.content, language=settings.language)

    def _render_image(self, block: ContentBlock) -> Optional[ImageEmbed]:
        if not block.media_url:
            return None
        settings: ImageSettings = block.typed_settings()
        return ImageEmbed(
            order=block.order,
            src=block.media_url,
            alt=settings.caption or DEFAULT_IMAGE_ALT,
            caption=settings.caption,
        )

    def _render_file(self, block: ContentBlock) -> Optional[FileEmbed]:
        if not block.media_url:
            return None
        settings: FileSettings = block.typed_settings()
        return FileEmbed(
            order=block.order,
            href=block.media_url,
            file_name=settings.file_name or DEFAULT_FILE_NAME,
            file_size=settings.file_size or DEFAULT_FILE_SIZE,
        )

    def _render_video(self, block: ContentBlock) -> Optional[VideoEmbed]:
        if not block.media_url:
            return None
        settings: VideoSettings = block.typed_settings()
        embed_url = to_embed_url(block.media_url)
        return VideoEmbed(
            order=block.order,
            src=embed_url or block.media_url,
            player="iframe" if embed_url else "video",
            auto_play=settings.auto_play,
            allow_full_screen=settings.allow_full_screen,
        )

    def _render_iframe(self, block: ContentBlock) -> Optional[IframeEmbed]:
        if not block.iframe_src:
            return None
        settings: IframeSettings = block.typed_settings()
        src = self.resolve_iframe_src(block.iframe_src)
        return IframeEmbed(
            order=block.order,
            src=src,
            original_src=block.iframe_src,
            proxied=src != block.iframe_src,
            height=settings.height or "800px",
            allow_full_screen=settings.allow_full_screen,
        )

    def _render_quiz(self, block: ContentBlock) -> QuizEmbed:
        return QuizEmbed(order=block.order)
