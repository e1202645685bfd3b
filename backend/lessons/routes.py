"""
Lesson Rendering API Routes

Provides endpoints for:
- Rendering a block list into embeds (JSON)
- Rendering a block list into an HTML fragment
- Previewing a stored lesson fetched from the lesson API
"""

import logging
from html import escape
from typing import List

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field, ValidationError

from .client import ApiError, LessonsApiClient
from .models import ContentBlock
from .renderer import ContentBlockRenderer, Embed

logger = logging.getLogger(__name__)

# ============================================
# Request/Response Models
# ============================================


class RenderRequest(BaseModel):
    """Block list to render, in any stored order."""
    blocks: List[ContentBlock] = Field(default_factory=list)


class RenderResponse(BaseModel):
    success: bool
    count: int
    embeds: List[Embed]


# ============================================
# Router
# ============================================

router = APIRouter(prefix="/api/lessons", tags=["Lessons"])


def get_renderer(request: Request) -> ContentBlockRenderer:
    return request.app.state.block_renderer


def get_lessons_client(request: Request) -> LessonsApiClient:
    return request.app.state.lessons_client


# ============================================
# Endpoints
# ============================================

@router.post("/render", response_model=RenderResponse)
async def render_blocks(
    body: RenderRequest,
    renderer: ContentBlockRenderer = Depends(get_renderer),
):
    """
    Render content blocks into embeds.

    Blocks are sorted by order; blocks missing their payload are skipped.
    """
    embeds = renderer.render(body.blocks)
    return RenderResponse(success=True, count=len(embeds), embeds=embeds)


@router.post("/render/html", response_class=HTMLResponse)
async def render_blocks_html(
    body: RenderRequest,
    renderer: ContentBlockRenderer = Depends(get_renderer),
):
    """Render content blocks into an HTML fragment."""
    return HTMLResponse(renderer.render_html(body.blocks))


@router.get("/{lesson_id}/preview")
async def preview_lesson(
    lesson_id: str,
    renderer: ContentBlockRenderer = Depends(get_renderer),
    client: LessonsApiClient = Depends(get_lessons_client),
):
    """
    Fetch a lesson from the lesson API and render its content as HTML.

    Lesson API errors keep their status; transport failures map to 502.
    """
    try:
        lesson = await client.get_by_id(lesson_id)
    except ApiError as e:
        return JSONResponse(status_code=e.status, content={"error": e.message})
    except httpx.HTTPError as e:
        logger.error(f"[LessonsApi] Preview fetch failed for {lesson_id}: {e}")
        return JSONResponse(status_code=502, content={"error": str(e) or "Lesson API unreachable"})
    except ValidationError as e:
        logger.error(f"[LessonsApi] Malformed lesson {lesson_id}: {e.error_count()} error(s)")
        return JSONResponse(status_code=502, content={"error": "Malformed lesson payload"})

    fragment = renderer.render_html(lesson.content_blocks)
    return HTMLResponse(
        f"<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\">"
        f"<title>{escape(lesson.title)}</title></head>\n"
        f"<body>\n<h1>{escape(lesson.title)}</h1>\n{fragment}\n</body>\n</html>"
    )
