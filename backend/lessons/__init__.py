"""
Lessons Module

Content block model, editor operations, the block renderer and the client
for the external lesson API.
"""

from .models import (
    BlockType,
    ContentBlock,
    Lesson,
    LessonResource,
    LessonStatus,
    LessonType,
    HtmlUploadResult,
    CreateLessonData,
    UpdateLessonData,
)
from .renderer import ContentBlockRenderer, IFRAME_SANDBOX, to_embed_url
from .client import ApiError, LessonsApiClient
from .routes import router

__all__ = [
    "router",
    "BlockType",
    "ContentBlock",
    "Lesson",
    "LessonResource",
    "LessonStatus",
    "LessonType",
    "HtmlUploadResult",
    "CreateLessonData",
    "UpdateLessonData",
    "ContentBlockRenderer",
    "IFRAME_SANDBOX",
    "to_embed_url",
    "ApiError",
    "LessonsApiClient",
]
