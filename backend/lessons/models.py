"""
Lesson Content Models

Defines the data structures shared with the lesson API:

- BlockType: closed set of content block kinds
- ContentBlock: one ordered unit of lesson content
- *Settings: typed settings record per block type
- Lesson / LessonResource / SubmissionConfig: lesson records
- HtmlUploadResult: response of the HTML upload service

Field names are snake_case in Python and camelCase on the wire.
"""

import logging
import re
import unicodedata
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class WireModel(BaseModel):
    """Accepts both field names and camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys, unset optionals dropped"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ==================== Enums ====================

class BlockType(str, Enum):
    """Content block kinds. Never extended at runtime."""
    TEXT = "TEXT"
    VIDEO = "VIDEO"
    IFRAME = "IFRAME"
    FILE = "FILE"
    QUIZ = "QUIZ"
    CODE = "CODE"
    IMAGE = "IMAGE"


class LessonType(str, Enum):
    VIDEO = "VIDEO"
    EXERCISE = "EXERCISE"
    QUIZ = "QUIZ"
    READING = "READING"
    DOWNLOAD = "DOWNLOAD"


class LessonStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


# ==================== Block Settings ====================

class BlockSettings(WireModel):
    """Base for per-type settings; unknown keys are ignored."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TextSettings(BlockSettings):
    pass


class CodeSettings(BlockSettings):
    language: Optional[str] = None   # Display label only


class ImageSettings(BlockSettings):
    caption: Optional[str] = None


class FileSettings(BlockSettings):
    file_name: Optional[str] = Field(None, alias="fileName")
    file_size: Optional[str] = Field(None, alias="fileSize")


class VideoSettings(BlockSettings):
    auto_play: bool = Field(False, alias="autoPlay")
    allow_full_screen: bool = Field(True, alias="allowFullScreen")


class IframeSettings(BlockSettings):
    height: str = "800px"
    allow_full_screen: bool = Field(True, alias="allowFullScreen")

    @field_validator("height", mode="before")
    @classmethod
    def pixels_from_number(cls, value: Any) -> Any:
        """A bare number is a pixel height: ``600`` -> ``600px``"""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return f"{value:g}px"
        return value


class QuizSettings(BlockSettings):
    pass


SETTINGS_MODELS: Dict[BlockType, Type[BlockSettings]] = {
    BlockType.TEXT: TextSettings,
    BlockType.CODE: CodeSettings,
    BlockType.IMAGE: ImageSettings,
    BlockType.FILE: FileSettings,
    BlockType.VIDEO: VideoSettings,
    BlockType.IFRAME: IframeSettings,
    BlockType.QUIZ: QuizSettings,
}


def _field_keys(model: Type[BlockSettings]) -> Dict[str, set]:
    """Every accepted key mapped to all the keys naming the same field"""
    keys = {}
    for name, info in model.model_fields.items():
        names = {name, info.alias} if info.alias else {name}
        for key in names:
            keys[key] = names
    return keys


# ==================== Content Block ====================

class ContentBlock(WireModel):
    """
    One visual/interactive unit inside a lesson.

    Only the fields relevant to ``type`` are meaningful:
    TEXT/CODE use ``content``, VIDEO/IMAGE/FILE use ``media_url``,
    IFRAME uses ``iframe_src``. QUIZ carries no payload.
    """
    type: BlockType
    order: int = Field(0, ge=0)
    content: Optional[str] = None
    media_url: Optional[str] = Field(None, alias="mediaUrl")
    iframe_src: Optional[str] = Field(None, alias="iframeSrc")
    settings: Dict[str, Any] = Field(default_factory=dict)

    def typed_settings(self) -> BlockSettings:
        """
        Narrow the open settings bag into this type's settings record.

        Unrecognized keys are logged and ignored. An invalid value falls
        back to its field default; valid sibling keys are kept.
        """
        model = SETTINGS_MODELS[self.type]
        raw = self.settings or {}

        field_keys = _field_keys(model)
        unknown = set(raw) - set(field_keys)
        if unknown:
            logger.warning(
                f"[ContentBlock] Ignoring settings {sorted(unknown)} on {self.type.value} block"
            )

        try:
            return model.model_validate(raw)
        except ValidationError as e:
            invalid = set()
            for error in e.errors():
                if error["loc"]:
                    invalid |= field_keys.get(str(error["loc"][0]), set())
            logger.warning(
                f"[ContentBlock] Invalid settings {sorted(invalid & set(raw))} on "
                f"{self.type.value} block, using defaults for them"
            )

        # Keep the valid keys, default only the invalid ones
        try:
            return model.model_validate({k: v for k, v in raw.items() if k not in invalid})
        except ValidationError:
            return model()


# ==================== Lesson Records ====================

class LessonResource(WireModel):
    id: Optional[str] = None
    name: str
    type: Literal["pdf", "video", "image", "document", "other"] = "other"
    size: str = ""
    url: str


class SubmissionConfig(WireModel):
    max_file_size: str = Field(..., alias="maxFileSize")
    accepted_formats: List[str] = Field(default_factory=list, alias="acceptedFormats")
    requires_comment: bool = Field(False, alias="requiresComment")


class Lesson(WireModel):
    """A lesson record as returned by the lesson API."""
    id: str = Field(..., alias="_id")
    title: str
    slug: str = ""
    description: str = ""
    type: LessonType = LessonType.READING
    status: LessonStatus = LessonStatus.DRAFT
    theme_id: Optional[str] = Field(None, alias="themeId")
    content_blocks: List[ContentBlock] = Field(default_factory=list, alias="contentBlocks")
    resources: List[LessonResource] = Field(default_factory=list)
    duration_minutes: int = Field(0, alias="durationMinutes")
    order: int = 0
    requires_previous_completion: bool = Field(False, alias="requiresPreviousCompletion")
    deadline: Optional[str] = None
    submission_config: Optional[SubmissionConfig] = Field(None, alias="submissionConfig")
    quiz_id: Optional[str] = Field(None, alias="quizId")
    is_preview: bool = Field(False, alias="isPreview")
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class CreateLessonData(WireModel):
    title: str
    type: LessonType
    theme_id: str = Field(..., alias="themeId")
    description: Optional[str] = None
    content_blocks: Optional[List[ContentBlock]] = Field(None, alias="contentBlocks")
    resources: Optional[List[LessonResource]] = None
    duration_minutes: Optional[int] = Field(None, alias="durationMinutes")
    order: Optional[int] = None
    requires_previous_completion: Optional[bool] = Field(None, alias="requiresPreviousCompletion")
    deadline: Optional[str] = None
    submission_config: Optional[SubmissionConfig] = Field(None, alias="submissionConfig")
    quiz_id: Optional[str] = Field(None, alias="quizId")
    is_preview: Optional[bool] = Field(None, alias="isPreview")
    status: Optional[LessonStatus] = None


class UpdateLessonData(WireModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[LessonType] = None
    content_blocks: Optional[List[ContentBlock]] = Field(None, alias="contentBlocks")
    resources: Optional[List[LessonResource]] = None
    duration_minutes: Optional[int] = Field(None, alias="durationMinutes")
    order: Optional[int] = None
    requires_previous_completion: Optional[bool] = Field(None, alias="requiresPreviousCompletion")
    deadline: Optional[str] = None
    submission_config: Optional[SubmissionConfig] = Field(None, alias="submissionConfig")
    quiz_id: Optional[str] = Field(None, alias="quizId")
    is_preview: Optional[bool] = Field(None, alias="isPreview")
    status: Optional[LessonStatus] = None


class HtmlUploadResult(WireModel):
    """A document stored by the upload service."""
    url: str                                         # Publicly fetchable URL
    public_id: str = Field(..., alias="publicId")
    size_bytes: int = Field(0, alias="bytes")
    original_name: str = Field("", alias="originalName")


# ==================== Helpers ====================

def format_duration(minutes: int) -> str:
    """``45`` -> ``45 min``, ``120`` -> ``2h``, ``135`` -> ``2h 15min``"""
    if minutes < 60:
        return f"{minutes} min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours}h"
    return f"{hours}h {remaining}min"


def generate_lesson_slug(title: str, theme_slug: Optional[str] = None) -> str:
    """URL slug from a lesson title, accents stripped."""
    slug = unicodedata.normalize("NFD", title.lower())
    slug = "".join(c for c in slug if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")
    return f"{theme_slug}-{slug}" if theme_slug else slug


def has_content(lesson: Lesson) -> bool:
    return bool(lesson.content_blocks or lesson.resources)
