"""
Lesson API Client

Async client for the external lesson persistence API and its HTML upload
service. Lessons, their content blocks and uploaded documents are owned by
that API; this module only moves them over HTTP.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from .models import (
    ContentBlock,
    CreateLessonData,
    HtmlUploadResult,
    Lesson,
    LessonResource,
    LessonStatus,
    UpdateLessonData,
)
from .uploads import validate_html_upload

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-success response from the lesson API."""

    def __init__(self, status: int, status_text: str, data: Any = None):
        self.status = status
        self.status_text = status_text
        self.data = data
        super().__init__(self.message)

    @property
    def message(self) -> str:
        if isinstance(self.data, dict) and "message" in self.data:
            return str(self.data["message"])
        return f"{self.status} {self.status_text}"


class LessonEndpoints:
    """Paths relative to the API base URL."""
    LESSONS = "/lessons"
    UPLOAD_HTML = "/lessons/upload-html"
    DELETE_HTML = "/lessons/delete-html"

    @staticmethod
    def by_theme(theme_id: str) -> str:
        return f"/lessons/theme/{theme_id}"

    @staticmethod
    def detail(lesson_id: str) -> str:
        return f"/lessons/{lesson_id}"

    @staticmethod
    def duplicate(lesson_id: str) -> str:
        return f"/lessons/{lesson_id}/duplicate"

    @staticmethod
    def blocks(lesson_id: str) -> str:
        return f"/lessons/{lesson_id}/blocks"

    @staticmethod
    def block_by_index(lesson_id: str, index: int) -> str:
        return f"/lessons/{lesson_id}/blocks/{index}"

    @staticmethod
    def reorder_blocks(lesson_id: str) -> str:
        return f"/lessons/{lesson_id}/blocks/reorder"

    @staticmethod
    def resources(lesson_id: str) -> str:
        return f"/lessons/{lesson_id}/resources"

    @staticmethod
    def resource_by_id(lesson_id: str, resource_id: str) -> str:
        return f"/lessons/{lesson_id}/resources/{resource_id}"


class LessonsApiClient:
    """
    Lesson CRUD, content block and HTML upload calls.

    Usage:
        client = LessonsApiClient("http://localhost:3556/api", token=token)
        lesson = await client.get_by_id(lesson_id)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        """Close HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        response = await self.http_client.request(
            method, url, headers=self._headers(), **kwargs
        )

        if not response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
            logger.warning(f"[LessonsApi] {method} {path} -> {response.status_code}")
            raise ApiError(response.status_code, response.reason_phrase, data)

        # Empty or non-JSON bodies
        if "application/json" not in response.headers.get("content-type", ""):
            return {}
        return response.json()

    # ==================== LESSONS ====================

    async def get_by_theme(self, theme_id: str) -> List[Lesson]:
        data = await self._request("GET", LessonEndpoints.by_theme(theme_id))
        return [Lesson.model_validate(item) for item in data or []]

    async def get_by_id(self, lesson_id: str) -> Lesson:
        data = await self._request("GET", LessonEndpoints.detail(lesson_id))
        return Lesson.model_validate(data)

    async def create(self, payload: CreateLessonData) -> Lesson:
        data = await self._request("POST", LessonEndpoints.LESSONS, json=payload.to_wire())
        return Lesson.model_validate(data)

    async def update(self, lesson_id: str, payload: UpdateLessonData) -> Lesson:
        data = await self._request(
            "PUT", LessonEndpoints.detail(lesson_id), json=payload.to_wire()
        )
        return Lesson.model_validate(data)

    async def delete(self, lesson_id: str) -> None:
        await self._request("DELETE", LessonEndpoints.detail(lesson_id))

    async def update_status(self, lesson_id: str, status: LessonStatus) -> Lesson:
        data = await self._request(
            "PUT", LessonEndpoints.detail(lesson_id), json={"status": status.value}
        )
        return Lesson.model_validate(data)

    async def duplicate(self, lesson_id: str) -> Lesson:
        data = await self._request("POST", LessonEndpoints.duplicate(lesson_id))
        return Lesson.model_validate(data)

    # ==================== CONTENT BLOCKS ====================

    async def add_content_block(self, lesson_id: str, block: ContentBlock) -> Lesson:
        """Append a block; the API assigns its order."""
        payload = block.to_wire()
        payload.pop("order", None)
        data = await self._request("POST", LessonEndpoints.blocks(lesson_id), json=payload)
        return Lesson.model_validate(data)

    async def update_content_block(
        self,
        lesson_id: str,
        index: int,
        changes: Union[ContentBlock, Dict[str, Any]],
    ) -> Lesson:
        if isinstance(changes, ContentBlock):
            changes = changes.to_wire()
        data = await self._request(
            "PUT", LessonEndpoints.block_by_index(lesson_id, index), json=changes
        )
        return Lesson.model_validate(data)

    async def remove_content_block(self, lesson_id: str, index: int) -> Lesson:
        data = await self._request("DELETE", LessonEndpoints.block_by_index(lesson_id, index))
        return Lesson.model_validate(data)

    async def reorder_content_blocks(self, lesson_id: str, new_order: Sequence[int]) -> Lesson:
        data = await self._request(
            "PUT",
            LessonEndpoints.reorder_blocks(lesson_id),
            json={"newOrder": list(new_order)},
        )
        return Lesson.model_validate(data)

    # ==================== RESOURCES ====================

    async def add_resource(self, lesson_id: str, resource: LessonResource) -> Lesson:
        payload = resource.to_wire()
        payload.pop("id", None)
        data = await self._request("POST", LessonEndpoints.resources(lesson_id), json=payload)
        return Lesson.model_validate(data)

    async def remove_resource(self, lesson_id: str, resource_id: str) -> Lesson:
        data = await self._request(
            "DELETE", LessonEndpoints.resource_by_id(lesson_id, resource_id)
        )
        return Lesson.model_validate(data)

    # ==================== HTML UPLOAD ====================

    async def upload_html(
        self,
        filename: str,
        content: bytes,
        folder: Optional[str] = None,
    ) -> HtmlUploadResult:
        """
        Upload a legacy HTML document.

        Returns:
            The stored document; its ``url`` is what an IFRAME block's
            ``iframe_src`` should point at.
        """
        validate_html_upload(filename, len(content))
        form = {"folder": folder} if folder else {}
        data = await self._request(
            "POST",
            LessonEndpoints.UPLOAD_HTML,
            files={"file": (filename, content, "text/html")},
            data=form,
        )
        logger.info(f"[LessonsApi] Uploaded {filename} ({len(content)} bytes)")
        return HtmlUploadResult.model_validate(data)

    async def update_html(
        self,
        filename: str,
        content: bytes,
        old_url: str,
        folder: Optional[str] = None,
    ) -> HtmlUploadResult:
        """Replace a previously uploaded document (the old one is deleted)."""
        validate_html_upload(filename, len(content))
        form = {"oldUrl": old_url}
        if folder:
            form["folder"] = folder
        data = await self._request(
            "PUT",
            LessonEndpoints.UPLOAD_HTML,
            files={"file": (filename, content, "text/html")},
            data=form,
        )
        return HtmlUploadResult.model_validate(data)

    async def delete_html(self, url: str) -> Dict[str, Any]:
        """
        Delete an uploaded document by its public URL.

        Returns:
            ``{"deleted": bool, "publicId": str}``
        """
        return await self._request("POST", LessonEndpoints.DELETE_HTML, json={"url": url})
