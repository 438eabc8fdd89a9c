import io
import base64
import asyncio
import hashlib
import requests
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence
from PIL import Image, ImageDraw
from ..config import settings
from ..logger import logger

PREVIEW_CONTENT_TYPE = "image/webp"
PREVIEW_EXTENSION = "webp"

TRY_ON_PROMPT = (
    "Create a realistic photo of the person in the first image wearing the "
    "clothing and items shown in the following images. Keep the person's face, "
    "body shape, pose and the background unchanged. Output a single image."
)

STUB_SIZE = (768, 1024)


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    content_type: str = PREVIEW_CONTENT_TYPE


class GenerationError(Exception):
    """The generation backend returned no usable image"""


class GenerationBackend(Protocol):
    is_live: bool

    async def generate(self, subject_path: str, item_paths: Sequence[str], owner_id: str) -> GeneratedImage: ...


def encode_webp(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="WEBP", quality=90)
    return buf.getvalue()


def _mime_for_path(path: str) -> str:
    return "image/png" if path.lower().endswith(".png") else "image/jpeg"


def render_stub_preview(subject_path: str, item_paths: Sequence[str]) -> bytes:
    """Deterministic placeholder: identical inputs give identical bytes."""
    digest = hashlib.sha256("|".join([subject_path, *item_paths]).encode("utf-8")).digest()
    background = (64 + digest[0] % 128, 64 + digest[1] % 128, 64 + digest[2] % 128)

    img = Image.new("RGB", STUB_SIZE, background)
    draw = ImageDraw.Draw(img)
    w, h = STUB_SIZE
    # silhouette
    draw.ellipse((w * 38 // 100, h * 10 // 100, w * 62 // 100, h * 28 // 100), fill=(230, 230, 230))
    draw.rectangle((w * 30 // 100, h * 30 // 100, w * 70 // 100, h * 75 // 100), fill=(230, 230, 230))
    # one swatch per item
    for i, _ in enumerate(item_paths):
        tone = digest[3 + i] % 200
        top = h * 32 // 100 + i * h * 14 // 100
        draw.rectangle((w * 34 // 100, top, w * 66 // 100, top + h * 12 // 100), fill=(tone, 255 - tone, 128))
    draw.text((20, h - 40), f"PREVIEW (stub) items={len(item_paths)}", fill=(255, 255, 255))
    return encode_webp(img)


def extract_inline_image(payload: dict) -> bytes:
    for candidate in payload.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                return base64.b64decode(inline["data"])
    feedback = payload.get("promptFeedback") or {}
    reason = feedback.get("blockReason")
    if reason:
        raise GenerationError(f"Generation blocked: {reason}")
    raise GenerationError("Generation response contained no image")


class GeminiBackend:
    """
    Try-on generation via the Gemini image model.

    In stub mode no external call is made and a placeholder image is
    rendered instead.
    """

    def __init__(
        self,
        object_store,
        originals_bucket: str,
        live: bool = False,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash-image-preview",
        api_base: str = "https://generativelanguage.googleapis.com/v1beta",
        http_timeout: float = 60,
    ):
        self.object_store = object_store
        self.originals_bucket = originals_bucket
        self.is_live = live
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.http_timeout = http_timeout

    def _call_api(self, images: List[tuple]) -> bytes:
        parts = [{"text": TRY_ON_PROMPT}]
        for mime, data in images:
            parts.append({"inline_data": {"mime_type": mime, "data": base64.b64encode(data).decode("ascii")}})

        resp = requests.post(
            f"{self.api_base}/models/{self.model}:generateContent",
            headers={"x-goog-api-key": self.api_key or "", "Content-Type": "application/json"},
            json={
                "contents": [{"parts": parts}],
                "generationConfig": {"responseModalities": ["IMAGE"]},
            },
            timeout=self.http_timeout,
        )
        if resp.status_code >= 400:
            raise GenerationError(f"Gemini API returned {resp.status_code}: {resp.text[:200]}")

        raw = extract_inline_image(resp.json())
        return encode_webp(Image.open(io.BytesIO(raw)))

    async def generate(self, subject_path: str, item_paths: Sequence[str], owner_id: str) -> GeneratedImage:
        if not self.is_live:
            logger.info(
                "Rendering stub preview",
                extra={"user_id": owner_id, "item_count": len(item_paths)},
            )
            return GeneratedImage(render_stub_preview(subject_path, item_paths))

        images = []
        for path in [subject_path, *item_paths]:
            data = await self.object_store.get(self.originals_bucket, path)
            images.append((_mime_for_path(path), data))

        logger.info(
            f"Calling Gemini model {self.model}",
            extra={"user_id": owner_id, "item_count": len(item_paths)},
        )
        # runs in a worker thread so a per-attempt timeout can stop waiting on it
        data = await asyncio.to_thread(self._call_api, images)
        return GeneratedImage(data)


_backend: Optional[GeminiBackend] = None


def get_generation_backend() -> GeminiBackend:
    global _backend
    if _backend is None:
        from ..services.storage import get_object_store

        _backend = GeminiBackend(
            object_store=get_object_store(),
            originals_bucket=settings.S3_ORIGINALS_BUCKET,
            live=settings.GEMINI_LIVE_MODE,
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            api_base=settings.GEMINI_API_BASE,
        )
    return _backend
