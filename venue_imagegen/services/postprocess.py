from __future__ import annotations

import asyncio
import io

from loguru import logger
from PIL import Image, UnidentifiedImageError

from ..exceptions import FetchError
from ..schema import ProcessedImage
from ..settings import get_settings
from ..shard import constants as C
from ..utils.image_utils import guess_extension_from_mime, sniff_mime


class PostProcessor:
    """Re-encodes images to WebP with the longest edge capped; never upscales."""

    def __init__(self, *, quality: int | None = None, max_edge: int | None = None) -> None:
        settings = get_settings()
        self.quality = quality if quality is not None else settings.webp_quality
        self.max_edge = max_edge if max_edge is not None else settings.max_image_edge

    def _compress(self, data: bytes) -> ProcessedImage:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                source_width, source_height = img.size
                if img.mode not in ("RGB", "RGBA"):
                    img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
                # thumbnail() keeps the aspect ratio and only ever shrinks.
                img.thumbnail((self.max_edge, self.max_edge), Image.Resampling.LANCZOS)
                width, height = img.size
                buf = io.BytesIO()
                img.save(buf, format="WEBP", quality=self.quality)
        except (UnidentifiedImageError, OSError) as e:
            raise FetchError("downloaded asset is not a decodable image", details={"reason": str(e)}) from e

        out = buf.getvalue()
        logger.debug(f"Compressed {source_width}x{source_height} ({len(data)} bytes) to {width}x{height} webp ({len(out)} bytes)")
        return ProcessedImage(
            data=out,
            mime_type=C.WEBP_MIME,
            extension="webp",
            width=width,
            height=height,
            source_width=source_width,
            source_height=source_height,
        )

    async def process(self, data: bytes) -> ProcessedImage:
        return await asyncio.to_thread(self._compress, data)

    async def passthrough(self, data: bytes, mime: str | None = None) -> ProcessedImage:
        """Wrap bytes unchanged (inline output when compression is turned off)."""

        def _measure() -> ProcessedImage:
            try:
                with Image.open(io.BytesIO(data)) as img:
                    width, height = img.size
            except (UnidentifiedImageError, OSError) as e:
                raise FetchError("inline asset is not a decodable image", details={"reason": str(e)}) from e
            mime_type = sniff_mime(data) or mime or C.DEFAULT_MIME
            return ProcessedImage(
                data=data,
                mime_type=mime_type,
                extension=guess_extension_from_mime(mime_type),
                width=width,
                height=height,
                source_width=width,
                source_height=height,
            )

        return await asyncio.to_thread(_measure)


__all__ = ["PostProcessor"]
