# ==============================================================================
# 목적 : 업로드 전 이미지 리사이즈/재압축 유틸
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-04
# AI 활용 여부 :
# ==============================================================================

import io
import logging
import re
from typing import Optional, Tuple

from PIL import Image

from catalog_ingest.domain.models import SourceFile

_log = logging.getLogger(__name__)

SKIP_BELOW_BYTES = 500 * 1024
KEEP_BELOW_BYTES = 2 * 1024 * 1024
HEAVY_ABOVE_BYTES = 5 * 1024 * 1024
HEAVY_QUALITY = 0.7

_RENAME_EXT = re.compile(r"\.(jpg|jpeg|png)$", re.IGNORECASE)


def fit_within(width: int, height: int, max_width: int, max_height: int) -> Tuple[int, int]:
    """종횡비를 유지하며 (width, height)를 max 범위 안으로 줄인 크기를 반환합니다.

    가로를 먼저 맞추고, 그래도 세로가 넘치면 세로 기준으로 다시 맞춥니다. 소수점은 버립니다.
    """
    new_w, new_h = width, height
    if new_w > max_width:
        new_h = int(new_h * (max_width / new_w))
        new_w = max_width
    if new_h > max_height:
        new_w = int(new_w * (max_height / new_h))
        new_h = max_height
    return max(1, new_w), max(1, new_h)


def process_image_for_upload(
    file: SourceFile,
    max_width: int = 1920,
    max_height: int = 1920,
    quality: float = 0.85,
) -> SourceFile:
    """큰 이미지를 전송 전에 줄이고 WebP로 재압축합니다.

    - 이미지가 아니거나 500KiB 미만이면 원본을 그대로 반환합니다.
    - 크기가 max 이내이고 2MiB 미만이면 원본을 그대로 반환합니다.
    - 그 외에는 종횡비를 유지하며 리사이즈 후 WebP로 인코딩합니다(원본이 5MiB 초과면 quality=0.7).
    - 결과가 원본보다 엄격히 작을 때만 교체하며, 디코딩/인코딩 실패 시 원본을 반환합니다(예외를 던지지 않음).

    Args:
        file: 원본 파일.
        max_width: 최대 가로 픽셀.
        max_height: 최대 세로 픽셀.
        quality: WebP 품질(0~1).

    Returns:
        교체된 SourceFile 또는 원본.
    """
    if not file.mime_type.startswith("image/") or file.size < SKIP_BELOW_BYTES:
        return file

    adjusted_quality = HEAVY_QUALITY if file.size > HEAVY_ABOVE_BYTES else quality

    try:
        with Image.open(io.BytesIO(file.data)) as im:
            im.load()
            width, height = im.size
            if width <= max_width and height <= max_height and file.size < KEEP_BELOW_BYTES:
                return file

            new_w, new_h = fit_within(width, height, max_width, max_height)
            has_alpha = im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info)
            img = im.convert("RGBA" if has_alpha else "RGB")
            if (new_w, new_h) != (width, height):
                img = img.resize((new_w, new_h), Image.Resampling.LANCZOS)

            buf = io.BytesIO()
            img.save(buf, format="WEBP", quality=int(round(adjusted_quality * 100)))
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        _log.warning("Failed to process image: %s, using original (%s)", file.name, e)
        return file

    out = buf.getvalue()
    if len(out) >= file.size:
        _log.info("Processed image not smaller, using original: %s", file.name)
        return file

    new_name = _RENAME_EXT.sub(".webp", file.name)
    _log.info("Optimized: %s from %dKB to %dKB", file.name, file.size // 1024, len(out) // 1024)
    return SourceFile(name=new_name, data=out, mime_type="image/webp", size=len(out))


def probe_dimensions(data: bytes) -> Optional[str]:
    """이미지 헤더만 읽어 "WxH" 문자열을 반환합니다. 읽을 수 없으면 None."""
    try:
        with Image.open(io.BytesIO(data)) as im:
            w, h = im.size
    except (OSError, ValueError, Image.DecompressionBombError):
        return None
    return f"{w}x{h}"
