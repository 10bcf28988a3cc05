# leadpipe/services/ocr.py
"""
OCR adapter for the Google Cloud Vision `images:annotate` REST endpoint.

Only TEXT_DETECTION is requested; the first text annotation holds the full
detected text block for the image.
"""

from __future__ import annotations

import logging

import httpx

from leadpipe.config import OcrConfig
from leadpipe.exceptions import ConfigError, OcrError

log = logging.getLogger(__name__)


class VisionOcr:
    def __init__(self, cfg: OcrConfig, http: httpx.Client) -> None:
        self.cfg = cfg
        self.http = http

    def extract_text(self, image_url: str) -> str:
        """
        Return the text detected in the image at `image_url`.

        An image with no detectable text returns "" (callers decide whether
        that is a data error); transport and API errors raise OcrError.
        """
        if not self.cfg.api_key:
            raise ConfigError("VISION_API_KEY is not set")

        body = {
            "requests": [
                {
                    "image": {"source": {"imageUri": image_url}},
                    "features": [{"type": "TEXT_DETECTION"}],
                }
            ]
        }
        try:
            resp = self.http.post(self.cfg.api_url, params={"key": self.cfg.api_key}, json=body)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise OcrError(f"vision request failed: {exc}") from exc
        except ValueError as exc:
            raise OcrError(f"vision returned invalid JSON: {exc}") from exc

        responses = data.get("responses") or []
        if not responses:
            return ""
        first = responses[0] or {}
        if first.get("error"):
            message = first["error"].get("message") or str(first["error"])
            raise OcrError(f"vision could not annotate image: {message}")

        annotations = first.get("textAnnotations") or []
        if not annotations:
            return ""
        text = str(annotations[0].get("description") or "")
        log.debug("ocr extracted %d chars", len(text))
        return text


__all__ = ["VisionOcr"]
