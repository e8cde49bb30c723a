"""Turn uploaded PDF or image bytes into plain text.

PDFs are read through their embedded text layer (PyMuPDF); images go
through OpenCV grayscale decoding and Tesseract OCR. No network calls.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import cv2
import fitz  # PyMuPDF
import numpy as np
import pytesseract

from ..config import ExtractionConfig
from ..logging import get_logger
from .constants import KIND_CHOICES, KIND_IMAGE, KIND_PDF, TEXT_PREVIEW_CHARS
from .errors import AcquisitionError, AcquisitionErrorKind


LOG = get_logger("acquisition")

OcrFn = Callable[[np.ndarray, str, str], str]


def tesseract_ocr(image: np.ndarray, languages: str, config: str) -> str:
    return pytesseract.image_to_string(image, lang=languages, config=config)


@dataclass
class AcquiredText:
    text: str
    diagnostics: Dict[str, Any] = field(default_factory=dict)


def _preview(text: str) -> str:
    return text[:TEXT_PREVIEW_CHARS]


class TextAcquirer:
    def __init__(self, config: Optional[ExtractionConfig] = None, *, ocr: Optional[OcrFn] = None) -> None:
        self.config = config or ExtractionConfig()
        self.ocr = ocr or tesseract_ocr

    def extract(self, data: bytes, kind: str, file_name: Optional[str] = None) -> AcquiredText:
        """Return the text of `data`; raises AcquisitionError on any failure."""
        if kind not in KIND_CHOICES:
            raise ValueError(f"Unknown source kind: {kind!r} (expected one of {', '.join(KIND_CHOICES)})")
        limit = self.config.max_pdf_bytes if kind == KIND_PDF else self.config.max_image_bytes
        size = len(data or b"")
        if size > limit:
            raise AcquisitionError(
                AcquisitionErrorKind.TOO_LARGE,
                f"File is too large ({size} bytes, limit {limit} bytes)",
                debug={"kind": kind, "file_name": file_name, "byte_size": size, "limit": limit},
            )
        if kind == KIND_PDF:
            return self._from_pdf(data, file_name)
        return self._from_image(data, file_name)

    def _from_pdf(self, data: bytes, file_name: Optional[str]) -> AcquiredText:
        base = {"kind": KIND_PDF, "file_name": file_name, "byte_size": len(data or b"")}
        t0 = time.perf_counter()
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                if doc.needs_pass:
                    raise AcquisitionError(
                        AcquisitionErrorKind.UNREADABLE,
                        "PDF is encrypted and cannot be read",
                        debug=base,
                    )
                if doc.page_count == 0:
                    raise AcquisitionError(AcquisitionErrorKind.UNREADABLE, "PDF has no pages", debug=base)
                page_texts = []
                for page_index in range(doc.page_count):
                    page = doc.load_page(page_index)
                    page_texts.append(page.get_text("text") or "")
                pages = doc.page_count
        except AcquisitionError:
            raise
        except (RuntimeError, ValueError) as exc:
            LOG.error("PDF could not be opened (%s): %s", file_name or "<upload>", exc)
            raise AcquisitionError(
                AcquisitionErrorKind.UNREADABLE,
                f"PDF could not be read: {exc}",
                debug=base,
            ) from exc

        text = "\n".join(page_texts)
        diagnostics = dict(base, pages=pages, text_length=len(text), text_preview=_preview(text))
        LOG.info(
            "PDF text layer read in %.2fs (pages=%d chars=%d)",
            time.perf_counter() - t0,
            pages,
            len(text),
        )
        if len(text.strip()) < self.config.min_pdf_chars:
            raise AcquisitionError(
                AcquisitionErrorKind.INSUFFICIENT_TEXT,
                "PDF has no usable text layer (image-only PDF?); upload it as an image instead",
                debug=diagnostics,
            )
        return AcquiredText(text=text, diagnostics=diagnostics)

    def _decode_gray(self, data: bytes) -> Optional[np.ndarray]:
        buf = np.frombuffer(data or b"", dtype=np.uint8)
        if buf.size == 0:
            return None
        return cv2.imdecode(buf, cv2.IMREAD_GRAYSCALE)

    def _from_image(self, data: bytes, file_name: Optional[str]) -> AcquiredText:
        base = {"kind": KIND_IMAGE, "file_name": file_name, "byte_size": len(data or b"")}
        gray = self._decode_gray(data)
        if gray is None:
            raise AcquisitionError(AcquisitionErrorKind.UNREADABLE, "Image could not be decoded", debug=base)

        h, w = gray.shape[:2]
        t0 = time.perf_counter()
        try:
            raw = self.ocr(gray, self.config.ocr_languages, self.config.tesseract_config)
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, RuntimeError) as exc:
            LOG.error("Tesseract failed on %s: %s", file_name or "<upload>", exc)
            raise AcquisitionError(
                AcquisitionErrorKind.UNREADABLE,
                f"OCR failed: {exc}",
                debug=base,
            ) from exc

        text = (raw or "").strip()
        diagnostics = dict(
            base,
            width=w,
            height=h,
            languages=self.config.ocr_languages,
            text_length=len(text),
            text_preview=_preview(text),
        )
        LOG.info("OCR finished in %.2fs (%dx%d, %d chars)", time.perf_counter() - t0, w, h, len(text))
        if len(text) < self.config.min_ocr_chars:
            raise AcquisitionError(
                AcquisitionErrorKind.NO_TEXT,
                "No text could be recognized in the image",
                debug=diagnostics,
            )
        return AcquiredText(text=text, diagnostics=diagnostics)
