"""
Document Screener - content inspection before any uploaded byte is stored.

Per file, short-circuiting on the first failure:
1. Container check: leading bytes must match the magic signature implied by
   the declared MIME type (or, if unrecognised, the file extension).
2. Malware test signature: the EICAR test string rejects the file.
3. DLP heuristic: an SSN-shaped number flags the file but does not reject it.

Only the first MAX_SCAN_BYTES are inspected.
"""
import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MAX_SCAN_BYTES = 200_000
EICAR_SIGNATURE = "EICAR-STANDARD-ANTIVIRUS-TEST-FILE"
SSN_PATTERN = re.compile(r"(?:^|\D)\d{3}-?\d{2}-?\d{4}(?!\d)", re.ASCII)

SIGNATURES = {
    "application/pdf": b"%PDF",
    "image/png": b"\x89PNG",
    "image/jpeg": b"\xff\xd8\xff",
}

EXTENSION_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


@dataclass
class ScreeningResult:
    accepted: bool
    is_malware: bool = False
    is_sensitive_data_leak: bool = False
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "isMalware": self.is_malware,
            "isSensitiveDataLeak": self.is_sensitive_data_leak,
            "message": self.message,
        }


@dataclass
class BatchScreeningResult:
    ok: bool
    dlp_hits: int = 0
    warnings: List[str] = field(default_factory=list)
    # One entry per file examined, up to and including a rejected one
    results: List[dict] = field(default_factory=list)
    message: str = ""
    rejected_file: Optional[str] = None


def expected_signature(content_type: Optional[str], filename: str) -> Optional[Tuple[str, bytes]]:
    """Resolve (mime, magic bytes) from the declared type, else the extension."""
    if content_type in SIGNATURES:
        return content_type, SIGNATURES[content_type]
    mime = EXTENSION_TYPES.get(PurePath(filename or "").suffix.lower())
    if mime:
        return mime, SIGNATURES[mime]
    return None


def _decode_sample(sample: bytes) -> str:
    return sample.decode("utf-8", errors="replace")


def screen_file(data: bytes, content_type: Optional[str], filename: str) -> ScreeningResult:
    sample = data[:MAX_SCAN_BYTES]

    expected = expected_signature(content_type, filename)
    if expected and not sample.startswith(expected[1]):
        logger.warning("Signature mismatch: %s declared %s", filename, expected[0])
        return ScreeningResult(
            accepted=False,
            is_malware=True,
            message=f"File signature mismatch detected in {filename}.",
        )

    text = _decode_sample(sample)
    if EICAR_SIGNATURE in text:
        logger.warning("Malware test signature in %s", filename)
        return ScreeningResult(
            accepted=False,
            is_malware=True,
            message=f"Malware test signature detected in {filename}.",
        )

    if SSN_PATTERN.search(text):
        return ScreeningResult(
            accepted=True,
            is_sensitive_data_leak=True,
            message=f"Sensitive data detected in {filename}.",
        )

    return ScreeningResult(accepted=True)


def screen_batch(
    files: Sequence[Tuple[str, Optional[str], bytes]],
    on_progress: Optional[Callable[[str], None]] = None,
) -> BatchScreeningResult:
    """
    Screen (filename, content_type, data) triples strictly in order.

    Stops at the first rejected file; the caller must then store none of the
    batch.
    """
    if not files:
        return BatchScreeningResult(ok=True)

    outcome = BatchScreeningResult(ok=True)
    total = len(files)
    for index, (filename, content_type, data) in enumerate(files):
        if on_progress:
            on_progress(f"Screening {filename} ({index + 1} of {total})...")
        result = screen_file(data, content_type, filename)
        outcome.results.append({
            "name": filename,
            "ok": result.accepted,
            "dlp": result.is_sensitive_data_leak,
            "message": result.message,
        })
        if not result.accepted:
            outcome.ok = False
            outcome.rejected_file = filename
            outcome.message = result.message or "Upload blocked by security screening."
            return outcome
        if result.is_sensitive_data_leak:
            outcome.dlp_hits += 1
            outcome.warnings.append(result.message)

    if on_progress:
        on_progress("")
    return outcome
