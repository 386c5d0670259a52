"""Upload gate for the two-part publish body.

Accepts exactly one ``description`` and one ``documentation`` part, in
either order, each ``application/json`` and below a size ceiling. Payloads
are staged in memory; committing them is the publisher's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from aiohttp import BodyPartReader, MultipartReader

from constants import Constants

from .errors import UploadRejected

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadPolicy:
    """Constraints applied to every uploaded part."""

    required_fields: Tuple[str, ...] = Constants.UPLOAD_FIELDS
    content_type: str = Constants.UPLOAD_CONTENT_TYPE
    max_part_size: int = Constants.UPLOAD_MAX_PART_BYTES
    chunk_size: int = Constants.UPLOAD_CHUNK_BYTES


@dataclass
class StagedUpload:
    """Accepted payloads awaiting commit."""

    parts: Dict[str, bytes] = field(default_factory=dict)

    @property
    def description(self) -> bytes:
        return self.parts["description"]

    @property
    def documentation(self) -> bytes:
        return self.parts["documentation"]


def _missing_files_message(policy: UploadPolicy) -> str:
    files = " and ".join(policy.required_fields)
    return f"Files {files} were not uploaded."


def _media_type(raw: Optional[str]) -> str:
    return (raw or "").split(";", 1)[0].strip().lower()


async def _read_bounded(part: BodyPartReader, policy: UploadPolicy) -> Optional[bytes]:
    """Read a part; None if it exceeds the ceiling (the rest is drained)."""
    buf = bytearray()
    while True:
        chunk = await part.read_chunk(policy.chunk_size)
        if not chunk:
            return bytes(buf)
        buf.extend(chunk)
        if len(buf) > policy.max_part_size:
            await part.release()
            return None


async def accept_upload(
    reader: Optional[MultipartReader],
    policy: Optional[UploadPolicy] = None,
) -> StagedUpload:
    """Run the upload gate over a multipart body.

    Every part is consumed, including parts after the first violation, so
    the connection is left in a clean state.

    Args:
        reader: Multipart reader for the request body, or None if the body
            is not multipart.
        policy: Upload constraints; defaults to UploadPolicy().

    Returns:
        The staged description and documentation payloads.

    Raises:
        UploadRejected: On any policy violation; no partial acceptance.
    """
    policy = policy or UploadPolicy()
    if reader is None:
        raise UploadRejected(
            ["request body is not multipart", _missing_files_message(policy)],
            missing_files=True,
        )

    staged = StagedUpload()
    violations: List[str] = []
    structural = False
    count = 0

    while True:
        part = await reader.next()
        if part is None:
            break
        count += 1

        if not isinstance(part, BodyPartReader):
            violations.append("nested multipart bodies are not accepted")
            structural = True
            await part.release()
            continue

        field_name = part.name
        if field_name not in policy.required_fields:
            violations.append(f"unexpected part '{field_name}'")
            structural = True
            await part.release()
            continue
        if field_name in staged.parts:
            violations.append(f"duplicate part '{field_name}'")
            structural = True
            await part.release()
            continue

        content_type = _media_type(part.headers.get("Content-Type"))
        if content_type != policy.content_type:
            violations.append(
                f"part '{field_name}' has content type '{content_type or '<none>'}', "
                f"expected '{policy.content_type}'"
            )
            await part.release()
            continue

        payload = await _read_bounded(part, policy)
        if payload is None:
            violations.append(
                f"part '{field_name}' exceeds the maximum size of {policy.max_part_size} bytes"
            )
            continue
        staged.parts[field_name] = payload

    if count != len(policy.required_fields):
        violations.append(
            f"expected {len(policy.required_fields)} parts, received {count}"
        )
        structural = True
    elif not violations and set(staged.parts) != set(policy.required_fields):
        structural = True

    if structural:
        violations.append(_missing_files_message(policy))
    if violations:
        logger.info("Upload rejected: %s", "; ".join(violations))
        raise UploadRejected(violations, missing_files=structural)

    logger.debug(
        "Upload accepted: %s",
        ", ".join(f"{k}={len(v)}B" for k, v in sorted(staged.parts.items())),
    )
    return staged
