"""
File upload route.

Accepts one or more PDF/DOCX files and hands them to the order controller
as one add-files batch. By default the batch resolves in the background
and the client polls GET /api/order; with ?wait=1 the request blocks until
the batch settles and returns the ingestion result.
"""

from itertools import zip_longest
from pathlib import PurePath
from typing import List, Optional

from flask import (
    Blueprint,
    jsonify,
    request,
)

from models.document import Document
from logging_config import get_logger
from .session import current_session_id, order_service


# Module logger
logger = get_logger(__name__)

upload_bp = Blueprint("upload", __name__)

# Constants
MAX_FILENAME_LENGTH = 255
MAX_FILES_PER_BATCH = 50


def _clean_filename(raw: str, max_length: int = MAX_FILENAME_LENGTH) -> str:
    """
    Normalize an uploaded filename without escaping it.

    The name is part of the FileKey and of the order payload, so it is kept
    as the browser sent it apart from directory components and control
    characters. HTML escaping belongs to whatever renders it.

    Args:
        raw: Filename from the multipart part
        max_length: Maximum length to enforce

    Returns:
        Cleaned name, or "" when nothing usable is left
    """
    if not raw:
        return ""

    name = PurePath(raw.replace("\\", "/")).name
    name = "".join(ch for ch in name if ch.isprintable()).strip()

    if max_length and len(name) > max_length:
        name = name[:max_length]

    return name


def _parse_timestamp(raw: Optional[str]) -> int:
    """Browser lastModified in ms; missing or unparseable counts as 0."""
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


def _documents_from_request() -> List[Document]:
    """
    Build Documents from the multipart 'files' field.

    Optional 'last_modified' fields are paired with files by position
    before empty parts are dropped, so a skipped part never shifts a
    timestamp onto the next file.
    """
    uploads = request.files.getlist("files")
    timestamps = request.form.getlist("last_modified")

    documents = []
    for upload, raw_timestamp in zip_longest(uploads, timestamps):
        if upload is None or not upload.filename:
            continue
        name = _clean_filename(upload.filename)
        if not name:
            continue
        documents.append(
            Document.from_upload(
                name=name,
                content=upload.read(),
                mime_type=upload.mimetype,
                last_modified=_parse_timestamp(raw_timestamp),
            )
        )
    return documents


@upload_bp.route("/api/order/files", methods=["POST"])
def add_files():
    """
    Add uploaded files to the current order.

    Returns:
        202 with the order snapshot while counting runs in the background,
        200 with the ingestion result when ?wait=1,
        400 when no usable file was sent
    """
    documents = _documents_from_request()

    if not documents:
        return jsonify({"error": "Please choose at least one PDF or DOCX file."}), 400

    if len(documents) > MAX_FILES_PER_BATCH:
        return jsonify({"error": f"Too many files. Maximum {MAX_FILES_PER_BATCH} per upload."}), 400

    session_id = current_session_id()
    service = order_service()

    logger.info(f"Session {session_id[:8]}: received {len(documents)} file(s)")

    if request.args.get("wait") in ("1", "true", "yes"):
        result = service.call(session_id, lambda c: c.add_files(documents))
        order = service.call(session_id, lambda c: c.snapshot())
        return jsonify({"result": result.to_dict(), "order": order}), 200

    service.schedule(session_id, lambda c: c.add_files(documents))
    order = service.call(session_id, lambda c: c.snapshot())
    return jsonify({"order": order}), 202
