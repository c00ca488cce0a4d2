"""Helpers for parsing IMAP fetch data into internal models."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from datetime import datetime, timezone
from email import policy
from email.header import decode_header, make_header
from email.message import Message
from email.parser import BytesParser
from typing import Any

import html2text

from mail_query_agent.models import AttachmentInfo, MessageEnvelope
from mail_query_agent.query.snippet import to_snippet
from mail_query_agent.query.store import FetchedMessage, ThreadHeaders
from mail_query_agent.query.thread import normalize_message_id, split_references


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def decode_mime_header(value: Any) -> str:
    """Decode RFC 2047 encoded-words; undecodable input is returned as is."""
    text = _to_str(value)
    if not text:
        return ""
    try:
        return str(make_header(decode_header(text)))
    except (LookupError, UnicodeDecodeError, ValueError):
        return text


def format_addresses(addresses: Any) -> str:
    """Render envelope addresses as comma-joined ``mailbox@host`` text."""
    if not addresses:
        return ""
    rendered: list[str] = []
    for address in addresses:
        mailbox = _to_str(getattr(address, "mailbox", None))
        host = _to_str(getattr(address, "host", None))
        if mailbox and host:
            rendered.append(f"{mailbox}@{host}")
        elif mailbox or host:
            rendered.append(mailbox or host)
        else:
            name = decode_mime_header(getattr(address, "name", None))
            if name:
                rendered.append(name)
    return ", ".join(rendered)


def format_date(value: datetime | None) -> str:
    """ISO-8601 in UTC with a ``Z`` suffix; naive values are taken as UTC."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def html_to_text(html: str) -> str:
    converter = html2text.HTML2Text()
    converter.ignore_images = True
    converter.body_width = 0
    return converter.handle(html).strip()


def _parse_source(source: bytes) -> Message:
    return BytesParser(policy=policy.default).parsebytes(source)


def _part_text(part: Message) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def body_text_from_source(source: bytes) -> str:
    """Plain-text body of a raw message; HTML-only bodies are converted."""
    message = _parse_source(source)
    part = message.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    text = _part_text(part)
    if part.get_content_type() == "text/html":
        return html_to_text(text)
    return text


def envelope_from_fetch(
    fetched: FetchedMessage,
    include_snippet: bool = False,
    snippet_length: int = 400,
) -> MessageEnvelope:
    """Map a raw envelope record into the output shape."""
    envelope = fetched.envelope
    message_id = _to_str(getattr(envelope, "message_id", None)) or None

    snippet = None
    if include_snippet and fetched.source:
        snippet = to_snippet(body_text_from_source(fetched.source), snippet_length)

    return MessageEnvelope(
        uid=fetched.uid,
        subject=decode_mime_header(getattr(envelope, "subject", None)),
        from_=format_addresses(getattr(envelope, "from_", None)),
        to=format_addresses(getattr(envelope, "to", None)),
        date=format_date(getattr(envelope, "date", None)),
        message_id=message_id,
        snippet=snippet,
    )


def thread_headers_from_bytes(raw: bytes | None, envelope: Any = None) -> ThreadHeaders:
    """Build ThreadHeaders from a header block, falling back to the envelope."""
    message_id = in_reply_to = references = None
    if raw:
        headers = BytesParser(policy=policy.compat32).parsebytes(raw, headersonly=True)
        message_id = headers.get("Message-ID")
        in_reply_to = headers.get("In-Reply-To")
        references = headers.get("References")

    if not message_id and envelope is not None:
        message_id = _to_str(getattr(envelope, "message_id", None)) or None
    if not in_reply_to and envelope is not None:
        in_reply_to = _to_str(getattr(envelope, "in_reply_to", None)) or None

    # Folded headers keep their line breaks under compat32.
    return ThreadHeaders(
        message_id=" ".join(str(message_id).split()) if message_id else None,
        in_reply_to=" ".join(str(in_reply_to).split()) if in_reply_to else None,
        references=split_references(str(references)) if references else (),
    )


def _params(raw: Any) -> dict[str, str]:
    if not isinstance(raw, (tuple, list)):
        return {}
    items = list(raw)
    return {
        _to_str(items[i]).lower(): _to_str(items[i + 1])
        for i in range(0, len(items) - 1, 2)
    }


def _at(node: Any, index: int) -> Any:
    return node[index] if len(node) > index else None


def _walk_parts(node: Any) -> Iterator[Any]:
    if getattr(node, "is_multipart", False) or (node and isinstance(node[0], list)):
        for child in node[0]:
            yield from _walk_parts(child)
        return
    yield node


def _disposition_index(main_type: str, sub_type: str) -> int:
    # body-type-text has a line count, message/rfc822 an envelope, body and
    # line count, before md5 and disposition.
    if main_type == "text":
        return 9
    if main_type == "message" and sub_type == "rfc822":
        return 11
    return 8


def attachments_from_body_structure(structure: Any) -> list[AttachmentInfo]:
    """Attachment metadata from a BODYSTRUCTURE response."""
    attachments: list[AttachmentInfo] = []
    for part in _walk_parts(structure):
        main_type = _to_str(_at(part, 0)).lower()
        sub_type = _to_str(_at(part, 1)).lower()
        params = _params(_at(part, 2))
        index = _disposition_index(main_type, sub_type)
        disposition_raw = _at(part, index)
        md5 = _at(part, index - 1)

        disposition = ""
        disposition_params: dict[str, str] = {}
        if isinstance(disposition_raw, (tuple, list)) and disposition_raw:
            disposition = _to_str(disposition_raw[0]).lower()
            disposition_params = _params(_at(disposition_raw, 1))

        filename = decode_mime_header(disposition_params.get("filename") or params.get("name"))
        if disposition != "attachment" and not filename:
            continue

        content_id = _to_str(_at(part, 3)) or None
        size = _at(part, 6)
        attachments.append(
            AttachmentInfo(
                filename=filename,
                content_type=f"{main_type}/{sub_type}",
                content_disposition=disposition or "attachment",
                size=size if isinstance(size, int) else 0,
                checksum=_to_str(md5),
                content_id=content_id,
                cid=normalize_message_id(content_id) if content_id else None,
                related=disposition == "inline",
            )
        )
    return attachments


def attachments_from_source(source: bytes) -> list[AttachmentInfo]:
    """Attachment metadata by parsing the raw message."""
    message = _parse_source(source)
    attachments: list[AttachmentInfo] = []
    for part in message.walk():
        if part.is_multipart():
            continue
        disposition = part.get_content_disposition()
        filename = part.get_filename()
        if disposition != "attachment" and not filename:
            continue

        payload = part.get_payload(decode=True) or b""
        content_id = part.get("Content-ID")
        attachments.append(
            AttachmentInfo(
                filename=filename or "",
                content_type=part.get_content_type(),
                content_disposition=disposition or "attachment",
                size=len(payload),
                checksum=hashlib.md5(payload, usedforsecurity=False).hexdigest(),
                content_id=str(content_id) if content_id else None,
                cid=normalize_message_id(str(content_id)) if content_id else None,
                related=disposition == "inline",
            )
        )
    return attachments
