"""Email composition via ``mailto:`` URIs.

mailto cannot carry attachments; the body reminds the user to attach the
file they downloaded.
"""
from collections.abc import Sequence
from urllib.parse import quote

SUBJECT_PREFIX = "發票文件："
EMAIL_BODY = (
    "您好，\n\n附件為發票文件。\n\n"
    "此郵件由「智慧發票處理器」協助產生。請記得附上您剛剛下載的檔案。\n\n祝好。"
)


def build_subject(filenames: Sequence[str]) -> str:
    return SUBJECT_PREFIX + "、".join(filenames)


def compose_mailto(recipient: str, filenames: Sequence[str]) -> str:
    """Build a ``mailto:`` URI with percent-encoded subject and body.

    Raises:
        ValueError: If no recipient is given
    """
    recipient = recipient.strip()
    if not recipient:
        raise ValueError("A recipient email address is required")
    subject = quote(build_subject(filenames), safe="")
    body = quote(EMAIL_BODY, safe="")
    return f"mailto:{recipient}?subject={subject}&body={body}"
