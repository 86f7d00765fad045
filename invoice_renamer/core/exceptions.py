"""Exception hierarchy for invoice renaming."""

from typing import Any, Optional

# User-facing messages shown on a failed record
RENDER_FAILED_MESSAGE = "無法讀取 PDF 檔案，請確認檔案是否正確。"
EXTRACTION_FAILED_MESSAGE = "發票分析失敗，請重試。"
UNKNOWN_ERROR_MESSAGE = "發生未知錯誤"
CANCELLED_MESSAGE = "已取消處理。"


class InvoiceRenamerError(Exception):
    """Base exception for all invoice renaming errors."""

    user_message: str = UNKNOWN_ERROR_MESSAGE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RenderError(InvoiceRenamerError):
    """Raised when a PDF cannot be loaded or its first page rasterized."""

    user_message = RENDER_FAILED_MESSAGE

    def __init__(
        self,
        file_name: str,
        reason: str,
        original_error: Optional[Exception] = None
    ) -> None:
        self.file_name = file_name
        self.reason = reason
        self.original_error = original_error

        full_message = f"Rendering failed for {file_name}: {reason}"
        if original_error:
            full_message += f" (Original error: {original_error})"

        super().__init__(full_message, {"file_name": file_name, "reason": reason})


class ExtractionError(InvoiceRenamerError):
    """Raised when the AI service call or its response is unusable.

    The detailed reason is kept for logging; callers surface only
    ``user_message``.
    """

    user_message = EXTRACTION_FAILED_MESSAGE

    def __init__(
        self,
        reason: str,
        original_error: Optional[Exception] = None,
        response_text: Optional[str] = None,
        model_used: Optional[str] = None
    ) -> None:
        self.reason = reason
        self.original_error = original_error
        self.response_text = response_text
        self.model_used = model_used

        full_message = f"Extraction failed: {reason}"
        if model_used:
            full_message += f" (Model: {model_used})"
        if original_error:
            full_message += f" (Original error: {original_error})"

        details: dict[str, Any] = {"reason": reason}
        if model_used:
            details["model_used"] = model_used
        if response_text is not None:
            details["response_text"] = response_text[:200]

        super().__init__(full_message, details)


class InvalidTransitionError(InvoiceRenamerError):
    """Raised when an action is not allowed from a record's current status."""

    def __init__(self, record_id: str, from_status: str, action: str) -> None:
        self.record_id = record_id
        self.from_status = from_status
        self.action = action
        message = f"Cannot {action} record '{record_id}' in status '{from_status}'"
        super().__init__(
            message,
            {"record_id": record_id, "from_status": from_status, "action": action}
        )


class RecordNotFoundError(InvoiceRenamerError):
    """Raised when a record id is not present in the batch."""

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"No file record with id '{record_id}'", {"record_id": record_id})


class SecurityError(InvoiceRenamerError):
    """Base class for security-related errors."""

    def __init__(self, message: str, security_check: str, file_name: Optional[str] = None) -> None:
        self.security_check = security_check
        self.file_name = file_name

        details = {"security_check": security_check}
        if file_name:
            details["file_name"] = file_name

        super().__init__(f"Security check failed ({security_check}): {message}", details)


class PathTraversalError(SecurityError):
    """Raised when a derived name would escape the output directory."""

    def __init__(self, attempted_name: str) -> None:
        super().__init__(
            f"Path traversal attempt detected: {attempted_name}",
            "path_traversal",
            attempted_name
        )
        self.attempted_name = attempted_name


class ConfigurationError(InvoiceRenamerError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, setting_name: str, issue: str) -> None:
        message = f"Configuration error for '{setting_name}': {issue}"
        super().__init__(message, {"setting_name": setting_name, "issue": issue})
        self.setting_name = setting_name
        self.issue = issue


__all__ = [
    "RENDER_FAILED_MESSAGE",
    "EXTRACTION_FAILED_MESSAGE",
    "UNKNOWN_ERROR_MESSAGE",
    "CANCELLED_MESSAGE",
    "InvoiceRenamerError",
    "RenderError",
    "ExtractionError",
    "InvalidTransitionError",
    "RecordNotFoundError",
    "SecurityError",
    "PathTraversalError",
    "ConfigurationError",
]
