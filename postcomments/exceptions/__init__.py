"""
Standard exceptions for the posts/comments service.

Domain errors (not found, validation) are raised by every storage backend
with identical classes so callers can tell them apart from infrastructure
failures, which are always StorageUnavailableError.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException


class ServiceError(Exception):
    """Base class for all service errors."""

    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.context = dict(context) if context else {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for API responses and structured logs."""
        result: Dict[str, Any] = {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
        }
        if self.request_id:
            result["request_id"] = self.request_id
        if self.context:
            result["context"] = self.context
        if self.original_error is not None:
            result["original_error"] = {
                "type": type(self.original_error).__name__,
                "message": str(self.original_error),
            }
        return result


class NotFoundError(ServiceError):
    """A referenced resource does not exist."""

    code = "NOT_FOUND"

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.resource_type = resource_type
        self.resource_id = str(resource_id)
        merged = dict(context) if context else {}
        merged["resource_type"] = resource_type
        merged["resource_id"] = self.resource_id
        super().__init__(
            message or f"{resource_type} with ID '{self.resource_id}' not found",
            request_id=request_id,
            context=merged,
        )


class ValidationError(ServiceError):
    """Input violates a domain rule."""

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        self.value = value
        merged = dict(context) if context else {}
        if field is not None:
            merged["field"] = field
        if value is not None:
            merged["value"] = str(value)
        super().__init__(message, request_id=request_id, context=merged)


class DuplicateError(ServiceError):
    """A resource with the same unique value already exists."""

    code = "DUPLICATE"

    def __init__(
        self,
        resource_type: str,
        field: str,
        value: Any,
        message: Optional[str] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.resource_type = resource_type
        self.field = field
        self.value = value
        merged = dict(context) if context else {}
        merged.update({"resource_type": resource_type, "field": field, "value": str(value)})
        super().__init__(
            message or f"{resource_type} with {field} '{value}' already exists",
            request_id=request_id,
            context=merged,
        )


class DatabaseError(ServiceError):
    """A storage backend operation failed."""

    code = "DATABASE_ERROR"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        request_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.operation = operation
        merged = dict(context) if context else {}
        if operation is not None:
            merged["operation"] = operation
        super().__init__(message, request_id=request_id, context=merged, original_error=original_error)


# Domain-specific errors

class PostNotFoundError(NotFoundError):
    code = "POST_NOT_FOUND"

    def __init__(self, post_id: Any, **kwargs):
        self.post_id = post_id
        super().__init__("Post", post_id, **kwargs)


class CommentNotFoundError(NotFoundError):
    code = "COMMENT_NOT_FOUND"

    def __init__(self, comment_id: Any, **kwargs):
        self.comment_id = comment_id
        super().__init__("Comment", comment_id, **kwargs)


class ParentCommentNotFoundError(NotFoundError):
    code = "PARENT_COMMENT_NOT_FOUND"

    def __init__(self, parent_id: Any, **kwargs):
        self.parent_id = parent_id
        super().__init__(
            "Comment",
            parent_id,
            message=f"Parent comment with ID '{parent_id}' not found",
            **kwargs,
        )


class CommentTooLongError(ValidationError):
    code = "COMMENT_TOO_LONG"

    def __init__(self, length: int, max_length: int, **kwargs):
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"Comment content is {length} characters, maximum is {max_length}",
            field="content",
            value=length,
            **kwargs,
        )


class CommentsDisabledError(ValidationError):
    code = "COMMENTS_DISABLED"

    def __init__(self, post_id: Any, **kwargs):
        self.post_id = post_id
        super().__init__(
            f"Comments are disabled for post '{post_id}'",
            field="post_id",
            value=post_id,
            **kwargs,
        )


class ParentCommentWrongPostError(ValidationError):
    code = "PARENT_COMMENT_WRONG_POST"

    def __init__(self, parent_id: Any, post_id: Any, **kwargs):
        self.parent_id = parent_id
        self.post_id = post_id
        super().__init__(
            f"Parent comment '{parent_id}' belongs to another post than '{post_id}'",
            field="parent_id",
            value=parent_id,
            **kwargs,
        )


class StorageUnavailableError(DatabaseError):
    """Infrastructure failure: connection, timeout, pool exhaustion or query error."""

    code = "STORAGE_UNAVAILABLE"


def http_status_for(exc: ServiceError) -> int:
    """HTTP status equivalent of an error kind."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, DuplicateError):
        return 409
    if isinstance(exc, DatabaseError):
        return 503
    return 500


def to_http_exception(exc: ServiceError) -> HTTPException:
    """Convert a ServiceError into a FastAPI HTTPException."""
    status_code = http_status_for(exc)
    detail: Dict[str, Any] = {
        "error": type(exc).__name__,
        "code": exc.code,
        "message": exc.message,
    }
    if exc.request_id:
        detail["request_id"] = exc.request_id
    # Driver details stay in the logs
    if exc.context and not isinstance(exc, DatabaseError):
        detail["context"] = exc.context
    return HTTPException(status_code=status_code, detail=detail)


__all__ = [
    "ServiceError",
    "NotFoundError",
    "ValidationError",
    "DuplicateError",
    "DatabaseError",
    "PostNotFoundError",
    "CommentNotFoundError",
    "ParentCommentNotFoundError",
    "CommentTooLongError",
    "CommentsDisabledError",
    "ParentCommentWrongPostError",
    "StorageUnavailableError",
    "http_status_for",
    "to_http_exception",
]
