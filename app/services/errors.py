"""Typed errors raised by the interaction engine.

Each error carries a stable ``code``, a transport-friendly ``status`` and the
ids involved, so callers can map it without inspecting messages.
"""

from typing import Any, Dict, Optional


class InteractionError(Exception):
    """Base interaction engine error."""

    code = "INTERACTION_ERROR"
    status = 400

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.code, "message": self.message, "details": self.context}


class TargetNotFound(InteractionError):
    code = "TARGET_NOT_FOUND"
    status = 404

    def __init__(self, target_type: str, target_id: str):
        super().__init__(
            f"{target_type} {target_id} not found",
            {"target_type": target_type, "target_id": target_id},
        )


class ParentNotFound(InteractionError):
    code = "PARENT_NOT_FOUND"
    status = 404

    def __init__(self, parent_id: str):
        super().__init__("Parent comment not found", {"parent_id": parent_id})


class ParentDeleted(InteractionError):
    code = "PARENT_DELETED"
    status = 409

    def __init__(self, parent_id: str):
        super().__init__("Cannot reply to a deleted comment", {"parent_id": parent_id})


class ParentMismatch(InteractionError):
    code = "PARENT_MISMATCH"
    status = 400

    def __init__(self, parent_id: str, target_type: str, target_id: str, parent_target_id: Optional[str]):
        super().__init__(
            "Parent comment does not belong to the same target",
            {
                "parent_id": parent_id,
                "target_type": target_type,
                "target_id": target_id,
                "parent_target_id": parent_target_id,
            },
        )


class CommentNotFound(InteractionError):
    code = "COMMENT_NOT_FOUND"
    status = 404

    def __init__(self, comment_id: str):
        super().__init__("Comment not found", {"comment_id": comment_id})


class Unauthorized(InteractionError):
    code = "UNAUTHORIZED"
    status = 403

    def __init__(self, comment_id: str, user_id: str):
        super().__init__(
            "Unauthorized to delete this comment", {"comment_id": comment_id, "user_id": user_id}
        )


class InvalidCursor(InteractionError):
    code = "INVALID_CURSOR"
    status = 400

    def __init__(self, cursor: str):
        super().__init__("Invalid pagination cursor", {"cursor": cursor})


class InvalidBatch(InteractionError):
    code = "INVALID_BATCH"
    status = 400


class InvalidContent(InteractionError):
    code = "INVALID_CONTENT"
    status = 400


class UnsupportedTarget(InteractionError):
    code = "UNSUPPORTED_TARGET"
    status = 400

    def __init__(self, kind: str, target_type: str):
        super().__init__(
            f"{kind} is not supported on {target_type}", {"kind": kind, "target_type": target_type}
        )


class SelfInteraction(InteractionError):
    code = "SELF_INTERACTION"
    status = 400

    def __init__(self, kind: str, user_id: str):
        super().__init__(f"cannot {kind} yourself", {"kind": kind, "user_id": user_id})


class ActorNotFound(InteractionError):
    code = "USER_NOT_FOUND"
    status = 404

    def __init__(self, user_id: str):
        super().__init__(f"user {user_id} not found", {"user_id": user_id})
