from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Dict, List, Optional

from storefront.common.constants import FALLBACK_ERROR_MESSAGE
from storefront.common.custom_exceptions import (
    AuthRequiredError,
    PaymentConfigError,
    StorefrontError,
    StorefrontValidationError,
)
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.feedback")

LOGIN_REQUIRED_MESSAGE = "Please log in to continue."


class NoticeKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    AUTH_REQUIRED = "auth_required"
    VALIDATION = "validation"
    CONFIG_ERROR = "config_error"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str
    field_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.kind is not NoticeKind.SUCCESS


def notice_from_exception(exc: BaseException) -> Notice:
    if isinstance(exc, AuthRequiredError):
        return Notice(NoticeKind.AUTH_REQUIRED, exc.message or LOGIN_REQUIRED_MESSAGE)
    if isinstance(exc, PaymentConfigError):
        return Notice(NoticeKind.CONFIG_ERROR, exc.message)
    if isinstance(exc, StorefrontValidationError):
        return Notice(NoticeKind.VALIDATION, exc.message, dict(exc.field_errors))
    if isinstance(exc, StorefrontError):
        return Notice(NoticeKind.ERROR, exc.message or FALLBACK_ERROR_MESSAGE)
    return Notice(NoticeKind.ERROR, FALLBACK_ERROR_MESSAGE)


class FeedbackSink:
    """Collects notices for whatever view is rendering them (toast list, CLI output...)."""

    def __init__(self):
        self.notices: List[Notice] = []

    def push(self, notice: Notice) -> Notice:
        self.notices.append(notice)
        return notice

    def success(self, message: str) -> Notice:
        return self.push(Notice(NoticeKind.SUCCESS, message))

    def error(self, exc: BaseException) -> Notice:
        return self.push(notice_from_exception(exc))

    @property
    def last(self) -> Optional[Notice]:
        return self.notices[-1] if self.notices else None

    def drain(self) -> List[Notice]:
        notices, self.notices = self.notices, []
        return notices

    def __len__(self) -> int:
        return len(self.notices)


async def run_with_feedback(sink: FeedbackSink, awaitable: Awaitable[Any],
                            success_message: Optional[str] = None) -> Any:
    """
    Await a mutation and report its outcome to `sink`.

    Storefront errors become notices and the call returns None; anything else
    is a bug and propagates after an error notice has been recorded.
    """
    try:
        result = await awaitable
    except StorefrontError as exc:
        notice = sink.error(exc)
        logger.info("feedback.error_notice", extra={"kind": notice.kind.value, "error": exc.message})
        return None
    except Exception as exc:
        sink.error(exc)
        logger.exception("feedback.unexpected_error")
        raise
    if success_message:
        sink.success(success_message)
    return result
