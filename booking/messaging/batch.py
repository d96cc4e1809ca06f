"""Per-message outcome bookkeeping for batch handlers."""

from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from booking.core.exceptions import (
    BusinessException,
    InfrastructureException,
    ValidationException,
)

logger = structlog.get_logger(__name__)


class MessageOutcome(str, Enum):
    """What happened to one message of a batch."""

    PROCESSED = "processed"
    SKIPPED = "skipped"
    DISCARDED = "discarded"
    REJECTED = "rejected"
    FAILED = "failed"

    @property
    def acknowledge(self) -> bool:
        """Only failures stay pending for redelivery."""
        return self is not MessageOutcome.FAILED


@dataclass(frozen=True)
class StreamMessage:
    """One message as delivered by the transport."""

    message_id: str
    fields: dict[str, Any]
    stream: str = ""


@dataclass(frozen=True)
class MessageResult:
    message_id: str
    outcome: MessageOutcome
    reason: str | None = None


@dataclass
class BatchResult:
    """Outcomes of one batch, in delivery order."""

    results: list[MessageResult] = field(default_factory=list)

    @property
    def acknowledged_ids(self) -> list[str]:
        return [result.message_id for result in self.results if result.outcome.acknowledge]

    @property
    def failed_ids(self) -> list[str]:
        return [result.message_id for result in self.results if not result.outcome.acknowledge]

    def counts(self) -> dict[str, int]:
        return dict(Counter(result.outcome.value for result in self.results))

    def outcome_of(self, message_id: str) -> MessageOutcome | None:
        for result in self.results:
            if result.message_id == message_id:
                return result.outcome
        return None


MessageHandler = Callable[[StreamMessage], Awaitable[MessageOutcome]]


async def run_batch(
    messages: Sequence[StreamMessage], handle: MessageHandler, stage: str
) -> BatchResult:
    """
    Run ``handle`` over every message of a batch.

    A failing message never stops its siblings. Exceptions are mapped to
    outcomes by kind: validation -> discarded, business -> rejected,
    infrastructure (or anything unexpected) -> failed.
    """
    batch = BatchResult()
    for message in messages:
        batch.results.append(await _run_one(message, handle, stage))

    logger.info("batch_handled", stage=stage, size=len(messages), **batch.counts())
    return batch


async def _run_one(message: StreamMessage, handle: MessageHandler, stage: str) -> MessageResult:
    try:
        outcome = await handle(message)
    except ValidationException as e:
        logger.warning(
            "message_discarded", stage=stage, message_id=message.message_id, error=e.message
        )
        return MessageResult(message.message_id, MessageOutcome.DISCARDED, e.message)
    except BusinessException as e:
        logger.warning(
            "message_rejected",
            stage=stage,
            message_id=message.message_id,
            error_type=type(e).__name__,
            error=e.message,
        )
        return MessageResult(message.message_id, MessageOutcome.REJECTED, e.message)
    except InfrastructureException as e:
        logger.error(
            "message_failed", stage=stage, message_id=message.message_id, error=e.message
        )
        return MessageResult(message.message_id, MessageOutcome.FAILED, e.message)
    except Exception as e:
        logger.exception("message_failed_unexpectedly", stage=stage, message_id=message.message_id)
        return MessageResult(message.message_id, MessageOutcome.FAILED, str(e))

    return MessageResult(message.message_id, outcome)
