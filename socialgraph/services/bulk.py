import logging
from typing import Awaitable, Callable, List, Optional

from socialgraph.schemas.relationship import BulkItemResult, BulkOperationResult
from socialgraph.services.relationship import RelationshipService
from socialgraph.utils.exceptions import (
    BulkLimitExceededError, InvariantViolationError, SocialGraphException,
)

logger = logging.getLogger(__name__)

MAX_BULK_SEND = 20
MAX_BULK_RESPOND = 50


class BulkRelationshipService:
    """Runs relationship operations item by item and reports every outcome.

    One item's failure never stops the batch. Each item commits (or rolls
    back) on its own through the relationship engine.
    """

    def __init__(self, relationships: RelationshipService):
        self.relationships = relationships

    @staticmethod
    def _summarize(results: List[BulkItemResult]) -> BulkOperationResult:
        success_count = sum(1 for r in results if r.success)
        total = len(results)
        return BulkOperationResult(
            success=success_count == total,
            message=f"Bulk operation completed: {success_count}/{total} successful",
            success_count=success_count,
            failure_count=total - success_count,
            total=total,
            results=results,
        )

    async def _run(
        self,
        operation: str,
        items: List[str],
        limit: int,
        action: Callable[[str], Awaitable[str]],
        key: str,
    ) -> BulkOperationResult:
        if len(items) > limit:
            raise BulkLimitExceededError(operation, limit, len(items))

        results = []
        for item in dict.fromkeys(items):
            try:
                message = await action(item)
                results.append(BulkItemResult(**{key: item}, success=True, message=message))
            except InvariantViolationError:
                raise
            except SocialGraphException as e:
                results.append(
                    BulkItemResult(**{key: item}, success=False, message=e.message, error=e.code)
                )
            except Exception as e:
                logger.error(f"Bulk {operation} failed for {item}: {e}")
                results.append(
                    BulkItemResult(**{key: item}, success=False, message="Unexpected error", error="internal_error")
                )

        summary = self._summarize(results)
        logger.info(f"Bulk {operation}: {summary.message}")
        return summary

    async def bulk_send_requests(
        self, sender_email: str, emails: List[str], message: Optional[str] = None
    ) -> BulkOperationResult:
        async def send(email: str) -> str:
            result = await self.relationships.send_request(sender_email, email, message)
            return result.message

        return await self._run("send", emails, MAX_BULK_SEND, send, "email")

    async def bulk_accept(self, accepter_email: str, request_ids: List[str]) -> BulkOperationResult:
        async def accept(request_id: str) -> str:
            result = await self.relationships.accept_request(accepter_email, request_id)
            return result.message

        return await self._run("accept", request_ids, MAX_BULK_RESPOND, accept, "request_id")

    async def bulk_reject(self, rejecter_email: str, request_ids: List[str]) -> BulkOperationResult:
        async def reject(request_id: str) -> str:
            result = await self.relationships.reject_request(rejecter_email, request_id)
            return result.message

        return await self._run("reject", request_ids, MAX_BULK_RESPOND, reject, "request_id")
