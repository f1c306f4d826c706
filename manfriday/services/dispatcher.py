from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor

from manfriday.actions import ActionCatalog, ActionContext, ActionRequest, ActionResult
from manfriday.actions.base import PROVIDER_ERROR, UNKNOWN_ACTION
from manfriday.logging_setup import get_logger

logger = get_logger(__name__)


class ActionDispatcher:
    """Runs the actions of one plan and returns their results in request order.

    Actions of a single plan are independent, so they run concurrently on a
    small pool. A failing action never affects its siblings.
    """

    def __init__(self, catalog: ActionCatalog, max_workers: int = 4) -> None:
        self._catalog = catalog
        self._max_workers = max(1, max_workers)

    def dispatch(self, context: ActionContext, requests: list[ActionRequest]) -> list[ActionResult]:
        if not requests:
            return []
        if len(requests) == 1:
            return [self._execute_one(context, requests[0])]
        workers = min(self._max_workers, len(requests))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="action") as pool:
            futures = [
                pool.submit(contextvars.copy_context().run, self._execute_one, context, request)
                for request in requests
            ]
            return [future.result() for future in futures]

    def _execute_one(self, context: ActionContext, request: ActionRequest) -> ActionResult:
        definition = self._catalog.get(request.name)
        if definition is None:
            logger.info("action_unknown", action=request.name)
            return ActionResult.failed(
                request,
                UNKNOWN_ACTION,
                f"No action named '{request.name}' is available.",
            )
        try:
            result = definition.executor.execute(context, request)
        except Exception as exc:
            logger.exception("action_crashed", action=request.name)
            return ActionResult.failed(request, PROVIDER_ERROR, f"{request.name} failed unexpectedly: {exc}")
        logger.info(
            "action_executed",
            action=request.name,
            success=result.success,
            reason=result.reason,
        )
        return result
