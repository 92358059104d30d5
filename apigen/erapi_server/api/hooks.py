"""
Hook pipeline run around every dispatched request.

Hooks are registered explicitly at startup, in order, as either
pre-request or post-request hooks. Each hook implements one method,
``run(context)``:

    - return None to let the request continue unchanged
    - return an ApiResponse from a pre hook to abort the request with it
    - return an ApiResponse from a post hook to replace the response

A hook that raises is logged and skipped; it never changes the response.

Invariants:
    - Hooks run in registration order
    - Hooks mutate data only through store operations, so capacity and
      uniqueness stay enforced
"""

from __future__ import annotations

import logging
from typing import Protocol

from .context import ApiResponse, RequestContext

logger = logging.getLogger(__name__)


class ApiRequestHook(Protocol):
    """A side-effecting callable run before or after the primary action."""

    def run(self, context: RequestContext) -> ApiResponse | None:
        ...


class HookPipeline:
    """Ordered pre-request and post-request hooks.

    Example:
        >>> pipeline = HookPipeline()
        >>> pipeline.add_post_request_hook(LowWatermarkRepopulator("item"))
    """

    def __init__(self) -> None:
        self._pre: list[ApiRequestHook] = []
        self._post: list[ApiRequestHook] = []

    @property
    def pre_request_hooks(self) -> list[ApiRequestHook]:
        return list(self._pre)

    @property
    def post_request_hooks(self) -> list[ApiRequestHook]:
        return list(self._post)

    def add_pre_request_hook(self, hook: ApiRequestHook) -> None:
        self._pre.append(hook)
        logger.info(f"Registered pre-request hook {type(hook).__name__}")

    def add_post_request_hook(self, hook: ApiRequestHook) -> None:
        self._post.append(hook)
        logger.info(f"Registered post-request hook {type(hook).__name__}")

    def run_pre(self, context: RequestContext) -> ApiResponse | None:
        """Run pre hooks; the first response returned aborts the request."""
        for hook in self._pre:
            response = self._run_hook(hook, context, "pre")
            if response is not None:
                logger.info(
                    f"Request aborted by pre-request hook {type(hook).__name__}",
                    extra={"path": context.path, "status": response.status},
                )
                return response
        return None

    def run_post(self, context: RequestContext) -> ApiResponse | None:
        """Run post hooks; the last response returned replaces the original."""
        replacement = None
        for hook in self._post:
            response = self._run_hook(hook, context, "post")
            if response is not None:
                replacement = response
                context.response = response
        return replacement

    @staticmethod
    def _run_hook(
        hook: ApiRequestHook,
        context: RequestContext,
        stage: str,
    ) -> ApiResponse | None:
        try:
            return hook.run(context)
        except Exception as e:
            logger.error(
                f"{stage}-request hook {type(hook).__name__} failed: {e}",
                exc_info=True,
                extra={"path": context.path, "method": context.method},
            )
            return None


class LowWatermarkRepopulator:
    """Reseed an entity when its collection drops below a threshold.

    The count check and the reseeding run inside the collection's critical
    section, so no request can observe the collection between the two.

    Attributes:
        entity_name: Entity whose collection is watched
        threshold: Minimum count; None uses the collection's low watermark
    """

    def __init__(self, entity_name: str, threshold: int | None = None) -> None:
        self.entity_name = entity_name
        self.threshold = threshold

    def run(self, context: RequestContext) -> ApiResponse | None:
        database = context.database
        if database is None:
            return None
        collection = database.collection(self.entity_name)
        threshold = collection.low_watermark if self.threshold is None else self.threshold

        with collection.locked():
            count = collection.count()
            if count >= threshold:
                return None
            created = database.populate(self.entity_name)

        logger.info(
            f"Repopulated '{self.entity_name}' in database '{database.name}' "
            f"({count} below watermark {threshold}, {created} created)",
        )
        return None
