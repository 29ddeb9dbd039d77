"""
================================================================================
FILE: pipelines_host/pipeline/dispatcher.py
================================================================================

PURPOSE:
    Resolve an identifier to a loaded pipeline and run it:

        inlet (optional) → pipe → outlet (optional)

WORKFLOW:
    1. Registry lookup; a discovered-only entry is loaded once through
       the LifecycleManager (NotFound / LoadError / ValidationError surface)
    2. inlet(body, user, id): result replaces body; failure aborts
    3. pipe(body, user, id): failure aborts
    4. outlet(result, user, id): failure keeps the pipe result and adds
       a warning to the ExecutionResult

KEY FACTS:
    - Never mutates the registry itself
    - Borrows the LoadedPipeline for the whole call; a concurrent reload
      does not affect a request already in flight
    - At-most-once: no retries
"""

import logging
from typing import Any, Optional

from pipelines_host.core.exceptions import ExecutionPhase, PipelineExecutionError
from pipelines_host.pipeline.lifecycle import LifecycleManager, call_entry_point
from pipelines_host.pipeline.schemas import ExecutionResult

logger = logging.getLogger(__name__)


class ExecutionDispatcher:
    """Runs requests against loaded pipelines."""

    def __init__(self, lifecycle: LifecycleManager):
        self.lifecycle = lifecycle

    async def execute(self, identifier: str, body: Any, user: Optional[Any] = None) -> ExecutionResult:
        """
        Execute the pipeline registered under identifier.

        Args:
            identifier: Pipeline id (the "model" of a chat request)
            body: Request body handed to the pipeline
            user: Optional user object

        Returns:
            ExecutionResult with the final body and any warnings

        Raises:
            PipelineNotFoundError, PipelineLoadError, PipelineValidationError,
            PipelineExecutionError
        """
        loaded = await self.lifecycle.ensure_loaded(identifier)
        capabilities = loaded.capabilities
        result = ExecutionResult(identifier=identifier, body=None)

        if capabilities.inlet is not None:
            body = await call_entry_point(
                identifier, ExecutionPhase.INLET, capabilities.inlet, body, user, identifier
            )

        output = await call_entry_point(
            identifier, ExecutionPhase.PIPE, capabilities.pipe, body, user, identifier
        )

        if capabilities.outlet is not None:
            try:
                output = await call_entry_point(
                    identifier, ExecutionPhase.OUTLET, capabilities.outlet, output, user, identifier
                )
            except PipelineExecutionError as e:
                logger.warning(f"Outlet of '{identifier}' failed; returning pipe result: {e.message}")
                result.warnings.append(e.message)

        result.body = output
        return result
