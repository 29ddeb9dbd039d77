"""
================================================================================
SERVICE CONTAINER - PIPELINE COMPONENT WIRING
================================================================================

Main dependency injection container.

Builds the pipeline components from Settings, leaves first:

  Settings
    ↓
  SourceScanner, PipelineLoader(namespace), InterfaceValidator,
  PipelineRegistry, ValveStore(pipelines_dir)
    ↓
  LifecycleManager  (drives scanner → loader → validator → registry)
    ↓
  ExecutionDispatcher (reads registry, delegates lazy loads)

USAGE:

  container = ServiceContainer(settings)
  await container.initialize()
  result = await container.get_dispatcher().execute("echo", body)
"""

import logging
from typing import Optional

from pipelines_host.config.settings import Settings
from pipelines_host.core.exceptions import ConfigurationError
from pipelines_host.pipeline.dispatcher import ExecutionDispatcher
from pipelines_host.pipeline.lifecycle import LifecycleManager
from pipelines_host.pipeline.loader import PipelineLoader
from pipelines_host.pipeline.registry import PipelineRegistry
from pipelines_host.pipeline.scanner import SourceScanner
from pipelines_host.pipeline.validator import InterfaceValidator
from pipelines_host.pipeline.valve_store import ValveStore

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Dependency injection container for the pipeline components."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

        self._registry: Optional[PipelineRegistry] = None
        self._lifecycle: Optional[LifecycleManager] = None
        self._dispatcher: Optional[ExecutionDispatcher] = None

        logger.info("ServiceContainer instantiated")

    async def initialize(self) -> None:
        """
        Build components and run the initial scan.

        Raises:
            ConfigurationError: pipelines directory unusable
        """
        logger.info("=" * 80)
        logger.info("INITIALIZING SERVICE CONTAINER")
        logger.info("=" * 80)

        pipelines_dir = self.settings.resolved_pipelines_dir()
        try:
            pipelines_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Pipelines directory {pipelines_dir} is not usable: {e}")

        self._registry = PipelineRegistry()
        self._lifecycle = LifecycleManager(
            pipelines_dir=pipelines_dir,
            registry=self._registry,
            scanner=SourceScanner(),
            loader=PipelineLoader(namespace=self.settings.module_namespace),
            validator=InterfaceValidator(),
            valve_store=ValveStore(pipelines_dir),
        )
        self._dispatcher = ExecutionDispatcher(self._lifecycle)

        count = await self._lifecycle.initialize(preload=self.settings.preload_pipelines)

        logger.info("=" * 80)
        logger.info(f"✓ ServiceContainer initialized ({count} pipeline(s) in {pipelines_dir})")
        logger.info("=" * 80)

    async def shutdown(self) -> None:
        """Drop loaded modules and registry state."""
        logger.info("Shutting down ServiceContainer...")
        if self._registry is not None and self._lifecycle is not None:
            for identifier in list(self._registry.snapshot()):
                self._lifecycle.loader.unload(identifier)
            self._registry.replace_all({})
        logger.info("✓ ServiceContainer shutdown complete")

    # ========================================================================
    # ACCESSOR METHODS
    # ========================================================================

    def get_registry(self) -> PipelineRegistry:
        """Get pipeline registry."""
        if self._registry is None:
            raise RuntimeError("PipelineRegistry not initialized")
        return self._registry

    def get_lifecycle(self) -> LifecycleManager:
        """Get lifecycle manager."""
        if self._lifecycle is None:
            raise RuntimeError("LifecycleManager not initialized")
        return self._lifecycle

    def get_dispatcher(self) -> ExecutionDispatcher:
        """Get execution dispatcher."""
        if self._dispatcher is None:
            raise RuntimeError("ExecutionDispatcher not initialized")
        return self._dispatcher
