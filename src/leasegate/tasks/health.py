"""Deployment health monitor background task."""

import asyncio
import logging
import random
from typing import Optional

from leasegate.config import settings
from leasegate.engine.deployments import DeploymentController
from leasegate.observability.metrics import metrics

logger = logging.getLogger("leasegate.health")


class HealthMonitor:
    """
    Periodically checks every supervised deployment.

    A failing check is logged and the sweep moves on to the next
    deployment; nothing raised by a check ever stops the loop.

    The interval is jittered (default +/-10%) so several orchestrators
    sharing a runtime do not inspect it in lockstep.
    """

    def __init__(
        self,
        controller: DeploymentController,
        interval_seconds: float | None = None,
        jitter: float | None = None,
        stop_timeout_seconds: float = 10.0,
    ):
        self.controller = controller
        self.interval_seconds = (
            settings.health_check_interval_seconds if interval_seconds is None else interval_seconds
        )
        self.jitter = settings.health_check_jitter if jitter is None else jitter
        self.stop_timeout_seconds = stop_timeout_seconds
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        """Check every supervised deployment once. Returns the number checked."""
        lease_ids = await self.controller.supervised_lease_ids()
        checked = 0
        with metrics.timer("health.sweep_seconds"):
            for lease_id in lease_ids:
                try:
                    await self.controller.check_health(lease_id)
                    checked += 1
                except Exception as e:
                    metrics.inc_counter("health.check_errors")
                    logger.error(f"Health check for lease {lease_id} failed: {e}", exc_info=True)

        metrics.set_gauge("health.supervised", len(lease_ids))
        if lease_ids:
            logger.debug(f"Health sweep checked {checked}/{len(lease_ids)} deployments")
        return checked

    async def _loop(self) -> None:
        logger.info(
            f"Health monitor started (base interval: {self.interval_seconds}s "
            f"with ±{int(self.jitter * 100)}% jitter)"
        )

        while not self._shutdown_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Health sweep error: {e}", exc_info=True)

            interval = self.interval_seconds * random.uniform(1 - self.jitter, 1 + self.jitter)

            # Wait for next sweep interval or shutdown
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Health monitor stopped")

    def start(self) -> None:
        """Start the monitor loop on the running event loop."""
        if self.running:
            return
        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Signal the loop to stop, cancelling it if it does not finish in time."""
        if self._shutdown_event:
            self._shutdown_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=self.stop_timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning("Health monitor did not stop gracefully, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._shutdown_event = None
