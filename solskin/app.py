"""Application bootstrap for Solskin.

Builds the controller from its parts and runs it until a signal arrives.
Startup order: config, logging, K8s client, metrics, policy, suppressor
(state cache and executor), engine (reconciler and queue), watchers, REST,
janitor.

Shutdown runs in reverse: watchers stop before the queue they feed. Stop
errors are logged per component and never abort the shutdown.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from solskin.config import load_config
from solskin.durations import parse_duration_or_default
from solskin.models.config import SolskinConfig
from solskin.models.resources import ResourceKind
from solskin.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from solskin.collector.workload_watcher import WorkloadWatcher
    from solskin.engine.queue import EventQueue
    from solskin.engine.reconciler import Reconciler
    from solskin.observability.metrics import SolskinMetrics
    from solskin.policy.eligibility import EligibilityFilter
    from solskin.policy.evaluator import ComplianceEvaluator
    from solskin.suppressor.executor import ActionExecutor
    from solskin.suppressor.state_cache import SuppressionStateCache

_SHUTDOWN_GRACE_SECONDS = 15
_DEFAULT_CACHE_TTL = timedelta(minutes=5)
_DEFAULT_RESYNC = timedelta(minutes=5)


class _ComponentError(Exception):
    """A component the controller cannot run without failed to come up."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class SolskinApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self) -> None:
        self.config: SolskinConfig | None = None

        self._api_client: Any = None
        self._core_v1: Any = None
        self._apps_v1: Any = None
        self._batch_v1: Any = None

        self._metrics: SolskinMetrics | None = None
        self._eligibility: EligibilityFilter | None = None
        self._evaluator: ComplianceEvaluator | None = None
        self._state_cache: SuppressionStateCache | None = None
        self._executor: ActionExecutor | None = None
        self._reconciler: Reconciler | None = None
        self._queue: EventQueue | None = None
        self._watchers: list[WorkloadWatcher] = []
        self._rest_server: Any = None

        # REST server and janitor, cancelled on shutdown
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: FilteringBoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        The caller (main()) turns this into a non-zero exit.
        """
        # --- 1. Configuration -------------------------------------------
        try:
            self.config = load_config()
        except ValueError as exc:
            raise _ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, cluster_id=self.config.cluster_id)
        self._log = get_logger("app")
        self._log.info(
            "solskin_starting",
            version=_solskin_version(),
            mode=self.config.suppressor.mode.value,
        )

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Metrics --------------------------------------------------
        self._start_metrics()

        # --- 5. Policy ---------------------------------------------------
        self._start_policy()

        # --- 6. Suppression state cache and executor ---------------------
        self._start_suppressor()

        # --- 7. Reconciler and event queue -------------------------------
        await self._start_engine()

        # --- 8. Watchers -------------------------------------------------
        await self._start_watchers()

        # --- 9. REST API -------------------------------------------------
        await self._start_rest()

        # --- 10. State cache janitor -------------------------------------
        self._start_janitor()

        self._running = True
        self._log.info("solskin_started", port=self.config.api.port)

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    async def _start_k8s_client(self) -> None:
        """Load in-cluster credentials, falling back to the local kubeconfig."""
        assert self._log is not None
        self._log.debug("starting_k8s_client")
        try:
            import kubernetes_asyncio.config as k8s_config
            from kubernetes_asyncio import client as k8s_client

            try:
                k8s_config.load_incluster_config()  # type: ignore[no-untyped-call]
                self._log.info("k8s_client_configured", source="incluster")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s_client_configured", source="kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
            self._apps_v1 = k8s_client.AppsV1Api(self._api_client)
            self._batch_v1 = k8s_client.BatchV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_metrics(self) -> None:
        from solskin.observability.metrics import SolskinMetrics

        self._metrics = SolskinMetrics()

    def _start_policy(self) -> None:
        """Build the eligibility filter and evaluator; a bad exclusion pattern is fatal."""
        assert self.config is not None
        from solskin.policy.eligibility import ConfigurationError, EligibilityFilter
        from solskin.policy.evaluator import ComplianceEvaluator

        try:
            self._eligibility = EligibilityFilter.from_config(self.config.eligibility)
        except ConfigurationError as exc:
            raise _ComponentError("policy", exc) from exc
        self._evaluator = ComplianceEvaluator(self.config.suppressor.checks)

    def _start_suppressor(self) -> None:
        assert self.config is not None
        assert self._log is not None
        from solskin.cluster.client import KubernetesClusterClient
        from solskin.suppressor.executor import ActionExecutor
        from solskin.suppressor.state_cache import SuppressionStateCache

        cfg = self.config.suppressor
        ttl = parse_duration_or_default(cfg.cache_ttl, _DEFAULT_CACHE_TTL)
        self._state_cache = SuppressionStateCache(ttl_s=ttl.total_seconds())
        self._executor = ActionExecutor(
            KubernetesClusterClient(self._core_v1, self._apps_v1),
            annotation_prefix=cfg.annotation_prefix,
            strategy=cfg.deployment_strategy,
        )
        self._log.info(
            "suppressor_configured",
            ttl_s=ttl.total_seconds(),
            strategy=cfg.deployment_strategy.value,
            annotation_prefix=cfg.annotation_prefix,
        )

    async def _start_engine(self) -> None:
        assert self.config is not None
        assert self._eligibility is not None
        assert self._evaluator is not None
        assert self._state_cache is not None
        assert self._executor is not None
        assert self._metrics is not None
        from solskin.engine.queue import EventQueue
        from solskin.engine.reconciler import Reconciler

        self._reconciler = Reconciler(
            self._eligibility,
            self._evaluator,
            self._state_cache,
            self._executor,
            self._metrics,
            mode=self.config.suppressor.mode,
        )
        self._queue = EventQueue(
            self._reconciler.handle,
            lanes=self.config.informers.workers,
            lane_size=self.config.informers.queue_size,
            metrics=self._metrics,
        )
        await self._queue.start()

    async def _start_watchers(self) -> None:
        """Start one watcher per workload kind, feeding the event queue."""
        assert self.config is not None
        assert self._log is not None
        assert self._queue is not None
        assert self._metrics is not None
        from solskin.collector.workload_watcher import WorkloadWatcher

        resync = parse_duration_or_default(self.config.informers.resync, _DEFAULT_RESYNC)
        apis = {
            ResourceKind.POD: self._core_v1,
            ResourceKind.DEPLOYMENT: self._apps_v1,
            ResourceKind.DAEMONSET: self._apps_v1,
            ResourceKind.STATEFULSET: self._apps_v1,
            ResourceKind.JOB: self._batch_v1,
        }
        try:
            for kind, api in apis.items():
                watcher = WorkloadWatcher(
                    api,
                    kind,
                    self._queue.submit,
                    self._metrics,
                    resync_s=resync.total_seconds(),
                )
                await watcher.start()
                self._watchers.append(watcher)
        except Exception as exc:
            raise _ComponentError("watchers", exc) from exc
        self._log.info("watchers_started", kinds=[w.name for w in self._watchers])

    async def _start_rest(self) -> None:
        """Serve /metrics and /api/v1 with uvicorn on the configured port."""
        assert self._log is not None
        assert self.config is not None
        try:
            import uvicorn

            from solskin.api import build_app

            fastapi_app = build_app(
                metrics=self._metrics,
                reconciler=self._reconciler,
                evaluator=self._evaluator,
                queue=self._queue,
                config=self.config,
                watchers=self._watchers,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest_api_started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    def _start_janitor(self) -> None:
        """Launch a periodic task that purges expired state cache entries once per TTL."""
        assert self._log is not None
        assert self._state_cache is not None
        task = asyncio.create_task(self._janitor(self._state_cache.ttl_s), name="state-cache-janitor")
        self._background_tasks.append(task)

    async def _janitor(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            self.purge_state_cache()

    def purge_state_cache(self) -> int:
        """Drop expired state cache entries and refresh the size gauge."""
        if self._state_cache is None:
            return 0
        purged = self._state_cache.purge_expired()
        if self._metrics is not None:
            self._metrics.state_cache_entries.set(len(self._state_cache))
        if purged and self._log is not None:
            self._log.debug("state_cache_purged", purged=purged, remaining=len(self._state_cache))
        return purged

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("solskin_shutting_down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True

        # Stop producers before the consumer so no event is submitted to a stopped queue
        for watcher in reversed(self._watchers):
            await self._stop_component(f"watcher.{watcher.name}", watcher)
        self._watchers.clear()
        await self._stop_component("queue", self._queue)

        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
        self._rest_server = None

        await self._stop_k8s_client()
        log.info("solskin_stopped")
        self._log = None

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Stop one component; timeouts and errors are logged, never raised."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component_stop_timed_out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Release the shared ApiClient session."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self._api_client = None


def _solskin_version() -> str:
    from solskin import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Run the controller until SIGTERM or SIGINT; exit 1 if startup fails."""
    app = SolskinApp()
    loop = asyncio.get_running_loop()

    shutdown_tasks: list[asyncio.Task[None]] = []

    def _request_shutdown() -> None:
        if shutdown_tasks:
            return
        shutdown_tasks.append(asyncio.create_task(app.stop(), name="shutdown"))

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        while app.running:
            await asyncio.sleep(1)
        for task in shutdown_tasks:
            await task
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal_startup_error", component=exc.component, error=str(exc.cause))
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
