"""
Plugin Pipeline - Runs text through chains of plugins.

Two execution strategies share the same per-step behavior:

Implicit mode (``process_message``)
    Applies every active plugin, in registry order, folding each output
    into the next input. A failing plugin is treated as a no-op and the
    chain continues (fail-open).

Explicit mode (``process_with_specific_plugins`` / ``execute_queue``)
    Applies a caller-chosen list of plugin ids. The one-off list variant is
    fail-open like implicit mode. Queue execution stops at the first
    failure (fail-closed) and never overlaps with another queue run.

Every attempted step produces an ``ExecutionResult`` that is appended to
the history and recorded in the activation store. Unregistered ids are
skipped without a result.
"""

import asyncio
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from .activation import ActivationStore
from .history import DEFAULT_HISTORY_LIMIT, ExecutionHistory
from .plugins.base import Plugin
from .plugins.loader import PluginLoader
from .plugins.registry import PluginRegistry
from .queue import PluginQueue
from .types import ExecutionResult

if TYPE_CHECKING:
    from .config import PipelineConfig
    from .observability.metrics import MetricsCollector
    from .storage import StateStorage


logger = logging.getLogger(__name__)


DEFAULT_PLUGIN_TIMEOUT = 300.0


class PluginTimeoutError(Exception):
    """Raised when a plugin call runs past the pipeline's timeout."""
    pass


class CancellationToken:
    """
    Cooperative cancellation flag for a pipeline run.

    The pipeline checks the token before each step. A plugin that is
    already running is allowed to finish.

    Example:
        token = CancellationToken()
        task = asyncio.create_task(pipeline.execute_queue("text", cancel_token=token))
        token.cancel("user aborted")
        results = await task  # results produced before cancellation
    """

    def __init__(self):
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: Optional[str] = None) -> None:
        """Request cancellation."""
        self._cancelled = True
        self.reason = reason

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class PluginPipeline:
    """
    Executes plugins from a registry against text.

    Example usage:
        registry = PluginRegistry()
        registry.register(UpperCasePlugin())

        pipeline = PluginPipeline(registry)
        pipeline.store.toggle("upper_case", True)

        text = await pipeline.process_message("hello")  # "HELLO"

        pipeline.queue.add("upper_case")
        results = await pipeline.execute_queue("hi")
    """

    def __init__(
        self,
        registry: PluginRegistry,
        store: Optional[ActivationStore] = None,
        history: Optional[ExecutionHistory] = None,
        queue: Optional[PluginQueue] = None,
        plugin_timeout: Optional[float] = DEFAULT_PLUGIN_TIMEOUT,
        persist_history_limit: Optional[int] = DEFAULT_HISTORY_LIMIT,
        metrics: Optional["MetricsCollector"] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            registry: Catalog of available plugins.
            store: Activation store; created over ``registry`` if omitted.
            history: Execution history; a default-sized one if omitted.
            queue: Queue for explicit chains; empty if omitted.
            plugin_timeout: Seconds allowed per ``process`` call. None,
                zero or a negative value disables the timeout.
            persist_history_limit: How many history entries ``snapshot``
                keeps. None keeps all.
            metrics: Optional metrics collector.
        """
        self.registry = registry
        self.store = store if store is not None else ActivationStore(registry)
        self.history = history if history is not None else ExecutionHistory()
        self.queue = queue if queue is not None else PluginQueue()
        self.plugin_timeout = plugin_timeout if plugin_timeout and plugin_timeout > 0 else None
        self.persist_history_limit = persist_history_limit
        self.metrics = metrics

        self._queue_lock: Optional[asyncio.Lock] = None
        self._queue_lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self._processing = False

    @classmethod
    def from_config(
        cls,
        config: "PipelineConfig",
        plugins: Optional[Iterable[Plugin]] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> "PluginPipeline":
        """
        Build a pipeline from configuration.

        Registers the given plugins (the built-ins when omitted), then
        applies the activation entries listed in the configuration.
        """
        registry = PluginRegistry()
        loader = PluginLoader(registry)
        if plugins is None:
            loader.register_builtins()
        else:
            loader.register_all(plugins)

        pipeline = cls(
            registry,
            history=ExecutionHistory(config.history_limit),
            plugin_timeout=config.plugin_timeout,
            persist_history_limit=config.persist_history_limit,
            metrics=metrics,
        )
        loader.apply_configs(config.plugins, pipeline.store)
        return pipeline

    @property
    def processing(self) -> bool:
        """Whether a queue execution is currently in flight."""
        return self._processing

    # ------------------------------------------------------------------
    # Single step
    # ------------------------------------------------------------------

    async def execute_plugin(
        self,
        plugin_id: str,
        input: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[ExecutionResult]:
        """
        Run one plugin and record the result.

        Args:
            plugin_id: Plugin to run.
            input: Text to process.
            options: Per-call options taking precedence over stored ones.

        Returns:
            The execution result, or None if the plugin is not registered.
        """
        plugin = self.registry.get(plugin_id)
        if plugin is None:
            logger.debug(f"Skipping unregistered plugin: {plugin_id}")
            return None

        resolved = self.store.resolve_options(plugin_id, options)
        start_time = time.perf_counter()

        try:
            output = await self._invoke(plugin, input, resolved)
            if not isinstance(output, str):
                raise TypeError(
                    f"Plugin '{plugin_id}' returned {type(output).__name__}, expected str"
                )
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            result = ExecutionResult.succeeded(plugin_id, input, output, elapsed_ms)
        except PluginTimeoutError as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error = str(e)
            logger.error(error, extra={"attributes": {"plugin_id": plugin_id}})
            result = ExecutionResult.failed(plugin_id, input, error, elapsed_ms)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error = str(e) or e.__class__.__name__
            logger.error(
                f"Plugin {plugin_id} failed: {error}",
                exc_info=True,
                extra={"attributes": {"plugin_id": plugin_id}},
            )
            result = ExecutionResult.failed(plugin_id, input, error, elapsed_ms)

        self._record(result)
        return result

    async def _invoke(self, plugin: Plugin, text: str, options: Dict[str, Any]) -> str:
        if self.plugin_timeout is None:
            return await plugin.process(text, options)

        # A TimeoutError raised by the plugin itself is an ordinary failure
        task = asyncio.ensure_future(plugin.process(text, options))
        try:
            done, _ = await asyncio.wait({task}, timeout=self.plugin_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise PluginTimeoutError(
                f"Plugin '{plugin.id}' timed out after {self.plugin_timeout}s"
            )
        return task.result()

    def _record(self, result: ExecutionResult) -> None:
        self.history.append(result)
        self.store.record_result(result.plugin_id, result)
        if self.metrics:
            self.metrics.record_plugin_execution(
                result.plugin_id,
                result.execution_time_ms / 1000,
                success=result.success,
            )

    # ------------------------------------------------------------------
    # Fail-open chains
    # ------------------------------------------------------------------

    async def process_message(
        self,
        input: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Apply every active plugin to a message.

        Plugins run in registry order. A failing plugin leaves the text
        unchanged and the chain continues.

        Args:
            input: Raw message text.
            cancel_token: Optional token checked before each step.

        Returns:
            The transformed text.
        """
        if self.metrics:
            self.metrics.record_pipeline_run("implicit")
        return await self._fold("implicit", input, self.store.list_active(), None, cancel_token)

    async def process_with_specific_plugins(
        self,
        input: str,
        plugin_ids: Iterable[str],
        options_override: Optional[Dict[str, Dict[str, Any]]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """
        Apply an explicit list of plugins to a message.

        Membership and order come from ``plugin_ids`` regardless of the
        active flags. Failures are skipped as in ``process_message``.

        Args:
            input: Raw message text.
            plugin_ids: Plugins to apply, in order.
            options_override: Per-plugin options keyed by plugin id,
                preferred over the stored options.
            cancel_token: Optional token checked before each step.

        Returns:
            The transformed text.
        """
        if self.metrics:
            self.metrics.record_pipeline_run("explicit")
        return await self._fold("explicit", input, list(plugin_ids), options_override, cancel_token)

    async def _fold(
        self,
        mode: str,
        input: str,
        plugin_ids: List[str],
        options_override: Optional[Dict[str, Dict[str, Any]]],
        cancel_token: Optional[CancellationToken],
    ) -> str:
        current = input
        overrides = options_override or {}

        for plugin_id in plugin_ids:
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(
                    f"Pipeline run cancelled before plugin {plugin_id}",
                    extra={"attributes": {"mode": mode, "plugin_id": plugin_id}},
                )
                break

            result = await self.execute_plugin(plugin_id, current, overrides.get(plugin_id))
            if result is not None and result.success:
                current = result.output

        return current

    # ------------------------------------------------------------------
    # Fail-closed queue
    # ------------------------------------------------------------------

    def _get_queue_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._queue_lock is None or self._queue_lock_loop is not loop:
            self._queue_lock = asyncio.Lock()
            self._queue_lock_loop = loop
        return self._queue_lock

    async def execute_queue(
        self,
        initial_input: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[ExecutionResult]:
        """
        Run the queued plugins as a dependent chain.

        Stops at the first failed step; the returned list ends with that
        failure. A call made while another queue run is in flight waits
        for it to finish before starting.

        Args:
            initial_input: Text handed to the first queued plugin.
            cancel_token: Optional token checked before each step.

        Returns:
            Results produced up to and including the first failure.
        """
        lock = self._get_queue_lock()
        if lock.locked():
            logger.info("Queue execution already in progress, waiting for it to finish")

        async with lock:
            self._processing = True
            try:
                if self.metrics:
                    self.metrics.record_pipeline_run("queue")
                return await self._run_queue(initial_input, cancel_token)
            finally:
                self._processing = False

    async def _run_queue(
        self,
        initial_input: str,
        cancel_token: Optional[CancellationToken],
    ) -> List[ExecutionResult]:
        results: List[ExecutionResult] = []
        current = initial_input

        for plugin_id in self.queue.ids():
            if cancel_token is not None and cancel_token.cancelled:
                logger.info(
                    f"Queue execution cancelled before plugin {plugin_id}",
                    extra={"attributes": {"mode": "queue", "plugin_id": plugin_id}},
                )
                break

            result = await self.execute_plugin(plugin_id, current)
            if result is None:
                continue

            results.append(result)
            if not result.success:
                logger.warning(
                    f"Queue stopped at plugin {plugin_id} after {len(results)} step(s)",
                    extra={"attributes": {"mode": "queue", "plugin_id": plugin_id, "step": len(results)}},
                )
                break
            current = result.output

        return results

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """
        Export the durable state in the persisted shape.

        Returns:
            Mapping with ``plugins``, ``pluginOptions`` and ``history``.
        """
        state = self.store.to_persisted()
        state["history"] = self.history.to_list(self.persist_history_limit)
        return state

    def restore(self, state: Dict[str, Any]) -> List[str]:
        """
        Load persisted state, reconciling it with the registry.

        Returns:
            Plugin ids whose activation state was dropped.
        """
        dropped = self.store.load(state)
        self.history.load(
            ExecutionResult.from_dict(entry) for entry in state.get("history") or []
        )
        return dropped

    def save_state(self, storage: "StateStorage") -> None:
        """Persist the durable state through a storage backend."""
        storage.save(self.snapshot())

    def load_state(self, storage: "StateStorage") -> List[str]:
        """
        Restore state from a storage backend.

        Returns:
            Plugin ids whose activation state was dropped; empty when
            nothing was stored yet.
        """
        state = storage.load()
        if state is None:
            return []
        return self.restore(state)

    def __repr__(self) -> str:
        return (
            f"PluginPipeline(plugins={len(self.registry)}, "
            f"active={self.store.list_active()}, queue={self.queue.ids()})"
        )
