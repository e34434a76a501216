"""Chain execution.

Each accepted run gets its own worker thread that walks the chain's models in
order. Provider calls go through a shared, bounded call pool so a waiting step
can give up on a call when the run is cancelled or the call's deadline passes.
"""

import concurrent.futures
import logging
import threading
import time
from typing import Any, Dict, List, Mapping

from ..clients.base import DirectClient
from ..clients.factory import build_router
from ..clients.utils import estimate_tokens
from ..errors import (
    InvalidChainError,
    InvalidRunStateError,
    NoResultError,
    NotFoundError,
    NotReadyError,
    ProviderError,
    RunCancelledError,
    StepTimeoutError,
)
from ..models.chain import Chain, Model
from ..models.chat import ChatMessage, ChatRequest, ChatResponse, RoutingStrategy
from ..models.checkpoint import Checkpoint
from ..routing.router import KeyUsage, ProviderRouter
from ..storage.base import ChainStore, CheckpointStore
from ..utils.cancellation import CallContext
from ..utils.chunker import Chunker, SegmentationMethod, get_chunker
from ..utils.config import Config
from .checkpoints import CheckpointRecorder
from .logging import get_service_logger
from .runs import Run, RunRegistry, RunStatus

logger = logging.getLogger(__name__)
slog = get_service_logger(__name__)


class ChainExecutor:
    """Starts chain runs in the background and answers questions about them.

    Lookup and validation errors are raised to the caller. Anything that goes
    wrong after ``run_chain`` returns ends up in the run's status and error.
    """

    def __init__(
        self,
        chains: ChainStore,
        checkpoints: CheckpointStore,
        router: ProviderRouter,
        registry: RunRegistry | None = None,
        step_timeout: float = 60.0,
        poll_interval: float = 0.05,
        max_concurrent_calls: int = 16,
        chunker: Chunker | None = None,
        segmentation: SegmentationMethod = SegmentationMethod.SIMPLE,
    ):
        self.chains = chains
        self.recorder = CheckpointRecorder(checkpoints)
        self.router = router
        self.registry = registry or RunRegistry()
        self.step_timeout = step_timeout
        self.poll_interval = poll_interval
        self.chunker = chunker or get_chunker(segmentation)
        self._pool = concurrent.futures.ThreadPoolExecutor(max_workers=max_concurrent_calls, thread_name_prefix="relay-call")
        self._workers: Dict[str, threading.Thread] = {}
        self._workers_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config, chains: ChainStore, checkpoints: CheckpointStore,
                    router: ProviderRouter | None = None) -> "ChainExecutor":
        return cls(
            chains,
            checkpoints,
            router or build_router(config),
            step_timeout=config.STEP_TIMEOUT,
            poll_interval=config.CANCEL_POLL_INTERVAL,
            max_concurrent_calls=config.MAX_CONCURRENT_CALLS,
            segmentation=config.SEGMENTATION_METHOD,
        )

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def run_chain(self, chain_id: str, input_text: str) -> str:
        """Start running ``chain_id`` on ``input_text`` and return the run id at once.

        Raises:
            NotFoundError: The chain does not exist.
            InvalidChainError: The chain has no models.
            PersistenceError: The input checkpoint could not be saved. No run
                is registered in that case.
        """
        chain = self.chains.get(chain_id)
        if not chain.models:
            raise InvalidChainError(f"chain {chain_id} has no models")

        run = Run(chain_id=chain.id, metadata={"chain_name": chain.name, "steps": len(chain.models)})
        input_checkpoint = self.recorder.record_input(chain, input_text, {"run_id": run.id})
        slog.checkpoint_saved(run.id, input_checkpoint.type.value, input_checkpoint.id)

        cancel_token = self.registry.create(run)

        def start(r: Run) -> None:
            if r.status != RunStatus.PENDING:
                return
            r.status = RunStatus.RUNNING
            r.checkpoints.append(input_checkpoint.id)

        if self.registry.mutate(run.id, start).status != RunStatus.RUNNING:
            # Cancelled before it got going
            return run.id

        slog.run_started(run.id, chain.name, len(chain.models))
        worker = threading.Thread(
            target=self._execute,
            args=(run.id, chain, input_text, cancel_token),
            name=f"chain-run-{run.id[:8]}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers[run.id] = worker
        worker.start()
        return run.id

    def cancel_run(self, run_id: str) -> Run:
        """Mark the run cancelled and signal its worker.

        Raises:
            NotFoundError: Unknown run id.
            InvalidRunStateError: The run already finished.
        """
        def apply(run: Run) -> None:
            if run.status.is_terminal:
                raise InvalidRunStateError(f"run {run_id} is already {run.status.value}")
            run.finish(RunStatus.CANCELLED)

        snapshot = self.registry.mutate(run_id, apply)
        self.registry.cancel_token(run_id).set()
        slog.run_cancelled(run_id)
        return snapshot

    def get_run_status(self, run_id: str) -> Run:
        run = self.registry.get(run_id)
        if run is None:
            raise NotFoundError(f"run {run_id} not found")
        return run

    def list_runs(self) -> List[Run]:
        return self.registry.list()

    def get_run_results(self, run_id: str) -> str:
        """Content of the run's last checkpoint.

        Raises:
            NotFoundError: Unknown run id.
            NotReadyError: The run has not completed.
            NoResultError: The run completed without recording checkpoints.
        """
        run = self.get_run_status(run_id)
        if run.status != RunStatus.COMPLETED:
            raise NotReadyError(f"run {run_id} is {run.status.value}, not completed")
        if not run.checkpoints:
            raise NoResultError(f"run {run_id} has no checkpoints")
        return self.recorder.load(run.checkpoints[-1]).content

    def wait_for_run(self, run_id: str, timeout: float | None = None) -> Run:
        """Block until the run's worker exits (or ``timeout`` passes) and return its status."""
        self.get_run_status(run_id)
        with self._workers_lock:
            worker = self._workers.get(run_id)
        if worker is not None:
            worker.join(timeout)
        return self.get_run_status(run_id)

    def list_checkpoints(self, chain_id: str) -> List[Checkpoint]:
        return self.recorder.list_for_chain(chain_id)

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint:
        return self.recorder.load(checkpoint_id)

    def available_models(self) -> dict[str, list[dict[str, Any]]]:
        return self.router.available_models()

    def usage_stats(self) -> dict[str, KeyUsage]:
        return self.router.usage_stats()

    def validate_user_keys(self) -> dict[str, str | None]:
        return self.router.validate_user_keys()

    def update_user_keys(self, clients: Mapping[str, DirectClient]) -> None:
        self.router.update_direct_clients(clients)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the provider call pool. Runs still in flight will fail their next call."""
        self._pool.shutdown(wait=wait, cancel_futures=True)

    # -------------------------------------------------------------------------
    # Run worker
    # -------------------------------------------------------------------------

    def _execute(self, run_id: str, chain: Chain, text: str, cancel_token: threading.Event) -> None:
        started = time.monotonic()
        total = len(chain.models)
        try:
            for index, model in enumerate(chain.models):
                if cancel_token.is_set():
                    raise RunCancelledError("run was cancelled")

                def begin_step(run: Run, name: str = model.name, progress: float = index / total * 100) -> None:
                    run.current_model = name
                    run.advance_progress(progress)

                self.registry.mutate(run_id, begin_step)
                slog.step_started(run_id, index, total, model.name)
                text = self._run_step(run_id, chain, model, index, text, cancel_token)

            if cancel_token.is_set():
                raise RunCancelledError("run was cancelled")
            total_tokens = self.get_run_status(run_id).total_tokens
            complete = self.recorder.record_complete(chain, text, {"run_id": run_id, "total_tokens": total_tokens})
            slog.checkpoint_saved(run_id, complete.type.value, complete.id)
            self._finish(run_id, RunStatus.COMPLETED, checkpoint_id=complete.id)
            slog.run_completed(run_id, total_tokens, (time.monotonic() - started) * 1000)
        except RunCancelledError:
            # cancel_run already recorded the status
            logger.debug(f"Run {run_id} stopped after cancellation")
        except Exception as e:
            self._finish(run_id, RunStatus.FAILED, error=str(e) or type(e).__name__)
            slog.run_failed(run_id, str(e), (time.monotonic() - started) * 1000)
        finally:
            with self._workers_lock:
                self._workers.pop(run_id, None)

    def _finish(self, run_id: str, status: RunStatus, error: str | None = None,
                checkpoint_id: str | None = None) -> None:
        def apply(run: Run) -> None:
            # A run cancelled while the worker was busy stays cancelled
            if run.status != RunStatus.RUNNING:
                return
            if checkpoint_id is not None:
                run.checkpoints.append(checkpoint_id)
            if status == RunStatus.COMPLETED:
                run.advance_progress(100.0)
            run.finish(status, error)

        self.registry.mutate(run_id, apply)

    def _record_step(self, run_id: str, checkpoint_ids: List[str], tokens: int) -> None:
        def apply(run: Run) -> None:
            # A cancelled or finished run keeps the totals it had
            if run.status != RunStatus.RUNNING:
                return
            run.add_tokens(tokens)
            run.checkpoints.extend(checkpoint_ids)

        self.registry.mutate(run_id, apply)

    def _chunker_for(self, model: Model) -> Chunker:
        if model.segmentation is None:
            return self.chunker
        return get_chunker(model.segmentation)

    def _run_step(self, run_id: str, chain: Chain, model: Model, index: int, text: str,
                  cancel_token: threading.Event) -> str:
        """Run one model over ``text``, record its checkpoint(s) and return its output.

        Checkpoints are written only once every call of the step has answered,
        so a step that fails or is cancelled part way leaves nothing behind.
        """
        window = model.context_window
        if window is None or len(text) <= window:
            response, tokens = self._call_model(run_id, model, text, cancel_token)
            metadata = self._output_metadata(run_id, model, index, response, tokens)
            if cancel_token.is_set():
                raise RunCancelledError("run was cancelled")
            output = self.recorder.record_output(chain, model, response.content, metadata)
            slog.checkpoint_saved(run_id, output.type.value, output.id)
            self._record_step(run_id, [output.id], tokens)
            return response.content

        chunker = self._chunker_for(model)
        chunks = chunker.split(text, window)
        slog.segmented(run_id, model.name, len(chunks), len(text))
        answered = []
        for chunk in chunks:
            response, tokens = self._call_model(run_id, model, chunk.content, cancel_token)
            answered.append((chunk, response, tokens))

        if cancel_token.is_set():
            raise RunCancelledError("run was cancelled")
        checkpoint_ids = []
        results = []
        step_tokens = 0
        usage_totals = {"prompt_tokens": 0, "completion_tokens": 0}
        for chunk, response, tokens in answered:
            metadata = self._output_metadata(run_id, model, index, response, tokens)
            metadata.update({
                "segment_index": chunk.order,
                "segment_start": chunk.start,
                "segment_end": chunk.end,
            })
            segment = self.recorder.record_segment(chain, model, response.content, metadata)
            slog.checkpoint_saved(run_id, segment.type.value, segment.id)
            checkpoint_ids.append(segment.id)
            results.append(chunk.with_content(response.content))
            step_tokens += tokens
            usage_totals["prompt_tokens"] += metadata["prompt_tokens"]
            usage_totals["completion_tokens"] += metadata["completion_tokens"]

        merged = chunker.merge(results)
        metadata = self._output_metadata(run_id, model, index, answered[-1][1], step_tokens)
        metadata.update(usage_totals)
        metadata["segments"] = len(chunks)
        output = self.recorder.record_output(chain, model, merged, metadata)
        slog.checkpoint_saved(run_id, output.type.value, output.id)
        checkpoint_ids.append(output.id)
        self._record_step(run_id, checkpoint_ids, step_tokens)
        return merged

    def _output_metadata(self, run_id: str, model: Model, index: int, response: ChatResponse,
                         tokens: int) -> dict[str, Any]:
        metadata = {
            "run_id": run_id,
            "step_index": index,
            "model_name": model.name,
            "model_role": model.role_name,
            "temperature": model.temperature,
            "max_tokens": model.max_tokens,
        }
        metadata.update(response.routing_metadata())
        metadata["total_tokens"] = tokens
        return metadata

    # -------------------------------------------------------------------------
    # Provider calls
    # -------------------------------------------------------------------------

    def _build_request(self, run_id: str, model: Model, text: str) -> ChatRequest:
        return ChatRequest(
            model=model.name,
            messages=[
                ChatMessage(role="system", content=model.system_prompt()),
                ChatMessage(role="user", content=text),
            ],
            temperature=model.temperature,
            max_tokens=model.max_tokens,
            strategy=RoutingStrategy.USER_KEY_FIRST,
            user_context={"run_id": run_id},
        )

    def _call_model(self, run_id: str, model: Model, text: str,
                    cancel_token: threading.Event) -> tuple[ChatResponse, int]:
        """Call ``model`` with user keys first, then once more through the subscription.

        Returns the response and its token count (estimated when usage is missing).

        Raises:
            RunCancelledError: The run was cancelled.
            ProviderError: Both attempts failed.
        """
        request = self._build_request(run_id, model, text)
        slog.step_payload(f"Request for {model.name}", request.model_dump(mode="json"))
        started = time.monotonic()
        try:
            response = self._attempt(request, cancel_token)
        except RunCancelledError:
            raise
        except Exception as first_error:
            slog.step_retry(run_id, model.name, str(first_error))
            fallback = request.model_copy(update={"strategy": RoutingStrategy.SUBSCRIPTION})
            try:
                response = self._attempt(fallback, cancel_token)
            except RunCancelledError:
                raise
            except Exception as e:
                raise ProviderError(f"model {model.name} failed: {e}") from e

        usage = response.usage
        if usage is not None and usage.total_tokens > 0:
            tokens = usage.total_tokens
        else:
            tokens = estimate_tokens(response.content)
        slog.step_routed(run_id, model.name, response.provider, response.routed_via, response.billed_to,
                         tokens, (time.monotonic() - started) * 1000)
        return response, tokens

    def _attempt(self, request: ChatRequest, cancel_token: threading.Event) -> ChatResponse:
        """One routed call, abandoned when the run is cancelled or the deadline passes."""
        ctx = CallContext(cancel_token, timeout=self.step_timeout)
        ctx.check()
        future = self._pool.submit(self.router.chat, request, ctx)
        while True:
            done, _ = concurrent.futures.wait([future], timeout=self.poll_interval)
            if done:
                response = future.result()
                break
            if ctx.cancelled:
                future.cancel()
                raise RunCancelledError("run was cancelled")
            if ctx.expired:
                future.cancel()
                raise StepTimeoutError(f"model {request.model} did not answer within {self.step_timeout:.1f}s")

        # The run may have been cancelled while the answer was on its way
        if ctx.cancelled:
            raise RunCancelledError("run was cancelled")
        if not response.content:
            raise ProviderError(f"model {request.model} returned an empty response")
        return response
