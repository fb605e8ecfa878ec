"""Form controller - timing orchestration for one form instance.

The controller owns no business rules. It serializes edits, blurs and
submits for a single form and commits engine results into form state:

- on_data_change: debounced full evaluation; only the latest burst commits,
  and only for fields no newer blur has claimed
- on_field_blur: immediate scoped validation guarded by per-field tokens
- submit: full validation, then the submit handler only when valid
- auto-save: independent debounce timer, never awaited by validation
- close: cancels every timer and in-flight task; nothing commits afterwards
"""

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Tuple, Union

from form_engine.config.engine_config import EngineConfig
from form_engine.schemas.results import ConditionalResult, ValidationResults
from form_engine.schemas.rules import TriggerPolicy
from form_engine.session.scheduler import Debouncer, RequestTokens, ScheduledTask

if TYPE_CHECKING:
    from form_engine.session.handle import EngineHandle

logger = logging.getLogger(__name__)

UpdateCallback = Callable[["FormController"], Any]
DataCallback = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class FormState(str, Enum):
    """Lifecycle state of a form instance."""

    IDLE = "idle"
    VALIDATING = "validating"
    VALID = "valid"
    INVALID = "invalid"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"


class FormController:
    """Per-instance session state on top of a shared, read-only EngineHandle."""

    def __init__(
        self,
        handle: "EngineHandle",
        config: Optional[EngineConfig] = None,
        on_update: Optional[UpdateCallback] = None,
        autosave: Optional[DataCallback] = None,
        submit_handler: Optional[DataCallback] = None,
    ):
        """
        Initialize the controller.

        Args:
            handle: Engine handle (schema, graph and engines)
            config: Timing settings; defaults to the handle's config
            on_update: Called with the controller after every commit
            autosave: Called with the latest data after the auto-save delay
            submit_handler: Called with the effective data on a valid submit
        """
        self.handle = handle
        self.config = config or handle.config
        self.on_update = on_update
        self.autosave = autosave
        self.submit_handler = submit_handler

        self.state = FormState.IDLE
        self.data: Dict[str, Any] = handle.schema.initial_data()
        self.field_errors: Dict[str, List[str]] = {}
        self.pending: Dict[str, List[str]] = {}
        self.conditional_state: Dict[str, ConditionalResult] = {}
        self.last_results: Optional[ValidationResults] = None
        self.submit_error: Optional[str] = None
        self.commit_count = 0
        self.autosave_count = 0

        self._debouncer = Debouncer(self.config.debounce_seconds, name="validation")
        self._autosave_debouncer = Debouncer(self.config.autosave_seconds, name="autosave")
        self._tokens = RequestTokens()
        self._inflight: Set["asyncio.Task[Any]"] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_valid(self) -> bool:
        return self.last_results is not None and self.last_results.is_valid

    def on_data_change(self, data: Mapping[str, Any]) -> ScheduledTask:
        """Record an edit and (re)arm the debounced evaluation."""
        self._ensure_open()
        snapshot = dict(data)
        self.data = snapshot
        if self.state not in (FormState.SUBMITTING,):
            self._set_state(FormState.VALIDATING)

        # A newer edit supersedes any in-flight blur validation
        token = self._tokens.issue(self.handle.field_ids)

        if self.autosave is not None:
            self._autosave_debouncer.schedule(lambda: self._run_autosave(snapshot))

        return self._debouncer.schedule(
            lambda: self._evaluate(snapshot),
            on_commit=lambda evaluation: self._commit_evaluation(evaluation, token),
        )

    async def on_field_blur(self, field_id: str, data: Mapping[str, Any]) -> ValidationResults:
        """Validate ``field_id`` and its dependents immediately with the blur trigger."""
        self._ensure_open()
        snapshot = dict(data)
        self.data = snapshot
        scope = self.handle.validation_engine.scope_for(field_id)
        token = self._tokens.issue(scope)

        results = await self._track(
            self.handle.validation_engine.validate_field(field_id, snapshot, TriggerPolicy.ON_BLUR)
        )
        if self._closed:
            return results

        fresh = [f for f in results.evaluated_fields if self._tokens.is_latest(f, token)]
        if len(fresh) < len(results.evaluated_fields):
            logger.debug(f"Discarding stale blur results for {len(results.evaluated_fields) - len(fresh)} field(s)")
        if fresh:
            base = self.last_results or ValidationResults()
            self._commit_results(base.merge(results.restricted_to(fresh)))
        return results

    async def submit(self, data: Optional[Mapping[str, Any]] = None) -> ValidationResults:
        """
        Validate everything and hand the data to the submit handler if valid.

        Returns:
            The full validation results; ``state`` tells whether the submit
            went through.
        """
        self._ensure_open()
        snapshot = dict(data) if data is not None else dict(self.data)
        self.data = snapshot
        self._debouncer.cancel()
        self._tokens.issue(self.handle.field_ids)
        self._set_state(FormState.VALIDATING)

        conditional, results = await self._track(self._evaluate(snapshot, TriggerPolicy.ON_SUBMIT))
        if self._closed:
            return results
        self._commit_evaluation((conditional, results))
        if not results.is_valid:
            logger.info(f"Submit blocked: {self._error_summary(results)}")
            return results

        self._set_state(FormState.SUBMITTING)
        effective = self.handle.effective_data(snapshot, conditional)
        if self.submit_handler is None:
            self._set_state(FormState.SUBMITTED)
            return results

        try:
            outcome = self.submit_handler(effective)
            if asyncio.iscoroutine(outcome):
                await self._track(outcome)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Submit handler failed: {e}")
            self.submit_error = str(e)
            self._set_state(FormState.SUBMIT_FAILED)
            return results

        self.submit_error = None
        self._set_state(FormState.SUBMITTED)
        return results

    async def flush(self) -> None:
        """Wait for the pending debounced evaluation (if any) to settle."""
        while True:
            sequence = self._debouncer.sequence
            await self._debouncer.wait()
            if self._debouncer.sequence == sequence:
                return

    async def flush_autosave(self) -> None:
        await self._autosave_debouncer.wait()

    def close(self) -> None:
        """Cancel timers and in-flight work; no commit or callback happens afterwards."""
        if self._closed:
            return
        self._closed = True
        self._debouncer.close()
        self._autosave_debouncer.close()
        for task in list(self._inflight):
            task.cancel()
        logger.debug(f"Closed form controller for schema '{self.handle.schema.id}'")

    async def aclose(self) -> None:
        tasks = list(self._inflight)
        self.close()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _evaluate(
        self,
        snapshot: Dict[str, Any],
        trigger: TriggerPolicy = TriggerPolicy.ON_CHANGE,
    ) -> Tuple[Dict[str, ConditionalResult], ValidationResults]:
        conditional = self.handle.get_conditional_state(snapshot)
        results = await self.handle.validation_engine.validate_all(snapshot, trigger)
        return conditional, results

    def _commit_evaluation(
        self,
        evaluation: Tuple[Dict[str, ConditionalResult], ValidationResults],
        token: Optional[int] = None,
    ) -> None:
        """
        Commit a full evaluation.

        With a ``token``, only fields for which it is still the latest request
        are committed; fields claimed by a newer blur keep their results.
        """
        if self._closed:
            return
        conditional, results = evaluation
        if token is None:
            self.conditional_state = conditional
            self._commit_results(results)
            return

        fresh = [f for f in results.evaluated_fields if self._tokens.is_latest(f, token)]
        if len(fresh) == len(results.evaluated_fields):
            self.conditional_state = conditional
            self._commit_results(results)
            return

        logger.debug(f"Discarding stale evaluation results for {len(results.evaluated_fields) - len(fresh)} field(s)")
        if not fresh:
            return
        merged_state = dict(self.conditional_state)
        merged_state.update({f: conditional[f] for f in fresh if f in conditional})
        self.conditional_state = merged_state
        base = self.last_results or ValidationResults()
        self._commit_results(base.merge(results.restricted_to(fresh)))

    def _commit_results(self, results: ValidationResults) -> None:
        self.last_results = results
        self.field_errors = {k: list(v) for k, v in results.field_errors.items()}
        self.pending = {k: list(v) for k, v in results.pending.items()}
        self.commit_count += 1
        if self.state != FormState.SUBMITTING:
            self._set_state(FormState.VALID if results.is_valid else FormState.INVALID)
        self._notify()

    async def _run_autosave(self, snapshot: Dict[str, Any]) -> None:
        try:
            result = self.autosave(dict(snapshot))
            if asyncio.iscoroutine(result):
                await result
            self.autosave_count += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Auto-save failed: {e}")

    def _notify(self) -> None:
        if self.on_update is None or self._closed:
            return
        try:
            self.on_update(self)
        except Exception as e:
            logger.warning(f"Update callback failed: {e}")

    async def _track(self, awaitable: Awaitable[Any]) -> Any:
        task = asyncio.ensure_future(awaitable)
        self._inflight.add(task)
        try:
            return await task
        finally:
            self._inflight.discard(task)

    def _set_state(self, state: FormState) -> None:
        if state != self.state:
            logger.debug(f"Form '{self.handle.schema.id}': {self.state.value} -> {state.value}")
            self.state = state

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("Form controller is closed")

    @staticmethod
    def _error_summary(results: ValidationResults) -> str:
        failing = [f for f, errors in results.field_errors.items() if errors]
        parts = []
        if failing:
            parts.append(f"{len(failing)} field(s) with errors")
        if results.global_errors:
            parts.append(f"{len(results.global_errors)} global error(s)")
        if results.has_pending:
            parts.append("remote checks pending")
        return ", ".join(parts) or "invalid"
