"""
Remote rule checking - the capability the validation engine delegates to.

The engine depends only on the RemoteRuleChecker abstraction. Two
implementations are provided:

- InProcessRemoteChecker: plain Python handlers, for tests and local use
- HttpRemoteRuleChecker: POSTs the check to a validation service with httpx

Checkers report failures by raising RemoteValidationError; the engine then
applies the configured failure policy.
"""

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from pydantic import ValidationError

from form_engine.exceptions import RemoteValidationError
from form_engine.schemas.results import RuleOutcome

logger = logging.getLogger(__name__)

# handler(field_id, value, data) -> RuleOutcome | bool | str | None (or awaitable thereof)
RemoteHandler = Callable[[str, Any, Mapping[str, Any]], Any]


class RemoteRuleChecker(ABC):
    """
    Abstract interface for asynchronous rule checks (e.g. uniqueness).

    Implementations must be safe to call concurrently and must not mutate
    ``data``.
    """

    @abstractmethod
    async def check(
        self,
        rule_id: str,
        field_id: str,
        value: Any,
        data: Mapping[str, Any],
    ) -> RuleOutcome:
        """
        Check one remote rule for one field value.

        Args:
            rule_id: Remote rule identifier declared in the schema
            field_id: Field being validated
            value: Field value (after conditional overrides)
            data: Effective data snapshot

        Returns:
            RuleOutcome with status valid / invalid / pending

        Raises:
            RemoteValidationError: Backend unreachable or returned garbage
        """

    async def aclose(self) -> None:
        """Release network resources (no-op by default)."""


def _to_outcome(result: Any) -> RuleOutcome:
    if isinstance(result, RuleOutcome):
        return result
    if result is None or result is True:
        return RuleOutcome.valid()
    if result is False:
        return RuleOutcome.invalid()
    if isinstance(result, str):
        return RuleOutcome.invalid(result)
    raise TypeError(f"Unsupported remote handler result: {type(result).__name__}")


class InProcessRemoteChecker(RemoteRuleChecker):
    """
    Remote checker backed by in-process handlers.

    A handler returns a RuleOutcome, True/None (valid), False (invalid) or an
    error string (invalid with message); coroutines are awaited. Unknown rule
    ids resolve to pending rather than passing.
    """

    def __init__(self, handlers: Optional[Dict[str, RemoteHandler]] = None):
        self._handlers: Dict[str, RemoteHandler] = dict(handlers or {})

    def register(self, rule_id: str, handler: RemoteHandler) -> None:
        self._handlers[rule_id] = handler

    async def check(self, rule_id: str, field_id: str, value: Any, data: Mapping[str, Any]) -> RuleOutcome:
        handler = self._handlers.get(rule_id)
        if handler is None:
            logger.debug(f"No in-process handler for remote rule '{rule_id}'")
            return RuleOutcome.pending(f"No handler registered for remote rule '{rule_id}'")

        try:
            result = handler(field_id, value, data)
            if inspect.isawaitable(result):
                result = await result
            return _to_outcome(result)
        except RemoteValidationError:
            raise
        except Exception as e:
            raise RemoteValidationError(rule_id, field_id, str(e), original_error=e)


class HttpRemoteRuleChecker(RemoteRuleChecker):
    """
    Remote checker calling an HTTP validation service.

    Request:  POST {endpoint}/rules/{rule_id}/check
              {"rule_id", "field_id", "value", "data"}
    Response: {"status": "valid" | "invalid" | "pending", "message": optional}
    """

    def __init__(
        self,
        endpoint: str,
        timeout: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def check(self, rule_id: str, field_id: str, value: Any, data: Mapping[str, Any]) -> RuleOutcome:
        url = f"{self.endpoint}/rules/{rule_id}/check"
        payload = {"rule_id": rule_id, "field_id": field_id, "value": value, "data": dict(data)}

        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.warning(f"Remote rule '{rule_id}' request failed: {type(e).__name__}: {e}")
            raise RemoteValidationError(rule_id, field_id, f"{type(e).__name__}: {e}", original_error=e)
        except ValueError as e:
            raise RemoteValidationError(rule_id, field_id, f"Invalid JSON response: {e}", original_error=e)

        try:
            return RuleOutcome.model_validate(body)
        except ValidationError as e:
            raise RemoteValidationError(rule_id, field_id, f"Unexpected response shape: {e}", original_error=e)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
