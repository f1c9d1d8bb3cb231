"""HTTP client for the workout interpretation service.

The service takes one free-text description ("bench 80kg 5x3, then 20
pushups") and answers with structured observations:

    POST {base_url}/api/parse  {"input": "<raw text>"}
    -> {"success": true, "data": [{"exercise": ..., "weight": ..., ...}]}
    -> {"success": false, "error": "..."}

Failures never raise out of ``interpret``: transport problems, non-JSON
bodies and invalid observations all come back as a failed
``InterpretationResult`` so the ingestion queue can record them per item.
"""

import logging
from typing import Optional

import httpx

from finishstrong.protocols import InterpreterError
from finishstrong.types import InterpretationResult
from finishstrong.validation import validate_interpretation

logger = logging.getLogger(__name__)

PARSE_PATH = "/api/parse"
DEFAULT_TIMEOUT = 30.0


class HttpInterpreter:
    """Interpreter backed by the remote parse endpoint.

    Args:
        base_url: Service root, e.g. ``https://finishstrong.example.com``.
        timeout: Request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (tests pass one with
            a mock transport). A client created here is closed by ``aclose``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}{PARSE_PATH}"

    async def _post(self, raw_input: str) -> httpx.Response:
        try:
            return await self._client.post(
                self.endpoint,
                json={"input": raw_input},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise InterpreterError(f"Interpreter unreachable: {e}") from e

    async def interpret(self, raw_input: str) -> InterpretationResult:
        try:
            response = await self._post(raw_input)
        except InterpreterError as e:
            logger.warning(f"Interpreter request failed: {e}")
            return InterpretationResult(success=False, error=str(e))

        # Error responses carry the same envelope, so the body is read regardless of status
        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Interpreter returned non-JSON body (status {response.status_code})")
            return InterpretationResult(
                success=False,
                error=f"Interpreter returned status {response.status_code}",
            )

        result = validate_interpretation(payload)
        if not result.success and response.status_code >= 400:
            logger.debug(f"Interpreter status {response.status_code}: {result.error}")
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
