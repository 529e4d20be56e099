"""
HTTP client for the external document analysis service.
"""

import structlog
import httpx
from pydantic import ValidationError

from app.config import settings
from app.oracle.base import AnalysisOracle, OracleError, OracleRequest, OracleResult, OracleTimeoutError

logger = structlog.get_logger(__name__)


class HttpAnalysisOracle(AnalysisOracle):
    """POSTs an OracleRequest to {ORACLE_URL}/analyze and parses the JSON result."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.ORACLE_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.ORACLE_API_KEY
        self.timeout = timeout or settings.ORACLE_TIMEOUT_SECONDS

    @property
    def oracle_name(self) -> str:
        return "http"

    @property
    def oracle_version(self) -> str:
        return "v1"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def analyze(self, request: OracleRequest) -> OracleResult:
        if not self.base_url:
            raise OracleError(self.oracle_name, "ORACLE_NOT_CONFIGURED", "ORACLE_URL is not set")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/analyze",
                    json=request.model_dump(mode="json"),
                    headers=self._headers(),
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.TimeoutException as e:
            logger.warning("oracle_http_timeout", target_id=request.target_id, timeout=self.timeout)
            raise OracleTimeoutError(self.oracle_name, f"no response after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "oracle_http_status_error",
                target_id=request.target_id,
                status_code=e.response.status_code,
            )
            raise OracleError(
                self.oracle_name, f"HTTP_{e.response.status_code}", e.response.text[:200],
            ) from e
        except httpx.RequestError as e:
            logger.error("oracle_http_request_error", target_id=request.target_id, error=str(e))
            raise OracleError(self.oracle_name, "REQUEST_ERROR", str(e)) from e
        except ValueError as e:
            raise OracleError(self.oracle_name, "INVALID_JSON", str(e)) from e

        try:
            return OracleResult.model_validate(payload)
        except ValidationError as e:
            raise OracleError(self.oracle_name, "INVALID_RESULT", str(e)) from e

    async def health_check(self) -> bool:
        if not self.base_url:
            return False
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{self.base_url}/health", headers=self._headers())
                return response.status_code == 200
        except httpx.HTTPError:
            return False
