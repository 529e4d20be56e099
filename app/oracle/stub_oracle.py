"""
Stub analysis oracle for local development and tests.
Returns a fixed result unless a response has been scripted for the target
(file or group id); scripted exceptions are raised instead.
"""

import asyncio
from typing import Optional, Union

from app.oracle.base import AnalysisOracle, OracleRequest, OracleResult

ScriptedResponse = Union[OracleResult, Exception]


class StubOracle(AnalysisOracle):
    """Fake oracle with per-target scripted responses."""

    def __init__(self, default: Optional[OracleResult] = None, delay_seconds: float = 0.0):
        self.default = default or OracleResult(
            detected_language="es",
            document_type="birth_certificate",
            page_count=1,
            word_count=180,
            complexity="easy",
            confidence=0.9,
        )
        self.delay_seconds = delay_seconds
        self.responses: dict[str, ScriptedResponse] = {}
        self.requests: list[OracleRequest] = []

    @property
    def oracle_name(self) -> str:
        return "stub"

    @property
    def oracle_version(self) -> str:
        return "0.1.0"

    def script(self, target_id, response: ScriptedResponse) -> None:
        self.responses[str(target_id)] = response

    async def analyze(self, request: OracleRequest) -> OracleResult:
        self.requests.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        response = self.responses.get(request.target_id, self.default)
        if isinstance(response, Exception):
            raise response
        return response

    async def health_check(self) -> bool:
        return True
