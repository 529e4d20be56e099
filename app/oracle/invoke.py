"""
Bounded oracle invocation with metrics.
"""

import asyncio
import time
from typing import Optional

import structlog

from app.config import settings
from app.observability.metrics import oracle_calls_total, oracle_latency_seconds
from app.oracle.base import AnalysisOracle, OracleError, OracleRequest, OracleResult, OracleTimeoutError

logger = structlog.get_logger(__name__)


async def invoke_oracle(
    oracle: AnalysisOracle,
    request: OracleRequest,
    timeout: Optional[float] = None,
) -> OracleResult:
    """
    Run one analysis call, bounded by ORACLE_TIMEOUT_SECONDS.
    Raises OracleTimeoutError on timeout and OracleError on any other failure.
    """
    timeout = timeout or settings.ORACLE_TIMEOUT_SECONDS
    started = time.perf_counter()
    outcome = "ok"
    try:
        return await asyncio.wait_for(oracle.analyze(request), timeout=timeout)
    except (asyncio.TimeoutError, OracleTimeoutError) as e:
        outcome = "timeout"
        logger.warning(
            "oracle_timeout",
            oracle=oracle.oracle_name,
            target_type=request.target_type,
            target_id=request.target_id,
            timeout=timeout,
        )
        if isinstance(e, OracleTimeoutError):
            raise
        raise OracleTimeoutError(oracle.oracle_name, f"no result after {timeout}s") from e
    except OracleError as e:
        outcome = "error"
        logger.error(
            "oracle_failed",
            oracle=oracle.oracle_name,
            target_type=request.target_type,
            target_id=request.target_id,
            error_code=e.error_code,
            error=e.message,
        )
        raise
    finally:
        oracle_calls_total.labels(target=request.target_type, outcome=outcome).inc()
        oracle_latency_seconds.labels(target=request.target_type).observe(time.perf_counter() - started)
