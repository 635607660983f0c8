"""
FastAPI Stub Reporting Sink for Local Development

Accepts the worker's delivery payloads, keeps them in memory and can be told
to fail with a chosen status to exercise the degraded retry.

Usage:
    uvicorn scripts.local_sink_server:app --port 8787
    DMARC_SINK_URL=http://localhost:8787/api/dmarc-email python scripts/run_demo.py
"""

import os
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()


class FailureMode(BaseModel):
    """How the stub answers the next deliveries."""

    status_code: int | None = Field(
        default=None,
        description="Non-2xx status to answer with; None means accept",
    )
    remaining: int = Field(
        default=1,
        ge=0,
        description="Number of deliveries to fail before accepting again",
    )
    reject_with: str | None = Field(
        default=None,
        description="Answer 200 with success=false and this error instead",
    )


_received: list[dict[str, Any]] = []
_failure = FailureMode(
    status_code=int(os.environ["SINK_FAIL_STATUS"]) if os.environ.get("SINK_FAIL_STATUS") else None,
    remaining=int(os.environ.get("SINK_FAIL_COUNT", "1")),
)


app = FastAPI(
    title="DMARC Reporting Sink (stub)",
    description="Local stand-in for the reporting sink",
)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "received": len(_received)}


@app.post("/api/dmarc-email")
async def receive_payload(
    request: Request,
    user_agent: str | None = Header(default=None),
    x_is_retry: str | None = Header(default=None),
):
    """Record one delivery payload."""
    global _failure

    payload = await request.json()
    is_retry = x_is_retry == "true"

    log.info(
        "payload_received",
        user_agent=user_agent,
        is_retry=is_retry,
        message_id=payload.get("emailInfo", {}).get("messageId"),
        record_count=len(payload.get("dmarcRecords", [])),
        has_attachment="attachment" in payload,
    )

    if _failure.remaining > 0 and (_failure.status_code or _failure.reject_with):
        _failure = _failure.model_copy(update={"remaining": _failure.remaining - 1})
        if _failure.status_code:
            log.warning("simulated_failure", status_code=_failure.status_code)
            raise HTTPException(status_code=_failure.status_code, detail="simulated failure")
        log.warning("simulated_rejection", error=_failure.reject_with)
        return JSONResponse({"success": False, "error": _failure.reject_with})

    _received.append(
        {
            "received_at": datetime.now(timezone.utc).isoformat(),
            "is_retry": is_retry,
            "payload": payload,
        }
    )
    return {"success": True, "message": f"Stored payload #{len(_received)}"}


@app.get("/api/payloads")
async def list_payloads(limit: int = 20):
    """Most recent payloads first."""
    return list(reversed(_received))[:limit]


@app.delete("/api/payloads")
async def clear_payloads():
    _received.clear()
    return {"status": "cleared"}


@app.put("/api/failure-mode")
async def set_failure_mode(mode: FailureMode):
    """Make the next deliveries fail, e.g. {"status_code": 503, "remaining": 1}."""
    global _failure
    _failure = mode
    log.info("failure_mode_set", **mode.model_dump())
    return mode


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("SINK_PORT", "8787")), log_level="info")
