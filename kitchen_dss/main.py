# =============================================
# File: kitchen_dss/main.py
# Purpose: FastAPI app: routers, request logging middleware, health
# =============================================
import os
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kitchen_dss.routers import analyze, insights, knowledge_base, metrics, orders
from kitchen_dss.utils import slog
from kitchen_dss.utils.logging import configure_file_logging
from kitchen_dss.utils.metrics import record_request, record_endpoint

configure_file_logging()

app = FastAPI(
    title="Kitchen DSS",
    description="Retrieval-augmented decision support for cloud-kitchen order data",
    version="0.1.0",
)

_origins = [o.strip() for o in os.getenv("DSS_CORS_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _logging_middleware(request, call_next):
    start = time.perf_counter()
    req_id = slog.new_request_id()
    client_ip = request.client.host if request.client else None
    path = str(request.url.path)
    try:
        response = await call_next(request)
    except Exception as e:
        slog.request_failed(
            request_id=req_id,
            method=request.method,
            path=path,
            latency_ms=int((time.perf_counter() - start) * 1000),
            client_ip=client_ip,
            error=e,
            ctx=getattr(request.state, "log_context", None),
        )
        raise
    latency_ms = int((time.perf_counter() - start) * 1000)
    slog.request_completed(
        request_id=req_id,
        method=request.method,
        path=path,
        status=response.status_code,
        latency_ms=latency_ms,
        client_ip=client_ip,
        ctx=getattr(request.state, "log_context", None),
    )
    record_request(latency_ms=latency_ms)
    record_endpoint(method=request.method, path=path, latency_ms=latency_ms)
    response.headers["X-Request-ID"] = req_id
    return response


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(knowledge_base.router)
app.include_router(analyze.router)
app.include_router(insights.router)
app.include_router(orders.router)
app.include_router(metrics.router)
