import os
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from .routes import router
from .core import (
    REQUEST_COUNT,
    REQUEST_LATENCY,
    init_metrics,
    kafka_startup,
    mongo_startup,
    shutdown_connections,
)
from .errors import register_exception_handlers, unhandled_error_response
import logging
from pythonjsonlogger import jsonlogger

# setup structured logging
logger = logging.getLogger('overcastly')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(logging.INFO)

app = FastAPI(title="Overcastly API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

register_exception_handlers(app)

app.include_router(router, prefix="/api")

@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}

@app.middleware('http')
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    logger.info({'msg':'request_start','method':request.method,'path':request.url.path})
    try:
        response = await call_next(request)
    except Exception as e:
        response = unhandled_error_response(request, e)
    route = request.scope.get('route')
    # route template, not the raw path
    path = route.path if route is not None else 'unmatched'
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe(time.perf_counter() - started)
    logger.info({'msg':'request_end','status': response.status_code})
    return response

@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})
    try:
        await mongo_startup()
    except Exception as e:
        logger.warning({'msg': 'mongo_init_failed', 'error': str(e)})
    try:
        await kafka_startup()
    except Exception as e:
        logger.warning({'msg': 'kafka_start_failed', 'error': str(e)})

@app.on_event("shutdown")
async def shutdown():
    await shutdown_connections()
