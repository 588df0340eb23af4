"""
Метрики Prometheus.

Процессные метрики (CPU, память, файловые дескрипторы, GC) регистрируются
в REGISTRY по умолчанию самим prometheus_client. Здесь — счётчик
и гистограмма HTTP-запросов; path — шаблон маршрута, а не сырой URL.
"""

import time

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUESTS_TOTAL = Counter(
    "wordpool_http_requests_total",
    "Количество HTTP-запросов",
    ["method", "path", "status"],
)

REQUEST_DURATION = Histogram(
    "wordpool_http_request_duration_seconds",
    "Длительность обработки HTTP-запроса",
    ["method", "path"],
)


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        return route.path
    endpoint = request.scope.get("endpoint")
    return getattr(endpoint, "__name__", "unmatched")


async def track_requests(request: Request, call_next) -> Response:
    """HTTP middleware: считает запросы и время ответа."""
    start = time.perf_counter()
    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        path = _route_path(request)
        REQUESTS_TOTAL.labels(request.method, path, str(status)).inc()
        REQUEST_DURATION.labels(request.method, path).observe(time.perf_counter() - start)


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
