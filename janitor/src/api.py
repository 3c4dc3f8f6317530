from __future__ import annotations

import logging
import os
import time
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from pydantic import BaseModel, Field, SecretStr
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from janitor.src.config import JanitorConfig, parse_bool
from janitor.src.errors import (
    AmbiguousSourceError,
    NotFoundError,
    RemoteIOError,
    UnsupportedVersionError,
)
from janitor.src.metrics import METRICS
from janitor.src.models import (
    API_VERSION,
    Credentials,
    Instance,
    PodRef,
    PodSummary,
    ServiceResponse,
    Status,
)
from janitor.src.service import JanitorService

APP_VERSION = "1.0.0"
_TRACING_INITIALIZED = False

LOGGER = logging.getLogger(__name__)


class InstanceModel(BaseModel):
    uid: str = Field(min_length=1)
    namespace: str = Field(min_length=1)
    domain: str = ""

    def to_instance(self) -> Instance:
        return Instance(uid=self.uid, namespace=self.namespace, domain=self.domain)


class InstanceRequest(BaseModel):
    api: str = ""
    deployment: InstanceModel


class CredentialsModel(BaseModel):
    user: str = Field(min_length=1)
    password: SecretStr


class InstanceCredentialsRequest(BaseModel):
    api: str = ""
    instance: InstanceModel
    credentials: CredentialsModel


class PodModel(BaseModel):
    name: str = Field(min_length=1)
    containers: list[str] = Field(default_factory=list)


class PodRequest(BaseModel):
    api: str = ""
    deployment: InstanceModel
    pod: PodModel


class Annotation(BaseModel):
    key: str = Field(min_length=1)
    value: str = ""


class NamespaceRequest(BaseModel):
    api: str = ""
    namespace: str = Field(min_length=1)
    annotations: list[Annotation] = Field(default_factory=list)


def http_status_for(response: ServiceResponse) -> int:
    """Map a service answer onto an HTTP status code.

    OK and PENDING are both successful answers; FAILED is mapped from the
    attached error type.
    """
    if response.status is not Status.FAILED:
        return 200
    error = response.error
    if isinstance(error, UnsupportedVersionError):
        return 501
    if isinstance(error, AmbiguousSourceError):
        return 409
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, RemoteIOError):
        return 502
    return 500


def _serialize_payload(payload: Any) -> Any:
    if isinstance(payload, list):
        return [_serialize_payload(item) for item in payload]
    if isinstance(payload, PodSummary):
        return {
            "name": payload.name,
            "display_name": payload.display_name,
            "containers": list(payload.containers),
        }
    return payload


def render(response: ServiceResponse, payload_key: str | None = None) -> JSONResponse:
    body: dict[str, Any] = {
        "api": response.api,
        "status": response.status.value,
        "message": response.message,
    }
    if payload_key is not None:
        body[payload_key] = _serialize_payload(response.payload)
    if response.error is not None:
        body["error"] = {"type": type(response.error).__name__, "detail": str(response.error)}
    return JSONResponse(status_code=http_status_for(response), content=body)


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records per-request Prometheus counters and histograms.

    Skips the ``/metrics`` endpoint itself to avoid self-referential inflation.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)
        start = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            metric_path = self._normalize_metric_path(request)
            METRICS.http_requests_total.labels(
                method=request.method, path=metric_path, status=status_code
            ).inc()
            METRICS.http_request_duration_seconds.labels(
                method=request.method, path=metric_path
            ).observe(time.monotonic() - start)
        return response

    @staticmethod
    def _normalize_metric_path(request: Request) -> str:
        route = request.scope.get("route")
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str):
            return route_path
        return "other"


def configure_tracing(app: FastAPI, logger: logging.Logger, enabled: bool) -> None:
    """Enable OpenTelemetry tracing when requested and the ``tracing`` extra is installed.

    Without the OpenTelemetry packages the service runs untraced and logs a
    warning.
    """
    global _TRACING_INITIALIZED

    if not enabled:
        return

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.requests import RequestsInstrumentor
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError:
        logger.warning(
            "OTEL_ENABLED=true but OpenTelemetry packages are not installed; tracing disabled"
        )
        return

    if not _TRACING_INITIALIZED:
        endpoint = os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT") or (
            os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector.monitoring.svc:4318")
            .rstrip("/")
            .removesuffix("/v1/traces")
            + "/v1/traces"
        )
        provider = TracerProvider(
            resource=Resource.create({"service.name": os.getenv("OTEL_SERVICE_NAME", "janitor")})
        )
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        trace.set_tracer_provider(provider)
        # GitLab calls go through requests and become child spans.
        RequestsInstrumentor().instrument()
        _TRACING_INITIALIZED = True
        logger.info("OpenTelemetry tracing enabled (OTLP endpoint=%s)", endpoint)

    FastAPIInstrumentor.instrument_app(app)


def create_app(service: JanitorService, config: JanitorConfig | None = None) -> FastAPI:
    """Create the janitor FastAPI application around *service*.

    Every operation is a ``POST`` taking the JSON request body of the
    matching operation and answering with ``{api, status, message, ...}``.
    Endpoints are synchronous, so FastAPI runs each one on its threadpool.

    Operational endpoints:
        ``GET /healthz``: liveness probe (always ``200 ok``).
        ``GET /readyz``: readiness probe.
        ``GET /metrics``: Prometheus metrics in text exposition format.
    """
    app = FastAPI(title="janitor", version=APP_VERSION)
    METRICS.build_info.info({"version": APP_VERSION, "api": API_VERSION})
    app.add_middleware(MetricsMiddleware)
    otel_enabled = config.otel_enabled if config else parse_bool(os.getenv("OTEL_ENABLED"))
    configure_tracing(app, LOGGER, otel_enabled)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Return a standardized JSON error body for unhandled exceptions."""
        LOGGER.exception("Unhandled error for %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "detail": "An unexpected error occurred."},
        )

    @app.post("/v1/config/create-or-replace")
    def config_create_or_replace(request: InstanceRequest) -> JSONResponse:
        instance = request.deployment.to_instance()
        return render(service.create_or_replace_config(request.api, instance), "objects")

    @app.post("/v1/config/delete")
    def config_delete(request: InstanceRequest) -> JSONResponse:
        return render(service.delete_config(request.api, request.deployment.to_instance()))

    @app.post("/v1/basic-auth/create-or-replace")
    def basic_auth_create_or_replace(request: InstanceCredentialsRequest) -> JSONResponse:
        credentials = Credentials(
            user=request.credentials.user,
            password=request.credentials.password.get_secret_value(),
        )
        return render(
            service.create_or_replace_basic_auth(
                request.api, request.instance.to_instance(), credentials
            )
        )

    @app.post("/v1/basic-auth/delete")
    def basic_auth_delete(request: InstanceRequest) -> JSONResponse:
        return render(service.delete_basic_auth(request.api, request.deployment.to_instance()))

    @app.post("/v1/cert-manager/delete")
    def cert_manager_delete(request: InstanceRequest) -> JSONResponse:
        return render(service.delete_tls(request.api, request.deployment.to_instance()))

    @app.post("/v1/readiness/check")
    def readiness_check(request: InstanceRequest) -> JSONResponse:
        return render(service.check_if_ready(request.api, request.deployment.to_instance()))

    @app.post("/v1/information/service-ip")
    def information_service_ip(request: InstanceRequest) -> JSONResponse:
        instance = request.deployment.to_instance()
        return render(service.retrieve_service_ip(request.api, instance), "info")

    @app.post("/v1/information/service-exists")
    def information_service_exists(request: InstanceRequest) -> JSONResponse:
        instance = request.deployment.to_instance()
        return render(service.check_service_exists(request.api, instance), "info")

    @app.post("/v1/pods/list")
    def pods_list(request: InstanceRequest) -> JSONResponse:
        instance = request.deployment.to_instance()
        return render(service.retrieve_pod_list(request.api, instance), "pods")

    @app.post("/v1/pods/logs")
    def pods_logs(request: PodRequest) -> JSONResponse:
        pod = PodRef(name=request.pod.name, containers=tuple(request.pod.containers))
        instance = request.deployment.to_instance()
        return render(service.retrieve_pod_logs(request.api, instance, pod), "lines")

    @app.post("/v1/namespaces/create")
    def namespaces_create(request: NamespaceRequest) -> JSONResponse:
        annotations = {item.key: item.value for item in request.annotations}
        return render(service.create_namespace(request.api, request.namespace, annotations))

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    @app.get("/readyz", response_class=PlainTextResponse)
    def readyz() -> str:
        return f"ok api={API_VERSION}"

    @app.get("/metrics", response_class=PlainTextResponse)
    def metrics() -> bytes:
        return generate_latest()

    return app
