"""OpenTelemetry 계측 설정

시그널링 서버의 OTel 초기화와 커스텀 메트릭을 제공합니다.
otel_enabled가 꺼져 있으면 초기화하지 않으며, get_signaling_metrics()는 None을 반환합니다.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.semconv.resource import ResourceAttributes

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def init_telemetry(
    service_name: str,
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> metrics.Meter:
    """OpenTelemetry 초기화

    Args:
        service_name: 서비스 이름 (예: "signalroom-server")
        service_version: 서비스 버전
        otlp_endpoint: OTLP 수신 엔드포인트 (기본값: OTEL_EXPORTER_OTLP_ENDPOINT 환경변수)

    Returns:
        시그널링 메트릭용 Meter (FastAPI 계측 span은 전역 TracerProvider 사용)
    """
    endpoint = otlp_endpoint or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")

    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: service_name,
            ResourceAttributes.SERVICE_VERSION: service_version,
            ResourceAttributes.DEPLOYMENT_ENVIRONMENT: os.getenv("APP_ENV", "development"),
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=endpoint, insecure=True),
        export_interval_millis=10000,  # 10초마다 export
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)

    meter = metrics.get_meter(service_name, service_version)

    logger.info(
        "Telemetry initialized: service=%s, endpoint=%s",
        service_name,
        endpoint,
    )

    return meter


def instrument_fastapi(app: FastAPI) -> None:
    """FastAPI 자동 계측"""
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app)
        logger.info("FastAPI instrumentation enabled")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


# ===========================================
# 시그널링 전용 메트릭
# ===========================================


class SignalingMetrics:
    """시그널링 서버 커스텀 메트릭"""

    def __init__(self, meter: metrics.Meter):
        self.meter = meter
        self.connections_total = self.meter.create_counter(
            name="signaling_connections_total",
            description="수락된 WebSocket 연결 수",
        )
        self.active_connections = self.meter.create_up_down_counter(
            name="signaling_active_connections",
            description="현재 방에 참여 중인 연결 수",
        )
        self.messages_relayed_total = self.meter.create_counter(
            name="signaling_messages_relayed_total",
            description="대상에게 전달된 offer/answer/ice-candidate 수",
        )
        self.routing_miss_total = self.meter.create_counter(
            name="signaling_routing_miss_total",
            description="대상을 찾지 못해 버려진 메시지 수",
        )
        self.protocol_errors_total = self.meter.create_counter(
            name="signaling_protocol_errors_total",
            description="잘못된 envelope 수",
        )


# ===========================================
# 싱글톤 인스턴스 및 접근자
# ===========================================

_signaling_metrics: SignalingMetrics | None = None
_initialized: bool = False


def get_signaling_metrics() -> SignalingMetrics | None:
    """시그널링 메트릭 인스턴스 반환 (초기화 안 된 경우 None)"""
    return _signaling_metrics


def setup_telemetry(
    service_name: str,
    service_version: str = "0.1.0",
    otlp_endpoint: str | None = None,
) -> None:
    """전역 telemetry 설정 (애플리케이션 시작 시 호출)"""
    global _signaling_metrics, _initialized

    if _initialized:
        logger.warning("Telemetry already initialized, skipping")
        return

    meter = init_telemetry(service_name, service_version, otlp_endpoint)
    _signaling_metrics = SignalingMetrics(meter)
    _initialized = True
