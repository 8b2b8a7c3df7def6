from decimal import Decimal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Service settings
    service_version: str = "1.0.0"
    hotel_id: int = 1

    # Flipt settings
    flipt_enabled: bool = True
    flipt_url: str = "http://flipt:8080"
    flipt_namespace: str = "default"

    # OpenTelemetry settings
    otel_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://jaeger:4318"
    otel_exporter_otlp_metrics_endpoint: str = "http://prometheus:9090"
    otel_exporter_otlp_metrics_headers: str = ""
    otel_service_name: str = "booking-service"

    # CORS settings
    cors_origins: list[str] = ["http://localhost:4000", "http://localhost:8080", "http://webapp"]

    # Pricing settings
    currency: str = "USD"
    long_stay_discount_pct: Decimal = Decimal("10")
    long_stay_threshold_nights: int = 7
    meal_plan_costs: dict[str, Decimal] = {
        "none": Decimal("0"),
        "breakfast": Decimal("15"),
        "half_board": Decimal("35"),
        "full_board": Decimal("55"),
    }
    hotel_weekend_surcharge: Decimal = Decimal("20")
    hotel_holiday_surcharge: Decimal = Decimal("30")
    dormitory_weekend_surcharge: Decimal = Decimal("5")
    dormitory_holiday_surcharge: Decimal = Decimal("10")

    class Config:
        env_file = ".env"
        case_sensitive = False
