from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    MODEL_DIR: str = "./models"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # Monte Carlo
    MC_WORKERS: int = 4
    MC_BATCH_SIZE: int = 1000
    MC_HISTOGRAM_BINS: int = 20

    # Forecasting
    FORECAST_CONFIDENCE_LEVEL: float = 0.95
    SEASONAL_PERIOD: int = 4
    MODEL_MAX_AGE_HOURS: int = 24
    MODEL_REGISTRY_MAX_MODELS: int = 500

    # Analysis
    SENSITIVITY_EXPONENT: float = 2.0
    CORRELATION_THRESHOLD: float = 0.7
    INTERVAL_CAPACITY: float = 1.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
