from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    # Database
    db_user: str = Field(default='postgres', alias='DB_USER')
    db_host: str = Field(default='localhost', alias='DB_HOST')
    db_password: str = Field(default='postgres', alias='DB_PASSWORD')
    db_port: int = Field(default=5432, alias='DB_PORT')
    db_name: str = Field(default='seminars', alias='DB_NAME')
    db_pool_min_size: int = Field(default=5, alias='DB_POOL_MIN_SIZE')
    db_pool_max_size: int = Field(default=30, alias='DB_POOL_MAX_SIZE')
    auto_create_schema: bool = Field(default=False, alias='AUTO_CREATE_SCHEMA')

    # KOMOJU - hosted payment gateway
    komoju_api_url: str = Field(default='https://komoju.com/api/v1', alias='KOMOJU_API_URL')
    komoju_secret_key: Optional[str] = Field(default=None, alias='KOMOJU_SECRET_KEY')
    komoju_webhook_secret: Optional[str] = Field(default=None, alias='KOMOJU_WEBHOOK_SECRET')
    komoju_return_url: str = Field(default='http://localhost:3000/thank-you', alias='KOMOJU_RETURN_URL')
    komoju_default_locale: str = Field(default='ja', alias='KOMOJU_DEFAULT_LOCALE')
    gateway_timeout_seconds: float = Field(default=10.0, alias='GATEWAY_TIMEOUT_SECONDS')
    currency: str = Field(default='JPY', alias='CURRENCY')

    # Order lifecycle
    payment_failure_threshold: int = Field(default=3, alias='PAYMENT_FAILURE_THRESHOLD')
    deferred_payment_methods: list[str] = Field(default=['KONBINI'], alias='DEFERRED_PAYMENT_METHODS')
    deferred_payment_window_days: int = Field(default=3, alias='DEFERRED_PAYMENT_WINDOW_DAYS')
    unpaid_notice_methods: list[str] = Field(default=['KONBINI', 'BANK_TRANSFER'], alias='UNPAID_NOTICE_METHODS')
    unpaid_notice_days: list[int] = Field(default=[1, 2], alias='UNPAID_NOTICE_DAYS')
    order_rate_limit_per_hour: int = Field(default=10, alias='ORDER_RATE_LIMIT_PER_HOUR')
    trusted_proxy_hops: int = Field(default=1, alias='TRUSTED_PROXY_HOPS')
    blacklisted_email_domains: list[str] = Field(
        default=['tempmail.com', 'throwaway.email', 'guerrillamail.com', '10minutemail.com'],
        alias='BLACKLISTED_EMAIL_DOMAINS'
    )
    reconciliation_batch_size: int = Field(default=500, alias='RECONCILIATION_BATCH_SIZE')

    # Background jobs
    enable_jobs: bool = Field(default=False, alias='ENABLE_JOBS')
    reconciliation_interval_seconds: int = Field(default=15 * 60, alias='RECONCILIATION_INTERVAL_SECONDS')
    cron_secret: str = Field(default='dev-secret', alias='CRON_SECRET')

    # AWS SES (notification emails)
    aws_access_key_id: Optional[str] = Field(default=None, alias='AWS_ACCESS_KEY_ID')
    aws_secret_access_key: Optional[str] = Field(default=None, alias='AWS_SECRET_ACCESS_KEY')
    aws_region: Optional[str] = Field(default=None, alias='AWS_REGION')
    aws_ses_from_email: Optional[str] = Field(default=None, alias='AWS_SES_FROM_EMAIL')
    aws_ses_from_name: str = Field(default='Seminar Registration', alias='AWS_SES_FROM_NAME')

    # Outbound collaborators
    discord_sales_webhook_url: Optional[str] = Field(default=None, alias='DISCORD_SALES_WEBHOOK_URL')
    participant_sync_url: Optional[str] = Field(default=None, alias='PARTICIPANT_SYNC_URL')
    participant_sync_token: Optional[str] = Field(default=None, alias='PARTICIPANT_SYNC_TOKEN')

    # App settings
    app_env: str = Field(default="development", alias='APP_ENV')
    base_url: str = Field(default="http://localhost:8001", alias='BASE_URL')

    # FastAPI specific
    port: int = Field(default=8001, alias='FASTAPI_PORT')
    host: str = Field(default="0.0.0.0", alias='FASTAPI_HOST')
    debug: bool = Field(default=True, alias='DEBUG')

    # CORS configuration
    cors_origins: str = Field(default="http://localhost:3000", alias='CORS_ORIGINS')

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def db_connection_params(self) -> dict:
        return {
            "host": self.db_host,
            "port": self.db_port,
            "user": self.db_user,
            "password": self.db_password,
            "database": self.db_name,
        }

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

settings = Settings()
