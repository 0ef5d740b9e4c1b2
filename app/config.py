from typing import List, Optional
from pydantic import Field
from pydantic_settings import BaseSettings
from urllib.parse import quote_plus

class Settings(BaseSettings):
    env: str = "local"

    # full URL wins over the postgres parts (sqlite for local runs)
    database_url_override: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "marketplace"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # bearer tokens are issued by the identity provider, we only verify them
    secret_key: str
    algorithm: str = "HS256"

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_mode: str = "sandbox"
    paypal_webhook_id: str = ""

    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "plugin-files"
    storage_endpoint_url: Optional[str] = None

    currency: str = "USD"
    download_ttl_hours: int = 24
    pending_order_ttl_minutes: Optional[int] = None

    cors_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    @property
    def database_url(self):
        if self.database_url_override:
            return self.database_url_override
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def paypal_base_url(self):
        if self.paypal_mode == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    @property
    def storage_endpoint(self):
        if self.storage_endpoint_url:
            return self.storage_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"

settings = Settings()
