"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # AWS Transcribe
    aws_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_s3_bucket: str = ""
    aws_poll_interval_seconds: float = 5.0

    # Deepgram
    deepgram_api_key: str = ""
    deepgram_base_url: str = "https://api.deepgram.com"
    deepgram_model: str = "nova-3"

    # Uploads
    upload_dir: str = "./public/uploads"
    max_upload_mb: int = 500
    default_language: str = "en-US"

    # Job processing
    provider_timeout_seconds: float = 600.0
    job_retention_seconds: int = 3600
    sweep_interval_seconds: int = 3600

    compute_port: int = 3000

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
