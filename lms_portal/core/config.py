# lms_portal/core/config.py
"""Application configuration using Pydantic."""
from pydantic_settings import BaseSettings
from typing import List, Literal

class Settings(BaseSettings):
    lms_api_url: str = 'http://localhost:5003/api'
    lms_api_timeout: float = 15.0

    app_name: str = 'lms_portal'
    app_version: str = '1.0.0'
    environment: str = 'development'
    log_level: str = 'info'
    allowed_origins: List[str] = ['*']

    # Session lifecycle
    session_ttl_minutes: int = 8 * 60

    # Grading policy
    grade_point_scale: Literal['standard', 'reference'] = 'standard'
    earned_credit_pass_mark: float = 30.0
    module_pass_mark: float = 40.0

    # QR attendance display
    qr_refresh_seconds: int = 5 * 60
    qr_box_size: int = 10
    qr_border: int = 4

    model_config = {
        'env_file': '.env',
        'extra': 'ignore'
    }

settings = Settings()
