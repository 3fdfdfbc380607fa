"""
REHABCOACH Configuration

Environment variables and application settings.
"""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "REHABCOACH"
    DEBUG: bool = True

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]

    # Thread Pool (one worker keeps media seeks and detections serialized)
    THREAD_POOL_SIZE: int = 1

    # Pose Model
    POSE_MODEL_PATH: str = "ml_models/pose_landmarker_lite.task"
    POSE_MIN_DETECTION_CONFIDENCE: float = 0.5

    # Batch Analysis
    SAMPLE_FRAME_COUNT: int = 5
    VISIBILITY_THRESHOLD: float = 0.5
    COVERAGE_MIN_VISIBLE_LANDMARKS: int = 16
    UPLOAD_TMP_DIR: str = "media/tmp"

    # Scoring / quota service
    SCORING_SERVICE_URL: str = "http://localhost:3000/api/ai-analysis"
    SCORING_API_TOKEN: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
