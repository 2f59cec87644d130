# app/config.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    環境変数（ROOMS_ プレフィックス）から読み込むアプリ設定。
    .env があればそれも読む。
    """

    model_config = SettingsConfigDict(
        env_prefix="ROOMS_",
        env_file=".env",
        extra="ignore",
    )

    # DB
    DATABASE_URL: str = Field("sqlite:///./rooms.db", description="SQLAlchemy database URL")

    # JWT（発行は認証サービス側。ここでは検証のみ）
    JWT_SECRET: str = Field("dev-only-secret-change-me-in-production", description="JWT signing secret")
    JWT_ALGO: str = Field("HS256", description="JWT signing algorithm")

    # バージョンデータの保存先（ローカル blob ストア）
    BLOB_ROOT: str = Field("./data/blobs", description="Root directory of the local blob store")

    # associate-data の本文（base64 テキスト）の上限
    MAX_UPLOAD_BYTES: int = Field(50 * 1024 * 1024, ge=1)

    # ログ
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    AUDIT_LOG_FILE: Optional[str] = Field(None, description="File that receives moderation audit lines")

    # バージョン追加の衝突時リトライ回数
    VERSION_APPEND_ATTEMPTS: int = Field(5, ge=1)

    @field_validator("JWT_ALGO")
    @classmethod
    def _jwt_algo_upper(cls, v: str) -> str:
        return (v or "HS256").upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
