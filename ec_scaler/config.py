from dataclasses import dataclass
import os
from typing import Mapping, Optional


TOPOLOGY_IDS = ("hot_content", "warm_content", "cold_content", "frozen_content")
SIZE_RESOURCES = ("memory", "storage")

DEFAULT_API_URL = "https://api.elastic-cloud.com"
DEFAULT_REF_ID = "main-elasticsearch"


def _env_bool(env: Mapping[str, str], key: str, default: str) -> bool:
    return env.get(key, default).lower() == "true"


@dataclass
class Config:
    # 接続設定
    api_key: str = ""
    deployment_name: str = ""
    api_url: str = DEFAULT_API_URL
    request_timeout: float = 30.0

    # 更新対象 (hot_content, warm_content, cold_content, frozen_content / memory, storage)
    ref_id: str = DEFAULT_REF_ID
    topology_id: str = "hot_content"
    size_resource: str = "memory"
    size_value: int = 1024
    validate_only: bool = False
    require_topology: bool = False

    # プラン追跡設定
    poll_interval: float = 10.0
    max_retries: int = 10

    # メトリクス・ログ設定
    pushgateway_url: Optional[str] = None
    log_level: str = "INFO"

    # テスト設定
    test_mode: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """環境変数から設定を組み立てる。プロセス境界でのみ呼び出すこと。"""
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("EC_API_KEY", ""),
            deployment_name=env.get("DEPLOYMENT_NAME", ""),
            api_url=env.get("EC_API_URL", DEFAULT_API_URL),
            request_timeout=float(env.get("EC_REQUEST_TIMEOUT", "30")),
            ref_id=env.get("EC_REF_ID", DEFAULT_REF_ID),
            topology_id=env.get("EC_TOPOLOGY_ID", "hot_content"),
            size_resource=env.get("EC_SIZE_RESOURCE", "memory"),
            size_value=int(env.get("EC_SIZE_VALUE", "1024")),
            validate_only=_env_bool(env, "EC_VALIDATE_ONLY", "false"),
            require_topology=_env_bool(env, "EC_REQUIRE_TOPOLOGY", "false"),
            poll_interval=float(env.get("EC_POLL_INTERVAL", "10")),
            max_retries=int(env.get("EC_POLL_MAX_RETRIES", "10")),
            pushgateway_url=env.get("PUSHGATEWAY_URL") or None,
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> "Config":
        if not self.api_key:
            raise ValueError("EC_API_KEY is required")
        if not self.deployment_name:
            raise ValueError("DEPLOYMENT_NAME is required")
        if self.topology_id not in TOPOLOGY_IDS:
            raise ValueError(
                f"unknown topology id: {self.topology_id} (expected one of {', '.join(TOPOLOGY_IDS)})")
        if self.size_resource not in SIZE_RESOURCES:
            raise ValueError(
                f"unknown size resource: {self.size_resource} (expected one of {', '.join(SIZE_RESOURCES)})")
        if self.poll_interval < 0:
            raise ValueError("poll interval must not be negative")
        if self.max_retries < 1:
            raise ValueError("max retries must be at least 1")
        return self

    @property
    def push_metrics(self) -> bool:
        """Pushgatewayへメトリクスを送信するかどうか"""
        return bool(self.pushgateway_url) and not self.test_mode
