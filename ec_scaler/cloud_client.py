from typing import Any, Dict, List, Optional

import requests

from .config import DEFAULT_API_URL
from .errors import ApiError
from .models import (
    DeploymentSummary,
    DeploymentsListResponse,
    DeploymentUpdateRequest,
    ElasticsearchResourceInfo,
)
from .utils.logging_utils import get_logger

API_PREFIX = "/api/v1"


class CloudClient:
    """
    Elastic CloudコントロールプレーンAPIの薄いクライアント。
    デプロイメント一覧・Elasticsearchリソース取得・更新・プラン状態取得のみを扱う。
    """

    def __init__(self, api_key: str, api_url: str = DEFAULT_API_URL, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        if not api_key:
            raise ValueError("API key must not be empty")
        self.base_url = api_url.rstrip("/") + API_PREFIX
        self.timeout = timeout
        self.logger = get_logger("CloudClient")
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"ApiKey {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 json_body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        self.logger.debug(f"{method} {url} params={params}")
        try:
            response = self.session.request(
                method, url, params=params, json=json_body, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise ApiError(f"{method} {path}: request timed out")
        except requests.exceptions.RequestException as e:
            raise ApiError(f"{method} {path}: request failed: {e!s}")

        if response.status_code >= 400:
            raise self._to_api_error(response)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise ApiError(f"{method} {path}: invalid JSON response", status_code=response.status_code)

    @staticmethod
    def _to_api_error(response: requests.Response) -> ApiError:
        # エラーボディ: {"errors": [{"code": "...", "message": "..."}]}
        try:
            body = response.json()
        except ValueError:
            body = None
        errors = body.get("errors") if isinstance(body, dict) else None
        # 形式が不正な要素は無視する
        errors = [e for e in errors if isinstance(e, dict)] if isinstance(errors, list) else []
        if errors:
            message = "; ".join(str(e.get("message", "")) for e in errors)
            return ApiError(message, status_code=response.status_code, code=errors[0].get("code"))
        return ApiError(response.text or response.reason or "unknown error",
                        status_code=response.status_code)

    def list_deployments(self) -> List[DeploymentSummary]:
        data = self._request("GET", "/deployments")
        return DeploymentsListResponse.model_validate(data).deployments

    def get_elasticsearch(self, deployment_id: str, ref_id: str, show_settings: bool = True,
                          show_plans: bool = True, show_plan_defaults: bool = True) -> ElasticsearchResourceInfo:
        params = {
            "show_settings": str(show_settings).lower(),
            "show_plans": str(show_plans).lower(),
            "show_plan_defaults": str(show_plan_defaults).lower(),
        }
        data = self._request(
            "GET", f"/deployments/{deployment_id}/elasticsearch/{ref_id}", params=params)
        return ElasticsearchResourceInfo.model_validate(data)

    def update_deployment(self, deployment_id: str, request: DeploymentUpdateRequest,
                          validate_only: bool = False) -> Dict[str, Any]:
        params = {"validate_only": str(validate_only).lower()}
        return self._request(
            "PUT", f"/deployments/{deployment_id}", params=params, json_body=request.to_body())

    def get_deployment(self, deployment_id: str, show_plans: bool = True) -> Dict[str, Any]:
        params = {"show_plans": str(show_plans).lower()}
        return self._request("GET", f"/deployments/{deployment_id}", params=params)
