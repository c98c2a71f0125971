from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeploymentSummary(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str


class DeploymentsListResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    deployments: List[DeploymentSummary] = Field(default_factory=list)


class TopologySize(BaseModel):
    resource: Literal["memory", "storage"]
    value: int


class ElasticsearchResourceInfo(BaseModel):
    """
    デプロイメント内のElasticsearchリソースのスナップショット。
    planとsettingsは受信したJSONをそのまま保持し、未知のフィールドも失わない。
    """
    model_config = ConfigDict(extra="ignore")

    ref_id: str
    region: str
    info: Dict[str, Any] = Field(default_factory=dict)

    @property
    def plan(self) -> Dict[str, Any]:
        current = (self.info.get("plan_info") or {}).get("current") or {}
        return current.get("plan") or {}

    @property
    def settings(self) -> Optional[Dict[str, Any]]:
        return self.info.get("settings")


class ElasticsearchPayload(BaseModel):
    plan: Dict[str, Any]
    ref_id: str
    region: str
    settings: Optional[Dict[str, Any]] = None


class DeploymentUpdateResources(BaseModel):
    elasticsearch: List[ElasticsearchPayload] = Field(default_factory=list)


class DeploymentUpdateRequest(BaseModel):
    # Falseにしておけばペイロードに含まれないKibanaなどの他リソースが削除されない
    prune_orphans: bool = False
    resources: DeploymentUpdateResources

    def to_body(self) -> Dict[str, Any]:
        body = self.model_dump()
        # plan内のnullはそのまま送る。settingsが無い場合のみキーを省く
        for payload in body["resources"]["elasticsearch"]:
            if payload.get("settings") is None:
                payload.pop("settings", None)
        return body
