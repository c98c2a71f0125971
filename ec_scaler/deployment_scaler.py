import threading
import time
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Summary

from .cloud_client import CloudClient
from .config import Config
from .errors import DeploymentNotFoundError, ScaleCancelledError, TopologyNotFoundError
from .models import (
    DeploymentUpdateRequest,
    DeploymentUpdateResources,
    ElasticsearchPayload,
    ElasticsearchResourceInfo,
    TopologySize,
)
from .plan_tracker import PlanTracker, TrackFrequency
from .utils.logging_utils import get_logger


def apply_topology_size(plan: Dict[str, Any], topology_id: str, size: TopologySize) -> bool:
    """
    plan内のcluster_topologyから topology_id に一致する要素のsizeだけを置き換える。
    一致する要素があればTrueを返す。他の要素やキーには触れない。
    """
    matched = False
    for topology in plan.get("cluster_topology") or []:
        if topology.get("id") == topology_id:
            topology["size"] = size.model_dump()
            matched = True
    return matched


def build_update_request(resource_info: ElasticsearchResourceInfo,
                         plan: Dict[str, Any]) -> DeploymentUpdateRequest:
    return DeploymentUpdateRequest(
        prune_orphans=False,
        resources=DeploymentUpdateResources(elasticsearch=[
            ElasticsearchPayload(
                plan=plan,
                ref_id=resource_info.ref_id,
                region=resource_info.region,
                settings=resource_info.settings,
            )
        ]),
    )


class DeploymentScaler:
    """
    名前で指定されたデプロイメントのElasticsearchトポロジーのサイズを変更し、収束まで待機する。
    """

    def __init__(self, config: Config, client: Optional[CloudClient] = None,
                 tracker: Optional[PlanTracker] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.config = config
        self.logger = get_logger("DeploymentScaler")
        self.registry = CollectorRegistry()
        self.metrics = self._setup_metrics()

        self.client = client or CloudClient(
            api_key=config.api_key,
            api_url=config.api_url,
            timeout=config.request_timeout,
        )
        if cancel_event is None:
            cancel_event = tracker.cancel_event if tracker is not None else threading.Event()
        self.cancel_event = cancel_event
        self.tracker = tracker or PlanTracker(
            self.client,
            TrackFrequency(poll_interval=config.poll_interval, max_retries=config.max_retries),
            cancel_event=cancel_event,
        )

        self.deployment_name = config.deployment_name
        self.deployment_id = self._find_deployment_id(config.deployment_name)
        self.logger.info(f"Resolved deployment {self.deployment_name} -> {self.deployment_id}")

    def _setup_metrics(self):
        return {
            'scale_latency': Summary('ec_scale_operation_seconds', 'Time spent in a scale operation',
                                     registry=self.registry),
            'scale_count': Counter('ec_scale_operations_total', 'Total number of scale operations',
                                   ['result'], registry=self.registry),
            'poll_attempts': Gauge('ec_plan_poll_attempts', 'Poll attempts used by the last plan tracking',
                                   registry=self.registry),
        }

    def _find_deployment_id(self, deployment_name: str) -> str:
        # デプロイメントの一覧を取得して完全一致で検索
        for deployment in self.client.list_deployments():
            if deployment.name == deployment_name:
                return deployment.id
        raise DeploymentNotFoundError(deployment_name)

    def _check_cancelled(self, stage: str):
        if self.cancel_event.is_set():
            raise ScaleCancelledError(f"scale operation cancelled {stage}")

    def get_elasticsearch_resource_info(self) -> ElasticsearchResourceInfo:
        return self.client.get_elasticsearch(
            self.deployment_id,
            self.config.ref_id,
            show_settings=True,
            show_plans=True,
            show_plan_defaults=True,
        )

    def _patch_plan(self, plan: Dict[str, Any], size_value: int):
        size = TopologySize(resource=self.config.size_resource, value=size_value)
        if apply_topology_size(plan, self.config.topology_id, size):
            self.logger.info(
                f"Set {self.config.topology_id} {size.resource} size to {size.value}")
            return
        if self.config.require_topology:
            raise TopologyNotFoundError(self.config.topology_id)
        self.logger.warning(
            f"Topology {self.config.topology_id} not found in current plan; submitting plan unchanged")

    def update_deployment_spec(self, size_value: Optional[int] = None,
                               validate_only: Optional[bool] = None) -> Dict[str, Any]:
        """
        現在のプランを取得し、対象トポロジーのサイズだけを変更して送信する。
        validate_only=Trueの場合は検証のみ行い、プランの追跡はしない。
        """
        size_value = self.config.size_value if size_value is None else size_value
        validate_only = self.config.validate_only if validate_only is None else validate_only

        start_time = time.time()
        try:
            self._check_cancelled("before fetching the current plan")
            resource_info = self.get_elasticsearch_resource_info()
            plan = resource_info.plan
            self._patch_plan(plan, size_value)

            request = build_update_request(resource_info, plan)
            # 送信直前に再確認する。送信後はプラン追跡側でキャンセルを扱う
            self._check_cancelled("before submitting the update")
            self.logger.info(
                f"Submitting update for {self.deployment_name} (validate_only={validate_only})")
            response = self.client.update_deployment(
                self.deployment_id, request, validate_only=validate_only)

            if validate_only:
                self.logger.info("Validation succeeded; no changes applied")
            else:
                try:
                    self.tracker.wait(self.deployment_id, [f"elasticsearch:{resource_info.ref_id}"])
                finally:
                    self.metrics['poll_attempts'].set(self.tracker.attempts)
                self.logger.info(f"Deployment {self.deployment_name} converged")
        except Exception:
            self.metrics['scale_count'].labels(result="failure").inc()
            raise
        finally:
            self.metrics['scale_latency'].observe(time.time() - start_time)
        self.metrics['scale_count'].labels(result="success").inc()
        return response

