import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .cloud_client import CloudClient
from .errors import PlanFailedError, PlanTrackingTimeoutError, ScaleCancelledError
from .utils.logging_utils import get_logger

RESOURCE_KINDS = ("elasticsearch", "kibana", "apm", "integrations_server", "enterprise_search", "appsearch")

CONVERGED = "converged"
PENDING = "pending"
FAILED = "failed"


@dataclass
class TrackFrequency:
    poll_interval: float = 10.0
    max_retries: int = 10


def plan_status(deployment: Dict[str, Any],
                tracked: Optional[Iterable[str]] = None) -> Tuple[str, List[str]]:
    """
    デプロイメント全リソースのプラン状態を判定する。
    保留中のプランが1つでもあれば PENDING、無ければ現在のプランの健全性で CONVERGED / FAILED。
    健全性は tracked に含まれる ref ("kind:ref_id") のリソースのみで判定し、
    今回の変更と無関係に以前から失敗しているリソースは無視する。
    2番目の戻り値は該当したリソースの ref 一覧。
    """
    tracked = set(tracked or [])
    resources = deployment.get("resources") or {}
    pending, unhealthy = [], []
    for kind in RESOURCE_KINDS:
        for resource in resources.get(kind) or []:
            ref = f"{kind}:{resource.get('ref_id', '?')}"
            plan_info = (resource.get("info") or {}).get("plan_info") or {}
            if plan_info.get("pending"):
                pending.append(ref)
                continue
            current = plan_info.get("current") or {}
            if ref not in tracked:
                continue
            if current and current.get("healthy") is False:
                unhealthy.append(ref)
    if pending:
        return PENDING, pending
    if unhealthy:
        return FAILED, unhealthy
    return CONVERGED, []


class PlanTracker:
    """
    送信したプラン変更が収束するまで一定間隔でポーリングする。
    リトライ回数を使い切った場合・プランが失敗した場合・キャンセルされた場合は例外を送出する。
    """

    def __init__(self, client: CloudClient, frequency: Optional[TrackFrequency] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.frequency = frequency or TrackFrequency()
        self.cancel_event = cancel_event or threading.Event()
        self.logger = get_logger("PlanTracker")
        self.attempts = 0

    def cancel(self):
        self.cancel_event.set()

    def _wait(self):
        # Event.waitはキャンセル時に即座に戻る
        if self.cancel_event.wait(self.frequency.poll_interval):
            raise ScaleCancelledError("plan tracking cancelled")

    def wait(self, deployment_id: str, refs: Optional[Iterable[str]] = None):
        """
        refsには今回変更したリソースの ref ("elasticsearch:main-elasticsearch" など) を渡す。
        ポーリング中に保留中のプランが観測されたリソースも判定対象に加わる。
        """
        self.attempts = 0
        tracked = set(refs or [])
        for attempt in range(1, self.frequency.max_retries + 1):
            self._wait()
            self.attempts = attempt
            status, found = plan_status(
                self.client.get_deployment(deployment_id, show_plans=True), tracked)
            self.logger.info(
                f"Plan status for {deployment_id}: {status} (attempt {attempt}/{self.frequency.max_retries})")
            if status == CONVERGED:
                return
            if status == PENDING:
                tracked.update(found)
            elif status == FAILED:
                raise PlanFailedError(
                    f"plan failed for deployment {deployment_id}: {', '.join(found)}")
        raise PlanTrackingTimeoutError(
            f"deployment {deployment_id} did not converge after {self.frequency.max_retries} attempts "
            f"({self.frequency.poll_interval}s interval)")
