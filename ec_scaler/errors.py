from typing import Optional


class ScalerError(Exception):
    """デプロイメントスケーラーの基底例外"""


class ApiError(ScalerError):
    """
    コントロールプレーンAPIのエラー。リモートから返されたメッセージをそのまま保持する。
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        if self.code:
            return f"{self.status_code} {self.code}: {self.message}"
        return f"{self.status_code}: {self.message}"


class DeploymentNotFoundError(ScalerError):
    def __init__(self, deployment_name: str):
        super().__init__(f"deployment not found: {deployment_name}")
        self.deployment_name = deployment_name


class TopologyNotFoundError(ScalerError):
    def __init__(self, topology_id: str):
        super().__init__(f"topology not found: {topology_id}")
        self.topology_id = topology_id


class PlanTrackingError(ScalerError):
    """プラン変更の追跡に失敗した"""


class PlanTrackingTimeoutError(PlanTrackingError):
    pass


class PlanFailedError(PlanTrackingError):
    pass


class ScaleCancelledError(PlanTrackingError):
    pass
