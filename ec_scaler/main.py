import os
import signal
import sys
import threading
from typing import Mapping, Optional

from prometheus_client import push_to_gateway

from .config import Config
from .deployment_scaler import DeploymentScaler
from .errors import ScaleCancelledError
from .utils.logging_utils import setup_logger

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


def create_scaler(config: Config, cancel_event: Optional[threading.Event] = None) -> DeploymentScaler:
    return DeploymentScaler(config.validate(), cancel_event=cancel_event)


def _push_metrics(config: Config, scaler: DeploymentScaler, logger):
    if not config.push_metrics:
        return
    try:
        push_to_gateway(config.pushgateway_url, job="ec_scaler", registry=scaler.registry)
    except OSError as e:
        logger.warning(f"Failed to push metrics to {config.pushgateway_url}: {str(e)}")


def run(config: Optional[Config] = None, cancel_event: Optional[threading.Event] = None,
        env: Optional[Mapping[str, str]] = None) -> int:
    """
    設定済みの1操作を実行して終了コードを返す。configが無い場合はenv (既定はos.environ) から組み立てる。
    """
    env = os.environ if env is None else env
    logger = setup_logger(config.log_level if config is not None else "INFO")
    scaler = None
    try:
        if config is None:
            # 不正な数値などのエラーもログ出力して終了コードで返す
            config = Config.from_env(env)
            logger.setLevel(config.log_level)
        scaler = create_scaler(config, cancel_event=cancel_event)
        scaler.update_deployment_spec(config.size_value, config.validate_only)
    except ScaleCancelledError as e:
        logger.error(str(e))
        return EXIT_CANCELLED
    except Exception as e:
        logger.error(str(e))
        return EXIT_FAILURE
    finally:
        if scaler is not None:
            _push_metrics(config, scaler, logger)
    return EXIT_OK


def _install_signal_handlers(cancel_event: threading.Event):
    def _cancel(signum, frame):
        cancel_event.set()

    signal.signal(signal.SIGINT, _cancel)
    signal.signal(signal.SIGTERM, _cancel)


def main():
    cancel_event = threading.Event()
    _install_signal_handlers(cancel_event)
    sys.exit(run(cancel_event=cancel_event))


if __name__ == "__main__":
    main()
