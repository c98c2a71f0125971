import signal
import threading

import pytest
from unittest.mock import patch, MagicMock

from ec_scaler.config import Config
from ec_scaler.errors import ApiError, DeploymentNotFoundError, ScaleCancelledError
from ec_scaler.main import EXIT_CANCELLED, EXIT_FAILURE, EXIT_OK, create_scaler, main, run


@pytest.fixture
def test_config():
    """テスト用の設定を提供"""
    return Config(api_key="secret", deployment_name="search-prod", size_value=2048, test_mode=True)


@pytest.fixture
def mock_scaler():
    """DeploymentScalerのモックを提供"""
    scaler_mock = MagicMock()
    scaler_mock.registry = MagicMock()
    return scaler_mock


@patch('ec_scaler.main.DeploymentScaler')
def test_create_scaler(mock_scaler_class, test_config):
    """設定を検証してスケーラーを作成する"""
    cancel_event = threading.Event()
    scaler = create_scaler(test_config, cancel_event=cancel_event)

    mock_scaler_class.assert_called_once_with(test_config, cancel_event=cancel_event)
    assert scaler == mock_scaler_class.return_value


def test_create_scaler_invalid_config():
    with pytest.raises(ValueError):
        create_scaler(Config(api_key="", deployment_name="x"))


@patch('ec_scaler.main.create_scaler')
def test_run_success(mock_create_scaler, test_config, mock_scaler):
    """設定値でupdate_deployment_specが1回呼ばれる"""
    mock_create_scaler.return_value = mock_scaler

    assert run(test_config) == EXIT_OK
    mock_scaler.update_deployment_spec.assert_called_once_with(2048, False)


@pytest.mark.parametrize("error", [
    DeploymentNotFoundError("search-prod"),
    ApiError("unauthorized", status_code=401),
    ValueError("EC_API_KEY is required"),
])
@patch('ec_scaler.main.create_scaler')
def test_run_construction_failure(mock_create_scaler, test_config, error):
    """構築時のエラーはログ出力して非ゼロ終了"""
    mock_create_scaler.side_effect = error

    with patch('ec_scaler.main.setup_logger') as mock_setup_logger:
        assert run(test_config) == EXIT_FAILURE
    mock_setup_logger.return_value.error.assert_called_once_with(str(error))


@patch('ec_scaler.main.create_scaler')
def test_run_update_failure(mock_create_scaler, test_config, mock_scaler):
    mock_create_scaler.return_value = mock_scaler
    mock_scaler.update_deployment_spec.side_effect = ApiError("quota exceeded", status_code=400)

    assert run(test_config) == EXIT_FAILURE


@patch('ec_scaler.main.create_scaler')
def test_run_cancelled(mock_create_scaler, test_config, mock_scaler):
    mock_create_scaler.return_value = mock_scaler
    mock_scaler.update_deployment_spec.side_effect = ScaleCancelledError("plan tracking cancelled")

    assert run(test_config) == EXIT_CANCELLED


@patch('ec_scaler.main.push_to_gateway')
@patch('ec_scaler.main.create_scaler')
def test_run_pushes_metrics(mock_create_scaler, mock_push, test_config, mock_scaler):
    """PUSHGATEWAY_URL設定時は失敗時もメトリクスを送信する"""
    test_config.test_mode = False
    test_config.pushgateway_url = "pushgateway:9091"
    mock_create_scaler.return_value = mock_scaler
    mock_scaler.update_deployment_spec.side_effect = ApiError("boom")

    assert run(test_config) == EXIT_FAILURE
    mock_push.assert_called_once_with("pushgateway:9091", job="ec_scaler", registry=mock_scaler.registry)


@patch('ec_scaler.main.push_to_gateway')
@patch('ec_scaler.main.create_scaler')
def test_run_push_failure_keeps_exit_code(mock_create_scaler, mock_push, test_config, mock_scaler):
    test_config.test_mode = False
    test_config.pushgateway_url = "pushgateway:9091"
    mock_create_scaler.return_value = mock_scaler
    mock_push.side_effect = OSError("connection refused")

    assert run(test_config) == EXIT_OK


@patch('ec_scaler.main.signal.signal')
@patch('ec_scaler.main.run')
def test_main(mock_run, mock_signal):
    """キャンセルイベントを渡して実行し、終了コードで終了する"""
    mock_run.return_value = EXIT_OK

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == EXIT_OK
    cancel_event = mock_run.call_args[1]["cancel_event"]

    # シグナルハンドラがキャンセルイベントを設定する
    handled = {call[0][0]: call[0][1] for call in mock_signal.call_args_list}
    assert set(handled) == {signal.SIGINT, signal.SIGTERM}
    handled[signal.SIGTERM](signal.SIGTERM, None)
    assert cancel_event.is_set()


@patch('ec_scaler.main.create_scaler')
def test_run_from_env(mock_create_scaler, mock_scaler):
    """環境変数から設定を読み込んで実行する"""
    mock_create_scaler.return_value = mock_scaler
    env = {"EC_API_KEY": "secret", "DEPLOYMENT_NAME": "search-prod", "EC_SIZE_VALUE": "4096"}

    assert run(env=env) == EXIT_OK

    config = mock_create_scaler.call_args[0][0]
    assert config.api_key == "secret"
    assert config.deployment_name == "search-prod"
    mock_scaler.update_deployment_spec.assert_called_once_with(4096, False)


@patch('ec_scaler.main.create_scaler')
def test_run_from_process_environment(mock_create_scaler, mock_scaler, monkeypatch):
    monkeypatch.setenv("EC_API_KEY", "secret")
    monkeypatch.setenv("DEPLOYMENT_NAME", "logs")
    mock_create_scaler.return_value = mock_scaler

    assert run() == EXIT_OK
    assert mock_create_scaler.call_args[0][0].deployment_name == "logs"


@pytest.mark.parametrize("key,value", [
    ("EC_SIZE_VALUE", "abc"),
    ("EC_POLL_INTERVAL", "ten"),
    ("EC_POLL_MAX_RETRIES", "1.5"),
    ("EC_REQUEST_TIMEOUT", ""),
    ("LOG_LEVEL", "loud"),
])
@patch('ec_scaler.main.create_scaler')
def test_run_invalid_env_value(mock_create_scaler, key, value):
    """不正な環境変数の値はログ出力して非ゼロ終了する"""
    env = {"EC_API_KEY": "secret", "DEPLOYMENT_NAME": "search-prod", key: value}

    with patch('ec_scaler.main.setup_logger') as mock_setup_logger:
        mock_setup_logger.return_value.setLevel.side_effect = (
            ValueError(f"Unknown level: {value.upper()!r}") if key == "LOG_LEVEL" else None)
        assert run(env=env) == EXIT_FAILURE

    mock_setup_logger.return_value.error.assert_called_once()
    mock_create_scaler.assert_not_called()
