import json
import logging

LOGGER_NAME = "DeploymentScaler"


class JsonFormatter(logging.Formatter):
    """1行1レコードのJSON形式で出力する。メッセージ内の引用符や改行はエスケープされる。"""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return json.dumps({
            "timestamp": self.formatTime(record),
            "name": record.name,
            "level": record.levelname,
            "message": message,
        }, ensure_ascii=False)


def setup_logger(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    # 二重出力を防ぐため、ハンドラは一度だけ追加する
    if not any(getattr(h, "_ec_scaler", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        handler._ec_scaler = True
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """DeploymentScaler配下の子ロガーを返す"""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
