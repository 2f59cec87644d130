# app/logging_config.py
import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# モデレーション関連の行（通報・停止・削除）はこのロガーに流す
AUDIT_SINK_LOGGER = "app.audit_sink"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    audit_log_file: Optional[str] = None,
) -> None:
    """ルートロガーを設定する。二重に呼ばれてもハンドラは増やさない。"""
    root = logging.getLogger()
    root.setLevel(log_level.upper())

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_rooms_handler", False) for h in root.handlers):
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        stream._rooms_handler = True
        root.addHandler(stream)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            file_handler._rooms_handler = True
            root.addHandler(file_handler)

    if audit_log_file:
        sink = logging.getLogger(AUDIT_SINK_LOGGER)
        if not any(isinstance(h, logging.FileHandler) for h in sink.handlers):
            handler = logging.FileHandler(audit_log_file)
            handler.setFormatter(formatter)
            sink.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
