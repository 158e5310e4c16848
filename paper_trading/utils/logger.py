"""
로깅 모듈.

[ 역할 ]
    "paper_trading" 루트 로거에 콘솔/파일 핸들러를 붙인다.
    각 모듈은 logging.getLogger("paper_trading.<영역>")만 쓰고 핸들러는 여기서만 만든다.
        ledger, orders, strategy, backtest, oi, bars, storage

[ 로그 파일 ]
    {log_dir}/{name}_{YYYYMMDD}.log          전체 로그
    {log_dir}/data_quality_{YYYYMMDD}.log    OI 분석에서 거부된 봉 쌍 (paper_trading.oi WARNING 이상)

    데이터 품질 로그는 일괄 분석 후 어떤 봉을 다시 받아야 하는지 확인하는 용도.

[ 외부 라이브러리 로거 ]
    clickhouse_connect 드라이버 로거는 WARNING 미만을 버린다 (쿼리마다 DEBUG 출력).

[ 호출하는 곳 ]
    - run_backtest.py, scripts/enrich_oi.py에서 setup_logger() 호출
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DATA_QUALITY_LOGGER = "paper_trading.oi"
QUIET_LOGGERS = ("clickhouse_connect", "urllib3")

# setup_logger가 붙인 핸들러 표시 (중복 등록 방지)
_HANDLER_TAG = "_paper_trading_handler"


class DataQualityFilter(logging.Filter):
    """paper_trading.oi 계열의 WARNING 이상만 통과."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(DATA_QUALITY_LOGGER) and record.levelno >= logging.WARNING


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"알 수 없는 로그 레벨: {level!r}")
    return resolved


def _tagged(handler: logging.Handler, tag: str) -> logging.Handler:
    setattr(handler, _HANDLER_TAG, tag)
    return handler


def _file_handler(path: Path, formatter: logging.Formatter, tag: str) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    return _tagged(handler, tag)


def setup_logger(
    name: str = "paper_trading",
    level: Union[str, int] = "INFO",
    log_dir: Union[str, Path] = "logs",
    console: bool = True,
    to_file: bool = True,
) -> logging.Logger:
    """로거 설정. 여러 번 불러도 같은 종류의 핸들러는 한 번만 붙는다.

    두 번째 호출부터는 레벨만 바뀐다.

    Raises:
        ValueError: 알 수 없는 레벨 이름
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))
    for quiet in QUIET_LOGGERS:
        logging.getLogger(quiet).setLevel(logging.WARNING)

    existing = {getattr(h, _HANDLER_TAG, None) for h in logger.handlers}
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    today = datetime.now().strftime("%Y%m%d")

    if to_file and "file" not in existing:
        log_path = Path(log_dir)
        logger.addHandler(_file_handler(log_path / f"{name}_{today}.log", formatter, "file"))

        quality = _file_handler(log_path / f"data_quality_{today}.log", formatter, "data_quality")
        quality.addFilter(DataQualityFilter())
        logger.addHandler(quality)

    if console and "console" not in existing:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(_tagged(console_handler, "console"))

    return logger
