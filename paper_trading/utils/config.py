"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 파라미터, 백테스트 파라미터, OI 분석, DB 접속, 로깅 설정을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (전략 이름, 종목, 파라미터)
    backtest:         → BacktestConfig (봉 주기, 기간, 타임아웃)
    oi:               → OIConfig (일괄 분석 배치 크기)
    database:         → DatabaseConfig (ClickHouse 접속 정보)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py, scripts/enrich_oi.py에서 Config.from_yaml()로 로드
    - 전략 생성 시 config.strategy.to_params()를 엔진에 전달
"""

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    전략별 파라미터는 params dict에 자유롭게 넣는다.
    각 전략 클래스의 DEFAULT_PARAMS가 기본값 역할을 하므로,
    여기서는 오버라이드할 값만 지정하면 된다.
    """
    name: str = "sma_crossover"
    instruments: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)

    def to_params(self) -> dict[str, Any]:
        """엔진에 넘길 {"type": name, ...params} 딕셔너리."""
        return {"type": self.name, **self.params}


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응.

    start/end는 "YYYY-MM-DD" 또는 ISO datetime 문자열 (UTC).
    """
    timeframe: str = "1d"
    start: Optional[str] = None
    end: Optional[str] = None
    timeout_seconds: Optional[float] = None


@dataclass
class OIConfig:
    """OI 해석 일괄 분석 설정."""
    batch_size: int = 1000


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. config.yaml의 database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"


def _pick(cls, data: Optional[dict[str, Any]]):
    """dataclass 필드에 해당하는 키만 골라 인스턴스 생성. 모르는 키는 무시."""
    data = data or {}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    oi: OIConfig = field(default_factory=OIConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls._from_dict(data or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        """JSON 파일에서 설정 로드."""
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls._from_dict(data or {})

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성."""
        strategy_data = data.get("strategy") or {}

        # strategy 섹션 파싱: name, instruments는 직접 필드, 나머지는 모두 params로
        # params가 명시적으로 있으면 그것을 사용
        if "params" in strategy_data:
            strategy_params = dict(strategy_data["params"] or {})
        else:
            strategy_params = {
                k: v for k, v in strategy_data.items()
                if k not in ("name", "instruments")
            }
        strategy = StrategyConfig(
            name=strategy_data.get("name", "sma_crossover"),
            instruments=list(strategy_data.get("instruments") or []),
            params=strategy_params,
        )

        return cls(
            strategy=strategy,
            backtest=_pick(BacktestConfig, data.get("backtest")),
            oi=_pick(OIConfig, data.get("oi")),
            database=_pick(DatabaseConfig, data.get("database")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
