# ==============================================================================
# 목적 : 설정 로드 관련 유틸
# 최초 작업자 : (AI솔루션/박태원)
# 최초 작업일 : 2026-02-02
# AI 활용 여부 :
# ==============================================================================

import os
from pathlib import Path
from typing import Any

import yaml


def _expand_env(value: Any) -> Any:
    """문자열 값의 ${VAR} 참조를 환경변수로 치환합니다.

    dict/list는 재귀적으로 순회하며, 정의되지 않은 변수는 원문 그대로 남습니다.
    """
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_config(config_path: Path) -> dict:
    """YAML 설정 파일을 로드하여 dict로 반환합니다.

    config_path의 YAML 파일을 PyYAML의 safe_load로 파싱합니다.
    비밀값(access key, DSN 등)은 ${ENV_NAME} 형태로 적어두면 로드 시점에 환경변수로 치환됩니다.
    YAML 내용이 비어있으면 빈 dict를 반환합니다.

    Args:
        config_path: YAML 설정 파일 경로.

    Returns:
        YAML을 dict로 파싱한 결과. 비어있으면 {} 반환.

    Raises:
        FileNotFoundError: config_path가 존재하지 않을 경우.
        yaml.YAMLError: YAML 문법 오류 등으로 파싱에 실패할 경우.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"config not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as f:
        return _expand_env(yaml.safe_load(f) or {})


def get_value(cfg: dict, path: str, default: Any = None) -> Any:
    """중첩 dict에서 dotted path(예: "storage.bucket")로 값을 조회합니다.

    탐색 중 현재 값이 dict가 아니거나 키가 없으면 default를 반환합니다.
    값이 None이거나 빈 문자열이어도 default를 반환합니다.
    """
    cur: Any = cfg
    for key in path.split("."):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    if cur is None or cur == "":
        return default
    return cur


def get_str(cfg: dict, path: str, default: str = "") -> str:
    """문자열 설정 값을 조회합니다. 치환되지 않은 ${VAR}가 남아 있으면 default로 봅니다."""
    v = get_value(cfg, path, default)
    s = str(v).strip() if v is not None else ""
    if "${" in s:
        return default
    return s


def get_bool(cfg: dict, path: str, default: bool = False) -> bool:
    """설정 값을 bool로 해석합니다. "true"/"1"/"yes"/"on" 문자열도 True로 봅니다."""
    v = get_value(cfg, path, default)
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)
