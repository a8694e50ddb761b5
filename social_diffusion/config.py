"""
扫描配置 - 默认值、JSON 配置文件与环境变量覆盖
Sweep Configuration - defaults, JSON config file and environment overrides

优先级 / precedence: 环境变量 > 配置文件 > 默认值
"""
import copy
import json
import os
from typing import Dict, Optional

from .errors import InvalidConfig

DEFAULT_CONFIG = {
    "n_replicates": 20,       # 每个参数组合的重复次数
    "max_steps": 1000,        # 每次试验的最大步数
    "seed": 42,               # 全局随机种子
    "n_workers": 1,           # 并行进程数
    "checkpoint_every": 10,   # 每完成多少条记录写一次检查点
    "n_agents": 100,
    "log_level": "WARNING",
    "output_dir": "results",
}

# 环境变量 -> (配置键, 类型)
ENV_OVERRIDES = {
    "SD_REPLICATES": ("n_replicates", int),
    "SD_MAX_STEPS": ("max_steps", int),
    "SD_SEED": ("seed", int),
    "SD_WORKERS": ("n_workers", int),
    "SD_OUTPUT_DIR": ("output_dir", str),
}


def load_config(path: Optional[str] = None, use_env: bool = True) -> Dict:
    """
    加载配置
    Load configuration

    Args:
        path: JSON 配置文件（可选），其键覆盖默认值
        use_env: 是否应用环境变量覆盖

    Returns:
        配置字典
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                overrides = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidConfig(f"Cannot load config file {path}: {e}") from e
        if not isinstance(overrides, dict):
            raise InvalidConfig(f"Config file {path} must hold a JSON object")
        unknown = sorted(set(overrides) - set(DEFAULT_CONFIG))
        if unknown:
            raise InvalidConfig(f"Unknown config keys in {path}: {unknown}")
        config.update(overrides)

    if use_env:
        for env_key, (key, cast) in ENV_OVERRIDES.items():
            env_val = os.environ.get(env_key)
            if env_val:
                try:
                    config[key] = cast(env_val)
                except ValueError:
                    raise InvalidConfig(f"{env_key}={env_val!r} is not a valid {cast.__name__}")
    return config


def save_config(config: Dict, path: str):
    """保存配置"""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2, ensure_ascii=False)
