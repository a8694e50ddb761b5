"""
模型工厂 - 从扁平参数字典构建模型
Model Factory - Build models from flat parameter dicts

参数键 / parameter keys:
    ModelConfig 字段名            直接赋值, e.g. "adoption_rate", "network"
    "network.<kw>"                网络生成参数, e.g. "network.k"
    "strategy.<kw>"               策略参数, e.g. "strategy.include_self"
    "payoff.<kw>"                 收益模型参数, e.g. "payoff.adaptive_fitness"
"""
from dataclasses import fields
from typing import Any, Dict, Mapping

import numpy as np

from .errors import InvalidConfig
from .model import AgentBasedModel, ModelConfig, create_model

_CONFIG_FIELDS = {f.name for f in fields(ModelConfig)}
_PREFIXES = {
    "network.": "network_kwargs",
    "strategy.": "strategy_kwargs",
    "payoff.": "payoff_kwargs",
}


def config_from_params(params: Mapping[str, Any]) -> ModelConfig:
    """
    把扁平参数字典转换为 ModelConfig
    Convert a flat parameter dict to a ModelConfig
    """
    kwargs: Dict[str, Any] = {"network_kwargs": {}, "strategy_kwargs": {}, "payoff_kwargs": {}}
    for key, value in params.items():
        for prefix, target in _PREFIXES.items():
            if key.startswith(prefix):
                kwargs[target][key[len(prefix):]] = value
                break
        else:
            if key not in _CONFIG_FIELDS:
                raise InvalidConfig(f"Unknown model parameter: {key}")
            if key in _PREFIXES.values():
                kwargs[key].update(value)
            else:
                kwargs[key] = value
    return ModelConfig(**kwargs)


class GridModelFactory:
    """
    参数网格的模型工厂（可 pickle，可用于多进程）
    Model factory for parameter grids (picklable for process pools)

    defaults 为每个组合共用的参数；网格参数覆盖同名默认值。
    `defaults` apply to every combination; grid values override them.
    """

    def __init__(self, **defaults):
        config_from_params(defaults)
        self.defaults = defaults

    def __call__(self, params: Mapping[str, Any], rng: np.random.Generator) -> AgentBasedModel:
        merged = dict(self.defaults)
        merged.update(params)
        return create_model(config_from_params(merged), rng=rng)

    def __repr__(self):
        return f"GridModelFactory({self.defaults!r})"
