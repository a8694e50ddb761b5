"""
个体定义模块 - 行为类型与个体状态
Agent Module - Behavior types and per-individual state
"""
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, Hashable, Tuple

from .errors import InvalidConfig


class Behavior(Enum):
    """个体行为 / Agent Behaviors"""
    LEGACY = "legacy"
    ADAPTIVE = "adaptive"


BEHAVIORS: Tuple[Behavior, ...] = (Behavior.LEGACY, Behavior.ADAPTIVE)


def behavior_from_string(s) -> Behavior:
    """
    从字符串解析行为
    Parse behavior from string
    """
    if isinstance(s, Behavior):
        return s
    s = str(s).lower().strip()
    if s in ["legacy", "l", "0"]:
        return Behavior.LEGACY
    elif s in ["adaptive", "a", "1"]:
        return Behavior.ADAPTIVE
    else:
        raise InvalidConfig(f"Unknown behavior: {s}")


@dataclass
class Agent:
    """
    个体状态
    Agent State

    Attributes:
        id: 个体编号，在一次试验内唯一且稳定
        behavior: 当前行为
        fitness: 缓存的适应度（由行为和收益模型推导）
        neighbors: 邻居编号（通过模型查找，不直接持有引用）
    """
    id: Hashable
    behavior: Behavior = Behavior.LEGACY
    fitness: float = 0.0
    neighbors: Tuple[Hashable, ...] = field(default_factory=tuple)

    @property
    def is_adaptive(self) -> bool:
        return self.behavior is Behavior.ADAPTIVE

    @property
    def degree(self) -> int:
        return len(self.neighbors)

    def to_dict(self) -> Dict:
        """导出为字典"""
        return {
            "id": self.id,
            "behavior": self.behavior.value,
            "fitness": self.fitness,
            "degree": self.degree,
        }
