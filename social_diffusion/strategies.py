"""
学习策略库 - 定义社会学习规则
Learning Strategy Library - Define social-learning rules

策略只决定传统行为个体是否采纳适应性行为；放弃（drop）规则由模型统一执行。
Strategies only decide whether a legacy agent adopts the adaptive behavior;
the drop rule is applied by the model for every strategy.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, TYPE_CHECKING
import math

import numpy as np

from .agent import Agent, Behavior
from .errors import InvalidParameter, UnknownStrategy

if TYPE_CHECKING:
    from .model import ModelParameters


def check_probability(name: str, value) -> float:
    """Return `value` as a float, raising InvalidParameter outside [0, 1]."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InvalidParameter(f"{name} must lie in [0, 1], got {value}")
    return value


class LearningStrategy(ABC):
    """
    学习策略基类
    Base Learning Strategy

    所有策略必须实现 adoption_probability 和 decide
    All strategies must implement adoption_probability and decide
    """
    name: str = "Base Strategy"
    description: str = "Base learning strategy"

    def select_teacher(self,
                       focal: Agent,
                       neighbors: Sequence[Agent],
                       rng: np.random.Generator) -> Optional[Agent]:
        """
        选择示范者
        Select a teacher (uniformly by default); None for isolated agents.
        """
        if not neighbors:
            return None
        return neighbors[int(rng.integers(len(neighbors)))]

    @abstractmethod
    def adoption_probability(self,
                             focal: Agent,
                             neighbors: Sequence[Agent],
                             params: "ModelParameters") -> float:
        """
        焦点个体在一步内采纳适应性行为的概率
        Probability that a legacy focal agent adopts the adaptive behavior this step

        Args:
            focal: 焦点个体
            neighbors: 邻居（步初状态）
            params: 模型参数（提供 α 与二元覆盖 α_ij）
        """

    @abstractmethod
    def decide(self,
               focal: Agent,
               neighbors: Sequence[Agent],
               params: "ModelParameters",
               rng: np.random.Generator) -> bool:
        """Draw one adoption decision. True means the focal agent adopts."""

    def next_behavior(self,
                      focal: Agent,
                      neighbors: Sequence[Agent],
                      params: "ModelParameters",
                      rng: np.random.Generator) -> Behavior:
        """Behavior after the learning phase of one step."""
        if focal.behavior is Behavior.ADAPTIVE:
            return focal.behavior
        if self.decide(focal, neighbors, params, rng):
            return Behavior.ADAPTIVE
        return focal.behavior

    def __repr__(self):
        return f"{self.__class__.__name__}()"


def _weighted_adoption(focal: Agent,
                       pool: List[Agent],
                       weights: List[float],
                       params: "ModelParameters") -> float:
    total = sum(weights)
    if total <= 0:
        weights = [1.0] * len(pool)
        total = float(len(pool))
    adopted = sum(
        w * params.alpha_for(focal.id, a.id)
        for a, w in zip(pool, weights)
        if a.behavior is Behavior.ADAPTIVE
    )
    return adopted / total


# ============================================================
# 成功偏好 / Success-biased
# ============================================================

class SuccessBiased(LearningStrategy):
    """
    成功偏好学习
    Success-biased learning

    示范者 j 被选中的概率为 f_j / Σ f_k；全部适应度为 0 时均匀选择。
    Teacher j is drawn with probability f_j / Σ f_k (uniform when Σ f_k = 0).
    """
    name = "Success Biased"
    description = "Copy a teacher chosen in proportion to its fitness"

    def __init__(self, include_self: bool = True):
        """
        Args:
            include_self: 焦点个体自己是否在候选示范者之中
        """
        self.include_self = include_self

    def _pool(self, focal: Agent, neighbors: Sequence[Agent]) -> List[Agent]:
        pool = list(neighbors)
        if self.include_self:
            pool.insert(0, focal)
        return pool

    def select_teacher(self, focal, neighbors, rng) -> Optional[Agent]:
        pool = self._pool(focal, neighbors)
        if not pool:
            return None
        weights = np.array([a.fitness for a in pool], dtype=float)
        total = weights.sum()
        if total <= 0:
            return pool[int(rng.integers(len(pool)))]
        return pool[int(rng.choice(len(pool), p=weights / total))]

    def adoption_probability(self, focal, neighbors, params) -> float:
        pool = self._pool(focal, neighbors)
        if not pool:
            return 0.0
        return _weighted_adoption(focal, pool, [a.fitness for a in pool], params)

    def decide(self, focal, neighbors, params, rng) -> bool:
        teacher = self.select_teacher(focal, neighbors, rng)
        if teacher is None or teacher.behavior is not Behavior.ADAPTIVE:
            return False
        return rng.random() < params.alpha_for(focal.id, teacher.id)

    def __repr__(self):
        return f"SuccessBiased(include_self={self.include_self})"


# ============================================================
# 频率偏好 / Frequency-biased
# ============================================================

class FrequencyBiased(LearningStrategy):
    """
    频率偏好学习
    Frequency-biased learning

    不选择示范者；采纳概率为 |m_i| / |n_i|，孤立个体永不采纳。
    No teacher is drawn; adoption probability is |m_i| / |n_i| (0 if isolated).
    """
    name = "Frequency Biased"
    description = "Adopt with probability equal to the adaptive share of neighbors"

    def select_teacher(self, focal, neighbors, rng) -> Optional[Agent]:
        return None

    def adoption_probability(self, focal, neighbors, params) -> float:
        if not neighbors:
            return 0.0
        return _weighted_adoption(focal, list(neighbors), [1.0] * len(neighbors), params)

    def decide(self, focal, neighbors, params, rng) -> bool:
        p = self.adoption_probability(focal, neighbors, params)
        return p > 0 and rng.random() < p


# ============================================================
# 传染 / Contagion
# ============================================================

class Contagion(LearningStrategy):
    """
    简单传染
    Simple contagion

    均匀随机选择一个邻居；若其为适应性行为，则以 α 概率采纳。
    Draw one neighbor uniformly; if it is adaptive, adopt with probability α.
    """
    name = "Contagion"
    description = "Exposure to an adaptive neighbor converts with the adoption rate"

    def adoption_probability(self, focal, neighbors, params) -> float:
        if not neighbors:
            return 0.0
        return _weighted_adoption(focal, list(neighbors), [1.0] * len(neighbors), params)

    def decide(self, focal, neighbors, params, rng) -> bool:
        teacher = self.select_teacher(focal, neighbors, rng)
        if teacher is None or teacher.behavior is not Behavior.ADAPTIVE:
            return False
        return rng.random() < params.alpha_for(focal.id, teacher.id)


# ============================================================
# 策略注册表 / Strategy Registry
# ============================================================

STRATEGY_REGISTRY = {
    "success_biased": SuccessBiased,
    "frequency_biased": FrequencyBiased,
    "contagion": Contagion,
}


def create_strategy(strategy_name: str, **kwargs) -> LearningStrategy:
    """
    工厂函数：根据名称创建策略实例
    Factory function: Create strategy instance by name

    Args:
        strategy_name: 策略名称
        **kwargs: 策略参数

    Returns:
        策略实例
    """
    if strategy_name not in STRATEGY_REGISTRY:
        raise UnknownStrategy(f"Unknown strategy: {strategy_name}. "
                              f"Available: {list(STRATEGY_REGISTRY.keys())}")

    return STRATEGY_REGISTRY[strategy_name](**kwargs)
