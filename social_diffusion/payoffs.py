"""
收益模型模块 - 定义适应度 / 收益函数
Payoff Module - Define fitness and payoff functions

两类模型 / Two families:
    - 与对象无关: payoff(behavior)
    - 与对象相关: payoff(own_behavior, partner_behavior)
"""
import math
from abc import ABC, abstractmethod
from typing import Dict, Hashable, Iterable, Optional, Tuple

from .agent import Behavior, BEHAVIORS
from .errors import InvalidPayoffSpec, UnknownPayoffModel


class PayoffModel(ABC):
    """
    收益模型基类
    Base Payoff Model

    收益函数是纯函数；调用方负责把结果写入个体的 fitness。
    Payoffs are pure; the caller writes the result into the agent's fitness.
    """
    name: str = "Base Payoff"
    description: str = "Base payoff model"
    dyadic: bool = False

    @abstractmethod
    def payoff(self, behavior: Hashable, partner_behavior: Optional[Hashable] = None) -> float:
        """
        计算焦点个体的收益
        Payoff for the focal individual

        Args:
            behavior: 自己的行为
            partner_behavior: 互动对象的行为（仅对象相关模型需要）
        """

    @abstractmethod
    def covers(self, behaviors: Iterable[Hashable]) -> bool:
        """Whether every behavior (or behavior pair) in `behaviors` has a payoff."""

    def validate(self, behaviors: Iterable[Hashable] = BEHAVIORS):
        """Raise InvalidPayoffSpec unless the model covers `behaviors`."""
        behaviors = list(behaviors)
        if not self.covers(behaviors):
            raise InvalidPayoffSpec(
                f"{self.name} does not cover behaviors {[_label(b) for b in behaviors]}"
            )


def _label(b) -> str:
    return b.value if isinstance(b, Behavior) else str(b)


def _check_value(key, value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidPayoffSpec(f"Payoff for {key} is not a number: {value!r}")
    if not math.isfinite(value) or value < 0:
        raise InvalidPayoffSpec(f"Payoff for {key} must be finite and non-negative, got {value}")
    return value


# ============================================================
# 与对象无关 / Dyad-independent
# ============================================================

class DyadIndependentPayoff(PayoffModel):
    """每种行为固定适应度 / Fixed fitness per behavior"""
    name = "Dyad Independent"
    description = "Fitness depends only on the individual's own behavior"

    def __init__(self,
                 legacy_fitness: float = 1.0,
                 adaptive_fitness: float = 1.0,
                 table: Optional[Dict[Hashable, float]] = None):
        """
        Args:
            legacy_fitness: 传统行为的适应度
            adaptive_fitness: 适应性行为的适应度
            table: 显式表 {behavior: fitness}，提供时覆盖以上两个参数
        """
        if table is None:
            table = {Behavior.LEGACY: legacy_fitness, Behavior.ADAPTIVE: adaptive_fitness}
        self.table = {b: _check_value(_label(b), v) for b, v in table.items()}

    def payoff(self, behavior, partner_behavior=None) -> float:
        try:
            return self.table[behavior]
        except KeyError:
            raise InvalidPayoffSpec(f"No payoff for behavior {_label(behavior)}") from None

    def covers(self, behaviors) -> bool:
        return all(b in self.table for b in behaviors)

    def __repr__(self):
        return f"DyadIndependentPayoff({ {_label(b): v for b, v in self.table.items()} })"


# ============================================================
# 与对象相关 / Dyad-dependent
# ============================================================

class DyadicPayoffTable(PayoffModel):
    """
    显式收益表
    Explicit payoff table {(own, partner): payoff_to_own}
    """
    name = "Dyadic Table"
    description = "Payoff depends on the focal and the partner behavior"
    dyadic = True

    def __init__(self, table: Dict[Tuple[Hashable, Hashable], float], name: Optional[str] = None):
        if not table:
            raise InvalidPayoffSpec("Payoff table is empty")
        checked = {}
        for key, value in table.items():
            if not isinstance(key, tuple) or len(key) != 2:
                raise InvalidPayoffSpec(f"Payoff table keys must be (own, partner) pairs, got {key!r}")
            checked[key] = _check_value(tuple(_label(b) for b in key), value)
        self.table = checked
        if name:
            self.name = name

    def payoff(self, behavior, partner_behavior=None) -> float:
        if partner_behavior is None:
            raise InvalidPayoffSpec(f"{self.name} needs the partner's behavior")
        try:
            return self.table[(behavior, partner_behavior)]
        except KeyError:
            raise InvalidPayoffSpec(
                f"No payoff for pair ({_label(behavior)}, {_label(partner_behavior)})"
            ) from None

    def covers(self, behaviors) -> bool:
        behaviors = list(behaviors)
        return all((b1, b2) in self.table for b1 in behaviors for b2 in behaviors)

    @property
    def behaviors(self) -> Tuple[Hashable, ...]:
        seen = []
        for b1, b2 in self.table:
            for b in (b1, b2):
                if b not in seen:
                    seen.append(b)
        return tuple(seen)


class CorrelativeCoordination(DyadicPayoffTable):
    """
    相关协调（合作困境）
    Correlative coordination (cooperation dilemma)

    T > R > P > S
    合作 = 适应性行为, 背叛 = 传统行为
    Cooperate = ADAPTIVE, Defect = LEGACY
    """
    name = "Correlative Coordination"
    description = ("Mutual cooperation pays Reward, mutual defection Punishment; "
                   "a lone defector earns Temptation, a lone cooperator the Sucker payoff.")

    def __init__(self,
                 temptation: float = 5.0,
                 reward: float = 3.0,
                 punishment: float = 1.0,
                 sucker: float = 0.0,
                 cooperate: Hashable = Behavior.ADAPTIVE,
                 defect: Hashable = Behavior.LEGACY):
        if not temptation > reward > punishment > sucker:
            raise InvalidPayoffSpec(
                "Correlative coordination requires Temptation > Reward > Punishment > Sucker, "
                f"got T={temptation}, R={reward}, P={punishment}, S={sucker}"
            )
        self.temptation = temptation
        self.reward = reward
        self.punishment = punishment
        self.sucker = sucker
        self.cooperate = cooperate
        self.defect = defect
        super().__init__({
            (cooperate, cooperate): reward,      # R - 双方合作
            (cooperate, defect): sucker,         # S - 我合作，对方背叛
            (defect, cooperate): temptation,     # T - 我背叛，对方合作
            (defect, defect): punishment,        # P - 双方背叛
        })

    def __repr__(self):
        return (f"CorrelativeCoordination(T={self.temptation}, R={self.reward}, "
                f"P={self.punishment}, S={self.sucker})")


class ComplementaryCoordination(DyadicPayoffTable):
    """
    互补协调（角色分工）
    Complementary coordination (role division)

    与对方角色互补得高收益，角色相同得低收益。
    Complementary roles earn `high`; matching or incompatible roles earn `low`.
    """
    name = "Complementary Coordination"
    description = "Payoff is high when partners perform complementary roles"

    def __init__(self,
                 roles: Iterable[Hashable] = BEHAVIORS,
                 compatibility: Optional[Dict[Tuple[Hashable, Hashable], bool]] = None,
                 high: float = 1.0,
                 low: float = 0.0):
        """
        Args:
            roles: 角色集合
            compatibility: 角色兼容矩阵 {(own, partner): 是否互补}；
                默认不同角色即互补
            high: 互补时的收益
            low: 其他情况的收益
        """
        self.roles = tuple(roles)
        if len(self.roles) < 2:
            raise InvalidPayoffSpec("Complementary coordination needs at least two roles")
        if high < low:
            raise InvalidPayoffSpec(f"High payoff ({high}) must not be below low payoff ({low})")
        if compatibility is None:
            compatibility = {(r1, r2): r1 != r2 for r1 in self.roles for r2 in self.roles}
        missing = [(r1, r2) for r1 in self.roles for r2 in self.roles if (r1, r2) not in compatibility]
        if missing:
            raise InvalidPayoffSpec(
                "Compatibility matrix is missing role pairs: "
                + ", ".join(f"({_label(a)}, {_label(b)})" for a, b in missing)
            )
        self.compatibility = dict(compatibility)
        self.high = high
        self.low = low
        super().__init__({
            pair: (high if complementary else low)
            for pair, complementary in self.compatibility.items()
        })

    def __repr__(self):
        return f"ComplementaryCoordination(roles={[_label(r) for r in self.roles]}, high={self.high}, low={self.low})"


# ============================================================
# 预设 / Presets
# ============================================================

# 囚徒困境 Prisoner's Dilemma: T=5, R=3, P=1, S=0
PRISONERS_DILEMMA = CorrelativeCoordination(temptation=5, reward=3, punishment=1, sucker=0)

# 两角色分工 Two-role division of labor
TWO_ROLE_DIVISION = ComplementaryCoordination(high=1.0, low=0.0)


# ============================================================
# 收益模型注册表 / Payoff Registry
# ============================================================

PAYOFF_REGISTRY = {
    "dyad_independent": DyadIndependentPayoff,
    "table": DyadicPayoffTable,
    "correlative": CorrelativeCoordination,
    "cooperation": CorrelativeCoordination,
    "complementary": ComplementaryCoordination,
}


def create_payoff(payoff_name: str, **kwargs) -> PayoffModel:
    """
    工厂函数：根据名称创建收益模型
    Factory function: Create payoff model by name
    """
    if payoff_name not in PAYOFF_REGISTRY:
        raise UnknownPayoffModel(f"Unknown payoff model: {payoff_name}. "
                                 f"Available: {list(PAYOFF_REGISTRY.keys())}")
    return PAYOFF_REGISTRY[payoff_name](**kwargs)


def describe_payoffs(model: PayoffModel, behaviors: Iterable[Hashable] = BEHAVIORS) -> str:
    """
    生成收益表的文字描述
    Generate text description of a payoff model
    """
    behaviors = list(behaviors)
    lines = [f"Payoffs for {model.name}:"]
    if model.dyadic:
        for own in behaviors:
            for partner in behaviors:
                lines.append(f"- You {_label(own)}, partner {_label(partner)}: "
                             f"you get {model.payoff(own, partner)}")
    else:
        for own in behaviors:
            lines.append(f"- You {_label(own)}: you get {model.payoff(own)}")
    return "\n".join(lines)
