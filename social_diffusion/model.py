"""
模型模块 - 模型参数与基于个体的模型
Model Module - Model parameters and the agent-based model

AgentBasedModel 独占网络、个体和参数；邻居通过编号查找。
The AgentBasedModel owns its network, agents and parameters; neighbors are
looked up by id.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, Union

import numpy as np

from .agent import Agent, Behavior, BEHAVIORS
from .errors import DisconnectedAgent, EmptyPopulation, InvalidConfig
from .network import InteractionNetwork, RANDOM_NETWORKS, create_network
from .payoffs import PayoffModel, create_payoff
from .strategies import LearningStrategy, check_probability, create_strategy

logger = logging.getLogger(__name__)

INTERACTION_MODES = ("random_partner", "all_neighbors")
UPDATE_MODES = ("synchronous", "sequential")

StepHook = Callable[["AgentBasedModel", Dict[Behavior, int]], None]


@dataclass(frozen=True, eq=False)
class ModelParameters:
    """
    模型参数（构造后不可变）
    Model Parameters (immutable after construction)

    Attributes:
        learning_strategy: 学习策略
        payoff_model: 收益模型
        adoption_rate: 采纳率 α
        drop_rate: 放弃率 δ
        dyadic_adoption_rates: 二元采纳率覆盖 {(focal, teacher): α_ij}
        interaction: 对象相关收益的互动方式
        update: 更新方式（同步 / 顺序）
    """
    learning_strategy: LearningStrategy
    payoff_model: PayoffModel
    adoption_rate: float = 1.0
    drop_rate: float = 0.0
    dyadic_adoption_rates: Mapping[Tuple[Hashable, Hashable], float] = field(default_factory=dict)
    interaction: str = "random_partner"
    update: str = "synchronous"

    def __post_init__(self):
        if not isinstance(self.learning_strategy, LearningStrategy):
            raise InvalidConfig(f"learning_strategy must be a LearningStrategy, got {self.learning_strategy!r}")
        if not isinstance(self.payoff_model, PayoffModel):
            raise InvalidConfig(f"payoff_model must be a PayoffModel, got {self.payoff_model!r}")
        self.payoff_model.validate(BEHAVIORS)
        object.__setattr__(self, "adoption_rate", check_probability("adoption_rate", self.adoption_rate))
        object.__setattr__(self, "drop_rate", check_probability("drop_rate", self.drop_rate))
        rates = {}
        for pair, rate in dict(self.dyadic_adoption_rates).items():
            pair = tuple(pair)
            if len(pair) != 2:
                raise InvalidConfig(f"Dyadic adoption rates are keyed by (focal, teacher), got {pair!r}")
            rates[pair] = check_probability(f"adoption rate for {pair}", rate)
        object.__setattr__(self, "dyadic_adoption_rates", rates)
        if self.interaction not in INTERACTION_MODES:
            raise InvalidConfig(f"Unknown interaction mode: {self.interaction}. Available: {list(INTERACTION_MODES)}")
        if self.update not in UPDATE_MODES:
            raise InvalidConfig(f"Unknown update mode: {self.update}. Available: {list(UPDATE_MODES)}")

    def alpha_for(self, focal: Hashable, teacher: Hashable) -> float:
        """Adoption rate for a (focal, teacher) pair."""
        return self.dyadic_adoption_rates.get((focal, teacher), self.adoption_rate)

    def to_dict(self) -> Dict:
        return {
            "learning_strategy": self.learning_strategy.name,
            "payoff_model": self.payoff_model.name,
            "adoption_rate": self.adoption_rate,
            "drop_rate": self.drop_rate,
            "dyadic_adoption_rates": len(self.dyadic_adoption_rates),
            "interaction": self.interaction,
            "update": self.update,
        }


class AgentBasedModel:
    """
    基于个体的模型
    Agent-Based Model
    """

    def __init__(self,
                 network: InteractionNetwork,
                 params: ModelParameters,
                 initial_adopters: Iterable[Hashable] = (),
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None):
        """
        Args:
            network: 交互网络
            params: 模型参数
            initial_adopters: 初始采纳适应性行为的个体编号
            rng: 随机数流（优先于 seed）
            seed: 随机种子
        """
        if network.n == 0:
            raise EmptyPopulation("Cannot build a model with zero agents")
        adopters = set(initial_adopters)
        unknown = [a for a in adopters if not network.has_agent(a)]
        if unknown:
            raise InvalidConfig(f"Initial adopters reference unknown agents: {unknown}")

        self.network = network
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.step_count = 0

        self._ids: List[Hashable] = list(network.agents)
        self.agents: Dict[Hashable, Agent] = {}
        for agent_id in self._ids:
            behavior = Behavior.ADAPTIVE if agent_id in adopters else Behavior.LEGACY
            self.agents[agent_id] = Agent(
                id=agent_id,
                behavior=behavior,
                neighbors=network.get_neighbors(agent_id),
            )
        self._partners: Dict[Hashable, Tuple[Hashable, ...]] = {}
        # 反向索引：把某个体当作互动对象的个体
        self._partnered_by: Dict[Hashable, List[Hashable]] = {}
        self._hooks: List[StepHook] = []

        if not params.payoff_model.dyadic:
            for agent in self.agents.values():
                agent.fitness = self._fitness_of(agent)

    # ---------- 查询 / Queries ----------

    @property
    def n_agents(self) -> int:
        return len(self._ids)

    def neighbors_of(self, agent: Union[Agent, Hashable]) -> List[Agent]:
        """Resolve an agent's neighbor ids to Agent objects."""
        if not isinstance(agent, Agent):
            agent = self.agents[agent]
        return [self.agents[j] for j in agent.neighbors]

    def counts(self) -> Dict[Behavior, int]:
        """Number of agents per behavior."""
        result = {b: 0 for b in BEHAVIORS}
        for agent in self.agents.values():
            result[agent.behavior] += 1
        return result

    def prevalence(self) -> float:
        """Fraction of agents performing the adaptive behavior."""
        return self.counts()[Behavior.ADAPTIVE] / self.n_agents

    def fixated_behavior(self) -> Optional[Behavior]:
        """The behavior shared by every agent, or None."""
        behaviors = {agent.behavior for agent in self.agents.values()}
        if len(behaviors) == 1:
            return behaviors.pop()
        return None

    def is_fixated(self) -> bool:
        return self.fixated_behavior() is not None

    def snapshot(self) -> Dict[Hashable, Behavior]:
        return {agent_id: agent.behavior for agent_id, agent in self.agents.items()}

    def add_step_hook(self, hook: StepHook):
        """Register hook(model, counts), called after every step."""
        self._hooks.append(hook)

    # ---------- 仿真 / Simulation ----------

    def advance_one_step(self) -> Dict[Behavior, int]:
        """
        推进一步：适应度更新、采纳决策、放弃决策
        Advance one step: fitness update, adoption decisions, drop decisions

        Returns:
            步后各行为的个体数
        """
        order = [self._ids[i] for i in self.rng.permutation(self.n_agents)]
        self._update_fitness(order)

        if self.params.update == "sequential":
            self._sequential_update(order)
        else:
            self._synchronous_update(order)

        for agent in self.agents.values():
            agent.fitness = self._fitness_of(agent)

        self.step_count += 1
        counts = self.counts()
        logger.debug("step %d: %s", self.step_count, {b.value: c for b, c in counts.items()})
        for hook in self._hooks:
            hook(self, counts)
        return counts

    def _synchronous_update(self, order: List[Hashable]):
        # 所有决策都基于步初状态 / every decision reads the start-of-step state
        next_behaviors = {agent_id: self._decide(self.agents[agent_id]) for agent_id in order}
        for agent_id, behavior in next_behaviors.items():
            self.agents[agent_id].behavior = behavior

    def _sequential_update(self, order: List[Hashable]):
        for agent_id in order:
            agent = self.agents[agent_id]
            behavior = self._decide(agent)
            if behavior is not agent.behavior:
                agent.behavior = behavior
                agent.fitness = self._fitness_of(agent)
                for other_id in self._partnered_by.get(agent_id, ()):
                    other = self.agents[other_id]
                    other.fitness = self._fitness_of(other)

    def _decide(self, agent: Agent) -> Behavior:
        if agent.behavior is Behavior.ADAPTIVE:
            # drop rule, independent of neighbors
            if self.rng.random() < self.params.drop_rate:
                return Behavior.LEGACY
            return Behavior.ADAPTIVE
        return self.params.learning_strategy.next_behavior(
            agent, self.neighbors_of(agent), self.params, self.rng
        )

    def _update_fitness(self, order: List[Hashable]):
        payoff_model = self.params.payoff_model
        if payoff_model.dyadic:
            self._partners = {}
            self._partnered_by = {}
            for agent_id in order:
                agent = self.agents[agent_id]
                if not agent.neighbors:
                    raise DisconnectedAgent(agent_id)
                if self.params.interaction == "all_neighbors":
                    self._partners[agent_id] = tuple(agent.neighbors)
                else:
                    k = int(self.rng.integers(len(agent.neighbors)))
                    self._partners[agent_id] = (agent.neighbors[k],)
                for partner_id in self._partners[agent_id]:
                    self._partnered_by.setdefault(partner_id, []).append(agent_id)
        for agent_id in order:
            agent = self.agents[agent_id]
            agent.fitness = self._fitness_of(agent)

    def _fitness_of(self, agent: Agent) -> float:
        payoff_model = self.params.payoff_model
        if not payoff_model.dyadic:
            return payoff_model.payoff(agent.behavior)
        partners = self._partners.get(agent.id)
        if not partners:
            return 0.0
        total = sum(payoff_model.payoff(agent.behavior, self.agents[p].behavior) for p in partners)
        return total / len(partners)

    def partners_of(self, agent_id: Hashable) -> Tuple[Hashable, ...]:
        """Interaction partners realized in the last step."""
        return self._partners.get(agent_id, ())

    def to_dict(self) -> Dict:
        """导出为字典"""
        return {
            "step": self.step_count,
            "params": self.params.to_dict(),
            "network": self.network.get_network_stats(),
            "counts": {b.value: c for b, c in self.counts().items()},
            "agents": [agent.to_dict() for agent in self.agents.values()],
        }


# ============================================================
# 模型构造 / Model Construction
# ============================================================

@dataclass
class ModelConfig:
    """
    模型构造配置
    Model construction input

    网络、策略、收益可以是实例，也可以是注册表中的名称。
    Network, strategy and payoff may be instances or registry names.
    """
    network: Union[InteractionNetwork, str] = "complete"
    n_agents: Optional[int] = None
    network_kwargs: Dict = field(default_factory=dict)
    learning_strategy: Union[LearningStrategy, str] = "contagion"
    strategy_kwargs: Dict = field(default_factory=dict)
    adoption_rate: float = 1.0
    drop_rate: float = 0.0
    payoff: Union[PayoffModel, str] = "dyad_independent"
    payoff_kwargs: Dict = field(default_factory=dict)
    initial_adopters: Optional[Iterable[Hashable]] = None
    initial_prevalence: Optional[float] = None
    dyadic_adoption_rates: Dict = field(default_factory=dict)
    interaction: str = "random_partner"
    update: str = "synchronous"


def create_model(config: ModelConfig,
                 rng: Optional[np.random.Generator] = None,
                 seed: Optional[int] = None) -> AgentBasedModel:
    """
    根据配置创建模型
    Build a fresh AgentBasedModel from a ModelConfig

    Args:
        config: 模型配置
        rng: 随机数流（网络生成、初始采纳者抽样与仿真共用）
        seed: 未提供 rng 时使用的随机种子

    Returns:
        AgentBasedModel 实例
    """
    rng = rng if rng is not None else np.random.default_rng(seed)
    adoption_rate = check_probability("adoption_rate", config.adoption_rate)
    drop_rate = check_probability("drop_rate", config.drop_rate)

    # 网络
    network = config.network
    if isinstance(network, str):
        if config.n_agents is None:
            raise InvalidConfig(f"n_agents is required to build a '{network}' network")
        network_seed = int(rng.integers(2 ** 32 - 1)) if network in RANDOM_NETWORKS else None
        network = create_network(network, config.n_agents, seed=network_seed, **config.network_kwargs)
    elif not isinstance(network, InteractionNetwork):
        raise InvalidConfig(f"network must be an InteractionNetwork or a registry name, got {network!r}")

    # 策略与收益
    strategy = config.learning_strategy
    if isinstance(strategy, str):
        strategy = create_strategy(strategy, **config.strategy_kwargs)
    payoff = config.payoff
    if isinstance(payoff, str):
        payoff = create_payoff(payoff, **config.payoff_kwargs)

    params = ModelParameters(
        learning_strategy=strategy,
        payoff_model=payoff,
        adoption_rate=adoption_rate,
        drop_rate=drop_rate,
        dyadic_adoption_rates=config.dyadic_adoption_rates,
        interaction=config.interaction,
        update=config.update,
    )

    # 初始采纳者
    if config.initial_adopters is not None and config.initial_prevalence is not None:
        raise InvalidConfig("Give either initial_adopters or initial_prevalence, not both")
    if config.initial_prevalence is not None:
        prevalence = check_probability("initial_prevalence", config.initial_prevalence)
        k = int(round(prevalence * network.n))
        picks = rng.choice(network.n, size=k, replace=False) if k else []
        adopters = [network.agents[i] for i in picks]
    else:
        adopters = list(config.initial_adopters or ())

    model = AgentBasedModel(network, params, initial_adopters=adopters, rng=rng)
    logger.debug("Built model: %d agents, %s, %s, %d initial adopters",
                 network.n, strategy.name, payoff.name, len(adopters))
    return model
