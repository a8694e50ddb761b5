"""Tests for ModelParameters, AgentBasedModel and create_model."""

import copy
import pickle

import numpy as np
import pytest

from social_diffusion import (
    AgentBasedModel,
    Behavior,
    CompleteNetwork,
    Contagion,
    CorrelativeCoordination,
    DisconnectedAgent,
    DyadIndependentPayoff,
    EmptyPopulation,
    ExplicitNetwork,
    FrequencyBiased,
    InvalidConfig,
    InvalidParameter,
    InvalidPayoffSpec,
    LearningStrategy,
    ModelConfig,
    ModelParameters,
    SuccessBiased,
    create_model,
)


def _params(strategy=None, payoff=None, **kwargs):
    return ModelParameters(
        learning_strategy=strategy or Contagion(),
        payoff_model=payoff or DyadIndependentPayoff(),
        **kwargs,
    )


def _path_network(n):
    return ExplicitNetwork(range(n), [(i, i + 1) for i in range(n - 1)])


# ── ModelParameters ──────────────────────────────────────────────────────────


@pytest.mark.parametrize("field, value", [("adoption_rate", 1.5), ("drop_rate", -0.1)])
def test_parameters_reject_rates_outside_unit_interval(field, value):
    with pytest.raises(InvalidParameter):
        _params(**{field: value})


def test_parameters_reject_unknown_modes():
    with pytest.raises(InvalidConfig):
        _params(interaction="everyone")
    with pytest.raises(InvalidConfig):
        _params(update="asynchronous")


def test_parameters_reject_incomplete_payoff():
    partial = DyadIndependentPayoff(table={Behavior.LEGACY: 1.0})
    with pytest.raises(InvalidPayoffSpec):
        _params(payoff=partial)


def test_parameters_reject_non_strategy():
    with pytest.raises(InvalidConfig):
        ModelParameters(learning_strategy="contagion", payoff_model=DyadIndependentPayoff())


def test_parameters_are_immutable():
    rates = {(0, 1): 0.5}
    params = _params(dyadic_adoption_rates=rates)
    with pytest.raises(AttributeError):
        params.adoption_rate = 0.5
    rates[(0, 1)] = 0.9
    assert params.alpha_for(0, 1) == 0.5


def test_parameters_pickle_and_deepcopy():
    params = _params(SuccessBiased(include_self=False), adoption_rate=0.4,
                     dyadic_adoption_rates={(0, 1): 0.5})
    for clone in (pickle.loads(pickle.dumps(params)), copy.deepcopy(params)):
        assert clone.alpha_for(0, 1) == 0.5
        assert clone.alpha_for(1, 0) == 0.4
        assert clone.learning_strategy.include_self is False


# ── Construction ─────────────────────────────────────────────────────────────


def test_empty_population_is_rejected():
    with pytest.raises(EmptyPopulation):
        AgentBasedModel(ExplicitNetwork([]), _params())


def test_unknown_initial_adopter_is_rejected():
    with pytest.raises(InvalidConfig):
        AgentBasedModel(CompleteNetwork(range(3)), _params(), initial_adopters=[7])


def test_initial_state(four_agent_model):
    model = four_agent_model
    assert model.n_agents == 4
    assert model.counts() == {Behavior.LEGACY: 3, Behavior.ADAPTIVE: 1}
    assert model.prevalence() == 0.25
    assert model.agents[2].fitness == 4.0
    assert model.agents[1].fitness == 1.0
    assert [a.id for a in model.neighbors_of(1)] == [2, 3, 4]
    assert model.fixated_behavior() is None


# ── Stepping ─────────────────────────────────────────────────────────────────


@pytest.mark.parametrize("strategy", [SuccessBiased(), FrequencyBiased(), Contagion()])
@pytest.mark.parametrize("update", ["synchronous", "sequential"])
def test_counts_always_sum_to_population(strategy, update):
    network = CompleteNetwork(range(30))
    model = AgentBasedModel(network, _params(strategy, drop_rate=0.2, adoption_rate=0.5, update=update),
                            initial_adopters=range(10), seed=3)
    for _ in range(50):
        counts = model.advance_one_step()
        assert sum(counts.values()) == 30
        assert counts == model.counts()


@pytest.mark.parametrize("strategy", [SuccessBiased(), FrequencyBiased(), Contagion()])
def test_all_legacy_is_absorbing(strategy):
    model = AgentBasedModel(CompleteNetwork(range(20)), _params(strategy, drop_rate=0.5), seed=1)
    for _ in range(30):
        model.advance_one_step()
    assert model.fixated_behavior() is Behavior.LEGACY


def test_all_adaptive_is_absorbing_without_drops():
    model = AgentBasedModel(CompleteNetwork(range(20)), _params(drop_rate=0.0),
                            initial_adopters=range(20), seed=1)
    for _ in range(30):
        model.advance_one_step()
    assert model.fixated_behavior() is Behavior.ADAPTIVE


def test_certain_drop_reverts_every_adopter_in_one_step():
    model = AgentBasedModel(CompleteNetwork(range(10)), _params(drop_rate=1.0),
                            initial_adopters=range(10), seed=1)
    counts = model.advance_one_step()
    assert counts[Behavior.ADAPTIVE] == 0


def test_new_adopters_do_not_drop_in_the_same_step():
    # agent 1 can only learn from agent 0; agent 0 drops with certainty
    params = _params(Contagion(), adoption_rate=1.0, drop_rate=1.0)
    model = AgentBasedModel(_path_network(2), params, initial_adopters=[0], seed=0)
    model.advance_one_step()
    assert model.snapshot() == {0: Behavior.LEGACY, 1: Behavior.ADAPTIVE}


@pytest.mark.parametrize("seed", range(10))
def test_synchronous_update_reads_start_of_step_state(seed):
    # 0 - 1 - 2: agent 2 only sees agent 1, which is legacy at step start
    params = _params(Contagion(), adoption_rate=1.0)
    model = AgentBasedModel(_path_network(3), params, initial_adopters=[0], seed=seed)
    model.advance_one_step()
    assert model.agents[2].behavior is Behavior.LEGACY


def test_same_seed_same_trajectory():
    def trajectory(seed):
        network = CompleteNetwork(range(25))
        model = AgentBasedModel(network, _params(SuccessBiased(), drop_rate=0.1, adoption_rate=0.7),
                                initial_adopters=range(5), seed=seed)
        snapshots = []
        for _ in range(20):
            model.advance_one_step()
            snapshots.append(model.snapshot())
        return snapshots

    assert trajectory(11) == trajectory(11)


def test_step_hook_sees_every_step():
    seen = []
    model = AgentBasedModel(CompleteNetwork(range(5)), _params(), initial_adopters=[0], seed=0)
    model.add_step_hook(lambda m, counts: seen.append((m.step_count, sum(counts.values()))))
    for _ in range(3):
        model.advance_one_step()
    assert seen == [(1, 5), (2, 5), (3, 5)]


# ── Dyad-dependent fitness ───────────────────────────────────────────────────


def test_random_partner_fitness_matches_partner_behavior():
    payoff = CorrelativeCoordination()
    model = AgentBasedModel(CompleteNetwork(range(12)), _params(SuccessBiased(), payoff=payoff),
                            initial_adopters=range(6), seed=4)
    for _ in range(5):
        model.advance_one_step()
        for agent_id, agent in model.agents.items():
            partners = model.partners_of(agent_id)
            assert len(partners) == 1
            assert partners[0] in agent.neighbors
            partner = model.agents[partners[0]]
            assert agent.fitness == payoff.payoff(agent.behavior, partner.behavior)


def test_all_neighbors_fitness_is_mean_payoff():
    payoff = CorrelativeCoordination()
    network = ExplicitNetwork(range(3), [(0, 1), (0, 2)])
    params = _params(Contagion(), payoff=payoff, adoption_rate=0.0, interaction="all_neighbors")
    model = AgentBasedModel(network, params, initial_adopters=[1], seed=0)
    model.advance_one_step()

    # nothing changes with adoption_rate 0 and drop_rate 0
    assert set(model.partners_of(0)) == {1, 2}
    assert model.agents[0].fitness == pytest.approx((payoff.temptation + payoff.punishment) / 2)
    assert model.agents[1].fitness == payoff.sucker
    assert model.agents[2].fitness == payoff.punishment


def test_isolated_agent_cannot_play_dyadic_game():
    network = ExplicitNetwork(range(3), [(0, 1)])
    model = AgentBasedModel(network, _params(payoff=CorrelativeCoordination()), seed=0)
    with pytest.raises(DisconnectedAgent) as exc_info:
        model.advance_one_step()
    assert exc_info.value.agent_id == 2


class _FitnessAuditor(LearningStrategy):
    """Adopts with probability one half and records stale fitness seen at decision time."""

    name = "Fitness Auditor"

    def __init__(self):
        self.model = None
        self.stale = []

    def adoption_probability(self, focal, neighbors, params):
        return 0.5

    def decide(self, focal, neighbors, params, rng):
        for agent in self.model.agents.values():
            if agent.fitness != self.model._fitness_of(agent):
                self.stale.append((self.model.step_count, agent.id))
        return rng.random() < 0.5


@pytest.mark.parametrize("interaction", ["random_partner", "all_neighbors"])
def test_sequential_update_keeps_partner_fitness_current(interaction):
    auditor = _FitnessAuditor()
    params = _params(auditor, payoff=CorrelativeCoordination(), drop_rate=0.5,
                     interaction=interaction, update="sequential")
    model = AgentBasedModel(CompleteNetwork(range(8)), params, initial_adopters=range(4), seed=2)
    auditor.model = model
    for _ in range(20):
        model.advance_one_step()
    assert auditor.stale == []


def test_isolated_agent_is_fine_with_dyad_independent_payoff():
    network = ExplicitNetwork(range(3), [(0, 1)])
    model = AgentBasedModel(network, _params(), initial_adopters=[0], seed=0)
    model.advance_one_step()
    assert model.agents[2].behavior is Behavior.LEGACY


# ── create_model ─────────────────────────────────────────────────────────────


def test_create_model_from_names():
    config = ModelConfig(
        network="small_world", n_agents=40, network_kwargs={"k": 4, "p": 0.2},
        learning_strategy="frequency_biased",
        payoff="dyad_independent", payoff_kwargs={"adaptive_fitness": 2.0},
        initial_prevalence=0.25, drop_rate=0.1,
    )
    model = create_model(config, seed=9)
    assert model.n_agents == 40
    assert model.counts()[Behavior.ADAPTIVE] == 10
    assert isinstance(model.params.learning_strategy, FrequencyBiased)
    assert model.params.drop_rate == 0.1


def test_create_model_is_reproducible():
    config = ModelConfig(network="random", n_agents=30, network_kwargs={"p": 0.2},
                         initial_prevalence=0.3)
    a = create_model(config, rng=np.random.default_rng(5))
    b = create_model(config, rng=np.random.default_rng(5))
    assert a.snapshot() == b.snapshot()
    assert sorted(a.network.get_all_edges()) == sorted(b.network.get_all_edges())


def test_create_model_accepts_instances(four_agent_network):
    config = ModelConfig(network=four_agent_network, learning_strategy=Contagion(),
                         payoff=DyadIndependentPayoff(), initial_adopters=[2, 3])
    model = create_model(config, seed=0)
    assert model.snapshot()[3] is Behavior.ADAPTIVE


def test_create_model_needs_population_size():
    with pytest.raises(InvalidConfig):
        create_model(ModelConfig(network="ring"))


def test_create_model_rejects_both_seeding_modes():
    with pytest.raises(InvalidConfig):
        create_model(ModelConfig(n_agents=10, initial_adopters=[0], initial_prevalence=0.5))


def test_create_model_rejects_bad_rate():
    with pytest.raises(InvalidParameter):
        create_model(ModelConfig(n_agents=10, adoption_rate=2.0))
