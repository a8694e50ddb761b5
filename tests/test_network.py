"""Tests for interaction network topologies."""

import networkx as nx
import pytest

from social_diffusion import (
    CompleteNetwork,
    ExplicitNetwork,
    GridNetwork,
    MalformedNetwork,
    NETWORK_REGISTRY,
    RingNetwork,
    SmallWorldNetwork,
    StarNetwork,
    UnknownNetwork,
    create_network,
)


def test_complete_network_neighbors_exclude_self():
    net = CompleteNetwork(range(5))
    neighbors = net.get_neighbors(2)
    assert list(neighbors) == [0, 1, 3, 4]
    assert len(neighbors) == 4
    assert neighbors[2] == 3
    assert neighbors[-1] == 4
    assert 2 not in neighbors
    assert 4 in neighbors
    assert net.num_edges() == 10
    assert len(list(net.get_all_edges())) == 10


def test_complete_network_single_agent_has_no_neighbors():
    net = CompleteNetwork(["solo"])
    assert len(net.get_neighbors("solo")) == 0
    assert net.num_edges() == 0


def test_duplicate_agent_ids_rejected():
    with pytest.raises(MalformedNetwork):
        CompleteNetwork([1, 2, 2])


def test_explicit_network_is_symmetric():
    net = ExplicitNetwork("abc", [("a", "b"), ("b", "c")])
    assert net.get_neighbors("b") == ("a", "c")
    assert net.get_neighbors("a") == ("b",)
    assert net.get_degree("c") == 1
    assert net.num_edges() == 2


def test_explicit_network_ignores_duplicate_edges():
    net = ExplicitNetwork(range(3), [(0, 1), (1, 0), (0, 1)])
    assert net.num_edges() == 1
    assert net.get_neighbors(0) == (1,)


def test_directed_network_only_observer_sees():
    net = ExplicitNetwork(range(2), [(0, 1)], directed=True)
    assert net.get_neighbors(0) == (1,)
    assert net.get_neighbors(1) == ()


def test_self_loop_rejected():
    with pytest.raises(MalformedNetwork):
        ExplicitNetwork(range(3), [(1, 1)])


def test_unknown_endpoint_rejected():
    with pytest.raises(MalformedNetwork):
        ExplicitNetwork(range(3), [(0, 9)])


def test_from_adjacency_requires_symmetry():
    with pytest.raises(MalformedNetwork):
        ExplicitNetwork.from_adjacency({0: [1], 1: []})
    net = ExplicitNetwork.from_adjacency({0: [1], 1: [0, 2], 2: [1]})
    assert net.num_edges() == 2


def test_from_networkx_keeps_labels():
    g = nx.Graph()
    g.add_edges_from([("x", "y"), ("y", "z")])
    net = ExplicitNetwork.from_networkx(g)
    assert set(net.agents) == {"x", "y", "z"}
    assert set(net.get_neighbors("y")) == {"x", "z"}
    assert nx.is_isomorphic(net.to_networkx(), g)


def test_ring_degree():
    net = RingNetwork(range(10), k=4)
    assert all(net.get_degree(a) == 4 for a in net.agents)


def test_ring_with_odd_k_uses_even_degree():
    net = RingNetwork(range(10), k=3)
    assert all(net.get_degree(a) == 2 for a in net.agents)


def test_grid_interior_degree():
    net = GridNetwork(range(9), cols=3)
    assert net.get_degree(4) == 4
    assert net.get_degree(0) == 2


def test_periodic_grid_is_regular():
    net = GridNetwork(range(16), cols=4, periodic=True)
    assert all(net.get_degree(a) == 4 for a in net.agents)


def test_star_center():
    net = StarNetwork(range(6))
    assert net.get_degree(0) == 5
    assert all(net.get_degree(a) == 1 for a in range(1, 6))


def test_small_world_seed_is_reproducible():
    a = SmallWorldNetwork(range(30), k=4, p=0.3, seed=8)
    b = SmallWorldNetwork(range(30), k=4, p=0.3, seed=8)
    assert list(a.get_all_edges()) == list(b.get_all_edges())


def test_network_stats():
    stats = StarNetwork(range(5)).get_network_stats()
    assert stats["num_agents"] == 5
    assert stats["num_edges"] == 4
    assert stats["max_degree"] == 4
    assert stats["min_degree"] == 1


@pytest.mark.parametrize("name", sorted(NETWORK_REGISTRY))
def test_create_network_by_name(name):
    net = create_network(name, 20, seed=1)
    assert net.n == 20
    for a, b in net.get_all_edges():
        assert a != b
        assert net.has_agent(a) and net.has_agent(b)


def test_create_network_with_ids():
    net = create_network("ring", ["a", "b", "c", "d"])
    assert net.agents == ["a", "b", "c", "d"]


def test_create_network_unknown_name():
    with pytest.raises(UnknownNetwork):
        create_network("hypercube", 8)
