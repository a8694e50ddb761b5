"""
Network topologies for agent interactions.

A network maps each agent id to the ids it observes. Generated topologies are
built with networkx; the complete graph is kept implicit.
"""
import itertools
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Dict, Hashable, Iterable, Iterator, List, Optional, Tuple, Union

import networkx as nx

from .errors import MalformedNetwork, UnknownNetwork


class InteractionNetwork(ABC):
    """Base class for interaction networks."""

    name = "Network"
    directed = False

    def __init__(self, agents: Iterable[Hashable]):
        self.agents: List[Hashable] = list(agents)
        self.n = len(self.agents)
        if len(set(self.agents)) != self.n:
            raise MalformedNetwork("Agent ids must be unique")
        self._index = set(self.agents)

    @abstractmethod
    def get_neighbors(self, agent: Hashable) -> Sequence:
        """Get agent's neighbors."""

    @abstractmethod
    def get_all_edges(self) -> Iterator[Tuple[Hashable, Hashable]]:
        """Iterate over all edges."""

    @abstractmethod
    def num_edges(self) -> int:
        """Number of edges (arcs for directed networks)."""

    def has_agent(self, agent: Hashable) -> bool:
        return agent in self._index

    def get_degree(self, agent: Hashable) -> int:
        """Get number of neighbors."""
        return len(self.get_neighbors(agent))

    def get_network_stats(self) -> Dict:
        """Get network statistics."""
        degrees = [self.get_degree(a) for a in self.agents]
        return {
            "num_agents": self.n,
            "num_edges": self.num_edges(),
            "avg_degree": sum(degrees) / self.n if self.n > 0 else 0,
            "min_degree": min(degrees) if degrees else 0,
            "max_degree": max(degrees) if degrees else 0,
        }

    def to_networkx(self) -> nx.Graph:
        """Export as a networkx graph (for plotting and analysis tools)."""
        g = nx.DiGraph() if self.directed else nx.Graph()
        g.add_nodes_from(self.agents)
        g.add_edges_from(self.get_all_edges())
        return g

    def to_dict(self) -> Dict:
        """Export as dictionary."""
        return {
            "type": self.__class__.__name__,
            "directed": self.directed,
            "agents": self.agents,
            "edges": list(self.get_all_edges()),
        }


# --- Complete graph (implicit) ---

class _AllBut(Sequence):
    """Read-only view of every agent except one."""

    __slots__ = ("_agents", "_pos")

    def __init__(self, agents: List[Hashable], pos: int):
        self._agents = agents
        self._pos = pos

    def __len__(self):
        return len(self._agents) - 1

    def __getitem__(self, i):
        if isinstance(i, slice):
            return [self[j] for j in range(*i.indices(len(self)))]
        if i < 0:
            i += len(self)
        if not 0 <= i < len(self):
            raise IndexError(i)
        return self._agents[i if i < self._pos else i + 1]

    def __iter__(self):
        for j, a in enumerate(self._agents):
            if j != self._pos:
                yield a

    def __contains__(self, agent):
        return agent != self._agents[self._pos] and agent in self._agents


class CompleteNetwork(InteractionNetwork):
    """Every agent observes every other agent. No edge list is stored."""
    name = "Complete"

    def __init__(self, agents: Iterable[Hashable]):
        super().__init__(agents)
        self._pos = {a: i for i, a in enumerate(self.agents)}

    def get_neighbors(self, agent: Hashable) -> Sequence:
        if agent not in self._pos:
            return ()
        return _AllBut(self.agents, self._pos[agent])

    def get_all_edges(self) -> Iterator[Tuple[Hashable, Hashable]]:
        return itertools.combinations(self.agents, 2)

    def num_edges(self) -> int:
        return self.n * (self.n - 1) // 2


# --- Explicit adjacency ---

class ExplicitNetwork(InteractionNetwork):
    """Finite graph with an explicit adjacency list."""
    name = "Explicit"

    def __init__(self,
                 agents: Iterable[Hashable],
                 edges: Iterable[Tuple[Hashable, Hashable]] = (),
                 directed: bool = False):
        super().__init__(agents)
        self.directed = directed
        self._edges: List[Tuple[Hashable, Hashable]] = []
        self._adjacency: Dict[Hashable, List[Hashable]] = {a: [] for a in self.agents}
        self._edge_set = set()
        for a1, a2 in edges:
            self._add_edge(a1, a2)

    def _add_edge(self, a1: Hashable, a2: Hashable):
        """Add an edge; for directed networks a1 observes a2."""
        if a1 not in self._adjacency or a2 not in self._adjacency:
            raise MalformedNetwork(f"Edge ({a1!r}, {a2!r}) references an unknown agent")
        if a1 == a2:
            raise MalformedNetwork(f"Self-loop on agent {a1!r}")
        key = (a1, a2) if self.directed else frozenset((a1, a2))
        if key in self._edge_set:
            return
        self._edge_set.add(key)
        self._edges.append((a1, a2))
        self._adjacency[a1].append(a2)
        if not self.directed:
            self._adjacency[a2].append(a1)

    def get_neighbors(self, agent: Hashable) -> Sequence:
        return tuple(self._adjacency.get(agent, ()))

    def get_all_edges(self) -> Iterator[Tuple[Hashable, Hashable]]:
        return iter(list(self._edges))

    def num_edges(self) -> int:
        return len(self._edges)

    @classmethod
    def from_networkx(cls, graph: nx.Graph) -> "ExplicitNetwork":
        """Build from a networkx graph, keeping its node labels."""
        return cls(list(graph.nodes()), list(graph.edges()), directed=graph.is_directed())

    @classmethod
    def from_adjacency(cls,
                       adjacency: Dict[Hashable, Iterable[Hashable]],
                       directed: bool = False) -> "ExplicitNetwork":
        """
        Build from an id -> neighbor ids mapping.

        Undirected adjacency must be symmetric.
        """
        adjacency = {a: list(ns) for a, ns in adjacency.items()}
        if not directed:
            for a, ns in adjacency.items():
                for b in ns:
                    if a not in adjacency.get(b, ()):
                        raise MalformedNetwork(
                            f"Undirected adjacency is asymmetric: {a!r} -> {b!r} has no reverse"
                        )
        edges = [(a, b) for a, ns in adjacency.items() for b in ns]
        return cls(list(adjacency), edges, directed=directed)


# --- Generated topologies ---

def _relabel(agents: List[Hashable], graph: nx.Graph) -> List[Tuple[Hashable, Hashable]]:
    return [(agents[i], agents[j]) for i, j in graph.edges()]


class RingNetwork(ExplicitNetwork):
    """Regular ring lattice: each agent linked to its k nearest neighbors."""
    name = "Ring"

    def __init__(self, agents: Iterable[Hashable], k: int = 2):
        agents = list(agents)
        self.k = _even_degree(k, len(agents))
        graph = nx.watts_strogatz_graph(len(agents), self.k, 0.0) if len(agents) > 2 else nx.path_graph(len(agents))
        super().__init__(agents, _relabel(agents, graph))


class GridNetwork(ExplicitNetwork):
    """2D grid structure."""
    name = "Grid"

    def __init__(self, agents: Iterable[Hashable], cols: Optional[int] = None, periodic: bool = False):
        agents = list(agents)
        self.cols = cols or max(1, int(len(agents) ** 0.5))
        self.rows = (len(agents) + self.cols - 1) // self.cols
        graph = nx.grid_2d_graph(self.rows, self.cols, periodic=periodic)
        graph = nx.convert_node_labels_to_integers(graph, ordering="sorted")
        graph.remove_nodes_from([v for v in list(graph.nodes()) if v >= len(agents)])
        super().__init__(agents, _relabel(agents, graph))


class StarNetwork(ExplicitNetwork):
    """One center node connected to all others."""
    name = "Star"

    def __init__(self, agents: Iterable[Hashable], center: Optional[Hashable] = None):
        agents = list(agents)
        self.center = agents[0] if center is None and agents else center
        super().__init__(agents, [(self.center, a) for a in agents if a != self.center])


class SmallWorldNetwork(ExplicitNetwork):
    """Watts-Strogatz small world network."""
    name = "Small World"

    def __init__(self, agents: Iterable[Hashable], k: int = 4, p: float = 0.1, seed: Optional[int] = None):
        agents = list(agents)
        self.k = _even_degree(k, len(agents))
        self.p = p
        graph = nx.watts_strogatz_graph(len(agents), self.k, p, seed=seed)
        super().__init__(agents, _relabel(agents, graph))


class ScaleFreeNetwork(ExplicitNetwork):
    """Barabasi-Albert preferential attachment network."""
    name = "Scale Free"

    def __init__(self, agents: Iterable[Hashable], m: int = 2, seed: Optional[int] = None):
        agents = list(agents)
        self.m = max(1, min(m, len(agents) - 1))
        graph = nx.barabasi_albert_graph(len(agents), self.m, seed=seed)
        super().__init__(agents, _relabel(agents, graph))


class RandomNetwork(ExplicitNetwork):
    """Erdos-Renyi random network."""
    name = "Random (ER)"

    def __init__(self, agents: Iterable[Hashable], p: float = 0.3, seed: Optional[int] = None):
        agents = list(agents)
        self.p = p
        graph = nx.gnp_random_graph(len(agents), p, seed=seed)
        super().__init__(agents, _relabel(agents, graph))


def _even_degree(k: int, n: int) -> int:
    k = min(k, n - 1)
    if k % 2 == 1:
        k -= 1
    return max(k, 0)


# --- Network Registry ---

NETWORK_REGISTRY = {
    "complete": CompleteNetwork,
    "ring": RingNetwork,
    "grid": GridNetwork,
    "star": StarNetwork,
    "small_world": SmallWorldNetwork,
    "scale_free": ScaleFreeNetwork,
    "random": RandomNetwork,
}

# Topologies whose generator draws random numbers
RANDOM_NETWORKS = {"small_world", "scale_free", "random"}


def create_network(network_type: str,
                   agents: Union[int, Iterable[Hashable]],
                   seed: Optional[int] = None,
                   **kwargs) -> InteractionNetwork:
    """Create a network by type name. `agents` may be a count or a list of ids."""
    if network_type not in NETWORK_REGISTRY:
        raise UnknownNetwork(f"Unknown network type: {network_type}. "
                             f"Available: {list(NETWORK_REGISTRY.keys())}")
    if isinstance(agents, int):
        agents = list(range(agents))
    if network_type in RANDOM_NETWORKS:
        kwargs["seed"] = seed
    try:
        return NETWORK_REGISTRY[network_type](agents, **kwargs)
    except nx.NetworkXError as e:
        raise MalformedNetwork(f"Cannot build {network_type} network: {e}") from e
