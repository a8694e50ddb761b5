"""
错误类型 - 仿真引擎的异常体系
Error Taxonomy - Exceptions raised by the simulation engine

ConfigurationError  构造时立即抛出 / raised at construction
RuntimeInvariantError  运行时不变量被破坏 / surfaced as a failed trial
CheckpointError  检查点读写失败 / unreadable or corrupt checkpoint
"""


class SocialDiffusionError(Exception):
    """Base class for every error raised by social_diffusion."""


# ============================================================
# 配置错误 / Configuration Errors
# ============================================================

class ConfigurationError(SocialDiffusionError, ValueError):
    """Bad parameter ranges, unknown identifiers or malformed networks."""


class InvalidConfig(ConfigurationError):
    """A model configuration value is out of range or inconsistent."""


class InvalidParameter(InvalidConfig):
    """A probability-valued parameter lies outside [0, 1]."""


class UnknownStrategy(ConfigurationError):
    """No learning strategy is registered under the given identifier."""


class UnknownPayoffModel(ConfigurationError):
    """No payoff model is registered under the given identifier."""


class UnknownNetwork(ConfigurationError):
    """No network topology is registered under the given identifier."""


class InvalidPayoffSpec(ConfigurationError):
    """A payoff table is incomplete or holds invalid values."""


class MalformedNetwork(ConfigurationError):
    """Self-loops, asymmetric undirected edges or unknown neighbor ids."""


# ============================================================
# 运行时错误 / Runtime Errors
# ============================================================

class RuntimeInvariantError(SocialDiffusionError):
    """An invariant of a running model was violated."""


class EmptyPopulation(RuntimeInvariantError):
    """A model was built with zero agents."""


class DisconnectedAgent(RuntimeInvariantError):
    """An agent with no neighbors needed an interaction partner."""

    def __init__(self, agent_id):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id!r} has no neighbors to interact with")


# ============================================================
# 检查点错误 / Checkpoint Errors
# ============================================================

class CheckpointError(SocialDiffusionError):
    """A checkpoint file could not be read or written."""

    def __init__(self, message: str, path: str = None):
        self.path = path
        super().__init__(message)
