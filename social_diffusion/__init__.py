"""
社会学习行为扩散仿真模块
Social-Learning Behavior Diffusion Simulation Module

日志默认静默；见 social_diffusion.logging_config
Logging is silent by default; see social_diffusion.logging_config
"""
import logging

from .errors import (
    SocialDiffusionError,
    ConfigurationError,
    InvalidConfig,
    InvalidParameter,
    UnknownStrategy,
    UnknownPayoffModel,
    UnknownNetwork,
    InvalidPayoffSpec,
    MalformedNetwork,
    RuntimeInvariantError,
    EmptyPopulation,
    DisconnectedAgent,
    CheckpointError,
)

from .agent import (
    Agent,
    Behavior,
    BEHAVIORS,
    behavior_from_string,
)

from .network import (
    InteractionNetwork,
    CompleteNetwork,
    ExplicitNetwork,
    RingNetwork,
    GridNetwork,
    StarNetwork,
    SmallWorldNetwork,
    ScaleFreeNetwork,
    RandomNetwork,
    NETWORK_REGISTRY,
    create_network,
)

from .payoffs import (
    PayoffModel,
    DyadIndependentPayoff,
    DyadicPayoffTable,
    CorrelativeCoordination,
    ComplementaryCoordination,
    PRISONERS_DILEMMA,
    TWO_ROLE_DIVISION,
    PAYOFF_REGISTRY,
    create_payoff,
    describe_payoffs,
)

from .strategies import (
    LearningStrategy,
    SuccessBiased,
    FrequencyBiased,
    Contagion,
    STRATEGY_REGISTRY,
    create_strategy,
)

from .model import (
    ModelParameters,
    ModelConfig,
    AgentBasedModel,
    create_model,
)

from .trial import (
    TrialOutcome,
    TrialResult,
    Trial,
    PrevalenceThreshold,
    run_trial,
)

from .experiment import (
    ExperimentRecord,
    Checkpoint,
    ExperimentRunner,
    records_to_frame,
    summarize,
)

from .factory import GridModelFactory, config_from_params

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"
