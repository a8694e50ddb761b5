"""
Shared pytest fixtures for social_diffusion tests.
"""

import logging

import pytest

from social_diffusion import (
    AgentBasedModel,
    DyadIndependentPayoff,
    ExplicitNetwork,
    ModelParameters,
    SuccessBiased,
)


@pytest.fixture(autouse=True)
def reset_social_diffusion_logging():
    """Reset logging state before each test.

    Removes every handler except the library NullHandler and resets the
    level, so one test's logging configuration never leaks into another.
    """
    logger = logging.getLogger("social_diffusion")

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if not isinstance(handler, logging.NullHandler):
            handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.NOTSET)

    yield

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        if not isinstance(handler, logging.NullHandler):
            handler.close()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def clear_sd_environment(monkeypatch):
    """Keep SD_* overrides from the calling shell out of the tests."""
    for name in ("SD_REPLICATES", "SD_MAX_STEPS", "SD_SEED", "SD_WORKERS",
                 "SD_OUTPUT_DIR", "SD_LOGGING", "SD_LOG_FILE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def four_agent_network() -> ExplicitNetwork:
    """Agents 1-4 with edges 1-2, 1-3, 1-4, 3-2 (agent 1 sees 2, 3 and 4)."""
    return ExplicitNetwork([1, 2, 3, 4], [(1, 2), (1, 3), (1, 4), (3, 2)])


@pytest.fixture
def four_agent_model(four_agent_network):
    """Success-biased model on the four-agent network; agent 2 is adaptive.

    Legacy fitness 1, adaptive fitness 4.
    """
    params = ModelParameters(
        learning_strategy=SuccessBiased(),
        payoff_model=DyadIndependentPayoff(legacy_fitness=1.0, adaptive_fitness=4.0),
    )
    return AgentBasedModel(four_agent_network, params, initial_adopters=[2], seed=0)
