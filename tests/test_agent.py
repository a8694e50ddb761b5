import pytest

from social_diffusion import Agent, Behavior, InvalidConfig, behavior_from_string


@pytest.mark.parametrize("text, expected", [
    ("legacy", Behavior.LEGACY),
    (" L ", Behavior.LEGACY),
    ("0", Behavior.LEGACY),
    ("Adaptive", Behavior.ADAPTIVE),
    ("a", Behavior.ADAPTIVE),
    (1, Behavior.ADAPTIVE),
    (Behavior.ADAPTIVE, Behavior.ADAPTIVE),
])
def test_behavior_from_string(text, expected):
    assert behavior_from_string(text) is expected


def test_behavior_from_string_unknown():
    with pytest.raises(InvalidConfig):
        behavior_from_string("maybe")


def test_agent_defaults_and_export():
    agent = Agent(id=3, neighbors=(1, 2))
    assert agent.behavior is Behavior.LEGACY
    assert not agent.is_adaptive
    assert agent.degree == 2
    assert agent.to_dict() == {"id": 3, "behavior": "legacy", "fitness": 0.0, "degree": 2}
