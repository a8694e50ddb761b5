"""
试验模块 - 驱动模型直到吸收态或超时
Trial Module - Drive a model until fixation or timeout
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from .agent import Behavior, BEHAVIORS
from .errors import InvalidConfig, RuntimeInvariantError, SocialDiffusionError
from .model import AgentBasedModel

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 1000

StopPredicate = Callable[[AgentBasedModel], bool]


class TrialOutcome(Enum):
    """试验状态 / Trial States"""
    RUNNING = "running"
    FIXATED_ADAPTIVE = "fixated_adaptive"
    FIXATED_LEGACY = "fixated_legacy"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TrialOutcome.RUNNING

    @property
    def is_fixation(self) -> bool:
        return self in (TrialOutcome.FIXATED_ADAPTIVE, TrialOutcome.FIXATED_LEGACY)


_FIXATION_OUTCOMES = {
    Behavior.ADAPTIVE: TrialOutcome.FIXATED_ADAPTIVE,
    Behavior.LEGACY: TrialOutcome.FIXATED_LEGACY,
}


class PrevalenceThreshold:
    """Stopping predicate: adaptive share has reached `threshold`."""

    def __init__(self, threshold: float):
        if not 0.0 <= threshold <= 1.0:
            raise InvalidConfig(f"threshold must lie in [0, 1], got {threshold}")
        self.threshold = threshold

    def __call__(self, model: AgentBasedModel) -> bool:
        return model.prevalence() >= self.threshold

    def __repr__(self):
        return f"PrevalenceThreshold({self.threshold})"


@dataclass
class TrialResult:
    """
    试验结果
    Trial Result

    Attributes:
        series: [(step, {behavior: count}), ...]，第 0 步为初始状态
        outcome: 终止状态
        steps: 终止时的步数
        error: 失败时的错误描述
    """
    series: List[Tuple[int, Dict[Behavior, int]]] = field(default_factory=list)
    outcome: TrialOutcome = TrialOutcome.RUNNING
    steps: int = 0
    n_agents: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is TrialOutcome.FIXATED_ADAPTIVE

    @property
    def final_counts(self) -> Dict[Behavior, int]:
        return dict(self.series[-1][1]) if self.series else {b: 0 for b in BEHAVIORS}

    def prevalence_series(self) -> List[float]:
        """Adaptive share at every recorded step."""
        if not self.n_agents:
            return []
        return [counts[Behavior.ADAPTIVE] / self.n_agents for _, counts in self.series]

    def to_rows(self) -> List[Dict]:
        """One row per step: step, one column per behavior, prevalence."""
        rows = []
        for step, counts in self.series:
            row = {"step": step}
            row.update({b.value: counts[b] for b in BEHAVIORS})
            row["prevalence"] = counts[Behavior.ADAPTIVE] / self.n_agents if self.n_agents else 0.0
            rows.append(row)
        return rows

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.to_rows())

    def to_dict(self) -> Dict:
        """导出为字典"""
        return {
            "outcome": self.outcome.value,
            "steps": self.steps,
            "n_agents": self.n_agents,
            "error": self.error,
            "series": self.to_rows(),
        }


class Trial:
    """
    单次试验
    Single Trial

    状态机 / state machine:
        RUNNING -> {RUNNING, FIXATED_ADAPTIVE, FIXATED_LEGACY, TIMED_OUT, STOPPED, FAILED}

    步内抛出的异常使试验进入 FAILED；非本库异常包装为 RuntimeInvariantError。
    An exception inside a step moves the trial to FAILED; foreign exceptions
    are re-raised as RuntimeInvariantError.
    """

    def __init__(self,
                 model: AgentBasedModel,
                 stop: Optional[StopPredicate] = None,
                 max_steps: int = DEFAULT_MAX_STEPS,
                 verbose: bool = False):
        """
        Args:
            model: 要驱动的模型（试验独占）
            stop: 额外的停止条件 stop(model) -> bool；固定态总会终止试验
            max_steps: 最大步数
            verbose: 是否打印进度
        """
        if max_steps < 1:
            raise InvalidConfig(f"max_steps must be at least 1, got {max_steps}")
        self.model = model
        self.stop = stop
        self.max_steps = max_steps
        self.verbose = verbose
        self.state = TrialOutcome.RUNNING
        self.result = TrialResult(n_agents=model.n_agents)
        self.result.series.append((model.step_count, model.counts()))

    def step(self) -> TrialOutcome:
        """Advance the model once and evaluate the transition rule."""
        if self.state.is_terminal:
            return self.state
        try:
            counts = self.model.advance_one_step()
        except SocialDiffusionError as e:
            self._fail(e)
            raise
        except Exception as e:
            self._fail(e)
            raise RuntimeInvariantError(
                f"Step {self.model.step_count + 1} failed: {type(e).__name__}: {e}"
            ) from e
        self.result.series.append((self.model.step_count, counts))
        self.result.steps = self.model.step_count

        fixed = self.model.fixated_behavior()
        if fixed is not None:
            self.state = _FIXATION_OUTCOMES[fixed]
        elif self.stop is not None and self.stop(self.model):
            self.state = TrialOutcome.STOPPED
        elif self.model.step_count >= self.max_steps:
            self.state = TrialOutcome.TIMED_OUT
        return self.state

    def _fail(self, error: Exception):
        self.state = TrialOutcome.FAILED
        self.result.outcome = TrialOutcome.FAILED
        self.result.error = f"{type(error).__name__}: {error}"
        logger.debug("Trial failed at step %d: %s", self.model.step_count + 1, self.result.error)

    def run(self) -> TrialResult:
        """
        运行直到终止
        Run until a terminal state is reached

        Returns:
            TrialResult
        """
        while not self.state.is_terminal:
            self.step()
            if self.verbose and self.model.step_count % 100 == 0:
                print(f"Step {self.model.step_count:5d} | "
                      f"Prevalence: {self.model.prevalence():.1%}")

        self.result.outcome = self.state
        logger.debug("Trial finished: %s after %d steps", self.state.value, self.result.steps)
        if self.verbose:
            print(f"Trial finished: {self.state.value} after {self.result.steps} steps")
        return self.result


def run_trial(model: AgentBasedModel,
              stop: Optional[StopPredicate] = None,
              max_steps: int = DEFAULT_MAX_STEPS) -> TrialResult:
    """Run one Trial over `model` and return its result."""
    return Trial(model, stop=stop, max_steps=max_steps).run()
