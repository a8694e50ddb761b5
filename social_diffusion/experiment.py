"""
批量实验模块 - 参数网格扫描、检查点与汇总
Batch Experiment Module - Parameter-grid sweeps, checkpoints and summaries

目录 / contents:
    ExperimentRecord  每个（参数组合 × 重复）一行
    Checkpoint        可恢复的记录文件（原子写入，保留上一次有效版本）
    ExperimentRunner  并行执行试验，单写者汇总
    summarize         按参数分组汇总成功率与固定时间
"""
import concurrent.futures
import itertools
import json
import logging
import os
import shutil
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

from .agent import BEHAVIORS
from .errors import CheckpointError, InvalidConfig
from .model import AgentBasedModel
from .trial import DEFAULT_MAX_STEPS, StopPredicate, Trial, TrialOutcome

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1

ModelFactory = Callable[[Dict[str, Any], np.random.Generator], AgentBasedModel]
RecordKey = Tuple[str, int]

RESERVED_COLUMNS = {
    "combination_index", "replicate", "seed", "outcome", "steps", "success", "error",
    "count_legacy", "count_adaptive",
}
_SCALARS = (str, int, float, bool, type(None))


def combination_key(params: Mapping[str, Any]) -> str:
    """Canonical text key for one parameter combination."""
    return json.dumps(dict(params), sort_keys=True)


@dataclass
class ExperimentRecord:
    """
    实验记录
    Experiment Record - one row per (parameter combination, replicate)
    """
    combination_index: int
    replicate: int
    params: Dict[str, Any]
    outcome: str
    steps: int
    final_counts: Dict[str, int] = field(default_factory=dict)
    seed: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == TrialOutcome.FIXATED_ADAPTIVE.value

    @property
    def key(self) -> RecordKey:
        return combination_key(self.params), self.replicate

    def to_dict(self) -> Dict:
        return {
            "combination_index": self.combination_index,
            "replicate": self.replicate,
            "params": dict(self.params),
            "outcome": self.outcome,
            "steps": self.steps,
            "final_counts": dict(self.final_counts),
            "seed": self.seed,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ExperimentRecord":
        return cls(
            combination_index=int(data["combination_index"]),
            replicate=int(data["replicate"]),
            params=dict(data["params"]),
            outcome=str(data["outcome"]),
            steps=int(data["steps"]),
            final_counts={k: int(v) for k, v in data.get("final_counts", {}).items()},
            seed=data.get("seed"),
            error=data.get("error"),
        )


# ============================================================
# 检查点 / Checkpoint
# ============================================================

class Checkpoint:
    """
    实验检查点
    Experiment Checkpoint

    以 (参数组合, 重复编号) 为键的 JSON 记录集；重复追加同一键不会产生重复记录。
    A JSON record set keyed by (parameter combination, replicate); appending
    a key that is already present is a no-op.

    用法 / usage:
        with Checkpoint("sweep.json") as ckpt:
            ExperimentRunner(..., checkpoint=ckpt).run()
    """

    ON_CORRUPT = ("raise", "fresh", "backup")

    def __init__(self, path: str, on_corrupt: str = "raise"):
        """
        Args:
            path: 检查点文件路径
            on_corrupt: 文件损坏时的处理方式
                raise  - 抛出 CheckpointError
                fresh  - 忽略旧文件，从空记录开始
                backup - 从上一次有效写入（<path>.bak）恢复
        """
        if on_corrupt not in self.ON_CORRUPT:
            raise InvalidConfig(f"on_corrupt must be one of {list(self.ON_CORRUPT)}, got {on_corrupt!r}")
        self.path = str(path)
        self.backup_path = self.path + ".bak"
        self.on_corrupt = on_corrupt
        self._records: Dict[RecordKey, ExperimentRecord] = {}
        self._lock = threading.Lock()
        self._open = False
        # 主文件是否是一次有效写入；只有有效文件才会被备份到 .bak
        self._path_valid = False

    # ---------- 生命周期 / Lifecycle ----------

    def open(self) -> "Checkpoint":
        self._records = self._load()
        self._open = True
        logger.info("Opened checkpoint %s with %d records", self.path, len(self._records))
        return self

    def close(self):
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "Checkpoint":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ---------- 读取 / Reading ----------

    def _read(self, path: str) -> Dict[RecordKey, ExperimentRecord]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise CheckpointError(f"Cannot read checkpoint {path}: {e}", path) from e
        except json.JSONDecodeError as e:
            raise CheckpointError(f"Checkpoint {path} is corrupt: {e}", path) from e
        try:
            if data.get("version") != CHECKPOINT_VERSION:
                raise CheckpointError(f"Unsupported checkpoint version in {path}: {data.get('version')!r}", path)
            records = [ExperimentRecord.from_dict(r) for r in data["records"]]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CheckpointError(f"Checkpoint {path} is malformed: {e}", path) from e
        return {r.key: r for r in records}

    def _load(self) -> Dict[RecordKey, ExperimentRecord]:
        self._path_valid = False
        if not os.path.exists(self.path):
            return {}
        try:
            records = self._read(self.path)
        except CheckpointError:
            if self.on_corrupt == "fresh":
                logger.warning("Checkpoint %s is unreadable; starting fresh", self.path)
                return {}
            if self.on_corrupt == "backup" and os.path.exists(self.backup_path):
                logger.warning("Checkpoint %s is unreadable; restoring %s", self.path, self.backup_path)
                return self._read(self.backup_path)
            raise
        self._path_valid = True
        return records

    @property
    def records(self) -> List[ExperimentRecord]:
        return list(self._records.values())

    def keys(self) -> Set[RecordKey]:
        return set(self._records)

    def __contains__(self, key: RecordKey) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ---------- 写入 / Writing ----------

    def append(self, records: Iterable[ExperimentRecord]) -> int:
        """
        追加记录并写盘
        Append records and persist; returns how many were new.
        """
        if not self._open:
            raise CheckpointError(f"Checkpoint {self.path} is not open", self.path)
        with self._lock:
            added = 0
            for record in records:
                if record.key not in self._records:
                    self._records[record.key] = record
                    added += 1
            if added:
                self._write()
        return added

    def _write(self):
        data = {
            "version": CHECKPOINT_VERSION,
            "records": [r.to_dict() for r in self._records.values()],
        }
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = self.path + ".tmp"
        try:
            os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            if self._path_valid and os.path.exists(self.path):
                shutil.copyfile(self.path, self.backup_path)
            os.replace(tmp_path, self.path)
            self._path_valid = True
        except OSError as e:
            raise CheckpointError(f"Cannot write checkpoint {self.path}: {e}", self.path) from e
        logger.debug("Checkpoint %s: %d records written", self.path, len(self._records))


# ============================================================
# 单次重复 / Single Replicate
# ============================================================

def replicate_rng(seed: int, combination_index: int, replicate: int) -> np.random.Generator:
    """Private random stream for one (combination, replicate)."""
    sequence = np.random.SeedSequence(seed, spawn_key=(combination_index, replicate))
    return np.random.default_rng(sequence)


def run_replicate(model_factory: ModelFactory,
                  params: Dict[str, Any],
                  combination_index: int,
                  replicate: int,
                  seed: int,
                  stop: Optional[StopPredicate] = None,
                  max_steps: int = DEFAULT_MAX_STEPS) -> ExperimentRecord:
    """
    运行一次重复；任何异常都记为 FAILED，而不是中断整个扫描
    Run one replicate; any exception becomes a FAILED record
    """
    rng = replicate_rng(seed, combination_index, replicate)
    try:
        model = model_factory(dict(params), rng)
        result = Trial(model, stop=stop, max_steps=max_steps).run()
    except Exception as e:
        logger.warning("Replicate %d of combination %d failed: %s: %s",
                       replicate, combination_index, type(e).__name__, e)
        return ExperimentRecord(
            combination_index=combination_index,
            replicate=replicate,
            params=dict(params),
            outcome=TrialOutcome.FAILED.value,
            steps=0,
            seed=seed,
            error=f"{type(e).__name__}: {e}",
        )
    return ExperimentRecord(
        combination_index=combination_index,
        replicate=replicate,
        params=dict(params),
        outcome=result.outcome.value,
        steps=result.steps,
        final_counts={b.value: c for b, c in result.final_counts.items()},
        seed=seed,
    )


def _run_task(task: Tuple) -> ExperimentRecord:
    return run_replicate(*task)


# ============================================================
# 实验执行器 / Experiment Runner
# ============================================================

class ExperimentRunner:
    """
    批量实验执行器
    Batch Experiment Runner

    - 参数网格的笛卡尔积 × 重复次数
    - 每次重复拥有由 (seed, 组合编号, 重复编号) 决定的随机数流
    - 多进程计算，主进程单写者汇总与写检查点
    - 从检查点恢复时跳过已完成的 (组合, 重复)
    """

    def __init__(self,
                 model_factory: ModelFactory,
                 grid: Mapping[str, Sequence[Any]],
                 n_replicates: int = 10,
                 stop: Optional[StopPredicate] = None,
                 max_steps: int = DEFAULT_MAX_STEPS,
                 seed: int = 0,
                 n_workers: int = 1,
                 checkpoint: Optional[Checkpoint] = None,
                 checkpoint_every: int = 10):
        """
        Args:
            model_factory: factory(params, rng) -> AgentBasedModel；并行时必须可 pickle
            grid: 参数网格 {名称: 取值列表}（不会被修改）
            n_replicates: 每个组合的重复次数
            stop: 额外停止条件
            max_steps: 每次试验的最大步数
            seed: 全局随机种子
            n_workers: 并行进程数（1 = 串行）
            checkpoint: 检查点
            checkpoint_every: 每完成多少条记录写一次检查点
        """
        if n_replicates < 1:
            raise InvalidConfig(f"n_replicates must be at least 1, got {n_replicates}")
        if max_steps < 1:
            raise InvalidConfig(f"max_steps must be at least 1, got {max_steps}")
        self.grid: Dict[str, List[Any]] = {}
        for name, values in grid.items():
            values = list(values)
            if not values:
                raise InvalidConfig(f"No values provided for grid dimension '{name}'")
            if name in RESERVED_COLUMNS:
                raise InvalidConfig(f"Grid dimension name '{name}' is reserved")
            for v in values:
                if not isinstance(v, _SCALARS):
                    raise InvalidConfig(
                        f"Grid values must be JSON scalars; '{name}' has {type(v).__name__} value {v!r}"
                    )
            self.grid[name] = values
        self.model_factory = model_factory
        self.n_replicates = n_replicates
        self.stop = stop
        self.max_steps = max_steps
        self.seed = int(seed)
        self.n_workers = max(1, int(n_workers))
        self.checkpoint = checkpoint
        self.checkpoint_every = max(1, int(checkpoint_every))
        self._pending: List[ExperimentRecord] = []

    def combinations(self) -> List[Dict[str, Any]]:
        """All parameter combinations, in grid order."""
        names = list(self.grid)
        return [dict(zip(names, values)) for values in itertools.product(*self.grid.values())]

    def _tasks(self) -> List[Tuple]:
        tasks = []
        for combination_index, params in enumerate(self.combinations()):
            for replicate in range(self.n_replicates):
                tasks.append((self.model_factory, params, combination_index, replicate,
                              self.seed, self.stop, self.max_steps))
        return tasks

    def run(self, progress: bool = False) -> List[ExperimentRecord]:
        """
        运行全部未完成的试验
        Run every trial not already present in the checkpoint

        Returns:
            本次扫描的全部记录，按 (组合编号, 重复编号) 排序
        """
        tasks = self._tasks()
        wanted = {(combination_key(t[1]), t[3]) for t in tasks}
        opened_here = False
        if self.checkpoint is not None and not self.checkpoint.is_open:
            self.checkpoint.open()
            opened_here = True

        try:
            done = self.checkpoint.keys() if self.checkpoint is not None else set()
            pending = [t for t in tasks if (combination_key(t[1]), t[3]) not in done]
            logger.info("Sweep: %d combinations x %d replicates, %d to run, %d from checkpoint",
                        len(tasks) // self.n_replicates, self.n_replicates,
                        len(pending), len(tasks) - len(pending))

            collected: List[ExperimentRecord] = []
            pbar = tqdm(total=len(pending), desc="Running trials", disable=not progress)
            try:
                if self.n_workers > 1 and len(pending) > 1:
                    with concurrent.futures.ProcessPoolExecutor(max_workers=self.n_workers) as executor:
                        futures = [executor.submit(_run_task, t) for t in pending]
                        for future in concurrent.futures.as_completed(futures):
                            self._collect(future.result(), collected)
                            pbar.update(1)
                else:
                    for task in pending:
                        self._collect(_run_task(task), collected)
                        pbar.update(1)
            finally:
                pbar.close()
                self._flush()

            if self.checkpoint is not None:
                records = [r for r in self.checkpoint.records if r.key in wanted]
            else:
                records = collected
        finally:
            if opened_here:
                self.checkpoint.close()

        records.sort(key=lambda r: (r.combination_index, r.replicate))
        failed = sum(1 for r in records if r.outcome == TrialOutcome.FAILED.value)
        if failed:
            logger.warning("%d of %d trials failed", failed, len(records))
        return records

    def _collect(self, record: ExperimentRecord, collected: List[ExperimentRecord]):
        collected.append(record)
        if self.checkpoint is None:
            return
        self._pending.append(record)
        if len(self._pending) >= self.checkpoint_every:
            self._flush()

    def _flush(self):
        if self.checkpoint is None or not self._pending:
            return
        self.checkpoint.append(self._pending)
        self._pending = []


# ============================================================
# 汇总 / Aggregation
# ============================================================

def records_to_frame(records: Iterable[ExperimentRecord]) -> pd.DataFrame:
    """One row per record: parameters flattened into columns."""
    rows = []
    for r in records:
        row = dict(r.params)
        row.update({
            "combination_index": r.combination_index,
            "replicate": r.replicate,
            "seed": r.seed,
            "outcome": r.outcome,
            "steps": r.steps,
            "success": r.success,
            "error": r.error,
        })
        for b in BEHAVIORS:
            row[f"count_{b.value}"] = r.final_counts.get(b.value, 0)
        rows.append(row)
    return pd.DataFrame(rows)


def summarize(records: Union[Iterable[ExperimentRecord], pd.DataFrame],
              group_by: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    按参数列分组汇总
    Group by parameter columns and aggregate

    Columns: group_by..., n_replicates, success_rate, mean_time_to_fixation,
    mean_time_to_success, timeout_rate, failure_rate
    """
    df = records if isinstance(records, pd.DataFrame) else records_to_frame(records)
    measures = ["n_replicates", "success_rate", "mean_time_to_fixation",
                "mean_time_to_success", "timeout_rate", "failure_rate"]
    if group_by is None:
        group_by = [c for c in df.columns
                    if c not in RESERVED_COLUMNS and not c.startswith("count_")]
    group_by = list(group_by)
    if df.empty:
        return pd.DataFrame(columns=group_by + measures)
    missing = [c for c in group_by if c not in df.columns]
    if missing:
        raise InvalidConfig(f"Unknown group_by columns: {missing}")

    df = df.copy()
    fixation = {TrialOutcome.FIXATED_ADAPTIVE.value, TrialOutcome.FIXATED_LEGACY.value}
    df["success"] = df["outcome"] == TrialOutcome.FIXATED_ADAPTIVE.value
    df["_fixation_steps"] = df["steps"].where(df["outcome"].isin(fixation))
    df["_success_steps"] = df["steps"].where(df["success"])
    df["_timed_out"] = df["outcome"] == TrialOutcome.TIMED_OUT.value
    df["_failed"] = df["outcome"] == TrialOutcome.FAILED.value

    aggregations = dict(
        n_replicates=("outcome", "size"),
        success_rate=("success", "mean"),
        mean_time_to_fixation=("_fixation_steps", "mean"),
        mean_time_to_success=("_success_steps", "mean"),
        timeout_rate=("_timed_out", "mean"),
        failure_rate=("_failed", "mean"),
    )
    if not group_by:
        df["_all"] = 0
        return df.groupby("_all").agg(**aggregations).reset_index(drop=True)
    return df.groupby(group_by, dropna=False, sort=True).agg(**aggregations).reset_index()
