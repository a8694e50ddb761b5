"""
行为扩散批量实验脚本
Behavior Diffusion Batch Experiments

实验列表 (使用 python research.py <exp_name> 运行):
  contagion      - 传染模型: 采纳率 × 放弃率
  learning       - 学习策略对比: 成功偏好 / 频率偏好 / 传染 × 适应性行为适应度
  cooperation    - 相关协调（合作困境）在不同网络上的扩散
  complementary  - 互补协调（角色分工）× 初始采纳比例

长时间扫描可以用 --checkpoint 指定检查点文件，中断后以相同参数重新运行即可续跑。
Long sweeps resume from --checkpoint: rerun with the same arguments.
"""

import argparse
import json
import os
import sys
from datetime import datetime
from typing import Dict, List, Optional

from social_diffusion import (
    Checkpoint,
    CheckpointError,
    ExperimentRunner,
    GridModelFactory,
    summarize,
)
from social_diffusion.config import load_config
from social_diffusion.logging_config import configure_from_env, enable_console_logging


# ============================================================
# 结果保存管理
# ============================================================

class ResultManager:
    """
    实验结果管理器

    目录结构:
    results/{timestamp}/
    ├── config.json                 # 实验配置
    ├── {exp}_checkpoint.json       # 检查点（未指定 --checkpoint 时）
    └── {exp}_summary.json          # 分组汇总
    """

    def __init__(self, base_dir: str = "results"):
        self.base_dir = base_dir
        self.timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.root_dir = os.path.join(base_dir, self.timestamp)
        os.makedirs(self.root_dir, exist_ok=True)
        print(f"Results dir: {self.root_dir}")

    def path(self, filename: str) -> str:
        return os.path.join(self.root_dir, filename)

    def save_json(self, filename: str, data) -> str:
        filepath = self.path(filename)
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
        print(f"  Saved: {filepath}")
        return filepath


# ============================================================
# 实验定义
# ============================================================

class BaseExperiment:
    """实验基类: 子类给出默认参数、参数网格和分组列"""

    name = "base"
    title = "Base Experiment"
    defaults: Dict = {}
    grid: Dict[str, List] = {}
    group_by: Optional[List[str]] = None

    def __init__(self, result_manager: ResultManager, config: Dict, checkpoint_path: Optional[str] = None,
                 on_corrupt: str = "raise", progress: bool = True):
        self.result_manager = result_manager
        self.config = config
        self.checkpoint_path = checkpoint_path or result_manager.path(f"{self.name}_checkpoint.json")
        self.on_corrupt = on_corrupt
        self.progress = progress

    def make_factory(self) -> GridModelFactory:
        defaults = {"n_agents": self.config["n_agents"]}
        defaults.update(self.defaults)
        return GridModelFactory(**defaults)

    def run(self) -> Dict:
        print_separator(self.title)
        print(f"Grid: {self.grid}")
        print(f"Replicates: {self.config['n_replicates']} | Max steps: {self.config['max_steps']} | "
              f"Workers: {self.config['n_workers']} | Seed: {self.config['seed']}")

        with Checkpoint(self.checkpoint_path, on_corrupt=self.on_corrupt) as checkpoint:
            if len(checkpoint):
                print(f"Resuming: {len(checkpoint)} records already in {self.checkpoint_path}")
            runner = ExperimentRunner(
                self.make_factory(),
                self.grid,
                n_replicates=self.config["n_replicates"],
                max_steps=self.config["max_steps"],
                seed=self.config["seed"],
                n_workers=self.config["n_workers"],
                checkpoint=checkpoint,
                checkpoint_every=self.config["checkpoint_every"],
            )
            records = runner.run(progress=self.progress)

        summary = summarize(records, self.group_by or list(self.grid))
        self._print_summary(summary)
        self.result_manager.save_json(f"{self.name}_summary.json", summary.to_dict(orient="records"))

        failed = [r for r in records if r.error]
        for r in failed[:5]:
            print(f"  Failed: combination {r.combination_index} replicate {r.replicate}: {r.error}")
        return {
            "summary": summary.to_dict(orient="records"),
            "n_records": len(records),
            "n_failed": len(failed),
        }

    def _print_summary(self, summary):
        print()
        print(summary.to_string(index=False, float_format=lambda v: f"{v:.3f}"))


class ContagionExperiment(BaseExperiment):
    name = "contagion"
    title = "Contagion: adoption rate x drop rate"
    defaults = {
        "network": "small_world",
        "network.k": 6,
        "network.p": 0.1,
        "learning_strategy": "contagion",
        "initial_prevalence": 0.05,
    }
    grid = {
        "adoption_rate": [0.2, 0.4, 0.6, 0.8],
        "drop_rate": [0.0, 0.05, 0.1],
    }


class LearningExperiment(BaseExperiment):
    name = "learning"
    title = "Learning strategies x adaptive fitness"
    defaults = {
        "network": "small_world",
        "network.k": 6,
        "network.p": 0.1,
        "drop_rate": 0.02,
        "initial_prevalence": 0.1,
        "payoff": "dyad_independent",
        "payoff.legacy_fitness": 1.0,
    }
    grid = {
        "learning_strategy": ["success_biased", "frequency_biased", "contagion"],
        "payoff.adaptive_fitness": [1.0, 1.5, 2.0],
    }


class CooperationExperiment(BaseExperiment):
    name = "cooperation"
    title = "Correlative coordination (cooperation) across networks"
    defaults = {
        "learning_strategy": "success_biased",
        "payoff": "correlative",
        "initial_prevalence": 0.5,
        "drop_rate": 0.0,
    }
    grid = {
        "network": ["complete", "ring", "small_world", "scale_free"],
        "payoff.temptation": [3.5, 5.0],
    }


class ComplementaryExperiment(BaseExperiment):
    name = "complementary"
    title = "Complementary coordination (role division)"
    defaults = {
        "network": "random",
        "network.p": 0.1,
        "learning_strategy": "success_biased",
        "payoff": "complementary",
        "payoff.high": 2.0,
        "payoff.low": 0.5,
    }
    grid = {
        "initial_prevalence": [0.1, 0.3, 0.5],
        "interaction": ["random_partner", "all_neighbors"],
    }


EXPERIMENTS = {
    "contagion": ContagionExperiment,
    "learning": LearningExperiment,
    "cooperation": CooperationExperiment,
    "complementary": ComplementaryExperiment,
}


def print_separator(title: str = "", char: str = "=", width: int = 60):
    if title:
        padding = max(2, (width - len(title) - 2) // 2)
        print(f"\n{char * padding} {title} {char * padding}")
    else:
        print(char * width)


# ============================================================
# 命令行
# ============================================================

def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Behavior diffusion parameter sweeps")
    p.add_argument("experiment", nargs="?", default="all",
                   choices=list(EXPERIMENTS) + ["all"], help="experiment to run")
    p.add_argument("--config", type=str, default=None, help="JSON config file")
    p.add_argument("--replicates", type=int, default=None)
    p.add_argument("--max-steps", type=int, default=None)
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--workers", type=int, default=None)
    p.add_argument("--n-agents", type=int, default=None)
    p.add_argument("--checkpoint", type=str, default=None,
                   help="checkpoint file (single experiment only); rerun to resume")
    p.add_argument("--on-corrupt", choices=list(Checkpoint.ON_CORRUPT), default="raise",
                   help="what to do when the checkpoint is unreadable")
    p.add_argument("--log-level", type=str, default=None)
    p.add_argument("--no-progress", action="store_true")
    return p


def main(argv=None):
    args = build_arg_parser().parse_args(argv)

    config = load_config(args.config)
    for key, value in [("n_replicates", args.replicates), ("max_steps", args.max_steps),
                       ("seed", args.seed), ("n_workers", args.workers), ("n_agents", args.n_agents),
                       ("log_level", args.log_level)]:
        if value is not None:
            config[key] = value

    if os.environ.get("SD_LOGGING") or os.environ.get("SD_LOG_FILE"):
        configure_from_env()
    else:
        enable_console_logging(level=config["log_level"])

    exp_to_run = list(EXPERIMENTS) if args.experiment == "all" else [args.experiment]
    if args.checkpoint and len(exp_to_run) > 1:
        print("--checkpoint needs a single experiment")
        return 2

    result_manager = ResultManager(config["output_dir"])
    result_manager.save_json("config.json", {"experiments": exp_to_run, **config})

    all_results = {}
    for exp_name in exp_to_run:
        exp = EXPERIMENTS[exp_name](
            result_manager,
            config,
            checkpoint_path=args.checkpoint,
            on_corrupt=args.on_corrupt,
            progress=not args.no_progress,
        )
        try:
            all_results[exp_name] = exp.run()
        except CheckpointError as e:
            print(f"Checkpoint error: {e}")
            print("Rerun with --on-corrupt backup to restore the last valid write, "
                  "or --on-corrupt fresh to start over.")
            return 1

    result_manager.save_json("summary.json", all_results)
    print_separator("Experiments complete")
    print(f"Results dir: {result_manager.root_dir}")
    print(f"Total experiments: {len(all_results)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
