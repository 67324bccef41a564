"""LLMEval UI entrypoint."""
from __future__ import annotations

import argparse
import logging
import os

from .config import AppConfig, RootConfig, load_root_config
from .engines.airllm_engine import AirLLMEngine
from .engines.base import GenerateParameters
from .evaluator import LLMEvaluator
from .metrics.device_stat import DeviceStat
from .registry import ModelRegistry
from .ui.app import build_app

logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LLMEval UI")
    parser.add_argument("--config", default="configs/llmeval.yaml")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--title")
    parser.add_argument("--model")
    parser.add_argument("--concurrency-limit", type=int)
    parser.add_argument("--sampling-interval-ms", type=int)
    parser.add_argument("--gpu-index", type=int)
    parser.add_argument("--log-level")
    parser.add_argument("--offline", action="store_true")
    parser.add_argument("--share", action="store_true")
    return parser.parse_args()


def apply_overrides(cfg: RootConfig, args: argparse.Namespace) -> RootConfig:
    if args.title:
        cfg.app.title = args.title
    if args.host:
        cfg.app.host = args.host
    if args.port is not None:
        cfg.app.port = args.port
    if args.model:
        cfg.default_model = args.model
    if args.concurrency_limit is not None:
        cfg.app.concurrency_limit = args.concurrency_limit
    if args.sampling_interval_ms is not None:
        cfg.app.sampling_interval_ms = args.sampling_interval_ms
    if args.gpu_index is not None:
        cfg.app.gpu_index = args.gpu_index
    if args.log_level:
        cfg.app.log_level = args.log_level
    if args.offline:
        cfg.app.offline_mode = True
    return cfg


def ensure_offline(cfg: AppConfig) -> None:
    if cfg.offline_mode:
        os.environ.setdefault("HF_HUB_OFFLINE", "1")
        os.environ.setdefault("TRANSFORMERS_OFFLINE", "1")


def configure_logging(cfg: AppConfig) -> None:
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_evaluator(cfg: RootConfig, engine: AirLLMEngine) -> LLMEvaluator:
    registry = ModelRegistry(cfg.models)
    gen = cfg.generation_defaults
    return LLMEvaluator(
        engine=engine,
        registry=registry,
        configuration=registry.resolve(cfg.default_model),
        parameters=GenerateParameters(temperature=gen.temperature, top_p=gen.top_p),
        max_tokens=gen.max_tokens,
        display_every_n_tokens=gen.display_every_n_tokens,
        cache_limit=gen.cache_limit_mb * 1024 * 1024,
    )


def main() -> None:
    args = parse_args()
    cfg = apply_overrides(load_root_config(args.config), args)
    configure_logging(cfg.app)
    ensure_offline(cfg.app)

    engine = AirLLMEngine(
        gpu_index=cfg.app.gpu_index,
        download_dir=cfg.app.download_dir,
        offline=cfg.app.offline_mode,
        max_context=cfg.generation_defaults.max_context,
        max_seq_len=cfg.generation_defaults.max_seq_len,
    )
    evaluator = build_evaluator(cfg, engine)
    device_stat = DeviceStat(engine.memory_snapshot, cfg.app.sampling_interval_ms)
    device_stat.start()
    logger.info("Starting %s with %s", cfg.app.title, evaluator.model_configuration.key)

    app = build_app(cfg, evaluator, device_stat)
    app.queue(default_concurrency_limit=cfg.app.concurrency_limit)
    try:
        app.launch(server_name=cfg.app.host, server_port=cfg.app.port, share=args.share)
    finally:
        device_stat.stop()


if __name__ == "__main__":
    main()
