"""Configuration loading and dataclasses."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import yaml


@dataclass
class AppConfig:
    title: str = "LLMEval"
    host: str = "127.0.0.1"
    port: int = 7860
    concurrency_limit: int = 1
    sampling_interval_ms: int = 2000
    offline_mode: bool = False
    gpu_index: int | None = 0
    download_dir: str | None = None
    log_level: str = "INFO"


@dataclass
class GenerationDefaults:
    temperature: float = 0.6
    top_p: float = 1.0
    max_tokens: int = 4000
    # tokens between output refreshes
    display_every_n_tokens: int = 4
    max_context: int = 4096
    max_seq_len: int = 8192
    cache_limit_mb: int = 1024


@dataclass
class ModelSpec:
    key: str
    display_name: str
    repo_id: str
    compression: str | None = None
    default_prompt: str = "why is the sky blue?"
    layer_cache_dir: str | None = None

    @property
    def name(self) -> str:
        return self.repo_id.rstrip("/\\").split("/")[-1]


@dataclass
class RootConfig:
    app: AppConfig
    generation_defaults: GenerationDefaults
    models: list[ModelSpec] = field(default_factory=list)
    default_model: str | None = None


def _get(data: dict[str, Any], key: str, default: Any) -> Any:
    return data.get(key, default) if isinstance(data, dict) else default


def load_config(path: str) -> RootConfig:
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    app_raw = _get(raw, "app", {})
    gen_raw = _get(raw, "generation_defaults", {})
    models_raw = _get(raw, "models", [])

    app = AppConfig(
        title=_get(app_raw, "title", AppConfig.title),
        host=_get(app_raw, "host", AppConfig.host),
        port=int(_get(app_raw, "port", AppConfig.port)),
        concurrency_limit=int(_get(app_raw, "concurrency_limit", AppConfig.concurrency_limit)),
        sampling_interval_ms=int(_get(app_raw, "sampling_interval_ms", AppConfig.sampling_interval_ms)),
        offline_mode=bool(_get(app_raw, "offline_mode", AppConfig.offline_mode)),
        gpu_index=_get(app_raw, "gpu_index", AppConfig.gpu_index),
        download_dir=_get(app_raw, "download_dir", AppConfig.download_dir),
        log_level=str(_get(app_raw, "log_level", AppConfig.log_level)),
    )

    gen = GenerationDefaults(
        temperature=float(_get(gen_raw, "temperature", GenerationDefaults.temperature)),
        top_p=float(_get(gen_raw, "top_p", GenerationDefaults.top_p)),
        max_tokens=int(_get(gen_raw, "max_tokens", GenerationDefaults.max_tokens)),
        display_every_n_tokens=max(
            1, int(_get(gen_raw, "display_every_n_tokens", GenerationDefaults.display_every_n_tokens))
        ),
        max_context=int(_get(gen_raw, "max_context", GenerationDefaults.max_context)),
        max_seq_len=int(_get(gen_raw, "max_seq_len", GenerationDefaults.max_seq_len)),
        cache_limit_mb=int(_get(gen_raw, "cache_limit_mb", GenerationDefaults.cache_limit_mb)),
    )

    models: list[ModelSpec] = []
    if isinstance(models_raw, list):
        for item in models_raw:
            models.append(
                ModelSpec(
                    key=_get(item, "key", ""),
                    display_name=_get(item, "display_name", "") or _get(item, "key", ""),
                    repo_id=_get(item, "repo_id", ""),
                    compression=_get(item, "compression", None),
                    default_prompt=_get(item, "default_prompt", "why is the sky blue?"),
                    layer_cache_dir=_get(item, "layer_cache_dir", None),
                )
            )

    return RootConfig(
        app=app,
        generation_defaults=gen,
        models=models,
        default_model=_get(raw, "default_model", None),
    )


def load_root_config(path: str) -> RootConfig:
    if not os.path.exists(path):
        return RootConfig(app=AppConfig(), generation_defaults=GenerationDefaults())
    return load_config(path)
