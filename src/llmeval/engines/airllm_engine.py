"""AirLLM engine implementation."""
from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path

import psutil
import torch
from airllm import AutoModel
from huggingface_hub import snapshot_download
from safetensors import safe_open
from transformers import StoppingCriteriaList

from ..config import ModelSpec
from ..prompts import ChatTemplateProcessor
from .base import (
    GenerateParameters,
    GenerateResult,
    LMInput,
    MemorySnapshot,
    ModelContainer,
    ModelContext,
    ProgressCallback,
    TokenCallback,
)
from .streaming import TokenCallbackCriteria, progress_bar_class

logger = logging.getLogger(__name__)


def _ensure_safetensors_index(model_path: str) -> None:
    index_path = Path(model_path) / "model.safetensors.index.json"
    if index_path.exists():
        return
    st_path = Path(model_path) / "model.safetensors"
    if not st_path.exists():
        return
    weight_map: dict[str, str] = {}
    with safe_open(str(st_path), framework="pt") as f:
        for key in f.keys():
            weight_map[key] = st_path.name
    data = {
        "metadata": {"total_size": os.path.getsize(st_path)},
        "weight_map": weight_map,
    }
    with open(index_path, "w", encoding="utf-8") as handle:
        json.dump(data, handle)


class AirLLMEngine:
    def __init__(
        self,
        gpu_index: int | None = 0,
        download_dir: str | None = None,
        offline: bool = False,
        max_context: int = 4096,
        max_seq_len: int = 8192,
    ) -> None:
        if torch.cuda.is_available() and gpu_index is not None and gpu_index >= 0:
            self._device = torch.device(f"cuda:{gpu_index}")
        else:
            self._device = torch.device("cpu")
        self._download_dir = download_dir
        self._offline = offline
        self._max_context = max_context
        self._max_seq_len = max_seq_len
        self._cache_limit = 0
        self._cpu_peak = 0

    def _resolve_path(self, configuration: ModelSpec, progress: ProgressCallback) -> str:
        if os.path.isdir(configuration.repo_id):
            progress(1.0)
            return configuration.repo_id
        path = snapshot_download(
            configuration.repo_id,
            cache_dir=self._download_dir,
            local_files_only=self._offline,
            tqdm_class=progress_bar_class(progress),
        )
        progress(1.0)
        return path

    def load_container(self, configuration: ModelSpec, progress: ProgressCallback) -> ModelContainer:
        logger.info("Loading %s (compression=%s)", configuration.repo_id, configuration.compression)
        model_path = self._resolve_path(configuration, progress)
        _ensure_safetensors_index(model_path)

        kwargs = {
            "compression": configuration.compression,
            "max_seq_len": self._max_seq_len,
            "device": str(self._device),
        }
        if configuration.layer_cache_dir:
            cache_dir = configuration.layer_cache_dir.replace("{model_key}", configuration.key)
            os.makedirs(cache_dir, exist_ok=True)
            kwargs["layer_shards_saving_path"] = cache_dir

        model = AutoModel.from_pretrained(model_path, **kwargs)
        tokenizer = getattr(model, "tokenizer", None)
        if tokenizer is None:
            raise RuntimeError("Model tokenizer not available")

        context = ModelContext(
            model=model,
            tokenizer=tokenizer,
            processor=ChatTemplateProcessor(tokenizer, self._max_context),
        )
        return ModelContainer(context=context, configuration=configuration, path=model_path)

    def generate(
        self,
        lm_input: LMInput,
        parameters: GenerateParameters,
        context: ModelContext,
        did_generate: TokenCallback,
    ) -> GenerateResult:
        input_ids = torch.tensor([lm_input.tokens], dtype=torch.long, device=self._device)
        prompt_tokens = int(input_ids.shape[-1])
        max_new_tokens = parameters.max_tokens or max(1, self._max_seq_len - prompt_tokens)
        criteria = TokenCallbackCriteria(prompt_tokens, did_generate)

        if self._device.type == "cuda":
            torch.cuda.synchronize(self._device)
        start = time.perf_counter()
        try:
            output_ids = context.model.generate(
                input_ids=input_ids,
                attention_mask=torch.ones_like(input_ids),
                max_new_tokens=max_new_tokens,
                temperature=parameters.temperature,
                top_p=parameters.top_p,
                do_sample=parameters.temperature > 0,
                use_cache=False,
                stopping_criteria=StoppingCriteriaList([criteria]),
            )
            if self._device.type == "cuda":
                torch.cuda.synchronize(self._device)
        finally:
            self._trim_cache()
        end = time.perf_counter()
        decode_start = criteria.started_at or end

        if isinstance(output_ids, (list, tuple)):
            if len(output_ids) == 0:
                raise RuntimeError("Empty output from model")
            output_ids = output_ids[0]
        if output_ids.ndim == 1:
            output_ids = output_ids.unsqueeze(0)

        tokens = output_ids[0][prompt_tokens:].tolist()
        return GenerateResult(
            output=context.decode(tokens),
            tokens=tokens,
            prompt_tokens=prompt_tokens,
            decode_time_s=end - decode_start,
            prompt_time_s=decode_start - start,
        )

    def seed(self, value: int) -> None:
        torch.manual_seed(value)
        if torch.cuda.is_available():
            torch.cuda.manual_seed_all(value)

    def set_cache_limit(self, limit: int) -> None:
        self._cache_limit = limit

    def clear_cache(self) -> None:
        if torch.cuda.is_available():
            torch.cuda.empty_cache()

    def _trim_cache(self) -> None:
        if self._device.type != "cuda" or self._cache_limit <= 0:
            return
        cached = torch.cuda.memory_reserved(self._device) - torch.cuda.memory_allocated(self._device)
        if cached > self._cache_limit:
            logger.debug("Cache %d bytes over limit %d, releasing", cached, self._cache_limit)
            torch.cuda.empty_cache()

    def memory_snapshot(self) -> MemorySnapshot:
        if self._device.type == "cuda":
            active = torch.cuda.memory_allocated(self._device)
            return MemorySnapshot(
                active_memory=active,
                cache_memory=torch.cuda.memory_reserved(self._device) - active,
                peak_memory=torch.cuda.max_memory_allocated(self._device),
                memory_limit=torch.cuda.get_device_properties(self._device).total_memory,
                cache_limit=self._cache_limit,
            )
        rss = psutil.Process().memory_info().rss
        if rss > self._cpu_peak:
            self._cpu_peak = rss
        return MemorySnapshot(
            active_memory=rss,
            cache_memory=0,
            peak_memory=self._cpu_peak,
            memory_limit=psutil.virtual_memory().total,
            cache_limit=self._cache_limit,
        )
