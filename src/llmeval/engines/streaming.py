"""Bridges from library callbacks to the engine's callback types."""
from __future__ import annotations

import time

import torch
from tqdm.auto import tqdm
from transformers import StoppingCriteria

from .base import GenerateDisposition, ProgressCallback, TokenCallback


class TokenCallbackCriteria(StoppingCriteria):
    """Hands the generated ids to a callback after every decoding step.

    Generation stops as soon as the callback answers STOP. ``started_at``
    marks the first call, which is when prompt processing has finished.
    """

    def __init__(self, prompt_tokens: int, did_generate: TokenCallback) -> None:
        super().__init__()
        self._prompt_tokens = prompt_tokens
        self._did_generate = did_generate
        self.stopped = False
        self.started_at: float | None = None

    def __call__(self, input_ids: torch.LongTensor, scores: torch.FloatTensor, **kwargs) -> torch.BoolTensor:
        if self.started_at is None:
            self.started_at = time.perf_counter()
        tokens = input_ids[0, self._prompt_tokens:].tolist()
        self.stopped = self._did_generate(tokens) is GenerateDisposition.STOP
        return torch.full((input_ids.shape[0],), self.stopped, dtype=torch.bool, device=input_ids.device)


def progress_bar_class(progress: ProgressCallback) -> type[tqdm]:
    """Build a tqdm class that reports its completed fraction to ``progress``."""

    class _ProgressBar(tqdm):
        def update(self, n=1):
            displayed = super().update(n)
            if self.total:
                progress(min(1.0, self.n / self.total))
            return displayed

    return _ProgressBar
