"""Gradio view over the evaluator."""
from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Iterator

import gradio as gr

from ..config import RootConfig
from ..evaluator import LLMEvaluator
from ..metrics.device_stat import DeviceStat
from .state import DisplayStyle, display_choices, output_visibility

COPY_JS = "(text) => { navigator.clipboard.writeText(text); }"


def stream_changes(
    evaluator: LLMEvaluator, action: Callable[[], Any], poll_interval: float = 0.1
) -> Iterator[None]:
    """Run ``action`` on a worker thread, yielding whenever the evaluator changes.

    Bursts of changes between two polls collapse into a single yield.
    """
    changes: queue.Queue[str] = queue.Queue()
    unsubscribe = evaluator.subscribe(lambda name, value: changes.put(name))
    worker = threading.Thread(target=action, daemon=True)
    worker.start()
    try:
        while worker.is_alive() or not changes.empty():
            try:
                changes.get(timeout=poll_interval)
            except queue.Empty:
                continue
            while not changes.empty():
                changes.get_nowait()
            yield
    finally:
        unsubscribe()
        worker.join()


def view_updates(evaluator: LLMEvaluator) -> tuple[Any, ...]:
    idle = not evaluator.running
    return (
        evaluator.model_info,
        evaluator.stat,
        evaluator.output,
        evaluator.output,
        gr.update(interactive=idle),
        gr.update(interactive=idle),
        gr.update(interactive=bool(evaluator.output)),
    )


def run_generate(evaluator: LLMEvaluator, prompt: str) -> Iterator[tuple[Any, ...]]:
    for _ in stream_changes(evaluator, lambda: evaluator.generate(prompt)):
        yield view_updates(evaluator)
    yield view_updates(evaluator)


def run_select_model(evaluator: LLMEvaluator, key: str) -> Iterator[tuple[Any, ...]]:
    def _switch() -> None:
        evaluator.select_model(key)
        evaluator.preload()

    for _ in stream_changes(evaluator, _switch):
        yield view_updates(evaluator)
    yield view_updates(evaluator)


def run_preload(evaluator: LLMEvaluator) -> Iterator[tuple[Any, ...]]:
    for _ in stream_changes(evaluator, evaluator.preload):
        yield view_updates(evaluator)
    yield view_updates(evaluator)


def build_app(cfg: RootConfig, evaluator: LLMEvaluator, device_stat: DeviceStat) -> gr.Blocks:
    model_choices = [(m.display_name, m.key) for m in evaluator.registry.list()]
    plain_visible, markdown_visible = output_visibility(DisplayStyle.MARKDOWN)
    refresh_s = cfg.app.sampling_interval_ms / 1000.0

    with gr.Blocks(title=cfg.app.title) as demo:
        with gr.Row():
            model_info_md = gr.Markdown(evaluator.model_info)
            stat_md = gr.Markdown(evaluator.stat)

        with gr.Row():
            model_radio = gr.Radio(
                label="Model",
                choices=model_choices,
                value=evaluator.model_configuration.key,
            )
            style_radio = gr.Radio(
                label="Display",
                choices=display_choices(),
                value=DisplayStyle.MARKDOWN.value,
            )

        with gr.Accordion(label="Memory", open=False):
            gr.Markdown(value=device_stat.label, every=refresh_s)
            gr.Markdown(value=lambda: device_stat.details().replace("\n", "  \n"), every=refresh_s)

        plain_out = gr.Textbox(
            label="Output",
            value=evaluator.output,
            lines=20,
            interactive=False,
            visible=plain_visible,
        )
        markdown_out = gr.Markdown(evaluator.output, visible=markdown_visible)

        with gr.Row():
            prompt_box = gr.Textbox(
                show_label=False,
                placeholder="prompt",
                value=evaluator.model_configuration.default_prompt,
                scale=4,
            )
            generate_btn = gr.Button("generate", variant="primary", scale=1)
        copy_btn = gr.Button("Copy Output", interactive=bool(evaluator.output))

        view = [model_info_md, stat_md, plain_out, markdown_out, prompt_box, generate_btn, copy_btn]

        def _generate(prompt: str):
            yield from run_generate(evaluator, prompt)

        def _select_model(key: str):
            yield from run_select_model(evaluator, key)

        def _preload():
            yield from run_preload(evaluator)

        def _select_style(style: str):
            plain, markdown = output_visibility(style)
            return gr.update(visible=plain), gr.update(visible=markdown)

        generate_btn.click(_generate, inputs=[prompt_box], outputs=view)
        prompt_box.submit(_generate, inputs=[prompt_box], outputs=view)
        model_radio.change(_select_model, inputs=[model_radio], outputs=view)
        style_radio.change(_select_style, inputs=[style_radio], outputs=[plain_out, markdown_out])
        copy_btn.click(None, inputs=[plain_out], outputs=None, js=COPY_JS)
        demo.load(_preload, outputs=view)

    return demo
