"""LLMEval: pick a model, prompt it, watch the output stream."""
