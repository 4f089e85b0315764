from __future__ import annotations

from .atomic import read_model, write_json_atomic, write_model_atomic
from .jsonl import append_line, iter_jsonl

__all__ = [
    'append_line',
    'iter_jsonl',
    'read_model',
    'write_json_atomic',
    'write_model_atomic',
]
