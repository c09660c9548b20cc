# classes/model_props.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import commentjson
from dotenv import load_dotenv
load_dotenv()

# USD per 1M tokens
_DEFAULT_PRICE_TABLE: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4.1-mini": {"input": 0.40, "output": 1.60},
    "gpt-5-mini": {"input": 0.25, "output": 2.00},
    "gemini-2.5-flash-lite": {"input": 0.10, "output": 0.40},
    "gemini-2.5-flash": {"input": 0.30, "output": 2.50},
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
}


def _load_price_table() -> Dict[str, Dict[str, float]]:
    """
    Built-in prices, overridden by an optional JSON-with-comments file at
    LLM_PRICING_ENV_PATH shaped like {"MODEL_PRICE_TABLE": {"<model>": {"input": x, "output": y}}}.
    """
    table = dict(_DEFAULT_PRICE_TABLE)
    raw_path = os.getenv("LLM_PRICING_ENV_PATH")
    if not raw_path:
        return table

    cfg_path = Path(raw_path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"LLM pricing config file not found at '{cfg_path}'. ")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    overrides = data.get("MODEL_PRICE_TABLE")
    if not isinstance(overrides, dict):
        raise ValueError("Pricing config missing or invalid key: MODEL_PRICE_TABLE")
    table.update(overrides)
    return table


MODEL_PRICE_TABLE = _load_price_table()


def _per_million(rate_usd: float, tokens: int) -> float:
    if rate_usd <= 0.0 or tokens <= 0:
        return 0.0
    return rate_usd * (tokens / 1_000_000.0)


def estimate_cost_usd(llm_model_name: str, prompt_tokens: int, completion_tokens: int) -> float:
    """
    Estimate USD cost of a single request. Unknown models cost 0.0.
    """
    base, _ = parse_model_name(llm_model_name)
    pricing = MODEL_PRICE_TABLE.get(base)
    if pricing is None:
        return 0.0
    cost = _per_million(float(pricing.get("input", 0.0)), prompt_tokens)
    cost += _per_million(float(pricing.get("output", 0.0)), completion_tokens)
    return float(cost)


def is_openai_model(model_name) -> bool:
    # keep it simple; adjust if you start using exotic names
    prefixes = ("gpt-", "gpt4", "o1", "o3", "o4")
    return any((model_name or "").startswith(p) for p in prefixes)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Parse strings like:
        - 'gpt-4o-mini'
        - 'gpt-5-mini_fast'
        - 'gpt-5-mini_low_medium'
    into (base_model, openai_params).
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed. ")

    parts = raw.split("_")
    base = parts[0]
    if len(parts) <= 1:
        return base, {}

    verbosity: Optional[str] = None
    reasoning_effort: Optional[str] = None

    verbosity_tokens = {"low", "medium", "high"}
    reasoning_tokens = {"none", "minimal", "low", "medium", "high"}

    wildcards: Dict[str, Tuple[str, str]] = {
        "standard": ("low", "low"),
        "fast": ("low", "minimal"),
        "deep": ("medium", "high"),
    }

    unknown = []
    for tok in parts[1:]:
        t = tok.strip().lower()
        if not t:
            continue
        if t in wildcards:
            w_verb, w_reason = wildcards[t]
            verbosity = verbosity or w_verb
            reasoning_effort = reasoning_effort or w_reason
            continue
        if verbosity is None and t in verbosity_tokens:
            verbosity = t
            continue
        if reasoning_effort is None and t in reasoning_tokens:
            reasoning_effort = t
            continue
        unknown.append(t)

    if unknown:
        raise ValueError(f"parse_model_name: Unknown model suffix token(s) {unknown} in '{raw}'. ")

    params: Dict[str, Any] = {}
    if verbosity is not None:
        params.setdefault("text", {})["verbosity"] = verbosity
    if reasoning_effort is not None:
        params.setdefault("reasoning", {})["effort"] = reasoning_effort
    return base, params
