# threadnotion/model_props.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import commentjson
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("threadnotion")

_DEFAULT_PRICING_PATH = Path(__file__).with_name("llm_pricing.jsonc")


def _load_pricing_config() -> Dict[str, Any]:
    """
    Reads the model price table (JSON with comments). LLM_PRICING_ENV_PATH
    overrides the bundled llm_pricing.jsonc. A missing file or table is fatal.
    """
    cfg_path = Path(os.getenv("LLM_PRICING_ENV_PATH") or _DEFAULT_PRICING_PATH)
    if not cfg_path.exists():
        raise FileNotFoundError(f"LLM pricing config file not found at '{cfg_path}'.")

    with cfg_path.open("r", encoding="utf-8") as f:
        data = commentjson.load(f)

    if not isinstance(data.get("MODEL_BASE_PRICE_TABLE"), dict):
        raise ValueError("Pricing config missing or invalid key: MODEL_BASE_PRICE_TABLE")
    return data


MODEL_BASE_PRICE_TABLE: Dict[str, Any] = _load_pricing_config()["MODEL_BASE_PRICE_TABLE"]

#! PRICING

def estimate_cost_usd(
    llm_model_name: str,
    prompt_tokens: int,
    completion_tokens: int,
    service_tier: str | None = None,
) -> float:
    """
    USD cost of one request, from per-1M-token rates.

    OpenAI entries are keyed by service tier ("default" when none is given).
    Vertex entries with long_threshold_tokens switch to the long rates once
    the prompt is larger than the threshold. Unknown models cost 0.0.
    """
    entry = MODEL_BASE_PRICE_TABLE.get(llm_model_name)
    if entry is None:
        logger.warning(f"estimate_cost_usd: no price table for model {llm_model_name}")
        return 0.0

    if is_openai_model(llm_model_name):
        entry = entry.get(service_tier or "default") or entry.get("default")
        if not entry:
            logger.warning(f"estimate_cost_usd: no price tier {service_tier} for model {llm_model_name}")
            return 0.0

    threshold = entry.get("long_threshold_tokens")
    band = "long" if threshold is not None and prompt_tokens > threshold else "short"
    in_rate = entry.get(f"input_{band}", entry["input_short"])
    out_rate = entry.get(f"output_{band}", entry["output_short"])

    return float(max(prompt_tokens, 0) * in_rate + max(completion_tokens, 0) * out_rate) / 1_000_000


#! MODEL NAMES

def is_openai_model(model_name) -> bool:
    return model_name.startswith(("gpt-", "gpt4", "gpt-5"))


# suffix token -> (verbosity, reasoning effort, service tier)
_PRESETS: Dict[str, Tuple[Optional[str], Optional[str], Optional[str]]] = {
    "standard": ("low", "low", None),
    "std": ("low", "low", None),
    "medium": ("medium", "medium", None),
    "fast": ("low", "none", None),
    "deep": ("medium", "high", None),
    "standard-flex": ("low", "low", "flex"),
    "fast-flex": ("low", "none", "flex"),
    "deep-flex": ("medium", "high", "flex"),
    "standard-priority": ("low", "low", "priority"),
}

# slot order matters: "low" fills verbosity first, then reasoning
_SLOT_TOKENS = (
    ("verbosity", {"low", "medium", "high"}),
    ("reasoning", {"none", "minimal", "low", "medium", "high", "xhigh"}),
    ("service_tier", {"auto", "default", "flex", "priority"}),
)


def parse_model_name(raw: str) -> Tuple[str, Dict[str, Any]]:
    """
    Splits LLM_MODEL values such as 'gpt-4o-mini', 'gpt-5.1_low_high_flex' or
    'gpt-5.1_fast-flex' into (base model, Responses API params).
    """
    raw = (raw or "").strip()
    if not raw:
        raise ValueError("parse_model_name: No Model Name passed.")

    base, *suffixes = raw.split("_")
    if not suffixes:
        return base, {}

    slots: Dict[str, Optional[str]] = {"verbosity": None, "reasoning": None, "service_tier": None}
    unknown = []
    for token in (s.strip().lower() for s in suffixes):
        if not token:
            continue
        if token in _PRESETS:
            for slot, value in zip(("verbosity", "reasoning", "service_tier"), _PRESETS[token]):
                if slots[slot] is None:
                    slots[slot] = value
            continue
        slot = next((s for s, allowed in _SLOT_TOKENS if slots[s] is None and token in allowed), None)
        if slot is None:
            unknown.append(token)
        else:
            slots[slot] = token

    if unknown:
        raise ValueError(f"parse_model_name: Unknown model suffix token(s) {unknown} in '{raw}'.")

    params: Dict[str, Any] = {"service_tier": slots["service_tier"] or "default"}
    if slots["verbosity"]:
        params["text"] = {"verbosity": slots["verbosity"]}
    if slots["reasoning"]:
        params["reasoning"] = {"effort": slots["reasoning"]}
    return base, params
