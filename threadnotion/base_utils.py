# threadnotion/base_utils.py

import logging
import re

import commentjson
import yaml
from json_repair import repair_json
from langchain_core.messages import HumanMessage

from threadnotion.prompts import JSON_REPAIR_PROMPT

logger = logging.getLogger("threadnotion")

_COLOR_CODES = {'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'cyan': '36', 'bright_yellow': '93'}

_FENCE_RE = re.compile(r'```[a-zA-Z]*\n?')
_PLACEHOLDER_RE = re.compile(r'\{(\w+)\}')
# a double-quoted string literal, or a // or /* */ comment outside of one
_STRING_OR_COMMENT_RE = re.compile(r'"((?:[^"\\]|\\.)*)"|//[^\n]*|/\*.*?\*/', re.DOTALL)


class BaseUtils():

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None):
        code = _COLOR_CODES.get((color or "").lower())
        if code:
            text = f"\033[{code}m{text}\033[0m"
        logger.info(str(text))
        return False

    def clean_triple_backticks(self, code) -> str:
        return _FENCE_RE.sub('', code)

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Replaces {key} placeholders with the matching kwargs in a single pass.

        Unlike str.format, braces that are not placeholders for a passed key
        (JSON examples inside prompts, unknown names) are left as they are.
        """
        missing_keys = []

        def fill(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        result = _PLACEHOLDER_RE.sub(fill, dest_string)
        if missing_keys and print_unused_keys_report:
            self.color_print(f"unsafe_string_format: unfilled placeholders {', '.join(missing_keys)}", color="bright_yellow")
        return result

    # -----------------------
    # JSON from LLM output
    # -----------------------

    def _sanitize_for_yaml(self, text: str) -> str:
        """
        Drops comments and escapes raw newlines, stray backslashes and quotes
        that LLMs leave inside string literals.
        """
        def fix(match):
            body = match.group(1)
            if body is None:
                return ""
            body = re.sub(r'\\(?![bfnrtu"\\/])', r'\\\\', body)
            body = body.replace("\n", "\\n")
            return f'"{body}"'

        return _STRING_OR_COMMENT_RE.sub(fix, self.clean_triple_backticks(text))

    def _parse_json_like(self, text: str):
        """Returns (data, error). Only a non-empty object or array counts as parsed."""
        errors = []
        for parse in (
            lambda: commentjson.loads(self.clean_triple_backticks(text)),
            lambda: yaml.safe_load(self._sanitize_for_yaml(text)),
        ):
            try:
                data = parse()
            except Exception as e:
                errors.append(str(e))
                continue
            if isinstance(data, (dict, list)) and data:
                return data, ""
            errors.append(f"parsed to {type(data).__name__}, not an object or array")
        return None, "\n--\n".join(errors)

    def load_fault_tolerant_json(self, json_str, llm=None):
        """
        Loads JSON written by an LLM: tries commentjson, then pyyaml on a
        sanitized copy, then both again on json_repair output, then (with an llm)
        asks the model to fix the text. Raises ValueError when all of that fails.
        """
        json_str = json_str or ""
        data, err = self._parse_json_like(json_str)
        if data is not None:
            return data

        data, err = self._parse_json_like(repair_json(json_str))
        if data is not None:
            return data

        if llm is not None:
            self.color_print(f"load_fault_tolerant_json: parsing failed ({err}), asking the LLM to repair it", color="red")
            prompt = self.unsafe_string_format(JSON_REPAIR_PROMPT, json_str=json_str, error=err)
            data, err = self._parse_json_like(llm.invoke([HumanMessage(content=prompt)], json_mode=True))
            if data is not None:
                return data

        raise ValueError(f"load_fault_tolerant_json: JSON parsing failed: {err}\n- Original JSON: {json_str}")

    # -----------------------
    # Chat history
    # -----------------------

    def _approx_tokens(self, text: str) -> int:
        return max(1, len(text) // 4)

    def _prune_to_token_cap(self, messages: list, max_tokens: int) -> list:
        """
        Drops the oldest messages until the estimated size (chars/4 per message)
        fits max_tokens. Returns a new list.
        """
        msgs = list(messages)
        total = sum(self._approx_tokens(str(getattr(m, "content", "") or "")) for m in msgs)
        dropped = 0
        while msgs and total > max_tokens:
            total -= self._approx_tokens(str(getattr(msgs.pop(0), "content", "") or ""))
            dropped += 1
        if dropped:
            logger.debug(f"_prune_to_token_cap: dropped {dropped} oldest message(s) to fit {max_tokens} tokens")
        return msgs
