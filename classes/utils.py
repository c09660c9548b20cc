import json
import logging
import re

import commentjson
import yaml

from classes.google_helpers import LLM_TIMEOUT, PROJECT_ID, REGION
from classes.llm_client import LlmClient


logger = logging.getLogger("habit_backend")


class Utils():
    SessionFactory: None
    llm_timeout = LLM_TIMEOUT

    def color_print(self, text, color=None, end_value=None):
        COLOR_CODES = {
            'black': '30', 'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35',
            'cyan': '36', 'white': '37', 'bright_black': '90', 'bright_red': '91', 'bright_green': '92',
            'bright_yellow': '93', 'bright_blue': '94', 'bright_magenta': '95', 'bright_cyan': '96', 'bright_white': '97'
        }
        if color and color.lower() in COLOR_CODES:
            color_code = COLOR_CODES[color.lower()]
            start = f"\033[{color_code}m"
            end = "\033[0m"
            text = f"{start}{text}{end}"
        logger.info(str(text))
        return False

    def clean_triple_backticks(self, code) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', code)

    def load_fault_tolerant_json(self, json_str, llm=None):
        """
        Loads JSON produced by an LLM. Tries, in order: commentjson on the
        fence-stripped text, yaml on a sanitized copy, json_repair, and finally
        asks `llm` (if given) to fix the document.
        Raises ValueError when nothing yields a JSON object.
        """
        def sanitize_json_string(input_str):
            def process_string_segment(match):
                content = match.group(1)
                # escape lone backslashes, literal newlines and bare quotes
                content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r'\\\\', content)
                content = re.sub(r'(?<!\\)\n', r'\\n', content)
                content = re.sub(r'(?<!\\)"', r'\"', content)
                return f'"{content}"'

            input_str = self.clean_triple_backticks(input_str)
            input_str = re.sub(r'//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)
            return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)

        def extract_object(text):
            start = text.find("{")
            end = text.rfind("}")
            if start == -1 or end <= start:
                return text
            return text[start:end + 1]

        def load_json(raw):
            err = ""
            try:
                data = commentjson.loads(extract_object(self.clean_triple_backticks(raw)))
                if isinstance(data, dict):
                    return data, ""
                err = "load_fault_tolerant_json: top-level value is not an object."
            except Exception as e:
                err = str(e)
            try:
                data = yaml.safe_load(sanitize_json_string(raw))
                if isinstance(data, dict):
                    return data, ""
                err += "\n--\nload_fault_tolerant_json: YAML parsing did not yield an object."
            except Exception as e:
                err += "\n--\n" + str(e)
            return None, err

        json_str = json_str or ""
        data, err = load_json(json_str)
        if data is not None:
            return data

        from json_repair import repair_json
        r_data, r_err = load_json(repair_json(json_str))
        if r_data is not None:
            return r_data

        if llm:
            self.color_print(f"load_fault_tolerant_json: JSON parsing failed: {r_err}. \nTrying LLM recovery...", color="red")
            prompt = f"""
I encountered an issue while parsing the following JSON data. Here is the original JSON string:
```
{json_str}
```
The error message was: {r_err}
Please return the corrected JSON object and nothing else.
            """
            r_data, r_err = load_json(llm.invoke(prompt))
            if r_data is not None:
                return r_data
        raise ValueError(f"load_fault_tolerant_json: JSON parsing failed: {r_err}")

    def _coerce_field_to_str(self, value, default="Not specified") -> str:
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip() or default
        if isinstance(value, (list, tuple)):
            items = [str(v).strip() for v in value if str(v).strip()]
            return ", ".join(items) if items else default
        try:
            return json.dumps(value)
        except TypeError:
            return str(value).strip()

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Replaces {key} placeholders with values from kwargs, leaving unknown
        placeholders untouched (JSON braces in prompt templates survive).
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.debug(f"Missing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}")
        return result

    # -----------------------
    # Model selection helpers
    # -----------------------

    def _detect_llm_model_in_payload(self, payload) -> str | None:
        """
        Look for a model hint in payload using different possible key names.
        Supported: llm_model, model, model_name
        """
        if not isinstance(payload, dict):
            return None

        for key in ("llm_model", "model", "model_name"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

        return None

    def _build_llm_for_model(self, model_name: str, timeout: float | None = None, **kwargs) -> LlmClient:
        if not timeout:
            timeout = self.llm_timeout
        return LlmClient(
            model_name=model_name,
            vertex_project=PROJECT_ID,
            vertex_region=REGION,
            timeout=timeout,
            **kwargs,
        )
