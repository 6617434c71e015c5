"""
Agent Response Parser
Pulls the JSON object out of a specialist's reply. Models wrap JSON in prose or
markdown fences often enough that a plain json.loads is not safe.
"""

from typing import Dict, Any, Optional
import json
import re
from app.core.logging_config import logger
from app.core.exceptions import AIResponseParseError


_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)


class JSONResponseParser:
    """Extract JSON objects from free-form model output"""

    @staticmethod
    def _outermost_object(text: str) -> Optional[str]:
        """
        Return the first balanced {...} span, ignoring braces inside strings.
        """
        start = text.find("{")
        while start != -1:
            depth = 0
            in_string = False
            escaped = False
            for index in range(start, len(text)):
                char = text[index]
                if in_string:
                    if escaped:
                        escaped = False
                    elif char == "\\":
                        escaped = True
                    elif char == '"':
                        in_string = False
                    continue
                if char == '"':
                    in_string = True
                elif char == "{":
                    depth += 1
                elif char == "}":
                    depth -= 1
                    if depth == 0:
                        return text[start:index + 1]
            start = text.find("{", start + 1)
        return None

    @staticmethod
    def extract_json(response: str) -> Dict[str, Any]:
        """
        Parse the JSON object contained in a model response.

        Tries, in order: the whole response, a fenced ```json block, and the
        first balanced object in the text.

        Raises:
            AIResponseParseError: no JSON object could be decoded
        """
        if not response or not response.strip():
            raise AIResponseParseError("Empty response from agent")

        candidates = [response.strip()]
        fenced = _FENCE_PATTERN.search(response)
        if fenced:
            candidates.append(fenced.group(1))
        balanced = JSONResponseParser._outermost_object(response)
        if balanced:
            candidates.append(balanced)

        for candidate in candidates:
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed

        logger.debug(f"Could not find JSON object in response: {response[:200]}")
        raise AIResponseParseError("Agent response did not contain a JSON object")


# Convenience function
def extract_json(response: str) -> Dict[str, Any]:
    return JSONResponseParser.extract_json(response)
