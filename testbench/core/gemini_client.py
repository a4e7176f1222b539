"""Gemini client - generates test code for a piece of source code.

Two kinds of generation:
- A whole suite for the given source (replaces a project's tests)
- A single test case driven by a natural-language instruction (appended)

Both return plain Python test text with any markdown fences stripped; the
result is treated exactly like user-written test code.
"""

import asyncio
import re
from typing import Optional

from google import genai
from google.genai import types

from .errors import APIError, ConfigError
from .logging import get_logger


logger = get_logger("gemini")


_FRAMEWORK_NOTES = """Environment details:
- `describe(name, fn)`, `it(name, fn)` and `expect(value)` are globals. `describe` and `it`
  also work as decorators: `@it("adds numbers")` above a zero-argument function runs it as a test.
- `expect` supports: to_be, to_equal, to_be_defined, to_be_undefined, to_be_null, to_be_nan,
  to_be_truthy, to_be_falsy, to_be_greater_than, to_be_less_than, to_be_instance_of,
  to_contain, to_throw.
- `to_throw` takes a zero-argument callable, e.g. `expect(lambda: divide(1, 0)).to_throw(ZeroDivisionError)`.
- Do NOT import the code under test. Its functions and classes are already in scope.
- Standard library imports are allowed."""


class GeminiClient:
    """Client for generating tests with the Gemini API.

    Handles:
    - API configuration
    - Prompt construction for suite and single-test generation
    - Rate-limit retries
    - Cleaning model output down to bare code
    """

    SYSTEM_PROMPTS = {
        "suite": f"""You are an expert Python unit testing assistant.
Your goal is to write comprehensive unit tests for the provided code.
You must output ONLY the test code.
Do not wrap it in markdown code blocks. Do not add explanations outside the code.

{_FRAMEWORK_NOTES}
- Focus on edge cases, error handling, and typical usage scenarios.""",

        "single": f"""You are an expert Python unit testing assistant.
Your task is to write a SINGLE test case (usually one `it` block) for the provided
source code, based on the user's specific request.
Output ONLY the Python code for the test case. Do not wrap it in markdown blocks.

{_FRAMEWORK_NOTES}""",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        temperature: float = 0.2,
        retry_delay: float = 60.0
    ):
        """Initialize Gemini client.

        Args:
            api_key: Google API key for Gemini
            model: Model used for generation
            temperature: Sampling temperature, low for deterministic code
            retry_delay: Seconds to wait after a rate-limit response
        """
        if not api_key:
            raise ConfigError("Gemini API key is missing", config_key="GEMINI_API_KEY")
        self._client = genai.Client(api_key=api_key)
        self._model_name = model
        self._temperature = temperature
        self._retry_delay = retry_delay

    @classmethod
    def from_config(cls, config) -> "GeminiClient":
        return cls(config.api.gemini_api_key, model=config.api.gemini_model)

    async def generate_tests(
        self,
        source_code: str,
        instruction: Optional[str] = None,
        retries: int = 3
    ) -> str:
        """Generate test code for ``source_code``.

        Args:
            source_code: The code under test
            instruction: If given, generate one test case for this request
            retries: Number of times to retry on rate limit

        Returns:
            Test code text
        """
        if instruction:
            mode = "single"
            contents = f"Source Code:\n{source_code}\n\nUser Request: {instruction}"
        else:
            mode = "suite"
            contents = f"Generate unit tests for this code:\n\n{source_code}"

        config = types.GenerateContentConfig(
            system_instruction=self.SYSTEM_PROMPTS[mode],
            temperature=self._temperature,
        )

        text = ""
        for attempt in range(retries + 1):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents=contents,
                    config=config,
                )
                text = response.text or ""
                break
            except Exception as e:
                error_str = str(e).lower()
                if "429" in error_str or "resource" in error_str or "quota" in error_str:
                    if attempt < retries:
                        logger.warning(
                            f"Rate limit hit, waiting {self._retry_delay:g}s",
                            component="gemini",
                            attempt=attempt + 1
                        )
                        await asyncio.sleep(self._retry_delay)
                        continue
                    raise APIError("Rate limit exceeded", status_code=429, cause=e) from e
                raise APIError(f"Failed to generate tests: {e}", cause=e) from e

        logger.info(
            f"Generated {mode} tests",
            component="gemini",
            model=self._model_name,
            characters=len(text)
        )
        return clean_output(text)


_CODE_BLOCK = re.compile(r"```(?:python|py)?[ \t]*\n(.*?)```", re.DOTALL)


def clean_output(text: str) -> str:
    """Strip markdown fences and surrounding whitespace from model output."""
    if not text:
        return ""

    match = _CODE_BLOCK.search(text)
    if match:
        return match.group(1).strip()

    text = re.sub(r"^```(?:python|py)?\n?", "", text.strip())
    text = re.sub(r"\n?```$", "", text)
    return text.strip()


def append_test(existing: str, new_test: str) -> str:
    """Append a generated single test to existing test code."""
    if not existing.strip():
        return new_test
    return f"{existing.rstrip()}\n\n{new_test}"
