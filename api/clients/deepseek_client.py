#!/usr/bin/env python3
"""
Client for the DeepSeek chat API, reached through its OpenAI-compatible endpoint.
"""

import json
import logging
import asyncio
import time
from typing import Dict, Any, Optional

import openai
from openai import AsyncOpenAI

from exceptions.analysis_exceptions import MalformedProviderResponse
from utils.error.error_handler import APIError

logger = logging.getLogger(__name__)


class DeepSeekClient:
    """
    Async client returning parsed JSON objects from chat completions
    """

    def __init__(self, api_key: str, model: str = "deepseek-chat",
                 base_url: str = "https://api.deepseek.com",
                 max_retries: int = 2, rate_limit_rpm: int = 60):
        """
        Args:
            api_key: DeepSeek API key
            model: Chat model name
            base_url: OpenAI-compatible base URL
            max_retries: Attempts on rate-limit and timeout errors
            rate_limit_rpm: Client-side request ceiling per minute
        """
        self.model = model
        self.max_retries = max(1, max_retries)
        self.min_seconds_between_calls = 60.0 / rate_limit_rpm
        self.last_call_time = 0.0
        self.token_usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

        # Retries are handled here, not inside the SDK
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        logger.info(f"DeepSeek client initialized with model: {model}")

    async def _rate_limit(self):
        now = time.monotonic()
        elapsed = now - self.last_call_time
        if elapsed < self.min_seconds_between_calls:
            delay = self.min_seconds_between_calls - elapsed
            logger.debug(f"Rate limiting: waiting {delay:.2f} seconds")
            await asyncio.sleep(delay)
        self.last_call_time = time.monotonic()

    def _record_usage(self, response) -> None:
        usage = getattr(response, "usage", None)
        if not usage:
            return
        for field in self.token_usage:
            self.token_usage[field] += getattr(usage, field, 0) or 0

    @staticmethod
    def parse_json_response(text: str) -> Dict[str, Any]:
        """
        Extract the JSON object from a completion, tolerating prose or code
        fences around it.

        Raises:
            MalformedProviderResponse: If no JSON object can be decoded
        """
        text = (text or "").strip()
        start = text.find('{')
        end = text.rfind('}')
        if start == -1 or end <= start:
            raise MalformedProviderResponse("No JSON object found in response", provider="remote", raw=text[:200])
        try:
            parsed = json.loads(text[start:end + 1])
        except json.JSONDecodeError as e:
            raise MalformedProviderResponse(f"JSON parsing error: {str(e)}", provider="remote", raw=text[:200]) from e
        if not isinstance(parsed, dict):
            raise MalformedProviderResponse("Response JSON is not an object", provider="remote", raw=text[:200])
        return parsed

    async def complete_json(self, system_prompt: str, user_prompt: str,
                            timeout: float = 30.0, max_tokens: int = 2000,
                            temperature: float = 0.3) -> Dict[str, Any]:
        """
        Run a chat completion and parse its content as a JSON object

        Args:
            system_prompt: System instructions
            user_prompt: User content
            timeout: Per-request timeout in seconds
            max_tokens: Completion token ceiling
            temperature: Sampling temperature

        Returns:
            Parsed JSON object

        Raises:
            APIError: Network failure, non-2xx status or exhausted retries
            MalformedProviderResponse: Content is not a JSON object
        """
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                await self._rate_limit()
                response = await self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=timeout,
                )
            except (openai.RateLimitError, openai.APITimeoutError) as e:
                last_error = e
                if attempt == self.max_retries - 1:
                    break
                wait_time = 2 ** attempt
                logger.warning(f"DeepSeek error on attempt {attempt + 1}, waiting {wait_time}s: {str(e)}")
                await asyncio.sleep(wait_time)
                continue
            except openai.APIStatusError as e:
                raise APIError(str(e), status_code=e.status_code) from e
            except openai.APIConnectionError as e:
                raise APIError(f"Connection error: {str(e)}") from e
            except openai.OpenAIError as e:
                raise APIError(str(e)) from e

            self._record_usage(response)
            if not response.choices or not response.choices[0].message.content:
                raise MalformedProviderResponse("Empty completion", provider="remote")
            return self.parse_json_response(response.choices[0].message.content)

        raise APIError(f"Failed after {self.max_retries} attempts: {str(last_error)}")

    async def ping(self, timeout: float = 10.0) -> bool:
        """Cheap liveness check: a one-token completion"""
        try:
            await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=1,
                timeout=timeout,
            )
            return True
        except openai.OpenAIError as e:
            logger.warning(f"DeepSeek liveness check failed: {str(e)}")
            return False

    async def close(self) -> None:
        await self.client.close()
