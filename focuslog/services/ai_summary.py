"""
AI Summary Adapter - weekly coaching text from an LLM
Uses a cloud OpenAI-compatible API or a local Ollama server. Any failure
degrades to a static message; the analytics views never depend on it.
"""

import logging
import time
from typing import List, Optional

import requests

from focuslog import config
from focuslog.analytics import efficiency, recent_entries, total_assigned, total_focused
from focuslog.models.entry import Entry
from focuslog.prompts import (
    COACH_SYSTEM_PROMPT,
    FALLBACK_MESSAGE,
    NO_DATA_MESSAGE,
    WEEKLY_SUMMARY_PROMPT,
    format_entries,
)
from focuslog.utils.logger import logger as structured_logger
from focuslog.utils.metrics import AI_REQUEST_DURATION, AI_REQUEST_ERRORS

logger = logging.getLogger(__name__)


class AISummaryAdapter:
    """Turns the last week of entries into coaching prose."""

    def __init__(self, provider: str = None, timeout: int = None):
        self.provider = (provider or config.AI_PROVIDER).lower()
        self.enabled = config.AI_ENABLED
        self.timeout = timeout or config.AI_TIMEOUT
        self.days = config.AI_SUMMARY_DAYS

        self.cloud_api_key = config.AI_API_KEY
        self.cloud_api_url = config.AI_API_URL.rstrip('/')
        self.cloud_model = config.AI_CLOUD_MODEL

        self.ollama_url = config.OLLAMA_URL.rstrip('/')
        self.ollama_model = config.OLLAMA_MODEL

        self.model = self.cloud_model if self.provider == 'cloud' else self.ollama_model
        logger.info(f"AISummaryAdapter initialized: provider={self.provider}, model={self.model}, enabled={self.enabled}")

    def build_prompt(self, entries: List[Entry]) -> str:
        focused = sum(total_focused(e) for e in entries)
        assigned = sum(total_assigned(e) for e in entries)
        return WEEKLY_SUMMARY_PROMPT.format(
            days=len(entries),
            entries=format_entries(entries),
            total_focused=focused,
            total_assigned=assigned,
            efficiency=efficiency(focused, assigned),
        )

    def summarize(self, entries: List[Entry]) -> str:
        """Coaching text for the latest entries; never raises."""
        window = recent_entries(entries, self.days)
        if not window:
            return NO_DATA_MESSAGE

        try:
            prompt = self.build_prompt(window)
        except Exception as e:
            logger.error(f"Failed to build summary prompt: {e}")
            return FALLBACK_MESSAGE

        text = self._call_llm(prompt, COACH_SYSTEM_PROMPT)
        if not isinstance(text, str) or not text.strip():
            return FALLBACK_MESSAGE
        return text.strip()

    def _call_llm(self, prompt: str, system_prompt: str = None) -> Optional[str]:
        """Route the call to the configured provider."""
        if not self.enabled:
            logger.warning("AI summary is disabled")
            return None
        if self.provider == 'cloud':
            return self._call_cloud_api(prompt, system_prompt)
        if self.provider == 'ollama':
            return self._call_ollama(prompt, system_prompt)
        logger.warning(f"Unknown AI provider '{self.provider}', expected 'cloud' or 'ollama'")
        return None

    def _messages(self, prompt: str, system_prompt: str = None) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _call_cloud_api(self, prompt: str, system_prompt: str = None) -> Optional[str]:
        """Chat completion against an OpenAI-compatible endpoint."""
        if not self.cloud_api_key:
            logger.warning("Cloud AI API key not configured (AI_API_KEY)")
            self._record_failure('cloud', 'no_api_key', 0.0)
            return None

        start_time = time.time()
        try:
            response = requests.post(
                f"{self.cloud_api_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.cloud_api_key}",
                    "Content-Type": "application/json"
                },
                json={
                    "model": self.cloud_model,
                    "messages": self._messages(prompt, system_prompt),
                    "temperature": 0.7,
                    "max_tokens": 800
                },
                timeout=self.timeout
            )
            duration = time.time() - start_time

            if response.status_code != 200:
                logger.error(f"Cloud AI returned status {response.status_code}: {response.text[:200]}")
                self._record_failure('cloud', f"status_{response.status_code}", duration)
                return None

            result = response.json()
            content = result.get('choices', [{}])[0].get('message', {}).get('content', '')
            self._record_success('cloud', self.cloud_model, duration)
            return content

        except requests.exceptions.Timeout:
            logger.error(f"Cloud AI timeout after {self.timeout}s")
            self._record_failure('cloud', 'timeout', time.time() - start_time)
        except requests.exceptions.ConnectionError:
            logger.error("Cloud AI connection error")
            self._record_failure('cloud', 'connection_error', time.time() - start_time)
        except Exception as e:
            logger.error(f"Cloud AI call error: {e}")
            self._record_failure('cloud', type(e).__name__, time.time() - start_time)
        return None

    def _call_ollama(self, prompt: str, system_prompt: str = None) -> Optional[str]:
        """Chat call against a local Ollama server."""
        start_time = time.time()
        try:
            response = requests.post(
                f"{self.ollama_url}/api/chat",
                json={
                    "model": self.ollama_model,
                    "messages": self._messages(prompt, system_prompt),
                    "stream": False,
                    "options": {
                        "temperature": 0.7,
                        "num_predict": 800
                    }
                },
                timeout=self.timeout
            )
            duration = time.time() - start_time

            if response.status_code != 200:
                logger.error(f"Ollama returned status {response.status_code}")
                self._record_failure('ollama', f"status_{response.status_code}", duration)
                return None

            content = response.json().get('message', {}).get('content', '')
            self._record_success('ollama', self.ollama_model, duration)
            return content

        except requests.exceptions.Timeout:
            logger.error(f"Ollama timeout after {self.timeout}s")
            self._record_failure('ollama', 'timeout', time.time() - start_time)
        except requests.exceptions.ConnectionError:
            logger.error("Ollama connection error")
            self._record_failure('ollama', 'connection_error', time.time() - start_time)
        except Exception as e:
            logger.error(f"Ollama call error: {e}")
            self._record_failure('ollama', type(e).__name__, time.time() - start_time)
        return None

    def _record_success(self, provider: str, model: str, duration: float):
        AI_REQUEST_DURATION.labels(provider=provider).observe(duration)
        structured_logger.ai_request(provider, model, True, int(duration * 1000))

    def _record_failure(self, provider: str, error_type: str, duration: float):
        AI_REQUEST_ERRORS.labels(provider=provider, error=error_type).inc()
        structured_logger.ai_request(provider, self.model, False, int(duration * 1000), error_type)
