import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import anthropic

from ..config import Config, ConfigError, resolve_timezone
from ..importers.weather import MetNoClient
from ..models.facts import FactStore
from .context import BriefContext, ContextAssembler
from .formatter import extract_brief, format_fact
from .prompts import SYSTEM_PROMPT, build_brief_prompt, build_query_prompt, load_prompts

log = logging.getLogger("hovimestari.brief")


class BriefEngine:
    def __init__(self, store: FactStore, config: Config,
                 client: Optional[anthropic.Anthropic] = None,
                 weather_client: Optional[MetNoClient] = None):
        self.store = store
        self.config = config
        self._client = client
        self.assembler = ContextAssembler(store, config, weather_client)
        self.prompts = load_prompts(config.prompt_file)

    @property
    def client(self) -> anthropic.Anthropic:
        if self._client is None:
            if not self.config.anthropic_api_key:
                raise ConfigError("ANTHROPIC_API_KEY is required to generate a brief")
            self._client = anthropic.Anthropic(api_key=self.config.anthropic_api_key)
        return self._client

    def build_context(self, now: Optional[datetime] = None, days_ahead: Optional[int] = None) -> BriefContext:
        return self.assembler.build_context(now, days_ahead)

    def build_prompt(self, now: Optional[datetime] = None, days_ahead: Optional[int] = None) -> str:
        return build_brief_prompt(self.build_context(now, days_ahead), self.prompts)

    def generate_brief(self, now: Optional[datetime] = None, days_ahead: Optional[int] = None) -> str:
        """Build the context, call the model and return the cleaned brief."""
        prompt = self.build_prompt(now, days_ahead)
        log.info("Calling %s: %d chars prompt", self.config.model, len(prompt))
        brief = extract_brief(self._complete(prompt))
        log.info("Brief generated: %d chars", len(brief))
        return brief

    def answer_query(self, query: str, now: Optional[datetime] = None) -> str:
        tz = resolve_timezone(self.config.timezone)
        today = (now or datetime.now(timezone.utc)).astimezone(tz).date()
        facts = self.store.query_facts_in_window(
            today - timedelta(days=365),
            today + timedelta(days=31),
        )
        prompt = build_query_prompt(
            query, [format_fact(f) for f in facts], self.config.output_language, self.prompts,
        )
        return extract_brief(self._complete(prompt))

    def _complete(self, prompt: str) -> str:
        message = self.client.messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return message.content[0].text
