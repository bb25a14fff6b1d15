# pscore/services/score.py
import asyncio
import hashlib
import json
import logging
from functools import lru_cache
from typing import Optional

import yaml
from litellm import acompletion
from pydantic import BaseModel, ValidationError as SchemaError
from sqlalchemy.exc import SQLAlchemyError

from pscore.config import settings
from pscore.models.score import Leaderboards, LeaderboardEntry, ProductivityReport, ProductivityScore
from pscore.services.exceptions import GenerationFailed, LeaderboardLoadFailed, MalformedResponse
from pscore.services.storage import KeyValueStore, USER_ENTRY

logger = logging.getLogger("pscore.llm")

class LLMResponse(BaseModel):
    content: str
    model: str
    completion_id: str

def run_hash(text: str) -> str:
    """SHA-1 of the exact response text, hex encoded. Used as the leaderboard key."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()

class ScoreService:
    def __init__(
        self,
        prompts_path: str = settings.PROMPTS_PATH,
        model: str = settings.LLM_MODEL,
        api_key: Optional[str] = settings.LLM_API_KEY,
        temperature: float = settings.LLM_TEMPERATURE,
        leaderboard_delay: float = settings.LEADERBOARD_DELAY_SEC,
    ):
        with open(prompts_path, "r") as f:
            self.prompts = yaml.safe_load(f)
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self.leaderboard_delay = leaderboard_delay

        if not self.api_key:
            logger.error("LLM API key not set; relying on provider environment variables.")

    async def _complete(self) -> LLMResponse:
        prompt = self.prompts["PRODUCTIVITY_SCORE_PROMPT"]
        logger.debug(f"Scoring LLM Input Context: {prompt[:100]}...")  # Log first 100 chars

        response = await acompletion(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,  # Allow for some creativity in wording
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "productivity_score",
                    "schema": self.prompts["PRODUCTIVITY_SCORE_SCHEMA"],
                },
            },
            api_key=self.api_key,
        )

        content = response.choices[0].message.content or ""
        logger.debug(f"Scoring LLM Output: {content}")

        return LLMResponse(
            content=content,
            model=response.model or self.model,
            completion_id=response.id or ""
        )

    async def generate(self) -> ProductivityScore:
        """Request one productivity report and key it by the hash of its text.

        Raises MalformedResponse when the text is not a valid report and
        GenerationFailed for anything else. There is no retry.
        """
        try:
            response = await self._complete()
        except Exception as e:
            logger.error(f"Error fetching productivity score: {str(e)}")
            raise GenerationFailed() from e

        text = response.content.strip()
        digest = run_hash(text)

        try:
            data = json.loads(text)
            report = ProductivityReport.model_validate(data)
        except (json.JSONDecodeError, SchemaError) as e:
            logger.error(f"Error parsing productivity score: {str(e)}")
            raise MalformedResponse() from e

        logger.info(
            f"Generated score {report.utilization_score} with run hash {digest} "
            f"(model={response.model}, completion={response.completion_id})"
        )
        return ProductivityScore(**report.model_dump(), run_hash=digest)

    async def list_leaderboards(self, store: KeyValueStore) -> Leaderboards:
        """Rebuild the simulated leaderboards from the profile's persisted entry.

        Only the user's own entry exists, so each list holds at most one
        element. A corrupt entry is logged and gives two empty lists.
        """
        # Simulate a network request to a backend
        await asyncio.sleep(self.leaderboard_delay)

        verified: list[LeaderboardEntry] = []
        unverified: list[LeaderboardEntry] = []

        try:
            stored_user_entry = store.get_item(USER_ENTRY)
        except SQLAlchemyError as e:
            raise LeaderboardLoadFailed(f"Could not read leaderboard entry: {e}") from e

        if stored_user_entry:
            try:
                user_entry = LeaderboardEntry.model_validate_json(stored_user_entry)
            except SchemaError as e:
                logger.error(f"Failed to parse user entry for leaderboard simulation: {e}")
                user_entry = None

            if user_entry is not None and user_entry.is_verified:
                if not any(e.run_hash == user_entry.run_hash for e in verified):
                    verified.append(user_entry)
                unverified = [e for e in unverified if e.run_hash != user_entry.run_hash]
            elif user_entry is not None:
                if not any(e.run_hash == user_entry.run_hash for e in unverified):
                    unverified.insert(0, user_entry)

        # list.sort is stable, so tied scores keep encounter order
        verified.sort(key=lambda e: e.score, reverse=True)

        return Leaderboards(verified=verified, unverified=unverified)

@lru_cache()
def get_score_service() -> ScoreService:
    return ScoreService()
