"""Configuration settings for the Journey Circle workflow."""

from dotenv import load_dotenv

from pydantic_settings import BaseSettings
from pydantic import Field
from enum import Enum
from pathlib import Path

# Load .env into os.environ so LiteLLM picks up provider keys (e.g. GEMINI_API_KEY)
load_dotenv()


class OfferPolicy(str, Enum):
    """How strictly Step 8 (offer mapping) is enforced."""
    PER_SOLUTION = "per_solution"  # every solution needs at least one offer
    ANY = "any"  # at least one offer across the whole circle
    NONE = "none"  # offers are encouraged but never required


class Settings(BaseSettings):
    """Session settings for the Journey Circle workflow.

    Settings can be overridden via environment variables with JOURNEY_CIRCLE_ prefix.
    Example: JOURNEY_CIRCLE_OFFER_POLICY=any
    """

    # Workflow rules
    max_problems: int = Field(
        default=5,
        ge=1,
        description="Number of problems (and solutions) that make up a circle"
    )
    offer_policy: OfferPolicy = Field(
        default=OfferPolicy.PER_SOLUTION,
        description="Validation policy for step 8 offer mapping"
    )

    # Generation
    default_model: str = Field(
        default="gemini/gemini-2.0-flash",
        description="LiteLLM model string used for content generation"
    )
    max_tokens_per_generation: int = Field(
        default=4096,
        description="Maximum tokens per generation call"
    )
    generation_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a generation request before failing it"
    )
    title_cache_seconds: int = Field(
        default=900,
        ge=0,
        description="How long generated title suggestions are cached (0 disables)"
    )
    problem_title_count: int = Field(
        default=10,
        ge=1,
        description="Number of problem title suggestions to request"
    )
    solution_title_count: int = Field(
        default=3,
        ge=1,
        description="Number of solution title suggestions to request per problem"
    )

    # Paths
    data_dir: str = Field(
        default="./journey_data",
        description="Directory used by the JSON file repository"
    )

    model_config = {
        "env_prefix": "JOURNEY_CIRCLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",  # ignore unrelated env vars (e.g. GEMINI_API_KEY)
    }

    def get_data_path(self) -> Path:
        """Get data directory as Path object."""
        return Path(self.data_dir)


# Default instance for the CLI; sessions receive their own Settings explicitly
settings = Settings()
