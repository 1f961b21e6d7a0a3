"""Configuration loader for formbatch.

Reads environment variables (optionally from .env) and exposes a typed config.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Config:
  """Holds runtime configuration loaded from environment."""

  form_host: str
  ledger_url: str | None
  ledger_token: str | None
  user_id: str | None
  pacing_s: float
  settle_s: float
  timeout_s: float
  user_agent: str


def _float(name: str, default: float) -> float:
  raw = os.getenv(name)
  if raw is None or not raw.strip():
    return default
  try:
    return float(raw)
  except ValueError:
    return default


def load_config() -> Config:
  """Load configuration from environment variables."""
  return Config(
    form_host=os.getenv('FORMBATCH_FORM_HOST', 'https://docs.google.com'),
    ledger_url=os.getenv('FORMBATCH_LEDGER_URL') or None,
    ledger_token=os.getenv('FORMBATCH_LEDGER_TOKEN') or None,
    user_id=os.getenv('FORMBATCH_USER_ID') or None,
    pacing_s=_float('FORMBATCH_PACING_S', 2.0),
    settle_s=_float('FORMBATCH_SETTLE_S', 0.5),
    timeout_s=_float('FORMBATCH_TIMEOUT_S', 30.0),
    user_agent=os.getenv(
      'FORMBATCH_USER_AGENT',
      'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 '
      '(KHTML, like Gecko) Chrome/124.0 Safari/537.36',
    ),
  )
