"""HTTP collaborators for formbatch.

Includes the form submitter, the credit ledger client, and a best-effort
HTML fetcher. None of them retry: a failed call is reported and the caller
moves on.
"""

import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import requests

from .config import load_config
from .data import FetchExhaustionError, LedgerError, SubmissionNetworkError
from .extractor import DATA_MARKER

Payload = list[tuple[str, str]]

# -----------------------
# Submitter
# -----------------------


class BaseSubmitter:
  """Abstract target endpoint."""

  def submit(self, url: str, payload: Payload) -> None:
    """POST one submission. Raise SubmissionNetworkError on network failure."""
    raise NotImplementedError

  def close(self) -> None:
    pass


class FormSubmitter(BaseSubmitter):
  """Posts url-encoded submissions; responses are not inspected."""

  def __init__(
    self, timeout: float | None = None, user_agent: str | None = None
  ) -> None:
    cfg = load_config()
    self.timeout = timeout if timeout is not None else cfg.timeout_s
    self.session = requests.Session()
    self.session.headers['User-Agent'] = user_agent or cfg.user_agent

  def submit(self, url: str, payload: Payload) -> None:
    """Send one submission.

    The endpoint gives no usable success signal, so only transport-level
    failures (DNS, connect, timeout) are surfaced.
    """
    try:
      self.session.post(
        url,
        data=payload,
        headers={'Content-Type': 'application/x-www-form-urlencoded'},
        timeout=self.timeout,
      )
    except requests.RequestException as e:
      raise SubmissionNetworkError(str(e)) from e

  def close(self) -> None:
    self.session.close()


# -----------------------
# Credit ledger
# -----------------------


class BaseLedger:
  """Abstract credit ledger."""

  def deduct(self, count: int) -> int:
    """Deduct `count` credits and return the new balance."""
    raise NotImplementedError


@dataclass
class LedgerClient(BaseLedger):
  """JSON action endpoint holding user credit balances."""

  base_url: str
  token: str | None = None
  user_id: str | None = None
  timeout: float = 30.0

  @classmethod
  def from_config(cls) -> 'LedgerClient | None':
    """Build a client from the environment; None when no URL is set."""
    cfg = load_config()
    if not cfg.ledger_url:
      return None
    return cls(
      base_url=cfg.ledger_url,
      token=cfg.ledger_token,
      user_id=cfg.user_id,
      timeout=cfg.timeout_s,
    )

  def _request(self, action: str, data: dict[str, Any]) -> dict[str, Any]:
    payload = {'action': action, 'token': self.token, **data}
    try:
      # text/plain avoids a preflight on script-hosted endpoints
      resp = requests.post(
        self.base_url,
        data=json.dumps(payload),
        headers={'Content-Type': 'text/plain'},
        timeout=self.timeout,
        allow_redirects=True,
      )
    except requests.RequestException as e:
      raise LedgerError(f'ledger unreachable: {e}') from e
    try:
      result = json.loads(resp.text)
    except ValueError as e:
      raise LedgerError('ledger returned a non-JSON response') from e
    if not isinstance(result, dict):
      raise LedgerError('ledger returned an unexpected payload')
    if result.get('error'):
      raise LedgerError(str(result['error']))
    return result

  def deduct(self, count: int) -> int:
    if not self.user_id:
      raise LedgerError('user not found')
    result = self._request(
      'updateCredits',
      {'userId': self.user_id, 'amount': count, 'creditAction': 'reduce'},
    )
    try:
      return int(result['credits'])
    except (KeyError, TypeError, ValueError) as e:
      raise LedgerError('ledger response has no credit balance') from e


# -----------------------
# HTML fetcher
# -----------------------

RELAYS: tuple[str, ...] = (
  'https://api.codetabs.com/v1/proxy?quest={url}',
  'https://api.allorigins.win/raw?url={url}',
  'https://corsproxy.io/?{url}',
)

FETCH_HELP = (
  'Unable to fetch the form automatically. Open the form in a browser, '
  'view the page source, save it to a file, and pass it with --html.'
)


def _looks_like_form(text: str) -> bool:
  return len(text) > 500 and (
    DATA_MARKER in text or 'docs.google.com/forms' in text
  )


def fetch_html(url: str, timeout: float = 15.0) -> str:
  """Fetch a form page directly, then through public relays.

  Raises:
    FetchExhaustionError: when no source returned a form page.
  """
  target = url.strip()
  if not target.lower().startswith('http'):
    target = 'https://' + target
  cfg = load_config()
  sources = [target] + [r.format(url=quote(target, safe='')) for r in RELAYS]
  for src in sources:
    try:
      resp = requests.get(
        src, timeout=timeout, headers={'User-Agent': cfg.user_agent}
      )
    except requests.RequestException:
      continue
    if not resp.ok:
      continue
    if _looks_like_form(resp.text):
      return resp.text
  raise FetchExhaustionError(FETCH_HELP)
