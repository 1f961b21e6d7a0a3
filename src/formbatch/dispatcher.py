"""Submission dispatcher: serializes scheduled answers and posts them in order.

One submission is in flight at a time. Cancellation is cooperative: the
token is checked once at the top of every iteration, so a stop request never
interrupts a POST that already started.
"""

import datetime
import itertools
import random
import time
from collections.abc import Callable, Mapping

from .client import BaseLedger, BaseSubmitter, Payload
from .data import (
  Answer,
  DispatchError,
  FormItem,
  LedgerError,
  LogEntry,
  LogStatus,
  ParsedForm,
  RunResult,
  RunStatus,
  Schedule,
  SubmissionNetworkError,
)
from .events import EventSink
from .planner import GridResolver, check_count, resolve_grid

ENTRY_PREFIX = 'entry.'
DEDUCT_EVERY = 5


class CancelToken:
  """Stop flag for a single run."""

  def __init__(self) -> None:
    self._cancelled = False

  def cancel(self) -> None:
    self._cancelled = True

  @property
  def cancelled(self) -> bool:
    return self._cancelled


def page_history(form: ParsedForm) -> str | None:
  """Comma-joined page indices 0..k for a form with k page breaks."""
  k = form.page_break_count
  if k == 0:
    return None
  return ','.join(str(p) for p in range(k + 1))


def _append(payload: Payload, key: str, value: Answer) -> None:
  if isinstance(value, list):
    for v in value:
      payload.append((key, v))
  elif value != '':
    payload.append((key, value))


def build_payload(
  form: ParsedForm,
  schedule: Schedule,
  index: int,
  grids: Mapping[str, Mapping[str, Answer]] | None = None,
) -> Payload:
  """Wire body for submission `index`, as ordered (key, value) pairs.

  `grids` maps a grid item id to its resolved `{row_id: column}` answers for
  this submission.
  """
  payload: Payload = []
  if form.fbzx:
    payload.append(('fbzx', form.fbzx))
  history = page_history(form)
  if history is not None:
    payload.append(('pageHistory', history))
  payload.append(('draftResponse', '[]'))
  for item in form.items:
    if item.is_grid:
      for row_id, value in (grids or {}).get(item.id, {}).items():
        _append(payload, f'{ENTRY_PREFIX}{row_id}', value)
      continue
    if item.submission_id is None:
      continue
    values = schedule.get(item.id)
    if values is None or index >= len(values):
      continue
    _append(payload, f'{ENTRY_PREFIX}{item.submission_id}', values[index])
  return payload


def _extracted_limits(item: FormItem, rng: random.Random) -> dict[str, Answer]:
  return resolve_grid(item, rng, limit_one=item.limit_one_response_per_column)


def _now() -> str:
  return datetime.datetime.now().strftime('%H:%M:%S')


class Dispatcher:
  """Paced, cancellable submission loop for one parsed form."""

  def __init__(
    self,
    form: ParsedForm,
    sink: EventSink,
    submitter: BaseSubmitter,
    ledger: BaseLedger | None = None,
    pacing: float = 2.0,
    settle: float = 0.5,
    deduct_every: int = DEDUCT_EVERY,
    sleep: Callable[[float], None] = time.sleep,
  ) -> None:
    self.form = form
    self.sink = sink
    self.submitter = submitter
    self.ledger = ledger
    self.pacing = pacing
    self.settle = settle
    self.deduct_every = deduct_every
    self.sleep = sleep
    self.status: RunStatus = 'idle'
    self._ids = itertools.count(1)
    self._result: RunResult | None = None

  # ---------- events ----------

  def _log(self, status: LogStatus, message: str) -> LogEntry:
    entry = LogEntry(
      id=next(self._ids), status=status, message=message, timestamp=_now()
    )
    if self._result is not None:
      self._result.log.insert(0, entry)  # newest first
    self.sink.on_log(entry)
    return entry

  def _deduct(self, count: int) -> None:
    if self.ledger is None or count <= 0:
      return
    try:
      balance = self.ledger.deduct(count)
    except LedgerError as e:
      self._log('error', f'Credit deduction of {count} failed: {e}')
      return
    self._result.credits_deducted += count
    self._log('success', f'{count} credits deducted. Balance: {balance}')

  # ---------- run ----------

  def run(
    self,
    schedule: Schedule,
    n: int,
    token: CancelToken | None = None,
    rng: random.Random | None = None,
    grid_resolver: GridResolver | None = None,
  ) -> RunResult:
    """Dispatch `n` submissions from `schedule`.

    Args:
      schedule: Planned non-grid answers, read-only for the run.
      n: Number of submissions (1..1000).
      token: Cooperative stop flag checked before each submission.
      rng: Randomness for per-submission grid resolution.
      grid_resolver: Override for grid answers; defaults to uniform rows
        honouring each grid's extracted column limit.

    Returns:
      RunResult with counters and the newest-first log.

    Raises:
      DispatchError: the form has no action URL.
      ValueError: `n` is out of range.
    """
    if not self.form.action_url:
      raise DispatchError('form action URL missing')
    check_count(n)
    if self.status == 'running':
      raise DispatchError('dispatcher is already running')
    token = token or CancelToken()
    rng = rng or random.Random()
    resolver = grid_resolver or _extracted_limits

    self.status = 'running'
    self._result = RunResult(status='running', total=n)
    result = self._result
    pending = 0
    self.sink.on_progress(0, n)
    self._log('info', f'Starting {n} submissions to {self.form.title}')

    for i in range(n):
      if token.cancelled:
        self._deduct(pending)
        pending = 0
        self._log('stopped', 'Stopped by user')
        result.status = 'stopped'
        break
      grids = {
        item.id: resolver(item, rng) for item in self.form.items if item.is_grid
      }
      payload = build_payload(self.form, schedule, i, grids)
      result.attempted += 1
      try:
        self.submitter.submit(self.form.action_url, payload)
      except SubmissionNetworkError as e:
        result.failed += 1
        self._log('error', f'Submission #{i + 1} failed to reach server: {e}')
      else:
        if self.settle > 0:
          self.sleep(self.settle)
        result.succeeded += 1
        pending += 1
        self._log('success', f'Submission #{i + 1} sent')
        if pending == self.deduct_every:
          self._deduct(pending)
          pending = 0
      self.sink.on_progress(i + 1, n)
      if i < n - 1 and not token.cancelled and self.pacing > 0:
        self.sleep(self.pacing)

    self._deduct(pending)
    if result.status == 'running':
      result.status = 'completed'
    self.status = result.status
    return result
