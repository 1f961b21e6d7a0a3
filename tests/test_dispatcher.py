import random

import pytest

from formbatch.client import BaseLedger, BaseSubmitter
from formbatch.data import (
  DispatchError,
  LedgerError,
  ParsedForm,
  SubmissionNetworkError,
)
from formbatch.dispatcher import CancelToken, Dispatcher, build_payload, page_history
from formbatch.planner import build_schedule, random_grid_resolver
from formbatch.weights import default_config


class FakeSubmitter(BaseSubmitter):
  def __init__(self, fail_on=(), on_submit=None):
    self.calls = []
    self.fail_on = set(fail_on)
    self.on_submit = on_submit

  def submit(self, url, payload):
    self.calls.append((url, payload))
    if self.on_submit:
      self.on_submit(len(self.calls))
    if len(self.calls) in self.fail_on:
      raise SubmissionNetworkError('connection reset')


class FakeLedger(BaseLedger):
  def __init__(self, balance=100, fail=False):
    self.balance = balance
    self.fail = fail
    self.calls = []

  def deduct(self, count):
    self.calls.append(count)
    if self.fail:
      raise LedgerError('insufficient credits')
    self.balance -= count
    return self.balance


class MemorySink:
  def __init__(self):
    self.entries = []
    self.progress = []

  def on_log(self, entry):
    self.entries.append(entry)

  def on_progress(self, done, total):
    self.progress.append((done, total))


def _run(form, n, submitter=None, ledger=None, token=None, seed=0):
  cfg = default_config(form)
  rng = random.Random(seed)
  schedule = build_schedule(form, cfg, n, rng)
  sink = MemorySink()
  sleeps = []
  submitter = submitter or FakeSubmitter()
  d = Dispatcher(form, sink, submitter, ledger=ledger, sleep=sleeps.append)
  result = d.run(
    schedule, n, token=token, rng=rng, grid_resolver=random_grid_resolver(cfg)
  )
  return d, result, sink, submitter, sleeps, schedule


def _keys(payload):
  return [k for k, _ in payload]


def test_page_history(form):
  assert page_history(form) == '0,1,2'
  assert page_history(ParsedForm(title='t', description='')) is None


def test_payload_layout(form):
  schedule = {
    '1001': ['Asha'],
    '1002': ['Female'],
    '1003': [['Music', 'Sport']],
    '1004': ['4'],
    '1010': [''],
  }
  grids = {'1006': {'3001': 'B', '3002': 'C', '3003': 'A'}}
  payload = build_payload(form, schedule, 0, grids)
  assert payload == [
    ('fbzx', '-4242'),
    ('pageHistory', '0,1,2'),
    ('draftResponse', '[]'),
    ('entry.2001', 'Asha'),
    ('entry.2002', 'Female'),
    ('entry.2003', 'Music'),
    ('entry.2003', 'Sport'),
    ('entry.2004', '4'),
    ('entry.3001', 'B'),
    ('entry.3002', 'C'),
    ('entry.3003', 'A'),
  ]


def test_every_submission_is_posted_in_order(form):
  d, result, sink, submitter, sleeps, schedule = _run(form, 6)
  assert result.status == 'completed'
  assert d.status == 'completed'
  assert (result.attempted, result.succeeded, result.failed) == (6, 6, 0)
  assert all(url == form.action_url for url, _ in submitter.calls)
  for i, (_, payload) in enumerate(submitter.calls):
    body = dict(payload)
    assert body['pageHistory'] == '0,1,2'
    assert body['draftResponse'] == '[]'
    assert body['entry.2002'] == schedule['1002'][i]
    grid = [v for k, v in payload if k in ('entry.3001', 'entry.3002', 'entry.3003')]
    assert sorted(grid) == ['A', 'B', 'C']
  assert sink.progress[-1] == (6, 6)


def test_pacing_between_submissions_only(form):
  *_, sleeps, _ = _run(form, 3)
  # settle after each send, pacing between sends
  assert sleeps == [0.5, 2.0, 0.5, 2.0, 0.5]


def test_network_errors_do_not_stop_the_run(form):
  submitter = FakeSubmitter(fail_on={2})
  _, result, sink, *_ = _run(form, 4, submitter=submitter)
  assert result.status == 'completed'
  assert (result.attempted, result.succeeded, result.failed) == (4, 3, 1)
  errors = [e for e in sink.entries if e.status == 'error']
  assert len(errors) == 1
  assert 'Submission #2' in errors[0].message


def test_credits_deducted_in_batches_of_five(form):
  ledger = FakeLedger()
  _, result, sink, *_ = _run(form, 12, ledger=ledger)
  assert ledger.calls == [5, 5, 2]
  assert result.credits_deducted == 12
  assert ledger.balance == 88


def test_failed_submissions_are_not_charged(form):
  ledger = FakeLedger()
  _, result, *_ = _run(form, 6, submitter=FakeSubmitter(fail_on={1}), ledger=ledger)
  assert ledger.calls == [5]


def test_ledger_failure_is_logged_and_run_continues(form):
  ledger = FakeLedger(fail=True)
  _, result, sink, *_ = _run(form, 7, ledger=ledger)
  assert result.succeeded == 7
  assert ledger.calls == [5, 2]
  assert result.credits_deducted == 0
  assert sum('deduction' in e.message for e in sink.entries) == 2


def test_stop_between_submissions(form):
  token = CancelToken()

  def _stop_after(k):
    if k == 3:
      token.cancel()

  ledger = FakeLedger()
  _, result, sink, submitter, sleeps, _ = _run(
    form, 10, submitter=FakeSubmitter(on_submit=_stop_after), ledger=ledger,
    token=token,
  )
  assert len(submitter.calls) == 3
  assert result.attempted == 3
  assert result.status == 'stopped'
  assert result.log[0].status == 'stopped'
  assert sink.entries[-1].status == 'stopped'
  assert ledger.calls == [3]
  # no pacing wait after a stop request
  assert sleeps.count(2.0) == 2


def test_log_is_newest_first_with_monotonic_ids(form):
  _, result, sink, *_ = _run(form, 3)
  ids = [e.id for e in sink.entries]
  assert ids == sorted(ids)
  assert [e.id for e in result.log] == list(reversed(ids))
  assert sink.entries[0].status == 'info'


def test_missing_action_url(form):
  bare = ParsedForm(title='t', description='', items=form.items)
  d = Dispatcher(bare, MemorySink(), FakeSubmitter(), sleep=lambda s: None)
  with pytest.raises(DispatchError):
    d.run({}, 1)


def test_count_bounds(form):
  d = Dispatcher(form, MemorySink(), FakeSubmitter(), sleep=lambda s: None)
  with pytest.raises(ValueError):
    d.run({}, 0)


def test_default_resolver_honours_extracted_limit(form):
  cfg = default_config(form)
  schedule = build_schedule(form, cfg, 8, random.Random(4))
  submitter = FakeSubmitter()
  d = Dispatcher(form, MemorySink(), submitter, sleep=lambda s: None)
  result = d.run(schedule, 8, rng=random.Random(4))
  assert result.succeeded == 8
  grid_rows = {'entry.3001', 'entry.3002', 'entry.3003'}
  for _, payload in submitter.calls:
    cols = [v for k, v in payload if k in grid_rows]
    assert sorted(cols) == ['A', 'B', 'C']
