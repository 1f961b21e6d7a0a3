import pytest
import requests

from formbatch import client
from formbatch.client import FormSubmitter, LedgerClient, fetch_html
from formbatch.data import FetchExhaustionError, LedgerError, SubmissionNetworkError


class FakeResponse:
  def __init__(self, text='', status_code=200):
    self.text = text
    self.status_code = status_code

  @property
  def ok(self):
    return self.status_code < 400


def test_submitter_wraps_network_errors(monkeypatch):
  sub = FormSubmitter(timeout=1)

  def _boom(*a, **kw):
    raise requests.ConnectionError('unreachable')

  monkeypatch.setattr(sub.session, 'post', _boom)
  with pytest.raises(SubmissionNetworkError):
    sub.submit('https://example.org/f', [('entry.1', 'x')])
  sub.close()


def test_submitter_ignores_http_status(monkeypatch):
  sub = FormSubmitter(timeout=1)
  sent = {}

  def _post(url, data=None, **kw):
    sent['url'], sent['data'] = url, data
    return FakeResponse(status_code=400)

  monkeypatch.setattr(sub.session, 'post', _post)
  sub.submit('https://example.org/f', [('entry.1', 'a'), ('entry.1', 'b')])
  assert sent['data'] == [('entry.1', 'a'), ('entry.1', 'b')]


def test_ledger_deduct(monkeypatch):
  seen = {}

  def _post(url, data=None, **kw):
    seen['body'] = data
    return FakeResponse('{"credits": 45}')

  monkeypatch.setattr(client.requests, 'post', _post)
  ledger = LedgerClient('https://ledger.example/exec', token='tok', user_id='u1')
  assert ledger.deduct(5) == 45
  assert '"creditAction": "reduce"' in seen['body']
  assert '"amount": 5' in seen['body']


@pytest.mark.parametrize(
  'text', ['{"error": "Insufficient credits"}', 'not json', '{"ok": true}']
)
def test_ledger_errors(monkeypatch, text):
  monkeypatch.setattr(client.requests, 'post', lambda *a, **kw: FakeResponse(text))
  with pytest.raises(LedgerError):
    LedgerClient('https://ledger.example/exec', user_id='u1').deduct(1)


def test_ledger_requires_user():
  with pytest.raises(LedgerError):
    LedgerClient('https://ledger.example/exec').deduct(1)


def test_fetch_falls_through_relays(monkeypatch, form_html):
  tried = []
  page = form_html + ' ' * 600

  def _get(url, **kw):
    tried.append(url)
    if len(tried) < 3:
      raise requests.Timeout('slow')
    return FakeResponse(page)

  monkeypatch.setattr(client.requests, 'get', _get)
  assert fetch_html('docs.google.com/forms/d/e/abc/viewform') == page
  assert tried[0] == 'https://docs.google.com/forms/d/e/abc/viewform'
  assert len(tried) == 3


def test_fetch_exhaustion(monkeypatch):
  monkeypatch.setattr(
    client.requests, 'get', lambda *a, **kw: FakeResponse('<html>nope</html>')
  )
  with pytest.raises(FetchExhaustionError):
    fetch_html('https://example.org/form')
