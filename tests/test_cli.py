import json
import sys

import pytest

from formbatch.cli import _parse_edit, _safe_name, main


def test_parse_edit():
  assert _parse_edit('1002:Male=70') == ('1002', None, 'Male', 70.0)
  assert _parse_edit('1006/3001:A=10.5') == ('1006', '3001', 'A', 10.5)
  assert _parse_edit('1002:a=b=5') == ('1002', None, 'a=b', 5.0)


@pytest.mark.parametrize('bad', ['1002', '1002=5', 'x=1', '1002:=5', '1002:a='])
def test_parse_edit_rejects(bad):
  with pytest.raises(ValueError):
    _parse_edit(bad)


def test_safe_name():
  assert _safe_name('My survey / 2024') == 'My-survey-2024'
  assert _safe_name('') == 'form'


def _main(monkeypatch, *argv):
  monkeypatch.setattr(sys, 'argv', ['formbatch', *argv])
  main()


def test_plan_command_writes_report(monkeypatch, tmp_path, form_html, capsys):
  page = tmp_path / 'form.html'
  page.write_text(form_html, encoding='utf-8')
  out = tmp_path / 'plan'
  _main(
    monkeypatch,
    'plan', '--html', str(page), '--count', '6', '--seed', '3',
    '--set', '1002:Male=50', '--out', str(out),
  )
  assert (out / 'report_plan.md').exists()
  assert len((out / 'schedule.jsonl').read_text().splitlines()) == 6
  assert 'Wrote plan report' in capsys.readouterr().out


def test_fill_refuses_missing_required(monkeypatch, tmp_path, form_html, capsys):
  page = tmp_path / 'form.html'
  page.write_text(form_html, encoding='utf-8')
  answers = tmp_path / 'answers.json'
  answers.write_text(json.dumps({'1001': 'Ada'}), encoding='utf-8')
  with pytest.raises(SystemExit) as exc:
    _main(
      monkeypatch,
      'fill', '--html', str(page), '--answers', str(answers),
      '--out', str(tmp_path / 'run'),
    )
  assert exc.value.code == 1
  assert 'required questions unanswered' in capsys.readouterr().err
