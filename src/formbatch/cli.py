"""formbatch command-line interface.

Supports schema inspection, weight templates, plan reports, weighted runs,
and fixed-answer runs.
"""

import argparse
import dataclasses
import datetime
import json
import os
import random
import re
import signal
import sys

from tabulate import tabulate

from .client import FormSubmitter, LedgerClient, fetch_html
from .config import load_config
from .data import FormBatchError, ParsedForm, RunResult
from .dispatcher import CancelToken, Dispatcher
from .events import RunLogger
from .extractor import extract
from .planner import (
  build_schedule,
  check_count,
  fixed_grid_resolver,
  fixed_schedule,
  missing_required,
  random_grid_resolver,
)
from .report import render_plan_report
from .weights import (
  WeightConfig,
  default_config,
  dump_weight_config,
  load_weight_config,
  set_weight,
)


def _safe_name(s: str) -> str:
  """Make a filesystem-safe name from a form title or id."""
  if not s:
    return 'form'
  return re.sub(r'[^A-Za-z0-9._-]+', '-', s).strip('-')[:48] or 'form'


def _timestamp() -> str:
  return datetime.datetime.now().strftime('%Y%m%d_%H%M%S')


def _load_form(args: argparse.Namespace) -> ParsedForm:
  """Read or fetch the page HTML and extract its schema."""
  cfg = load_config()
  if args.html:
    with open(args.html, 'r', encoding='utf-8') as f:
      html = f.read()
  else:
    html = fetch_html(args.url)
  return extract(html, form_host=cfg.form_host)


def _parse_edit(edit: str) -> tuple[str, str | None, str, float]:
  """Parse `ITEM[/ROW]:KEY=VALUE` into its parts."""
  left, sep, value = edit.rpartition('=')
  target, sep2, key = left.partition(':')
  if not sep or not sep2 or not key:
    raise ValueError(f'Bad --set value {edit!r}; expected ITEM[/ROW]:KEY=VALUE')
  item_id, _, row = target.partition('/')
  return item_id, (row or None), key, float(value)


def _weight_config(form: ParsedForm, args: argparse.Namespace) -> WeightConfig:
  cfg = (
    load_weight_config(args.weights, form) if args.weights else default_config(form)
  )
  for edit in args.set or []:
    item_id, row, key, value = _parse_edit(edit)
    set_weight(form, cfg, item_id, key, value, row=row)
  return cfg


def _out_dir(args: argparse.Namespace, form: ParsedForm, n: int) -> str:
  if args.out is None:
    base = f'{_safe_name(form.title)}-n{n}-{_timestamp()}'
    args.out = os.path.join('results', base)
  os.makedirs(args.out, exist_ok=True)
  return args.out


def _write_run_info(out_dir: str, form: ParsedForm, info: dict) -> None:
  """Persist/merge run info next to the logs."""
  path = os.path.join(out_dir, 'run_info.json')
  cur = {'form_id': form.form_id, 'title': form.title, 'timestamp': _timestamp()}
  if os.path.exists(path):
    with open(path, 'r') as f:
      cur = {**json.load(f), **cur}
  cur.update(info)
  with open(path, 'w') as f:
    json.dump(cur, f, indent=2)


def _dispatch(
  form: ParsedForm,
  args: argparse.Namespace,
  out_dir: str,
  schedule,
  n: int,
  rng: random.Random,
  resolver,
) -> RunResult:
  """Run the dispatcher with Ctrl-C mapped to a cooperative stop."""
  cfg = load_config()
  token = CancelToken()
  logger = RunLogger(os.path.join(out_dir, 'run.log'), enabled=not args.quiet)
  submitter = FormSubmitter()
  ledger = None if args.no_ledger else LedgerClient.from_config()
  dispatcher = Dispatcher(
    form,
    logger,
    submitter,
    ledger=ledger,
    pacing=cfg.pacing_s if args.pacing is None else args.pacing,
    settle=cfg.settle_s,
  )

  def _stop(signum, frame):
    token.cancel()

  previous = signal.signal(signal.SIGINT, _stop)
  try:
    return dispatcher.run(schedule, n, token=token, rng=rng, grid_resolver=resolver)
  finally:
    signal.signal(signal.SIGINT, previous)
    submitter.close()
    logger.close()


def _summary(result: RunResult) -> str:
  return (
    f'{result.status}: {result.succeeded} sent, {result.failed} failed, '
    f'{result.attempted}/{result.total} attempted, '
    f'{result.credits_deducted} credits deducted'
  )


# -----------------------
# Commands
# -----------------------


def cmd_inspect(args: argparse.Namespace) -> None:
  """CLI: print the extracted schema, optionally saving it as JSON."""
  form = _load_form(args)
  rows = []
  for item in form.items:
    detail = ''
    if item.options:
      detail = ', '.join(o.label for o in item.options)
    elif item.is_grid:
      detail = f'{len(item.rows)} rows x {len(item.columns)} cols'
      if item.limit_one_response_per_column:
        detail += ' (one per column)'
    elif item.scale_start is not None:
      detail = f'{item.scale_start}..{item.scale_end}'
    rows.append(
      [
        item.index,
        item.id,
        item.submission_id or '-',
        item.type.value,
        'yes' if item.required else '',
        item.title[:48],
        detail[:60],
      ]
    )
  print(f'{form.title}  (form id {form.form_id or "-"})')
  print(f'action: {form.action_url or "-"}  fbzx: {"yes" if form.fbzx else "no"}')
  print(
    tabulate(
      rows,
      headers=['#', 'id', 'entry', 'type', 'req', 'title', 'detail'],
      tablefmt='github',
    )
  )
  if args.out:
    with open(args.out, 'w', encoding='utf-8') as f:
      json.dump(dataclasses.asdict(form), f, indent=2, ensure_ascii=False)
    print(f'Wrote {args.out}')


def cmd_weights(args: argparse.Namespace) -> None:
  """CLI: write a weights template with the form's default weights."""
  form = _load_form(args)
  dump_weight_config(default_config(form), args.out)
  print(f'Wrote {args.out}')


def cmd_plan(args: argparse.Namespace) -> None:
  """CLI: plan a batch and render the plan report without submitting."""
  form = _load_form(args)
  n = check_count(args.count)
  cfg = _weight_config(form, args)
  schedule = build_schedule(form, cfg, n, random.Random(args.seed))
  out_dir = _out_dir(args, form, n)
  render_plan_report(form, schedule, cfg, n, out_dir)
  print(f'Wrote plan report to {out_dir}')


def cmd_run(args: argparse.Namespace) -> None:
  """CLI: plan a weighted batch and submit it."""
  form = _load_form(args)
  n = check_count(args.count)
  cfg = _weight_config(form, args)
  rng = random.Random(args.seed)
  schedule = build_schedule(form, cfg, n, rng)
  out_dir = _out_dir(args, form, n)
  render_plan_report(form, schedule, cfg, n, out_dir)
  result = _dispatch(
    form, args, out_dir, schedule, n, rng, random_grid_resolver(cfg)
  )
  _write_run_info(
    out_dir,
    form,
    {'mode': 'weighted', 'seed': args.seed, **_result_info(result)},
  )
  print(_summary(result))


def cmd_fill(args: argparse.Namespace) -> None:
  """CLI: submit one prepared answer set N times."""
  form = _load_form(args)
  n = check_count(args.count)
  with open(args.answers, 'r', encoding='utf-8') as f:
    answers = json.load(f)
  missing = missing_required(form, answers)
  if missing:
    names = ', '.join(f'{m.id} ({m.title})' for m in missing)
    raise FormBatchError(f'required questions unanswered: {names}')
  schedule = fixed_schedule(form, answers, n)
  out_dir = _out_dir(args, form, n)
  result = _dispatch(
    form, args, out_dir, schedule, n, random.Random(), fixed_grid_resolver(answers)
  )
  _write_run_info(out_dir, form, {'mode': 'fixed', **_result_info(result)})
  print(_summary(result))


def _result_info(result: RunResult) -> dict:
  return {
    'status': result.status,
    'submissions': result.total,
    'attempted': result.attempted,
    'succeeded': result.succeeded,
    'failed': result.failed,
    'credits_deducted': result.credits_deducted,
  }


def _add_source(p: argparse.ArgumentParser) -> None:
  src = p.add_mutually_exclusive_group(required=True)
  src.add_argument('--url', type=str, help='Form URL to fetch')
  src.add_argument('--html', type=str, help='Saved page source')


def _add_plan_args(p: argparse.ArgumentParser) -> None:
  p.add_argument(
    '--count', type=int, default=10, help='Number of submissions (1..1000)'
  )
  p.add_argument('--seed', type=int, default=None, help='RNG seed')
  p.add_argument('--weights', type=str, default=None, help='Weights JSON file')
  p.add_argument(
    '--set',
    action='append',
    metavar='ITEM[/ROW]:KEY=VALUE',
    help='Edit one weight (repeatable)',
  )
  p.add_argument(
    '--out',
    type=str,
    default=None,
    help='Output directory (auto-named if omitted)',
  )


def _add_dispatch_args(p: argparse.ArgumentParser) -> None:
  p.add_argument(
    '--pacing', type=float, default=None, help='Seconds between submissions'
  )
  p.add_argument(
    '--no-ledger', action='store_true', help='Skip credit deductions'
  )
  p.add_argument(
    '--quiet', action='store_true', help='Disable per-submission stdout logs'
  )


def main() -> None:
  """Entry point for the formbatch CLI."""
  ap = argparse.ArgumentParser(
    prog='formbatch', description='Weighted batch submissions for hosted forms'
  )
  sub = ap.add_subparsers(dest='cmd', required=True)

  i = sub.add_parser('inspect', help='Extract and print the form schema')
  _add_source(i)
  i.add_argument('--out', type=str, default=None, help='Write schema JSON')
  i.set_defaults(func=cmd_inspect)

  w = sub.add_parser('weights', help='Write a default weights template')
  _add_source(w)
  w.add_argument('--out', type=str, required=True, help='Weights JSON path')
  w.set_defaults(func=cmd_weights)

  p = sub.add_parser('plan', help='Plan a batch and write the plan report')
  _add_source(p)
  _add_plan_args(p)
  p.set_defaults(func=cmd_plan)

  r = sub.add_parser('run', help='Plan a weighted batch and submit it')
  _add_source(r)
  _add_plan_args(r)
  _add_dispatch_args(r)
  r.set_defaults(func=cmd_run)

  f = sub.add_parser('fill', help='Submit one answer set repeatedly')
  _add_source(f)
  f.add_argument('--answers', type=str, required=True, help='Answers JSON file')
  f.add_argument(
    '--count', type=int, default=10, help='Number of submissions (1..1000)'
  )
  f.add_argument(
    '--out',
    type=str,
    default=None,
    help='Output directory (auto-named if omitted)',
  )
  _add_dispatch_args(f)
  f.set_defaults(func=cmd_fill)

  args = ap.parse_args()
  try:
    args.func(args)
  except (FormBatchError, ValueError, KeyError) as e:
    print(f'error: {e}', file=sys.stderr)
    sys.exit(1)
