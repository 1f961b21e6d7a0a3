"""Plan reporting for formbatch.

Compares each question's target weights with the counts actually planned,
and writes Markdown/HTML reports, a chart, and the schedule as JSONL.
"""

import base64
import json
import os
from collections.abc import Iterable

import matplotlib.pyplot as plt
import pandas as pd

from .data import ParsedForm, QuestionType, Schedule
from .planner import planned_counts
from .weights import WeightConfig

_COLUMNS = [
  'index',
  'question',
  'type',
  'key',
  'target_pct',
  'planned',
  'planned_pct',
]


def load_jsonl(path: str) -> list[dict]:
  """Load JSONL from a file."""
  rows: list[dict] = []
  with open(path, 'r', encoding='utf-8') as f:
    for line in f:
      if line.strip():
        rows.append(json.loads(line))
  return rows


def dump_jsonl(path: str, rows: Iterable[dict]) -> None:
  """Write JSONL to a file."""
  with open(path, 'w', encoding='utf-8') as f:
    for r in rows:
      f.write(json.dumps(r, ensure_ascii=False) + '\n')


def schedule_rows(form: ParsedForm, schedule: Schedule, n: int) -> list[dict]:
  """One row per submission index with the planned answer of every item."""
  rows = []
  for i in range(n):
    answers = {
      item.id: schedule[item.id][i]
      for item in form.items
      if item.id in schedule and i < len(schedule[item.id])
    }
    rows.append({'index': i, 'answers': answers})
  return rows


def plan_frame(
  form: ParsedForm, schedule: Schedule, cfg: WeightConfig, n: int
) -> pd.DataFrame:
  """Target vs planned share for every weighted (question, key)."""
  records = []
  for item in form.items:
    weights = cfg.weights.get(item.id)
    if not weights or item.id not in schedule:
      continue
    counts = planned_counts(schedule[item.id])
    for key, target in weights.items():
      planned = counts.get(key, 0)
      records.append(
        {
          'index': item.index,
          'question': item.title or item.id,
          'type': item.type.value,
          'key': key,
          'target_pct': round(float(target), 2),
          'planned': planned,
          'planned_pct': round(100 * planned / n, 2) if n else 0.0,
        }
      )
  return pd.DataFrame.from_records(records, columns=_COLUMNS)


def _embed_image_base64(path: str) -> str:
  """Read an image file and return a `data:` URL with base64-encoded bytes."""
  with open(path, 'rb') as f:
    b64 = base64.b64encode(f.read()).decode('ascii')
  ext = os.path.splitext(path)[1].lstrip('.') or 'png'
  return f'data:image/{ext};base64,{b64}'


def _render_chart(df: pd.DataFrame, path: str) -> None:
  labels = [f'Q{i}: {k}'[:40] for i, k in zip(df['index'], df['key'])]
  pos = list(range(len(labels)))
  height = max(3.0, 0.3 * len(labels))
  plt.figure(figsize=(8, height))
  plt.barh([p - 0.2 for p in pos], df['target_pct'], height=0.4, label='target %')
  plt.barh([p + 0.2 for p in pos], df['planned_pct'], height=0.4, label='planned %')
  plt.yticks(pos, labels)
  plt.gca().invert_yaxis()
  plt.xlabel('Share of submissions (%)')
  plt.title('Planned vs target distribution')
  plt.legend()
  plt.tight_layout()
  plt.savefig(path, dpi=160)
  plt.close()


def render_plan_report(
  form: ParsedForm,
  schedule: Schedule,
  cfg: WeightConfig,
  n: int,
  out_dir: str,
  basename: str = 'plan',
) -> pd.DataFrame:
  """Write the plan report set and return the comparison table.

  Files written:
    plan_{basename}.json
    plan_{basename}.png (when any question is weighted)
    report_{basename}.md
    report_{basename}.html
    schedule.jsonl
  """
  os.makedirs(out_dir, exist_ok=True)
  df = plan_frame(form, schedule, cfg, n)
  with open(os.path.join(out_dir, f'plan_{basename}.json'), 'w') as f:
    json.dump(
      {
        'form_id': form.form_id,
        'title': form.title,
        'submissions': n,
        'rows': json.loads(df.to_json(orient='records')),
      },
      f,
      indent=2,
      ensure_ascii=False,
    )
  chart_path = os.path.join(out_dir, f'plan_{basename}.png')
  if not df.empty:
    _render_chart(df, chart_path)

  grids = [i for i in form.items if i.is_grid]
  lines = [f'# Plan: {form.title}\n']
  lines.append(f'**Form id:** {form.form_id or "-"}  ')
  lines.append(f'**Submissions:** {n}  ')
  lines.append(f'**Page breaks:** {form.page_break_count}\n')
  lines.append('## Weighted questions\n')
  lines.append(df.to_markdown(index=False) if not df.empty else '(none)')
  if grids:
    lines.append('\n## Grids (resolved per submission)\n')
    for g in grids:
      mode = (
        'one per column'
        if g.type == QuestionType.MULTIPLE_CHOICE_GRID
        and cfg.grid_limits.get(g.id)
        else 'random per row'
      )
      lines.append(f'- {g.title or g.id}: {len(g.rows)}x{len(g.columns)}, {mode}')
  if os.path.exists(chart_path):
    lines.append(f'\n![Plan](plan_{basename}.png)\n')
  with open(
    os.path.join(out_dir, f'report_{basename}.md'), 'w', encoding='utf-8'
  ) as f:
    f.write('\n'.join(lines))

  img = _embed_image_base64(chart_path) if os.path.exists(chart_path) else ''
  img_tag = (
    f'<img alt="Plan" src="{img}" style="max-width:100%;height:auto;"/>'
    if img
    else ''
  )
  table_html = df.to_html(index=False) if not df.empty else '<p>(none)</p>'
  html = f"""
  <!doctype html>
  <html lang=\"en\"><head><meta charset=\"utf-8\"/>
  <title>Plan - {basename}</title>
  <style>
    body{{font-family:system-ui,-apple-system,Segoe UI,Roboto,Helvetica,Arial,sans-serif;max-width:900px;margin:40px auto;padding:0 16px;}}
    table{{border-collapse:collapse;width:100%;}}
    th,td{{border:1px solid #ddd;padding:6px 8px;text-align:left;}}
    th{{background:#f7f7f7;}}
  </style></head>
  <body>
    <header>
      <h1>{form.title}</h1>
      <p><strong>Submissions:</strong> {n}</p>
    </header>
    <section>
      <h2>Planned vs target</h2>
      {img_tag}
      {table_html}
    </section>
  </body></html>
  """
  with open(
    os.path.join(out_dir, f'report_{basename}.html'), 'w', encoding='utf-8'
  ) as f:
    f.write(html)
  dump_jsonl(
    os.path.join(out_dir, 'schedule.jsonl'), schedule_rows(form, schedule, n)
  )
  return df
