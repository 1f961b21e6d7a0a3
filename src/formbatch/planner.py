"""Batch planning: turn weight maps into per-submission answer schedules.

Counts are planned up front (floor of weight share, shortfall padded with the
top key) and then shuffled, so a run of N submissions hits the requested
distribution exactly rather than only in expectation. Grids are resolved
fresh for every submission instead of being scheduled.
"""

import math
import random
from collections import Counter
from collections.abc import Callable, Mapping

from .correlation import UNMATCHED, linked_names, static_names
from .data import (
  BALANCED_TYPES,
  TEXT_TYPES,
  Answer,
  FormItem,
  ParsedForm,
  QuestionType,
  Schedule,
  WeightMap,
)
from .weights import Designations, GridWeights, WeightConfig

GridResolver = Callable[[FormItem, random.Random], dict[str, Answer]]

MAX_SUBMISSIONS = 1000


def check_count(n: int) -> int:
  """Validate a target submission count."""
  if not 1 <= n <= MAX_SUBMISSIONS:
    raise ValueError(f'submission count must be in 1..{MAX_SUBMISSIONS}, got {n}')
  return n


def _planned(weight: float, n: int) -> int:
  return max(0, min(n, math.floor(weight * n / 100)))


# -----------------------
# Batch generators
# -----------------------


def batch_single_choice(
  n: int, weights: WeightMap | None, rng: random.Random
) -> list[str]:
  """Exact-count batch for a single-select question.

  Each key appears floor(w * n / 100) times; the flooring shortfall goes to the
  highest-weight key (first in map order on ties); the list is then shuffled.
  """
  if n <= 0:
    return []
  if not weights:
    return [''] * n
  planned: list[str] = []
  for key, w in weights.items():
    planned.extend([key] * _planned(w, n))
  top = max(weights, key=weights.get)
  if len(planned) < n:
    planned.extend([top] * (n - len(planned)))
  rng.shuffle(planned)
  # over-allocated maps (sum > 100) are cut back to n after shuffling
  return planned[:n]


def batch_checkboxes(
  n: int, weights: WeightMap | None, rng: random.Random
) -> list[list[str]]:
  """Independent per-key selection for a checkbox question.

  Every key gets its own shuffled boolean array with exactly floor(w * n / 100)
  true entries, so inclusion of one key says nothing about another.
  """
  batch: list[list[str]] = [[] for _ in range(max(0, n))]
  if n <= 0 or not weights:
    return batch
  for key, w in weights.items():
    count = _planned(w, n)
    picks = [True] * count + [False] * (n - count)
    rng.shuffle(picks)
    for idx, selected in enumerate(picks):
      if selected:
        batch[idx].append(key)
  return batch


def planned_counts(values: list[Answer]) -> Counter:
  """Occurrences of each answer value (checkbox sets are flattened)."""
  c: Counter = Counter()
  for v in values:
    if isinstance(v, list):
      c.update(v)
    else:
      c[v] += 1
  return c


# -----------------------
# Grids
# -----------------------


def resolve_grid(
  item: FormItem,
  rng: random.Random,
  limit_one: bool = False,
  weights: GridWeights | None = None,
) -> dict[str, Answer]:
  """Pick one column per row for a single submission.

  With `limit_one` on a multiple-choice grid the columns are shuffled and
  dealt to rows in order; rows past the column count stay unanswered.
  Otherwise each row draws one column, weighted by its row weights when any
  are positive. Rows without an id have no wire key and are skipped.
  """
  result: dict[str, Answer] = {}
  cols = [c.label for c in item.columns]
  if not item.rows or not cols:
    return result
  if limit_one and item.type == QuestionType.MULTIPLE_CHOICE_GRID:
    shuffled = list(cols)
    rng.shuffle(shuffled)
    for idx, row in enumerate(item.rows):
      if row.id and idx < len(shuffled):
        result[row.id] = shuffled[idx]
    return result
  for row in item.rows:
    if not row.id:
      continue
    rw = (weights or {}).get(row.key)
    dist = [max(0.0, rw.get(c, 0.0)) for c in cols] if rw else None
    if dist and sum(dist) > 0:
      result[row.id] = rng.choices(cols, weights=dist)[0]
    else:
      result[row.id] = rng.choice(cols)
  return result


def random_grid_resolver(cfg: WeightConfig) -> GridResolver:
  """Grid resolver honouring the configured limits and row weights."""

  def _resolve(item: FormItem, rng: random.Random) -> dict[str, Answer]:
    return resolve_grid(
      item,
      rng,
      limit_one=cfg.grid_limits.get(item.id, False),
      weights=cfg.grid_weights.get(item.id),
    )

  return _resolve


# -----------------------
# Full schedule
# -----------------------


def _check_links(form: ParsedForm, links: Designations) -> None:
  if links.category_id is not None:
    cat = form.item(links.category_id)
    if cat.type not in BALANCED_TYPES:
      raise ValueError(
        f'Linked category {cat.id} must be single-select, got {cat.type.value}'
      )
  if links.name_id is not None:
    name = form.item(links.name_id)
    if name.type != QuestionType.SHORT_ANSWER:
      raise ValueError(
        f'Linked name {name.id} must be a short answer, got {name.type.value}'
      )


def build_schedule(
  form: ParsedForm, cfg: WeightConfig, n: int, rng: random.Random
) -> Schedule:
  """Plan every non-grid answer for n submissions.

  A linked category question is generated first so the name question can be
  derived from it index by index.
  """
  _check_links(form, cfg.links)
  schedule: Schedule = {}
  links = cfg.links

  if (
    links.category_id is not None
    and links.name_id is not None
    and cfg.weights.get(links.category_id)
  ):
    categories = batch_single_choice(n, cfg.weights[links.category_id], rng)
    schedule[links.category_id] = categories
    schedule[links.name_id] = linked_names(categories, rng)

  for item in form.items:
    if item.id in schedule or item.is_grid:
      continue
    if item.type in TEXT_TYPES:
      if item.id == links.name_id:
        schedule[item.id] = static_names(n, rng)
      else:
        schedule[item.id] = [UNMATCHED] * n
    elif item.type in BALANCED_TYPES:
      schedule[item.id] = batch_single_choice(n, cfg.weights.get(item.id), rng)
    elif item.type == QuestionType.CHECKBOXES:
      schedule[item.id] = batch_checkboxes(n, cfg.weights.get(item.id), rng)
  return schedule


# -----------------------
# Fixed-answer mode
# -----------------------


def _answered(value: object) -> bool:
  if value is None:
    return False
  if isinstance(value, str):
    return value.strip() != ''
  if isinstance(value, (list, tuple, dict)):
    return len(value) > 0
  return True


def missing_required(form: ParsedForm, answers: Mapping[str, object]) -> list[FormItem]:
  """Required questions the answer set leaves blank."""
  missing: list[FormItem] = []
  for item in form.items:
    if not item.required or item.type == QuestionType.SECTION_HEADER:
      continue
    value = answers.get(item.id)
    if item.is_grid:
      rows = value if isinstance(value, dict) else {}
      if not item.rows or any(not _answered(rows.get(r.key)) for r in item.rows):
        missing.append(item)
    elif not _answered(value):
      missing.append(item)
  return missing


def fixed_schedule(
  form: ParsedForm, answers: Mapping[str, object], n: int
) -> Schedule:
  """Repeat one prepared answer set for n submissions."""
  schedule: Schedule = {}
  for item in form.items:
    if item.is_grid or item.submission_id is None:
      continue
    value = answers.get(item.id)
    if not _answered(value):
      continue
    if isinstance(value, (list, tuple)):
      schedule[item.id] = [[str(v) for v in value] for _ in range(n)]
    else:
      schedule[item.id] = [str(value)] * n
  return schedule


def fixed_grid_resolver(answers: Mapping[str, object]) -> GridResolver:
  """Grid resolver that replays prepared `{row_key: column}` answers."""

  def _resolve(item: FormItem, rng: random.Random) -> dict[str, Answer]:
    rows = answers.get(item.id)
    result: dict[str, Answer] = {}
    if not isinstance(rows, dict):
      return result
    for row in item.rows:
      value = rows.get(row.key)
      if not row.id or not _answered(value):
        continue
      result[row.id] = (
        [str(v) for v in value] if isinstance(value, (list, tuple)) else str(value)
      )
    return result

  return _resolve
