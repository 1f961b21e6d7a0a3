"""Weight model: per-question answer weights and their editing rules.

Balanced maps (single-select) always sum to 100; editing one key rescales the
others. Independent maps (checkboxes) hold one probability per key.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from .data import BALANCED_TYPES, FormItem, ParsedForm, QuestionType, WeightMap

GridWeights = dict[str, WeightMap]


@dataclass
class Designations:
  """Questions linked by the correlation engine."""

  category_id: str | None = None
  name_id: str | None = None


@dataclass
class WeightConfig:
  """Everything the configuration surface hands to the planner for one run."""

  weights: dict[str, WeightMap] = field(default_factory=dict)
  grid_weights: dict[str, GridWeights] = field(default_factory=dict)
  grid_limits: dict[str, bool] = field(default_factory=dict)
  links: Designations = field(default_factory=Designations)


# -----------------------
# Defaults
# -----------------------


def _even(keys: list[str]) -> WeightMap:
  if not keys:
    return {}
  share = 100 / len(keys)
  return {k: share for k in keys}


def item_weights(item: FormItem) -> WeightMap | None:
  """Default weights for a non-grid item, or None when it takes none."""
  if item.type in (QuestionType.MULTIPLE_CHOICE, QuestionType.DROPDOWN):
    if item.options:
      return _even([o.key for o in item.options])
  elif item.type == QuestionType.CHECKBOXES:
    if item.options:
      return {o.key: 50.0 for o in item.options}
  elif item.type == QuestionType.LINEAR_SCALE:
    return _even([str(v) for v in item.scale_values()])
  return None


def grid_weights(item: FormItem) -> GridWeights | None:
  """Default per-row column weights for a grid item."""
  if not item.is_grid or not item.columns:
    return None
  cols = [c.label for c in item.columns]
  out: GridWeights = {}
  for row in item.rows:
    if item.type == QuestionType.CHECKBOX_GRID:
      out[row.key] = {c: 50.0 for c in cols}
    else:
      out[row.key] = _even(cols)
  return out


def initial_weights(form: ParsedForm) -> dict[str, WeightMap]:
  """Default weight maps for every weighted non-grid item."""
  out: dict[str, WeightMap] = {}
  for item in form.items:
    w = item_weights(item)
    if w is not None:
      out[item.id] = w
  return out


def initial_grid_weights(form: ParsedForm) -> dict[str, GridWeights]:
  out: dict[str, GridWeights] = {}
  for item in form.items:
    w = grid_weights(item)
    if w is not None:
      out[item.id] = w
  return out


def initial_grid_limits(form: ParsedForm) -> dict[str, bool]:
  """Limit-one-per-column toggles, seeded from the extracted flag."""
  return {
    item.id: item.limit_one_response_per_column
    for item in form.items
    if item.type == QuestionType.MULTIPLE_CHOICE_GRID
  }


def default_config(form: ParsedForm) -> WeightConfig:
  return WeightConfig(
    weights=initial_weights(form),
    grid_weights=initial_grid_weights(form),
    grid_limits=initial_grid_limits(form),
  )


# -----------------------
# Editing rules
# -----------------------


def _clamp(v: float) -> float:
  return max(0.0, min(100.0, float(v)))


def set_balanced(weights: WeightMap, key: str, value: float) -> WeightMap:
  """Set one key and rescale the rest so the map still sums to 100."""
  if key not in weights:
    raise KeyError(f'Unknown weight key: {key}')
  others = [k for k in weights if k != key]
  if not others:
    return {key: 100.0}
  v = _clamp(value)
  remaining = 100.0 - v
  prior = sum(weights[k] for k in others)
  out = dict(weights)
  out[key] = v
  if prior == 0:
    share = remaining / len(others)
    for k in others:
      out[k] = share
  else:
    ratio = remaining / prior
    for k in others:
      out[k] = weights[k] * ratio
  return out


def set_independent(weights: WeightMap, key: str, value: float) -> WeightMap:
  """Set one key; other keys are untouched."""
  if key not in weights:
    raise KeyError(f'Unknown weight key: {key}')
  out = dict(weights)
  out[key] = _clamp(value)
  return out


def set_weight(
  form: ParsedForm,
  cfg: WeightConfig,
  item_id: str,
  key: str,
  value: float,
  row: str | None = None,
) -> None:
  """Apply one edit to `cfg` using the discipline of the item's type.

  Grid items need `row`. A multiple-choice grid limited to one response per
  column deals its columns out instead of weighting them, so edits to it are
  rejected until the limit is switched off.
  """
  item = form.item(item_id)
  if item.is_grid:
    if row is None:
      raise ValueError(f'Grid item {item_id} needs a row key')
    if item.type == QuestionType.MULTIPLE_CHOICE_GRID and cfg.grid_limits.get(
      item.id
    ):
      raise ValueError(
        f'Grid item {item_id} allows one response per column; '
        'disable its limit before weighting rows'
      )
    rows = cfg.grid_weights.setdefault(item.id, grid_weights(item) or {})
    if row not in rows:
      raise KeyError(f'Unknown grid row: {row}')
    if item.type == QuestionType.CHECKBOX_GRID:
      rows[row] = set_independent(rows[row], key, value)
    else:
      rows[row] = set_balanced(rows[row], key, value)
    return
  current = cfg.weights.get(item.id)
  if current is None:
    current = item_weights(item)
    if current is None:
      raise ValueError(f'Item {item_id} ({item.type.value}) takes no weights')
  if item.type in BALANCED_TYPES:
    cfg.weights[item.id] = set_balanced(current, key, value)
  else:
    cfg.weights[item.id] = set_independent(current, key, value)


# -----------------------
# Persistence
# -----------------------


def config_to_dict(cfg: WeightConfig) -> dict[str, Any]:
  return {
    'weights': cfg.weights,
    'grid_weights': cfg.grid_weights,
    'grid_limits': cfg.grid_limits,
    'links': {'category': cfg.links.category_id, 'name': cfg.links.name_id},
  }


def dump_weight_config(cfg: WeightConfig, path: str) -> None:
  """Write a weight config as JSON."""
  with open(path, 'w', encoding='utf-8') as f:
    json.dump(config_to_dict(cfg), f, indent=2, ensure_ascii=False)


def load_weight_config(path: str, form: ParsedForm) -> WeightConfig:
  """Read a weights JSON file and merge it onto the form's defaults.

  Maps in the file replace the default map of the same item wholesale;
  unknown item ids are ignored.
  """
  with open(path, 'r', encoding='utf-8') as f:
    raw = json.load(f)
  if not isinstance(raw, dict):
    raise ValueError(f'Weights file {path} must hold a JSON object')
  cfg = default_config(form)
  known = {i.id for i in form.items}
  for item_id, w in (raw.get('weights') or {}).items():
    if item_id in known:
      cfg.weights[item_id] = {str(k): float(v) for k, v in w.items()}
  for item_id, rows in (raw.get('grid_weights') or {}).items():
    if item_id in known:
      cfg.grid_weights[item_id] = {
        str(r): {str(k): float(v) for k, v in w.items()}
        for r, w in rows.items()
      }
  for item_id, flag in (raw.get('grid_limits') or {}).items():
    if item_id in cfg.grid_limits:
      cfg.grid_limits[item_id] = bool(flag)
  links = raw.get('links') or {}
  cfg.links = Designations(
    category_id=links.get('category'), name_id=links.get('name')
  )
  return cfg
