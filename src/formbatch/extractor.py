"""Schema extraction from hosted form pages.

The page embeds its whole definition as a JSON array assigned to
`FB_PUBLIC_LOAD_DATA_` inside a script tag. Positions inside that array are
undocumented; the indices used below are the ones the hosted pages actually
serve.
"""

import json
from html.parser import HTMLParser
from typing import Any
from urllib.parse import urljoin

from .data import (
  CHOICE_TYPES,
  GRID_TYPES,
  ChoiceOption,
  ExtractionError,
  FormItem,
  GridDimension,
  ParsedForm,
  QuestionType,
)

DATA_MARKER = 'FB_PUBLIC_LOAD_DATA_'
DEFAULT_FORM_HOST = 'https://docs.google.com'

_TYPE_TABLE: dict[int, QuestionType] = {
  0: QuestionType.SHORT_ANSWER,
  1: QuestionType.PARAGRAPH,
  2: QuestionType.MULTIPLE_CHOICE,
  3: QuestionType.DROPDOWN,
  4: QuestionType.CHECKBOXES,
  5: QuestionType.LINEAR_SCALE,
  6: QuestionType.SECTION_HEADER,
  7: QuestionType.MULTIPLE_CHOICE_GRID,
  8: QuestionType.SECTION_HEADER,  # page break
  9: QuestionType.DATE,
  10: QuestionType.TIME,
  11: QuestionType.CHECKBOX_GRID,
  13: QuestionType.FILE_UPLOAD,
}
_PAGE_BREAK_CODE = 8


class _PageScanner(HTMLParser):
  """Collects the form action, the fbzx token, and every script body."""

  def __init__(self) -> None:
    super().__init__(convert_charrefs=True)
    self.action: str | None = None
    self.fbzx: str | None = None
    self.scripts: list[str] = []
    self._seen_form = False
    self._in_script = False
    self._buf: list[str] = []

  def handle_starttag(self, tag, attrs):
    a = dict(attrs)
    if tag == 'form' and not self._seen_form:
      self._seen_form = True
      self.action = a.get('action') or None
    elif tag == 'input' and a.get('name') == 'fbzx' and self.fbzx is None:
      self.fbzx = a.get('value') or None
    elif tag == 'script':
      self._in_script = True
      self._buf = []

  def handle_endtag(self, tag):
    if tag == 'script' and self._in_script:
      self.scripts.append(''.join(self._buf))
      self._in_script = False
      self._buf = []

  def handle_data(self, data):
    if self._in_script:
      self._buf.append(data)


# -----------------------
# Helpers
# -----------------------


def _at(seq: Any, *path: int) -> Any:
  """Safe nested index; returns None for any missing step."""
  cur = seq
  for i in path:
    if not isinstance(cur, list) or i >= len(cur) or i < -len(cur):
      return None
    cur = cur[i]
  return cur


def _text(v: Any) -> str:
  if v is None:
    return ''
  return str(v)


def _first(*values: Any, default: str = '') -> str:
  """Return the first truthy value as text."""
  for v in values:
    if v:
      return str(v)
  return default


def _to_int(v: Any, default: int) -> int:
  if v is None:
    return default
  try:
    return int(v)
  except (TypeError, ValueError):
    return default


def _load_payload(scripts: list[str]) -> list[Any]:
  """Find the data script and decode its JSON array."""
  script = next((s for s in scripts if DATA_MARKER in s), None)
  if script is None:
    raise ExtractionError('form data not detected')
  begin = script.find('[')
  end = script.rfind(';')
  if begin == -1 or end == -1 or end <= begin:
    raise ExtractionError('malformed payload: array boundaries not found')
  try:
    root = json.loads(script[begin:end].strip())
  except ValueError as e:
    raise ExtractionError(f'malformed payload: {e}') from e
  if not isinstance(root, list) or not isinstance(_at(root, 1), list):
    raise ExtractionError('unexpected schema shape: missing root data [1]')
  return root


def _parse_grid(raw_grid: list[Any], config: list[Any]) -> dict[str, Any]:
  limit = isinstance(_at(config, 4), list) and _at(config, 4, 0) == 1
  columns: list[GridDimension] = []
  col_source = _at(raw_grid, 0, 1)
  if isinstance(col_source, list):
    for c in col_source:
      label = _text(_at(c, 0))
      columns.append(GridDimension(label=label, id=label or None))
  rows: list[GridDimension] = []
  for r in raw_grid:
    label = _text(_at(r, 3))
    if not label:
      # padding entries carry no row label
      continue
    row_id = _at(r, 0)
    rows.append(
      GridDimension(label=label, id=str(row_id) if row_id is not None else None)
    )
  return {
    'limit_one_response_per_column': limit,
    'rows': tuple(rows),
    'columns': tuple(columns),
  }


def _parse_options(config: list[Any]) -> tuple[ChoiceOption, ...]:
  answers = _at(config, 1)
  if not isinstance(answers, list):
    return ()
  opts = []
  for opt in answers:
    label = _text(_at(opt, 0))
    opts.append(ChoiceOption(label=label, id=label or None))
  return tuple(opts)


def _parse_item(field: Any, index: int) -> FormItem | None:
  """Build one FormItem, or None when the raw definition is unusable."""
  if not isinstance(field, list) or len(field) < 4:
    return None
  type_code = field[3]
  qtype = _TYPE_TABLE.get(type_code, QuestionType.UNKNOWN)
  raw_grid = _at(field, 4)
  config = None
  if isinstance(raw_grid, list) and raw_grid and isinstance(raw_grid[0], list):
    config = raw_grid[0]
  if config is None and qtype != QuestionType.SECTION_HEADER:
    return None

  kwargs: dict[str, Any] = {
    'id': str(field[0]) if field[0] is not None else f'q-{index}',
    'index': index,
    'type': qtype,
    'title': _text(field[1]),
    'description': _text(field[2]),
    'is_page_break': type_code == _PAGE_BREAK_CODE,
  }
  if config is not None:
    kwargs['submission_id'] = _text(_at(config, 0)) or None
    kwargs['required'] = _at(config, 2) == 1
    if kwargs['submission_id'] is None and qtype != QuestionType.SECTION_HEADER:
      return None

  if qtype in GRID_TYPES and config is not None:
    kwargs.update(_parse_grid(raw_grid, config))
  elif qtype in CHOICE_TYPES and config is not None:
    kwargs['options'] = _parse_options(config)
  elif qtype == QuestionType.LINEAR_SCALE and config is not None:
    kwargs['scale_start_label'] = _text(_at(config, 3))
    kwargs['scale_end_label'] = _text(_at(config, 4))
    kwargs['scale_start'] = _to_int(_at(config, 5), 1)
    kwargs['scale_end'] = _to_int(_at(config, 6), 5)
  return FormItem(**kwargs)


# -----------------------
# Entry point
# -----------------------


def extract(html: str, form_host: str = DEFAULT_FORM_HOST) -> ParsedForm:
  """Parse a form page into a ParsedForm.

  Args:
    html: Raw page HTML.
    form_host: Origin used to resolve a relative form action.

  Returns:
    The parsed, immutable form schema.

  Raises:
    ExtractionError: when the data script is missing or cannot be decoded.
  """
  scanner = _PageScanner()
  scanner.feed(html)
  scanner.close()

  action = scanner.action
  if action and not action.startswith('http'):
    action = urljoin(form_host, action)

  root = _load_payload(scanner.scripts)
  raw_items = _at(root, 1, 1)
  items: list[FormItem] = []
  if isinstance(raw_items, list):
    for index, field in enumerate(raw_items):
      item = _parse_item(field, index)
      if item is not None:
        items.append(item)

  return ParsedForm(
    title=_first(_at(root, 1, 8), _at(root, 3), default='Untitled Form'),
    description=_first(_at(root, 1, 0)),
    form_id=_first(_at(root, 14)),
    document_title=_first(_at(root, 3)),
    action_url=action,
    fbzx=scanner.fbzx,
    items=tuple(items),
  )
