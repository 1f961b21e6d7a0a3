"""Core data structures for formbatch.

Defines the parsed form schema, schedules, log entries, run results, and the
error taxonomy shared by the extractor, planner, and dispatcher.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class QuestionType(str, Enum):
  """Closed set of question kinds found in a form definition."""

  SHORT_ANSWER = 'SHORT_ANSWER'
  PARAGRAPH = 'PARAGRAPH'
  MULTIPLE_CHOICE = 'MULTIPLE_CHOICE'
  CHECKBOXES = 'CHECKBOXES'
  DROPDOWN = 'DROPDOWN'
  LINEAR_SCALE = 'LINEAR_SCALE'
  DATE = 'DATE'
  TIME = 'TIME'
  SECTION_HEADER = 'SECTION_HEADER'
  FILE_UPLOAD = 'FILE_UPLOAD'
  MULTIPLE_CHOICE_GRID = 'MULTIPLE_CHOICE_GRID'
  CHECKBOX_GRID = 'CHECKBOX_GRID'
  UNKNOWN = 'UNKNOWN'


# Single-select families: weights sum to 100.
BALANCED_TYPES: frozenset[QuestionType] = frozenset(
  {
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.DROPDOWN,
    QuestionType.LINEAR_SCALE,
  }
)
CHOICE_TYPES: frozenset[QuestionType] = frozenset(
  {
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.CHECKBOXES,
    QuestionType.DROPDOWN,
  }
)
GRID_TYPES: frozenset[QuestionType] = frozenset(
  {QuestionType.MULTIPLE_CHOICE_GRID, QuestionType.CHECKBOX_GRID}
)
TEXT_TYPES: frozenset[QuestionType] = frozenset(
  {QuestionType.SHORT_ANSWER, QuestionType.PARAGRAPH}
)

LogStatus = Literal['success', 'error', 'info', 'stopped']
RunStatus = Literal['idle', 'running', 'stopped', 'completed']

# Answer value for one submission: a single string or a checkbox set.
Answer = str | list[str]
WeightMap = dict[str, float]
Schedule = dict[str, list[Answer]]


@dataclass(frozen=True)
class ChoiceOption:
  """One selectable option of a choice question."""

  label: str
  id: str | None = None

  @property
  def key(self) -> str:
    return self.id or self.label


@dataclass(frozen=True)
class GridDimension:
  """One grid row or column. Row ids address the wire field."""

  label: str
  id: str | None = None

  @property
  def key(self) -> str:
    return self.id or self.label


@dataclass(frozen=True)
class FormItem:
  """A single question or structural element of a form."""

  id: str
  index: int
  type: QuestionType
  title: str = ''
  description: str = ''
  submission_id: str | None = None
  required: bool = False
  limit_one_response_per_column: bool = False
  is_page_break: bool = False
  options: tuple[ChoiceOption, ...] = ()
  scale_start: int | None = None
  scale_end: int | None = None
  scale_start_label: str | None = None
  scale_end_label: str | None = None
  rows: tuple[GridDimension, ...] = ()
  columns: tuple[GridDimension, ...] = ()

  @property
  def is_grid(self) -> bool:
    return self.type in GRID_TYPES

  def scale_values(self) -> list[int]:
    """Inclusive list of values on a linear scale."""
    start = self.scale_start if self.scale_start is not None else 1
    end = self.scale_end if self.scale_end is not None else 5
    return list(range(start, end + 1))


@dataclass(frozen=True)
class ParsedForm:
  """Structured schema extracted from a form page."""

  title: str
  description: str
  form_id: str = ''
  document_title: str = ''
  action_url: str | None = None
  fbzx: str | None = None
  items: tuple[FormItem, ...] = ()

  @property
  def page_break_count(self) -> int:
    return sum(1 for i in self.items if i.is_page_break)

  def item(self, item_id: str) -> FormItem:
    """Look up an item by its internal id."""
    for it in self.items:
      if it.id == item_id:
        return it
    raise KeyError(f'Unknown form item: {item_id}')


@dataclass
class LogEntry:
  """Dispatcher log record."""

  id: int
  status: LogStatus
  message: str
  timestamp: str


@dataclass
class RunResult:
  """Outcome of one dispatch run."""

  status: RunStatus
  total: int
  attempted: int = 0
  succeeded: int = 0
  failed: int = 0
  credits_deducted: int = 0
  log: list[LogEntry] = field(default_factory=list)


# -----------------------
# Errors
# -----------------------


class FormBatchError(Exception):
  """Base class for formbatch errors."""


class ExtractionError(FormBatchError):
  """The HTML did not yield a usable form schema."""


class FetchExhaustionError(FormBatchError):
  """Every HTML source failed."""


class SubmissionNetworkError(FormBatchError):
  """A submission POST failed at the network level."""


class LedgerError(FormBatchError):
  """The credit ledger rejected or failed a deduction."""


class DispatchError(FormBatchError):
  """A run cannot start (e.g. no action URL)."""
