"""Event sinks for dispatcher progress and log entries.

The dispatcher only knows the `EventSink` protocol; `RunLogger` is the
console/JSONL implementation used by the CLI.
"""

import json
import os
import sys
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol

from .data import LogEntry


class EventSink(Protocol):
  """Receives dispatcher log entries and progress."""

  def on_log(self, entry: LogEntry) -> None: ...

  def on_progress(self, done: int, total: int) -> None: ...


@dataclass(slots=True)
class RunLogger:
  """Tee logger that writes JSON lines to a file and prints pretty console lines."""

  path: str | None
  enabled: bool = True
  stdout_format: str = 'auto'  # "auto" | "json" | "pretty"
  _fh: Any | None = field(init=False, default=None)
  _t0: float = field(init=False, default_factory=time.time)
  _total: int = field(init=False, default=0)
  _done: int = field(init=False, default=0)
  _use_color: bool = field(init=False, default=False)
  _use_pretty: bool = field(init=False, default=False)

  def __post_init__(self) -> None:
    """Initialize sinks and console mode."""
    if self.enabled and self.path:
      self._fh = open(self.path, 'a', encoding='utf-8')

    if self.stdout_format == 'pretty':
      self._use_pretty = True
    elif self.stdout_format == 'json':
      self._use_pretty = False
    else:  # auto
      self._use_pretty = sys.stdout.isatty()

    self._use_color = (
      self._use_pretty
      and sys.stdout.isatty()
      and os.environ.get('NO_COLOR') is None
      and os.environ.get('TERM') not in {'dumb', None}
    )

  # ---------- EventSink ----------

  def on_log(self, entry: LogEntry) -> None:
    """Emit one entry to console (pretty or JSON) and to file as JSONL."""
    if not self.enabled:
      return
    record = {'event': 'log', **asdict(entry), 'progress': self._done}
    line_json = json.dumps(record, ensure_ascii=False)
    if self._fh:
      self._fh.write(line_json + '\n')
      self._fh.flush()
    if self._use_pretty:
      print(self._format_pretty_line(entry))
    else:
      print(line_json)
    sys.stdout.flush()

  def on_progress(self, done: int, total: int) -> None:
    self._done, self._total = done, total

  def close(self) -> None:
    """Close file handle if open."""
    if self._fh:
      self._fh.close()
      self._fh = None

  # ---------- Pretty formatting ----------

  def _format_pretty_line(self, e: LogEntry) -> str:
    t_rel = self._style(self._since_start(), 'grey')
    n = self._style(f'{e.id:04d}', 'grey')
    bar = self._style(f'[{self._done}/{self._total}]', 'grey') if self._total else ''
    if e.status == 'success':
      mark = self._style('OK', 'green', bold=True)
    elif e.status == 'error':
      mark = self._style('ERR', 'red', bold=True)
    elif e.status == 'stopped':
      mark = self._style('STOP', 'yellow', bold=True)
    else:
      mark = self._style('..', 'cyan')
    return '  '.join(p for p in (n, t_rel, bar, mark, e.message) if p)

  def _since_start(self) -> str:
    """Format elapsed time since logger start."""
    dt = time.time() - self._t0
    if dt < 60:
      return f'+{dt:05.2f}s'
    m, s = divmod(int(dt), 60)
    return f'+{m:02d}m{s:02d}s'

  def _style(self, s: str, color: str, bold: bool = False) -> str:
    """Apply ANSI color/bold if enabled."""
    if not self._use_color:
      return s
    codes = {
      'grey': '90',
      'red': '31',
      'green': '32',
      'yellow': '33',
      'cyan': '36',
    }
    parts = []
    if bold:
      parts.append('1')
    c = codes.get(color)
    if c:
      parts.append(c)
    if not parts:
      return s
    return f'\033[{";".join(parts)}m{s}\033[0m'
