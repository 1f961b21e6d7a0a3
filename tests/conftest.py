import json

import pytest

from formbatch.extractor import extract

ITEMS = [
  [1001, 'Your name', '', 0, [[2001, None, 1]]],
  [1002, 'Gender', '', 2, [[2002, [['Male'], ['Female'], ['Other']], 1]]],
  [1003, 'Hobbies', 'Pick any', 4, [[2003, [['Music'], ['Sport']], 0]]],
  [1004, 'Rate us', '', 5, [[2004, [['1'], ['2'], ['3'], ['4'], ['5']], 0, 'Bad', 'Good', 1, 5]]],
  [1005, 'Page two', '', 8, None],
  [
    1006,
    'Rank these',
    '',
    7,
    [
      [3001, [['A'], ['B'], ['C']], 1, 'Row 1', [1]],
      [3002, [['A'], ['B'], ['C']], 1, 'Row 2', [1]],
      [3003, [['A'], ['B'], ['C']], 1, 'Row 3', [1]],
      [3004, None, 0, ''],
    ],
  ],
  [1007, 'Page three', '', 8, []],
  [1008, 'Broken'],
  [1009, 'When', '', 9, None],
  [1010, 'City', '', 3, [[2010, [['X'], ['Y']], 0]]],
]


def build_root(items=None):
  inner = ['A short survey', items if items is not None else ITEMS]
  inner += [None] * 6 + ['Survey title']
  root = [None, inner, None, 'Survey doc'] + [None] * 10 + ['form-123']
  return root


def build_html(root=None, action='/forms/d/e/abc/formResponse', fbzx='-4242'):
  root = build_root() if root is None else root
  form = f'<form action="{action}" method="POST">' if action else '<form>'
  token = f'<input type="hidden" name="fbzx" value="{fbzx}">' if fbzx else ''
  return (
    '<html><head><title>Survey</title></head><body>'
    f'{form}{token}</form>'
    '<script>var unrelated = [1, 2];</script>'
    '<script type="text/javascript">var FB_PUBLIC_LOAD_DATA_ = '
    f'{json.dumps(root)}\n;</script>'
    '</body></html>'
  )


@pytest.fixture
def form_html():
  return build_html()


@pytest.fixture
def form(form_html):
  return extract(form_html)


@pytest.fixture
def make_html():
  return build_html


@pytest.fixture
def make_root():
  return build_root
