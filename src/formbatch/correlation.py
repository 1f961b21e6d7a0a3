"""Cross-field correlation: a categorical answer drives a name answer.

When a gender-like question and a name question are linked, each submission's
name is drawn from the pool matching that submission's category value, so
the two columns agree row by row.
"""

import random
from collections.abc import Sequence

MALE_NAMES: tuple[str, ...] = (
  'Ravichandran', 'Prasannakumar', 'Revanthkumar', 'Rajadurai', 'Kavinesh',
  'Aravindan', 'Anbumalar', 'Keshwant', 'Nidhesh', 'Harinath',
  'Ilanchezhiyan', 'Nishanth', 'Adhavan', 'Akshay', 'Rakesh', 'Elangovan',
  'Darshan', 'Sharan', 'Agamaran', 'Madhavanraj', 'Inbanathan', 'Akathiyan',
  'Arunaachalam', 'Aadhithya', 'Saranraj', 'Bhagavan', 'Charuvik',
  'Devaananth', 'Litesh', 'Dhina', 'Rajanathan', 'Bharat', 'Nilavan',
  'Dhilip', 'Aariv', 'Nirmalkumar', 'Arvind', 'Oviyan', 'Lavanyan',
  'Mugilan', 'Jeyan', 'Tarun', 'Lakshminarayan', 'Aravath', 'Boobalan',
  'Krithin', 'Nalan', 'Elumalai', 'Madhesh', 'Nithin', 'Malaravan', 'Aadhit',
  'Murali', 'Balamurali', 'Anandan', 'Pritiv', 'Elavarasan', 'Dayanand',
  'Murugaraj', 'Mathisoodan', 'Karthik', 'Ezhilvendhan', 'Punithan',
  'Gokulnath', 'Gopinath', 'Rishikesh', 'Ramesh', 'Annamalai', 'Haribaskar',
  'Pramodkumar', 'Ravishankar', 'Janakiraman', 'Ainkaran', 'Balaji',
  'Aarathiyan', 'Jayaraman', 'Anthuvan', 'Aaruthiran', 'Nandha', 'Sanjeev',
  'Adhishwar', 'Mani', 'Nikhilan', 'Nigilan', 'Nihar', 'Dayanithi',
  'Aathireyan', 'Nibunraj', 'Geethan', 'Anantharaj', 'Nagarajan', 'Rishi',
  'Balamurugan', 'Pradeepkumar', 'Prithviraj', 'Nithyanandam', 'Naveenkumar',
  'Hemeshwar', 'Haresh', 'Kalaiarasan',
)

FEMALE_NAMES: tuple[str, ...] = (
  'Charusree', 'Jeyanthi', 'Janaki', 'Dhanya', 'Hasini', 'Meera', 'Sumathi',
  'Kavika', 'Nithyasree', 'Idhaya', 'Lipika', 'Kala', 'Indira', 'Ishika',
  'Poonam', 'Sujatha', 'Haritha', 'Jnanika', 'Amutha', 'Iraivi', 'Maanasa',
  'Bhavadhaarini', 'Chandrika', 'Isaimani', 'Ashwika', 'Ezhilovya', 'Madhura',
  'Nethra', 'Mohana', 'Sathyaabama', 'Elakiya', 'Gokila', 'Ashna', 'Pavithra',
  'Anupriya', 'Barkavi', 'Kalaichudar', 'Jashvika', 'Gajalila', 'Aaral',
  'Sneha', 'Ezhilarasi', 'Rishika', 'Grishma', 'Charu', 'Padmavathy',
  'Abhirami', 'Nithika', 'Jayani', 'Ilakkiya',
)

UNMATCHED = 'N/A'

# 'female' contains 'male', so it must be tested first.
CATEGORY_POOLS: tuple[tuple[str, tuple[str, ...]], ...] = (
  ('female', FEMALE_NAMES),
  ('male', MALE_NAMES),
)

# Share of pool-A (male) names when no category question is linked.
STATIC_MAJORITY = 0.6


def pool_for(category: str) -> tuple[str, ...] | None:
  """Name pool matching a category value, or None."""
  lower = category.lower()
  for token, pool in CATEGORY_POOLS:
    if token in lower:
      return pool
  return None


def linked_names(categories: Sequence[str], rng: random.Random) -> list[str]:
  """One name per category value, drawn from the matching pool."""
  out: list[str] = []
  for value in categories:
    pool = pool_for(value or '')
    out.append(rng.choice(pool) if pool else UNMATCHED)
  return out


def static_names(n: int, rng: random.Random) -> list[str]:
  """Fixed 60/40 male/female split, shuffled, for an unlinked name field."""
  majority = int(n * STATIC_MAJORITY)
  names = [rng.choice(MALE_NAMES) for _ in range(majority)]
  names += [rng.choice(FEMALE_NAMES) for _ in range(n - majority)]
  rng.shuffle(names)
  return names
