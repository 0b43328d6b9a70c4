"""
Team identity matching for game results.

Stats providers say "Wisconsin", score feeds say "Wisconsin Badgers" or
"WIS".  :func:`team_matches` decides whether a team is a given side of a game
and is the only place that makes that call.  It is pure, deterministic and
total: any input, including ``None`` or non-strings, returns a bool.

Name-subset pairs are the hard case.  "Wisconsin" vs "Wisconsin Badgers" is
the same team; "Kansas" vs "Kansas State" and "Colorado" vs "Northern
Colorado" are not.  The rules below accept an extra trailing mascot and
reject a campus qualifier after the shared name or a directional/regional
qualifier before it.
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional

from rapidfuzz import fuzz

#: Tokens that, following a shared school name, denote a different school.
CAMPUS_QUALIFIERS: frozenset[str] = frozenset({
    "state", "tech", "a&m", "am", "christian", "southern", "international",
    "poly", "baptist", "wesleyan", "oh", "fl", "ohio", "florida", "upstate",
    "valley", "atlantic", "gulf", "coast", "central", "northern", "eastern",
    "western",
})

#: Tokens that, preceding a shared school name, denote a different school.
REGIONAL_QUALIFIERS: frozenset[str] = frozenset({
    "north", "northern", "south", "southern", "east", "eastern", "west",
    "western", "central", "northeast", "northeastern", "northwest",
    "northwestern", "southeast", "southeastern", "southwest", "southwestern",
    "coastal", "middle", "upper", "new", "little", "ut", "uc", "cal", "unc",
    "ul", "ole", "texas", "loyola", "saint",
})

_FUZZY_CUTOFF = 92

_ABBREVIATIONS = {
    "univ": "university",
    "u": "university",
    "intl": "international",
    "int'l": "international",
    "mt": "mount",
    "ft": "fort",
    "n": "north",
    "s": "south",
    "e": "east",
    "w": "west",
}

_PUNCT_RE = re.compile(r"[^a-z0-9& ]+")
_SPACE_RE = re.compile(r"\s+")


def normalize_team_name(name) -> str:
    """Lowercase, strip punctuation and expand common abbreviations.

    A leading "St." becomes "saint"; anywhere else it becomes "state".
    A leading "University of" / "The" is dropped.
    """
    if not isinstance(name, str):
        return ""
    text = name.lower().replace("'", "").replace(".", " ").replace("-", " ")
    text = _PUNCT_RE.sub(" ", text)
    tokens = _SPACE_RE.sub(" ", text).strip().split(" ")
    tokens = [t for t in tokens if t]
    if not tokens:
        return ""

    out = []
    for i, token in enumerate(tokens):
        if token == "st":
            out.append("saint" if i == 0 else "state")
        else:
            out.append(_ABBREVIATIONS.get(token, token))

    if out[0] == "the":
        out = out[1:]
    if len(out) > 2 and out[0] == "university" and out[1] == "of":
        out = out[2:]
    return " ".join(out)


def _clean_key(key) -> str:
    if not isinstance(key, str):
        return ""
    return re.sub(r"[^a-z0-9&]", "", key.lower())


def _key_matches(tokens: list[str], key: str, team_code: Optional[str]) -> bool:
    if not key:
        return False
    code = _clean_key(team_code)
    if code and key == code:
        return True
    if key == "".join(tokens):
        return True
    if len(tokens) >= 2 and key == "".join(t[0] for t in tokens):
        return True
    # "KAN" for "Kansas Jayhawks", but not for "Kansas State"
    if len(key) >= 3 and tokens[0].startswith(key):
        return len(tokens) == 1 or tokens[1] not in CAMPUS_QUALIFIERS
    return False


def _subset_matches(a: list[str], b: list[str]) -> bool:
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    n = len(shorter)
    if n == 0 or n == len(longer):
        return False

    # "Wisconsin" vs "Wisconsin Badgers"
    if longer[:n] == shorter:
        return longer[n] not in CAMPUS_QUALIFIERS

    # "Badgers" vs "Wisconsin Badgers", but not "Colorado" vs "Northern Colorado"
    if longer[-n:] == shorter:
        if n == 1 and shorter[0] in CAMPUS_QUALIFIERS:
            return False
        return longer[0] not in REGIONAL_QUALIFIERS

    return False


def team_matches(
    team_name,
    game_team_name,
    game_team_key=None,
    team_code=None,
) -> bool:
    """Return True when ``team_name`` is the team recorded as ``game_team_name``.

    Rules, first hit wins:

    1. normalised names are equal;
    2. the game's short key equals the team code, the name's initials, the
       joined name, or (3+ chars) a prefix of its first word;
    3. one name extends the other by a trailing mascot, unless the extra
       words start with a campus qualifier, or prefixes it with a leading
       city, unless that leading word is a regional qualifier;
    4. rapidfuzz token-sort ratio >= 92 on the normalised names.
    """
    a = normalize_team_name(team_name)
    if not a:
        return False
    tokens_a = a.split(" ")

    if _key_matches(tokens_a, _clean_key(game_team_key), team_code):
        return True

    b = normalize_team_name(game_team_name)
    if not b:
        return False
    if a == b:
        return True

    if _subset_matches(tokens_a, b.split(" ")):
        return True

    return fuzz.token_sort_ratio(a, b) >= _FUZZY_CUTOFF


def resolve_side(
    team_name,
    home_team,
    away_team,
    home_key=None,
    away_key=None,
    team_code=None,
) -> Optional[str]:
    """``"home"``, ``"away"`` or ``None`` for a team in a game.

    When both sides match (e.g. "Kansas" against "Kansas Jayhawks" and
    "Kansas Wildcats") an exact normalised match decides; otherwise None.
    """
    is_home = team_matches(team_name, home_team, home_key, team_code)
    is_away = team_matches(team_name, away_team, away_key, team_code)
    if is_home and not is_away:
        return "home"
    if is_away and not is_home:
        return "away"
    if is_home and is_away:
        norm = normalize_team_name(team_name)
        if norm == normalize_team_name(home_team):
            return "home"
        if norm == normalize_team_name(away_team):
            return "away"
    return None


class TeamGameView(NamedTuple):
    """One game seen from a team's side."""

    side: str
    team_score: float
    opponent_score: float
    opponent_name: str
    opponent_key: Optional[str]
    won: bool

    @property
    def margin(self) -> float:
        return self.team_score - self.opponent_score


def game_perspective(team_name, game, team_code=None) -> Optional[TeamGameView]:
    """View ``game`` from ``team_name``'s side, or None if the team isn't in it.

    Scores decide the result; an explicit ``winner`` only breaks a level score.
    """
    side = resolve_side(
        team_name,
        getattr(game, "home_team", None),
        getattr(game, "away_team", None),
        getattr(game, "home_team_key", None),
        getattr(game, "away_team_key", None),
        team_code,
    )
    if side is None:
        return None

    home_score = float(getattr(game, "home_score", 0.0) or 0.0)
    away_score = float(getattr(game, "away_score", 0.0) or 0.0)
    if side == "home":
        team_score, opp_score = home_score, away_score
        opp_name, opp_key = game.away_team, getattr(game, "away_team_key", None)
    else:
        team_score, opp_score = away_score, home_score
        opp_name, opp_key = game.home_team, getattr(game, "home_team_key", None)

    if team_score != opp_score:
        won = team_score > opp_score
    else:
        won = team_matches(
            team_name, getattr(game, "winner", None), getattr(game, "winner_key", None), team_code
        )
    return TeamGameView(side, team_score, opp_score, opp_name, opp_key, won)
