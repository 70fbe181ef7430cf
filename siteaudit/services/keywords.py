"""
Frequency-based keyword extraction: case-folded alphabetic tokens of three
or more letters, stopwords removed, most frequent first, ties broken by
first occurrence. Needs no language model.
"""
import re
from typing import Dict, List

_TOKEN = re.compile(r"[a-z]{3,}")

STOPWORDS = frozenset("""
a about above after again against all also and any are aren as at be because been before being
below between both but by can cannot could did didn do does doesn doing don down during each
few for from further get got had has have having he her here hers herself him himself his how
http https into is isn it its itself just let like may more most must my myself new nor not
null of off on once only or other our ours ourselves out over own same she should so some such
than that the their theirs them themselves then there these they this those through too true
under until use used using very was wasn way we were what when where which while who whom why
will with won would www yes yet you your yours yourself yourselves com false one two
""".split())


def extract_keywords(body_text: str, limit: int = 15) -> List[str]:
    if limit <= 0 or not body_text:
        return []
    counts: Dict[str, int] = {}
    first_seen: Dict[str, int] = {}
    for position, token in enumerate(_TOKEN.findall(body_text.lower())):
        if token in STOPWORDS:
            continue
        counts[token] = counts.get(token, 0) + 1
        first_seen.setdefault(token, position)
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))
    return ranked[:limit]
