import re

_PUNCT_RE = re.compile(r"[^\w\s]")


def tokenize(text: str) -> set[str]:
    """Lowercase, punctuation-stripped token set."""
    if not text:
        return set()
    return set(_PUNCT_RE.sub("", text.lower()).split())


def keywords(text: str, min_length: int = 3) -> frozenset[str]:
    return frozenset(t for t in tokenize(text) if len(t) >= min_length)


def text_similarity(text1: str, text2: str) -> float:
    """Jaccard similarity of the two token sets; 0.0 when both are empty."""
    set1 = tokenize(text1)
    set2 = tokenize(text2)
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)
