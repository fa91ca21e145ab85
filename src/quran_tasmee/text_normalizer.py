"""
Arabic text normalization for comparing recited and reference words.
"""

import itertools
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from .tasmee_typing import RecognizedToken, ReferenceToken, ReferenceUnit


logger = logging.getLogger(__name__)

# The small floating alef in words like 'Ar-Rahman'. It is pronounced, so it
# becomes a real alef instead of being stripped with the other marks.
SUPERSCRIPT_ALEF = "\u0670"
ALEF = "\u0627"

# Tashkeel, Quranic annotation and pause signs, extended Arabic marks, tatweel
DIACRITICS_RE = re.compile(r"[\u0610-\u061A\u064B-\u065F\u06D6-\u06ED\u08D3-\u08FF\u0640]")

# Punctuation that speech engines glue onto words
PUNCTUATION_RE = re.compile(r"[\u060C\u061B\u061F\u06D4.,!?:;\"()\[\]\u00AB\u00BB]")

# Hamza-on-alef forms, alef with madda, alef wasla, wavy hamza forms
ALEF_VARIANTS_RE = re.compile(r"[\u0622\u0623\u0625\u0671\u0672\u0673]")
ALEF_MAQSURA = "\u0649"
YAA = "\u064A"
TAA_MARBUTA = "\u0629"
HAA = "\u0647"

WHITESPACE_RE = re.compile(r"\s+")


# Spoken names of the disjointed letters, already folded (no hamza, no taa marbuta)
LETTER_NAMES: Dict[str, List[str]] = {
    "ا": ["الف", "اليف"],
    "ل": ["لام"],
    "م": ["ميم"],
    "ص": ["صاد"],
    "ر": ["را", "راء"],
    "ك": ["كاف"],
    "ه": ["ها", "هاء"],
    "ي": ["يا", "ياء"],
    "ع": ["عين"],
    "ط": ["طا", "طاء"],
    "س": ["سين"],
    "ح": ["حا", "حاء"],
    "ق": ["قاف"],
    "ن": ["نون"],
}

# The letter sequences that open surahs (Mottaqta'at)
MOTTAQTAAT = [
    "الم", "المص", "الر", "المر", "كهيعص", "طه", "طسم", "طس",
    "يس", "ص", "حم", "عسق", "ق", "ن",
]

# Joined spellings the speech engines produce for a few of them
JOINED_SPELLINGS = {
    "ياسين": "يس",
    "طاها": "طه",
    "حاميم": "حم",
    "طاسين": "طس",
    "طاسين ميم": "طسم",
}


def build_spoken_letter_table(
    letter_names: Optional[Dict[str, List[str]]] = None,
    sequences: Optional[Iterable[str]] = None,
    extra: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """
    Build the {spoken phrase: canonical form} table.

    Every way of naming each letter of every sequence is expanded, so
    'الف لام ميم' and 'اليف لام ميم' both map to 'الم'.
    """
    letter_names = LETTER_NAMES if letter_names is None else letter_names
    sequences = MOTTAQTAAT if sequences is None else sequences

    table: Dict[str, str] = {}
    for sequence in sequences:
        options = [letter_names.get(letter) for letter in sequence]
        if not all(options):
            logger.debug(f"Skipping sequence without letter names: {sequence}")
            continue
        for names in itertools.product(*options):
            table[" ".join(names)] = sequence
    table.update(extra if extra is not None else JOINED_SPELLINGS)
    return table


DEFAULT_SPOKEN_LETTERS = build_spoken_letter_table()


def strip_diacritics(text: str) -> str:
    """Convert the superscript alef, then drop every inaudible mark."""
    text = text.replace(SUPERSCRIPT_ALEF, ALEF)
    return DIACRITICS_RE.sub("", text)


def fold_letters(text: str) -> str:
    """Fold alef variants, alef maqsura and taa marbuta."""
    text = ALEF_VARIANTS_RE.sub(ALEF, text)
    text = text.replace(ALEF_MAQSURA, YAA)
    return text.replace(TAA_MARBUTA, HAA)


class TextNormalizer:
    """Canonicalizes reference and recognized text into comparable tokens."""

    def __init__(self, spoken_letters: Optional[Dict[str, str]] = None):
        """
        Args:
            spoken_letters: {spoken phrase: canonical form}. Defaults to the
                disjointed-letter table. Pass an empty dict to disable expansion.
        """
        table = DEFAULT_SPOKEN_LETTERS if spoken_letters is None else spoken_letters
        # Phrases are looked up in folded form so hamza spellings match too
        self.spoken_letters: Dict[str, str] = {}
        for phrase, canonical in table.items():
            key = " ".join(fold_letters(strip_diacritics(phrase)).split())
            if key:
                self.spoken_letters[key] = canonical
        self._longest_phrase = max(
            (len(key.split()) for key in self.spoken_letters), default=0
        )
        # Word sequences that a longer phrase could still complete
        self._phrase_prefixes = set()
        for key in self.spoken_letters:
            parts = key.split()
            for size in range(1, len(parts)):
                self._phrase_prefixes.add(" ".join(parts[:size]))

    def normalize(self, text: str) -> str:
        """
        Normalize text for comparison. Pure and idempotent.

        Order matters: the spoken-letter lookup runs on text whose marks are
        already gone, and its output still goes through letter folding.
        """
        if not text:
            return ""
        text = strip_diacritics(text)
        text = PUNCTUATION_RE.sub(" ", text)
        text = self._expand_spoken_letters(text)
        text = fold_letters(text)
        return WHITESPACE_RE.sub(" ", text).strip()

    def _expand_spoken_letters(self, text: str) -> str:
        words = text.split()
        if not words or not self.spoken_letters:
            return " ".join(words)

        folded = [fold_letters(w) for w in words]
        expanded: List[str] = []
        i = 0
        while i < len(words):
            # Longest phrase first so 'الف لام ميم صاد' is not eaten by 'صاد'
            for size in range(min(self._longest_phrase, len(words) - i), 0, -1):
                canonical = self.spoken_letters.get(" ".join(folded[i:i + size]))
                if canonical is not None:
                    expanded.append(canonical)
                    i += size
                    break
            else:
                expanded.append(words[i])
                i += 1
        return " ".join(expanded)

    def pending_phrase_length(self, words: Sequence[str]) -> int:
        """
        Number of trailing raw words that may be the start of a spoken-letter phrase.

        'الف لام' could still become 'الف لام ميم', so a streaming caller
        should wait for the next word before normalizing those two.
        """
        folded = [fold_letters(strip_diacritics(PUNCTUATION_RE.sub(" ", w))).strip() for w in words]
        for size in range(min(self._longest_phrase - 1, len(folded)), 0, -1):
            if " ".join(folded[-size:]) in self._phrase_prefixes:
                return size
        return 0

    def tokenize(self, text: str) -> List[str]:
        return self.normalize(text).split()

    def recognized_tokens(self, text: str) -> List[RecognizedToken]:
        """Split a transcript into tokens, keeping the raw word where it is recoverable."""
        normalized = self.tokenize(text)
        raw = [w for w in (text or "").split() if self.normalize(w)]
        if len(raw) != len(normalized):
            # Letter names were merged, raw words no longer line up
            raw = normalized
        return [RecognizedToken(raw_word=r, normalized_word=n) for r, n in zip(raw, normalized)]

    def reference_tokens(self, unit: ReferenceUnit) -> List[ReferenceToken]:
        """Tokens of a reference verse; standalone marks (stop signs) are dropped."""
        tokens: List[ReferenceToken] = []
        for original in unit.text.split():
            normalized = self.normalize(original)
            if not normalized:
                continue
            # A single original word can normalize to more than one token
            for part in normalized.split():
                tokens.append(ReferenceToken(
                    container_id=unit.container_id,
                    index_in_container=unit.index_in_container,
                    word_index=len(tokens),
                    original_word=original,
                    normalized_word=part,
                ))
        return tokens


_default_normalizer = TextNormalizer()


def normalize(text: str) -> str:
    """Normalize text with the default spoken-letter table."""
    return _default_normalizer.normalize(text)


def tokenize(text: str) -> List[str]:
    return _default_normalizer.tokenize(text)
