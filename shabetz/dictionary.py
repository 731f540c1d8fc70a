from __future__ import annotations
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

import httpx

from .config import Config
from .letters import is_hebrew_letter, normalize_word_variants
from .schemas import WordCheck
from .validation import MIN_WORD_LENGTH

log = logging.getLogger(__name__)

# Minimal Hebrew word list for development and as a built-in fallback.
# In production, point WORDS_FILE at a full list (one word per line).
DEFAULT_WORDS = {
    # Short words
    'אב', 'אח', 'אם', 'בן', 'בת', 'גם', 'דם', 'הם', 'זה', 'חם', 'טל', 'יש', 'כן', 'לא',
    'מה', 'נו', 'סל', 'עד', 'פה', 'צל', 'קר', 'רק', 'שם', 'תן', 'דג', 'גד', 'בד', 'דב',
    'גב', 'אל', 'על', 'כל', 'ים', 'הר', 'גן', 'יד', 'לב', 'עץ', 'נר', 'אף',
    # Nouns
    'אבא', 'אמא', 'בית', 'דלת', 'זמן', 'חבר', 'כלב', 'מים', 'סוס', 'צבע', 'קול', 'ראש',
    'אור', 'בוקר', 'גשם', 'דרך', 'היום', 'חלום', 'טעם', 'ילד', 'ילדה', 'כוח', 'לילה',
    'מקום', 'נפש', 'סיפור', 'עולם', 'פעם', 'קיץ', 'רגע', 'שנה', 'תקווה', 'איש', 'אישה',
    'חלון', 'שולחן', 'כיסא', 'מיטה', 'ספר', 'לחם', 'חלב', 'ביצה', 'בשר', 'פרי', 'שמש',
    'ירח', 'כוכב', 'פרח', 'עין', 'אוזן', 'רגל', 'יום', 'ערב', 'שעה', 'עיר', 'כפר', 'רחוב',
    'גשר', 'נהר', 'שלום', 'אהבה', 'שמחה',
    # Verbs
    'אכל', 'בא', 'גר', 'דבר', 'הלך', 'זכר', 'חשב', 'ידע', 'כתב', 'למד', 'מצא', 'נתן',
    'סגר', 'עבד', 'פתח', 'צחק', 'קרא', 'ראה', 'שמע', 'תפס',
    # Adjectives
    'אדום', 'גדול', 'דק', 'זקן', 'חזק', 'טוב', 'יפה', 'כחול', 'לבן', 'מתוק', 'נקי',
    'עמוק', 'פשוט', 'צעיר', 'קטן', 'רחב', 'שחור', 'ירוק', 'צהוב',
}

class LexiconUnavailable(Exception):
    """The lexicon oracle could not be reached or answered garbage."""


def _all_hebrew(word: str) -> bool:
    return bool(word) and all(is_hebrew_letter(ch) for ch in word)


class LocalLexicon:
    def __init__(self, words: Optional[Iterable[str]] = None, permissive: bool = False):
        self._words: Set[str] = {w.strip() for w in (DEFAULT_WORDS if words is None else words) if w.strip()}
        # Best-effort mode: any Hebrew word is accepted when the list does not know it
        self.permissive = permissive

    @classmethod
    def from_file(cls, path: str, permissive: bool = False) -> 'LocalLexicon':
        text = Path(path).read_text(encoding='utf-8')
        words = [w.strip() for w in text.splitlines()]
        lexicon = cls([w for w in words if _all_hebrew(w)], permissive=permissive)
        log.info('Loaded %d words from %s', len(lexicon), path)
        return lexicon

    def __len__(self) -> int:
        return len(self._words)

    def words(self) -> List[str]:
        return sorted(self._words)

    def is_valid(self, word: str) -> bool:
        if len(word) < MIN_WORD_LENGTH or not _all_hebrew(word):
            return False
        if any(v in self._words for v in normalize_word_variants(word)):
            return True
        return self.permissive

    def validate_words(self, words: Iterable[str]) -> List[WordCheck]:
        return [WordCheck(word=w, valid=self.is_valid(w)) for w in words]


class RemoteLexicon:
    """Client for the dictionary service (`/dictionary/search`, `/dictionary/validate-words`)."""

    def __init__(self, base_url: str, timeout: float = 3.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip('/')
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._cache: Dict[str, bool] = {}

    def close(self) -> None:
        self._client.close()

    def is_valid(self, word: str) -> bool:
        if word in self._cache:
            return self._cache[word]
        try:
            r = self._client.get('/dictionary/search', params={'q': word})
            r.raise_for_status()
            valid = bool(r.json()['valid'])
        except httpx.HTTPError as e:
            raise LexiconUnavailable(f'lookup of {word!r} failed: {e}') from e
        except (KeyError, ValueError) as e:
            raise LexiconUnavailable(f'malformed answer for {word!r}: {e}') from e
        self._cache[word] = valid
        return valid

    def validate_words(self, words: Iterable[str]) -> List[WordCheck]:
        words = list(words)
        try:
            r = self._client.post('/dictionary/validate-words', json={'words': words})
            r.raise_for_status()
            results = [WordCheck.model_validate(item) for item in r.json()['results']]
        except httpx.HTTPError as e:
            raise LexiconUnavailable(f'batch lookup failed: {e}') from e
        except (KeyError, ValueError) as e:
            raise LexiconUnavailable(f'malformed batch answer: {e}') from e
        for item in results:
            self._cache[item.word] = item.valid
        return results


class FallbackLexicon:
    """Ask the primary oracle, fall back to a local lexicon when it is down."""

    def __init__(self, primary, fallback: LocalLexicon):
        self.primary = primary
        self.fallback = fallback

    def is_valid(self, word: str) -> bool:
        try:
            return self.primary.is_valid(word)
        except LexiconUnavailable as e:
            log.warning('Lexicon oracle unavailable, using local lexicon: %s', e)
            return self.fallback.is_valid(word)

    def validate_words(self, words: Iterable[str]) -> List[WordCheck]:
        words = list(words)
        try:
            return self.primary.validate_words(words)
        except LexiconUnavailable as e:
            log.warning('Lexicon oracle unavailable, using local lexicon: %s', e)
            return self.fallback.validate_words(words)


def build_lexicon(config) -> LocalLexicon | FallbackLexicon:
    """The lexicon a game session validates moves with."""
    if config.WORDS_FILE:
        local = LocalLexicon.from_file(config.WORDS_FILE, permissive=config.LOCAL_LEXICON_PERMISSIVE)
    else:
        local = LocalLexicon(permissive=config.LOCAL_LEXICON_PERMISSIVE)
    if not config.DICTIONARY_URL:
        return local
    return FallbackLexicon(RemoteLexicon(config.DICTIONARY_URL, timeout=config.DICTIONARY_TIMEOUT), local)


def _server_lexicon() -> LocalLexicon:
    if Config.WORDS_FILE and Path(Config.WORDS_FILE).exists():
        return LocalLexicon.from_file(Config.WORDS_FILE)
    return LocalLexicon()

# Singleton instance served by the REST endpoints
service = _server_lexicon()
