"""
Text Processor.

Rule-based normalization of mixed Korean/English technical text:
- case folding and punctuation stripping
- light stemming of Korean endings and English suffixes
- stop-token removal (Korean particles plus scikit-learn's English list)
- synonym canonicalization
- domain keyword extraction and technical term weighting

The processor is stateless after construction and safe to share between
threads.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from adaptive_clustering.schemas.data_models import TextMetadata

logger = logging.getLogger(__name__)


_NON_WORD = re.compile(r"[^\w\s]+")
_WHITESPACE = re.compile(r"\s+")

KOREAN_STOP_WORDS = frozenset([
    # particles
    "은", "는", "이", "가", "을", "를", "의", "에", "에서", "로", "으로", "와", "과",
    "도", "만", "부터", "까지",
    # conjunctions
    "그리고", "또는", "하지만", "그러나", "따라서", "그래서", "그런데",
    # pronouns and determiners
    "이것", "그것", "저것", "이런", "그런", "저런", "어떤", "무엇",
    # adverbs
    "매우", "아주", "너무", "정말", "진짜", "거의", "대략", "약",
    # common verbs and adjectives
    "있다", "없다", "하다", "되다", "크다", "작다", "좋다", "나쁘다",
])

# Longest endings first so "습니다" wins over "니다".
KOREAN_ENDINGS = (
    "스럽게", "습니다", "나쁘다",
    "하다", "되다", "있다", "없다", "크다", "작다", "좋다", "니다", "어요", "아요",
    "어서", "아서", "으면", "도록", "하게", "답게",
)

ENGLISH_SUFFIXES = (
    "ical", "tion", "sion", "ment", "ness", "able", "ible", "less",
    "ing", "est", "ful", "ous", "ive",
    "ed", "er", "ly", "al", "ic",
)

SYNONYMS: Dict[str, Sequence[str]] = {
    "기술": ("테크놀로지", "기법", "방법", "기술력"),
    "발명": ("고안", "창작", "개발", "연구"),
    "시스템": ("체계", "구조", "프레임워크", "플랫폼"),
    "알고리즘": ("절차", "순서", "로직"),
    "프로세스": ("과정", "단계", "워크플로우"),
    "인공지능": ("ai", "지능형"),
    "머신러닝": ("ml", "기계학습", "자동학습"),
    "딥러닝": ("dl", "심층학습", "심화학습"),
    "신경망": ("뉴럴네트워크", "뉴런", "신경"),
    "유전자": ("진", "dna", "유전정보"),
    "단백질": ("프로테인", "아미노산", "펩타이드"),
    "세포": ("셀", "세포질", "세포막"),
    "method": ("technique", "approach"),
    "framework": ("platform", "toolkit"),
}

DOMAIN_DICTIONARY: Dict[str, Sequence[str]] = {
    "AI": (
        "인공지능", "머신러닝", "딥러닝", "신경망", "알고리즘", "데이터마이닝",
        "패턴인식", "자연어처리", "컴퓨터비전", "강화학습", "지도학습", "비지도학습",
        "앙상블", "오버피팅", "언더피팅", "크로스밸리데이션", "하이퍼파라미터",
        "neural", "learning", "algorithm", "clustering", "classifier", "embedding",
        "inference", "training", "adaptive",
    ),
    "BIO": (
        "바이오기술", "유전자", "단백질", "세포", "분자", "생화학", "면역학",
        "약물발견", "진단", "치료", "예방", "백신", "항체", "효소", "호르몬",
        "대사", "독성", "약물동태", "임상시험",
        "gene", "protein", "cell", "molecule", "vaccine", "antibody", "enzyme",
        "clinical", "diagnosis", "therapy",
    ),
    "ICT": (
        "정보통신", "네트워크", "프로토콜", "라우팅", "스위칭", "보안", "암호화",
        "인증", "방화벽", "클라우드", "가상화", "컨테이너", "마이크로서비스",
        "api", "웹서비스", "모바일", "5g", "iot", "블록체인",
        "network", "protocol", "routing", "security", "encryption", "cloud",
        "container", "blockchain", "ledger", "consensus", "mobile",
    ),
    "MATERIALS": (
        "나노재료", "복합재료", "고분자", "세라믹", "금속", "반도체", "도전체",
        "절연체", "자성체", "광학재료", "바이오재료", "친환경재료", "스마트재료",
        "메타물질", "양자점", "탄소나노튜브", "그래핀",
        "polymer", "ceramic", "metal", "semiconductor", "graphene", "composite", "alloy",
    ),
    "ENERGY": (
        "태양광", "풍력", "수력", "지열", "바이오매스", "수소", "연료전지",
        "배터리", "에너지저장", "스마트그리드", "전력전자", "전기차", "하이브리드",
        "친환경에너지", "탄소중립", "에너지효율", "에너지관리",
        "solar", "wind", "hydrogen", "battery", "turbine", "grid", "carbon",
    ),
}

TECHNICAL_WEIGHTS: Dict[str, float] = {
    "특허": 3.0,
    "발명": 3.0,
    "신기술": 2.5,
    "혁신": 2.5,
    "인공지능": 2.5,
    "머신러닝": 2.5,
    "딥러닝": 2.5,
    "신경망": 2.0,
    "알고리즘": 2.0,
    "프로세스": 2.0,
    "시스템": 2.0,
    "인터페이스": 1.5,
    "patent": 3.0,
    "invention": 3.0,
}

DOMAIN_TERM_WEIGHT = 2.0


class TextProcessor:
    """
    Normalizes raw text into a list of canonical terms.

    Dictionaries are passed through the same stemmer as the input so
    lookups work on normalized forms.
    """

    def __init__(self, min_stem_length: int = 3):
        """
        Initialize text processor.

        Args:
            min_stem_length: Shortest English stem kept after suffix stripping
        """
        self.min_stem_length = min_stem_length
        self.stop_words = frozenset(KOREAN_STOP_WORDS | ENGLISH_STOP_WORDS)

        self._synonyms: Dict[str, str] = {}
        for canonical, aliases in SYNONYMS.items():
            for alias in aliases:
                self._synonyms[self.stem(alias.lower())] = canonical

        self.domain_terms: Dict[str, frozenset] = {
            domain: frozenset(self.normalize_term(term) for term in terms)
            for domain, terms in DOMAIN_DICTIONARY.items()
        }

        self._weights: Dict[str, float] = {}
        for terms in self.domain_terms.values():
            for term in terms:
                self._weights[term] = DOMAIN_TERM_WEIGHT
        for term, weight in TECHNICAL_WEIGHTS.items():
            self._weights[self.normalize_term(term)] = weight

    # -------------------------------------------------------------------------
    # Normalization pipeline
    # -------------------------------------------------------------------------

    @staticmethod
    def preprocess(text: str) -> str:
        """Case-fold, replace punctuation with spaces and collapse whitespace."""
        text = _NON_WORD.sub(" ", (text or "").lower())
        return _WHITESPACE.sub(" ", text).strip()

    def stem(self, word: str) -> str:
        """Strip at most one Korean ending and one English suffix."""
        for ending in KOREAN_ENDINGS:
            if word.endswith(ending) and len(word) - len(ending) >= 2:
                word = word[: -len(ending)]
                break

        if word.isascii():
            if (
                word.endswith("s")
                and not word.endswith(("ss", "us", "is"))
                and len(word) - 1 >= self.min_stem_length
            ):
                word = word[:-1]
            for suffix in ENGLISH_SUFFIXES:
                if word.endswith(suffix) and len(word) - len(suffix) >= self.min_stem_length:
                    word = word[: -len(suffix)]
                    break

        return word

    def normalize_term(self, word: str) -> str:
        """Stem a single word and map it to its canonical synonym."""
        stem = self.stem(word.lower())
        return self._synonyms.get(stem, stem)

    def _is_low_information(self, word: str) -> bool:
        return len(word) < 2 or word in self.stop_words

    def analyze(self, text: str) -> List[str]:
        """
        Turn raw text into normalized terms.

        Args:
            text: Raw document text

        Returns:
            Canonical terms in document order
        """
        terms = []
        for word in self.preprocess(text).split():
            if self._is_low_information(word):
                continue
            stem = self.stem(word)
            if self._is_low_information(stem):
                continue
            terms.append(self._synonyms.get(stem, stem))
        return terms

    def low_information_ratio(self, text: str) -> float:
        """
        Fraction of raw tokens that carry no information.

        Counts stop-tokens and tokens too short to keep, measured before
        filtering. Empty text has ratio 0.
        """
        words = self.preprocess(text).split()
        if not words:
            return 0.0
        dropped = sum(
            1 for word in words
            if self._is_low_information(word) or self._is_low_information(self.stem(word))
        )
        return dropped / len(words)

    @staticmethod
    def metadata_for(terms: Sequence[str]) -> TextMetadata:
        """Token statistics of a normalized term list."""
        if not terms:
            return TextMetadata()
        return TextMetadata(
            token_count=len(terms),
            unique_token_count=len(set(terms)),
            avg_token_length=sum(len(t) for t in terms) / len(terms),
        )

    # -------------------------------------------------------------------------
    # Domain knowledge
    # -------------------------------------------------------------------------

    def term_weight(self, term: str) -> float:
        """Technical weight of a normalized term (1.0 when unknown)."""
        return self._weights.get(term, 1.0)

    def extract_domain_keywords(
        self,
        text: Optional[str] = None,
        terms: Optional[Iterable[str]] = None,
    ) -> Dict[str, List[str]]:
        """
        Domain keyword hits, keyed by domain name.

        Either raw text or already normalized terms may be given. Domains
        without hits are omitted.
        """
        if terms is None:
            terms = self.analyze(text or "")
        terms = list(terms)

        hits: Dict[str, List[str]] = {}
        for domain, vocabulary in self.domain_terms.items():
            found = [t for t in terms if t in vocabulary]
            if found:
                hits[domain] = found
        return hits

    def classify_domain(self, text: str) -> Tuple[str, float]:
        """
        Domain with the most keyword hits and its share of all hits.

        Returns ("UNKNOWN", 0.0) when no domain keyword occurs.
        """
        hits = self.extract_domain_keywords(text)
        if not hits:
            return "UNKNOWN", 0.0
        best_domain = max(hits, key=lambda d: len(hits[d]))
        total = sum(len(v) for v in hits.values())
        return best_domain, len(hits[best_domain]) / total

    def term_similarity(self, terms_a: Sequence[str], terms_b: Sequence[str]) -> float:
        """
        Similarity of two normalized term lists.

        0.7 x Jaccard of the term sets plus 0.3 x the average per-domain
        Jaccard of the domain keywords both sides share.
        """
        set_a, set_b = set(terms_a), set(terms_b)
        union = set_a | set_b
        jaccard = len(set_a & set_b) / len(union) if union else 0.0

        domains_a = self.extract_domain_keywords(terms=set_a)
        domains_b = self.extract_domain_keywords(terms=set_b)
        shared = [d for d in domains_a if d in domains_b]

        domain_similarity = 0.0
        for domain in shared:
            a, b = set(domains_a[domain]), set(domains_b[domain])
            domain_similarity += len(a & b) / len(a | b)
        average_domain = domain_similarity / len(shared) if shared else 0.0

        return jaccard * 0.7 + average_domain * 0.3

    def text_similarity(self, text_a: str, text_b: str) -> float:
        """Similarity of two raw texts (see term_similarity)."""
        return self.term_similarity(self.analyze(text_a), self.analyze(text_b))
