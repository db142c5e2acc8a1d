from __future__ import annotations
import re
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Dict, List, Literal, Optional

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

SessionState = Literal['not-started', 'playing', 'ended']
TimerMode = Literal['countdown', 'countup']
RejectReason = Literal[
    'too_short',
    'already_found',
    'invalid_composition',
    'not_in_wordlist',
    'validation_unavailable',
    'not_playing',
    'stale',
]


class LetterConfiguration(BaseModel):
    centerLetter: str
    outerLetters: List[str]
    wordCount: int = 0
    pangramCount: int = 0

    @field_validator('centerLetter')
    @classmethod
    def _single_letter(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 1 or not v.isalpha():
            raise ValueError('centerLetter must be a single letter')
        return v

    @field_validator('outerLetters')
    @classmethod
    def _six_letters(cls, v: List[str]) -> List[str]:
        letters = [l.strip().upper() for l in v]
        if len(letters) != 6 or len(set(letters)) != 6:
            raise ValueError('outerLetters must be 6 distinct letters')
        if not all(len(l) == 1 and l.isalpha() for l in letters):
            raise ValueError('outerLetters must be single letters')
        return letters

    @model_validator(mode='after')
    def _center_not_outer(self) -> 'LetterConfiguration':
        if self.centerLetter in self.outerLetters:
            raise ValueError('centerLetter must not be one of outerLetters')
        return self

    @property
    def letters(self) -> frozenset:
        # Lowercase 7-letter set
        return frozenset(l.lower() for l in [self.centerLetter, *self.outerLetters])


class Puzzle(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    configuration: LetterConfiguration
    answerWords: List[str] = []
    pangrams: List[str] = []

    def has_word(self, word: str) -> bool:
        return word.lower() in self._answer_set

    def is_pangram(self, word: str) -> bool:
        return word.lower() in self._pangram_set

    @property
    def _answer_set(self) -> frozenset:
        return frozenset(self.answerWords)

    @property
    def _pangram_set(self) -> frozenset:
        return frozenset(self.pangrams)


class PuzzleSummary(BaseModel):
    gameId: str
    centerLetter: str
    outerLetters: List[str]
    wordCount: int
    pangramCount: int


class ValidationVerdict(BaseModel):
    isValid: bool
    isPangram: bool = False


class SubmitResult(BaseModel):
    accepted: bool
    word: str = ''
    reason: Optional[RejectReason] = None
    message: str = ''
    isPangram: bool = False
    completionRate: float = 0.0


class TimerState(BaseModel):
    mode: TimerMode
    seconds: int
    isPaused: bool = False


class SessionSnapshot(BaseModel):
    sessionId: str
    puzzleId: str
    userId: Optional[str] = None
    foundWords: List[str] = []
    currentWord: str = ''
    outerLetters: List[str] = []
    timer: int = 0
    timerMode: TimerMode = 'countdown'
    gameState: SessionState = 'playing'
    currentHintWordIndex: int = 0
    hintLevel: int = 0
    createdAt: float
    savedAt: float


class SessionView(BaseModel):
    sessionId: str
    gameId: Optional[str] = None
    centerLetter: Optional[str] = None
    outerLetters: List[str] = []
    foundWords: List[str] = []
    currentWord: str = ''
    gameState: SessionState = 'not-started'
    timer: Optional[TimerState] = None
    wordCount: int = 0
    pangramCount: int = 0
    readOnly: bool = False


class GameResult(BaseModel):
    gameId: str
    foundWords: List[str] = []
    totalTime: int = 0
    wordsFound: int = 0
    completionRate: float = 0.0
    completedAt: Optional[float] = None


class CompletionStatus(BaseModel):
    isCompleted: bool
    gameSessionData: Optional[GameResult] = None


class HintWordEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    word: str
    relatedWord: str
    synonym: str
    phrase: str
    fillInBlank: str


class HintView(BaseModel):
    level: int
    label: str
    content: str


class HintCursorState(BaseModel):
    currentIndex: int = 0
    hintLevel: int = Field(0, ge=0, le=4)
    visitedIndices: List[int] = []
    isWordFound: bool = False
    current: Optional[HintView] = None
    previous: List[HintView] = []


class GameMetadata(BaseModel):
    totalWords: Optional[int] = None
    wordsFound: Optional[int] = None
    totalTime: Optional[int] = None
    gameState: Optional[str] = None


class AnalyticsEvent(BaseModel):
    gameId: str
    eventType: str
    eventData: Dict[str, Any] = {}
    timestamp: float = 0.0


class Feedback(BaseModel):
    satisfaction: int = Field(..., ge=1, le=5)
    mostDifficult: str = Field(..., min_length=1)
    willReturn: bool

    @field_validator('mostDifficult')
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('mostDifficult must not be blank')
        return v


class SignupRequest(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: str
    age: int = Field(..., ge=16, le=100)
    gender: str = Field(..., min_length=1)
    education: str = Field(..., min_length=1)
    occupation: str = ''
    nativeLanguage: str = Field(..., min_length=1)
    englishProficiency: str = Field(..., min_length=1)
    submittedAt: Optional[float] = None

    @field_validator('firstName', 'lastName', 'occupation', 'nativeLanguage', mode='before')
    @classmethod
    def _strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator('email')
    @classmethod
    def _email(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.match(v):
            raise ValueError('Invalid email format')
        return v
