"""Data models for the research pipeline."""

import time
import uuid
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def _new_id() -> str:
    return uuid.uuid4().hex


def _now_ms() -> int:
    return int(time.time() * 1000)


class _CamelModel(BaseModel):
    """Persisted and streamed JSON uses camelCase; Python code uses snake_case."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------- run inputs ----------

class Depth(IntEnum):
    BRIEF = 1
    STANDARD = 2
    DEEP = 3


class ProviderKind(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"


DEFAULT_MODELS: Dict[str, str] = {
    ProviderKind.GEMINI.value: "gemini-2.5-flash",
    ProviderKind.OPENAI.value: "gpt-4o",
}


class ResearchConfig(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    query: str
    depth: Depth = Depth.STANDARD
    breadth: int = Field(default=3, ge=1)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value


class ProviderSettings(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    provider: ProviderKind = ProviderKind.GEMINI
    api_key: str = Field(default="", alias="apiKey", repr=False)
    base_url: str = Field(default="", alias="baseUrl")
    model: str = ""
    search_api_key: str = Field(default="", alias="searchApiKey", repr=False)

    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider.value]


# ---------- pipeline values ----------

class Outline(_CamelModel):
    title: str
    chapters: List[str] = Field(default_factory=list)


class Source(_CamelModel):
    title: str
    uri: str


class Generation(BaseModel):
    """Text returned by one provider call plus its token usage."""

    text: str = ""
    usage: int = 0


class SearchResult(BaseModel):
    summary: str = ""
    sources: List[Source] = Field(default_factory=list)
    usage: int = 0


class ChapterFinding(BaseModel):
    """One query's summary, tagged with the citation indices it may use."""

    query: str
    summary: str
    citations: List[int] = Field(default_factory=list)

    def render(self) -> str:
        if self.citations:
            markers = " ".join(f"[{i}]" for i in self.citations)
        else:
            markers = "none"
        return f"Allowed citations: {markers}\n{self.summary}"


# ---------- observable output ----------

class LogType(str, Enum):
    PLAN = "plan"
    SEARCH = "search"
    ANALYSIS = "analysis"
    WRITING = "writing"
    ERROR = "error"
    INFO = "info"


class ResearchLog(_CamelModel):
    id: str = Field(default_factory=_new_id)
    timestamp: int = Field(default_factory=_now_ms)
    type: LogType
    message: str
    details: Any = None
    token_count: Optional[int] = Field(default=None, alias="tokenCount")


class ResearchResult(_CamelModel):
    id: str = Field(default_factory=_new_id)
    timestamp: int = Field(default_factory=_now_ms)
    title: str
    query: str = ""
    chapters: List[str] = Field(default_factory=list)
    full_report: str = Field(alias="fullReport")
    sources: List[Source] = Field(default_factory=list)
    logs: List[ResearchLog] = Field(default_factory=list)
    total_tokens: int = Field(default=0, alias="totalTokens")
    total_search_queries: int = Field(default=0, alias="totalSearchQueries")
    word_count: int = Field(default=0, alias="wordCount")


# ---------- structured LLM output ----------

class OutlinePayload(BaseModel):
    title: Optional[str] = None
    chapters: List[str]


QUERY_LIST = TypeAdapter(List[str])


# ---------- LangGraph state ----------

class ResearchState(TypedDict, total=False):
    topic: str
    outline: Outline
    chapter_index: int
    queries: List[str]
    findings: List[ChapterFinding]
    chapter_citations: List[int]
    recent_findings: List[str]
    chapters: List[str]
    total_tokens: int
    total_search_queries: int
    report: str
    word_count: int
