"""Data models for resolver probing."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class QueryTask(BaseModel):
    """One (target, domain) pair handed to the dispatcher."""
    target: str
    domain: str

    model_config = ConfigDict(frozen=True)


class QueryResult(BaseModel):
    """Successful exchange as returned by a dispatcher."""
    question: str
    answers: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    def answer_text(self) -> str:
        """Answer set rendered one record per line."""
        return "".join(f"{line}\n" for line in self.answers)


class QueryRecord(BaseModel):
    """Persisted outcome of one successful query against a target."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ip: str
    domain: str
    query: str
    answer: str = ""

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_result(cls, task: QueryTask, result: QueryResult) -> "QueryRecord":
        return cls(
            ip=task.target,
            domain=task.domain,
            query=result.question,
            answer=result.answer_text(),
        )
