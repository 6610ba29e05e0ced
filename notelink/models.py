from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from sqlmodel import Field, SQLModel


class University(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True)


class User(SQLModel, table=True):
    # Deleted ids are never handed out again, so old session tokens stay dead
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Community(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    slug: str = Field(index=True, unique=True)
    join_code_hash: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class UserCommunity(SQLModel, table=True):
    user_id: int = Field(foreign_key="user.id", primary_key=True)
    community_id: int = Field(foreign_key="community.id", primary_key=True)
    role: str = Field(default="member", description="admin or member")
    joined_at: datetime = Field(default_factory=datetime.utcnow)


class Note(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    community_id: Optional[int] = Field(default=None, foreign_key="community.id", index=True)
    university_id: int = Field(foreign_key="university.id", index=True)
    author_name: Optional[str] = None
    course_name: str
    lecture_no: str
    lecture_date: str
    title: str
    body_raw: str
    body_md: str
    visibility: str = Field(default="public", description="public or private")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class NoteQuiz(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    note_id: int = Field(foreign_key="note.id", index=True)
    type: str = Field(default="short", max_length=20)
    question: str
    answer: str = ""
    # rule quizzes store the line number, AI quizzes a short quote
    source_line: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


# ----------------- Request bodies -----------------

class Credentials(SQLModel):
    username: str = ""
    password: str = ""


class CommunityCreate(SQLModel):
    name: str = ""
    join_code: str = ""


class CommunityJoin(SQLModel):
    community_id: Optional[int] = None
    join_code: str = ""


class NoteDraft(SQLModel):
    university_name: Optional[str] = None
    author_name: Optional[str] = None
    course_name: Optional[str] = None
    lecture_no: Optional[Union[str, int]] = None
    lecture_date: Optional[str] = None
    title: Optional[str] = None
    body_raw: Optional[str] = None
    visibility: Optional[str] = None
    community_id: Optional[int] = None


class VisibilityUpdate(SQLModel):
    visibility: Optional[str] = None


class QuizGenerateRequest(SQLModel):
    mode: str = "replace"
    source: str = "rule"
    limit: Optional[int] = None
    min_score: Optional[int] = None
    allow_true_false: Optional[bool] = None


class QuizUpdate(SQLModel):
    question: str = ""
    answer: Optional[str] = ""
    type: Optional[str] = ""
