from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class FormModel(Base):
    __tablename__ = "forms"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True)
    share_url = Column(String, unique=True, index=True)
    name = Column(String)
    description = Column(Text)
    content = Column(Text)
    version = Column(Integer, default=1)
    published = Column(Boolean, default=False)
    published_content = Column(Text, nullable=True)
    published_version = Column(Integer, nullable=True)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class SubmissionModel(Base):
    __tablename__ = "form_submissions"

    id = Column(String, primary_key=True)
    form_id = Column(String, index=True)
    session_id = Column(String, index=True)
    data_json = Column(Text)
    is_complete = Column(Boolean, default=False)
    last_section_index = Column(Integer, default=0)
    total_sections = Column(Integer, default=1)
    form_version = Column(Integer, nullable=True)
    form_content_snapshot = Column(Text, nullable=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ChatSessionModel(Base):
    __tablename__ = "ai_chat_sessions"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True)
    form_id = Column(String, index=True)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class ChatMessageModel(Base):
    __tablename__ = "ai_chat_messages"

    id = Column(String, primary_key=True)
    session_id = Column(String, index=True)
    role = Column(String)
    content = Column(Text)
    tool_invocations = Column(Text, nullable=True)
    actions_applied = Column(Boolean, default=False)
    created_at = Column(DateTime)


class FormVersionModel(Base):
    __tablename__ = "form_versions"
    __table_args__ = (UniqueConstraint("form_id", "version"),)

    id = Column(String, primary_key=True)
    form_id = Column(String, index=True)
    version = Column(Integer)
    content = Column(Text)
    name = Column(String)
    description = Column(Text)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime)
