from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, LargeBinary, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from .db import Base


def utcnow() -> datetime:
	# Naive UTC, matching what SQLite hands back
	return datetime.now(timezone.utc).replace(tzinfo=None)


class Word(Base):
	__tablename__ = "words"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Normalized (stripped, lower-cased) word; the record's identity
	word = Column(String(256), nullable=False, unique=True, index=True)
	level = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
	updated_at = Column(DateTime, default=utcnow, nullable=False)


class WordDefinition(Base):
	__tablename__ = "word_definitions"
	# Insertion order of ids is the relevance order of the definitions
	id = Column(Integer, primary_key=True, autoincrement=True)
	word = Column(String(256), ForeignKey("words.word"), nullable=False, index=True)
	# Either a legacy plain string or {"sentence", "translation", "definition"}
	payload = Column(JSON, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class Story(Base):
	__tablename__ = "stories"
	id = Column(String(32), primary_key=True)
	prompt = Column(Text, nullable=False)
	# CEFR tag A1..C2, unrelated to Word.level
	level = Column(String(8), nullable=False)
	image_style = Column(String(256), nullable=True)
	title = Column(String(512), nullable=True)
	full_text = Column(Text, nullable=False)
	image_errors = Column(JSON, nullable=True)
	audio_errors = Column(JSON, nullable=True)
	has_tts = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

	paragraphs = relationship(
		"StoryParagraph",
		back_populates="story",
		order_by="StoryParagraph.index",
		cascade="all, delete-orphan",
	)


class StoryParagraph(Base):
	__tablename__ = "story_paragraphs"
	__table_args__ = (UniqueConstraint("story_id", "index", name="uq_story_paragraph_index"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	story_id = Column(String(32), ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True)
	index = Column(Integer, nullable=False)
	text = Column(Text, nullable=False)
	image_mime_type = Column(String(64), nullable=True)
	image_data = Column(LargeBinary, nullable=True)
	audio_mime_type = Column(String(64), nullable=True)
	audio_data = Column(LargeBinary, nullable=True)

	story = relationship("Story", back_populates="paragraphs")


class ParagraphAudio(Base):
	__tablename__ = "paragraph_audio"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# SHA-256 of the stripped paragraph text
	text_hash = Column(String(64), nullable=False, unique=True, index=True)
	# Original text kept for inspection
	text = Column(Text, nullable=False)
	mime_type = Column(String(64), nullable=False)
	data = Column(LargeBinary, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)


class WordAudio(Base):
	__tablename__ = "word_audio"
	id = Column(Integer, primary_key=True, autoincrement=True)
	word = Column(String(256), nullable=False, unique=True, index=True)
	mime_type = Column(String(64), nullable=False)
	data = Column(LargeBinary, nullable=False)
	created_at = Column(DateTime, default=utcnow, nullable=False)
