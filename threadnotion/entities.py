# threadnotion/entities.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, TypeAlias
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

UUID: TypeAlias = str
Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_now,
        onupdate=_now,
    )


class Product(Base, TimestampMixin):
    __tablename__ = "product"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    brand: Mapped[str | None] = mapped_column(String)

    # freeform product details (material, fit, colors, sizes...)
    attributes: Mapped[dict[str, object] | None] = mapped_column(JSON)

    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")


class Persona(Base):
    __tablename__ = "persona"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    tone: Mapped[str | None] = mapped_column(String)

    # NOTE: attribute is `traits`, column is `values`
    traits: Mapped[list[str]] = mapped_column("values", JSON, nullable=False, default=list)

    instructions: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class Conversation(Base):
    __tablename__ = "conversation"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    persona_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("persona.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[UUID | None] = mapped_column(
        String(36),
        ForeignKey("product.id", ondelete="SET NULL"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    persona: Mapped["Persona"] = relationship()
    product: Mapped[Optional["Product"]] = relationship()
    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation",
        order_by="Message.position",
        cascade="all, delete-orphan",
    )
    evaluation: Mapped[Optional["Evaluation"]] = relationship(
        back_populates="conversation",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_conversation_persona_id", "persona_id"),
    )


class Message(Base):
    __tablename__ = "message"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
    )
    # 0-based order inside the conversation
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)  # user | assistant | system
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    conversation: Mapped["Conversation"] = relationship(back_populates="messages")

    __table_args__ = (
        UniqueConstraint("conversation_id", "position", name="uq_message_conversation_position"),
    )


class Evaluation(Base, TimestampMixin):
    __tablename__ = "evaluation"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    conversation_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("conversation.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    storytelling: Mapped[int] = mapped_column(Integer, nullable=False)
    emotional: Mapped[int] = mapped_column(Integer, nullable=False)
    persuasion: Mapped[int] = mapped_column(Integer, nullable=False)
    product_know: Mapped[int] = mapped_column(Integer, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    strengths: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tips: Mapped[str] = mapped_column(Text, nullable=False, default="")

    conversation: Mapped["Conversation"] = relationship(back_populates="evaluation")


class Script(Base):
    __tablename__ = "script"

    id: Mapped[UUID] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[UUID] = mapped_column(
        String(36),
        ForeignKey("product.id", ondelete="CASCADE"),
        nullable=False,
    )
    persona_id: Mapped[UUID | None] = mapped_column(
        String(36),
        ForeignKey("persona.id", ondelete="SET NULL"),
    )
    tone: Mapped[str | None] = mapped_column(String)

    # {persona, script, tone, productId, generatedAt}
    content: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False)

    # "{productId}:{personaId|none}:{tone|neutral}"
    cache_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
