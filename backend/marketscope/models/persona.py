import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from ..database import Base
from .analysis import GUID


class Persona(Base):
    __tablename__ = "personas"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    persona_type = Column(String(32), nullable=False)  # price_sensitive | power_user | corporate_buyer
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    pain_points_json = Column(Text, nullable=True)
    priorities_json = Column(Text, nullable=True)
    behavior_profile = Column(Text, nullable=True)
    system_prompt = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=False, default=0)

    messages = relationship(
        "PersonaChatMessage", back_populates="persona",
        cascade="all", passive_deletes=True, order_by="PersonaChatMessage.sequence",
    )


class PersonaChatMessage(Base):
    __tablename__ = "persona_chat_messages"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    persona_id = Column(GUID(), ForeignKey("personas.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # user | assistant
    message = Column(Text, nullable=False)
    sequence = Column(Integer, nullable=False, default=0)  # position in the persona's log
    created_at = Column(DateTime, default=datetime.utcnow)

    persona = relationship("Persona", back_populates="messages")


class SimulatedReview(Base):
    __tablename__ = "simulated_reviews"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    analysis_id = Column(GUID(), ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_name = Column(String(255), nullable=False)
    reviewer_profile = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=False)
    sentiment = Column(String(16), nullable=False)  # positive | mixed | negative
    highlighted_features_json = Column(Text, nullable=True)
    pain_points_addressed_json = Column(Text, nullable=True)
