"""
SQLAlchemy database models for CoverCast.

Restaurants and transactions are the sales-side inputs; ``Correlation`` rows
are the persisted patterns, scoped restaurant / regional / global.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Restaurant(Base):
    """Restaurant metadata: location drives weather/event/sports context."""
    
    __tablename__ = "restaurants"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    state = Column(String(32), nullable=True)  # "CA", "NY"
    cuisine_type = Column(String, nullable=True)
    timezone = Column(String, nullable=True)  # tz database name
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    
    def __repr__(self) -> str:
        return f"<Restaurant(id={self.id}, name={self.name}, state={self.state})>"


class Transaction(Base):
    """A closed check synced from the POS. Timestamps are stored as naive UTC."""
    
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_restaurant_date", "restaurant_id", "transaction_date"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False)
    transaction_date = Column(DateTime, nullable=False)
    total_amount = Column(Float, nullable=False, default=0.0)
    items = Column(JSON, nullable=True)  # [{"name": "Iced Latte", "category": "Beverages", "quantity": 2}]
    
    restaurant = relationship("Restaurant", backref="transactions")
    
    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, restaurant_id={self.restaurant_id}, total={self.total_amount})>"


class Correlation(Base):
    """A discovered or pooled pattern.
    
    ``row_version`` is SQLAlchemy's optimistic-lock counter: a flush that finds
    the row changed since it was loaded raises StaleDataError. ``version`` is the
    pattern's supersession version and only changes through ``supersede``.
    """
    
    __tablename__ = "correlations"
    __table_args__ = (
        Index("ix_correlations_scope_active", "scope", "is_active"),
        Index("ix_correlations_restaurant", "restaurant_id"),
        Index("ix_correlations_pooling", "scope", "correlation_type", "factor_key"),
        CheckConstraint("correlation >= -1 AND correlation <= 1", name="check_correlation_range"),
        CheckConstraint("confidence >= 0 AND confidence <= 100", name="check_confidence_range"),
        CheckConstraint("accuracy >= 0 AND accuracy <= 100", name="check_accuracy_range"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Scope
    scope = Column(String, nullable=False, default="restaurant")  # restaurant, regional, global
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=True)
    region = Column(String, nullable=True)
    cuisine_type = Column(String, nullable=True)
    
    # Factor
    correlation_type = Column(String, nullable=False)  # weather_sales, event_sales, ...
    factor_type = Column(String, nullable=False)  # weather, event, holiday, sports, multi_factor
    factor_key = Column(String, nullable=False)  # ExternalFactor.pooling_key
    external_factor = Column(JSON, nullable=False)
    
    # Business outcome
    metric = Column(String, nullable=False)
    outcome_value = Column(Float, nullable=False)
    outcome_change = Column(Float, nullable=False)
    outcome_baseline = Column(Float, nullable=False)
    
    # Statistics
    correlation = Column(Float, nullable=False)
    p_value = Column(Float, nullable=False)
    sample_size = Column(Integer, nullable=False)
    statistical_confidence = Column(Float, nullable=False)
    r_squared = Column(Float, nullable=False)
    
    # Narrative
    description = Column(Text, nullable=False)
    when_condition = Column(Text, nullable=False)
    then_outcome = Column(Text, nullable=False)
    strength = Column(String, nullable=False)
    actionable = Column(Boolean, default=False)
    recommendation = Column(Text, nullable=True)
    
    # Learning
    first_discovered = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow)
    data_points = Column(Integer, default=0)
    restaurants_contributing = Column(Integer, default=1)
    times_validated = Column(Integer, default=0)
    times_invalidated = Column(Integer, default=0)
    accuracy = Column(Float, default=100.0)
    
    # Lifecycle
    is_active = Column(Boolean, default=True, index=True)
    confidence = Column(Float, nullable=False, default=0.0)
    last_applied = Column(DateTime, nullable=True)
    times_applied = Column(Integer, default=0)
    version = Column(Integer, default=1, nullable=False)
    previous_version_id = Column(Integer, ForeignKey("correlations.id"), nullable=True)
    row_version = Column(Integer, nullable=False)
    
    created_at = Column(DateTime, default=datetime.utcnow)
    
    __mapper_args__ = {"version_id_col": row_version}
    
    def __repr__(self) -> str:
        return (
            f"<Correlation(id={self.id}, scope={self.scope}, type={self.correlation_type}, "
            f"corr={self.correlation:.2f}, active={self.is_active})>"
        )


class PatternContribution(Base):
    """Records that a restaurant pattern has been folded into a pooled pattern."""
    
    __tablename__ = "pattern_contributions"
    __table_args__ = (
        UniqueConstraint("pooled_pattern_id", "source_pattern_id", name="uq_pattern_contribution"),
    )
    
    id = Column(Integer, primary_key=True, autoincrement=True)
    pooled_pattern_id = Column(Integer, ForeignKey("correlations.id"), nullable=False, index=True)
    source_pattern_id = Column(Integer, ForeignKey("correlations.id"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=True)
    contributed_at = Column(DateTime, default=datetime.utcnow)
