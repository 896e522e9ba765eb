from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

# SQLite only autoincrements INTEGER primary keys.
PrimaryKey = BigInteger().with_variant(Integer, "sqlite")


class Business(Base):
    __tablename__ = "businesses"
    __table_args__ = (
        CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_business_latitude"),
        CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
            name="ck_business_longitude",
        ),
        CheckConstraint("(latitude IS NULL) = (longitude IS NULL)", name="ck_business_geo_pair"),
        Index("ix_businesses_active", "is_active", "is_active_from_super_admin"),
        Index("ix_businesses_geo", "latitude", "longitude"),
    )

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    sub_category: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    amenities: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    area: Mapped[str | None] = mapped_column(Text, nullable=True)
    branch: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(Text, nullable=True)
    zip_code: Mapped[str | None] = mapped_column(String(16), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_counts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    popularity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active_from_super_admin: Mapped[bool | None] = mapped_column(Boolean, nullable=True, default=True)
    allow_online_booking: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    working_hours: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="Asia/Kolkata",
        server_default=text("'Asia/Kolkata'"),
    )
    images: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    social_media: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    offers: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    slug: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    business_link: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    seo: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    services: Mapped[list["Service"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Service.display_order",
    )
    reviews: Mapped[list["Review"]] = relationship(
        back_populates="business",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Service(Base):
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    business_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    pricing_options: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_available_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    business: Mapped[Business] = relationship(back_populates="services")


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (CheckConstraint("rating >= 1 AND rating <= 5", name="ck_review_rating"),)

    id: Mapped[int] = mapped_column(PrimaryKey, primary_key=True)
    business_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="approved")
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    business: Mapped[Business] = relationship(back_populates="reviews")
