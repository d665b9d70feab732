import enum

from sqlalchemy import Boolean, Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class MenuCategory(str, enum.Enum):
    CLASICA = "Clásica"
    EXPRESS = "Express"
    VEGGIE = "Veggie"
    ESPECIAL = "Especial"


class Role(Base):
    __tablename__ = "roles"
    id = Column(Integer, primary_key=True)
    name = Column(String(64), unique=True, nullable=False)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(64), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False, default="")
    email_address = Column(String(255))
    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)

    role = relationship("Role")


class DailyMenu(Base):
    __tablename__ = "daily_menus"
    id = Column(Integer, primary_key=True)
    menu_date = Column(Date, unique=True, index=True, nullable=False)

    items = relationship(
        "DailyMenuItem",
        back_populates="daily_menu",
        cascade="all, delete-orphan",
        order_by="DailyMenuItem.id",
    )


class DailyMenuItem(Base):
    __tablename__ = "daily_menu_items"
    id = Column(Integer, primary_key=True)
    name = Column(String(512), nullable=False)
    category = Column(Enum(MenuCategory, native_enum=False, length=32), nullable=False)
    daily_menu_id = Column(
        Integer, ForeignKey("daily_menus.id", ondelete="CASCADE"), index=True, nullable=False
    )

    daily_menu = relationship("DailyMenu", back_populates="items")


class UserMenuSelection(Base):
    __tablename__ = "user_menu_selections"
    id = Column(Integer, primary_key=True)
    # Plain column: users live only in the primary store, archived selections keep the id.
    user_id = Column(Integer, index=True, nullable=False)
    daily_menu_id = Column(Integer, ForeignKey("daily_menus.id"), index=True, nullable=False)
    selected_category = Column(Enum(MenuCategory, native_enum=False, length=32), nullable=False)
    selected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_active = Column(Boolean, nullable=False, default=True)
    observation = Column(Text)

    daily_menu = relationship("DailyMenu")


class NotificationState(Base):
    __tablename__ = "notification_state"
    notification_type = Column(String(32), primary_key=True)
    period_start = Column(Date, nullable=False)
    fired_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
