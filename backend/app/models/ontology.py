"""
本体对象定义 (Ontology Objects)
前台入住业务实体：客户、房间、预订、入住会话、客人、同意书记录、员工
"""
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from app.database import Base


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与数据库存储保持一致）"""
    return datetime.now(UTC).replace(tzinfo=None)


# ============== 枚举定义 ==============

class BookingStatus(str, Enum):
    """预订状态"""
    CONFIRMED = "Confirmed"      # 已确认
    CHECKED_IN = "Checked-In"    # 已入住
    CHECKED_OUT = "Checked-Out"  # 已退房


class CheckinSessionStatus(str, Enum):
    """入住会话状态"""
    INITIATED = "INITIATED"  # 已发起
    COMPLETED = "COMPLETED"  # 已完成（终态）
    EXPIRED = "EXPIRED"      # 已失效（终态）


class EmailStatus(str, Enum):
    """入住邮件发送状态"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class RoomStatus(str, Enum):
    """房间状态"""
    AVAILABLE = "Available"      # 可用
    RESERVED = "Reserved"        # 已预留
    OCCUPIED = "Occupied"        # 入住中
    MAINTENANCE = "Maintenance"  # 维修中


class ConsentLogStatus(str, Enum):
    """同意书记录状态"""
    PENDING = "pending"    # 尚未关联预订
    SENT = "sent"          # 已关联预订
    ACCEPTED = "accepted"  # 入住时确认


class EmployeeRole(str, Enum):
    """员工角色"""
    MANAGER = "manager"            # 经理
    RECEPTIONIST = "receptionist"  # 前台


class AccountStatus(str, Enum):
    """账号状态：归档代替软删除"""
    ACTIVE = "active"
    ARCHIVED = "archived"


# ============== 本体对象定义 ==============

class Customer(Base):
    """客户对象 - 预订人"""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(150), nullable=False)
    email = Column(String(150))
    phone = Column(String(30))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    bookings = relationship("Booking", back_populates="customer")


class RoomType(Base):
    """房型对象"""
    __tablename__ = "room_types"

    id = Column(Integer, primary_key=True, index=True)
    type_name = Column(String(50), unique=True, nullable=False)
    description = Column(Text)
    base_price = Column(Numeric(10, 2), default=0)
    max_occupancy = Column(Integer, default=2)

    rooms = relationship("Room", back_populates="room_type")


class Room(Base):
    """房间对象"""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(50), unique=True, nullable=False)
    room_code = Column(String(50))
    type = Column(String(50))                          # 房型标签（可为空，回退到 room_type）
    status = Column(String(32), default=RoomStatus.AVAILABLE.value)
    floor = Column(String(10))
    price = Column(Numeric(10, 2), default=0)
    max_occupancy = Column(Integer, default=2)
    description = Column(Text)
    room_type_id = Column(Integer, ForeignKey("room_types.id"))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    room_type = relationship("RoomType", back_populates="rooms")

    @property
    def display_number(self) -> str:
        """房间展示编号：优先 room_code"""
        return (self.room_code or "").strip() or (self.room_number or "").strip()

    @property
    def display_type(self) -> str:
        """房型展示名：优先房间自身标签"""
        label = (self.type or "").strip()
        if not label and self.room_type is not None:
            label = (self.room_type.type_name or "").strip()
        return label


class Booking(Base):
    """
    预订对象 - 入住流程的聚合根
    不变式：任一时刻最多一个未终结的入住会话
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    reference_code = Column(String(64), unique=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), index=True)
    status = Column(String(64), default=BookingStatus.CONFIRMED.value)
    check_in = Column(DateTime)                  # 入住时间（计划或实际）
    check_out = Column(DateTime)                 # 离店时间（计划或实际）
    check_in_date = Column(Date)
    check_out_date = Column(Date)
    nights = Column(Integer, default=0)
    number_of_guests = Column(Integer, default=1)
    adults = Column(Integer, default=1)
    children = Column(Integer, default=0)
    accompanying_guests = Column(JSON)           # 预订时的随行人草稿，入住时以 guests 表为准
    checkin_completed = Column(Boolean, default=False, nullable=False)
    checked_in_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    customer = relationship("Customer", back_populates="bookings")
    rooms = relationship("BookingRoom", back_populates="booking", order_by="BookingRoom.id")
    sessions = relationship("BookingInfo", back_populates="booking", order_by="BookingInfo.id")
    guests = relationship("Guest", back_populates="booking", order_by="Guest.id")

    @property
    def is_checked_in(self) -> bool:
        """是否已完成入住（状态字段与入住时间任一成立即可）"""
        normalized = (self.status or "").strip().lower().replace(" ", "").replace("-", "")
        return normalized == "checkedin" or self.checked_in_at is not None

    @property
    def is_checked_out(self) -> bool:
        return (self.status or "").strip().lower() == BookingStatus.CHECKED_OUT.value.lower()


class BookingRoom(Base):
    """预订-房间关联"""
    __tablename__ = "booking_rooms"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    nights = Column(Integer, default=0)
    hours = Column(Integer)
    status = Column(String(64), default=RoomStatus.RESERVED.value)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    booking = relationship("Booking", back_populates="rooms")
    room = relationship("Room")


class BookingInfo(Base):
    """
    入住会话对象 (BookingInfo)
    一次性凭证：token 用于链接，checkin_code 用于手工输入
    记录永不物理删除
    """
    __tablename__ = "booking_infos"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    token = Column(String(128), unique=True, nullable=False)
    checkin_code = Column(String(16), unique=True, nullable=False)
    status = Column(String(20), default=CheckinSessionStatus.INITIATED.value, nullable=False)
    email_status = Column(String(20), default=EmailStatus.PENDING.value)
    email_error = Column(Text)
    expires_at = Column(DateTime)        # token 过期时间
    code_expires_at = Column(DateTime)   # 入住码过期时间，NULL 表示不过期
    guest_email = Column(String(150))
    guest_last_name = Column(String(150))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    booking = relationship("Booking", back_populates="sessions")

    def is_token_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.expires_at is not None and self.expires_at <= now

    def is_code_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.code_expires_at is not None and self.code_expires_at <= now


class Guest(Base):
    """
    客人对象 - 入住时由客人本人填写
    仅在入住确认事务中创建
    """
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), index=True)
    full_name = Column(String(150), nullable=False)
    is_main_guest = Column(Boolean, default=False)
    date_of_birth = Column(Date)
    gender = Column(String(20))
    nationality = Column(String(80))
    current_address = Column(Text)
    id_type = Column(String(30))
    id_number = Column(String(80))
    id_issued_country = Column(String(80))
    face_image_path = Column(String(255))
    document_image_path = Column(String(255))
    email = Column(String(150))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    booking = relationship("Booking", back_populates="guests")


class Consent(Base):
    """同意书模板"""
    __tablename__ = "consents"
    __table_args__ = (UniqueConstraint("slug", "version", name="uq_consent_slug_version"),)

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    version = Column(String(20), default="1.0")
    effective_from = Column(DateTime)
    deleted_at = Column(DateTime, index=True)


class ConsentLog(Base):
    """
    同意书确认记录
    可在预订未知时先行记录（pending），之后按客人或 token 关联
    """
    __tablename__ = "consent_logs"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), index=True)
    booking_token = Column(String(255), index=True)
    consent_id = Column(Integer, ForeignKey("consents.id"), nullable=False, index=True)
    guest_id = Column(Integer, index=True)
    accepted_at = Column(DateTime, default=utcnow)
    accepted_by = Column(String(150))
    status = Column(String(20), default=ConsentLogStatus.PENDING.value, index=True)
    action = Column(String(50), index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, index=True)

    consent = relationship("Consent")


class Employee(Base):
    """员工对象（前台 / 管理员账号）"""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=False)
    email = Column(String(150))
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    status = Column(SQLEnum(AccountStatus), default=AccountStatus.ACTIVE, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE
